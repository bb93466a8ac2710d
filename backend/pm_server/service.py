"""
Operation surface for PM Server.

ProjectService is the one object the transport layer talks to. It owns
no state of its own beyond the store handle and the engines built on it;
every call is independent, and concurrent calls share nothing but the
store.

List operations return the store's JSON text untouched. Creation, update
and membership operations are typed and raise the errors in errors.py.

Invariants:
    - Validation failures never reach the store
    - Store failures are surfaced as received, with no retry
    - Composite failures say which step failed and what was committed
"""

from __future__ import annotations

import logging
from typing import Any

from .core import (
    CompositeResult,
    MembershipReconciler,
    PartialUpdater,
    ProjectOrchestrator,
    RoleRelation,
    WorkRelation,
)
from .errors import AuthenticationError, StoreError, ValidationError
from .model.entities import EntityKind
from .model.payloads import (
    AlterBacklog,
    AlterProject,
    AlterWork,
    Credentials,
    NewBacklog,
    NewProject,
    NewWork,
    UserRoleChange,
    UserWorkChange,
)
from .store import ProjectStore

logger = logging.getLogger(__name__)


class ProjectService:
    """Service implementation behind the HTTP routes.

    Attributes:
        store: ProjectStore instance
        reconciler: Membership delta engine
        updater: Partial update engine
        orchestrator: Composite project operations
    """

    def __init__(self, store: ProjectStore) -> None:
        """Initialize the service.

        Args:
            store: Initialized ProjectStore, shared by every component
        """
        self.store = store
        self.reconciler = MembershipReconciler(store)
        self.updater = PartialUpdater(store)
        self.orchestrator = ProjectOrchestrator(store, self.reconciler, self.updater)

    # --- Authentication --------------------------------------------------

    async def login(self, credentials: Credentials) -> int:
        """Resolve credentials to a user id.

        Raises:
            AuthenticationError: Unknown user or wrong password
        """
        logger.info("Login attempt", extra={"username": credentials.user_name})
        user_id = await self.store.get_user_id_by_credentials(
            credentials.user_name, credentials.password
        )
        if user_id is None:
            raise AuthenticationError(credentials.user_name)
        return user_id

    async def register_user(self, credentials: Credentials) -> int:
        return await self.store.create_user(credentials.user_name, credentials.password)

    # --- Projects --------------------------------------------------------

    async def create_project(self, spec: NewProject) -> CompositeResult:
        return await self.orchestrator.create_project_with_roles(spec, spec.user_roles)

    async def list_projects(self) -> str:
        return await self.store.projects_json()

    async def update_project(self, alter: AlterProject) -> CompositeResult:
        return await self.orchestrator.alter_project_with_roles(alter, alter.user_roles)

    async def list_user_roles(self, project_id: int) -> str:
        return await self.store.user_roles_json(project_id)

    async def set_user_role(self, delta: UserRoleChange) -> None:
        """Apply a role delta to an existing project.

        Raises:
            ValidationError: projectId missing or sets overlap
            ReconcileError: Project missing or store rejected the write
        """
        if delta.project_id is None:
            raise ValidationError("projectId is required", field_name="projectId")
        await self.reconciler.reconcile_membership(
            RoleRelation(delta.project_id, delta.role_id),
            delta.users_added,
            delta.users_removed,
        )

    async def list_project_assignees(self, project_id: int, role_id: int | None = None) -> str:
        return await self.store.project_assignees_json(project_id, role_id)

    # --- Backlogs --------------------------------------------------------

    async def list_backlogs(self, project_id: int) -> str:
        return await self.store.backlogs_json(project_id)

    async def create_backlog(self, spec: NewBacklog) -> int:
        backlog_id = await self.store.create_backlog(spec.column_values())
        logger.info(f"Created backlog {backlog_id}", extra={"project_id": spec.project_id})
        return backlog_id

    async def update_backlog(self, alter: AlterBacklog) -> None:
        await self.updater.apply_partial_update(EntityKind.BACKLOG, alter.id, alter.field_mask())

    # --- Works -----------------------------------------------------------

    async def create_work(self, spec: NewWork) -> int:
        work_id = await self.store.create_work(spec.column_values())
        logger.info(f"Created work {work_id}", extra={"backlog_id": spec.backlog_id})
        return work_id

    async def list_works(self, backlog_id: int) -> str:
        return await self.store.works_json(backlog_id)

    async def update_work(self, alter: AlterWork) -> None:
        await self.updater.apply_partial_update(EntityKind.WORK, alter.id, alter.field_mask())

    async def list_user_todos(self, user_id: int) -> str:
        return await self.store.user_todos_json(user_id)

    async def list_work_assignees(self, work_id: int) -> str:
        return await self.store.work_assignees_json(work_id)

    async def set_work_assignment(self, delta: UserWorkChange) -> None:
        await self.reconciler.reconcile_membership(
            WorkRelation(delta.work_id), delta.users_added, delta.users_removed
        )

    # --- Users & reference data -----------------------------------------

    async def list_usernames(self) -> str:
        return await self.store.usernames_json()

    async def list_reference_data(self) -> str:
        return await self.store.reference_data_json()

    async def health(self) -> dict[str, Any]:
        """Check store connectivity."""
        try:
            healthy = await self.store.ping()
        except StoreError as e:
            logger.error(f"Health check failed: {e}")
            healthy = False
        return {"healthy": healthy, "database": str(self.store.get_db_path())}
