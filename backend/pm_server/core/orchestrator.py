"""
Composite project operations for PM Server.

Creating a project together with its initial role grants is two kinds of
store call: one insert for the project, then one reconciliation per role.
There is no transaction around the whole sequence. If the project insert
succeeds and a grant fails, the project stays persisted and the caller
gets a PartialCreationError naming the project and the failed role.

State machine for create_project_with_roles:

    CREATING ──fail──▶ FAILED            (CreationError, nothing persisted)
        │
        ▼
    CREATED ──▶ RECONCILING ──all ok──▶ DONE
                    │
                    └──any fail──▶ PARTIALLY_DONE   (PartialCreationError)

Invariants:
    - Steps run strictly in sequence; each is awaited before the next
    - Grants that remove users are skipped for a brand-new project
    - The parent project is never rolled back
    - Grants after the first failure are not attempted

How to change safely:
    - Adding rollback changes the public error contract; update callers
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from ..errors import (
    ConstraintError,
    CreationError,
    PartialCreationError,
    PartialUpdateError,
    ReconcileError,
    StoreError,
    ValidationError,
)
from ..model.entities import EntityKind
from ..model.payloads import AlterProject, NewProject, UserRoleChange
from ..store import ProjectStore
from .reconciler import MembershipReconciler, RoleRelation, check_delta
from .updater import PartialUpdater

logger = logging.getLogger(__name__)


class CompositeState(Enum):
    """Progress of a composite project operation."""

    CREATING = "creating"
    CREATED = "created"
    RECONCILING = "reconciling"
    DONE = "done"
    PARTIALLY_DONE = "partially_done"
    FAILED = "failed"


@dataclass
class CompositeResult:
    """Outcome of a fully successful composite operation.

    Attributes:
        project_id: Created or updated project
        applied_role_ids: Roles whose delta was written, in request order
        skipped_role_ids: Roles whose delta was not applicable
    """

    project_id: int
    applied_role_ids: list[int] = field(default_factory=list)
    skipped_role_ids: list[int] = field(default_factory=list)


class ProjectOrchestrator:
    """Sequences project creation/update with dependent role deltas.

    Example:
        >>> orchestrator = ProjectOrchestrator(store, reconciler, updater)
        >>> result = await orchestrator.create_project_with_roles(spec, spec.user_roles)
        >>> result.project_id
        12
    """

    def __init__(
        self,
        store: ProjectStore,
        reconciler: MembershipReconciler,
        updater: PartialUpdater,
    ) -> None:
        self.store = store
        self.reconciler = reconciler
        self.updater = updater

    @staticmethod
    def is_initial_grant(delta: UserRoleChange) -> bool:
        """A delta usable on a brand-new project: only additions."""
        return bool(delta.users_added) and not delta.users_removed

    def _transition(self, state: CompositeState, **context: object) -> None:
        logger.debug(f"Composite operation -> {state.value}", extra=context)

    async def create_project_with_roles(
        self,
        spec: NewProject,
        role_deltas: Sequence[UserRoleChange] = (),
    ) -> CompositeResult:
        """Create a project, then grant its initial roles.

        Args:
            spec: Project attributes
            role_deltas: Role grants; project_id is bound to the new project

        Returns:
            CompositeResult with applied and skipped role ids

        Raises:
            CreationError: The project itself was not created
            PartialCreationError: The project exists but a grant failed
        """
        self._transition(CompositeState.CREATING, project_name=spec.name)
        try:
            project_id = await self.store.create_project(spec.column_values())
        except (ConstraintError, StoreError) as e:
            self._transition(CompositeState.FAILED, project_name=spec.name)
            raise CreationError("Failed to create project", cause=e) from e

        self._transition(CompositeState.CREATED, project_id=project_id)
        result = CompositeResult(project_id=project_id)

        self._transition(CompositeState.RECONCILING, project_id=project_id)
        for delta in role_deltas:
            if not self.is_initial_grant(delta):
                logger.info(
                    f"Skipping role {delta.role_id} delta for new project {project_id}",
                    extra={"users_removed": sorted(delta.users_removed)},
                )
                result.skipped_role_ids.append(delta.role_id)
                continue

            try:
                await self.reconciler.reconcile_membership(
                    RoleRelation(project_id, delta.role_id), delta.users_added, ()
                )
            except ReconcileError as e:
                self._transition(CompositeState.PARTIALLY_DONE, project_id=project_id)
                logger.error(
                    f"Project {project_id} created but role {delta.role_id} grant failed",
                    extra={
                        "project_id": project_id,
                        "role_id": delta.role_id,
                        "applied_role_ids": result.applied_role_ids,
                        "cause_code": e.details.get("cause_code"),
                    },
                )
                raise PartialCreationError(
                    project_id, delta.role_id, list(result.applied_role_ids), e
                ) from e

            result.applied_role_ids.append(delta.role_id)

        self._transition(CompositeState.DONE, project_id=project_id)
        logger.info(
            f"Created project {project_id}",
            extra={
                "applied_role_ids": result.applied_role_ids,
                "skipped_role_ids": result.skipped_role_ids,
            },
        )
        return result

    async def alter_project_with_roles(
        self,
        alter: AlterProject,
        role_deltas: Sequence[UserRoleChange] = (),
    ) -> CompositeResult:
        """Partially update a project, then apply role deltas.

        Unlike creation, deltas here may remove users.

        Raises:
            ValidationError: A delta overlaps or names another project
            UpdateError: The field update failed; no delta was applied
            PartialUpdateError: Fields were committed but a delta failed
        """
        for delta in role_deltas:
            if delta.project_id is not None and delta.project_id != alter.id:
                raise ValidationError(
                    f"Role delta targets project {delta.project_id}, not {alter.id}",
                    field_name="userRoles.projectId",
                )
            check_delta(delta.users_added, delta.users_removed)

        await self.updater.apply_partial_update(EntityKind.PROJECT, alter.id, alter.field_mask())

        result = CompositeResult(project_id=alter.id)
        for delta in role_deltas:
            if not delta.users_added and not delta.users_removed:
                result.skipped_role_ids.append(delta.role_id)
                continue

            try:
                await self.reconciler.reconcile_membership(
                    RoleRelation(alter.id, delta.role_id),
                    delta.users_added,
                    delta.users_removed,
                )
            except ReconcileError as e:
                logger.error(
                    f"Project {alter.id} updated but role {delta.role_id} change failed",
                    extra={
                        "project_id": alter.id,
                        "role_id": delta.role_id,
                        "applied_role_ids": result.applied_role_ids,
                    },
                )
                raise PartialUpdateError(
                    alter.id, delta.role_id, list(result.applied_role_ids), e
                ) from e

            result.applied_role_ids.append(delta.role_id)

        return result
