"""
Membership reconciliation for PM Server.

A delta is a pair of user-id sets (added, removed) for one membership
relation: the users holding a role on a project, or the users assigned
to a work item. Reconciling applies the removals, then the additions, as
one store transaction, so no caller can observe a half-applied delta.

Invariants:
    - A user id never appears in both sets of one delta
    - An empty delta succeeds without touching the store
    - A failed relation is reported whole; nothing is retried

How to change safely:
    - New relation kinds need a key dataclass and a store primitive
    - Keep validation ahead of any store access
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Union

from ..errors import (
    ConstraintError,
    NotFoundError,
    ReconcileError,
    StoreError,
    ValidationError,
)
from ..store import ProjectStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleRelation:
    """Users holding ``role_id`` on ``project_id``."""

    project_id: int
    role_id: int

    def __str__(self) -> str:
        return f"role {self.role_id} on project {self.project_id}"


@dataclass(frozen=True)
class WorkRelation:
    """Users assigned to ``work_id``."""

    work_id: int

    def __str__(self) -> str:
        return f"assignees of work {self.work_id}"


RelationKey = Union[RoleRelation, WorkRelation]


def check_delta(users_added: Iterable[int], users_removed: Iterable[int]) -> None:
    """Reject a delta that both adds and removes the same user.

    Raises:
        ValidationError: If the sets overlap
    """
    overlap = set(users_added) & set(users_removed)
    if overlap:
        raise ValidationError(
            f"Users {sorted(overlap)} appear in both usersAdded and usersRemoved",
            field_name="usersAdded",
            errors=[f"user {u} is both added and removed" for u in sorted(overlap)],
        )


class MembershipReconciler:
    """Applies membership deltas to the store.

    Example:
        >>> reconciler = MembershipReconciler(store)
        >>> await reconciler.reconcile_membership(RoleRelation(1, 2), {7, 9}, set())
    """

    def __init__(self, store: ProjectStore) -> None:
        self.store = store

    async def reconcile_membership(
        self,
        relation: RelationKey,
        users_added: Iterable[int],
        users_removed: Iterable[int],
    ) -> None:
        """Remove then add users on one relation.

        Args:
            relation: RoleRelation or WorkRelation
            users_added: Users to grant
            users_removed: Users to revoke

        Raises:
            ValidationError: If the sets overlap
            ReconcileError: If the relation key does not resolve, the
                store rejects the write or the store is unavailable
        """
        added = set(users_added)
        removed = set(users_removed)
        check_delta(added, removed)

        if not added and not removed:
            logger.debug(f"Empty delta for {relation}, nothing to apply")
            return

        try:
            if isinstance(relation, RoleRelation):
                await self.store.apply_role_delta(
                    relation.project_id, relation.role_id, added, removed
                )
            elif isinstance(relation, WorkRelation):
                await self.store.apply_work_delta(relation.work_id, added, removed)
            else:
                raise TypeError(f"Unsupported relation key: {relation!r}")
        except (NotFoundError, ConstraintError, StoreError) as e:
            logger.warning(
                f"Reconciliation failed for {relation}",
                extra={"error_code": e.code, "added": sorted(added), "removed": sorted(removed)},
            )
            raise ReconcileError(f"Failed to update {relation}", cause=e) from e

        logger.info(
            f"Reconciled {relation}",
            extra={"added": len(added), "removed": len(removed)},
        )
