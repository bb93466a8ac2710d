"""
Core engines for PM Server.

- MembershipReconciler: applies add/remove deltas to a membership relation
- PartialUpdater: writes only the supplied attributes of an entity
- ProjectOrchestrator: project creation/update followed by role deltas

All three receive the store explicitly; none holds global state.
"""

from .orchestrator import CompositeResult, CompositeState, ProjectOrchestrator
from .reconciler import MembershipReconciler, RelationKey, RoleRelation, WorkRelation, check_delta
from .updater import PartialUpdater

__all__ = [
    "MembershipReconciler",
    "RelationKey",
    "RoleRelation",
    "WorkRelation",
    "check_delta",
    "PartialUpdater",
    "ProjectOrchestrator",
    "CompositeResult",
    "CompositeState",
]
