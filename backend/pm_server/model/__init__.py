"""
Entity model for PM Server.

This module defines:
- Stored row shapes (Project, Backlog, Work)
- Request payloads (New*, Alter*, membership deltas, credentials)
- FieldMask, the tagged-optional form of a partial update

Invariants:
    - Creation payloads reject missing required attributes
    - Update payloads require only the target id
    - Unset update attributes never reach the store
"""

from .entities import (
    NULLABLE_COLUMNS,
    UPDATABLE_COLUMNS,
    Backlog,
    EntityKind,
    Project,
    Work,
)
from .payloads import (
    AlterBacklog,
    AlterProject,
    AlterWork,
    Credentials,
    FieldMask,
    NewBacklog,
    NewProject,
    NewWork,
    UserRoleChange,
    UserWorkChange,
    to_validation_error,
)

__all__ = [
    "EntityKind",
    "Project",
    "Backlog",
    "Work",
    "UPDATABLE_COLUMNS",
    "NULLABLE_COLUMNS",
    "Credentials",
    "NewProject",
    "NewBacklog",
    "NewWork",
    "AlterProject",
    "AlterBacklog",
    "AlterWork",
    "UserRoleChange",
    "UserWorkChange",
    "FieldMask",
    "to_validation_error",
]
