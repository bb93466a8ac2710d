"""
Stored entity shapes for PM Server.

Rows read back from the store are returned as these dataclasses. Ids are
integers assigned by the store on creation. Dates are stored as ISO-8601
text and converted back to ``datetime.date`` here.

The column tables at the bottom are the single source of truth for which
attributes may be written by a partial update and which of them accept an
explicit null.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import date
from enum import Enum


class EntityKind(str, Enum):
    """Entities that support creation and partial update."""

    PROJECT = "project"
    BACKLOG = "backlog"
    WORK = "work"

    @property
    def table(self) -> str:
        return {
            EntityKind.PROJECT: "projects",
            EntityKind.BACKLOG: "backlogs",
            EntityKind.WORK: "works",
        }[self]


def _date(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


@dataclass
class Project:
    """Root of the hierarchy.

    Attributes:
        id: Store-assigned identifier
        name: Project name
        description: Free text
        created_by: User who created the project
        start_date: Planned start
        target_date: Planned completion
        pic_id: Person in charge
    """

    id: int
    name: str
    description: str | None
    created_by: int
    start_date: date | None
    target_date: date | None
    pic_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Project:
        return cls(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_by=row["created_by"],
            start_date=_date(row["start_date"]),
            target_date=_date(row["target_date"]),
            pic_id=row["pic_id"],
        )


@dataclass
class Backlog:
    """A backlog belongs to exactly one project."""

    id: int
    project_id: int
    name: str
    description: str | None
    start_date: date | None
    target_date: date | None
    created_by: int
    pic_id: int
    priority_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Backlog:
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            description=row["description"],
            start_date=_date(row["start_date"]),
            target_date=_date(row["target_date"]),
            created_by=row["created_by"],
            pic_id=row["pic_id"],
            priority_id=row["priority_id"],
        )


@dataclass
class Work:
    """A work item belongs to exactly one backlog. ``pic_id`` may be unset."""

    id: int
    backlog_id: int
    name: str
    description: str | None
    start_date: date | None
    target_date: date | None
    pic_id: int | None
    current_state: int
    created_by: int
    priority_id: int
    estimated_hours: float | None
    tracker_id: int
    activity_id: int

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Work:
        return cls(
            id=row["id"],
            backlog_id=row["backlog_id"],
            name=row["name"],
            description=row["description"],
            start_date=_date(row["start_date"]),
            target_date=_date(row["target_date"]),
            pic_id=row["pic_id"],
            current_state=row["current_state"],
            created_by=row["created_by"],
            priority_id=row["priority_id"],
            estimated_hours=row["estimated_hours"],
            tracker_id=row["tracker_id"],
            activity_id=row["activity_id"],
        )


# Attributes a partial update may write, per entity. Parent ids and the
# creator are fixed at creation.
UPDATABLE_COLUMNS: dict[EntityKind, frozenset[str]] = {
    EntityKind.PROJECT: frozenset(
        {"name", "description", "start_date", "target_date", "pic_id"}
    ),
    EntityKind.BACKLOG: frozenset(
        {"name", "description", "start_date", "target_date", "pic_id", "priority_id"}
    ),
    EntityKind.WORK: frozenset(
        {
            "name",
            "description",
            "start_date",
            "target_date",
            "pic_id",
            "current_state",
            "priority_id",
            "estimated_hours",
            "tracker_id",
            "activity_id",
        }
    ),
}

# Subset of UPDATABLE_COLUMNS that may be explicitly cleared with null.
NULLABLE_COLUMNS: dict[EntityKind, frozenset[str]] = {
    EntityKind.PROJECT: frozenset({"description"}),
    EntityKind.BACKLOG: frozenset({"description"}),
    EntityKind.WORK: frozenset({"description", "pic_id", "estimated_hours"}),
}
