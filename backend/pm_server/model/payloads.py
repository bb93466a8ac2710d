"""
Request payloads for PM Server.

Creation payloads (New*) require every mandatory attribute; update payloads
(Alter*) require only the target id. Wire names are camelCase, Python
attribute names match the store's column names.

A partial update is carried to the store as a FieldMask: only attributes
the caller actually sent are present, so "not provided" never collapses
into "provided as null/zero".

Invariants:
    - FieldMask keys come from ``model_fields_set``, never from defaults
    - Explicit null is only accepted for nullable columns
    - Deltas are sets; duplicate ids in the wire list collapse
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from datetime import date
from typing import Any, ClassVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from ..errors import ValidationError
from .entities import NULLABLE_COLUMNS, UPDATABLE_COLUMNS, EntityKind


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Credentials(_Payload):
    """Username/password pair for login."""

    user_name: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserRoleChange(_Payload):
    """Delta on the Project↔User↔Role membership relation.

    ``project_id`` may be omitted only inside a composite project creation,
    where it is bound to the new project.
    """

    role_id: int
    project_id: int | None = None
    users_added: set[int] = Field(default_factory=set)
    users_removed: set[int] = Field(default_factory=set)


class UserWorkChange(_Payload):
    """Delta on the Work↔User assignment relation."""

    work_id: int
    users_added: set[int] = Field(default_factory=set)
    users_removed: set[int] = Field(default_factory=set)


class NewProject(_Payload):
    """Project creation, optionally with initial role grants."""

    name: str = Field(..., min_length=1, validation_alias=AliasChoices("name", "projectName"))
    description: str | None = ""
    created_by: int = Field(..., validation_alias=AliasChoices("createdBy", "creatorId", "created_by"))
    start_date: date
    target_date: date
    pic_id: int
    user_roles: list[UserRoleChange] = Field(default_factory=list)

    def column_values(self) -> dict[str, Any]:
        return self.model_dump(exclude={"user_roles"})


class NewBacklog(_Payload):
    project_id: int
    name: str = Field(..., min_length=1)
    description: str | None = ""
    start_date: date
    target_date: date
    created_by: int
    pic_id: int
    priority_id: int

    def column_values(self) -> dict[str, Any]:
        return self.model_dump()


class NewWork(_Payload):
    backlog_id: int
    name: str = Field(..., min_length=1)
    description: str | None = ""
    start_date: date
    target_date: date
    pic_id: int | None = None
    current_state: int | None = None
    created_by: int
    priority_id: int
    estimated_hours: float | None = Field(default=None, ge=0)
    tracker_id: int
    activity_id: int

    def column_values(self) -> dict[str, Any]:
        values = self.model_dump()
        # Unset state falls back to the column default
        if values["current_state"] is None:
            del values["current_state"]
        return values


class _AlterPayload(_Payload):
    """Base for partial updates: ``id`` plus optional attributes."""

    kind: ClassVar[EntityKind]

    id: int

    @model_validator(mode="after")
    def _reject_null_on_required(self) -> _AlterPayload:
        nullable = NULLABLE_COLUMNS[self.kind]
        for name in self.model_fields_set:
            if name in UPDATABLE_COLUMNS[self.kind] and getattr(self, name) is None:
                if name not in nullable:
                    raise ValueError(f"{to_camel(name)} cannot be null")
        return self

    def field_mask(self) -> FieldMask:
        return FieldMask.from_payload(self)


class AlterProject(_AlterPayload):
    """Partial update of a project, optionally with role deltas."""

    kind: ClassVar[EntityKind] = EntityKind.PROJECT

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_date: date | None = None
    target_date: date | None = None
    pic_id: int | None = None
    user_roles: list[UserRoleChange] = Field(default_factory=list)


class AlterBacklog(_AlterPayload):
    kind: ClassVar[EntityKind] = EntityKind.BACKLOG

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_date: date | None = None
    target_date: date | None = None
    pic_id: int | None = None
    priority_id: int | None = None


class AlterWork(_AlterPayload):
    kind: ClassVar[EntityKind] = EntityKind.WORK

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    start_date: date | None = None
    target_date: date | None = None
    pic_id: int | None = None
    current_state: int | None = None
    priority_id: int | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    tracker_id: int | None = None
    activity_id: int | None = None


class FieldMask(Mapping[str, Any]):
    """Attributes explicitly supplied for a partial update.

    A key is present only if the caller sent it; its value may be None
    (explicit clear). Absent keys are never written.

    Example:
        >>> mask = FieldMask({"name": "Renamed"})
        >>> "description" in mask
        False
    """

    def __init__(self, values: Mapping[str, Any] | None = None) -> None:
        self._values = dict(values or {})

    @classmethod
    def from_payload(cls, payload: _AlterPayload) -> FieldMask:
        columns = UPDATABLE_COLUMNS[payload.kind]
        return cls(
            {
                name: getattr(payload, name)
                for name in payload.model_fields_set
                if name in columns
            }
        )

    def __getitem__(self, key: str) -> Any:
        return self._values[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"FieldMask({self._values!r})"


def to_validation_error(errors: Sequence[Mapping[str, Any]]) -> ValidationError:
    """Convert pydantic error dicts into a ValidationError.

    Args:
        errors: ``exc.errors()`` from pydantic or FastAPI

    Returns:
        ValidationError naming the first offending field
    """
    messages = []
    field_name = None
    for err in errors:
        loc = [str(part) for part in err.get("loc", ()) if part not in ("body", "query")]
        location = ".".join(loc)
        if field_name is None and location:
            field_name = location
        messages.append(f"{location}: {err.get('msg', 'invalid')}" if location else err.get("msg", "invalid"))
    return ValidationError("Invalid input", field_name=field_name, errors=messages)
