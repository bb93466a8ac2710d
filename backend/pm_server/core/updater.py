"""
Partial updates for PM Server.

Only the attributes present in a FieldMask are written; everything else
keeps its stored value. Validation happens before the store is touched.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from ..errors import ConstraintError, NotFoundError, StoreError, UpdateError, ValidationError
from ..model.entities import NULLABLE_COLUMNS, UPDATABLE_COLUMNS, EntityKind
from ..store import ProjectStore

logger = logging.getLogger(__name__)


class PartialUpdater:
    """Writes sparse field updates to Project, Backlog and Work rows."""

    def __init__(self, store: ProjectStore) -> None:
        self.store = store

    def _validate(self, kind: EntityKind, field_mask: Mapping[str, Any]) -> None:
        unknown = sorted(set(field_mask) - UPDATABLE_COLUMNS[kind])
        if unknown:
            raise ValidationError(
                f"Cannot update {', '.join(unknown)} on {kind.value}",
                field_name=unknown[0],
                errors=[f"{name}: not updatable" for name in unknown],
            )

        cleared = sorted(
            name
            for name, value in field_mask.items()
            if value is None and name not in NULLABLE_COLUMNS[kind]
        )
        if cleared:
            raise ValidationError(
                f"{', '.join(cleared)} cannot be null",
                field_name=cleared[0],
                errors=[f"{name}: cannot be null" for name in cleared],
            )

    async def apply_partial_update(
        self,
        kind: EntityKind,
        entity_id: int,
        field_mask: Mapping[str, Any],
    ) -> None:
        """Write the masked attributes of one entity.

        Args:
            kind: Entity kind
            entity_id: Entity identifier
            field_mask: Attribute name to new value; absent names are untouched

        Raises:
            UpdateError: Cause is ValidationError, NotFoundError, ConstraintError
                or StoreError
        """
        try:
            self._validate(kind, field_mask)
            found = await self.store.update_entity(kind, entity_id, field_mask)
            if not found:
                raise NotFoundError(
                    f"{kind.value.capitalize()} {entity_id} not found",
                    resource_type=kind.value,
                    resource_id=entity_id,
                )
        except (ValidationError, NotFoundError, ConstraintError, StoreError) as e:
            logger.warning(
                f"Update of {kind.value} {entity_id} failed",
                extra={"error_code": e.code, "fields": sorted(field_mask)},
            )
            raise UpdateError(f"Failed to update {kind.value} {entity_id}", cause=e) from e

        logger.info(
            f"Updated {kind.value} {entity_id}",
            extra={"fields": sorted(field_mask)},
        )
