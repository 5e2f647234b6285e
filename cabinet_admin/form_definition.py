"""
Form definition model for the dynamic form engine.
An ordered set of field schemas bound to one backing table, plus the
operator-facing field editing operations.
"""

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .field_schema import FieldSchema, sort_fields
from .form_exceptions import SchemaIntegrityError

logger = logging.getLogger(__name__)

MOVE_UP = "up"
MOVE_DOWN = "down"


class FormDefinition(BaseModel):
    """A named, ordered set of field schemas bound to one backing table."""

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: Optional[str] = None
    name: str = Field(min_length=1)
    description: Optional[str] = None
    table_name: str
    is_system: bool = False
    fields: List[FieldSchema] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "FormDefinition":
        seen = set()
        for field in self.fields:
            if field.id in seen:
                raise SchemaIntegrityError(
                    f"Duplicate field id '{field.id}' in form '{self.name}'",
                    form_name=self.name, field_id=field.id
                )
            seen.add(field.id)
        return self

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "FormDefinition":
        """Build a definition from a row of the forms table."""
        data = dict(record)
        data["fields"] = data.get("fields") or []
        data["is_system"] = bool(data.get("is_system"))
        for key in ("created_at", "updated_at"):
            if data.get(key) is not None:
                data[key] = str(data[key])
        return cls.model_validate(data)

    def to_record(self, include_id: bool = True) -> Dict[str, Any]:
        """Serialize to a row of the forms table."""
        record = {
            "name": self.name,
            "description": self.description,
            "table_name": self.table_name,
            "is_system": self.is_system,
            "fields": [field.to_record() for field in self.fields],
        }
        if include_id and self.id:
            record["id"] = self.id
        return record

    def sorted_fields(self) -> List[FieldSchema]:
        """Fields in rendering order."""
        return sort_fields(self.fields)

    def field_ids(self) -> List[str]:
        return [field.id for field in self.fields]

    def get_field(self, field_id: str) -> Optional[FieldSchema]:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def values_from_record(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """Field id -> value for the columns of an existing row that this form maps."""
        return {
            field.id: record[field.db_field]
            for field in self.fields
            if field.db_field in record and record[field.db_field] is not None
        }

    def _require_field(self, field_id: str) -> FieldSchema:
        field = self.get_field(field_id)
        if field is None:
            raise SchemaIntegrityError(
                f"Field '{field_id}' does not exist in form '{self.name}'",
                form_name=self.name, field_id=field_id
            )
        return field

    def ensure_deletable(self) -> None:
        """Raise if this form may not be deleted."""
        if self.is_system:
            raise SchemaIntegrityError(
                f"Form '{self.name}' is a system form and cannot be deleted",
                form_name=self.name
            )

    def add_field(self, field: FieldSchema) -> FieldSchema:
        """
        Append a field after the current last field.

        Args:
            field: New field schema

        Returns:
            The field as stored, with its order assigned

        Raises:
            SchemaIntegrityError: If the id is already used
        """
        if self.get_field(field.id) is not None:
            raise SchemaIntegrityError(
                f"Field ID must be unique: '{field.id}' already exists",
                form_name=self.name, field_id=field.id
            )

        next_order = max((f.order for f in self.fields), default=-1) + 1
        stored = field.model_copy(update={"order": next_order})
        self.fields.append(stored)
        logger.info(f"Added field '{field.id}' to form '{self.name}'")
        return stored

    def update_field(self, field: FieldSchema) -> FieldSchema:
        """
        Replace the field with the same id.

        Changing the backing column or the type of a field whose column
        already holds data is rejected.
        """
        existing = self._require_field(field.id)

        if existing.has_data and (existing.db_field != field.db_field or existing.type != field.type):
            raise SchemaIntegrityError(
                f"Field '{field.id}' has data; its column and type cannot be changed",
                form_name=self.name, field_id=field.id
            )

        updated = field.model_copy(update={
            "is_system": existing.is_system,
            "has_data": existing.has_data,
        })
        index = self.fields.index(existing)
        self.fields[index] = updated
        logger.info(f"Updated field '{field.id}' in form '{self.name}'")
        return updated

    def rebound_fields(self, fields: List[FieldSchema]) -> List[FieldSchema]:
        """Current fields that a replacement list drops or moves to another column or type."""
        replacement = {f.id: f for f in fields}
        rebound = []
        for existing in self.sorted_fields():
            new = replacement.get(existing.id)
            if new is None or new.db_field != existing.db_field or new.type != existing.type:
                rebound.append(existing)
        return rebound

    def ensure_replaceable_by(self, fields: List[FieldSchema]) -> None:
        """
        Check that a replacement field list keeps this form's guarded fields.

        System fields must remain and stay system fields. Fields whose
        column holds data must remain with the same column and type.

        Raises:
            SchemaIntegrityError: On the first violation found
        """
        replacement = {f.id: f for f in fields}

        for existing in self.sorted_fields():
            new = replacement.get(existing.id)
            if new is None:
                if existing.is_system:
                    raise SchemaIntegrityError(
                        f"Field '{existing.label}' is a system field and cannot be deleted",
                        form_name=self.name, field_id=existing.id
                    )
                if existing.has_data:
                    raise SchemaIntegrityError(
                        f"Field '{existing.label}' has data and cannot be deleted",
                        form_name=self.name, field_id=existing.id
                    )
                continue

            if existing.is_system and not new.is_system:
                raise SchemaIntegrityError(
                    f"Field '{existing.label}' is a system field and must stay one",
                    form_name=self.name, field_id=existing.id
                )
            if existing.has_data and (existing.db_field != new.db_field or existing.type != new.type):
                raise SchemaIntegrityError(
                    f"Field '{existing.id}' has data; its column and type cannot be changed",
                    form_name=self.name, field_id=existing.id
                )

    def move_field(self, field_id: str, direction: str) -> bool:
        """
        Swap a field with its neighbour in rendering order.

        Orders are renumbered 0..n-1 afterwards. Moving past either end is
        a no-op.

        Returns:
            True if the field moved
        """
        if direction not in (MOVE_UP, MOVE_DOWN):
            raise ValueError(f"Invalid move direction: {direction}")

        self._require_field(field_id)
        ordered = self.sorted_fields()
        index = next(i for i, f in enumerate(ordered) if f.id == field_id)
        new_index = index - 1 if direction == MOVE_UP else index + 1

        if new_index < 0 or new_index >= len(ordered):
            return False

        ordered[index], ordered[new_index] = ordered[new_index], ordered[index]
        self.fields = [f.model_copy(update={"order": i}) for i, f in enumerate(ordered)]
        logger.debug(f"Moved field '{field_id}' {direction} in form '{self.name}'")
        return True

    def remove_field(self, field_id: str) -> FieldSchema:
        """
        Remove a field.

        Raises:
            SchemaIntegrityError: If the field is a system field or its column
                holds data. The definition is left unchanged.
        """
        field = self._require_field(field_id)

        if field.is_system:
            raise SchemaIntegrityError(
                f"Field '{field.label}' is a system field and cannot be deleted",
                form_name=self.name, field_id=field_id
            )
        if field.has_data:
            raise SchemaIntegrityError(
                f"Field '{field.label}' has data and cannot be deleted",
                form_name=self.name, field_id=field_id
            )

        self.fields = [f for f in self.fields if f.id != field_id]
        logger.info(f"Removed field '{field_id}' from form '{self.name}'")
        return field
