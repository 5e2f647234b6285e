"""
Form definition persistence.
Stores form definitions as rows of a reserved table in the CRUD store and
guards schema edits against data loss.
"""

import logging
from typing import Any, Dict, List, Optional

from deepdiff import DeepDiff

from .crud_store import CrudStore
from .default_forms import get_default_forms
from .field_schema import FieldSchema
from .form_definition import FormDefinition
from .form_exceptions import SchemaIntegrityError, StoreError

logger = logging.getLogger(__name__)

FORMS_TABLE = "forms"

# PostgreSQL undefined_column
UNDEFINED_COLUMN = "42703"

AVAILABLE_TABLES = [
    {"value": "products", "label": "Products"},
    {"value": "components", "label": "Components"},
    {"value": "orders", "label": "Orders"},
    {"value": "customers", "label": "Customers"},
    {"value": "suppliers", "label": "Suppliers"},
    {"value": "documents", "label": "Documents"},
]


class FormService:
    """CRUD operations for form definitions."""

    def __init__(self, store: CrudStore, forms_table: str = FORMS_TABLE):
        self.store = store
        self.forms_table = forms_table

    async def list_forms(self) -> List[FormDefinition]:
        rows = await self.store.get(self.forms_table, order_by="name")
        return [FormDefinition.from_record(row) for row in rows]

    async def get_form(self, form_id: str) -> Optional[FormDefinition]:
        row = await self.store.get_one(self.forms_table, form_id)
        return FormDefinition.from_record(row) if row else None

    async def get_form_by_name(self, name: str) -> Optional[FormDefinition]:
        rows = await self.store.get(self.forms_table, {"name": name})
        return FormDefinition.from_record(rows[0]) if rows else None

    async def create_form(self, definition: FormDefinition) -> FormDefinition:
        row = await self.store.insert(self.forms_table, definition.to_record())
        logger.info(f"Created form '{definition.name}' for table {definition.table_name}")
        return FormDefinition.from_record(row)

    async def update_form(self, form_id: str, updates: Dict[str, Any]) -> FormDefinition:
        """
        Apply a partial update to a stored form.

        The merged definition is validated before the store is touched.

        Args:
            form_id: Form id
            updates: Columns to change (name, description, table_name, is_system, fields)

        Returns:
            The stored definition

        Raises:
            SchemaIntegrityError: If the form is missing, the system flag is
                being cleared, the merged fields are inconsistent, or a system
                or data-holding field would be dropped or rebound
        """
        existing = await self.get_form(form_id)
        if existing is None:
            raise SchemaIntegrityError(f"Form '{form_id}' does not exist")

        if existing.is_system and updates.get("is_system") is False:
            raise SchemaIntegrityError(
                f"Form '{existing.name}' is a system form and must stay one", form_name=existing.name
            )

        current = existing.to_record()
        updates = dict(updates)
        if "fields" in updates:
            updates["fields"] = [
                f.to_record() if isinstance(f, FieldSchema) else f for f in updates["fields"]
            ]
        merged = FormDefinition.from_record({**current, **updates, "id": form_id})
        rebound = existing.rebound_fields(merged.fields)
        if rebound:
            checked = {
                f.id: f for f in await self.check_fields_with_data(existing.table_name, rebound)
            }
            existing.fields = [checked.get(f.id, f) for f in existing.fields]
        existing.ensure_replaceable_by(merged.fields)

        diff = DeepDiff(current.get("fields", []), merged.to_record()["fields"], ignore_order=True)
        if diff:
            logger.info(f"Field changes for form '{merged.name}': {sorted(diff.keys())}")

        patch = merged.to_record(include_id=False)
        row = await self.store.update(self.forms_table, form_id, patch)
        return FormDefinition.from_record(row)

    async def delete_form(self, form_id: str) -> bool:
        """
        Delete a form definition.

        Raises:
            SchemaIntegrityError: If the form is a system form
        """
        existing = await self.get_form(form_id)
        if existing is None:
            logger.warning(f"Form {form_id} not found for deletion")
            return False

        existing.ensure_deletable()
        await self.store.delete(self.forms_table, form_id)
        logger.info(f"Deleted form '{existing.name}'")
        return True

    async def ensure_defaults(self) -> List[FormDefinition]:
        """
        Seed the built-in forms.

        Uses an upsert on the unique form name that ignores existing rows,
        so it is safe to call on every start.

        Returns:
            Forms created by this call
        """
        records = [form.to_record(include_id=False) for form in get_default_forms()]
        rows = await self.store.upsert(self.forms_table, records, on_conflict="name", ignore_duplicates=True)
        if rows:
            logger.info(f"Seeded {len(rows)} default form(s)")
        return [FormDefinition.from_record(row) for row in rows]

    async def check_table_has_data(self, table_name: str) -> bool:
        return await self.store.count(table_name) > 0

    async def check_field_has_data(self, table_name: str, column: str) -> bool:
        """Whether any row of table_name holds a non-null value in column."""
        try:
            return await self.store.count(table_name, not_null=column) > 0
        except StoreError as e:
            if e.code == UNDEFINED_COLUMN:
                logger.debug(f"Column {table_name}.{column} does not exist yet")
                return False
            raise

    async def check_fields_with_data(self, table_name: str, fields: List[FieldSchema]) -> List[FieldSchema]:
        """Copies of fields with has_data refreshed from the store."""
        updated = []
        for field in fields:
            has_data = await self.check_field_has_data(table_name, field.db_field)
            updated.append(field.model_copy(update={"has_data": has_data}))
        return updated

    async def _load_with_data_status(self, form_id: str) -> FormDefinition:
        form = await self._require_form(form_id)
        form.fields = await self.check_fields_with_data(form.table_name, form.fields)
        return form

    async def refresh_field_data_status(self, form_id: str) -> FormDefinition:
        """Re-check every field's has_data flag and persist changes."""
        stored = await self._require_form(form_id)
        refreshed = await self.check_fields_with_data(stored.table_name, stored.fields)

        if [f.has_data for f in refreshed] == [f.has_data for f in stored.fields]:
            return stored
        return await self.update_form(form_id, {"fields": refreshed})

    async def add_field(self, form_id: str, field: FieldSchema) -> FormDefinition:
        form = await self._require_form(form_id)
        form.add_field(field)
        return await self.update_form(form_id, {"fields": form.fields})

    async def update_field(self, form_id: str, field: FieldSchema) -> FormDefinition:
        form = await self._load_with_data_status(form_id)
        form.update_field(field)
        return await self.update_form(form_id, {"fields": form.fields})

    async def move_field(self, form_id: str, field_id: str, direction: str) -> FormDefinition:
        form = await self._require_form(form_id)
        if not form.move_field(field_id, direction):
            return form
        return await self.update_form(form_id, {"fields": form.fields})

    async def remove_field(self, form_id: str, field_id: str) -> FormDefinition:
        """
        Remove a field after refreshing its has_data flag.

        Raises:
            SchemaIntegrityError: If the field is a system field or holds data;
                nothing is written in that case
        """
        form = await self._load_with_data_status(form_id)
        form.remove_field(field_id)
        return await self.update_form(form_id, {"fields": form.fields})

    async def _require_form(self, form_id: str) -> FormDefinition:
        form = await self.get_form(form_id)
        if form is None:
            raise SchemaIntegrityError(f"Form '{form_id}' does not exist")
        return form

    @staticmethod
    def get_available_tables() -> List[Dict[str, str]]:
        return [dict(table) for table in AVAILABLE_TABLES]
