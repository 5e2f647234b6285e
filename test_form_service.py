"""
Unit tests for form definition persistence.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from cabinet_admin.crud_store import InMemoryCrudStore
from cabinet_admin.field_schema import FieldSchema, FieldType
from cabinet_admin.form_definition import FormDefinition, MOVE_UP
from cabinet_admin.form_exceptions import SchemaIntegrityError, StoreError
from cabinet_admin.form_service import FormService


def _service():
    return FormService(InMemoryCrudStore())


def _cabinet_form():
    return FormDefinition(
        name="Cabinet Form",
        table_name="cabinets",
        fields=[
            FieldSchema(id="name", label="Name", required=True, order=0, is_system=True),
            FieldSchema(id="width", label="Width", type="number", order=1),
            FieldSchema(id="notes", label="Notes", type="textarea", order=2),
        ]
    )


def _stored_fields(service, form_id):
    return [f.model_dump() for f in asyncio.run(service.get_form(form_id)).fields]


class TestFormCrud:
    """Test cases for create, read, update and delete."""

    def test_create_and_get(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        assert created.id
        assert created.created_at
        fetched = asyncio.run(service.get_form(created.id))
        assert fetched.field_ids() == ["name", "width", "notes"]
        assert asyncio.run(service.get_form_by_name("Cabinet Form")).id == created.id

    def test_get_missing(self):
        service = _service()
        assert asyncio.run(service.get_form("missing")) is None
        assert asyncio.run(service.get_form_by_name("missing")) is None

    def test_list_forms_sorted_by_name(self):
        service = _service()
        for name in ["Zeta", "Alpha"]:
            asyncio.run(service.create_form(FormDefinition(name=name, table_name="t")))

        assert [f.name for f in asyncio.run(service.list_forms())] == ["Alpha", "Zeta"]

    def test_duplicate_name_is_rejected_by_store(self):
        service = _service()
        asyncio.run(service.create_form(_cabinet_form()))
        with pytest.raises(StoreError):
            asyncio.run(service.create_form(_cabinet_form()))

    def test_update_form(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        updated = asyncio.run(service.update_form(created.id, {"description": "Base cabinets"}))

        assert updated.description == "Base cabinets"
        assert updated.field_ids() == ["name", "width", "notes"]

    def test_update_missing_form(self):
        with pytest.raises(SchemaIntegrityError):
            asyncio.run(_service().update_form("missing", {"name": "x"}))

    def test_update_rejects_duplicate_field_ids_before_writing(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        fields = [{"id": "a", "label": "A"}, {"id": "a", "label": "B"}]

        with patch.object(service.store, "update", new=AsyncMock()) as mock_update:
            with pytest.raises(SchemaIntegrityError):
                asyncio.run(service.update_form(created.id, {"fields": fields}))
            mock_update.assert_not_called()

    def test_update_dropping_system_field_is_rejected_before_writing(self):
        service = _service()
        asyncio.run(service.ensure_defaults())
        product = asyncio.run(service.get_form_by_name("Product Form"))
        fields = [f for f in product.fields if f.id != "product_name"]

        with patch.object(service.store, "update", new=AsyncMock()) as mock_update:
            with pytest.raises(SchemaIntegrityError) as exc_info:
                asyncio.run(service.update_form(product.id, {"fields": fields}))
            mock_update.assert_not_called()
        assert "system field" in str(exc_info.value)

    def test_update_clearing_system_field_flag_is_rejected(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        fields = [f.model_copy(update={"is_system": False}) for f in created.fields]

        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.update_form(created.id, {"fields": fields}))

    def test_update_rebinding_column_with_data_is_rejected(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        asyncio.run(service.store.insert("cabinets", {"width": 600}))
        fields = [
            f.model_copy(update={"db_field": "width_mm"}) if f.id == "width" else f
            for f in created.fields
        ]

        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.update_form(created.id, {"fields": fields}))
        assert asyncio.run(service.get_form(created.id)).get_field("width").db_field == "width"

    def test_update_dropping_field_with_data_is_rejected(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        asyncio.run(service.store.insert("cabinets", {"notes": "fragile"}))
        fields = [f for f in created.fields if f.id != "notes"]

        with pytest.raises(SchemaIntegrityError) as exc_info:
            asyncio.run(service.update_form(created.id, {"fields": fields}))
        assert "has data" in str(exc_info.value)

    def test_update_may_drop_or_retype_empty_fields(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        fields = [
            f.model_copy(update={"type": FieldType.TEXT}) if f.id == "width" else f
            for f in created.fields if f.id != "notes"
        ]

        updated = asyncio.run(service.update_form(created.id, {"fields": fields}))

        assert updated.field_ids() == ["name", "width"]
        assert updated.get_field("width").type == "text"

    def test_system_flag_cannot_be_cleared(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form().model_copy(update={"is_system": True})))

        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.update_form(created.id, {"is_system": False}))

    def test_delete_form(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        assert asyncio.run(service.delete_form(created.id)) is True
        assert asyncio.run(service.get_form(created.id)) is None

    def test_delete_missing_form(self):
        assert asyncio.run(_service().delete_form("missing")) is False

    def test_delete_system_form_is_rejected(self):
        service = _service()
        asyncio.run(service.ensure_defaults())
        product = asyncio.run(service.get_form_by_name("Product Form"))

        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.delete_form(product.id))
        assert asyncio.run(service.get_form(product.id)) is not None

    def test_available_tables(self):
        tables = FormService.get_available_tables()
        assert {"value": "components", "label": "Components"} in tables
        tables.clear()
        assert FormService.get_available_tables()


class TestEnsureDefaults:
    """Test cases for default form seeding."""

    def test_seeds_once(self):
        service = _service()

        first = asyncio.run(service.ensure_defaults())
        second = asyncio.run(service.ensure_defaults())

        assert sorted(f.name for f in first) == ["Component Form", "Product Form"]
        assert second == []
        assert len(asyncio.run(service.list_forms())) == 2

    def test_keeps_operator_changes(self):
        service = _service()
        asyncio.run(service.ensure_defaults())
        product = asyncio.run(service.get_form_by_name("Product Form"))
        asyncio.run(service.update_form(product.id, {"description": "Edited"}))

        asyncio.run(service.ensure_defaults())

        assert asyncio.run(service.get_form(product.id)).description == "Edited"


class TestDataStatus:
    """Test cases for has_data checks."""

    def test_check_table_has_data(self):
        service = _service()
        assert asyncio.run(service.check_table_has_data("cabinets")) is False
        asyncio.run(service.store.insert("cabinets", {"name": "a"}))
        assert asyncio.run(service.check_table_has_data("cabinets")) is True

    def test_check_field_has_data(self):
        service = _service()
        asyncio.run(service.store.insert("cabinets", {"name": "a", "width": None}))

        assert asyncio.run(service.check_field_has_data("cabinets", "name")) is True
        assert asyncio.run(service.check_field_has_data("cabinets", "width")) is False

    def test_missing_column_counts_as_no_data(self):
        service = _service()
        error = StoreError("column cabinets.colour does not exist", code="42703")
        with patch.object(service.store, "count", new=AsyncMock(side_effect=error)):
            assert asyncio.run(service.check_field_has_data("cabinets", "colour")) is False

    def test_other_store_errors_propagate(self):
        service = _service()
        with patch.object(service.store, "count", new=AsyncMock(side_effect=StoreError("down", code="network"))):
            with pytest.raises(StoreError):
                asyncio.run(service.check_field_has_data("cabinets", "name"))

    def test_refresh_field_data_status(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        asyncio.run(service.store.insert("cabinets", {"name": "Base", "width": 600}))

        refreshed = asyncio.run(service.refresh_field_data_status(created.id))

        assert {f.id: f.has_data for f in refreshed.fields} == {"name": True, "width": True, "notes": False}
        stored = asyncio.run(service.get_form(created.id))
        assert stored.get_field("width").has_data is True

    def test_refresh_without_changes_does_not_write(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        with patch.object(service.store, "update", new=AsyncMock()) as mock_update:
            asyncio.run(service.refresh_field_data_status(created.id))
            mock_update.assert_not_called()


class TestFieldOperations:
    """Test cases for field edits through the service."""

    def test_add_field(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        updated = asyncio.run(service.add_field(created.id, FieldSchema(id="depth", label="Depth", type="number")))

        assert updated.get_field("depth").order == 3
        assert asyncio.run(service.get_form(created.id)).get_field("depth") is not None

    def test_add_duplicate_field(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.add_field(created.id, FieldSchema(id="width", label="Width")))

    def test_add_field_to_missing_form(self):
        with pytest.raises(SchemaIntegrityError):
            asyncio.run(_service().add_field("missing", FieldSchema(id="a", label="A")))

    def test_update_field(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        updated = asyncio.run(service.update_field(
            created.id, FieldSchema(id="notes", label="Remarks", type="textarea", order=2)
        ))

        assert updated.get_field("notes").label == "Remarks"

    def test_update_field_column_with_data_is_rejected(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        asyncio.run(service.store.insert("cabinets", {"width": 600}))

        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.update_field(
                created.id, FieldSchema(id="width", label="Width", type="number", dbField="width_mm")
            ))
        assert asyncio.run(service.get_form(created.id)).get_field("width").db_field == "width"

    def test_move_field(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        updated = asyncio.run(service.move_field(created.id, "notes", MOVE_UP))

        assert [f.id for f in updated.sorted_fields()] == ["name", "notes", "width"]

    def test_move_first_field_up_does_not_write(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        with patch.object(service.store, "update", new=AsyncMock()) as mock_update:
            form = asyncio.run(service.move_field(created.id, "name", MOVE_UP))
            mock_update.assert_not_called()
        assert [f.id for f in form.sorted_fields()] == ["name", "width", "notes"]

    def test_remove_field(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))

        updated = asyncio.run(service.remove_field(created.id, "notes"))

        assert updated.field_ids() == ["name", "width"]

    def test_remove_system_field_leaves_store_unchanged(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        before = _stored_fields(service, created.id)

        with pytest.raises(SchemaIntegrityError):
            asyncio.run(service.remove_field(created.id, "name"))

        assert _stored_fields(service, created.id) == before

    def test_remove_field_with_data_leaves_store_unchanged(self):
        service = _service()
        created = asyncio.run(service.create_form(_cabinet_form()))
        asyncio.run(service.store.insert("cabinets", {"notes": "fragile"}))
        before = _stored_fields(service, created.id)

        with pytest.raises(SchemaIntegrityError) as exc_info:
            asyncio.run(service.remove_field(created.id, "notes"))

        assert "has data" in str(exc_info.value)
        assert _stored_fields(service, created.id) == before
