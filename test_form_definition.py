"""
Unit tests for the form definition model and its field editing operations.
"""

import pytest

from cabinet_admin.default_forms import get_default_forms
from cabinet_admin.field_schema import FieldSchema, FieldType
from cabinet_admin.form_definition import FormDefinition, MOVE_DOWN, MOVE_UP
from cabinet_admin.form_exceptions import SchemaIntegrityError


def _form(**overrides):
    data = {
        "id": "form-1",
        "name": "Cabinet Form",
        "table_name": "cabinets",
        "fields": [
            {"id": "name", "label": "Name", "order": 0, "required": True, "isSystem": True},
            {"id": "width", "label": "Width", "type": "number", "order": 1},
            {"id": "notes", "label": "Notes", "type": "textarea", "order": 2},
        ],
    }
    data.update(overrides)
    return FormDefinition.model_validate(data)


class TestFormDefinitionModel:
    """Test cases for construction and serialization."""

    def test_duplicate_field_ids_are_rejected(self):
        with pytest.raises(SchemaIntegrityError) as exc_info:
            FormDefinition(
                name="Broken", table_name="t",
                fields=[FieldSchema(id="a", label="A"), FieldSchema(id="a", label="Again")]
            )
        assert exc_info.value.field_id == "a"
        assert exc_info.value.form_name == "Broken"

    def test_from_record_defaults(self):
        form = FormDefinition.from_record({
            "id": "f", "name": "Plain", "table_name": "t", "fields": None, "is_system": None,
            "created_at": "2024-01-01T00:00:00+00:00"
        })
        assert form.fields == []
        assert form.is_system is False
        assert form.created_at == "2024-01-01T00:00:00+00:00"

    def test_to_record_excludes_timestamps(self):
        record = _form(created_at="2024-01-01").to_record()

        assert record["id"] == "form-1"
        assert "created_at" not in record
        assert record["fields"][0]["dbField"] == "name"

    def test_to_record_without_id(self):
        assert "id" not in _form().to_record(include_id=False)

    def test_sorted_fields(self):
        form = _form(fields=[
            {"id": "b", "label": "B", "order": 5},
            {"id": "a", "label": "A", "order": 1},
        ])
        assert [f.id for f in form.sorted_fields()] == ["a", "b"]

    def test_values_from_record(self):
        form = _form(fields=[
            {"id": "component_name", "label": "Name", "dbField": "name"},
            {"id": "component_cost", "label": "Cost", "type": "number", "dbField": "cost"},
            {"id": "notes", "label": "Notes"},
        ])
        record = {"id": "r1", "name": "Hinge", "cost": 2.5, "notes": None, "other": "x"}

        assert form.values_from_record(record) == {"component_name": "Hinge", "component_cost": 2.5}

    def test_ensure_deletable(self):
        _form().ensure_deletable()
        with pytest.raises(SchemaIntegrityError):
            _form(is_system=True).ensure_deletable()


class TestAddField:
    """Test cases for add_field."""

    def test_appends_after_last_field(self):
        form = _form()
        stored = form.add_field(FieldSchema(id="depth", label="Depth", type="number", order=0))

        assert stored.order == 3
        assert form.sorted_fields()[-1].id == "depth"

    def test_first_field_gets_order_zero(self):
        form = _form(fields=[])
        assert form.add_field(FieldSchema(id="a", label="A", order=7)).order == 0

    def test_duplicate_id_is_rejected(self):
        form = _form()
        with pytest.raises(SchemaIntegrityError):
            form.add_field(FieldSchema(id="width", label="Width again"))
        assert len(form.fields) == 3


class TestUpdateField:
    """Test cases for update_field."""

    def test_replaces_field(self):
        form = _form()
        form.update_field(FieldSchema(id="notes", label="Remarks", type="textarea", order=2))
        assert form.get_field("notes").label == "Remarks"

    def test_keeps_system_and_data_flags(self):
        form = _form()
        updated = form.update_field(FieldSchema(id="name", label="Title", required=True))

        assert updated.is_system is True
        assert form.get_field("name").label == "Title"

    def test_unknown_field_is_rejected(self):
        with pytest.raises(SchemaIntegrityError):
            _form().update_field(FieldSchema(id="missing", label="Missing"))

    def test_column_change_rejected_when_field_has_data(self):
        form = _form()
        form.fields[1] = form.fields[1].model_copy(update={"has_data": True})

        with pytest.raises(SchemaIntegrityError):
            form.update_field(FieldSchema(id="width", label="Width", type="number", dbField="w"))

    def test_type_change_rejected_when_field_has_data(self):
        form = _form()
        form.fields[1] = form.fields[1].model_copy(update={"has_data": True})

        with pytest.raises(SchemaIntegrityError):
            form.update_field(FieldSchema(id="width", label="Width", type="text"))

    def test_label_change_allowed_when_field_has_data(self):
        form = _form()
        form.fields[1] = form.fields[1].model_copy(update={"has_data": True})

        updated = form.update_field(FieldSchema(id="width", label="Width (mm)", type="number", order=1))
        assert updated.label == "Width (mm)"
        assert updated.has_data is True


class TestMoveField:
    """Test cases for move_field."""

    def test_move_down(self):
        form = _form()
        assert form.move_field("name", MOVE_DOWN) is True
        assert [f.id for f in form.sorted_fields()] == ["width", "name", "notes"]
        assert [f.order for f in form.sorted_fields()] == [0, 1, 2]

    def test_move_up(self):
        form = _form()
        assert form.move_field("notes", MOVE_UP) is True
        assert [f.id for f in form.sorted_fields()] == ["name", "notes", "width"]

    def test_move_past_either_end_is_noop(self):
        form = _form()
        assert form.move_field("name", MOVE_UP) is False
        assert form.move_field("notes", MOVE_DOWN) is False
        assert [f.id for f in form.sorted_fields()] == ["name", "width", "notes"]

    def test_gaps_are_renumbered(self):
        form = _form(fields=[
            {"id": "a", "label": "A", "order": 10},
            {"id": "b", "label": "B", "order": 20},
        ])
        form.move_field("b", MOVE_UP)
        assert [(f.id, f.order) for f in form.sorted_fields()] == [("b", 0), ("a", 1)]

    def test_invalid_direction(self):
        with pytest.raises(ValueError):
            _form().move_field("name", "sideways")

    def test_unknown_field(self):
        with pytest.raises(SchemaIntegrityError):
            _form().move_field("missing", MOVE_UP)


class TestRemoveField:
    """Test cases for remove_field."""

    def test_removes_plain_field(self):
        form = _form()
        removed = form.remove_field("notes")

        assert removed.id == "notes"
        assert form.field_ids() == ["name", "width"]

    def test_system_field_is_rejected_and_definition_unchanged(self):
        form = _form()
        before = form.model_dump()

        with pytest.raises(SchemaIntegrityError) as exc_info:
            form.remove_field("name")

        assert "system field" in str(exc_info.value)
        assert form.model_dump() == before

    def test_field_with_data_is_rejected(self):
        form = _form()
        form.fields[2] = form.fields[2].model_copy(update={"has_data": True})

        with pytest.raises(SchemaIntegrityError) as exc_info:
            form.remove_field("notes")

        assert "has data" in str(exc_info.value)
        assert "notes" in form.field_ids()


class TestReplaceFields:
    """Test cases for rebound_fields and ensure_replaceable_by."""

    def test_rebound_fields(self):
        form = _form()
        fields = [
            form.get_field("name"),
            form.get_field("width").model_copy(update={"db_field": "width_mm"}),
            FieldSchema(id="depth", label="Depth"),
        ]

        assert [f.id for f in form.rebound_fields(fields)] == ["width", "notes"]

    def test_label_only_changes_are_not_rebound(self):
        form = _form()
        fields = [f.model_copy(update={"label": f.label.upper()}) for f in form.fields]
        assert form.rebound_fields(fields) == []

    def test_missing_system_field_is_rejected(self):
        form = _form()
        with pytest.raises(SchemaIntegrityError) as exc_info:
            form.ensure_replaceable_by(form.fields[1:])
        assert exc_info.value.field_id == "name"

    def test_system_field_must_stay_system(self):
        form = _form()
        fields = [f.model_copy(update={"is_system": False}) for f in form.fields]
        with pytest.raises(SchemaIntegrityError):
            form.ensure_replaceable_by(fields)

    def test_field_with_data_cannot_be_dropped_or_retyped(self):
        form = _form()
        form.fields[1] = form.fields[1].model_copy(update={"has_data": True})

        with pytest.raises(SchemaIntegrityError):
            form.ensure_replaceable_by([form.fields[0], form.fields[2]])
        with pytest.raises(SchemaIntegrityError):
            form.ensure_replaceable_by([
                form.fields[0], form.fields[1].model_copy(update={"type": FieldType.TEXT}), form.fields[2]
            ])

    def test_plain_fields_may_be_dropped(self):
        form = _form()
        form.ensure_replaceable_by(form.fields[:2])


class TestDefaultForms:
    """Test cases for the built-in form definitions."""

    def test_default_forms(self):
        forms = get_default_forms()
        assert [f.name for f in forms] == ["Product Form", "Component Form"]
        assert all(f.is_system for f in forms)
        assert all(field.is_system for f in forms for field in f.fields)

    def test_component_type_maps_to_category_column(self):
        component = get_default_forms()[1]
        field = component.get_field("component_type")

        assert field.db_field == "category"
        assert field.option_values() == ["hardware", "door", "shelf", "panel"]

    def test_default_forms_are_fresh_copies(self):
        first = get_default_forms()[0]
        first.fields.clear()
        assert len(get_default_forms()[0].fields) == 3
