"""
Unit tests for the page helpers of the data entry, form builder and documents views.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError

import cabinet_admin.data_entry_view as data_entry_view
import cabinet_admin.form_generator as form_generator
import cabinet_admin.session_manager as session_manager
from cabinet_admin.data_entry_view import DataEntryView, record_label, records_to_dataframe
from cabinet_admin.document_service import Document
from cabinet_admin.documents_view import build_document_updates, documents_to_dataframe, parse_tags
from cabinet_admin.field_schema import FieldType
from cabinet_admin.form_builder_view import (
    build_field,
    fields_to_dataframe,
    format_options_text,
    parse_options_text,
)
from cabinet_admin.form_definition import FormDefinition
from cabinet_admin.form_engine import FormEngine
from cabinet_admin.form_generator import FormGenerator, widget_key
from cabinet_admin.session_manager import SessionManager


def _component_form():
    return FormDefinition.model_validate({
        "id": "form-1",
        "name": "Component Form",
        "table_name": "components",
        "fields": [
            {"id": "component_cost", "label": "Cost", "type": "number", "dbField": "cost", "order": 1},
            {"id": "component_name", "label": "Name", "dbField": "name", "order": 0, "isSystem": True},
        ],
    })


@pytest.fixture
def mock_st(monkeypatch):
    state = {}
    st = SimpleNamespace(session_state=state, rerun=MagicMock())
    for module in (data_entry_view, form_generator, session_manager):
        monkeypatch.setattr(module, "st", st)
    return st


def _services():
    adapter = MagicMock()
    adapter.submit = AsyncMock(return_value={"id": "row-1"})
    return SimpleNamespace(create_engine=lambda definition: FormEngine(definition, adapter))


class TestDataEntryEngine:
    """Test cases for switching the record being edited."""

    def test_switching_record_reseeds_widgets(self, mock_st):
        form = _component_form()
        services = _services()
        hinge = {"id": "r1", "name": "Hinge", "cost": 2.5}
        handle = {"id": "r2", "name": "Handle", "cost": 4.0}
        name_field = form.get_field("component_name")

        with patch.object(FormGenerator, "render_form", return_value=None):
            SessionManager.set_selected_form(form.id, "r1")
            DataEntryView._render_engine(services, form, hinge)
            first = SessionManager.get_engine(form.id)
            key = widget_key(first, "component_name")
            FormGenerator._seed_widget(first, name_field, key)
            assert mock_st.session_state[key] == "Hinge"

            SessionManager.set_selected_form(form.id, "r2")
            DataEntryView._render_engine(services, form, handle)
            second = SessionManager.get_engine(form.id)

        assert second is not first
        assert second.values["component_name"] == "Handle"
        assert key not in mock_st.session_state

        FormGenerator._seed_widget(second, name_field, key)
        assert mock_st.session_state[key] == "Handle"

    def test_existing_engine_keeps_widget_state(self, mock_st):
        form = _component_form()
        services = _services()

        with patch.object(FormGenerator, "render_form", return_value=None):
            DataEntryView._render_engine(services, form, None)
            engine = SessionManager.get_engine(form.id)
            key = widget_key(engine, "component_name")
            mock_st.session_state[key] = "Typed"

            DataEntryView._render_engine(services, form, None)

        assert SessionManager.get_engine(form.id) is engine
        assert mock_st.session_state[key] == "Typed"


class TestDataEntryHelpers:
    """Test cases for data entry table helpers."""

    def test_records_to_dataframe(self):
        rows = [
            {"id": "r1", "name": "Hinge", "cost": 2.5, "created_at": "2024-01-01"},
            {"id": "r2", "name": "Handle"},
        ]

        df = records_to_dataframe(_component_form(), rows)

        assert list(df.columns) == ["ID", "Name", "Cost"]
        assert df.iloc[0]["Name"] == "Hinge"
        assert df["Cost"].isna().iloc[1]

    def test_records_to_dataframe_empty(self):
        df = records_to_dataframe(_component_form(), [])
        assert list(df.columns) == ["ID", "Name", "Cost"]
        assert df.empty

    def test_record_label(self):
        form = _component_form()
        assert record_label(form, {"id": "1234567890", "name": "Hinge"}) == "Hinge (12345678)"
        assert record_label(form, {"id": "r9", "cost": 4}) == "r9"


class TestFormBuilderHelpers:
    """Test cases for form builder input parsing."""

    def test_parse_options_text(self):
        text = "door: Door\nshelf\n\n  panel :  Side panel  \n"
        assert parse_options_text(text) == [
            {"value": "door", "label": "Door"},
            {"value": "shelf", "label": "shelf"},
            {"value": "panel", "label": "Side panel"},
        ]

    def test_parse_options_text_empty(self):
        assert parse_options_text("") == []
        assert parse_options_text(None) == []

    def test_format_options_text(self):
        field = build_field({"id": "kind", "label": "Kind", "type": "select", "options_text": "a: A\nb: B"})
        assert format_options_text(field) == "a: A\nb: B"

    def test_build_text_field(self):
        field = build_field({
            "id": "colour", "label": "Colour", "type": "text", "dbField": "", "placeholder": "",
            "helpText": "Finish colour", "required": True, "pattern": "", "pattern_message": "",
        })

        assert field.db_field == "colour"
        assert field.placeholder is None
        assert field.help_text == "Finish colour"
        assert field.required is True
        assert field.validation is None

    def test_build_select_field(self):
        field = build_field({
            "id": "finish", "label": "Finish", "type": "select", "dbField": "finish_code",
            "options_text": "oak: Oak\nwalnut: Walnut",
        })

        assert field.type == FieldType.SELECT
        assert field.db_field == "finish_code"
        assert field.option_values() == ["oak", "walnut"]

    def test_build_select_without_options(self):
        with pytest.raises(ValidationError):
            build_field({"id": "finish", "label": "Finish", "type": "select", "options_text": ""})

    def test_options_ignored_for_other_types(self):
        field = build_field({"id": "w", "label": "Width", "type": "number", "options_text": "a", "min": 0.0})
        assert field.options == []
        assert field.min == 0.0

    def test_build_field_with_pattern(self):
        field = build_field({
            "id": "sku", "label": "SKU", "type": "text",
            "pattern": r"^[A-Z]+-\d+$", "pattern_message": "Use ABC-123",
        })
        assert field.validation.pattern == r"^[A-Z]+-\d+$"
        assert field.validation.message == "Use ABC-123"

    def test_build_field_with_bad_pattern(self):
        with pytest.raises(ValidationError):
            build_field({"id": "sku", "label": "SKU", "type": "text", "pattern": "[oops"})

    def test_build_field_requires_id(self):
        with pytest.raises(ValidationError):
            build_field({"id": "", "label": "Nameless", "type": "text"})

    def test_fields_to_dataframe(self):
        df = fields_to_dataframe(_component_form())

        assert list(df["ID"]) == ["component_name", "component_cost"]
        assert list(df["Column"]) == ["name", "cost"]
        assert list(df["System"]) == [True, False]
        assert list(df["Type"]) == ["text", "number"]


class TestDocumentsHelpers:
    """Test cases for documents page helpers."""

    def test_parse_tags(self):
        assert parse_tags(" oak, walnut ,,oak, ") == ["oak", "walnut"]
        assert parse_tags("") == []
        assert parse_tags(None) == []

    def test_build_document_updates(self):
        assert build_document_updates("  Fitting guide ", "hinge, ,hinge, oak", "") == {
            "description": "Fitting guide",
            "tags": ["hinge", "oak"],
            "uploaded_by": None,
        }

    def test_build_document_updates_clears_description(self):
        assert build_document_updates("   ", "", "Sam")["description"] is None

    def test_documents_to_dataframe(self):
        documents = [
            Document(
                id="d1", filename="a.pdf", original_filename="Manual.pdf", file_size=2048,
                file_type="application/pdf", category="manual", tags=["hinge", "install"],
                uploaded_at="2024-01-01", last_modified_at="2024-01-01",
            )
        ]

        df = documents_to_dataframe(documents)

        row = df.iloc[0]
        assert row["File"] == "Manual.pdf"
        assert row["Size"] == "2.0 KB"
        assert row["Tags"] == "hinge, install"
        assert row["Uploaded By"] == ""

    def test_documents_to_dataframe_empty(self):
        df = documents_to_dataframe([])
        assert df.empty
        assert "Category" in df.columns
