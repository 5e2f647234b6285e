"""
Form builder view for the cabinet admin app.
Create form definitions and add, edit, reorder and remove their fields.
"""

import asyncio
import streamlit as st
import pandas as pd
from typing import Any, Dict, List, Optional
import logging

import httpx
from pydantic import ValidationError

from .error_handler import ErrorHandler, ErrorType
from .field_schema import FieldSchema, FieldType
from .form_definition import FormDefinition, MOVE_DOWN, MOVE_UP
from .form_exceptions import FormEngineError
from .form_service import FormService
from .services import AppServices
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

BUILDER_ERRORS = (FormEngineError, ValidationError, httpx.HTTPError)


def parse_options_text(text: str) -> List[Dict[str, str]]:
    """
    Parse one option per line, as 'value' or 'value: Label'.

    Returns:
        List of {'value', 'label'} dictionaries; blank lines are skipped
    """
    options = []
    for line in (text or "").splitlines():
        line = line.strip()
        if not line:
            continue
        value, _, label = line.partition(':')
        value = value.strip()
        options.append({'value': value, 'label': label.strip() or value})
    return options


def format_options_text(field: FieldSchema) -> str:
    return "\n".join(f"{option.value}: {option.label}" for option in field.options)


def build_field(inputs: Dict[str, Any]) -> FieldSchema:
    """
    Build a FieldSchema from builder inputs.

    Empty strings are treated as unset; options come from 'options_text' and
    the pattern rule from 'pattern' / 'pattern_message'.

    Raises:
        ValidationError: If the inputs do not form a valid field
    """
    data = {k: v for k, v in inputs.items() if v not in ("", None)}
    options_text = data.pop('options_text', "")
    pattern = data.pop('pattern', None)
    pattern_message = data.pop('pattern_message', None)

    if data.get('type') in (FieldType.SELECT, FieldType.RADIO):
        data['options'] = parse_options_text(options_text)

    if pattern:
        data['validation'] = {'pattern': pattern, 'message': pattern_message}

    return FieldSchema.model_validate(data)


def fields_to_dataframe(definition: FormDefinition) -> pd.DataFrame:
    """Overview table of a form's fields in rendering order."""
    rows = [
        {
            'Order': field.order,
            'ID': field.id,
            'Label': field.label,
            'Type': field.type.value,
            'Column': field.db_field,
            'Required': field.required,
            'System': field.is_system,
            'Has Data': field.has_data,
        }
        for field in definition.sorted_fields()
    ]
    return pd.DataFrame(rows, columns=['Order', 'ID', 'Label', 'Type', 'Column', 'Required', 'System', 'Has Data'])


class FormBuilderView:
    """Renders the form builder page."""

    @staticmethod
    def render(services: AppServices):
        st.subheader("🛠️ Form Builder")
        service = services.forms

        try:
            forms = asyncio.run(service.list_forms())
        except BUILDER_ERRORS as e:
            ErrorHandler.handle_error(e, "loading forms")
            return

        FormBuilderView._render_create_form(service)

        if not forms:
            st.info("No forms yet")
            return

        definition = FormBuilderView._render_form_picker(forms)
        if definition is None:
            return

        FormBuilderView._render_form_details(service, definition)
        st.divider()
        FormBuilderView._render_fields(service, definition)
        st.divider()
        FormBuilderView._render_add_field(service, definition)

    @staticmethod
    def _run(operation, context: str) -> Optional[Any]:
        try:
            return asyncio.run(operation)
        except BUILDER_ERRORS as e:
            ErrorHandler.handle_error(e, context)
            return None

    @staticmethod
    def _render_create_form(service: FormService):
        with st.expander("➕ New form"):
            tables = FormService.get_available_tables()
            name = st.text_input("Name", key="new_form_name")
            description = st.text_area("Description", key="new_form_description")
            table = st.selectbox(
                "Table", [t['value'] for t in tables],
                format_func=lambda v: next(t['label'] for t in tables if t['value'] == v),
                key="new_form_table"
            )
            if st.button("Create form", key="create_form"):
                try:
                    definition = FormDefinition(name=name, description=description or None, table_name=table)
                except ValidationError as e:
                    ErrorHandler.handle_error(e, "creating form", ErrorType.VALIDATION,
                                              user_message="Please enter a form name.")
                    return
                created = FormBuilderView._run(service.create_form(definition), "creating form")
                if created is not None:
                    SessionManager.set_builder_form_id(created.id)
                    st.rerun()

    @staticmethod
    def _render_form_picker(forms: List[FormDefinition]) -> Optional[FormDefinition]:
        by_id = {form.id: form for form in forms}
        ids = list(by_id)
        selected = SessionManager.get_builder_form_id()
        index = ids.index(selected) if selected in by_id else 0

        form_id = st.selectbox(
            "Form", ids, index=index,
            format_func=lambda fid: f"{'🔒 ' if by_id[fid].is_system else ''}{by_id[fid].name}",
            key="builder_form"
        )
        SessionManager.set_builder_form_id(form_id)
        return by_id.get(form_id)

    @staticmethod
    def _render_form_details(service: FormService, definition: FormDefinition):
        col_name, col_table = st.columns([2, 1])
        with col_name:
            name = st.text_input("Form name", value=definition.name, key=f"form_name_{definition.id}")
        with col_table:
            st.text_input("Table", value=definition.table_name, disabled=True, key=f"form_table_{definition.id}")
        description = st.text_area("Description", value=definition.description or "",
                                   key=f"form_description_{definition.id}")

        col_save, col_delete = st.columns(2)
        with col_save:
            if st.button("💾 Save details", key=f"save_form_{definition.id}"):
                updates = {'name': name, 'description': description or None}
                if FormBuilderView._run(service.update_form(definition.id, updates), "saving form") is not None:
                    st.success("Form saved")
                    st.rerun()
        with col_delete:
            if st.button("🗑️ Delete form", disabled=definition.is_system, key=f"delete_form_{definition.id}",
                         help="System forms cannot be deleted" if definition.is_system else None):
                if FormBuilderView._run(service.delete_form(definition.id), "deleting form"):
                    SessionManager.set_builder_form_id(None)
                    st.rerun()

    @staticmethod
    def _render_fields(service: FormService, definition: FormDefinition):
        st.markdown("**Fields**")
        if not definition.fields:
            st.caption("This form has no fields yet")
            return

        st.dataframe(fields_to_dataframe(definition), use_container_width=True, hide_index=True)

        if st.button("🔍 Refresh data status", key=f"refresh_{definition.id}"):
            if FormBuilderView._run(service.refresh_field_data_status(definition.id), "checking field data"):
                st.rerun()

        for field in definition.sorted_fields():
            with st.expander(f"{field.order}. {field.label} ({field.type.value})"):
                FormBuilderView._render_field_actions(service, definition, field)
                FormBuilderView._render_field_editor(service, definition, field)

    @staticmethod
    def _render_field_actions(service: FormService, definition: FormDefinition, field: FieldSchema):
        col_up, col_down, col_remove = st.columns(3)
        key = f"{definition.id}_{field.id}"

        with col_up:
            if st.button("⬆️ Up", key=f"up_{key}"):
                if FormBuilderView._run(service.move_field(definition.id, field.id, MOVE_UP), "moving field"):
                    st.rerun()
        with col_down:
            if st.button("⬇️ Down", key=f"down_{key}"):
                if FormBuilderView._run(service.move_field(definition.id, field.id, MOVE_DOWN), "moving field"):
                    st.rerun()
        with col_remove:
            locked = field.is_system or field.has_data
            if st.button("🗑️ Remove", key=f"remove_{key}", disabled=field.is_system,
                         help="Fields that are system fields or hold data cannot be removed" if locked else None):
                if FormBuilderView._run(service.remove_field(definition.id, field.id), "removing field"):
                    st.rerun()

    @staticmethod
    def _render_field_inputs(prefix: str, field: Optional[FieldSchema] = None) -> Dict[str, Any]:
        """Widgets for the editable field attributes; returns the raw inputs."""
        types = [t.value for t in FieldType]
        locked = field is not None and field.has_data

        inputs: Dict[str, Any] = {}
        inputs['id'] = st.text_input("Field ID", value=field.id if field else "", key=f"{prefix}_id",
                                     disabled=field is not None)
        inputs['label'] = st.text_input("Label", value=field.label if field else "", key=f"{prefix}_label")
        inputs['type'] = st.selectbox("Type", types, index=types.index(field.type.value) if field else 0,
                                      key=f"{prefix}_type", disabled=locked)
        inputs['dbField'] = st.text_input("Column", value=field.db_field if field else "", key=f"{prefix}_db",
                                          disabled=locked, help="Defaults to the field ID")
        inputs['placeholder'] = st.text_input("Placeholder", value=(field.placeholder or "") if field else "",
                                              key=f"{prefix}_placeholder")
        inputs['helpText'] = st.text_input("Help text", value=(field.help_text or "") if field else "",
                                           key=f"{prefix}_help")
        inputs['required'] = st.checkbox("Required", value=field.required if field else False,
                                         key=f"{prefix}_required")

        if inputs['type'] in (FieldType.SELECT.value, FieldType.RADIO.value):
            inputs['options_text'] = st.text_area(
                "Options (one per line, value: Label)", value=format_options_text(field) if field else "",
                key=f"{prefix}_options"
            )
        elif inputs['type'] == FieldType.NUMBER.value:
            col_min, col_max, col_step = st.columns(3)
            with col_min:
                inputs['min'] = st.number_input("Min", value=field.min if field else None, key=f"{prefix}_min")
            with col_max:
                inputs['max'] = st.number_input("Max", value=field.max if field else None, key=f"{prefix}_max")
            with col_step:
                inputs['step'] = st.number_input("Step", value=field.step if field else None, key=f"{prefix}_step")
        elif inputs['type'] == FieldType.FILE.value:
            inputs['accept'] = st.text_input("Accepted types", value=(field.accept or "") if field else "",
                                             key=f"{prefix}_accept", help="e.g. .pdf,.png")
            inputs['multiple'] = st.checkbox("Multiple files", value=field.multiple if field else False,
                                             key=f"{prefix}_multiple")

        rule = field.validation if field else None
        inputs['pattern'] = st.text_input("Pattern (regex)", value=(rule.pattern or "") if rule else "",
                                          key=f"{prefix}_pattern")
        inputs['pattern_message'] = st.text_input("Pattern message", value=(rule.message or "") if rule else "",
                                                  key=f"{prefix}_pattern_message")
        return inputs

    @staticmethod
    def _render_field_editor(service: FormService, definition: FormDefinition, field: FieldSchema):
        prefix = f"edit_{definition.id}_{field.id}"
        inputs = FormBuilderView._render_field_inputs(prefix, field)

        if st.button("💾 Save field", key=f"{prefix}_save"):
            try:
                updated = build_field({**inputs, 'order': field.order})
            except ValidationError as e:
                ErrorHandler.handle_error(e, f"editing field {field.id}", ErrorType.VALIDATION)
                return
            if FormBuilderView._run(service.update_field(definition.id, updated), "saving field"):
                st.rerun()

    @staticmethod
    def _render_add_field(service: FormService, definition: FormDefinition):
        with st.expander("➕ Add field"):
            prefix = f"add_{definition.id}"
            inputs = FormBuilderView._render_field_inputs(prefix)

            if st.button("Add field", key=f"{prefix}_submit"):
                try:
                    field = build_field(inputs)
                except ValidationError as e:
                    ErrorHandler.handle_error(e, "adding field", ErrorType.VALIDATION)
                    return
                if FormBuilderView._run(service.add_field(definition.id, field), "adding field"):
                    st.rerun()
