"""
Dynamic form renderer for the cabinet admin app.
Draws a FormEngine's fields as Streamlit widgets and feeds edits back to it.
"""

import asyncio
import streamlit as st
from datetime import datetime, date
from typing import Dict, Any, List, Optional
import logging

from dateutil import parser as date_parser

from .field_schema import FieldSchema, FieldType
from .form_engine import FormEngine, SubmissionResult
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

WIDGET_TYPES = {
    FieldType.TEXT: 'text_input',
    FieldType.EMAIL: 'text_input',
    FieldType.TEL: 'text_input',
    FieldType.PASSWORD: 'text_input',
    FieldType.TEXTAREA: 'text_area',
    FieldType.NUMBER: 'number_input',
    FieldType.SELECT: 'selectbox',
    FieldType.RADIO: 'radio',
    FieldType.CHECKBOX: 'checkbox',
    FieldType.DATE: 'date_input',
    FieldType.FILE: 'file_uploader',
}


def get_streamlit_widget_type(field: FieldSchema) -> str:
    """
    Determine the Streamlit widget for a field.

    Args:
        field: Field schema

    Returns:
        Streamlit widget function name
    """
    return WIDGET_TYPES.get(field.type, 'text_input')


def get_accept_types(accept: Optional[str]) -> Optional[List[str]]:
    """Extensions for st.file_uploader from an accept string like '.pdf,.png'."""
    if not accept:
        return None
    types = []
    for part in accept.split(','):
        part = part.strip()
        if not part or '/' in part:
            continue
        types.append(part.lstrip('.').lower())
    return types or None


def get_widget_kwargs(field: FieldSchema) -> Dict[str, Any]:
    """
    Get keyword arguments for the Streamlit widget of a field.

    The current value is not included; it lives in session state under the
    widget key.

    Args:
        field: Field schema

    Returns:
        Dictionary of widget kwargs
    """
    kwargs: Dict[str, Any] = {
        'label': f"{field.label} *" if field.required else field.label
    }

    if field.help_text:
        kwargs['help'] = field.help_text

    if field.disabled:
        kwargs['disabled'] = True

    if field.type in (FieldType.TEXT, FieldType.EMAIL, FieldType.TEL, FieldType.TEXTAREA, FieldType.PASSWORD):
        if field.placeholder:
            kwargs['placeholder'] = field.placeholder
        if field.type == FieldType.PASSWORD:
            kwargs['type'] = 'password'

    elif field.type == FieldType.NUMBER:
        if field.min is not None:
            kwargs['min_value'] = float(field.min)
        if field.max is not None:
            kwargs['max_value'] = float(field.max)
        kwargs['step'] = float(field.step) if field.step is not None else 1.0
        if field.placeholder:
            kwargs['placeholder'] = field.placeholder

    elif field.type in (FieldType.SELECT, FieldType.RADIO):
        labels = {option.value: option.label for option in field.options}
        kwargs['options'] = field.option_values()
        kwargs['format_func'] = lambda value: labels.get(value, str(value))
        if field.type == FieldType.SELECT and field.placeholder:
            kwargs['placeholder'] = field.placeholder

    elif field.type == FieldType.FILE:
        kwargs['accept_multiple_files'] = field.multiple
        accept_types = get_accept_types(field.accept)
        if accept_types:
            kwargs['type'] = accept_types

    return kwargs


def to_widget_value(field: FieldSchema, value: Any) -> Any:
    """Convert a stored value to what the field's widget expects."""
    if field.type == FieldType.NUMBER:
        if value in (None, ""):
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None

    if field.type == FieldType.DATE:
        if isinstance(value, datetime):
            return value.date()
        if isinstance(value, date):
            return value
        if isinstance(value, str) and value.strip():
            try:
                return date_parser.parse(value).date()
            except (ValueError, OverflowError):
                logger.warning(f"Failed to parse date string '{value}' for {field.id}")
        return None

    if field.type in (FieldType.SELECT, FieldType.RADIO):
        return value if value in field.option_values() else None

    if field.type == FieldType.CHECKBOX:
        return bool(value)

    if value is None:
        return ""
    return value


def from_widget_value(field: FieldSchema, raw: Any) -> Any:
    """Convert a widget's value to the form's value representation."""
    if field.type == FieldType.NUMBER:
        return "" if raw is None else raw

    if field.type == FieldType.DATE:
        if isinstance(raw, date):
            return raw.strftime("%Y-%m-%d")
        return ""

    if field.type in (FieldType.SELECT, FieldType.RADIO):
        return "" if raw is None else raw

    if field.type == FieldType.CHECKBOX:
        return bool(raw)

    return "" if raw is None else raw


def widget_key(engine: FormEngine, field_id: str) -> str:
    form_key = engine.definition.id or engine.definition.name
    return f"field_{form_key}_{field_id}"


class FormGenerator:
    """Renders a form editing session."""

    @staticmethod
    def _on_change(engine: FormEngine, field: FieldSchema, key: str) -> None:
        raw = st.session_state.get(key)
        if field.type == FieldType.FILE:
            files = raw if isinstance(raw, list) else ([raw] if raw is not None else [])
            engine.set_file(field.id, files)
        else:
            engine.set_value(field.id, from_widget_value(field, raw))

    @staticmethod
    def _seed_widget(engine: FormEngine, field: FieldSchema, key: str) -> None:
        if key in st.session_state or field.type == FieldType.FILE:
            return
        st.session_state[key] = to_widget_value(field, engine.store.get(field.id))

    @staticmethod
    def render_field(engine: FormEngine, field: FieldSchema) -> None:
        """Render one field and its error, if the field has been touched."""
        key = widget_key(engine, field.id)
        FormGenerator._seed_widget(engine, field, key)

        kwargs = get_widget_kwargs(field)
        kwargs['key'] = key
        kwargs['on_change'] = FormGenerator._on_change
        kwargs['args'] = (engine, field, key)

        getattr(st, get_streamlit_widget_type(field))(**kwargs)

        error = engine.visible_errors().get(field.id)
        if error:
            st.error(error)

    @staticmethod
    def render_form(engine: FormEngine) -> Optional[SubmissionResult]:
        """
        Render all fields in order plus Submit and Cancel buttons.

        Args:
            engine: A started form engine

        Returns:
            The result of a submit triggered during this run, if any
        """
        definition = engine.definition
        st.subheader(definition.name)
        if definition.description:
            st.caption(definition.description)

        for field in definition.sorted_fields():
            FormGenerator.render_field(engine, field)

        if engine.submit_error:
            st.error(engine.submit_error)

        col_submit, col_cancel = st.columns(2)
        key_prefix = definition.id or definition.name

        with col_submit:
            submitted = st.button(
                "Submitting..." if engine.is_submitting else "Submit",
                type="primary", disabled=engine.is_submitting or engine.is_closed,
                key=f"submit_{key_prefix}"
            )
        with col_cancel:
            cancelled = st.button(
                "Cancel", disabled=engine.is_submitting or engine.is_closed,
                key=f"cancel_{key_prefix}"
            )

        if cancelled and engine.cancel():
            logger.info(f"Cancelled form '{definition.name}'")
            FormGenerator.clear_widgets(engine)
            return None

        if not submitted:
            return None

        result = asyncio.run(engine.submit())
        if result is None:
            return None

        SessionManager.set_last_result(result)
        if result.success:
            st.success(result.message)
            FormGenerator.clear_widgets(engine)
        else:
            st.error(result.message)
        return result

    @staticmethod
    def clear_widgets(engine: FormEngine) -> None:
        """Drop the widget state kept for this engine's form."""
        for field in engine.definition.fields:
            st.session_state.pop(widget_key(engine, field.id), None)
