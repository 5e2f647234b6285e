"""
Data entry view for the cabinet admin app.
Pick a form, optionally an existing record, and fill it in.
"""

import asyncio
import streamlit as st
import pandas as pd
from typing import Any, Dict, List, Optional
import logging

import httpx

from .error_handler import ErrorHandler
from .form_definition import FormDefinition
from .form_exceptions import FormEngineError
from .form_generator import FormGenerator
from .services import AppServices
from .session_manager import SessionManager

logger = logging.getLogger(__name__)

NEW_RECORD = "➕ New record"


def records_to_dataframe(definition: FormDefinition, rows: List[Dict[str, Any]]) -> pd.DataFrame:
    """
    Tabulate table rows with the form's labels as column headers.

    Columns the form does not map are left out; the row id is kept first.
    """
    columns = {'id': 'ID'}
    for field in definition.sorted_fields():
        columns[field.db_field] = field.label

    df = pd.DataFrame(rows, columns=list(columns))
    return df.rename(columns=columns)


def record_label(definition: FormDefinition, row: Dict[str, Any]) -> str:
    """Short label for a record picker, from the first mapped text value."""
    for field in definition.sorted_fields():
        value = row.get(field.db_field)
        if isinstance(value, str) and value:
            return f"{value} ({str(row.get('id', ''))[:8]})"
    return str(row.get('id', ''))


class DataEntryView:
    """Renders the data entry page."""

    @staticmethod
    def render(services: AppServices):
        st.subheader("📝 Data Entry")

        try:
            forms = asyncio.run(services.forms.list_forms())
        except (FormEngineError, httpx.HTTPError) as e:
            ErrorHandler.handle_error(e, "loading forms")
            return

        if not forms:
            st.info("No forms defined yet. Create one in the Form Builder.")
            return

        definition = DataEntryView._render_form_picker(forms)
        if definition is None:
            return

        last_result = SessionManager.get_last_result()
        if last_result is not None and last_result.success:
            st.success(last_result.message)
            SessionManager.set_last_result(None)

        try:
            rows = asyncio.run(services.store.get(definition.table_name, order_by="created_at", descending=True))
        except (FormEngineError, httpx.HTTPError) as e:
            ErrorHandler.handle_error(e, f"loading {definition.table_name} records")
            rows = []

        record = DataEntryView._render_record_picker(definition, rows)
        DataEntryView._render_engine(services, definition, record)

        st.divider()
        DataEntryView._render_records_table(definition, rows)

    @staticmethod
    def _render_form_picker(forms: List[FormDefinition]) -> Optional[FormDefinition]:
        by_id = {form.id: form for form in forms}
        selected = SessionManager.get_selected_form_id()
        ids = list(by_id)
        index = ids.index(selected) if selected in by_id else 0

        form_id = st.selectbox(
            "Form", ids, index=index,
            format_func=lambda fid: f"{by_id[fid].name} → {by_id[fid].table_name}",
            key="data_entry_form"
        )
        if form_id != selected:
            SessionManager.set_selected_form(form_id)
        return by_id.get(form_id)

    @staticmethod
    def _render_record_picker(definition: FormDefinition, rows: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        by_id = {str(row['id']): row for row in rows if row.get('id') is not None}
        choices = [NEW_RECORD] + list(by_id)
        current = SessionManager.get_record_id()
        index = choices.index(current) if current in by_id else 0

        choice = st.selectbox(
            "Record", choices, index=index,
            format_func=lambda c: c if c == NEW_RECORD else record_label(definition, by_id[c]),
            key=f"record_picker_{definition.id}"
        )
        record_id = None if choice == NEW_RECORD else choice
        if record_id != current:
            SessionManager.set_selected_form(definition.id, record_id)
        return by_id.get(record_id) if record_id else None

    @staticmethod
    def _render_engine(services: AppServices, definition: FormDefinition, record: Optional[Dict[str, Any]]):
        engine = SessionManager.get_engine(definition.id)
        if engine is None or engine.is_closed:
            if engine is not None:
                SessionManager.clear_engine(definition.id)
            engine = services.create_engine(definition)
            FormGenerator.clear_widgets(engine)
            initial = definition.values_from_record(record) if record else None
            engine.start(initial, record_id=str(record['id']) if record else None)
            SessionManager.set_engine(definition.id, engine)

        result = FormGenerator.render_form(engine)
        if result is not None and result.success:
            SessionManager.clear_engine(definition.id)
            SessionManager.set_selected_form(definition.id, None)
            SessionManager.set_last_result(result)
            st.rerun()

        if engine.is_closed:
            SessionManager.clear_engine(definition.id)
            st.rerun()

    @staticmethod
    def _render_records_table(definition: FormDefinition, rows: List[Dict[str, Any]]):
        st.markdown(f"**Records in `{definition.table_name}`**")
        if not rows:
            st.caption("No records yet")
            return

        st.dataframe(records_to_dataframe(definition, rows), use_container_width=True, hide_index=True)
