"""
Session state management for the cabinet admin Streamlit app.
Keeps one FormEngine per open form so edits survive Streamlit reruns.
"""

import streamlit as st
from typing import Any, Dict, List, Optional
from datetime import datetime
import logging

from .form_engine import FormEngine, SubmissionResult

logger = logging.getLogger(__name__)

DEFAULT_PAGE = "data_entry"
PAGES = ("data_entry", "form_builder", "documents")


class SessionManager:
    """Manages Streamlit session state for the cabinet admin app."""

    @staticmethod
    def initialize():
        """Initialize session state keys that are not set yet."""
        defaults = {
            'current_page': DEFAULT_PAGE,
            'selected_form_id': None,
            'record_id': None,
            'engines': {},
            'last_result': None,
            'builder_form_id': None,
            'last_activity': datetime.now(),
            'session_id': None
        }

        for key, default_value in defaults.items():
            if key not in st.session_state:
                st.session_state[key] = default_value

        if not st.session_state['session_id']:
            st.session_state['session_id'] = f"session_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
            logger.info(f"Session initialized: {st.session_state['session_id']}")

    @staticmethod
    def get_current_page() -> str:
        return st.session_state.get('current_page', DEFAULT_PAGE)

    @staticmethod
    def set_current_page(page: str):
        """Set the current page; unknown pages fall back to the default."""
        if page not in PAGES:
            logger.warning(f"Unknown page '{page}', using {DEFAULT_PAGE}")
            page = DEFAULT_PAGE

        old_page = st.session_state.get('current_page')
        if old_page != page:
            logger.info(f"Page transition: {old_page} -> {page}")
            st.session_state['current_page'] = page
            SessionManager.update_activity()

    @staticmethod
    def get_selected_form_id() -> Optional[str]:
        return st.session_state.get('selected_form_id')

    @staticmethod
    def set_selected_form(form_id: Optional[str], record_id: Optional[str] = None):
        """
        Select the form (and optionally the record) to edit.

        Switching to a different form or record drops the previous engine.
        """
        old_form = st.session_state.get('selected_form_id')
        old_record = st.session_state.get('record_id')

        if old_form == form_id and old_record == record_id:
            return

        logger.info(f"Form changed: {old_form} -> {form_id}"
                    f"{f' (record {record_id})' if record_id else ''}")
        if old_form:
            SessionManager.clear_engine(old_form)

        st.session_state['selected_form_id'] = form_id
        st.session_state['record_id'] = record_id
        st.session_state['last_result'] = None
        SessionManager.update_activity()

    @staticmethod
    def get_record_id() -> Optional[str]:
        return st.session_state.get('record_id')

    @staticmethod
    def get_engine(form_id: str) -> Optional[FormEngine]:
        return st.session_state.get('engines', {}).get(form_id)

    @staticmethod
    def set_engine(form_id: str, engine: FormEngine):
        if 'engines' not in st.session_state:
            st.session_state['engines'] = {}
        st.session_state['engines'][form_id] = engine

    @staticmethod
    def clear_engine(form_id: str) -> bool:
        """Drop the engine for form_id, unless it is submitting."""
        engines = st.session_state.get('engines', {})
        engine = engines.get(form_id)
        if engine is None:
            return True
        if engine.is_submitting:
            logger.warning(f"Keeping engine for form {form_id}: submission in flight")
            return False
        del engines[form_id]
        return True

    @staticmethod
    def get_last_result() -> Optional[SubmissionResult]:
        return st.session_state.get('last_result')

    @staticmethod
    def set_last_result(result: Optional[SubmissionResult]):
        st.session_state['last_result'] = result

    @staticmethod
    def get_builder_form_id() -> Optional[str]:
        return st.session_state.get('builder_form_id')

    @staticmethod
    def set_builder_form_id(form_id: Optional[str]):
        st.session_state['builder_form_id'] = form_id

    @staticmethod
    def update_activity():
        st.session_state['last_activity'] = datetime.now()

    @staticmethod
    def get_last_activity() -> datetime:
        return st.session_state.get('last_activity', datetime.now())

    @staticmethod
    def get_session_id() -> str:
        return st.session_state.get('session_id') or 'unknown'

    @staticmethod
    def reset_session():
        """Reset the entire session state, keeping the current page."""
        logger.info(f"Resetting session: {SessionManager.get_session_id()}")
        page = SessionManager.get_current_page()

        for key in list(st.session_state.keys()):
            del st.session_state[key]

        SessionManager.initialize()
        st.session_state['current_page'] = page

    @staticmethod
    def get_session_info() -> Dict[str, Any]:
        """Get session information for debugging."""
        engines = st.session_state.get('engines', {})
        return {
            'session_id': SessionManager.get_session_id(),
            'current_page': SessionManager.get_current_page(),
            'selected_form_id': SessionManager.get_selected_form_id(),
            'record_id': SessionManager.get_record_id(),
            'open_forms': sorted(engines),
            'engine_states': {form_id: engine.state.value for form_id, engine in engines.items()},
            'last_activity': SessionManager.get_last_activity().isoformat()
        }

    @staticmethod
    def validate_session_state() -> List[str]:
        """Return inconsistencies in the current session state."""
        issues = []

        if st.session_state.get('record_id') and not st.session_state.get('selected_form_id'):
            issues.append("Record selected but no form selected")

        for form_id, engine in st.session_state.get('engines', {}).items():
            if engine.definition.id and engine.definition.id != form_id:
                issues.append(f"Engine stored under {form_id} belongs to form {engine.definition.id}")

        return issues
