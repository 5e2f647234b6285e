"""
Main Streamlit application for the cabinet admin app.
Dynamic forms over products, components and other cabinet data.
"""

import asyncio
import streamlit as st
import logging

from cabinet_admin.config_loader import load_config, validate_config, get_config_value, get_config_summary
from cabinet_admin.services import AppServices, build_services


def get_logging_level(level_str):
    """Map string logging level to logging constant."""
    level_map = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }
    return level_map.get(str(level_str).upper(), logging.INFO)


config = load_config()

log_level_str = get_config_value(config, 'logging', 'level', 'INFO')
logging.basicConfig(level=get_logging_level(log_level_str))
logger = logging.getLogger(__name__)
logger.info(f"Logging configured to level: {log_level_str}")

page_title = get_config_value(config, 'ui', 'page_title', 'Cabinet Admin')
logger.info(f"Starting app version: {get_config_value(config, 'app', 'version', 'Unknown')}")

st.set_page_config(
    page_title=page_title,
    page_icon="🗄️",
    layout="wide",
    initial_sidebar_state="expanded"
)

PAGE_LABELS = {
    'data_entry': "📝 Data Entry",
    'form_builder': "🛠️ Form Builder",
    'documents': "📁 Documents",
}


@st.cache_resource
def get_services() -> AppServices:
    """Build services once per server process and seed the default forms."""
    services = build_services(config)
    created = asyncio.run(services.forms.ensure_defaults())
    if created:
        logger.info(f"Created default forms: {[form.name for form in created]}")
    return services


def main():
    """Main application entry point."""
    from cabinet_admin.error_handler import ErrorHandler
    from cabinet_admin.session_manager import SessionManager

    SessionManager.initialize()

    if not validate_config(config):
        st.warning("⚠️ **Configuration Issues Detected**")
        st.warning("Some configuration settings are invalid. Check config.yaml and the logs.")

    try:
        services = get_services()
    except Exception as e:
        ErrorHandler.handle_error(e, "application startup", show_details=get_config_value(config, 'app', 'debug', False))
        st.stop()

    render_sidebar()
    render_main_content(services)


def render_sidebar():
    """Render sidebar navigation."""
    from cabinet_admin.session_manager import SessionManager

    with st.sidebar:
        st.header(get_config_value(config, 'ui', 'sidebar_title', 'Navigation'))

        pages = list(PAGE_LABELS)
        current = SessionManager.get_current_page()
        page = st.radio(
            "Page", pages,
            index=pages.index(current) if current in pages else 0,
            format_func=lambda p: PAGE_LABELS[p],
            label_visibility="collapsed"
        )
        SessionManager.set_current_page(page)

        st.divider()

        summary = get_config_summary(config)
        st.caption(f"{summary['app_name']} v{summary['app_version']}")
        st.caption(f"Store: {summary['store_backend']} · Files: {summary['storage_backend']}")

        if get_config_value(config, 'app', 'debug', False):
            with st.expander("Session"):
                st.json(SessionManager.get_session_info())
                for issue in SessionManager.validate_session_state():
                    st.warning(issue)

        if st.button("🔄 Reset Session", help="Discard open forms and start fresh"):
            SessionManager.reset_session()
            st.rerun()


def render_main_content(services: AppServices):
    """Render main content area based on current page."""
    from cabinet_admin.session_manager import SessionManager

    page = SessionManager.get_current_page()

    if page == 'data_entry':
        from cabinet_admin.data_entry_view import DataEntryView
        DataEntryView.render(services)
    elif page == 'form_builder':
        from cabinet_admin.form_builder_view import FormBuilderView
        FormBuilderView.render(services)
    elif page == 'documents':
        from cabinet_admin.documents_view import DocumentsView
        DocumentsView.render(services)
    else:
        st.error(f"Unknown page: {page}")


if __name__ == "__main__":
    main()
