"""
Error handling utilities for the cabinet admin app.
Maps exceptions to user-friendly messages and renders them in Streamlit.
"""

import streamlit as st
import logging
import traceback
from typing import Any, Callable, Dict, List, Optional

import httpx
from pydantic import ValidationError

from .form_exceptions import (
    ConfigurationLoadError,
    FormEngineError,
    FormValidationError,
    SchemaIntegrityError,
    SessionStateError,
    StoreError,
    SubmissionError,
    describe_error,
)

logger = logging.getLogger(__name__)


class ErrorType:
    """Error type constants."""
    VALIDATION = "validation"
    SCHEMA = "schema"
    SUBMISSION = "submission"
    STORE = "store"
    NETWORK = "network"
    SESSION = "session"
    CONFIGURATION = "configuration"
    FILE_SYSTEM = "file_system"
    SYSTEM = "system"


ERROR_MESSAGES: Dict[str, Dict[Any, str]] = {
    ErrorType.VALIDATION: {
        FormValidationError: "⚠️ Please correct the errors in the form.",
        ValidationError: "⚠️ Some values are missing or invalid. Please review your input.",
        "default": "⚠️ Validation error occurred. Please review your input and try again."
    },
    ErrorType.SCHEMA: {
        SchemaIntegrityError: "📋 This change would break the form definition and was not applied.",
        "default": "📋 Form definition error. Please check the form configuration."
    },
    ErrorType.SUBMISSION: {
        SubmissionError: "📤 Failed to submit form data. Please try again.",
        "default": "📤 Failed to submit form data."
    },
    ErrorType.STORE: {
        StoreError: "🗄️ The database rejected the request. Please try again.",
        "default": "🗄️ Database error occurred. Please try again later."
    },
    ErrorType.NETWORK: {
        httpx.TimeoutException: "⏱️ Request timed out. Please try again.",
        httpx.HTTPError: "🌐 Network error occurred. Please check your connection and try again.",
        "default": "🌐 Network error occurred. Please check your connection and try again."
    },
    ErrorType.SESSION: {
        SessionStateError: "🔄 This action is not available right now. Reload the form and try again.",
        "default": "🔄 Session error occurred. Please reload the page."
    },
    ErrorType.CONFIGURATION: {
        ConfigurationLoadError: "⚙️ Configuration could not be loaded. Defaults are in use.",
        "default": "⚙️ Configuration error. Please check config.yaml."
    },
    ErrorType.FILE_SYSTEM: {
        FileNotFoundError: "📁 The requested file could not be found. It may have been moved or deleted.",
        PermissionError: "🔒 Permission denied. Please check file permissions.",
        "default": "📁 A file system error occurred. Please try again."
    },
    ErrorType.SYSTEM: {
        "default": "💻 System error occurred. Please try again or contact support."
    }
}


def classify_error(error: Exception) -> str:
    """Pick the ErrorType that best fits an exception."""
    if isinstance(error, (FormValidationError, ValidationError)):
        return ErrorType.VALIDATION
    if isinstance(error, SchemaIntegrityError):
        return ErrorType.SCHEMA
    if isinstance(error, SubmissionError):
        return ErrorType.SUBMISSION
    if isinstance(error, StoreError):
        return ErrorType.NETWORK if error.code == "network" else ErrorType.STORE
    if isinstance(error, SessionStateError):
        return ErrorType.SESSION
    if isinstance(error, ConfigurationLoadError):
        return ErrorType.CONFIGURATION
    if isinstance(error, httpx.HTTPError):
        return ErrorType.NETWORK
    if isinstance(error, OSError):
        return ErrorType.FILE_SYSTEM
    return ErrorType.SYSTEM


class ErrorHandler:
    """Error reporting for Streamlit pages."""

    @staticmethod
    def handle_error(
        error: Exception,
        context: str,
        error_type: Optional[str] = None,
        user_message: Optional[str] = None,
        show_details: bool = False
    ) -> str:
        """
        Log an error and show a user-friendly message.

        Args:
            error: The exception that occurred
            context: Context where the error occurred
            error_type: Type of error (from ErrorType constants); derived from the error when None
            user_message: Custom user-friendly message
            show_details: Whether to show technical details

        Returns:
            The message shown to the user
        """
        logger.error(f"Error in {context}: {describe_error(error)}", exc_info=True)

        if error_type is None:
            error_type = classify_error(error)

        if not user_message:
            user_message = ErrorHandler._get_user_friendly_message(error, error_type)

        ErrorHandler._display_error(user_message, error, context, show_details)
        return user_message

    @staticmethod
    def _get_user_friendly_message(error: Exception, error_type: str) -> str:
        """Generate user-friendly error messages based on error type."""
        error_type_messages = ERROR_MESSAGES.get(error_type, ERROR_MESSAGES[ErrorType.SYSTEM])

        for exception_type, message in error_type_messages.items():
            if exception_type != "default" and isinstance(error, exception_type):
                return message

        return error_type_messages.get("default", "An unexpected error occurred.")

    @staticmethod
    def get_recovery_suggestions(error: Exception) -> List[str]:
        if isinstance(error, FormEngineError):
            return list(error.recovery_suggestions)
        return []

    @staticmethod
    def _display_error(
        user_message: str,
        error: Exception,
        context: str,
        show_details: bool = False
    ) -> None:
        """Display error message to user with recovery suggestions."""
        st.error(user_message)

        suggestions = ErrorHandler.get_recovery_suggestions(error)
        if suggestions:
            st.markdown("**🔧 Suggested Actions:**")
            for suggestion in suggestions:
                st.markdown(f"- {suggestion}")

        if show_details:
            with st.expander("🔍 Technical Details"):
                st.write(f"**Error Type:** {type(error).__name__}")
                st.write(f"**Context:** {context}")
                st.write(f"**Error Message:** {describe_error(error)}")
                if isinstance(error, FormEngineError) and error.context:
                    st.json(error.context)
                st.code("".join(traceback.format_exception(type(error), error, error.__traceback__)))

    @staticmethod
    def with_error_handling(
        func: Callable[[], Any],
        context: str,
        error_type: Optional[str] = None,
        user_message: Optional[str] = None,
        show_details: bool = False,
        default_return: Any = None
    ) -> Any:
        """
        Run an operation and report any error it raises.

        Args:
            func: Function to execute
            context: Context description
            error_type: Type of error expected
            user_message: Custom user message
            show_details: Show technical details
            default_return: Value to return on error

        Returns:
            Function result or default_return on error
        """
        try:
            return func()
        except (FormEngineError, ValidationError, httpx.HTTPError, OSError) as e:
            ErrorHandler.handle_error(e, context, error_type, user_message, show_details)
            return default_return


def handle_error(error: Exception, context: str, error_type: Optional[str] = None) -> str:
    """Convenience function for error handling."""
    return ErrorHandler.handle_error(error, context, error_type)


def with_error_handling(func: Callable[[], Any], context: str, **kwargs) -> Any:
    """Convenience function for wrapping operations with error handling."""
    return ErrorHandler.with_error_handling(func, context, **kwargs)
