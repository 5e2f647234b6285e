"""
Custom exception classes for the form engine and its store boundaries.

This module provides specialized exception classes for the different kinds
of form failures. None of them derive from ValueError, so raising one inside
a pydantic validator propagates it unchanged instead of wrapping it.
"""

import logging
from typing import Optional, Dict, Any, List
from pathlib import Path

logger = logging.getLogger(__name__)


class FormEngineError(Exception):
    """
    Base exception for form engine errors.

    Attributes:
        message: Error message
        context: Additional context information
        recovery_suggestions: List of suggested recovery actions
    """

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None,
                 recovery_suggestions: Optional[List[str]] = None):
        self.message = message
        self.context = context or {}
        self.recovery_suggestions = recovery_suggestions or []
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message

    def get_full_details(self) -> Dict[str, Any]:
        """Get complete error details including context and suggestions."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'context': self.context,
            'recovery_suggestions': self.recovery_suggestions
        }


class FormValidationError(FormEngineError):
    """
    Raised when one or more fields fail validation.

    Carries the complete field id -> message map.
    """

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)

        if message is None:
            message = f"{len(self.errors)} field(s) failed validation"

        context = {'fields': sorted(self.errors)}
        recovery_suggestions = [
            "Correct the highlighted fields and submit again"
        ]

        super().__init__(message, context, recovery_suggestions)


class SchemaIntegrityError(FormEngineError):
    """
    Raised when a form definition change would break the schema.

    Examples are deleting a system field or form, duplicate field ids, and
    destructive edits to columns that already hold data.
    """

    def __init__(self, message: str, form_name: Optional[str] = None,
                 field_id: Optional[str] = None):
        self.form_name = form_name
        self.field_id = field_id

        context = {}
        if form_name is not None:
            context['form_name'] = form_name
        if field_id is not None:
            context['field_id'] = field_id

        super().__init__(message, context, [
            "Leave system fields and forms in place",
            "Clear the column data before changing or removing the field"
        ])


class SessionStateError(FormEngineError):
    """Raised when an operation is not allowed in the current session state."""

    def __init__(self, operation: str, state: str):
        self.operation = operation
        self.state = state
        super().__init__(
            f"Cannot {operation} while the form session is {state}",
            {'operation': operation, 'state': state}
        )


class StoreError(FormEngineError):
    """
    Raised by the CRUD and blob store boundaries.

    Mirrors the error body of the hosted database service: a code, a
    message, and an optional hint and details.
    """

    def __init__(self, message: str, code: Optional[str] = None,
                 hint: Optional[str] = None, details: Optional[str] = None,
                 status: Optional[int] = None):
        self.code = code
        self.hint = hint
        self.details = details
        self.status = status

        context = {
            'code': code,
            'hint': hint,
            'details': details,
            'status': status
        }

        suggestions = [hint] if hint else []
        super().__init__(message, context, suggestions)

    def __str__(self) -> str:
        if self.code:
            return f"{self.message} (Code: {self.code})"
        return self.message


class SubmissionError(FormEngineError):
    """
    Raised when the submission adapter cannot persist a payload.

    The store's own failure is kept on `original_error`.
    """

    def __init__(self, table_name: str, original_error: Optional[Exception] = None,
                 message: Optional[str] = None):
        self.table_name = table_name
        self.original_error = original_error

        if message is None:
            if original_error is not None:
                message = f"Failed to submit to {table_name}: {original_error}"
            else:
                message = f"Failed to submit to {table_name}"

        context = {'table_name': table_name}
        if original_error is not None:
            context['original_error_type'] = type(original_error).__name__
            context['original_error_message'] = str(original_error)

        super().__init__(message, context, [
            "Check the connection to the database service",
            "Submit the form again"
        ])


class ConfigurationLoadError(FormEngineError):
    """
    Exception raised when configuration file loading fails.

    This includes YAML parsing errors, permission issues, etc.
    """

    def __init__(self, config_path: Path, original_error: Exception,
                 message: Optional[str] = None):
        self.config_path = config_path
        self.original_error = original_error

        if message is None:
            message = f"Failed to load configuration from {config_path}: {str(original_error)}"

        context = {
            'config_path': str(config_path),
            'original_error_type': type(original_error).__name__,
            'original_error_message': str(original_error)
        }

        recovery_suggestions = [
            "Check if config.yaml exists and is readable",
            "Verify YAML syntax is correct",
            "Application will use default configuration as fallback"
        ]

        super().__init__(message, context, recovery_suggestions)


def describe_error(error: Exception) -> str:
    """
    Extract a display message from any error raised by the form engine.

    Args:
        error: The exception to describe

    Returns:
        Message string, never empty
    """
    if isinstance(error, FormEngineError):
        return error.message or error.__class__.__name__
    message = str(error)
    if message:
        return message
    logger.debug(f"Error {type(error).__name__} has no message")
    return "An unexpected error occurred"
