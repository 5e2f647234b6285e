"""
Form engine for dynamic forms.

One FormEngine drives one editing session:

    IDLE -> EDITING -> VALIDATING -> INVALID -> EDITING ...
                                  -> SUBMITTING -> SUBMITTED
                                                -> SUBMIT_FAILED -> EDITING ...

INVALID and SUBMIT_FAILED accept edits and go back to EDITING on the next
one. Edits made while SUBMITTING are kept in the value store without
touching the payload already in flight. A second submit while SUBMITTING
is ignored.
"""

import logging
from dataclasses import dataclass, field as dataclass_field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence

from .form_definition import FormDefinition
from .form_exceptions import FormEngineError, FormValidationError, SessionStateError
from .submission_handler import SubmissionAdapter
from .validator import ensure_valid, validate_field
from .value_store import ValueStore

logger = logging.getLogger(__name__)

SUBMIT_SUCCESS_MESSAGE = "Form submitted successfully"
SUBMIT_FAILED_MESSAGE = "Failed to submit form data"
VALIDATION_FAILED_MESSAGE = "Please correct the errors in the form"


class FormState(str, Enum):
    """Editing session states."""
    IDLE = "idle"
    EDITING = "editing"
    VALIDATING = "validating"
    INVALID = "invalid"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"
    SUBMIT_FAILED = "submit_failed"
    CANCELLED = "cancelled"


EDITABLE_STATES = {FormState.EDITING, FormState.INVALID, FormState.SUBMIT_FAILED, FormState.SUBMITTING}
SUBMITTABLE_STATES = {FormState.EDITING, FormState.INVALID, FormState.SUBMIT_FAILED}
CLOSED_STATES = {FormState.SUBMITTED, FormState.CANCELLED}


@dataclass
class SubmissionResult:
    """Outcome of a submit attempt, as shown to the user."""

    success: bool
    message: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    errors: Dict[str, str] = dataclass_field(default_factory=dict)


class FormEngine:
    """Runs one form editing session against a submission adapter."""

    def __init__(self, definition: FormDefinition, adapter: SubmissionAdapter,
                 validate_on_change: bool = True):
        self.definition = definition
        self.adapter = adapter
        self.validate_on_change = validate_on_change
        self.store = ValueStore()
        self.record_id: Optional[str] = None
        self.result: Optional[Dict[str, Any]] = None
        self.submit_error: Optional[str] = None
        self._errors: Dict[str, str] = {}
        self._state = FormState.IDLE

    @property
    def state(self) -> FormState:
        return self._state

    @property
    def values(self) -> Dict[str, Any]:
        return self.store.values

    @property
    def errors(self) -> Dict[str, str]:
        return dict(self._errors)

    @property
    def is_submitting(self) -> bool:
        return self._state == FormState.SUBMITTING

    @property
    def is_closed(self) -> bool:
        return self._state in CLOSED_STATES

    def start(self, initial_values: Optional[Mapping[str, Any]] = None,
              record_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Enter EDITING with a freshly seeded value store.

        Args:
            initial_values: Existing record values keyed by field id
            record_id: Id of the record being edited; None creates a new record

        Returns:
            The seeded values
        """
        if self._state != FormState.IDLE:
            raise SessionStateError("start the session", self._state.value)

        self.record_id = record_id
        values = self.store.initialize(self.definition.sorted_fields(), initial_values)
        self._errors = {}
        self._state = FormState.EDITING
        logger.info(f"Started session for form '{self.definition.name}'"
                    f"{f' editing record {record_id}' if record_id else ''}")
        return values

    def _ensure_editable(self, operation: str) -> None:
        if self._state not in EDITABLE_STATES:
            raise SessionStateError(operation, self._state.value)

    def _after_edit(self, field_id: str) -> None:
        if self._state in (FormState.INVALID, FormState.SUBMIT_FAILED):
            self._state = FormState.EDITING
        if self.validate_on_change:
            self.revalidate_field(field_id)

    def set_value(self, field_id: str, value: Any) -> None:
        """Record a user edit."""
        self._ensure_editable("edit a field")
        self.store.set(field_id, value)
        self._after_edit(field_id)

    def set_file(self, field_id: str, files: Optional[Sequence[Any]]) -> None:
        """Record a file selection."""
        self._ensure_editable("select a file")
        self.store.set_file(field_id, files)
        self._after_edit(field_id)

    def revalidate_field(self, field_id: str) -> Optional[str]:
        """Recompute one field's error without touching the others."""
        field = self.definition.get_field(field_id)
        if field is None:
            return None
        error = validate_field(field, self.store.get(field_id))
        if error:
            self._errors[field_id] = error
        else:
            self._errors.pop(field_id, None)
        return error

    def visible_errors(self) -> Dict[str, str]:
        """Errors of touched fields only."""
        return {fid: msg for fid, msg in self._errors.items() if self.store.is_touched(fid)}

    def build_payload(self) -> Dict[str, Any]:
        """Map current values to backing-table columns."""
        payload = {}
        for field in self.definition.sorted_fields():
            if self.store.has(field.id):
                payload[field.db_field] = self.store.get(field.id)
        return payload

    async def submit(self) -> Optional[SubmissionResult]:
        """
        Validate the whole form and, if it passes, hand the payload to the adapter.

        Returns:
            SubmissionResult, or None when a submission is already in flight
        """
        if self._state == FormState.SUBMITTING:
            logger.info(f"Ignoring submit for '{self.definition.name}': submission already in flight")
            return None
        if self._state not in SUBMITTABLE_STATES:
            raise SessionStateError("submit", self._state.value)

        self._state = FormState.VALIDATING
        self.submit_error = None
        self.store.mark_all_touched()
        try:
            ensure_valid(self.definition, self.store.values)
        except FormValidationError as e:
            self._errors = dict(e.errors)
            self._state = FormState.INVALID
            logger.warning(f"Validation failed for form '{self.definition.name}': {e}")
            return SubmissionResult(False, VALIDATION_FAILED_MESSAGE, errors=dict(e.errors))
        self._errors = {}

        payload = self.build_payload()
        self._state = FormState.SUBMITTING

        try:
            record = await self.adapter.submit(self.definition.table_name, payload, self.record_id)
        except FormEngineError as e:
            logger.error(f"Submission failed for form '{self.definition.name}': {e}")
            self.submit_error = SUBMIT_FAILED_MESSAGE
            self._state = FormState.SUBMIT_FAILED
            return SubmissionResult(False, SUBMIT_FAILED_MESSAGE)
        except Exception:
            self.submit_error = SUBMIT_FAILED_MESSAGE
            self._state = FormState.SUBMIT_FAILED
            raise

        self.result = record
        self._state = FormState.SUBMITTED
        logger.info(f"Form '{self.definition.name}' submitted to {self.definition.table_name}")
        return SubmissionResult(True, SUBMIT_SUCCESS_MESSAGE, data=record)

    def cancel(self) -> bool:
        """
        End the session without submitting.

        Returns:
            False if a submission is in flight, which cannot be cancelled
        """
        if self._state == FormState.SUBMITTING:
            logger.warning(f"Cannot cancel form '{self.definition.name}' while submitting")
            return False
        self._state = FormState.CANCELLED
        return True
