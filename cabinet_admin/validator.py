"""
Field and form validation for the dynamic form engine.

Checks run in a fixed order and stop at the first failure:

1. required
2. type-specific check, looked up by field type in TYPE_VALIDATORS
3. validation.pattern
4. validation.custom

Every function here is pure: the same (schema, value) always gives the
same result and nothing is mutated.
"""

import math
import re
import logging
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Union

from dateutil import parser as date_parser

from .field_schema import FieldSchema, FieldType, sort_fields
from .form_definition import FormDefinition
from .form_exceptions import FormValidationError

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
TEL_PATTERN = re.compile(r"^[0-9+\-() ]+$")

MSG_REQUIRED = "{label} is required"
MSG_EMAIL = "Please enter a valid email address"
MSG_NUMBER = "Please enter a valid number"
MSG_MIN = "Value must be at least {min}"
MSG_MAX = "Value must be at most {max}"
MSG_TEL = "Please enter a valid phone number"
MSG_DATE = "Please enter a valid date"
MSG_OPTION = "Please select a valid option"
MSG_PATTERN = "Invalid format for {label}"
MSG_CUSTOM = "Invalid value for {label}"

TypeValidator = Callable[[FieldSchema, Any], Optional[str]]

TYPE_VALIDATORS: Dict[FieldType, TypeValidator] = {}


def register_type_validator(*field_types: FieldType):
    """Register a type-specific check for one or more field types."""
    def decorator(func: TypeValidator) -> TypeValidator:
        for field_type in field_types:
            TYPE_VALIDATORS[field_type] = func
        return func
    return decorator


def is_empty(value: Any) -> bool:
    """None, '' and an empty file selection count as empty; False does not."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple)):
        return len(value) == 0
    return False


def to_number(value: Any) -> Optional[float]:
    """
    Convert a candidate value to a finite number.

    Args:
        value: Number or numeric string

    Returns:
        The number, or None if the value is not numeric
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, Decimal):
        try:
            number = float(value)
        except (InvalidOperation, ValueError):
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def format_bound(bound: float) -> str:
    """Render a numeric bound for messages, dropping a trailing .0 on whole numbers."""
    if isinstance(bound, float) and bound.is_integer():
        return str(int(bound))
    return str(bound)


@register_type_validator(FieldType.TEXT, FieldType.TEXTAREA, FieldType.PASSWORD,
                         FieldType.CHECKBOX, FieldType.FILE)
def _validate_free_value(field: FieldSchema, value: Any) -> Optional[str]:
    return None


@register_type_validator(FieldType.EMAIL)
def _validate_email(field: FieldSchema, value: Any) -> Optional[str]:
    if not EMAIL_PATTERN.match(str(value)):
        return MSG_EMAIL
    return None


@register_type_validator(FieldType.NUMBER)
def _validate_number(field: FieldSchema, value: Any) -> Optional[str]:
    number = to_number(value)
    if number is None:
        return MSG_NUMBER
    if field.min is not None and number < field.min:
        return MSG_MIN.format(min=format_bound(field.min))
    if field.max is not None and number > field.max:
        return MSG_MAX.format(max=format_bound(field.max))
    return None


@register_type_validator(FieldType.TEL)
def _validate_tel(field: FieldSchema, value: Any) -> Optional[str]:
    if not TEL_PATTERN.match(str(value)):
        return MSG_TEL
    return None


@register_type_validator(FieldType.DATE)
def _validate_date(field: FieldSchema, value: Any) -> Optional[str]:
    if isinstance(value, (date, datetime)):
        return None
    if not isinstance(value, str):
        return MSG_DATE
    try:
        date_parser.parse(value)
    except (ValueError, OverflowError):
        return MSG_DATE
    return None


@register_type_validator(FieldType.SELECT, FieldType.RADIO)
def _validate_option(field: FieldSchema, value: Any) -> Optional[str]:
    if str(value) not in field.option_values():
        return MSG_OPTION
    return None


def _check_custom(field: FieldSchema, value: Any) -> Optional[str]:
    try:
        result = field.validation.custom(value)
    except Exception as e:
        logger.warning(f"Custom validation for '{field.id}' raised {type(e).__name__}: {e}")
        return MSG_CUSTOM.format(label=field.label)

    if result is True:
        return None
    if isinstance(result, str) and result:
        return result
    return MSG_CUSTOM.format(label=field.label)


def validate_field(field: FieldSchema, value: Any) -> Optional[str]:
    """
    Validate one candidate value against its field schema.

    Args:
        field: Field schema
        value: Candidate value

    Returns:
        Error message, or None if the value passes
    """
    empty = is_empty(value)

    if field.required and empty:
        return MSG_REQUIRED.format(label=field.label)

    if empty:
        return None

    type_check = TYPE_VALIDATORS.get(field.type)
    if type_check is not None:
        error = type_check(field, value)
        if error:
            return error

    rule = field.validation
    if rule is None:
        return None

    pattern = rule.compiled_pattern()
    if pattern is not None and not pattern.search(str(value)):
        return rule.message or MSG_PATTERN.format(label=field.label)

    if rule.custom is not None:
        return _check_custom(field, value)

    return None


def validate_form(
    form: Union[FormDefinition, Iterable[FieldSchema]],
    values: Mapping[str, Any]
) -> Dict[str, str]:
    """
    Validate every field of a form.

    Args:
        form: Form definition or its fields
        values: Field id -> candidate value

    Returns:
        Field id -> error message; empty when the form is submittable
    """
    fields = form.sorted_fields() if isinstance(form, FormDefinition) else sort_fields(form)
    errors: Dict[str, str] = {}

    for field in fields:
        error = validate_field(field, values.get(field.id))
        if error:
            errors[field.id] = error

    if errors:
        logger.debug(f"Form validation failed for {len(errors)} field(s): {sorted(errors)}")
    return errors


def has_errors(errors: Mapping[str, str]) -> bool:
    return len(errors) > 0


def ensure_valid(
    form: Union[FormDefinition, Iterable[FieldSchema]],
    values: Mapping[str, Any]
) -> None:
    """
    Raise FormValidationError unless every field passes.

    Raises:
        FormValidationError: Carrying the complete field id -> message map
    """
    errors = validate_form(form, values)
    if has_errors(errors):
        raise FormValidationError(errors)
