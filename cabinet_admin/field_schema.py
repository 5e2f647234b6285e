"""
Field schema model for the dynamic form engine.
Declarative description of one form input: type, constraints, default and backing column.
"""

import re
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class FieldType(str, Enum):
    """Supported input types."""
    TEXT = "text"
    TEXTAREA = "textarea"
    NUMBER = "number"
    EMAIL = "email"
    PASSWORD = "password"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO = "radio"
    DATE = "date"
    FILE = "file"
    TEL = "tel"


# Types whose value must come from the option list
ENUMERABLE_TYPES = {FieldType.SELECT, FieldType.RADIO}


class FieldOption(BaseModel):
    """One selectable value of a select or radio field."""

    model_config = ConfigDict(frozen=True)

    value: str
    label: str


class ValidationRule(BaseModel):
    """
    Optional per-field rule set.

    `pattern` is kept as regex source so definitions stay serializable;
    `custom` is an in-process callable returning True or an error string and
    is never persisted.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    pattern: Optional[str] = None
    message: Optional[str] = None
    custom: Optional[Callable[[Any], Union[bool, str, None]]] = Field(default=None, exclude=True)

    @field_validator("pattern", mode="before")
    @classmethod
    def _check_pattern(cls, value: Any) -> Any:
        if isinstance(value, re.Pattern):
            return value.pattern
        if value:
            try:
                re.compile(value)
            except re.error as e:
                raise ValueError(f"Invalid regex pattern: {e}")
        return value or None

    def compiled_pattern(self) -> Optional["re.Pattern[str]"]:
        if not self.pattern:
            return None
        return re.compile(self.pattern)


class FieldSchema(BaseModel):
    """
    One form input.

    Serialized records use the camelCase keys the forms table stores
    (dbField, isSystem, hasData, helpText); snake_case names are accepted too.
    """

    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: str = Field(min_length=1)
    label: str
    type: FieldType = FieldType.TEXT
    placeholder: Optional[str] = None
    required: bool = False
    order: int = 0
    db_field: str = Field(default="", alias="dbField")
    is_system: bool = Field(default=False, alias="isSystem")
    has_data: bool = Field(default=False, alias="hasData")
    options: List[FieldOption] = Field(default_factory=list)
    help_text: Optional[str] = Field(default=None, alias="helpText")
    min: Optional[Union[int, float]] = None
    max: Optional[Union[int, float]] = None
    step: Optional[Union[int, float]] = None
    accept: Optional[str] = None
    multiple: bool = False
    disabled: bool = False
    default: Any = None
    validation: Optional[ValidationRule] = None

    @model_validator(mode="after")
    def _check_field(self) -> "FieldSchema":
        if not self.db_field:
            self.db_field = self.id
        if self.type in ENUMERABLE_TYPES and not self.options:
            raise ValueError(f"Field '{self.id}' of type {self.type.value} requires at least one option")
        return self

    @property
    def is_enumerable(self) -> bool:
        return self.type in ENUMERABLE_TYPES

    def option_values(self) -> List[str]:
        return [option.value for option in self.options]

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the structure stored in the forms table."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


def empty_value_for(field: FieldSchema) -> Any:
    """
    Get the type-appropriate empty value for a field.

    Args:
        field: Field schema

    Returns:
        False for checkboxes, the first option for selects with options,
        None/[] for file inputs and '' for everything else
    """
    if field.type == FieldType.CHECKBOX:
        return False
    if field.type == FieldType.SELECT and field.options:
        return field.options[0].value
    if field.type == FieldType.FILE:
        return [] if field.multiple else None
    return ""


def sort_fields(fields: Iterable[FieldSchema]) -> List[FieldSchema]:
    """Sort fields by `order`; ties keep declaration order."""
    return sorted(fields, key=lambda field: field.order)
