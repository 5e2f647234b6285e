"""
Session-local value store for the dynamic form engine.
Maps field id to the current candidate value and tracks touched fields.
"""

import copy
import logging
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Set

from deepdiff import DeepDiff

from .field_schema import FieldSchema, FieldType, empty_value_for

logger = logging.getLogger(__name__)


class ValueStore:
    """In-memory form values owned by a single editing session."""

    def __init__(self):
        self._fields: Dict[str, FieldSchema] = {}
        self._values: Dict[str, Any] = {}
        self._initial: Dict[str, Any] = {}
        self._touched: Set[str] = set()

    def initialize(self, fields: Iterable[FieldSchema],
                   initial_values: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Seed the store with one value per field.

        Precedence: the initial value when present, then the schema default,
        then the type-appropriate empty value.

        Args:
            fields: Field schemas of the form
            initial_values: Values of an existing record, keyed by field id

        Returns:
            Copy of the seeded values
        """
        initial_values = initial_values or {}
        self._fields = {}
        self._values = {}
        self._touched = set()

        for field in fields:
            self._fields[field.id] = field
            if field.id in initial_values:
                value = initial_values[field.id]
            elif field.default is not None:
                value = field.default
            else:
                value = empty_value_for(field)
            self._values[field.id] = copy.deepcopy(value)

        self._initial = copy.deepcopy(self._values)
        logger.debug(f"Value store initialized with {len(self._values)} fields")
        return self.values

    @property
    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    def has(self, field_id: str) -> bool:
        return field_id in self._values

    def get(self, field_id: str, default: Any = None) -> Any:
        return self._values.get(field_id, default)

    def set(self, field_id: str, value: Any) -> None:
        """Replace a field value and mark the field touched."""
        if field_id not in self._fields:
            raise KeyError(f"Unknown field id: {field_id}")
        self._values[field_id] = value
        self._touched.add(field_id)

    def set_file(self, field_id: str, files: Optional[Sequence[Any]]) -> None:
        """
        Store selected file handles.

        Multiple-file fields keep the whole selection; single-file fields
        keep the first handle, or None when nothing was selected.
        """
        field = self._fields.get(field_id)
        if field is None:
            raise KeyError(f"Unknown field id: {field_id}")
        if field.type != FieldType.FILE:
            logger.warning(f"set_file called on non-file field '{field_id}' ({field.type.value})")

        selected = list(files or [])
        if field.multiple:
            self.set(field_id, selected)
        else:
            self.set(field_id, selected[0] if selected else None)

    def is_touched(self, field_id: str) -> bool:
        return field_id in self._touched

    @property
    def touched(self) -> Set[str]:
        return set(self._touched)

    def mark_all_touched(self) -> None:
        self._touched = set(self._fields)

    def changes(self) -> Dict[str, Any]:
        """Difference between the seeded values and the current values."""
        diff = DeepDiff(self._initial, self._values, verbose_level=2)
        return diff.to_dict() if hasattr(diff, "to_dict") else dict(diff)

    def is_dirty(self) -> bool:
        return bool(self.changes())
