"""
Client-side filtering and ordering of records.

Filters are never sent to the backend: the whole collection is fetched (or
read from the mirror) and narrowed here. Predicate values usually come from
loosely typed UI state (a select box yields "true", a text field "5"), so
comparison coerces across types via `values_equal`.

Predicates are parsed once into tagged conditions:

    {"status": ["A", "C"], "active": "true"}
    -> [Condition("status", IN, ("A", "C")), Condition("active", EQUALS, "true")]
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from functools import cmp_to_key
from typing import Any

_NUMBER_TYPES = (int, float)


def _is_number(value: Any) -> bool:
    return isinstance(value, _NUMBER_TYPES) and not isinstance(value, bool)


def _format_number(value: int | float) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def _stringify(value: Any) -> str:
    """Canonical string form used for cross-type comparison."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if _is_number(value):
        return _format_number(value)
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)
    return str(value)


def _bool_matches(flag: bool, text: str) -> bool:
    normalized = text.strip().lower()
    if normalized == "true":
        return flag is True
    if normalized == "false":
        return flag is False
    return False


def values_equal(left: Any, right: Any) -> bool:
    """Compare two values with UI-friendly coercion.

    - None only equals None
    - numbers equal their string representation (5 == "5")
    - booleans equal "true"/"false" (trimmed, case-insensitive)
    - anything else compares by string representation
    """
    if left is None or right is None:
        return left is None and right is None

    if isinstance(left, bool) and isinstance(right, bool):
        return left is right
    if isinstance(left, bool) and isinstance(right, str):
        return _bool_matches(left, right)
    if isinstance(left, str) and isinstance(right, bool):
        return _bool_matches(right, left)

    if _is_number(left) and _is_number(right):
        return left == right
    if _is_number(left) and isinstance(right, str):
        return _format_number(left) == right
    if isinstance(left, str) and _is_number(right):
        return left == _format_number(right)

    if type(left) is type(right) and left == right:
        return True

    return _stringify(left) == _stringify(right)


class ConditionKind(Enum):
    """How a condition matches a record field."""

    EQUALS = "equals"
    IN = "in"


@dataclass(frozen=True)
class Condition:
    """A single field condition."""

    field: str
    kind: ConditionKind
    value: Any

    def matches(self, record: Mapping[str, Any]) -> bool:
        actual = record.get(self.field)
        if self.kind is ConditionKind.IN:
            return any(values_equal(actual, candidate) for candidate in self.value)
        return values_equal(actual, self.value)


@dataclass
class Predicate:
    """Conjunction of field conditions."""

    conditions: list[Condition] = field(default_factory=list)

    @classmethod
    def from_mapping(cls, filters: Mapping[str, Any] | None) -> Predicate:
        """Parse {field: value} filters; list/tuple/set values become IN conditions."""
        conditions = []
        for key, value in (filters or {}).items():
            if isinstance(value, (list, tuple, set, frozenset)):
                conditions.append(Condition(key, ConditionKind.IN, tuple(value)))
            else:
                conditions.append(Condition(key, ConditionKind.EQUALS, value))
        return cls(conditions)

    def matches(self, record: Mapping[str, Any]) -> bool:
        return all(condition.matches(record) for condition in self.conditions)


def filter_records(
    records: Iterable[dict[str, Any]],
    predicate: Predicate | Mapping[str, Any] | None,
) -> list[dict[str, Any]]:
    """Return the records matching every condition, in input order."""
    if not isinstance(predicate, Predicate):
        predicate = Predicate.from_mapping(predicate)
    return [record for record in records if predicate.matches(record)]


def _compare_raw(left: Any, right: Any) -> int:
    # No coercion: values Python cannot order compare as equal.
    try:
        if left > right:
            return 1
        if left < right:
            return -1
    except TypeError:
        pass
    return 0


def parse_order_by(order_by: str) -> tuple[str, bool]:
    """Split '-field' into ('field', descending=True)."""
    if order_by.startswith("-"):
        return order_by[1:], True
    return order_by, False


def sort_records(records: Iterable[dict[str, Any]], order_by: str | None) -> list[dict[str, Any]]:
    """Sort records by a field; prefix with '-' for descending.

    None and missing values are weakest: last when ascending, first when
    descending. The sort is stable.
    """
    items = list(records)
    if not order_by:
        return items

    field_name, descending = parse_order_by(order_by)

    def compare(a: dict[str, Any], b: dict[str, Any]) -> int:
        left = a.get(field_name)
        right = b.get(field_name)
        if left is None and right is None:
            return 0
        if left is None:
            return -1 if descending else 1
        if right is None:
            return 1 if descending else -1
        result = _compare_raw(left, right)
        return -result if descending else result

    return sorted(items, key=cmp_to_key(compare))
