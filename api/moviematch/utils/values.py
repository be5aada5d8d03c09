"""Predicates for loosely typed upstream JSON values."""

from __future__ import annotations

from typing import Any, Iterable, Sequence, TypeVar

T = TypeVar("T")


def string_or_none(value: Any) -> str | None:
    """Return the value if it is a string, otherwise None."""
    return value if isinstance(value, str) else None


def non_empty_string(value: Any) -> str | None:
    """Return a stripped string, or None for non-strings and blanks."""
    if not isinstance(value, str):
        return None
    stripped = value.strip()
    return stripped or None


def number_or_none(value: Any) -> float | None:
    """Return numeric values as floats; booleans and strings are not numbers."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def positive_int_or_none(value: Any) -> int | None:
    """Parse ints or digit strings, keeping only values greater than zero."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float) and value.is_integer():
        parsed = int(value)
    elif isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
    else:
        return None
    return parsed if parsed > 0 else None


def first_or_none(values: Sequence[T] | None) -> T | None:
    if not values:
        return None
    return values[0]


def dedupe(values: Iterable[str]) -> tuple[str, ...]:
    """Drop repeats while keeping first-seen order."""
    seen: set[str] = set()
    ordered: list[str] = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        ordered.append(value)
    return tuple(ordered)


def normalize_title(value: str) -> str:
    """Normalize titles for equality comparisons."""
    return " ".join(value.casefold().split())
