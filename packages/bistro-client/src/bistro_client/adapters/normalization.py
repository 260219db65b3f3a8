"""Normalization helpers for restaurant backend payloads.

The backend serializes money as JSON numbers or strings, dates as ISO 8601
strings, and times-of-day as ``"HH:MM"`` or ``"HH:MM:SS"``.  These helpers turn
those raw values into :class:`~decimal.Decimal`, :class:`~datetime.date` and
:class:`~datetime.time` objects so the models never handle floats.
"""

from datetime import date, time
from decimal import Decimal, InvalidOperation
from typing import Any


def to_decimal(value: Any, default: Decimal | None = None) -> Decimal:
    """Convert a JSON money value into a ``Decimal``.

    Floats are routed through ``str()`` so ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.

    Args:
        value: An int, float, numeric string, ``Decimal`` or ``None``.
        default: Returned when *value* is ``None`` or an empty string.

    Returns:
        The parsed ``Decimal``.

    Raises:
        ValueError: If *value* is missing with no default, or is not numeric.
    """
    if value is None or value == "":
        if default is None:
            msg = "Missing numeric value"
            raise ValueError(msg)
        return default
    if isinstance(value, bool):
        msg = f"Expected a number, got {value!r}"
        raise ValueError(msg)
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except InvalidOperation as exc:
        msg = f"Expected a number, got {value!r}"
        raise ValueError(msg) from exc
    if not result.is_finite():
        msg = f"Expected a finite number, got {value!r}"
        raise ValueError(msg)
    return result


def parse_date(value: str | None) -> date | None:
    """Parse an ISO 8601 date (or the date part of a datetime), ``None`` on failure."""
    if not value:
        return None
    try:
        return date.fromisoformat(str(value)[:10])
    except (ValueError, TypeError):  # fmt: skip
        return None


def parse_time(value: str | None) -> time | None:
    """Parse an ``HH:MM[:SS]`` time-of-day string, ``None`` on failure."""
    if not value:
        return None
    try:
        return time.fromisoformat(str(value))
    except (ValueError, TypeError):  # fmt: skip
        return None


def format_time(value: time | None) -> str | None:
    """Render a time-of-day the way the backend sends it (``HH:MM:SS``)."""
    if value is None:
        return None
    return value.strftime("%H:%M:%S")


def int_set(values: Any) -> frozenset[int]:
    """Collect integer IDs from a list of ints or ``{"articleId": ...}`` objects.

    Args:
        values: An iterable of ints, numeric strings, or mappings carrying
            an ``articleId`` (or ``id``) key.  ``None`` yields an empty set.

    Returns:
        A frozenset of integer IDs.
    """
    if not values:
        return frozenset()
    ids: set[int] = set()
    for value in values:
        if isinstance(value, dict):
            raw = value.get("articleId", value.get("id"))
        else:
            raw = value
        if raw is None:
            continue
        ids.add(int(raw))
    return frozenset(ids)
