"""Total timestamp parsing for stored submission records.

Stored records have carried several timestamp shapes over time: ISO strings,
epoch seconds or milliseconds, ``{"seconds": ..., "nanoseconds": ...}`` maps
written by an older document store, and live ``datetime`` objects. Every shape
is handled by one entry in ``_PARSERS``, tried in order. Nothing here raises;
unparseable input yields ``(SENTINEL, False)``.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional, Tuple

SENTINEL = datetime.min.replace(tzinfo=timezone.utc)

# Epoch values above this are taken to be milliseconds.
_MILLIS_THRESHOLD = 1e11

RECORD_TIMESTAMP_FIELDS: Tuple[str, ...] = ("timestamp", "created_at")


def _as_utc(dt: datetime) -> Optional[datetime]:
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except (OverflowError, ValueError):
        # an offset can push the instant past datetime.min or datetime.max
        return None


def _from_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return _as_utc(value)
    return None


def _from_epoch(value: Any) -> Optional[datetime]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    number = float(value)
    if not math.isfinite(number) or number <= 0:
        return None
    if number > _MILLIS_THRESHOLD:
        number /= 1000.0
    try:
        return datetime.fromtimestamp(number, tz=timezone.utc)
    except (OverflowError, OSError, ValueError):
        return None


def _from_string(value: Any) -> Optional[datetime]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    try:
        return _from_epoch(float(text))
    except ValueError:
        pass
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(datetime.fromisoformat(text))
    except ValueError:
        return None


def _from_seconds_map(value: Any) -> Optional[datetime]:
    if not isinstance(value, Mapping):
        return None
    seconds = value.get("seconds", value.get("_seconds"))
    if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
        return None
    nanos = value.get("nanoseconds", value.get("_nanoseconds", 0))
    if isinstance(nanos, bool) or not isinstance(nanos, (int, float)):
        nanos = 0
    return _from_epoch(float(seconds) + float(nanos) / 1e9)


def _from_converter(value: Any) -> Optional[datetime]:
    converter = getattr(value, "to_datetime", None)
    if not callable(converter):
        return None
    try:
        converted = converter()
    except Exception:  # noqa: BLE001
        return None
    return _from_datetime(converted)


_PARSERS: Tuple[Callable[[Any], Optional[datetime]], ...] = (
    _from_datetime,
    _from_epoch,
    _from_string,
    _from_seconds_map,
    _from_converter,
)


def parse_timestamp(value: Any) -> Tuple[datetime, bool]:
    """Return ``(instant, ok)``; ``ok`` is False and ``instant`` is ``SENTINEL`` on failure."""

    if value is None:
        return SENTINEL, False
    for parser in _PARSERS:
        parsed = parser(value)
        if parsed is not None:
            return parsed, True
    return SENTINEL, False


def record_timestamp(
    record: Mapping[str, Any],
    fields: Iterable[str] = RECORD_TIMESTAMP_FIELDS,
) -> Tuple[datetime, bool]:
    """Best available timestamp of a stored record, trying ``fields`` in order."""

    for field in fields:
        instant, ok = parse_timestamp(record.get(field))
        if ok:
            return instant, True
    return SENTINEL, False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


__all__ = ["SENTINEL", "parse_timestamp", "record_timestamp", "utc_now"]
