"""Timestamp helpers shared by the store and the write buffer."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_db(value: datetime) -> str:
    """Fixed-width ISO-8601 text so lexical order matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db(value: Optional[Union[str, datetime]]) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def normalize_bound(value: Union[str, datetime]) -> str:
    """Accept a datetime or ISO string as a date filter bound."""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return to_db(value)


class StepClock:
    """Strictly increasing UTC clock for step ``created_at`` values.

    Two steps accepted within the same microsecond are pushed one microsecond
    apart, so ordering by ``created_at`` preserves acceptance order.
    """

    def __init__(self) -> None:
        self._last: Optional[datetime] = None

    def now(self) -> datetime:
        current = utcnow()
        if self._last is not None and current <= self._last:
            current = self._last + timedelta(microseconds=1)
        self._last = current
        return current
