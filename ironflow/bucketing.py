from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, Iterable, List, Optional, TypeVar

from .models import parse_timestamp

LOGGER = logging.getLogger(__name__)
DEFAULT_WINDOW_DAYS = 14

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_now(now: Optional[datetime]) -> datetime:
    """Normalise an injected reference time, reading the wall clock only when absent."""
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _default_date(item: Any) -> Any:
    return getattr(item, "date", None)


@dataclass
class Buckets(Generic[T]):
    recent: List[T] = field(default_factory=list)
    previous: List[T] = field(default_factory=list)

    @property
    def combined(self) -> List[T]:
        return self.recent + self.previous

    def __bool__(self) -> bool:
        return bool(self.recent or self.previous)


def bucketize(
    items: Iterable[T],
    days: int = DEFAULT_WINDOW_DAYS,
    *,
    now: Optional[datetime] = None,
    date_of: Callable[[T], Any] = _default_date,
) -> Buckets[T]:
    """
    Split a timestamped series into the recent and previous windows.

    Items younger than `days` are recent, items aged at least `days` but less
    than `2*days` are previous. Older items and items whose date cannot be
    parsed are dropped.
    """
    reference = resolve_now(now)
    recent_cutoff = reference - timedelta(days=days)
    previous_cutoff = reference - timedelta(days=days * 2)

    buckets: Buckets[T] = Buckets()
    skipped = 0
    for item in items:
        timestamp = parse_timestamp(date_of(item))
        if timestamp is None:
            skipped += 1
            continue
        if timestamp > recent_cutoff:
            buckets.recent.append(item)
        elif timestamp > previous_cutoff:
            buckets.previous.append(item)

    LOGGER.debug(
        "Bucketed series: recent=%d previous=%d unparsable=%d (window=%d days)",
        len(buckets.recent),
        len(buckets.previous),
        skipped,
        days,
    )
    return buckets
