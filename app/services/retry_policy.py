"""Exponential backoff policy for failed webhook deliveries.

The scheduler itself is external: a poller re-attempts records whose
``next_retry_at`` has passed.  This module only decides *whether* and
*when*.
"""

from datetime import datetime, timedelta
from typing import Optional


def next_retry_delay(base_delay_seconds: float, retry_count: int) -> float:
    """Return ``base_delay_seconds * 2 ** retry_count``.

    Strictly increasing in *retry_count* for any positive base.
    """
    if base_delay_seconds < 0:
        raise ValueError("base_delay_seconds must be non-negative")
    if retry_count < 0:
        raise ValueError("retry_count must be non-negative")
    return base_delay_seconds * (2 ** retry_count)


def should_retry(retry_enabled: bool, attempts_before: int, max_retries: int) -> bool:
    """A failed attempt is retried while earlier attempts stay under the cap."""
    return bool(retry_enabled) and attempts_before < max_retries


def compute_next_retry_at(
    now: datetime, base_delay_seconds: float, retry_count: int
) -> datetime:
    return now + timedelta(seconds=next_retry_delay(base_delay_seconds, retry_count))


def schedule_retry(
    now: datetime,
    retry_enabled: bool,
    attempts_before: int,
    max_retries: int,
    base_delay_seconds: float,
) -> Optional[datetime]:
    """``next_retry_at`` for a failed attempt, or ``None`` when retries are exhausted.

    The delay grows with the attempt count *after* the failed attempt, so
    the first retry waits ``base * 2``.
    """
    if not should_retry(retry_enabled, attempts_before, max_retries):
        return None
    return compute_next_retry_at(now, base_delay_seconds, attempts_before + 1)
