"""
rewardledger.engine.clock — Reference-Timezone Calendar Days
=============================================================

Every daily fence (login claim, engagement completion, scratch card) is keyed
on the calendar day in one fixed reference timezone, never on UTC and never
on the member's device clock.  Two actions at 23:59:59 and 00:00:01 local
time therefore land on different days, and "yesterday" always means the
previous calendar date, across DST changes included.

Pure functions; ``now`` is injectable so tests can pin the clock.
"""

from __future__ import annotations

from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from rewardledger.config import DEFAULT_TIMEZONE

DEFAULT_TZ = ZoneInfo(DEFAULT_TIMEZONE)


def _as_zone(tz: ZoneInfo | str | None) -> ZoneInfo:
    if tz is None:
        return DEFAULT_TZ
    if isinstance(tz, str):
        return ZoneInfo(tz)
    return tz


def now_utc() -> datetime:
    return datetime.now(UTC)


def today(tz: ZoneInfo | str | None = None, now: datetime | None = None) -> date:
    """Return the calendar date in *tz* at instant *now* (default: current time).

    A naive *now* is taken to be UTC.
    """
    zone = _as_zone(tz)
    instant = now if now is not None else now_utc()
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=UTC)
    return instant.astimezone(zone).date()


def yesterday(day: date) -> date:
    """The previous calendar date; no 24-hour subtraction from an instant."""
    return day - timedelta(days=1)


def end_of_day(day: date, tz: ZoneInfo | str | None = None) -> datetime:
    """Last representable instant of *day* in *tz*, as an aware datetime."""
    zone = _as_zone(tz)
    return datetime.combine(day, time.max, tzinfo=zone)
