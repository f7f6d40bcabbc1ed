"""
Usage period boundaries.

Counters are either permanent (anchored at the Unix epoch, never reset) or
scoped to the calendar day / calendar month containing "now". All boundaries
are computed in UTC.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from app.domain.subscription import LimitKey, UsageMetric


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class UsageWindow:
    """Period a counter row is written under. end is None for permanent counters."""
    start: datetime
    end: Optional[datetime] = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def start_of_day(now: datetime) -> datetime:
    return now.astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)


def start_of_month(now: datetime) -> datetime:
    return start_of_day(now).replace(day=1)


def start_of_next_month(now: datetime) -> datetime:
    first = start_of_month(now)
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def period_start_for_limit(key: LimitKey, now: datetime) -> Optional[datetime]:
    """
    Lower bound used when reading the counter behind a limit key.

    Monthly keys read from the first instant of the month, daily keys from
    midnight; every other key reads without a period filter.
    """
    if "PerMonth" in key.value:
        return start_of_month(now)
    if "PerDay" in key.value:
        return start_of_day(now)
    return None


def window_for_metric(metric: Union[UsageMetric, str], now: datetime) -> UsageWindow:
    """
    Period a counter write is recorded under, chosen by metric name.

    Names mentioning month/jarvis are monthly, day/nudges are daily, anything
    else is a permanent counter.
    """
    name = metric.value if isinstance(metric, UsageMetric) else metric

    if "month" in name or "jarvis" in name:
        return UsageWindow(start=start_of_month(now), end=start_of_next_month(now))

    if "day" in name or "nudges" in name:
        day = start_of_day(now)
        return UsageWindow(start=day, end=day + timedelta(days=1))

    return UsageWindow(start=EPOCH)
