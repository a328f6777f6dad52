"""Reporting window resolution for period-over-period comparisons."""

from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional

from .models import RangeKind, Window, WindowPair

DAY = timedelta(days=1)
END_OF_DAY = time(23, 59, 59, 999000)


def as_local(moment: datetime, tz: Optional[tzinfo] = None) -> datetime:
    """Return ``moment`` as naive wall-clock time.

    Naive values are already local. Aware values are converted to ``tz``
    (UTC when omitted) before the offset is dropped.
    """

    if moment.tzinfo is None:
        return moment
    return moment.astimezone(tz or timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime | date) -> datetime:
    day = moment.date() if isinstance(moment, datetime) else moment
    return datetime.combine(day, time())


def end_of_day(moment: datetime | date) -> datetime:
    day = moment.date() if isinstance(moment, datetime) else moment
    return datetime.combine(day, END_OF_DAY)


def days_since_sunday(moment: datetime | date) -> int:
    # ``weekday()`` counts from Monday = 0.
    return (moment.weekday() + 1) % 7


def _preceding(window_start: datetime, days: int) -> Window:
    """The ``days`` calendar days ending the day before ``window_start``."""

    previous_end = end_of_day(window_start - DAY)
    return Window(start=start_of_day(previous_end - (days - 1) * DAY), end=previous_end)


def _this_week(today_end: datetime) -> WindowPair:
    current = Window(start=start_of_day(today_end - days_since_sunday(today_end) * DAY), end=today_end)
    return WindowPair(current=current, previous=_preceding(current.start, 7))


def _last_week(today_end: datetime) -> WindowPair:
    current_end = end_of_day(today_end - (days_since_sunday(today_end) + 1) * DAY)
    current = Window(start=start_of_day(current_end - 6 * DAY), end=current_end)
    return WindowPair(current=current, previous=_preceding(current.start, 7))


def _last_30_days(today_end: datetime) -> WindowPair:
    current = Window(start=start_of_day(today_end - 29 * DAY), end=today_end)
    return WindowPair(current=current, previous=_preceding(current.start, 30))


def _custom(start: datetime | date, end: datetime | date) -> WindowPair:
    current = Window(start=start_of_day(start), end=end_of_day(end))
    days = math.ceil(current.duration / DAY)
    return WindowPair(current=current, previous=_preceding(current.start, days))


def resolve_window_pair(
    kind: RangeKind | str,
    *,
    now: datetime,
    custom_start: Optional[datetime | date] = None,
    custom_end: Optional[datetime | date] = None,
    tz: Optional[tzinfo] = None,
) -> WindowPair:
    """Resolve a named range into aligned ``current`` and ``previous`` windows.

    A custom range with a missing bound, or with its start after its end,
    falls back to ``this_week``.
    """

    range_kind = RangeKind(kind)
    today_end = end_of_day(as_local(now, tz))
    if range_kind is RangeKind.CUSTOM:
        if custom_start is None or custom_end is None:
            return _this_week(today_end)
        if start_of_day(custom_start) > start_of_day(custom_end):
            return _this_week(today_end)
        return _custom(custom_start, custom_end)
    if range_kind is RangeKind.LAST_WEEK:
        return _last_week(today_end)
    if range_kind is RangeKind.LAST_30_DAYS:
        return _last_30_days(today_end)
    return _this_week(today_end)


def week_start(moment: datetime | date) -> date:
    """Return the Monday of the week containing ``moment``."""

    day = moment.date() if isinstance(moment, datetime) else moment
    return day - timedelta(days=day.weekday())


def weekly_window_pair(monday: date) -> WindowPair:
    """Monday-to-Sunday window starting at ``monday`` and the week before it."""

    current = Window(start=start_of_day(monday), end=end_of_day(monday + 6 * DAY))
    return WindowPair(current=current, previous=_preceding(current.start, 7))


__all__ = [
    "as_local",
    "days_since_sunday",
    "end_of_day",
    "resolve_window_pair",
    "start_of_day",
    "week_start",
    "weekly_window_pair",
]
