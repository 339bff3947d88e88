"""
Recurrence arithmetic for repeating triggers.

Occurrences keep the time of day of the fired occurrence. Monthly triggers
keep their day of month and clamp to the last day of shorter months
without drifting (Jan 31 -> Feb 28 -> Mar 31).
"""

import calendar
from datetime import datetime, timedelta

from app.features.automation.domain import RepeatPattern

_WEEKDAYS = frozenset(range(0, 5))
_WEEKEND = frozenset({5, 6})

_DAY_FILTERS = {
    RepeatPattern.DAILY: None,
    RepeatPattern.WEEKDAYS: _WEEKDAYS,
    RepeatPattern.WEEKENDS: _WEEKEND,
}


def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_occurrence(
    fired_at: datetime,
    pattern: RepeatPattern,
    after: datetime | None = None,
) -> datetime:
    """
    Next occurrence of `pattern` strictly after `after` (default `fired_at`).

    `fired_at` anchors the series: its time of day, weekday and day of month
    carry forward.
    """
    pattern = RepeatPattern(pattern)
    after = after if after is not None else fired_at

    if pattern == RepeatPattern.MONTHLY:
        months = 1
        candidate = add_months(fired_at, months)
        while candidate <= after:
            months += 1
            candidate = add_months(fired_at, months)
        return candidate

    if pattern == RepeatPattern.WEEKLY:
        weeks = 1
        if after > fired_at:
            weeks = max(1, (after - fired_at).days // 7)
        candidate = fired_at + timedelta(weeks=weeks)
        while candidate <= after:
            candidate += timedelta(weeks=1)
        return candidate

    allowed = _DAY_FILTERS[pattern]
    days = 1
    if after > fired_at:
        days = max(1, (after - fired_at).days)
    candidate = fired_at + timedelta(days=days)
    while candidate <= after or (allowed is not None and candidate.weekday() not in allowed):
        candidate += timedelta(days=1)
    return candidate
