"""Working-day arithmetic over calendar dates.

Pure functions; no clock, no time zones. Weekday numbers follow
``date.weekday()`` (0=Mon … 6=Sun).
"""

from __future__ import annotations

from datetime import date, timedelta
from typing import AbstractSet

from leavetrack.common.exceptions import InvalidRange

DEFAULT_WEEKEND: frozenset[int] = frozenset({5, 6})


def _check_range(start: date, end: date) -> None:
    if start > end:
        raise InvalidRange(start, end)


def working_days(
    start: date,
    end: date,
    *,
    weekend_days: AbstractSet[int] = DEFAULT_WEEKEND,
) -> int:
    """Number of non-weekend dates in ``[start, end]``, both ends inclusive.

    Raises ``InvalidRange`` if *start* is after *end*. A range made only of
    weekend days returns 0.
    """
    _check_range(start, end)

    total_days = (end - start).days + 1
    full_weeks, remainder = divmod(total_days, 7)
    count = full_weeks * (7 - len(set(weekend_days) & set(range(7))))

    first_weekday = start.weekday()
    for offset in range(remainder):
        if (first_weekday + offset) % 7 not in weekend_days:
            count += 1
    return count


def working_days_before(
    start: date,
    end: date,
    cutoff: date,
    *,
    weekend_days: AbstractSet[int] = DEFAULT_WEEKEND,
) -> int:
    """Working days of ``[start, end]`` that fall strictly before *cutoff*."""
    _check_range(start, end)
    if start >= cutoff:
        return 0
    last = min(end, cutoff - timedelta(days=1))
    return working_days(start, last, weekend_days=weekend_days)
