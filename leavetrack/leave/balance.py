"""Balance ledger: allowance, used / taken / booked / pending, available.

``compute_balance`` is pure; "today" is always supplied by the caller.
"""

from __future__ import annotations

from datetime import date
from typing import AbstractSet, Iterable, Protocol

from leavetrack.common.constants import UNLIMITED_ALLOWANCE, LeaveStatus, LeaveType
from leavetrack.leave.calendar import DEFAULT_WEEKEND, working_days_before
from leavetrack.leave.schemas import LeaveBalance, LeaveStatsSummary


class _RequestLike(Protocol):
    leave_type: LeaveType
    status: LeaveStatus
    start_date: date
    end_date: date
    working_days: int


def compute_balance(
    requests: Iterable[_RequestLike],
    leave_type: LeaveType,
    year: int,
    allowance: int,
    today: date,
    *,
    weekend_days: AbstractSet[int] = DEFAULT_WEEKEND,
) -> LeaveBalance:
    """Ledger for one leave type and calendar year.

    A request belongs to the year of its start date. Approved days whose
    date is before *today* are taken, the rest are booked, so a request
    spanning today is split and ``used == taken + booked`` holds.
    """
    leave_type = LeaveType(leave_type)
    used = taken = pending = 0
    total = approved = pending_count = rejected = upcoming = 0

    for req in requests:
        if req.leave_type != leave_type or req.start_date.year != year:
            continue
        total += 1
        if req.status == LeaveStatus.approved:
            approved += 1
            days = req.working_days
            used += days
            taken += min(
                days,
                working_days_before(
                    req.start_date, req.end_date, today, weekend_days=weekend_days,
                ),
            )
            if req.start_date > today:
                upcoming += 1
        elif req.status == LeaveStatus.pending:
            pending_count += 1
            pending += req.working_days
        elif req.status == LeaveStatus.rejected:
            rejected += 1

    if allowance == UNLIMITED_ALLOWANCE:
        available = None
    else:
        available = max(0, allowance - used - pending)

    return LeaveBalance(
        leave_type=leave_type,
        year=year,
        allowance=allowance,
        used=used,
        taken=taken,
        booked=used - taken,
        pending=pending,
        available=available,
        total_requests=total,
        approved_requests=approved,
        pending_requests=pending_count,
        rejected_requests=rejected,
        upcoming_requests=upcoming,
    )


def summarize(vacation: LeaveBalance, personal: LeaveBalance) -> LeaveStatsSummary:
    total_allowance = vacation.allowance + personal.allowance
    total_used = vacation.used + personal.used
    total_pending = vacation.pending + personal.pending
    return LeaveStatsSummary(
        total_allowance=total_allowance,
        total_used=total_used,
        total_pending=total_pending,
        total_available=max(0, total_allowance - total_used - total_pending),
    )
