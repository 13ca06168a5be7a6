"""Overlap detection between an employee's leave requests."""

from __future__ import annotations

import uuid
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.common.constants import LeaveStatus
from leavetrack.leave.models import LeaveRequest

DEFAULT_WARNING_STATUSES = (LeaveStatus.pending, LeaveStatus.approved)


def ranges_overlap(a: date, b: date, c: date, d: date) -> bool:
    """``[a, b]`` and ``[c, d]`` share at least one day."""
    return a <= d and b >= c


def _overlap_query(
    employee_id: uuid.UUID,
    start: date,
    end: date,
    statuses: Iterable[LeaveStatus],
    exclude_request_id: Optional[uuid.UUID],
):
    query = select(LeaveRequest).where(
        LeaveRequest.employee_id == employee_id,
        LeaveRequest.status.in_(list(statuses)),
        LeaveRequest.start_date <= end,
        LeaveRequest.end_date >= start,
    )
    if exclude_request_id is not None:
        query = query.where(LeaveRequest.id != exclude_request_id)
    return query


async def has_approved_overlap(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start: date,
    end: date,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> bool:
    """True if any *approved* request of the employee overlaps ``[start, end]``."""
    query = _overlap_query(
        employee_id, start, end, (LeaveStatus.approved,), exclude_request_id,
    )
    result = await db.execute(select(query.with_only_columns(LeaveRequest.id).exists()))
    return bool(result.scalar())


async def find_overlapping(
    db: AsyncSession,
    employee_id: uuid.UUID,
    start: date,
    end: date,
    statuses: Iterable[LeaveStatus] = DEFAULT_WARNING_STATUSES,
    exclude_request_id: Optional[uuid.UUID] = None,
) -> list[LeaveRequest]:
    """Requests in *statuses* overlapping ``[start, end]``, oldest start first."""
    query = _overlap_query(employee_id, start, end, statuses, exclude_request_id)
    result = await db.execute(query.order_by(LeaveRequest.start_date, LeaveRequest.id))
    return list(result.scalars().all())
