"""Leave Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update / *Request → request bodies (write)
  - *Out                         → response bodies (read)
"""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from leavetrack.common.constants import LeaveStatus, LeaveType


# ═════════════════════════════════════════════════════════════════════
# Embedded / shared
# ═════════════════════════════════════════════════════════════════════


class CertificateInfo(BaseModel):
    """Sick-leave certificate: an uploaded artifact or a deferred commitment."""

    reference: Optional[str] = Field(None, min_length=1, max_length=500)
    deferred: bool = False

    @property
    def is_present(self) -> bool:
        return bool(self.reference) or self.deferred


class OverlapWarning(BaseModel):
    """Courtesy notice: other pending/approved requests share days with this one."""

    request_ids: list[uuid.UUID]
    message: str


# ═════════════════════════════════════════════════════════════════════
# Leave Request
# ═════════════════════════════════════════════════════════════════════


class LeaveRequestCreate(BaseModel):
    """Payload for submitting a leave request.

    ``employee_id`` lets an admin file on someone else's behalf.
    """

    leave_type: LeaveType
    start_date: date
    end_date: date
    notes: Optional[str] = Field(None, max_length=2000)
    certificate: Optional[CertificateInfo] = None
    employee_id: Optional[uuid.UUID] = None


class LeaveRequestUpdate(BaseModel):
    """Partial edit of a pending request; omitted fields keep their value."""

    leave_type: Optional[LeaveType] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    notes: Optional[str] = Field(None, max_length=2000)
    certificate: Optional[CertificateInfo] = None


class LeaveRejectRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LeaveReopenRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class LeaveRequestOut(BaseModel):
    """Full leave request representation."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    employee_id: uuid.UUID
    department_id: Optional[uuid.UUID] = None
    leave_type: LeaveType
    start_date: date
    end_date: date
    working_days: int
    status: LeaveStatus
    notes: Optional[str] = None
    rejection_reason: Optional[str] = None
    medical_certificate_ref: Optional[str] = None
    medical_certificate_deferred: bool = False
    resolved_by: Optional[uuid.UUID] = None
    resolved_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Enriched by the service layer
    overlap_warning: Optional[OverlapWarning] = None


# ═════════════════════════════════════════════════════════════════════
# Balance / stats
# ═════════════════════════════════════════════════════════════════════


class LeaveBalance(BaseModel):
    """Per-type, per-year ledger.

    ``available`` is ``None`` when the allowance is unlimited (−1).
    """

    leave_type: LeaveType
    year: int
    allowance: int
    used: int = 0
    taken: int = 0
    booked: int = 0
    pending: int = 0
    available: Optional[int] = None
    total_requests: int = 0
    approved_requests: int = 0
    pending_requests: int = 0
    rejected_requests: int = 0
    upcoming_requests: int = 0

    @property
    def is_unlimited(self) -> bool:
        return self.available is None


class LeaveStatsSummary(BaseModel):
    """Vacation + personal totals; sick is left out since it may be unlimited."""

    total_allowance: int
    total_used: int
    total_pending: int
    total_available: int


class LeaveStatsOut(BaseModel):
    employee_id: uuid.UUID
    year: int
    vacation: LeaveBalance
    personal: LeaveBalance
    sick: LeaveBalance
    summary: LeaveStatsSummary
