"""Leave request ORM model."""

from __future__ import annotations

import uuid
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavetrack.common.constants import LeaveStatus, LeaveType
from leavetrack.database import Base, UTCDateTime

if TYPE_CHECKING:
    from leavetrack.employees.models import Employee


class LeaveRequest(Base):
    """One leave request; status moves only through the lifecycle service."""

    __tablename__ = "leave_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False,
    )
    leave_type: Mapped[LeaveType] = mapped_column(
        sa.Enum(LeaveType, name="leave_type"), nullable=False,
    )
    start_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    end_date: Mapped[date] = mapped_column(sa.Date, nullable=False)
    working_days: Mapped[int] = mapped_column(sa.Integer, nullable=False)
    status: Mapped[LeaveStatus] = mapped_column(
        sa.Enum(LeaveStatus, name="leave_status"),
        nullable=False,
        default=LeaveStatus.pending,
    )
    notes: Mapped[Optional[str]] = mapped_column(sa.Text)
    rejection_reason: Mapped[Optional[str]] = mapped_column(sa.Text)

    # Sick leave: an uploaded artifact reference or a promise to send it later
    medical_certificate_ref: Mapped[Optional[str]] = mapped_column(sa.String(500))
    medical_certificate_deferred: Mapped[bool] = mapped_column(
        sa.Boolean, nullable=False, default=False,
    )

    resolved_by: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("employees.id", ondelete="SET NULL"),
    )
    resolved_at: Mapped[Optional[datetime]] = mapped_column(
        UTCDateTime,
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=sa.func.now(),
    )

    # Relationships
    employee: Mapped["Employee"] = relationship(foreign_keys=[employee_id], lazy="raise")
    resolver: Mapped[Optional["Employee"]] = relationship(foreign_keys=[resolved_by], lazy="raise")

    __table_args__ = (
        sa.CheckConstraint("start_date <= end_date", name="ck_leave_requests_date_order"),
        sa.Index("ix_leave_requests_employee_dates", "employee_id", "start_date", "end_date"),
        sa.Index("ix_leave_requests_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaveRequest {self.id} {self.leave_type.value} "
            f"{self.start_date}..{self.end_date} {self.status.value}>"
        )
