"""Employee and Department ORM models.

SQLAlchemy 2.0 async-compatible models with Mapped[] annotations.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from leavetrack.common.constants import EmployeeStatus, LeaveType, UserRole
from leavetrack.database import Base, UTCDateTime


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class Department(Base):
    """Organisational department."""

    __tablename__ = "departments"

    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(sa.String(150), unique=True, nullable=False)
    location: Mapped[Optional[str]] = mapped_column(sa.String(150))
    manager_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid,
        sa.ForeignKey(
            "employees.id",
            name="fk_department_manager",
            use_alter=True,
            ondelete="SET NULL",
        ),
    )
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    manager: Mapped[Optional[Employee]] = relationship(
        foreign_keys=[manager_id], lazy="raise",
    )
    employees: Mapped[list[Employee]] = relationship(
        back_populates="department",
        foreign_keys="Employee.department_id",
        lazy="raise",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return f"<Department {self.name!r}>"


# ═════════════════════════════════════════════════════════════════════
# Employee
# ═════════════════════════════════════════════════════════════════════


class Employee(Base):
    """Employee record: identity, role, status, department and allowances."""

    __tablename__ = "employees"

    # ── Primary key ─────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        sa.Uuid,
        primary_key=True,
        default=uuid.uuid4,
    )

    # ── Identity ────────────────────────────────────────────────────
    email: Mapped[str] = mapped_column(
        sa.String(255), unique=True, nullable=False,
    )
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)

    # ── Access ──────────────────────────────────────────────────────
    role: Mapped[UserRole] = mapped_column(
        sa.Enum(UserRole, name="user_role"),
        nullable=False,
        default=UserRole.employee,
    )
    status: Mapped[EmployeeStatus] = mapped_column(
        sa.Enum(EmployeeStatus, name="employee_status"),
        nullable=False,
        default=EmployeeStatus.pending,
    )

    # ── Organisation ────────────────────────────────────────────────
    department_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        sa.Uuid, sa.ForeignKey("departments.id", ondelete="SET NULL"),
    )

    # ── Allowances (NULL → policy default, sick −1 → unlimited) ─────
    vacation_allowance: Mapped[Optional[int]] = mapped_column(sa.Integer)
    personal_allowance: Mapped[Optional[int]] = mapped_column(sa.Integer)
    sick_allowance: Mapped[Optional[int]] = mapped_column(sa.Integer)

    # ── Timestamps ──────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=sa.func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime, server_default=sa.func.now(),
    )

    # ── Relationships ───────────────────────────────────────────────
    department: Mapped[Optional[Department]] = relationship(
        back_populates="employees", foreign_keys=[department_id], lazy="raise",
    )

    __table_args__ = (
        sa.Index("ix_employees_department_id", "department_id"),
        sa.Index("ix_employees_status", "status"),
    )

    def allowance_override(self, leave_type: LeaveType) -> Optional[int]:
        """The employee's own allowance for *leave_type*, if one is set."""
        return getattr(self, f"{LeaveType(leave_type).value}_allowance")

    def __repr__(self) -> str:
        return f"<Employee {self.email!r} ({self.role.value}, {self.status.value})>"
