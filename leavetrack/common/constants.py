"""Enums and constants for the leave tracker — matching PostgreSQL ENUM types."""

from __future__ import annotations

import enum


# ── Employees ───────────────────────────────────────────────────────

class UserRole(str, enum.Enum):
    employee = "employee"
    admin = "admin"


class EmployeeStatus(str, enum.Enum):
    pending = "pending"
    active = "active"
    inactive = "inactive"


EMPLOYEE_STATUS_TRANSITIONS: dict[EmployeeStatus, frozenset[EmployeeStatus]] = {
    EmployeeStatus.pending: frozenset({EmployeeStatus.active, EmployeeStatus.inactive}),
    EmployeeStatus.active: frozenset({EmployeeStatus.inactive}),
    EmployeeStatus.inactive: frozenset({EmployeeStatus.active}),
}


# ── Leave ───────────────────────────────────────────────────────────

class LeaveType(str, enum.Enum):
    vacation = "vacation"
    sick = "sick"
    personal = "personal"


class LeaveStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    cancelled = "cancelled"


TERMINAL_LEAVE_STATUSES = frozenset({
    LeaveStatus.approved,
    LeaveStatus.rejected,
    LeaveStatus.cancelled,
})

# Statuses an administrator may send back to pending
REOPENABLE_LEAVE_STATUSES = frozenset({LeaveStatus.approved, LeaveStatus.rejected})

# Allowance sentinel meaning "no limit" (sick leave)
UNLIMITED_ALLOWANCE = -1


# ── Policy ──────────────────────────────────────────────────────────

class VisibilityMode(str, enum.Enum):
    admin_only = "admin_only"
    department_only = "department_only"
    all_see_all = "all_see_all"


class ApprovalMode(str, enum.Enum):
    manual = "manual"
    auto = "auto"


# ── Audit ───────────────────────────────────────────────────────────

class AuditAction(str, enum.Enum):
    leave_request_created = "leave_request_created"
    leave_request_edited = "leave_request_edited"
    leave_request_cancelled = "leave_request_cancelled"
    leave_request_deleted = "leave_request_deleted"
    leave_request_approved = "leave_request_approved"
    leave_request_rejected = "leave_request_rejected"
    leave_request_reopened = "leave_request_reopened"
    setting_updated = "setting_updated"
    employee_registered = "employee_registered"
    employee_approved = "employee_approved"
    employee_rejected = "employee_rejected"
    employee_status_changed = "employee_status_changed"
    employee_role_changed = "employee_role_changed"
    employee_allowance_updated = "employee_allowance_updated"
    employee_department_changed = "employee_department_changed"
    department_created = "department_created"
    department_updated = "department_updated"
    department_deleted = "department_deleted"


class ResourceType(str, enum.Enum):
    leave_request = "leave_request"
    employee = "employee"
    department = "department"
    setting = "setting"


# ── Misc constants ──────────────────────────────────────────────────

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
