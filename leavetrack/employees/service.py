"""Employee & department service layer — audited admin operations.

Every mutation writes an audit entry through ``leavetrack.common.audit.append``
in the caller's transaction.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import Principal, ensure_admin
from leavetrack.common import audit
from leavetrack.common.audit import ClientMeta
from leavetrack.common.clock import Clock, system_clock
from leavetrack.common.constants import (
    EMPLOYEE_STATUS_TRANSITIONS,
    AuditAction,
    EmployeeStatus,
    ResourceType,
    UserRole,
    VisibilityMode,
)
from leavetrack.common.exceptions import (
    ConflictError,
    ForbiddenException,
    InvalidStatusTransition,
    NotFoundException,
)
from leavetrack.common.pagination import PaginationMeta, paginate
from leavetrack.common.visibility import visibility_condition
from leavetrack.employees.models import Department, Employee
from leavetrack.employees.schemas import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    EmployeeAllowanceUpdate,
)

logger = logging.getLogger(__name__)

_ALLOWANCE_FIELDS = ("vacation_allowance", "personal_allowance", "sick_allowance")


async def _load_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
    result = await db.execute(select(Employee).where(Employee.id == employee_id))
    employee = result.scalars().first()
    if employee is None:
        raise NotFoundException("Employee", str(employee_id))
    return employee


async def _load_department(db: AsyncSession, department_id: uuid.UUID) -> Department:
    result = await db.execute(select(Department).where(Department.id == department_id))
    dept = result.scalars().first()
    if dept is None:
        raise NotFoundException("Department", str(department_id))
    return dept


# ═════════════════════════════════════════════════════════════════════
# EmployeeService
# ═════════════════════════════════════════════════════════════════════


class EmployeeService:
    """Registration, approval and admin management of employees."""

    @staticmethod
    async def get_employee(db: AsyncSession, employee_id: uuid.UUID) -> Employee:
        return await _load_employee(db, employee_id)

    # ── List (visibility-filtered) ──────────────────────────────────

    @staticmethod
    async def list_employees(
        db: AsyncSession,
        viewer: Principal,
        mode: VisibilityMode,
        *,
        status: Optional[EmployeeStatus] = None,
        department_id: Optional[uuid.UUID] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[Employee], PaginationMeta]:
        """Employees the viewer may see under *mode*, ordered by name."""

        query = (
            select(Employee)
            .where(
                visibility_condition(
                    viewer, mode, Employee.id, Employee.department_id,
                )
            )
            .order_by(Employee.name, Employee.id)
        )
        if status is not None:
            query = query.where(Employee.status == status)
        if department_id is not None:
            query = query.where(Employee.department_id == department_id)

        return await paginate(db, query, page, page_size)

    # ── Registration ────────────────────────────────────────────────

    @staticmethod
    async def register(
        db: AsyncSession,
        email: str,
        name: str,
        department_id: Optional[uuid.UUID] = None,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Employee:
        """Create a ``pending`` employee awaiting admin approval."""

        email = email.strip().lower()
        existing = await db.execute(select(Employee.id).where(Employee.email == email))
        if existing.scalar() is not None:
            raise ConflictError("email", email)
        if department_id is not None:
            await _load_department(db, department_id)

        now = clock.now()
        employee = Employee(
            email=email,
            name=name.strip(),
            role=UserRole.employee,
            status=EmployeeStatus.pending,
            department_id=department_id,
            created_at=now,
            updated_at=now,
        )
        db.add(employee)
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictError("email", email)

        await audit.append(
            db,
            AuditAction.employee_registered,
            actor_id=None,
            target_employee_id=employee.id,
            details={"email": email, "name": employee.name, "department_id": department_id},
            resource_type=ResourceType.employee,
            resource_id=employee.id,
            client=client,
            clock=clock,
        )
        logger.info("Employee %s registered (pending approval)", employee.id)
        return employee

    # ── Status ──────────────────────────────────────────────────────

    @staticmethod
    async def set_status(
        db: AsyncSession,
        principal: Principal,
        employee_id: uuid.UUID,
        new_status: EmployeeStatus,
        *,
        action: AuditAction = AuditAction.employee_status_changed,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Employee:
        """Move an employee along the allowed status transitions."""

        ensure_admin(principal, "change employee status")
        employee = await _load_employee(db, employee_id)
        new_status = EmployeeStatus(new_status)

        if employee.id == principal.user_id and new_status != EmployeeStatus.active:
            raise ForbiddenException("You cannot deactivate your own account.")

        old_status = employee.status
        if new_status not in EMPLOYEE_STATUS_TRANSITIONS.get(old_status, frozenset()):
            raise InvalidStatusTransition("Employee", old_status.value, new_status.value)

        employee.status = new_status
        employee.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            action,
            actor_id=principal.user_id,
            target_employee_id=employee.id,
            details={"old_status": old_status.value, "new_status": new_status.value},
            resource_type=ResourceType.employee,
            resource_id=employee.id,
            client=client,
            clock=clock,
        )
        logger.info(
            "Employee %s status %s -> %s by %s",
            employee.id, old_status.value, new_status.value, principal.user_id,
        )
        return employee

    @staticmethod
    async def approve_employee(
        db: AsyncSession,
        principal: Principal,
        employee_id: uuid.UUID,
        **kwargs: Any,
    ) -> Employee:
        """pending → active."""
        ensure_admin(principal, "approve employees")
        employee = await _load_employee(db, employee_id)
        if employee.status != EmployeeStatus.pending:
            raise InvalidStatusTransition("Employee", employee.status.value, "approved")
        return await EmployeeService.set_status(
            db, principal, employee_id, EmployeeStatus.active,
            action=AuditAction.employee_approved, **kwargs,
        )

    @staticmethod
    async def reject_employee(
        db: AsyncSession,
        principal: Principal,
        employee_id: uuid.UUID,
        **kwargs: Any,
    ) -> Employee:
        """pending → inactive."""
        ensure_admin(principal, "reject employees")
        employee = await _load_employee(db, employee_id)
        if employee.status != EmployeeStatus.pending:
            raise InvalidStatusTransition("Employee", employee.status.value, "rejected")
        return await EmployeeService.set_status(
            db, principal, employee_id, EmployeeStatus.inactive,
            action=AuditAction.employee_rejected, **kwargs,
        )

    # ── Role ────────────────────────────────────────────────────────

    @staticmethod
    async def update_role(
        db: AsyncSession,
        principal: Principal,
        employee_id: uuid.UUID,
        role: UserRole,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Employee:
        ensure_admin(principal, "change roles")
        role = UserRole(role)
        if employee_id == principal.user_id and role != UserRole.admin:
            raise ForbiddenException("You cannot remove your own admin role.")

        employee = await _load_employee(db, employee_id)
        old_role = employee.role
        employee.role = role
        employee.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            AuditAction.employee_role_changed,
            actor_id=principal.user_id,
            target_employee_id=employee.id,
            details={"old_role": old_role.value, "new_role": role.value},
            resource_type=ResourceType.employee,
            resource_id=employee.id,
            client=client,
            clock=clock,
        )
        return employee

    # ── Allowances ──────────────────────────────────────────────────

    @staticmethod
    async def update_allowances(
        db: AsyncSession,
        principal: Principal,
        employee_id: uuid.UUID,
        data: EmployeeAllowanceUpdate,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Employee:
        """Set per-type allowance overrides; always audited with before/after."""

        ensure_admin(principal, "change allowances")
        employee = await _load_employee(db, employee_id)

        changes = data.model_dump(exclude_unset=True)
        before = {f: getattr(employee, f) for f in _ALLOWANCE_FIELDS}
        for field, value in changes.items():
            setattr(employee, field, value)
        after = {f: getattr(employee, f) for f in _ALLOWANCE_FIELDS}

        employee.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            AuditAction.employee_allowance_updated,
            actor_id=principal.user_id,
            target_employee_id=employee.id,
            details={"before": before, "after": after, "changed": sorted(changes)},
            resource_type=ResourceType.employee,
            resource_id=employee.id,
            client=client,
            clock=clock,
        )
        return employee

    # ── Department assignment ───────────────────────────────────────

    @staticmethod
    async def assign_department(
        db: AsyncSession,
        principal: Principal,
        employee_id: uuid.UUID,
        department_id: Optional[uuid.UUID],
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Employee:
        ensure_admin(principal, "assign departments")
        employee = await _load_employee(db, employee_id)
        if department_id is not None:
            await _load_department(db, department_id)

        old_department_id = employee.department_id
        employee.department_id = department_id
        employee.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            AuditAction.employee_department_changed,
            actor_id=principal.user_id,
            target_employee_id=employee.id,
            details={
                "old_department_id": old_department_id,
                "new_department_id": department_id,
            },
            resource_type=ResourceType.employee,
            resource_id=employee.id,
            client=client,
            clock=clock,
        )
        return employee


# ═════════════════════════════════════════════════════════════════════
# DepartmentService
# ═════════════════════════════════════════════════════════════════════

_DEPARTMENT_FIELDS = ("id", "name", "location", "manager_id")


class DepartmentService:
    """Department CRUD, admin-only writes."""

    @staticmethod
    async def list_departments(db: AsyncSession) -> list[DepartmentResponse]:
        """All departments with member counts."""

        result = await db.execute(select(Department).order_by(Department.name))
        departments = result.scalars().all()

        count_result = await db.execute(
            select(Employee.department_id, func.count(Employee.id).label("cnt"))
            .where(Employee.department_id.is_not(None))
            .group_by(Employee.department_id)
        )
        counts = {row[0]: row[1] for row in count_result.all()}

        responses: list[DepartmentResponse] = []
        for dept in departments:
            resp = DepartmentResponse.model_validate(dept)
            resp.employee_count = counts.get(dept.id, 0)
            responses.append(resp)
        return responses

    @staticmethod
    async def get_department(db: AsyncSession, department_id: uuid.UUID) -> Department:
        return await _load_department(db, department_id)

    @staticmethod
    async def _ensure_unique_name(
        db: AsyncSession, name: str, exclude_id: Optional[uuid.UUID] = None,
    ) -> None:
        query = select(Department.id).where(func.lower(Department.name) == name.lower())
        if exclude_id is not None:
            query = query.where(Department.id != exclude_id)
        if (await db.execute(query)).scalar() is not None:
            raise ConflictError("name", name)

    @staticmethod
    async def create_department(
        db: AsyncSession,
        principal: Principal,
        data: DepartmentCreate,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Department:
        ensure_admin(principal, "create departments")
        name = data.name.strip()
        await DepartmentService._ensure_unique_name(db, name)
        if data.manager_id is not None:
            await _load_employee(db, data.manager_id)

        now = clock.now()
        dept = Department(
            name=name,
            location=data.location,
            manager_id=data.manager_id,
            created_at=now,
            updated_at=now,
        )
        db.add(dept)
        await db.flush()

        await audit.append(
            db,
            AuditAction.department_created,
            actor_id=principal.user_id,
            details={"department": audit.snapshot(dept, _DEPARTMENT_FIELDS)},
            resource_type=ResourceType.department,
            resource_id=dept.id,
            client=client,
            clock=clock,
        )
        return dept

    @staticmethod
    async def update_department(
        db: AsyncSession,
        principal: Principal,
        department_id: uuid.UUID,
        data: DepartmentUpdate,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Department:
        ensure_admin(principal, "update departments")
        dept = await _load_department(db, department_id)

        changes = data.model_dump(exclude_unset=True)
        if changes.get("name") is not None:
            changes["name"] = changes["name"].strip()
            await DepartmentService._ensure_unique_name(db, changes["name"], dept.id)
        elif "name" in changes:
            changes.pop("name")
        if changes.get("manager_id") is not None:
            await _load_employee(db, changes["manager_id"])

        before = audit.snapshot(dept, _DEPARTMENT_FIELDS)
        for field, value in changes.items():
            setattr(dept, field, value)
        dept.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            AuditAction.department_updated,
            actor_id=principal.user_id,
            details={"before": before, "after": audit.snapshot(dept, _DEPARTMENT_FIELDS)},
            resource_type=ResourceType.department,
            resource_id=dept.id,
            client=client,
            clock=clock,
        )
        return dept

    @staticmethod
    async def delete_department(
        db: AsyncSession,
        principal: Principal,
        department_id: uuid.UUID,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> None:
        """Delete a department; its members become unassigned."""

        ensure_admin(principal, "delete departments")
        dept = await _load_department(db, department_id)
        before = audit.snapshot(dept, _DEPARTMENT_FIELDS)

        result = await db.execute(
            update(Employee)
            .where(Employee.department_id == department_id)
            .values(department_id=None, updated_at=clock.now())
            .execution_options(synchronize_session="fetch")
        )
        unassigned = result.rowcount or 0

        await db.delete(dept)
        await db.flush()

        await audit.append(
            db,
            AuditAction.department_deleted,
            actor_id=principal.user_id,
            details={"department": before, "unassigned_employees": unassigned},
            resource_type=ResourceType.department,
            resource_id=department_id,
            client=client,
            clock=clock,
        )
        logger.info("Department %s deleted (%d members unassigned)", department_id, unassigned)
