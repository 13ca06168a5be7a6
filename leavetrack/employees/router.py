"""Employees & departments routers.

Registration is open; listing is visibility-filtered; every other write
is admin-only (enforced by the service layer).
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import Principal, get_client_meta, get_current_principal
from leavetrack.common.audit import ClientMeta
from leavetrack.common.clock import Clock, get_clock
from leavetrack.common.constants import EmployeeStatus
from leavetrack.common.pagination import PaginatedResponse, PaginationParams
from leavetrack.common.rate_limit import limiter
from leavetrack.database import get_db
from leavetrack.dependencies import get_policy
from leavetrack.employees.schemas import (
    DepartmentCreate,
    DepartmentResponse,
    DepartmentUpdate,
    EmployeeAllowanceUpdate,
    EmployeeDepartmentUpdate,
    EmployeeRegister,
    EmployeeResponse,
    EmployeeRoleUpdate,
    EmployeeStatusUpdate,
)
from leavetrack.employees.service import DepartmentService, EmployeeService
from leavetrack.policy.schemas import PolicySettings

employees_router = APIRouter(prefix="", tags=["employees"])
departments_router = APIRouter(prefix="", tags=["departments"])


# ═════════════════════════════════════════════════════════════════════
# Employees
# ═════════════════════════════════════════════════════════════════════

@employees_router.post("/register", response_model=EmployeeResponse, status_code=201)
@limiter.limit("10/minute")
async def register_employee(
    request: Request,
    body: EmployeeRegister,
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Self-registration; the account waits for admin approval."""
    return await EmployeeService.register(
        db, body.email, body.name, body.department_id, client=client, clock=clock,
    )


@employees_router.get("", response_model=PaginatedResponse[EmployeeResponse])
async def list_employees(
    status: Optional[EmployeeStatus] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    pagination: PaginationParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    db: AsyncSession = Depends(get_db),
):
    rows, meta = await EmployeeService.list_employees(
        db,
        principal,
        policy.visibility_mode,
        status=status,
        department_id=department_id,
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return PaginatedResponse[EmployeeResponse](
        data=[EmployeeResponse.model_validate(e) for e in rows], meta=meta,
    )


@employees_router.post("/{employee_id}/approve", response_model=EmployeeResponse)
async def approve_employee(
    employee_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.approve_employee(
        db, principal, employee_id, client=client, clock=clock,
    )


@employees_router.post("/{employee_id}/reject", response_model=EmployeeResponse)
async def reject_employee(
    employee_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.reject_employee(
        db, principal, employee_id, client=client, clock=clock,
    )


@employees_router.put("/{employee_id}/status", response_model=EmployeeResponse)
async def set_employee_status(
    employee_id: uuid.UUID,
    body: EmployeeStatusUpdate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Activate / deactivate an employee."""
    return await EmployeeService.set_status(
        db, principal, employee_id, body.status, client=client, clock=clock,
    )


@employees_router.put("/{employee_id}/role", response_model=EmployeeResponse)
async def set_employee_role(
    employee_id: uuid.UUID,
    body: EmployeeRoleUpdate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.update_role(
        db, principal, employee_id, body.role, client=client, clock=clock,
    )


@employees_router.put("/{employee_id}/allowances", response_model=EmployeeResponse)
async def set_employee_allowances(
    employee_id: uuid.UUID,
    body: EmployeeAllowanceUpdate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Per-employee allowance overrides (``null`` falls back to policy)."""
    return await EmployeeService.update_allowances(
        db, principal, employee_id, body, client=client, clock=clock,
    )


@employees_router.put("/{employee_id}/department", response_model=EmployeeResponse)
async def set_employee_department(
    employee_id: uuid.UUID,
    body: EmployeeDepartmentUpdate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    return await EmployeeService.assign_department(
        db, principal, employee_id, body.department_id, client=client, clock=clock,
    )


# ═════════════════════════════════════════════════════════════════════
# Departments
# ═════════════════════════════════════════════════════════════════════

@departments_router.get("", response_model=list[DepartmentResponse])
async def list_departments(
    _principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await DepartmentService.list_departments(db)


@departments_router.post("", response_model=DepartmentResponse, status_code=201)
async def create_department(
    body: DepartmentCreate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    dept = await DepartmentService.create_department(
        db, principal, body, client=client, clock=clock,
    )
    return DepartmentResponse.model_validate(dept)


@departments_router.patch("/{department_id}", response_model=DepartmentResponse)
async def update_department(
    department_id: uuid.UUID,
    body: DepartmentUpdate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    dept = await DepartmentService.update_department(
        db, principal, department_id, body, client=client, clock=clock,
    )
    return DepartmentResponse.model_validate(dept)


@departments_router.delete("/{department_id}", status_code=204)
async def delete_department(
    department_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Delete a department; its members become unassigned."""
    await DepartmentService.delete_department(
        db, principal, department_id, client=client, clock=clock,
    )
    return Response(status_code=204)
