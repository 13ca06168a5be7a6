"""Leave router — request lifecycle, listings and balances.

All endpoints require authentication; admin-only transitions are enforced
by the service layer.
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import Principal, get_client_meta, get_current_principal
from leavetrack.common.audit import ClientMeta
from leavetrack.common.clock import Clock, get_clock
from leavetrack.common.constants import LeaveStatus, LeaveType
from leavetrack.common.pagination import PaginatedResponse, PaginationParams
from leavetrack.database import get_db
from leavetrack.dependencies import get_policy
from leavetrack.leave.schemas import (
    LeaveBalance,
    LeaveRejectRequest,
    LeaveReopenRequest,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatsOut,
)
from leavetrack.leave.service import LeaveService
from leavetrack.policy.schemas import PolicySettings

router = APIRouter(prefix="", tags=["leave"])


# ── POST /requests ──────────────────────────────────────────────────

@router.post("/requests", response_model=LeaveRequestOut, status_code=201)
async def create_request(
    body: LeaveRequestCreate,
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Submit a leave request (admins may pass ``employee_id``)."""
    return await LeaveService.create(
        db, principal, body, policy=policy, clock=clock, client=client,
    )


# ── GET /requests ───────────────────────────────────────────────────

@router.get("/requests", response_model=PaginatedResponse[LeaveRequestOut])
async def list_requests(
    employee_id: Optional[uuid.UUID] = Query(None),
    status: Optional[LeaveStatus] = Query(None),
    leave_type: Optional[LeaveType] = Query(None),
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    pagination: PaginationParams = Depends(),
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    db: AsyncSession = Depends(get_db),
):
    """Requests the caller may see under the current visibility mode."""
    rows, meta = await LeaveService.list_requests(
        db,
        principal,
        policy=policy,
        employee_id=employee_id,
        status=status,
        leave_type=leave_type,
        from_date=from_date,
        to_date=to_date,
        page=pagination.page,
        page_size=pagination.page_size,
    )
    return PaginatedResponse[LeaveRequestOut](data=rows, meta=meta)


# ── GET /requests/{id} ──────────────────────────────────────────────

@router.get("/requests/{request_id}", response_model=LeaveRequestOut)
async def get_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.get_request(db, principal, request_id, policy=policy)


# ── PATCH /requests/{id} ────────────────────────────────────────────

@router.patch("/requests/{request_id}", response_model=LeaveRequestOut)
async def edit_request(
    request_id: uuid.UUID,
    body: LeaveRequestUpdate,
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Edit a pending request (owner or admin)."""
    return await LeaveService.edit(
        db, principal, request_id, body, policy=policy, clock=clock, client=client,
    )


# ── DELETE /requests/{id} ───────────────────────────────────────────

@router.delete("/requests/{request_id}", status_code=204)
async def delete_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Delete an own pending request; the audit log keeps its content."""
    await LeaveService.delete(db, principal, request_id, clock=clock, client=client)
    return Response(status_code=204)


# ── POST /requests/{id}/cancel ──────────────────────────────────────

@router.post("/requests/{request_id}/cancel", response_model=LeaveRequestOut)
async def cancel_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.cancel(db, principal, request_id, clock=clock, client=client)


# ── POST /requests/{id}/approve ─────────────────────────────────────

@router.post("/requests/{request_id}/approve", response_model=LeaveRequestOut)
async def approve_request(
    request_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Approve a pending request (admin). 409 if it overlaps an approved one."""
    return await LeaveService.approve(db, principal, request_id, clock=clock, client=client)


# ── POST /requests/{id}/reject ──────────────────────────────────────

@router.post("/requests/{request_id}/reject", response_model=LeaveRequestOut)
async def reject_request(
    request_id: uuid.UUID,
    body: LeaveRejectRequest,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    return await LeaveService.reject(
        db, principal, request_id, body.reason, clock=clock, client=client,
    )


# ── POST /requests/{id}/reopen ──────────────────────────────────────

@router.post("/requests/{request_id}/reopen", response_model=LeaveRequestOut)
async def reopen_request(
    request_id: uuid.UUID,
    body: LeaveReopenRequest,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Send an approved / rejected request back to pending (admin)."""
    return await LeaveService.reopen(
        db, principal, request_id, body.reason, clock=clock, client=client,
    )


# ── GET /balance ────────────────────────────────────────────────────

@router.get("/balance", response_model=LeaveStatsOut)
async def leave_stats(
    employee_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """Per-type balances for the caller (admins may pass ``employee_id``)."""
    return await LeaveService.get_leave_stats(
        db, principal, policy=policy, today=clock.today(),
        employee_id=employee_id, year=year,
    )


# ── GET /balance/{leave_type} ───────────────────────────────────────

@router.get("/balance/{leave_type}", response_model=LeaveBalance)
async def leave_balance(
    leave_type: LeaveType,
    employee_id: Optional[uuid.UUID] = Query(None),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    stats = await LeaveService.get_leave_stats(
        db, principal, policy=policy, today=clock.today(),
        employee_id=employee_id, year=year,
    )
    return getattr(stats, leave_type.value)
