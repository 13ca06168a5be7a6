"""Admin router — policy settings and the audit trail.

Settings can be read by any authenticated user; writes and audit queries
are admin-only.
"""

import uuid
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import (
    Principal,
    get_client_meta,
    get_current_principal,
    require_admin,
)
from leavetrack.common.audit import AuditLogPage, AuditService, ClientMeta
from leavetrack.common.clock import Clock, get_clock
from leavetrack.common.constants import AuditAction, ResourceType
from leavetrack.common.pagination import PaginationParams
from leavetrack.database import get_db
from leavetrack.dependencies import get_policy
from leavetrack.policy.schemas import PolicySettings, SettingResponse, SettingUpdate
from leavetrack.policy.service import PolicyService

router = APIRouter(prefix="", tags=["admin"])


# ═══════════════════════════════════════════════════════════════════
# SETTINGS
# ═══════════════════════════════════════════════════════════════════

@router.get("/settings", response_model=list[SettingResponse])
async def list_settings(
    _principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Every policy key with its stored or default value."""
    return await PolicyService.list_settings(db)


@router.get("/settings/effective", response_model=PolicySettings)
async def effective_policy(
    _principal: Principal = Depends(get_current_principal),
    policy: PolicySettings = Depends(get_policy),
):
    """The typed snapshot the lifecycle is using right now."""
    return policy


@router.put("/settings/{key}", response_model=SettingResponse)
async def update_setting(
    key: str,
    body: SettingUpdate,
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    client: ClientMeta = Depends(get_client_meta),
    db: AsyncSession = Depends(get_db),
):
    """Validate and store one policy key (admin)."""
    setting = await PolicyService.set_setting(
        db, principal, key, body.value, body.description, client=client, clock=clock,
    )
    return SettingResponse.model_validate(setting)


# ═══════════════════════════════════════════════════════════════════
# AUDIT
# ═══════════════════════════════════════════════════════════════════

@router.get("/audit", response_model=AuditLogPage)
async def query_audit_log(
    action: Optional[AuditAction] = Query(None),
    actor_id: Optional[uuid.UUID] = Query(None),
    target_employee_id: Optional[uuid.UUID] = Query(None),
    resource_type: Optional[ResourceType] = Query(None),
    resource_id: Optional[str] = Query(None),
    since: Optional[datetime] = Query(None),
    until: Optional[datetime] = Query(None),
    pagination: PaginationParams = Depends(),
    _admin: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Audit entries, newest first."""
    return await AuditService.query(
        db,
        action=action,
        actor_id=actor_id,
        target_employee_id=target_employee_id,
        resource_type=resource_type,
        resource_id=resource_id,
        since=since,
        until=until,
        page=pagination.page,
        page_size=pagination.page_size,
    )
