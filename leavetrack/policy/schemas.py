"""Policy Pydantic v2 schemas — typed snapshot and setting payloads."""

import uuid
from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from leavetrack.common.constants import (
    UNLIMITED_ALLOWANCE,
    ApprovalMode,
    LeaveType,
    VisibilityMode,
)


class PolicySettings(BaseModel):
    """Immutable, fully-typed view of every policy key.

    Resolved once per operation and passed explicitly to the lifecycle,
    the balance ledger and the visibility filter.
    """

    model_config = ConfigDict(frozen=True)

    visibility_mode: VisibilityMode = VisibilityMode.admin_only
    approval_mode: ApprovalMode = ApprovalMode.manual
    advance_notice_days: int = Field(0, ge=0, le=365)
    max_consecutive_days: int = Field(0, ge=0, le=365)
    vacation_allowance: int = Field(20, ge=1, le=365)
    personal_allowance: int = Field(10, ge=1, le=365)
    sick_allowance: int = Field(UNLIMITED_ALLOWANCE, ge=-1, le=365)

    def default_allowance(self, leave_type: LeaveType) -> int:
        return getattr(self, f"{LeaveType(leave_type).value}_allowance")

    def allowance_for(self, employee: Any, leave_type: LeaveType) -> int:
        """Employee override if set, otherwise the policy default."""
        override = employee.allowance_override(leave_type) if employee is not None else None
        return override if override is not None else self.default_allowance(leave_type)


class SettingUpdate(BaseModel):
    value: Union[str, int]
    description: Optional[str] = Field(None, max_length=500)


class SettingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    value: str
    description: Optional[str] = None
    is_default: bool = False
    updated_by: Optional[uuid.UUID] = None
    updated_at: Optional[datetime] = None
