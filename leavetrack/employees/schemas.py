"""Employee & department Pydantic v2 schemas — request / response validation.

Naming conventions:
  - *Create / *Update  → request bodies (write)
  - *Response          → response bodies (read)
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from leavetrack.common.constants import EmployeeStatus, UserRole


# ═════════════════════════════════════════════════════════════════════
# Department
# ═════════════════════════════════════════════════════════════════════


class DepartmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=150)
    location: Optional[str] = Field(None, max_length=150)
    manager_id: Optional[uuid.UUID] = None


class DepartmentUpdate(BaseModel):
    """Partial update; explicitly sent ``null`` clears location / manager."""

    name: Optional[str] = Field(None, min_length=1, max_length=150)
    location: Optional[str] = Field(None, max_length=150)
    manager_id: Optional[uuid.UUID] = None


class DepartmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    location: Optional[str] = None
    manager_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # Enriched by the service layer
    employee_count: int = 0


# ═════════════════════════════════════════════════════════════════════
# Employee: write schemas
# ═════════════════════════════════════════════════════════════════════


class EmployeeRegister(BaseModel):
    """Self-registration payload; the account starts as ``pending``."""

    email: EmailStr
    name: str = Field(..., min_length=1, max_length=255)
    department_id: Optional[uuid.UUID] = None


class EmployeeStatusUpdate(BaseModel):
    status: EmployeeStatus


class EmployeeRoleUpdate(BaseModel):
    role: UserRole


class EmployeeAllowanceUpdate(BaseModel):
    """Per-type allowances; omitted fields are left untouched, ``null`` resets to the policy default."""

    vacation_allowance: Optional[int] = Field(None, ge=0, le=365)
    personal_allowance: Optional[int] = Field(None, ge=0, le=365)
    sick_allowance: Optional[int] = Field(None, ge=-1, le=365)


class EmployeeDepartmentUpdate(BaseModel):
    department_id: Optional[uuid.UUID] = None


# ═════════════════════════════════════════════════════════════════════
# Employee: read schemas
# ═════════════════════════════════════════════════════════════════════


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    email: str
    name: str
    role: UserRole
    status: EmployeeStatus
    department_id: Optional[uuid.UUID] = None
    vacation_allowance: Optional[int] = None
    personal_allowance: Optional[int] = None
    sick_allowance: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
