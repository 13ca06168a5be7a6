"""Auth dependencies — JWT validation into a verified Principal, RBAC checks.

Token issuance lives outside this service; the bearer token carries
``sub`` (employee id), ``role`` and ``department_id`` claims.
"""

from __future__ import annotations

import uuid
from typing import Optional

from fastapi import Depends, Request
from fastapi.exceptions import HTTPException
from jose import ExpiredSignatureError, JWTError, jwt
from pydantic import BaseModel, ConfigDict

from leavetrack.common.audit import ClientMeta
from leavetrack.common.constants import UserRole
from leavetrack.common.exceptions import ForbiddenException
from leavetrack.config import settings


class Principal(BaseModel):
    """The authenticated caller: ``(user_id, role, department_id)``."""

    model_config = ConfigDict(frozen=True)

    user_id: uuid.UUID
    role: UserRole = UserRole.employee
    department_id: Optional[uuid.UUID] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.admin


def _extract_bearer(request: Request) -> str:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header.")
    return auth_header[7:]


def principal_from_claims(payload: dict) -> Principal:
    """Build a Principal from decoded JWT claims."""
    try:
        user_id = uuid.UUID(str(payload["sub"]))
    except (KeyError, ValueError):
        raise HTTPException(status_code=401, detail="Token subject is missing or malformed.")

    role_str = payload.get("role", UserRole.employee.value)
    try:
        role = UserRole(role_str)
    except ValueError:
        role = UserRole.employee

    department_id: Optional[uuid.UUID] = None
    raw_dept = payload.get("department_id")
    if raw_dept:
        try:
            department_id = uuid.UUID(str(raw_dept))
        except ValueError:
            raise HTTPException(status_code=401, detail="Token department claim is malformed.")

    return Principal(user_id=user_id, role=role, department_id=department_id)


# ── Core dependency ─────────────────────────────────────────────────

async def get_current_principal(request: Request) -> Principal:
    """Validate the bearer JWT and return the caller's Principal."""
    token = _extract_bearer(request)

    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
    except ExpiredSignatureError:
        raise HTTPException(status_code=401, detail="Token has expired.")
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid token.")

    principal = principal_from_claims(payload)
    request.state.principal = principal
    return principal


# ── Role-based dependency ───────────────────────────────────────────

async def require_admin(
    principal: Principal = Depends(get_current_principal),
) -> Principal:
    """Dependency that lets only admin principals through."""
    if not principal.is_admin:
        raise ForbiddenException(
            detail=f"Role '{principal.role.value}' is not permitted. Required: ['admin'].",
        )
    return principal


def get_client_meta(request: Request) -> ClientMeta:
    """Caller IP / user agent for audit entries."""
    return ClientMeta(
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


def ensure_admin(principal: Principal, action: str = "perform this action") -> None:
    """Service-level guard for admin-only operations."""
    if not principal.is_admin:
        raise ForbiddenException(detail=f"Only administrators may {action}.")
