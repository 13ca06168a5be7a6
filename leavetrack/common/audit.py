"""Audit trail model, append helper and query service.

Entries are append-only: nothing in the codebase updates or deletes a row
of ``audit_logs``. Ordering is ``created_at`` with ``id`` (insertion
sequence) as the tie-breaker.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any, Optional, Union

import sqlalchemy as sa
from pydantic import BaseModel, ConfigDict
from pydantic_core import to_jsonable_python
from sqlalchemy import select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Mapped, mapped_column

from leavetrack.common.clock import Clock, system_clock
from leavetrack.common.constants import AuditAction, ResourceType
from leavetrack.common.pagination import PaginationMeta, paginate
from leavetrack.database import Base, UTCDateTime

JSONType = sa.JSON().with_variant(JSONB(), "postgresql")


# ── Immutable audit-log table ───────────────────────────────────────

class AuditLogEntry(Base):
    """Immutable log of every state-changing action."""

    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(
        sa.BigInteger().with_variant(sa.Integer(), "sqlite"),
        primary_key=True,
        autoincrement=True,
    )
    action: Mapped[str] = mapped_column(sa.String(64), nullable=False)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True)
    target_employee_id: Mapped[Optional[uuid.UUID]] = mapped_column(sa.Uuid, nullable=True)
    resource_type: Mapped[Optional[str]] = mapped_column(sa.String(50))
    resource_id: Mapped[Optional[str]] = mapped_column(sa.String(64))
    details: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    ip_address: Mapped[Optional[str]] = mapped_column(sa.String(45))
    user_agent: Mapped[Optional[str]] = mapped_column(sa.Text)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime, nullable=False,
    )

    __table_args__ = (
        sa.Index("ix_audit_logs_actor_id", "actor_id"),
        sa.Index("ix_audit_logs_target", "target_employee_id"),
        sa.Index("ix_audit_logs_resource", "resource_type", "resource_id"),
        sa.Index("ix_audit_logs_created_at", "created_at"),
        sa.Index("ix_audit_logs_action", "action"),
    )

    def __repr__(self) -> str:
        return (
            f"<AuditLogEntry #{self.id} {self.action} "
            f"{self.resource_type}/{self.resource_id} by {self.actor_id}>"
        )


@dataclass(frozen=True)
class ClientMeta:
    """Network metadata of the caller, when the API layer knows it."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def _jsonable(details: Optional[dict[str, Any]]) -> dict[str, Any]:
    return to_jsonable_python(details or {})


def snapshot(obj: Any, fields: tuple[str, ...]) -> dict[str, Any]:
    """JSON-ready copy of selected attributes of an ORM object."""
    out: dict[str, Any] = {}
    for name in fields:
        value = getattr(obj, name, None)
        if isinstance(value, (datetime, date, time)):
            value = value.isoformat()
        elif isinstance(value, uuid.UUID):
            value = str(value)
        elif hasattr(value, "value"):
            value = value.value
        out[name] = value
    return out


# ── Append ──────────────────────────────────────────────────────────

async def append(
    session: AsyncSession,
    action: Union[AuditAction, str],
    *,
    actor_id: Optional[uuid.UUID] = None,
    target_employee_id: Optional[uuid.UUID] = None,
    details: Optional[dict[str, Any]] = None,
    resource_type: Optional[Union[ResourceType, str]] = None,
    resource_id: Optional[Any] = None,
    client: Optional[ClientMeta] = None,
    clock: Clock = system_clock,
) -> AuditLogEntry:
    """
    Create and flush an audit entry in the caller's transaction.

    Storage errors propagate: a state change must never commit without
    its audit entry.

    Args:
        session: Async SQLAlchemy session (the same one carrying the change).
        action: lifecycle / admin event tag.
        actor_id: who performed it; ``None`` for system actions.
        target_employee_id: employee the action concerns.
        details: structured payload (before/after snapshots etc.).
        resource_type: e.g. "leave_request", "setting".
        resource_id: id or key of the affected resource.
        client: caller IP / user agent.
        clock: timestamp source.
    """
    entry = AuditLogEntry(
        action=action.value if isinstance(action, AuditAction) else str(action),
        actor_id=actor_id,
        target_employee_id=target_employee_id,
        details=_jsonable(details),
        resource_type=(
            resource_type.value
            if isinstance(resource_type, ResourceType)
            else resource_type
        ),
        resource_id=str(resource_id) if resource_id is not None else None,
        ip_address=client.ip_address if client else None,
        user_agent=client.user_agent if client else None,
        created_at=clock.now(),
    )
    session.add(entry)
    await session.flush()
    return entry


# ── Query ───────────────────────────────────────────────────────────

class AuditLogOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    action: str
    actor_id: Optional[uuid.UUID] = None
    target_employee_id: Optional[uuid.UUID] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: dict[str, Any]
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditLogPage(BaseModel):
    data: list[AuditLogOut]
    meta: PaginationMeta


class AuditService:
    """Read side of the audit trail."""

    @staticmethod
    async def query(
        db: AsyncSession,
        *,
        action: Optional[Union[AuditAction, str]] = None,
        actor_id: Optional[uuid.UUID] = None,
        target_employee_id: Optional[uuid.UUID] = None,
        resource_type: Optional[Union[ResourceType, str]] = None,
        resource_id: Optional[Any] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> AuditLogPage:
        """Filtered audit entries, newest first."""

        query = select(AuditLogEntry).order_by(
            AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc(),
        )
        if action is not None:
            query = query.where(AuditLogEntry.action == AuditAction(action).value)
        if actor_id is not None:
            query = query.where(AuditLogEntry.actor_id == actor_id)
        if target_employee_id is not None:
            query = query.where(AuditLogEntry.target_employee_id == target_employee_id)
        if resource_type is not None:
            query = query.where(
                AuditLogEntry.resource_type == ResourceType(resource_type).value
            )
        if resource_id is not None:
            query = query.where(AuditLogEntry.resource_id == str(resource_id))
        if since is not None:
            query = query.where(AuditLogEntry.created_at >= since)
        if until is not None:
            query = query.where(AuditLogEntry.created_at <= until)

        rows, meta = await paginate(db, query, page, page_size)
        return AuditLogPage(
            data=[AuditLogOut.model_validate(r) for r in rows],
            meta=meta,
        )

    @staticmethod
    async def history(
        db: AsyncSession,
        resource_type: Union[ResourceType, str],
        resource_id: Any,
    ) -> list[AuditLogEntry]:
        """Every entry for one resource in causal (oldest-first) order."""
        result = await db.execute(
            select(AuditLogEntry)
            .where(
                AuditLogEntry.resource_type == ResourceType(resource_type).value,
                AuditLogEntry.resource_id == str(resource_id),
            )
            .order_by(AuditLogEntry.created_at.asc(), AuditLogEntry.id.asc())
        )
        return list(result.scalars().all())
