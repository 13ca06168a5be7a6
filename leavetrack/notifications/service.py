"""Lifecycle notifications — sink interface and post-commit dispatch.

Services queue events on the session with ``queue_event``; they are handed
to the active sink only after the surrounding transaction commits. A
rollback drops them. Sink failures are logged and never propagate.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from leavetrack.common.audit import snapshot
from leavetrack.common.constants import AuditAction

logger = logging.getLogger(__name__)

_PENDING_KEY = "leavetrack.pending_notifications"

EMPLOYEE_FIELDS = ("id", "email", "name", "department_id")
REQUEST_FIELDS = (
    "id", "employee_id", "leave_type", "start_date", "end_date",
    "working_days", "status", "notes", "rejection_reason",
)


@dataclass(frozen=True)
class NotificationEvent:
    """Payload handed to the sink: ``{event_type, employee, request, resolver}``."""

    event_type: AuditAction
    employee: dict[str, Any]
    request: dict[str, Any]
    resolver: Optional[dict[str, Any]] = None
    occurred_at: Optional[datetime] = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["event_type"] = self.event_type.value
        return data


def build_event(
    event_type: AuditAction,
    employee,  # leavetrack.employees.models.Employee
    leave_request,  # leavetrack.leave.models.LeaveRequest
    resolver=None,
    *,
    occurred_at: Optional[datetime] = None,
    **extra: Any,
) -> NotificationEvent:
    """Snapshot the ORM objects now, while they are still loaded."""
    return NotificationEvent(
        event_type=event_type,
        employee=snapshot(employee, EMPLOYEE_FIELDS),
        request=snapshot(leave_request, REQUEST_FIELDS),
        resolver=snapshot(resolver, EMPLOYEE_FIELDS) if resolver is not None else None,
        occurred_at=occurred_at,
        extra=extra,
    )


# ── Sinks ───────────────────────────────────────────────────────────

class NotificationSink:
    """Interface for delivery channels (email, chat, webhooks...)."""

    def emit(self, event: NotificationEvent) -> None:
        raise NotImplementedError


class LoggingNotificationSink(NotificationSink):
    """Default sink: writes each event to the log."""

    def emit(self, event: NotificationEvent) -> None:
        logger.info(
            "Notification %s for employee=%s request=%s",
            event.event_type.value,
            event.employee.get("id"),
            event.request.get("id"),
        )


class RecordingNotificationSink(NotificationSink):
    """Keeps emitted events in memory."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def emit(self, event: NotificationEvent) -> None:
        self.events.append(event)


_sink: NotificationSink = LoggingNotificationSink()


def get_notification_sink() -> NotificationSink:
    return _sink


def set_notification_sink(sink: Optional[NotificationSink]) -> NotificationSink:
    """Install *sink* (``None`` restores the logging sink); returns the previous one."""
    global _sink
    previous = _sink
    _sink = sink if sink is not None else LoggingNotificationSink()
    return previous


# ── Queue + transaction hooks ───────────────────────────────────────

def queue_event(db: AsyncSession | Session, notification: NotificationEvent) -> None:
    """Schedule *notification* for delivery once *db* commits."""
    db.info.setdefault(_PENDING_KEY, []).append(notification)


def pending_events(db: AsyncSession | Session) -> list[NotificationEvent]:
    return list(db.info.get(_PENDING_KEY, []))


def dispatch(events: list[NotificationEvent]) -> int:
    """Best-effort delivery; returns how many events the sink accepted."""
    delivered = 0
    for item in events:
        try:
            _sink.emit(item)
            delivered += 1
        except Exception:
            logger.exception(
                "Notification sink failed for %s (request=%s)",
                item.event_type.value,
                item.request.get("id"),
            )
    return delivered


@event.listens_for(Session, "after_commit")
def _dispatch_after_commit(session: Session) -> None:
    events = session.info.pop(_PENDING_KEY, None)
    if events:
        dispatch(events)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session: Session) -> None:
    dropped = session.info.pop(_PENDING_KEY, None)
    if dropped:
        logger.debug("Discarded %d notification(s) after rollback", len(dropped))
