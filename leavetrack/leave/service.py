"""Leave service layer — request lifecycle, visibility-filtered reads, balances.

Business logic:
  - Create / Edit with working-day recomputation, sick-certificate,
    past-date, advance-notice, max-length and allowance checks
  - Cancel / Delete by the owner while pending (Delete keeps a full
    snapshot in the audit trail)
  - Approve / Reject / Reopen by admins; Approve re-checks overlap with
    approved requests under a per-employee row lock
  - Auto-approval when the policy approval mode is ``auto``
  - Balance ledger and per-type statistics

Every transition writes its audit entry in the same transaction and
queues a notification that is delivered after commit.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, timedelta
from typing import AbstractSet, Optional

from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from leavetrack.auth.dependencies import Principal, ensure_admin
from leavetrack.common import audit
from leavetrack.common.audit import ClientMeta
from leavetrack.common.clock import Clock, system_clock
from leavetrack.common.constants import (
    REOPENABLE_LEAVE_STATUSES,
    UNLIMITED_ALLOWANCE,
    ApprovalMode,
    AuditAction,
    EmployeeStatus,
    LeaveStatus,
    LeaveType,
    ResourceType,
)
from leavetrack.common.exceptions import (
    AdvanceNoticeRequired,
    ForbiddenException,
    InsufficientAllowance,
    MaxConsecutiveDaysExceeded,
    MedicalCertificateRequired,
    NoWorkingDays,
    NotCancellable,
    NotDeletable,
    NotEditable,
    NotFoundException,
    NotPending,
    NotReopenable,
    OverlapConflict,
    PastDateNotAllowed,
)
from leavetrack.common.pagination import PaginationMeta, paginate
from leavetrack.common.visibility import can_see, visibility_condition
from leavetrack.config import settings
from leavetrack.employees.models import Employee
from leavetrack.leave.balance import compute_balance, summarize
from leavetrack.leave.calendar import working_days
from leavetrack.leave.models import LeaveRequest
from leavetrack.leave.overlap import find_overlapping, has_approved_overlap
from leavetrack.leave.schemas import (
    CertificateInfo,
    LeaveBalance,
    LeaveRequestCreate,
    LeaveRequestOut,
    LeaveRequestUpdate,
    LeaveStatsOut,
    OverlapWarning,
)
from leavetrack.notifications.service import build_event, queue_event
from leavetrack.policy.schemas import PolicySettings

logger = logging.getLogger(__name__)

# Fields captured in audit payloads and delete snapshots
REQUEST_SNAPSHOT_FIELDS = (
    "id", "employee_id", "leave_type", "start_date", "end_date",
    "working_days", "status", "notes", "rejection_reason",
    "medical_certificate_ref", "medical_certificate_deferred",
    "resolved_by", "resolved_at", "created_at", "updated_at",
)
EDITABLE_FIELDS = (
    "leave_type", "start_date", "end_date", "notes",
    "medical_certificate_ref", "medical_certificate_deferred",
)
# Types bound by advance-notice and max-length rules
PLANNED_LEAVE_TYPES = frozenset({LeaveType.vacation, LeaveType.personal})


# ═════════════════════════════════════════════════════════════════════
# LeaveService
# ═════════════════════════════════════════════════════════════════════


class LeaveService:
    """Async leave-request lifecycle operations."""

    # ─────────────────────────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    def _weekend(weekend_days: Optional[AbstractSet[int]]) -> AbstractSet[int]:
        return weekend_days if weekend_days is not None else settings.weekend_days

    @staticmethod
    def _employee_query(employee_id: uuid.UUID, *, for_update: bool = False) -> Select:
        query = select(Employee).where(Employee.id == employee_id)
        if for_update:
            query = query.with_for_update()
        return query

    @staticmethod
    async def _get_employee(
        db: AsyncSession,
        employee_id: uuid.UUID,
        *,
        for_update: bool = False,
    ) -> Employee:
        result = await db.execute(
            LeaveService._employee_query(employee_id, for_update=for_update)
        )
        employee = result.scalars().first()
        if employee is None:
            raise NotFoundException("Employee", str(employee_id))
        return employee

    @staticmethod
    async def _get_request(
        db: AsyncSession,
        request_id: uuid.UUID,
        *,
        refresh: bool = False,
    ) -> LeaveRequest:
        query = (
            select(LeaveRequest)
            .where(LeaveRequest.id == request_id)
            .options(selectinload(LeaveRequest.employee))
        )
        if refresh:
            query = query.execution_options(populate_existing=True)
        result = await db.execute(query)
        req = result.scalars().first()
        if req is None:
            raise NotFoundException("LeaveRequest", str(request_id))
        return req

    @staticmethod
    async def _get_resolver(db: AsyncSession, principal: Principal) -> Optional[Employee]:
        result = await db.execute(select(Employee).where(Employee.id == principal.user_id))
        return result.scalars().first()

    @staticmethod
    def _build_response(
        req: LeaveRequest,
        employee: Optional[Employee] = None,
        warning: Optional[OverlapWarning] = None,
    ) -> LeaveRequestOut:
        out = LeaveRequestOut.model_validate(req)
        if employee is not None:
            out.department_id = employee.department_id
        out.overlap_warning = warning
        return out

    @staticmethod
    async def _overlap_warning(
        db: AsyncSession,
        req: LeaveRequest,
    ) -> Optional[OverlapWarning]:
        """Courtesy check against the owner's other pending/approved requests."""
        if req.status != LeaveStatus.pending:
            return None
        others = await find_overlapping(
            db, req.employee_id, req.start_date, req.end_date,
            exclude_request_id=req.id,
        )
        if not others:
            return None
        approved = sum(1 for o in others if o.status == LeaveStatus.approved)
        return OverlapWarning(
            request_ids=[o.id for o in others],
            message=(
                f"Overlaps {len(others)} other request(s) "
                f"({approved} approved); approval will be blocked while an "
                f"approved request covers the same days."
            ),
        )

    @staticmethod
    def _validate_rules(
        leave_type: LeaveType,
        start: date,
        end: date,
        has_certificate: bool,
        *,
        policy: PolicySettings,
        today: date,
        weekend: AbstractSet[int],
        check_dates: bool = True,
    ) -> int:
        """Run the synchronous field rules; return the recomputed working days."""

        days = working_days(start, end, weekend_days=weekend)
        if days == 0:
            raise NoWorkingDays()

        if leave_type == LeaveType.sick and not has_certificate:
            raise MedicalCertificateRequired()

        if check_dates:
            if leave_type == LeaveType.vacation and start < today:
                raise PastDateNotAllowed(start)
            if leave_type in PLANNED_LEAVE_TYPES and policy.advance_notice_days > 0:
                earliest = today + timedelta(days=policy.advance_notice_days)
                if start < earliest:
                    raise AdvanceNoticeRequired(policy.advance_notice_days, earliest)

        if (
            leave_type in PLANNED_LEAVE_TYPES
            and policy.max_consecutive_days > 0
            and days > policy.max_consecutive_days
        ):
            raise MaxConsecutiveDaysExceeded(days, policy.max_consecutive_days)

        return days

    @staticmethod
    async def _check_allowance(
        db: AsyncSession,
        employee: Employee,
        leave_type: LeaveType,
        start: date,
        requested: int,
        *,
        policy: PolicySettings,
        today: date,
        weekend: AbstractSet[int],
        exclude_request_id: Optional[uuid.UUID] = None,
    ) -> None:
        allowance = policy.allowance_for(employee, leave_type)
        if allowance == UNLIMITED_ALLOWANCE:
            return

        requests = await LeaveService._requests_for_year(
            db, employee.id, start.year, leave_type=leave_type,
        )
        requests = [r for r in requests if r.id != exclude_request_id]
        balance = compute_balance(
            requests, leave_type, start.year, allowance, today, weekend_days=weekend,
        )
        if requested > (balance.available or 0):
            raise InsufficientAllowance(leave_type.value, requested, balance.available or 0)

    @staticmethod
    async def _requests_for_year(
        db: AsyncSession,
        employee_id: uuid.UUID,
        year: int,
        *,
        leave_type: Optional[LeaveType] = None,
    ) -> list[LeaveRequest]:
        query = select(LeaveRequest).where(
            LeaveRequest.employee_id == employee_id,
            LeaveRequest.start_date >= date(year, 1, 1),
            LeaveRequest.start_date <= date(year, 12, 31),
        )
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def _apply_approval(
        db: AsyncSession,
        req: LeaveRequest,
        *,
        resolver_id: Optional[uuid.UUID],
        clock: Clock,
        client: Optional[ClientMeta],
        auto: bool = False,
    ) -> None:
        """Overlap check + status write + audit, under the employee row lock.

        The caller must already hold the lock on ``req.employee_id``.
        """
        if await has_approved_overlap(
            db, req.employee_id, req.start_date, req.end_date,
            exclude_request_id=req.id,
        ):
            raise OverlapConflict(
                f"Approving {req.start_date.isoformat()}..{req.end_date.isoformat()} "
                f"would overlap an approved request for the same employee."
            )

        now = clock.now()
        req.status = LeaveStatus.approved
        req.resolved_by = resolver_id
        req.resolved_at = now
        req.rejection_reason = None
        req.updated_at = now
        await db.flush()

        details = {
            "previous_status": LeaveStatus.pending.value,
            "new_status": LeaveStatus.approved.value,
            "request": audit.snapshot(req, REQUEST_SNAPSHOT_FIELDS),
        }
        if auto:
            details["auto_approved"] = True
        await audit.append(
            db,
            AuditAction.leave_request_approved,
            actor_id=resolver_id,
            target_employee_id=req.employee_id,
            details=details,
            resource_type=ResourceType.leave_request,
            resource_id=req.id,
            client=client,
            clock=clock,
        )

    # ─────────────────────────────────────────────────────────────────
    # Create
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def create(
        db: AsyncSession,
        principal: Principal,
        data: LeaveRequestCreate,
        *,
        policy: PolicySettings,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
        weekend_days: Optional[AbstractSet[int]] = None,
    ) -> LeaveRequestOut:
        """Submit a request (pending, or approved at once in auto mode)."""

        weekend = LeaveService._weekend(weekend_days)
        today = clock.today()

        owner_id = data.employee_id or principal.user_id
        if owner_id != principal.user_id and not principal.is_admin:
            raise ForbiddenException("You can only create leave requests for yourself.")

        employee = await LeaveService._get_employee(db, owner_id)
        if employee.status != EmployeeStatus.active:
            raise ForbiddenException(
                f"Employee account is {employee.status.value}; only active employees can request leave."
            )

        certificate = data.certificate or CertificateInfo()
        days = LeaveService._validate_rules(
            data.leave_type, data.start_date, data.end_date, certificate.is_present,
            policy=policy, today=today, weekend=weekend,
        )
        await LeaveService._check_allowance(
            db, employee, data.leave_type, data.start_date, days,
            policy=policy, today=today, weekend=weekend,
        )

        now = clock.now()
        is_sick = data.leave_type == LeaveType.sick
        req = LeaveRequest(
            id=uuid.uuid4(),
            employee_id=employee.id,
            leave_type=data.leave_type,
            start_date=data.start_date,
            end_date=data.end_date,
            working_days=days,
            status=LeaveStatus.pending,
            notes=data.notes,
            medical_certificate_ref=certificate.reference if is_sick else None,
            medical_certificate_deferred=certificate.deferred if is_sick else False,
            created_at=now,
            updated_at=now,
        )
        db.add(req)
        await db.flush()

        await audit.append(
            db,
            AuditAction.leave_request_created,
            actor_id=principal.user_id,
            target_employee_id=employee.id,
            details={
                "request": audit.snapshot(req, REQUEST_SNAPSHOT_FIELDS),
                "on_behalf": owner_id != principal.user_id,
            },
            resource_type=ResourceType.leave_request,
            resource_id=req.id,
            client=client,
            clock=clock,
        )
        queue_event(db, build_event(
            AuditAction.leave_request_created, employee, req, occurred_at=now,
        ))
        logger.info(
            "Leave request %s created for %s (%s, %d day(s))",
            req.id, employee.id, req.leave_type.value, days,
        )

        if policy.approval_mode == ApprovalMode.auto:
            await LeaveService._auto_approve(db, req, clock=clock, client=client)

        warning = await LeaveService._overlap_warning(db, req)
        return LeaveService._build_response(req, employee, warning)

    @staticmethod
    async def _auto_approve(
        db: AsyncSession,
        req: LeaveRequest,
        *,
        clock: Clock,
        client: Optional[ClientMeta],
    ) -> None:
        """System approval; a request that would overlap stays pending for an admin."""
        employee = await LeaveService._get_employee(db, req.employee_id, for_update=True)
        try:
            await LeaveService._apply_approval(
                db, req, resolver_id=None, clock=clock, client=client, auto=True,
            )
        except OverlapConflict:
            logger.info(
                "Auto-approval skipped for %s: overlaps an approved request", req.id,
            )
            return
        queue_event(db, build_event(
            AuditAction.leave_request_approved, employee, req,
            occurred_at=req.resolved_at, auto_approved=True,
        ))
        logger.info("Leave request %s auto-approved", req.id)

    # ─────────────────────────────────────────────────────────────────
    # Edit
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def edit(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        data: LeaveRequestUpdate,
        *,
        policy: PolicySettings,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
        weekend_days: Optional[AbstractSet[int]] = None,
    ) -> LeaveRequestOut:
        """Change a pending request; always audited, even with no changes."""

        weekend = LeaveService._weekend(weekend_days)
        today = clock.today()

        req = await LeaveService._get_request(db, request_id)
        if req.employee_id != principal.user_id and not principal.is_admin:
            raise NotEditable("You can only edit your own leave requests.")
        if req.status != LeaveStatus.pending:
            raise NotEditable(f"Leave request is already {req.status.value}.")

        before = audit.snapshot(req, EDITABLE_FIELDS + ("working_days",))
        changes = data.model_dump(exclude_unset=True, exclude={"certificate"})

        leave_type = LeaveType(changes.get("leave_type") or req.leave_type)
        start = changes.get("start_date") or req.start_date
        end = changes.get("end_date") or req.end_date
        notes = changes["notes"] if "notes" in changes else req.notes

        if leave_type == LeaveType.sick:
            if data.certificate is not None:
                cert_ref = data.certificate.reference
                cert_deferred = data.certificate.deferred
            else:
                cert_ref = req.medical_certificate_ref
                cert_deferred = req.medical_certificate_deferred
        else:
            cert_ref, cert_deferred = None, False

        dates_changed = (
            start != req.start_date
            or end != req.end_date
            or leave_type != req.leave_type
        )
        days = LeaveService._validate_rules(
            leave_type, start, end, bool(cert_ref) or bool(cert_deferred),
            policy=policy, today=today, weekend=weekend,
            check_dates=dates_changed,
        )
        employee = req.employee
        if dates_changed:
            await LeaveService._check_allowance(
                db, employee, leave_type, start, days,
                policy=policy, today=today, weekend=weekend,
                exclude_request_id=req.id,
            )

        req.leave_type = leave_type
        req.start_date = start
        req.end_date = end
        req.notes = notes
        req.medical_certificate_ref = cert_ref
        req.medical_certificate_deferred = cert_deferred
        req.working_days = days
        req.updated_at = clock.now()
        await db.flush()

        after = audit.snapshot(req, EDITABLE_FIELDS + ("working_days",))
        changed = sorted(k for k in after if after[k] != before[k])
        await audit.append(
            db,
            AuditAction.leave_request_edited,
            actor_id=principal.user_id,
            target_employee_id=req.employee_id,
            details={"before": before, "after": after, "changed": changed},
            resource_type=ResourceType.leave_request,
            resource_id=req.id,
            client=client,
            clock=clock,
        )
        logger.info("Leave request %s edited (changed: %s)", req.id, changed or "nothing")

        warning = await LeaveService._overlap_warning(db, req)
        return LeaveService._build_response(req, employee, warning)

    # ─────────────────────────────────────────────────────────────────
    # Cancel / Delete (owner paths)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def cancel(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        *,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
    ) -> LeaveRequestOut:
        """Pending → cancelled, by the owner or an admin."""

        req = await LeaveService._get_request(db, request_id)
        if req.employee_id != principal.user_id and not principal.is_admin:
            raise NotCancellable("You can only cancel your own leave requests.")
        if req.status != LeaveStatus.pending:
            raise NotCancellable(f"Leave request is already {req.status.value}.")

        req.status = LeaveStatus.cancelled
        req.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            AuditAction.leave_request_cancelled,
            actor_id=principal.user_id,
            target_employee_id=req.employee_id,
            details={
                "previous_status": LeaveStatus.pending.value,
                "new_status": LeaveStatus.cancelled.value,
                "cancelled_by_admin": req.employee_id != principal.user_id,
            },
            resource_type=ResourceType.leave_request,
            resource_id=req.id,
            client=client,
            clock=clock,
        )
        logger.info("Leave request %s cancelled by %s", req.id, principal.user_id)
        return LeaveService._build_response(req, req.employee)

    @staticmethod
    async def delete(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        *,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
    ) -> None:
        """Hard-delete a pending request; the audit entry keeps the full row."""

        req = await LeaveService._get_request(db, request_id)
        if req.employee_id != principal.user_id:
            raise NotDeletable("Only the owner can delete a leave request.")
        if req.status != LeaveStatus.pending:
            raise NotDeletable(f"Leave request is already {req.status.value}.")

        previous = audit.snapshot(req, REQUEST_SNAPSHOT_FIELDS)
        employee_id = req.employee_id
        await db.delete(req)
        await db.flush()

        await audit.append(
            db,
            AuditAction.leave_request_deleted,
            actor_id=principal.user_id,
            target_employee_id=employee_id,
            details={"previous_request": previous},
            resource_type=ResourceType.leave_request,
            resource_id=request_id,
            client=client,
            clock=clock,
        )
        logger.info("Leave request %s deleted by owner", request_id)

    # ─────────────────────────────────────────────────────────────────
    # Approve / Reject / Reopen (admin paths)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def approve(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        *,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
    ) -> LeaveRequestOut:
        """Pending → approved; blocked by any overlapping approved request."""

        ensure_admin(principal, "approve leave requests")
        req = await LeaveService._get_request(db, request_id)
        if req.employee_id == principal.user_id:
            raise ForbiddenException("You cannot approve your own leave request.")

        # Serialise approvals for this employee, then re-read the request
        employee = await LeaveService._get_employee(db, req.employee_id, for_update=True)
        req = await LeaveService._get_request(db, request_id, refresh=True)
        if req.status != LeaveStatus.pending:
            raise NotPending(f"Leave request is already {req.status.value}.")

        await LeaveService._apply_approval(
            db, req, resolver_id=principal.user_id, clock=clock, client=client,
        )

        resolver = await LeaveService._get_resolver(db, principal)
        queue_event(db, build_event(
            AuditAction.leave_request_approved, employee, req, resolver,
            occurred_at=req.resolved_at,
        ))
        logger.info("Leave request %s approved by %s", req.id, principal.user_id)
        return LeaveService._build_response(req, employee)

    @staticmethod
    async def reject(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        reason: Optional[str] = None,
        *,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
    ) -> LeaveRequestOut:
        """Pending → rejected, with an optional reason."""

        ensure_admin(principal, "reject leave requests")
        req = await LeaveService._get_request(db, request_id)
        if req.employee_id == principal.user_id:
            raise ForbiddenException("You cannot reject your own leave request.")
        if req.status != LeaveStatus.pending:
            raise NotPending(f"Leave request is already {req.status.value}.")

        now = clock.now()
        req.status = LeaveStatus.rejected
        req.resolved_by = principal.user_id
        req.resolved_at = now
        req.rejection_reason = reason
        req.updated_at = now
        await db.flush()

        await audit.append(
            db,
            AuditAction.leave_request_rejected,
            actor_id=principal.user_id,
            target_employee_id=req.employee_id,
            details={
                "previous_status": LeaveStatus.pending.value,
                "new_status": LeaveStatus.rejected.value,
                "reason": reason,
            },
            resource_type=ResourceType.leave_request,
            resource_id=req.id,
            client=client,
            clock=clock,
        )

        resolver = await LeaveService._get_resolver(db, principal)
        queue_event(db, build_event(
            AuditAction.leave_request_rejected, req.employee, req, resolver,
            occurred_at=now,
        ))
        logger.info("Leave request %s rejected by %s", req.id, principal.user_id)
        return LeaveService._build_response(req, req.employee)

    @staticmethod
    async def reopen(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        reason: Optional[str] = None,
        *,
        clock: Clock = system_clock,
        client: Optional[ClientMeta] = None,
    ) -> LeaveRequestOut:
        """Administrative override: approved / rejected → pending."""

        ensure_admin(principal, "reopen leave requests")
        req = await LeaveService._get_request(db, request_id)
        if req.status not in REOPENABLE_LEAVE_STATUSES:
            raise NotReopenable(
                f"Only approved or rejected requests can be reopened (status: {req.status.value})."
            )

        previous = {
            "previous_status": req.status.value,
            "previous_resolved_by": req.resolved_by,
            "previous_resolved_at": req.resolved_at,
            "previous_rejection_reason": req.rejection_reason,
        }
        req.status = LeaveStatus.pending
        req.resolved_by = None
        req.resolved_at = None
        req.rejection_reason = None
        req.updated_at = clock.now()
        await db.flush()

        await audit.append(
            db,
            AuditAction.leave_request_reopened,
            actor_id=principal.user_id,
            target_employee_id=req.employee_id,
            details={**previous, "new_status": LeaveStatus.pending.value, "reason": reason},
            resource_type=ResourceType.leave_request,
            resource_id=req.id,
            client=client,
            clock=clock,
        )
        logger.info(
            "Leave request %s reopened (%s -> pending) by %s",
            req.id, previous["previous_status"], principal.user_id,
        )
        warning = await LeaveService._overlap_warning(db, req)
        return LeaveService._build_response(req, req.employee, warning)

    # ─────────────────────────────────────────────────────────────────
    # Reads (visibility-filtered)
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_request(
        db: AsyncSession,
        principal: Principal,
        request_id: uuid.UUID,
        *,
        policy: PolicySettings,
    ) -> LeaveRequestOut:
        """Single request; invisible requests read as not found."""

        req = await LeaveService._get_request(db, request_id)
        employee = req.employee
        if not can_see(principal, req.employee_id, employee.department_id, policy.visibility_mode):
            raise NotFoundException("LeaveRequest", str(request_id))
        warning = await LeaveService._overlap_warning(db, req)
        return LeaveService._build_response(req, employee, warning)

    @staticmethod
    async def list_requests(
        db: AsyncSession,
        principal: Principal,
        *,
        policy: PolicySettings,
        employee_id: Optional[uuid.UUID] = None,
        status: Optional[LeaveStatus] = None,
        leave_type: Optional[LeaveType] = None,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> tuple[list[LeaveRequestOut], PaginationMeta]:
        """Requests visible to *principal*, newest start date first."""

        query = (
            select(LeaveRequest)
            .join(Employee, Employee.id == LeaveRequest.employee_id)
            .where(
                visibility_condition(
                    principal, policy.visibility_mode,
                    LeaveRequest.employee_id, Employee.department_id,
                )
            )
            .options(selectinload(LeaveRequest.employee))
            .order_by(
                LeaveRequest.start_date.desc(),
                LeaveRequest.created_at.desc(),
                LeaveRequest.id,
            )
        )
        if employee_id is not None:
            query = query.where(LeaveRequest.employee_id == employee_id)
        if status is not None:
            query = query.where(LeaveRequest.status == status)
        if leave_type is not None:
            query = query.where(LeaveRequest.leave_type == leave_type)
        # Range filters keep any request that overlaps [from_date, to_date]
        if from_date is not None:
            query = query.where(LeaveRequest.end_date >= from_date)
        if to_date is not None:
            query = query.where(LeaveRequest.start_date <= to_date)

        rows, meta = await paginate(db, query, page, page_size)
        return [LeaveService._build_response(r, r.employee) for r in rows], meta

    # ─────────────────────────────────────────────────────────────────
    # Balances / stats
    # ─────────────────────────────────────────────────────────────────

    @staticmethod
    async def get_balance(
        db: AsyncSession,
        employee_id: uuid.UUID,
        leave_type: LeaveType,
        year: int,
        *,
        policy: PolicySettings,
        today: date,
        weekend_days: Optional[AbstractSet[int]] = None,
    ) -> LeaveBalance:
        employee = await LeaveService._get_employee(db, employee_id)
        leave_type = LeaveType(leave_type)
        requests = await LeaveService._requests_for_year(
            db, employee_id, year, leave_type=leave_type,
        )
        return compute_balance(
            requests, leave_type, year,
            policy.allowance_for(employee, leave_type),
            today,
            weekend_days=LeaveService._weekend(weekend_days),
        )

    @staticmethod
    async def get_leave_stats(
        db: AsyncSession,
        principal: Principal,
        *,
        policy: PolicySettings,
        today: date,
        employee_id: Optional[uuid.UUID] = None,
        year: Optional[int] = None,
        weekend_days: Optional[AbstractSet[int]] = None,
    ) -> LeaveStatsOut:
        """All three ledgers for one employee-year (admins may query anyone)."""

        target_id = employee_id or principal.user_id
        if target_id != principal.user_id and not principal.is_admin:
            raise ForbiddenException("You can only view your own leave balance.")
        year = year or today.year
        weekend = LeaveService._weekend(weekend_days)

        employee = await LeaveService._get_employee(db, target_id)
        requests = await LeaveService._requests_for_year(db, target_id, year)

        ledgers = {
            lt: compute_balance(
                requests, lt, year, policy.allowance_for(employee, lt), today,
                weekend_days=weekend,
            )
            for lt in LeaveType
        }
        return LeaveStatsOut(
            employee_id=target_id,
            year=year,
            vacation=ledgers[LeaveType.vacation],
            personal=ledgers[LeaveType.personal],
            sick=ledgers[LeaveType.sick],
            summary=summarize(ledgers[LeaveType.vacation], ledgers[LeaveType.personal]),
        )
