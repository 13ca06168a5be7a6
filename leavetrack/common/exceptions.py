"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

from datetime import date
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

BASE_ERROR_URI = "https://leavetrack.dev/errors"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    retryable: bool = False

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ConflictError(AppException):
    """409 — unique-constraint / duplicate."""

    def __init__(self, field: str, value: Any) -> None:
        super().__init__(
            status_code=409,
            error_type="conflict",
            title="Conflict",
            detail=f"An entry with {field}='{value}' already exists.",
            errors={field: [f"'{value}' is already in use."]},
        )


class ForbiddenException(AppException):
    """403 — insufficient permissions."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — business-logic validation failures."""

    def __init__(
        self,
        errors: dict[str, list[str]],
        *,
        error_type: str = "validation-error",
        title: str = "Validation Error",
        detail: str = "One or more fields failed validation.",
    ) -> None:
        super().__init__(
            status_code=422,
            error_type=error_type,
            title=title,
            detail=detail,
            errors=errors,
        )


# Short aliases matching the lifecycle error kinds
NotFound = NotFoundException
Forbidden = ForbiddenException


# ── Leave request validation ────────────────────────────────────────

class InvalidRange(ValidationException):
    def __init__(self, start: date, end: date) -> None:
        super().__init__(
            {"dates": [f"Start date {start.isoformat()} is after end date {end.isoformat()}."]},
            error_type="invalid-range",
            title="Invalid Date Range",
            detail="The start date must be on or before the end date.",
        )


class PastDateNotAllowed(ValidationException):
    def __init__(self, start: date) -> None:
        super().__init__(
            {"start_date": [f"Vacation cannot start in the past ({start.isoformat()})."]},
            error_type="past-date-not-allowed",
            title="Past Date Not Allowed",
            detail="Vacation requests cannot start before today.",
        )


class MedicalCertificateRequired(ValidationException):
    def __init__(self) -> None:
        super().__init__(
            {"certificate": [
                "Sick leave needs an uploaded medical certificate or a "
                "commitment to send it later."
            ]},
            error_type="medical-certificate-required",
            title="Medical Certificate Required",
            detail="Sick leave requests must reference a medical certificate.",
        )


class NoWorkingDays(ValidationException):
    def __init__(self) -> None:
        super().__init__(
            {"dates": ["The selected range contains no working days."]},
            error_type="no-working-days",
            title="No Working Days",
            detail="A leave request must include at least one working day.",
        )


class InsufficientAllowance(ValidationException):
    def __init__(self, leave_type: str, requested: int, available: int) -> None:
        super().__init__(
            {"allowance": [
                f"Insufficient {leave_type} allowance. "
                f"Available: {available}, Requested: {requested}."
            ]},
            error_type="insufficient-allowance",
            title="Insufficient Allowance",
            detail=f"Not enough {leave_type} days left for this request.",
        )


class AdvanceNoticeRequired(ValidationException):
    def __init__(self, required_days: int, earliest: date) -> None:
        super().__init__(
            {"start_date": [
                f"Requests need {required_days} day(s) notice; "
                f"earliest start is {earliest.isoformat()}."
            ]},
            error_type="advance-notice-required",
            title="Advance Notice Required",
            detail="The start date does not respect the advance notice policy.",
        )


class MaxConsecutiveDaysExceeded(ValidationException):
    def __init__(self, requested: int, maximum: int) -> None:
        super().__init__(
            {"dates": [
                f"Requests may span at most {maximum} working day(s); "
                f"this one spans {requested}."
            ]},
            error_type="max-consecutive-days-exceeded",
            title="Too Many Consecutive Days",
            detail="The request is longer than the maximum allowed.",
        )


class InvalidSettingValue(ValidationException):
    def __init__(self, key: str, message: str) -> None:
        super().__init__(
            {key: [message]},
            error_type="invalid-setting-value",
            title="Invalid Setting Value",
            detail=f"Setting '{key}' rejected: {message}",
        )


class InvalidStatusTransition(ValidationException):
    def __init__(self, entity_type: str, current: str, target: str) -> None:
        super().__init__(
            {"status": [f"{entity_type} cannot move from '{current}' to '{target}'."]},
            error_type="invalid-status-transition",
            title="Invalid Status Transition",
            detail=f"{entity_type} status '{current}' does not allow '{target}'.",
        )


# ── Leave request state conflicts (409) ─────────────────────────────

class LeaveStateError(AppException):
    """409 — operation not allowed in the request's current state."""

    error_kind = "invalid-state"
    title_text = "Invalid State"

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=409,
            error_type=self.error_kind,
            title=self.title_text,
            detail=detail,
        )


class NotEditable(LeaveStateError):
    error_kind = "not-editable"
    title_text = "Request Not Editable"


class NotCancellable(LeaveStateError):
    error_kind = "not-cancellable"
    title_text = "Request Not Cancellable"


class NotDeletable(LeaveStateError):
    error_kind = "not-deletable"
    title_text = "Request Not Deletable"


class NotPending(LeaveStateError):
    error_kind = "not-pending"
    title_text = "Request Not Pending"


class NotReopenable(LeaveStateError):
    error_kind = "not-reopenable"
    title_text = "Request Not Reopenable"


class OverlapConflict(LeaveStateError):
    """Approving would create two overlapping approved requests.

    Retryable once the conflicting request is itself resolved.
    """

    error_kind = "overlap-conflict"
    title_text = "Overlapping Approved Leave"
    retryable = True


# ── Storage ─────────────────────────────────────────────────────────

class TransientStorageError(AppException):
    """503 — store unavailable; the caller may retry."""

    retryable = True

    def __init__(self, detail: str = "The data store is temporarily unavailable.") -> None:
        super().__init__(
            status_code=503,
            error_type="transient-storage-error",
            title="Service Unavailable",
            detail=detail,
        )


# ── RFC 7807 builder ────────────────────────────────────────────────

def _build_problem_detail(exc: AppException, request: Request) -> dict[str, Any]:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{exc.error_type}",
        "title": exc.title,
        "status": exc.status_code,
        "detail": exc.detail,
        "instance": str(request.url.path),
    }
    if exc.errors:
        body["errors"] = exc.errors
    if exc.retryable:
        body["retryable"] = True
    return body


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=_build_problem_detail(exc, request),
        media_type="application/problem+json",
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return JSONResponse(
        status_code=422,
        content={
            "type": f"{BASE_ERROR_URI}/validation-error",
            "title": "Validation Error",
            "status": 422,
            "detail": "Request validation failed.",
            "instance": str(request.url.path),
            "errors": field_errors,
        },
        media_type="application/problem+json",
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
