"""Common module — shared utilities for the leave tracker."""

from leavetrack.common.constants import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    UNLIMITED_ALLOWANCE,
    ApprovalMode,
    AuditAction,
    EmployeeStatus,
    LeaveStatus,
    LeaveType,
    ResourceType,
    UserRole,
    VisibilityMode,
)
from leavetrack.common.exceptions import (
    AppException,
    ConflictError,
    Forbidden,
    ForbiddenException,
    NotFound,
    NotFoundException,
    TransientStorageError,
    ValidationException,
    register_exception_handlers,
)
from leavetrack.common.pagination import (
    PaginatedResponse,
    PaginationMeta,
    PaginationParams,
    paginate,
)

__all__ = [
    # Constants / Enums
    "ApprovalMode",
    "AuditAction",
    "EmployeeStatus",
    "LeaveStatus",
    "LeaveType",
    "ResourceType",
    "UserRole",
    "VisibilityMode",
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "UNLIMITED_ALLOWANCE",
    # Exceptions
    "AppException",
    "ConflictError",
    "Forbidden",
    "ForbiddenException",
    "NotFound",
    "NotFoundException",
    "TransientStorageError",
    "ValidationException",
    "register_exception_handlers",
    # Pagination
    "PaginatedResponse",
    "PaginationMeta",
    "PaginationParams",
    "paginate",
]
