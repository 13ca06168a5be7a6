"""Visibility policy: which requests / employees a viewer may see.

The same rules exist twice: ``filter_visible`` for in-memory collections
and ``visibility_condition`` as a SQL predicate for list queries. Both
take the mode as an argument and hold no state, so a settings change is
picked up on the next call.
"""

from __future__ import annotations

import uuid
from typing import Any, Callable, Iterable, Mapping, Optional, Protocol, TypeVar

from sqlalchemy import ColumnElement, false, or_, true

from leavetrack.common.constants import UserRole, VisibilityMode

T = TypeVar("T")


class Viewer(Protocol):
    user_id: uuid.UUID
    role: UserRole
    department_id: Optional[uuid.UUID]


def _owner(item: Any) -> Optional[uuid.UUID]:
    # Leave requests carry ``employee_id``; employees are their own owner.
    owner = getattr(item, "employee_id", None)
    return owner if owner is not None else getattr(item, "id", None)


def _department(item: Any) -> Optional[uuid.UUID]:
    if hasattr(item, "department_id"):
        return item.department_id
    # Leave requests: the department is the owning employee's, when loaded.
    employee = vars(item).get("employee") if hasattr(item, "__dict__") else None
    return getattr(employee, "department_id", None)


def can_see(
    viewer: Viewer,
    owner_id: Optional[uuid.UUID],
    department_id: Optional[uuid.UUID],
    mode: VisibilityMode,
) -> bool:
    """Single-entity form of the visibility rules."""
    if viewer.role == UserRole.admin:
        return True
    if mode == VisibilityMode.all_see_all:
        return True
    if owner_id == viewer.user_id:
        return True
    if mode == VisibilityMode.department_only and viewer.department_id is not None:
        return department_id == viewer.department_id
    return False


def filter_visible(
    viewer: Viewer,
    items: Iterable[T],
    mode: VisibilityMode,
    *,
    owner: Callable[[Any], Optional[uuid.UUID]] = _owner,
    department: Callable[[Any], Optional[uuid.UUID]] = _department,
    owner_departments: Optional[Mapping[uuid.UUID, Optional[uuid.UUID]]] = None,
) -> list[T]:
    """Subset of *items* the viewer may see, in input order.

    Leave requests are placed in their owner's department: pass rows with
    ``employee`` loaded, or an ``owner_departments`` map of employee id to
    department id.
    """
    mode = VisibilityMode(mode)
    visible = []
    for item in items:
        owner_id = owner(item)
        if owner_departments is not None:
            department_id = owner_departments.get(owner_id)
        else:
            department_id = department(item)
        if can_see(viewer, owner_id, department_id, mode):
            visible.append(item)
    return visible


def visibility_condition(
    viewer: Viewer,
    mode: VisibilityMode,
    owner_column: Any,
    department_column: Any,
) -> ColumnElement[bool]:
    """The visibility rules as a WHERE clause over the given columns."""
    mode = VisibilityMode(mode)
    if viewer.role == UserRole.admin or mode == VisibilityMode.all_see_all:
        return true()
    if mode == VisibilityMode.department_only and viewer.department_id is not None:
        return or_(
            owner_column == viewer.user_id,
            department_column == viewer.department_id,
        )
    if viewer.user_id is None:
        return false()
    return owner_column == viewer.user_id
