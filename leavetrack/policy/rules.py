"""Typed rules for the closed set of policy keys.

Each key owns a parser that turns the stored string into a typed value
(or raises ``InvalidSettingValue``) and a formatter for the canonical
stored form. Adding a key means adding a rule here and a field on
``PolicySettings``.
"""

from __future__ import annotations

import enum
from typing import Any, Generic, Optional, Type, TypeVar, Union

from leavetrack.common.constants import ApprovalMode, VisibilityMode
from leavetrack.common.exceptions import InvalidSettingValue

V = TypeVar("V")

VISIBILITY_MODE = "holidays.visibility_mode"
APPROVAL_MODE = "holidays.approval_mode"
ADVANCE_NOTICE_DAYS = "holidays.advance_notice_days"
MAX_CONSECUTIVE_DAYS = "holidays.max_consecutive_days"
VACATION_ALLOWANCE = "leave_types.vacation_allowance"
PERSONAL_ALLOWANCE = "leave_types.personal_allowance"
SICK_ALLOWANCE = "leave_types.sick_allowance"


class SettingRule(Generic[V]):
    """Parser / validator for one key."""

    def __init__(self, key: str, field: str, default: V, description: str) -> None:
        self.key = key
        self.field = field
        self.default = default
        self.description = description

    def parse(self, raw: Any) -> V:
        raise NotImplementedError

    def format(self, value: V) -> str:
        return str(value)


class EnumRule(SettingRule[enum.Enum]):
    def __init__(self, key: str, field: str, enum_cls: Type[enum.Enum], default: enum.Enum, description: str) -> None:
        super().__init__(key, field, default, description)
        self.enum_cls = enum_cls

    def parse(self, raw: Any) -> enum.Enum:
        if isinstance(raw, self.enum_cls):
            return raw
        text = str(raw).strip() if raw is not None else ""
        try:
            return self.enum_cls(text)
        except ValueError:
            allowed = ", ".join(m.value for m in self.enum_cls)
            raise InvalidSettingValue(self.key, f"must be one of: {allowed} (got {raw!r})")

    def format(self, value: enum.Enum) -> str:
        return value.value


class IntRangeRule(SettingRule[int]):
    def __init__(self, key: str, field: str, minimum: int, maximum: int, default: int, description: str) -> None:
        super().__init__(key, field, default, description)
        self.minimum = minimum
        self.maximum = maximum

    def parse(self, raw: Any) -> int:
        if isinstance(raw, bool):
            raise InvalidSettingValue(self.key, f"must be an integer (got {raw!r})")
        if isinstance(raw, int):
            value = raw
        else:
            text = str(raw).strip() if raw is not None else ""
            try:
                value = int(text)
            except ValueError:
                raise InvalidSettingValue(self.key, f"must be an integer (got {raw!r})")
        if not self.minimum <= value <= self.maximum:
            raise InvalidSettingValue(
                self.key, f"must be between {self.minimum} and {self.maximum} (got {value})",
            )
        return value


_RULES: tuple[SettingRule, ...] = (
    EnumRule(
        VISIBILITY_MODE, "visibility_mode", VisibilityMode, VisibilityMode.admin_only,
        "Who non-admin employees can see: only themselves, their department, or everyone.",
    ),
    EnumRule(
        APPROVAL_MODE, "approval_mode", ApprovalMode, ApprovalMode.manual,
        "Whether new requests wait for an admin or are approved automatically.",
    ),
    IntRangeRule(
        ADVANCE_NOTICE_DAYS, "advance_notice_days", 0, 365, 0,
        "Minimum days between request date and vacation/personal leave start.",
    ),
    IntRangeRule(
        MAX_CONSECUTIVE_DAYS, "max_consecutive_days", 0, 365, 0,
        "Longest vacation/personal request in working days (0 = no limit).",
    ),
    IntRangeRule(
        VACATION_ALLOWANCE, "vacation_allowance", 1, 365, 20,
        "Default yearly vacation days.",
    ),
    IntRangeRule(
        PERSONAL_ALLOWANCE, "personal_allowance", 1, 365, 10,
        "Default yearly personal days.",
    ),
    IntRangeRule(
        SICK_ALLOWANCE, "sick_allowance", -1, 365, -1,
        "Default yearly sick days (-1 = unlimited).",
    ),
)

RULES: dict[str, SettingRule] = {rule.key: rule for rule in _RULES}


def get_rule(key: str) -> SettingRule:
    """Rule for *key*; unknown keys are rejected."""
    rule = RULES.get(key)
    if rule is None:
        raise InvalidSettingValue(key, "unknown setting key")
    return rule


def parse_setting(key: str, raw: Union[str, int, enum.Enum, None]) -> Any:
    return get_rule(key).parse(raw)
