"""Admin policy store — snapshot resolution and audited writes."""

from __future__ import annotations

import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from leavetrack.auth.dependencies import Principal, ensure_admin
from leavetrack.common import audit
from leavetrack.common.audit import ClientMeta
from leavetrack.common.clock import Clock, system_clock
from leavetrack.common.constants import AuditAction, ResourceType
from leavetrack.common.exceptions import InvalidSettingValue
from leavetrack.policy.models import Setting
from leavetrack.policy.rules import RULES, get_rule
from leavetrack.policy.schemas import PolicySettings, SettingResponse

logger = logging.getLogger(__name__)


class PolicyService:
    """Read / write the closed set of policy keys."""

    @staticmethod
    async def get_snapshot(db: AsyncSession) -> PolicySettings:
        """Resolve every key once into a typed snapshot.

        Missing keys take their default. A stored value that no longer
        passes its rule is logged and replaced by the default.
        """
        result = await db.execute(select(Setting).where(Setting.key.in_(list(RULES))))
        stored = {row.key: row.value for row in result.scalars().all()}

        values: dict[str, Any] = {}
        for key, rule in RULES.items():
            if key not in stored:
                values[rule.field] = rule.default
                continue
            try:
                values[rule.field] = rule.parse(stored[key])
            except InvalidSettingValue:
                logger.warning(
                    "Stored setting %s=%r is invalid; using default %r",
                    key, stored[key], rule.default,
                )
                values[rule.field] = rule.default
        return PolicySettings(**values)

    @staticmethod
    async def list_settings(db: AsyncSession) -> list[SettingResponse]:
        """Stored rows merged with defaults for keys never written."""
        result = await db.execute(select(Setting))
        stored = {row.key: row for row in result.scalars().all()}

        out: list[SettingResponse] = []
        for key, rule in RULES.items():
            row = stored.get(key)
            if row is not None:
                out.append(SettingResponse.model_validate(row))
            else:
                out.append(SettingResponse(
                    key=key,
                    value=rule.format(rule.default),
                    description=rule.description,
                    is_default=True,
                ))
        return out

    @staticmethod
    async def set_setting(
        db: AsyncSession,
        principal: Principal,
        key: str,
        raw_value: Any,
        description: Optional[str] = None,
        *,
        client: Optional[ClientMeta] = None,
        clock: Clock = system_clock,
    ) -> Setting:
        """Validate and store one key; audited with old and new value."""

        ensure_admin(principal, "change settings")
        rule = get_rule(key)
        value = rule.format(rule.parse(raw_value))

        result = await db.execute(select(Setting).where(Setting.key == key))
        setting = result.scalars().first()
        old_value = setting.value if setting is not None else None

        now = clock.now()
        if setting is None:
            setting = Setting(
                key=key,
                value=value,
                description=description or rule.description,
                updated_by=principal.user_id,
                updated_at=now,
            )
            db.add(setting)
        else:
            setting.value = value
            if description is not None:
                setting.description = description
            setting.updated_by = principal.user_id
            setting.updated_at = now
        await db.flush()

        await audit.append(
            db,
            AuditAction.setting_updated,
            actor_id=principal.user_id,
            details={
                "key": key,
                "old_value": old_value,
                "new_value": value,
                "default": rule.format(rule.default),
            },
            resource_type=ResourceType.setting,
            resource_id=key,
            client=client,
            clock=clock,
        )
        logger.info("Setting %s changed %r -> %r by %s", key, old_value, value, principal.user_id)
        return setting
