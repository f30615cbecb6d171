"""Activity settings stored in ``app_setting`` and editable at runtime."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..errors import AccessDenied, NotFound, ValidationFailed
from ..models.setting import Setting
from ..schemas.activity import PRIORITIES, ActivitySettingUpdate
from ..security.actor import Actor
from .persistence import guarded

log = logging.getLogger(__name__)

ACTIVITY_CATEGORY = "activity"
RETENTION_DAYS = "activity_retention_days"
AUTO_ARCHIVE = "activity_auto_archive"
LOG_LEVEL = "activity_log_level"
LOG_LEVELS = ("all", "medium", "high", "critical")

SUPER_ADMIN_ONLY = "Access denied. Super admin only."


def default_settings() -> list[dict]:
    """Seed rows for the activity category; retention starts from the env value."""
    return [
        {
            "key": RETENTION_DAYS,
            "value": settings.activity_retention_days,
            "value_type": "number",
            "description": "Number of days to retain activity logs before archiving",
            "validation_rules": {"min": 1, "max": 3650, "integer": True},
        },
        {
            "key": AUTO_ARCHIVE,
            "value": True,
            "value_type": "boolean",
            "description": "Automatically archive expired activity logs",
            "validation_rules": None,
        },
        {
            "key": LOG_LEVEL,
            "value": "all",
            "value_type": "string",
            "description": "Lowest priority of system activity that is recorded",
            "validation_rules": {"options": list(LOG_LEVELS)},
        },
    ]


def setting_to_dict(setting: Setting) -> dict:
    return {
        "key": setting.key,
        "value": setting.value,
        "type": setting.value_type,
        "category": setting.category,
        "description": setting.description,
        "isEditable": setting.is_editable,
        "validationRules": setting.validation_rules,
        "defaultValue": setting.default_value,
        "lastModifiedBy": setting.last_modified_by,
        "updatedAt": setting.updated_at.isoformat() if setting.updated_at else None,
    }


def meets_log_level(priority: str, level: str | None) -> bool:
    if not level or level == "all" or level not in PRIORITIES:
        return True
    return PRIORITIES.index(priority) >= PRIORITIES.index(level)


def _ensure_super_admin(actor: Actor) -> None:
    if not actor.is_super_admin:
        log.warning("User %s (%s) denied access to activity settings", actor.id, actor.role)
        raise AccessDenied(SUPER_ADMIN_ONLY)


def _invalid(message: str):
    return ValidationFailed([{"field": "value", "message": message}])


def validate_value(setting: Setting, value: Any) -> Any:
    rules = setting.validation_rules or {}
    if setting.value_type == "boolean":
        if not isinstance(value, bool):
            raise _invalid("Value must be a boolean")
    elif setting.value_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _invalid("Value must be a number")
        if rules.get("integer") and value != int(value):
            raise _invalid("Value must be a whole number")
        if rules.get("integer"):
            value = int(value)
        if "min" in rules and value < rules["min"]:
            raise _invalid(f"Value must be at least {rules['min']}")
        if "max" in rules and value > rules["max"]:
            raise _invalid(f"Value must be at most {rules['max']}")
    elif setting.value_type == "string":
        if not isinstance(value, str):
            raise _invalid("Value must be a string")
    options = rules.get("options")
    if options and str(value) not in options:
        raise _invalid(f"Value must be one of: {', '.join(options)}")
    return value


async def ensure_defaults(db: AsyncSession) -> None:
    """Insert any missing activity settings with their default values."""
    existing = set((await db.execute(select(Setting.key))).scalars().all())
    missing = [row for row in default_settings() if row["key"] not in existing]
    for row in missing:
        db.add(Setting(category=ACTIVITY_CATEGORY, default_value=row["value"], **row))
    if missing:
        await db.commit()


async def get_value(db: AsyncSession, key: str, default: Any = None) -> Any:
    """Stored value for ``key``, or ``default`` when the row does not exist yet."""
    result = await db.execute(select(Setting.value).where(Setting.key == key))
    value = result.scalar_one_or_none()
    return default if value is None else value


@guarded("fetch activity settings")
async def list_activity_settings(db: AsyncSession, actor: Actor) -> list[dict]:
    _ensure_super_admin(actor)
    await ensure_defaults(db)
    result = await db.execute(
        select(Setting).where(Setting.category == ACTIVITY_CATEGORY).order_by(Setting.key)
    )
    return [setting_to_dict(s) for s in result.scalars().all()]


@guarded("update activity setting")
async def update_activity_setting(db: AsyncSession, payload: ActivitySettingUpdate, actor: Actor) -> dict:
    _ensure_super_admin(actor)
    await ensure_defaults(db)
    setting = await db.get(Setting, payload.key)
    if setting is None or setting.category != ACTIVITY_CATEGORY or not setting.is_editable:
        raise NotFound("Setting not found or not editable")

    setting.value = validate_value(setting, payload.value)
    setting.last_modified_by = actor.id
    await db.commit()
    log.info("Activity setting %s set to %r by %s", setting.key, setting.value, actor.id)
    return setting_to_dict(setting)
