"""
Settings Service

Provides access to the execution settings singleton stored in the database.
"""

import logging
from typing import Any, Dict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.constants import EXECUTION_MODES
from execution_wall.exceptions import ValidationError
from execution_wall.models import ExecutionSettings
from execution_wall.services.audit_service import record_audit

logger = logging.getLogger(__name__)

# Fields the settings API may change
EDITABLE_FIELDS = (
    "execution_mode",
    "default_delay_bars",
    "bar_duration_minutes",
    "broker_webhook_url",
    "broker_webhook_enabled",
    "use_time_schedules",
    "timezone",
    "email_notifications",
    "notification_email",
    "notify_on_approval",
    "notify_on_execution",
    "notify_on_close",
    "pushover_enabled",
    "pushover_user_key",
    "pushover_api_token",
)


async def get_execution_settings(db: AsyncSession) -> ExecutionSettings:
    """Return the settings row, creating it with defaults on first use."""
    result = await db.execute(select(ExecutionSettings).order_by(ExecutionSettings.id).limit(1))
    row = result.scalars().first()

    if row is None:
        row = ExecutionSettings(
            execution_mode="safe",
            default_delay_bars=2,
            bar_duration_minutes=1,
        )
        db.add(row)
        await db.commit()
        await db.refresh(row)
        logger.info("Created default execution settings (mode: safe)")

    return row


def delay_minutes(row: ExecutionSettings) -> int:
    """Approval window for new executions, in minutes."""
    return (row.default_delay_bars or 0) * (row.bar_duration_minutes or 1)


async def update_execution_settings(db: AsyncSession, changes: Dict[str, Any]) -> ExecutionSettings:
    row = await get_execution_settings(db)

    mode = changes.get("execution_mode")
    if mode is not None and mode not in EXECUTION_MODES:
        raise ValidationError(f"Invalid execution_mode '{mode}'. Must be: {', '.join(EXECUTION_MODES)}")

    for field in ("default_delay_bars", "bar_duration_minutes"):
        value = changes.get(field)
        if value is not None and value < 0:
            raise ValidationError(f"{field} must be >= 0")

    previous_mode = row.execution_mode
    applied = {}
    for field in EDITABLE_FIELDS:
        if field in changes and changes[field] is not None:
            setattr(row, field, changes[field])
            applied[field] = changes[field]

    # Never write credentials into the audit trail
    audit_details = {k: v for k, v in applied.items() if k not in ("pushover_api_token", "pushover_user_key")}
    record_audit(db, "settings_updated", details=audit_details)
    if mode is not None and mode != previous_mode:
        record_audit(db, "mode_manual_changed", details={"from": previous_mode, "to": mode})

    await db.commit()
    await db.refresh(row)
    logger.info(f"Execution settings updated: {sorted(audit_details)}")
    return row
