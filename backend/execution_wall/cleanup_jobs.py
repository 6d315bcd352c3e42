"""
Background cleanup jobs for database maintenance
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import and_, delete
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import EXEC_EXECUTED
from execution_wall.database import async_session_maker
from execution_wall.models import AuditLog, Execution, Position, TradeIntent, WebhookLog

logger = logging.getLogger(__name__)


async def run_retention_cleanup(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, int]:
    """
    Delete rows past their retention period.

    Pending executions and open positions are never touched, whatever their age.
    Live trade intents (not yet expired) are kept as well.
    """
    now = now or datetime.utcnow()

    def cutoff(days: int) -> datetime:
        return now - timedelta(days=days)

    webhook_result = await db.execute(
        delete(WebhookLog).where(WebhookLog.timestamp < cutoff(settings.webhook_log_retention_days))
    )
    audit_result = await db.execute(
        delete(AuditLog).where(AuditLog.timestamp < cutoff(settings.audit_log_retention_days))
    )
    intent_result = await db.execute(
        delete(TradeIntent).where(
            and_(
                TradeIntent.created_at < cutoff(settings.trade_intent_retention_days),
                TradeIntent.expires_at < now,
            )
        )
    )
    position_result = await db.execute(
        delete(Position).where(
            and_(
                Position.closed_at.isnot(None),
                Position.closed_at < cutoff(settings.closed_position_retention_days),
            )
        )
    )
    execution_result = await db.execute(
        delete(Execution).where(
            and_(
                Execution.status == EXEC_EXECUTED,
                Execution.executed_at < cutoff(settings.executed_execution_retention_days),
            )
        )
    )
    await db.commit()

    deleted = {
        "webhook_logs": webhook_result.rowcount or 0,
        "audit_logs": audit_result.rowcount or 0,
        "trade_intents": intent_result.rowcount or 0,
        "positions": position_result.rowcount or 0,
        "executions": execution_result.rowcount or 0,
    }
    if any(deleted.values()):
        logger.info(
            f"🧹 Retention cleanup: {deleted['webhook_logs']} webhook logs, {deleted['audit_logs']} audit logs, "
            f"{deleted['trade_intents']} trade intents, {deleted['positions']} closed positions, "
            f"{deleted['executions']} executed orders"
        )
    else:
        logger.debug("No old records to clean up")
    return deleted


async def cleanup_old_records():
    """
    Periodically apply the retention periods from settings.
    Runs daily.
    """
    # Wait 10 minutes after startup before first cleanup
    await asyncio.sleep(600)

    while True:
        try:
            async with async_session_maker() as db:
                await run_retention_cleanup(db)
        except Exception as e:
            logger.error(f"Error in retention cleanup job: {e}", exc_info=True)

        # Run daily
        await asyncio.sleep(86400)
