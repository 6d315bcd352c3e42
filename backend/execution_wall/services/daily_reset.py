"""
Daily Reset Service

Starts each trading day clean:
- re-enables every blocked ticker (indefinite blocks and cooldowns)
- deletes pending/cancelled/failed executions, except EXIT orders which must
  survive overnight to close positions
- deletes expired and swiped_off/swiped_deny/cancelled intents
- gives the remaining pending intents a fresh expiry

Runs in the 00:00-00:05 window (local time in the configured timezone) and
once at startup if it has not run yet today. The last run is read back from
the daily_reset audit entry, so restarts don't reset twice.
"""

import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import (
    EXEC_CANCELLED,
    EXEC_FAILED,
    EXEC_PENDING,
    INTENT_DEAD_STATUSES,
    INTENT_PENDING,
)
from execution_wall.database import async_session_maker
from execution_wall.models import AuditLog, Execution, TickerConfig, TradeIntent
from execution_wall.services.audit_service import record_audit
from execution_wall.services.execution_service import is_exit_payload
from execution_wall.services.mode_scheduler import local_now
from execution_wall.services.settings_service import get_execution_settings

logger = logging.getLogger(__name__)

CHECK_INTERVAL = 60  # seconds
MIDNIGHT_WINDOW_MINUTES = 5


def is_midnight_window(moment: datetime) -> bool:
    return moment.hour == 0 and moment.minute < MIDNIGHT_WINDOW_MINUTES


class DailyResetService:
    """Background service that performs the once-a-day reset."""

    def __init__(self, session_maker=None):
        self._session_maker = session_maker or async_session_maker
        self._task = None
        self._running = False
        self._last_reset_date: Optional[date] = None
        self._last_result: Optional[dict] = None

    async def start(self):
        if self._running:
            logger.warning("Daily reset scheduler already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info("🕐 Daily reset scheduler started")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("🛑 Daily reset scheduler stopped")

    async def _run_loop(self):
        # Catch up at startup if today's reset hasn't happened yet
        await self._safe_check(startup=True)
        while self._running:
            await asyncio.sleep(CHECK_INTERVAL)
            await self._safe_check(startup=False)

    async def _safe_check(self, startup: bool):
        try:
            async with self._session_maker() as db:
                await self.check_and_reset(db, startup=startup)
        except Exception as e:
            logger.error(f"❌ Error during daily reset: {e}", exc_info=True)

    async def _local_today(self, db: AsyncSession, now: Optional[datetime] = None):
        exec_settings = await get_execution_settings(db)
        return exec_settings.timezone, local_now(exec_settings.timezone, now)

    async def last_reset_date(self, db: AsyncSession, tz_name: str) -> Optional[date]:
        if self._last_reset_date is None:
            result = await db.execute(
                select(AuditLog)
                .where(AuditLog.event_type == "daily_reset")
                .order_by(AuditLog.timestamp.desc())
                .limit(1)
            )
            entry = result.scalars().first()
            if entry is not None:
                self._last_reset_date = local_now(tz_name, entry.timestamp).date()
        return self._last_reset_date

    async def check_and_reset(self, db: AsyncSession, startup: bool = False, now: Optional[datetime] = None) -> bool:
        """Reset if due. Returns True if a reset was performed."""
        tz_name, moment = await self._local_today(db, now)
        if not startup and not is_midnight_window(moment):
            return False
        if await self.last_reset_date(db, tz_name) == moment.date():
            logger.debug("📅 Daily reset already performed today")
            return False

        await self.perform_reset(db, reset_date=moment.date(), now=now)
        return True

    async def force_reset(self, db: AsyncSession) -> dict:
        """Reset now, whether or not today's reset already ran."""
        _, moment = await self._local_today(db)
        return await self.perform_reset(db, reset_date=moment.date(), forced=True)

    async def perform_reset(
        self,
        db: AsyncSession,
        reset_date: date,
        forced: bool = False,
        now: Optional[datetime] = None,
    ) -> dict:
        now = now or datetime.utcnow()
        logger.info("🌅 Performing daily reset...")

        tickers = await db.execute(
            update(TickerConfig)
            .where(or_(TickerConfig.enabled.is_(False), TickerConfig.blocked_until.isnot(None)))
            .values(enabled=True, blocked_until=None, updated_at=now)
        )
        logger.info(f"   ✅ Reset {tickers.rowcount or 0} blocked ticker configs")

        # EXIT orders must survive overnight to close positions
        candidates = await db.execute(
            select(Execution.id, Execution.raw_payload).where(
                Execution.status.in_((EXEC_PENDING, EXEC_CANCELLED, EXEC_FAILED))
            )
        )
        doomed = [row.id for row in candidates if not is_exit_payload(row.raw_payload)]
        executions_cleared = 0
        if doomed:
            deleted = await db.execute(delete(Execution).where(Execution.id.in_(doomed)))
            executions_cleared = deleted.rowcount or 0
        logger.info(f"   ✅ Cleared {executions_cleared} pending/cancelled/failed executions (EXIT orders preserved)")

        intents = await db.execute(
            delete(TradeIntent).where(
                or_(TradeIntent.expires_at < now, TradeIntent.status.in_(INTENT_DEAD_STATUSES))
            )
        )
        logger.info(f"   ✅ Cleared {intents.rowcount or 0} expired/blocked trade intents")

        extended = await db.execute(
            update(TradeIntent)
            .where(TradeIntent.status == INTENT_PENDING)
            .values(expires_at=now + timedelta(hours=settings.intent_ttl_hours))
        )
        logger.info(f"   ✅ Extended expiry for {extended.rowcount or 0} pending intents")

        result = {
            "ticker_configs_reset": tickers.rowcount or 0,
            "pending_executions_cleared": executions_cleared,
            "expired_intents_cleared": intents.rowcount or 0,
            "pending_intents_extended": extended.rowcount or 0,
            "reset_date": reset_date.isoformat(),
            "forced": forced,
        }
        record_audit(db, "daily_reset", details=result)
        await db.commit()

        self._last_reset_date = reset_date
        self._last_result = result
        logger.info("✅ Daily reset completed")
        return result

    @property
    def status(self) -> dict:
        return {
            "running": self._running,
            "last_reset_date": self._last_reset_date.isoformat() if self._last_reset_date else None,
            "last_result": self._last_result,
        }


# Global instance
daily_reset_service = DailyResetService()
