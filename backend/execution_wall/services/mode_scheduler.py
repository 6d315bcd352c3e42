"""
Mode Scheduler

Switches execution_settings.execution_mode from a table of time windows.
Enabled windows are checked highest priority first against local time in
the configured timezone; the first match wins and no match means "off".
Windows whose end is before their start wrap past midnight. Start is
inclusive, end exclusive.

Only acts when use_time_schedules is on. Checks once a minute, and
trigger_check() forces an immediate pass after schedules are edited.
"""

import asyncio
import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import pytz
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import DEFAULT_TIMEZONE, MODE_OFF, MODE_SAFE
from execution_wall.database import async_session_maker
from execution_wall.models import ExecutionSchedule
from execution_wall.services.audit_service import record_audit
from execution_wall.services.execution_scheduler import execution_scheduler
from execution_wall.services.settings_service import get_execution_settings

logger = logging.getLogger(__name__)


def get_timezone(name: Optional[str]):
    """pytz zone for name, falling back to New York for unknown zones."""
    try:
        return pytz.timezone(name or DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}', falling back to {DEFAULT_TIMEZONE}")
        return pytz.timezone(DEFAULT_TIMEZONE)


def local_now(tz_name: Optional[str], now: Optional[datetime] = None) -> datetime:
    """Current time (or a naive UTC `now`) converted to the given zone."""
    now = now or datetime.utcnow()
    if now.tzinfo is None:
        now = pytz.utc.localize(now)
    return now.astimezone(get_timezone(tz_name))


def day_of_week(moment: datetime) -> int:
    """0 = Sunday ... 6 = Saturday."""
    return (moment.weekday() + 1) % 7


def parse_days(days_of_week: str) -> List[int]:
    days = []
    for part in (days_of_week or "").split(","):
        part = part.strip()
        if part.isdigit():
            days.append(int(part))
    return days


def is_time_in_range(current: str, start: str, end: str) -> bool:
    """HH:MM strings compare lexically, so no parsing is needed."""
    if end < start:
        # Overnight window, e.g. 22:00 - 06:00
        return current >= start or current < end
    return start <= current < end


def resolve_mode(
    schedules: Iterable[ExecutionSchedule],
    moment: datetime,
) -> Tuple[str, Optional[ExecutionSchedule]]:
    """
    Mode the schedule table asks for at a local moment.

    Declaration order does not matter: windows are sorted by priority here.
    """
    current = moment.strftime("%H:%M")
    today = day_of_week(moment)

    for schedule in sorted(schedules, key=lambda s: s.priority or 0, reverse=True):
        if not schedule.enabled:
            continue
        if today not in parse_days(schedule.days_of_week):
            continue
        if is_time_in_range(current, schedule.start_time, schedule.end_time):
            return schedule.execution_mode, schedule

    return MODE_OFF, None


class ModeScheduler:
    """Background loop applying the schedule table to the execution mode."""

    def __init__(self, session_maker=None, interval: Optional[float] = None, on_safe=None):
        self._session_maker = session_maker or async_session_maker
        self.interval = interval or settings.mode_check_interval_seconds
        self._on_safe = on_safe
        self._task = None
        self._running = False
        self._last_check: Optional[datetime] = None

    async def start(self):
        if self._running:
            logger.warning("Mode scheduler already running")
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"⏰ Mode scheduler started (checks every {self.interval:.0f}s)")

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("⏰ Mode scheduler stopped")

    async def _run_loop(self):
        while self._running:
            await self.trigger_check()
            await asyncio.sleep(self.interval)

    async def trigger_check(self) -> Optional[str]:
        """Run one check in its own session. Errors are logged, not raised."""
        try:
            async with self._session_maker() as db:
                return await self.check_and_update_mode(db)
        except Exception as e:
            logger.error(f"❌ Mode scheduler error: {e}", exc_info=True)
            return None

    async def check_and_update_mode(self, db: AsyncSession, now: Optional[datetime] = None) -> Optional[str]:
        """
        Apply the schedule table once.

        Returns:
            The new mode if it changed, otherwise None.
        """
        exec_settings = await get_execution_settings(db)
        self._last_check = datetime.utcnow()
        if not exec_settings.use_time_schedules:
            return None

        moment = local_now(exec_settings.timezone, now)
        result = await db.execute(
            select(ExecutionSchedule)
            .where(ExecutionSchedule.enabled.is_(True))
            .order_by(ExecutionSchedule.priority.desc())
        )
        target, matched = resolve_mode(result.scalars().all(), moment)

        previous = exec_settings.execution_mode
        if previous == target:
            return None

        exec_settings.execution_mode = target
        record_audit(db, "mode_auto_changed", details={
            "from": previous,
            "to": target,
            "schedule": matched.name if matched else None,
            "time": moment.strftime("%H:%M"),
            "day": day_of_week(moment),
            "timezone": exec_settings.timezone,
        })
        await db.commit()

        logger.info(
            f"⏰ Auto-switched mode: {previous} → {target}" + (f" ({matched.name})" if matched else "")
        )
        if target == MODE_SAFE and self._on_safe is not None:
            self._on_safe()
        return target

    @property
    def status(self) -> dict:
        return {
            "running": self._running,
            "interval_seconds": self.interval,
            "last_check": self._last_check.isoformat() if self._last_check else None,
        }


def _activate_execution_scheduler():
    execution_scheduler.activate("mode switched to safe")


# Global instance
mode_scheduler = ModeScheduler(on_safe=_activate_execution_scheduler)
