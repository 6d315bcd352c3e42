"""
Execution Scheduler

Resolves pending executions once their approval delay has run out. Only acts
while the execution mode is "safe"; live and off resolve (or reject) at intake.

Per due execution:
- EXIT: approval is skipped (failing to close risk is worse than an
  unapproved close), but an open position must exist or the execution fails
  without a broker call.
- linked to an intent: the intent must be approved (swiped_on), otherwise the
  execution and the intent are both cancelled.
- unlinked: the latest live intent for the ticker is looked up; approved ->
  late-link and continue, anything else -> cancel.
Survivors are forwarded to the broker, marked executed and booked into the
position ledger.

Power modes:
- IDLE: heartbeat every 60s, only checks whether there is any work.
- ACTIVE: full tick every 10s. Demotes itself to IDLE when nothing is pending
  and no ticker has a timed cooldown.
Intake calls activate() the moment it queues work, which wakes the loop
immediately instead of waiting out the idle interval.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import (
    EXEC_CANCELLED,
    EXEC_EXECUTED,
    EXEC_FAILED,
    EXEC_PENDING,
    INTENT_CANCELLED,
    MODE_SAFE,
)
from execution_wall.database import async_session_maker
from execution_wall.models import Execution, ExecutionSettings, TradeIntent
from execution_wall.services import ticker_gate
from execution_wall.services.audit_service import record_audit
from execution_wall.services.broker_gateway import forward_to_broker
from execution_wall.services.execution_service import complete_execution, is_exit
from execution_wall.services.intent_service import cancel_intent, find_live_intent, is_approved
from execution_wall.services.notification_service import notify
from execution_wall.services.position_ledger import get_open_position
from execution_wall.services.settings_service import get_execution_settings

logger = logging.getLogger(__name__)

IDLE = "idle"
ACTIVE = "active"

NOT_APPROVED_REASON = "not approved before delay expired"


@dataclass
class TickSummary:
    execution_mode: Optional[str] = None
    due: int = 0
    executed: int = 0
    cancelled: int = 0
    failed: int = 0
    cooldowns_cleared: int = 0

    def record(self, outcome: Optional[str]) -> None:
        if outcome == EXEC_EXECUTED:
            self.executed += 1
        elif outcome == EXEC_CANCELLED:
            self.cancelled += 1
        elif outcome == EXEC_FAILED:
            self.failed += 1


class ExecutionScheduler:
    """Background loop that resolves expired execution delays."""

    def __init__(
        self,
        session_maker=None,
        broker: Optional[Callable[..., Awaitable[Any]]] = None,
        notifier: Optional[Callable[..., Awaitable[None]]] = None,
        active_interval: Optional[float] = None,
        idle_interval: Optional[float] = None,
    ):
        self._session_maker = session_maker or async_session_maker
        self._broker = broker or forward_to_broker
        self._notifier = notifier or notify
        self.active_interval = active_interval or settings.scheduler_active_interval_seconds
        self.idle_interval = idle_interval or settings.scheduler_idle_interval_seconds

        self._mode = IDLE
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._wake: Optional[asyncio.Event] = None
        self._last_tick_at: Optional[datetime] = None
        self._last_heartbeat_at: Optional[datetime] = None
        self._last_summary: Optional[TickSummary] = None
        self._last_error: Optional[str] = None

    @property
    def mode(self) -> str:
        return self._mode

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        """Start the background loop. Begins ACTIVE so leftovers from a restart are picked up."""
        if self._running:
            logger.warning("Execution scheduler already running")
            return

        self._running = True
        self._mode = ACTIVE
        self._wake = asyncio.Event()
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            f"🕐 Execution scheduler started (active: {self.active_interval}s, idle: {self.idle_interval}s)"
        )

    async def stop(self):
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("🛑 Execution scheduler stopped")

    def activate(self, reason: str = "") -> None:
        """Switch to ACTIVE and wake the loop now. Safe to call repeatedly."""
        if self._mode != ACTIVE:
            logger.info(f"⚡ Execution scheduler ACTIVE{f' ({reason})' if reason else ''}")
        self._mode = ACTIVE
        if self._wake is not None:
            self._wake.set()

    def deactivate(self) -> None:
        if self._mode != IDLE:
            logger.info("💤 Execution scheduler IDLE (no pending work)")
        self._mode = IDLE

    async def _run_loop(self):
        while self._running:
            self._wake.clear()
            try:
                if self._mode == ACTIVE:
                    await self.tick()
                else:
                    await self.heartbeat()
            except Exception as e:
                self._last_error = str(e)
                logger.error(f"Error in execution scheduler loop: {e}", exc_info=True)

            interval = self.active_interval if self._mode == ACTIVE else self.idle_interval
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def has_work(self, db: AsyncSession) -> bool:
        """Cheap existence check: any pending execution or timed ticker cooldown."""
        result = await db.execute(
            select(func.count(Execution.id)).where(Execution.status == EXEC_PENDING)
        )
        if (result.scalar() or 0) > 0:
            return True
        return await ticker_gate.has_timed_blocks(db)

    async def heartbeat(self) -> bool:
        """IDLE check. Returns True (and activates) if work was found."""
        async with self._session_maker() as db:
            found = await self.has_work(db)
        self._last_heartbeat_at = datetime.utcnow()
        if found:
            self.activate("heartbeat found work")
        return found

    async def tick(self, now: Optional[datetime] = None) -> TickSummary:
        """One ACTIVE pass: sweep cooldowns, resolve due executions, maybe demote."""
        now = now or datetime.utcnow()
        summary = TickSummary()

        async with self._session_maker() as db:
            # Settings first: a tick that can't read them must change nothing
            exec_settings = await get_execution_settings(db)
            summary.execution_mode = exec_settings.execution_mode

            summary.cooldowns_cleared = await ticker_gate.sweep_expired_cooldowns(db, now)
            await db.commit()

            if exec_settings.execution_mode == MODE_SAFE:
                await self.process_expired_delays(db, exec_settings, summary, now=now)

            if not await self.has_work(db):
                self.deactivate()

        self._last_tick_at = now
        self._last_summary = summary
        self._last_error = None
        return summary

    async def process_expired_delays(
        self,
        db: AsyncSession,
        exec_settings: Optional[ExecutionSettings] = None,
        summary: Optional[TickSummary] = None,
        now: Optional[datetime] = None,
    ) -> TickSummary:
        """
        Resolve every pending execution whose delay has elapsed, oldest first.

        A failure on one record marks only that record failed; the rest of the
        batch still runs.
        """
        now = now or datetime.utcnow()
        summary = summary or TickSummary()

        result = await db.execute(
            select(Execution.id)
            .where(Execution.status == EXEC_PENDING, Execution.delay_expires_at <= now)
            .order_by(Execution.delay_expires_at, Execution.id)
        )
        due_ids = list(result.scalars().all())
        summary.due = len(due_ids)
        if not due_ids:
            return summary

        logger.info(f"⏰ Found {len(due_ids)} expired delay(s) - resolving...")

        for execution_id in due_ids:
            try:
                if exec_settings is None:
                    exec_settings = await get_execution_settings(db)
                outcome = await self._resolve(db, execution_id, exec_settings, now)
            except Exception as e:
                logger.error(f"   ❌ Failed to resolve execution {execution_id}: {e}", exc_info=True)
                await self._mark_failed(db, execution_id, str(e) or e.__class__.__name__)
                # rollback expired everything loaded on this session
                exec_settings = None
                outcome = EXEC_FAILED
            summary.record(outcome)

        return summary

    async def _mark_failed(self, db: AsyncSession, execution_id: int, message: str) -> None:
        await db.rollback()
        try:
            await db.execute(
                update(Execution)
                .where(Execution.id == execution_id, Execution.status == EXEC_PENDING)
                .values(status=EXEC_FAILED, error_message=message, updated_at=datetime.utcnow())
            )
            await db.commit()
        except Exception as e:
            logger.error(f"Could not mark execution {execution_id} failed: {e}", exc_info=True)
            await db.rollback()

    def _cancel(self, db: AsyncSession, execution: Execution, reason: str) -> str:
        execution.status = EXEC_CANCELLED
        execution.error_message = reason
        record_audit(db, "execution_cancelled", execution.ticker, {
            "execution_id": execution.id,
            "intent_id": execution.intent_id,
            "reason": reason,
            "trigger": "delay_expired",
        })
        logger.info(f"   🚫 Cancelled {execution.ticker} execution {execution.id}: {reason}")
        return EXEC_CANCELLED

    async def _resolve(
        self,
        db: AsyncSession,
        execution_id: int,
        exec_settings: ExecutionSettings,
        now: datetime,
    ) -> Optional[str]:
        execution = await db.get(Execution, execution_id, populate_existing=True)
        if execution is None or execution.status != EXEC_PENDING:
            # Resolved elsewhere (manual cancel/execute) since the batch was selected
            return None

        exit_order = is_exit(execution)

        if exit_order:
            if await get_open_position(db, execution.ticker) is None:
                execution.status = EXEC_FAILED
                execution.error_message = f"No open position for {execution.ticker} - EXIT not forwarded"
                record_audit(db, "execution_failed", execution.ticker, {
                    "execution_id": execution.id,
                    "reason": execution.error_message,
                })
                await db.commit()
                logger.warning(f"   ⚠️ {execution.error_message}")
                return EXEC_FAILED
        elif execution.intent_id is not None:
            intent = await db.get(TradeIntent, execution.intent_id, populate_existing=True)
            if not is_approved(intent):
                status = intent.status if intent is not None else "missing"
                outcome = self._cancel(db, execution, f"{NOT_APPROVED_REASON} (intent status: {status})")
                if intent is not None and intent.status != INTENT_CANCELLED:
                    cancel_intent(db, intent, NOT_APPROVED_REASON)
                await db.commit()
                return outcome
        else:
            # Late-link matches on ticker only, not direction or size
            intent = await find_live_intent(db, execution.ticker, now=now)
            if intent is None:
                outcome = self._cancel(db, execution, "No trade intent found - safe mode requires an approved signal")
                await db.commit()
                return outcome
            if not is_approved(intent):
                outcome = self._cancel(
                    db, execution, f"Latest intent {intent.id} is '{intent.status}', not approved"
                )
                await db.commit()
                return outcome
            execution.intent_id = intent.id
            logger.info(f"   🔗 Late-linked execution {execution.id} to approved intent {intent.id}")

        broker_result, fill = await complete_execution(
            db, execution, broker=self._broker, exec_settings=exec_settings, now=now
        )
        record_audit(db, "execution_auto_completed", execution.ticker, {
            "execution_id": execution.id,
            "intent_id": execution.intent_id,
            "order_action": execution.order_action,
            "quantity": execution.quantity,
            "is_exit": exit_order,
            "broker_forwarded": broker_result.success,
            "broker_error": broker_result.error,
            "position_id": fill.position.id,
            "position_closed": fill.closed,
            "trigger": "delay_expired",
        })
        await db.commit()

        logger.info(f"   ✅ Auto-executed: {execution.ticker} {execution.order_action} {execution.quantity}")
        if not broker_result.success:
            logger.warning(f"      ⚠️ Broker forward failed: {broker_result.error}")

        if not exit_order:
            try:
                await self._notifier(exec_settings, "order_executed", execution.ticker, {
                    "action": execution.order_action,
                    "side": execution.dir,
                    "quantity": execution.quantity,
                    "limit_price": execution.limit_price,
                    "broker_result": "forwarded" if broker_result.success else "failed",
                    "trigger": "delay_expired",
                })
            except Exception as e:
                logger.error(f"Notification error for {execution.ticker}: {e}", exc_info=True)

        return EXEC_EXECUTED

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        return {
            "mode": self._mode,
            "running": self._running,
            "active_interval_seconds": self.active_interval,
            "idle_interval_seconds": self.idle_interval,
            "last_tick_at": self._last_tick_at.isoformat() if self._last_tick_at else None,
            "last_heartbeat_at": self._last_heartbeat_at.isoformat() if self._last_heartbeat_at else None,
            "last_tick_summary": asdict(self._last_summary) if self._last_summary else None,
            "last_error": self._last_error,
        }


# Global instance
execution_scheduler = ExecutionScheduler()
