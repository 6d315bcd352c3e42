"""
Tests for backend/execution_wall/services/execution_scheduler.py

Covers delay resolution (approval, EXIT bypass, phantom exits, late
linking), per-record failure isolation, cooldown sweeping and the
IDLE/ACTIVE power modes including wake-on-activate.
"""

import asyncio
import json
import pytest
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

from sqlalchemy import select

from execution_wall.models import AuditLog, Execution, Position, TickerConfig, TradeIntent
from execution_wall.services.broker_gateway import BrokerResult
from execution_wall.services.execution_scheduler import ACTIVE, IDLE, ExecutionScheduler


@pytest.fixture
def broker():
    return AsyncMock(return_value=BrokerResult(success=True, status_code=200))


@pytest.fixture
def notifier():
    return AsyncMock()


@pytest.fixture
def scheduler(session_maker, broker, notifier):
    return ExecutionScheduler(
        session_maker=session_maker,
        broker=broker,
        notifier=notifier,
        active_interval=0.05,
        idle_interval=60,
    )


async def _reload(db, model, obj_id):
    return await db.get(model, obj_id, populate_existing=True)


class TestApprovalGate:
    """Linked and unlinked ORDER executions when the delay runs out."""

    @pytest.mark.asyncio
    async def test_denied_intent_cancels_both(self, db_session, scheduler, broker, make_intent, make_execution):
        """Failure: a swiped_deny intent cancels the execution and the intent, no broker call."""
        intent = await make_intent(status="swiped_deny")
        execution = await make_execution(intent_id=intent.id)

        summary = await scheduler.process_expired_delays(db_session)

        assert summary.cancelled == 1
        execution = await _reload(db_session, Execution, execution.id)
        intent = await _reload(db_session, TradeIntent, intent.id)
        assert execution.status == "cancelled"
        assert "not approved" in execution.error_message
        assert "swiped_deny" in execution.error_message
        assert intent.status == "cancelled"
        broker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_pending_intent_cancels(self, db_session, scheduler, broker, make_intent, make_execution):
        """Edge case: still-pending (never swiped) intents count as not approved."""
        intent = await make_intent(status="pending")
        execution = await make_execution(intent_id=intent.id)

        await scheduler.process_expired_delays(db_session)

        assert (await _reload(db_session, Execution, execution.id)).status == "cancelled"
        broker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_deleted_intent_cancels(self, db_session, scheduler, broker, make_execution):
        """Edge case: intent_id pointing at a deleted intent is treated as unapproved."""
        execution = await make_execution(intent_id=9999)
        await scheduler.process_expired_delays(db_session)
        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "cancelled"
        assert "missing" in execution.error_message

    @pytest.mark.asyncio
    async def test_approved_intent_executes(
        self, db_session, scheduler, broker, notifier, make_intent, make_execution
    ):
        """Happy path: approved intent -> forwarded once, executed, position opened, notified."""
        intent = await make_intent(status="swiped_on")
        execution = await make_execution(intent_id=intent.id, quantity=10)

        summary = await scheduler.process_expired_delays(db_session)

        assert summary.executed == 1
        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "executed"
        assert execution.executed_at is not None
        broker.assert_awaited_once()
        position = (await db_session.execute(select(Position))).scalars().one()
        assert position.side == "Long"
        assert position.quantity == 10
        notifier.assert_awaited_once()
        assert notifier.await_args.args[1] == "order_executed"

        audit = (await db_session.execute(
            select(AuditLog).where(AuditLog.event_type == "execution_auto_completed")
        )).scalars().one()
        assert json.loads(audit.details)["trigger"] == "delay_expired"

    @pytest.mark.asyncio
    async def test_unlinked_without_intent_cancels(self, db_session, scheduler, broker, make_execution):
        execution = await make_execution()
        await scheduler.process_expired_delays(db_session)
        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "cancelled"
        assert "No trade intent found" in execution.error_message
        broker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unlinked_late_links_to_approved(self, db_session, scheduler, broker, make_intent, make_execution):
        """Happy path: an unlinked order picks up the approved live intent for its ticker."""
        intent = await make_intent(status="swiped_on")
        execution = await make_execution()

        await scheduler.process_expired_delays(db_session)

        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "executed"
        assert execution.intent_id == intent.id
        broker.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unlinked_with_unapproved_latest_cancels(
        self, db_session, scheduler, broker, make_intent, make_execution
    ):
        now = datetime.utcnow()
        await make_intent(status="swiped_on", updated_at=now - timedelta(minutes=5))
        await make_intent(status="pending", updated_at=now)
        execution = await make_execution()

        await scheduler.process_expired_delays(db_session)

        assert (await _reload(db_session, Execution, execution.id)).status == "cancelled"
        broker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_yet_due_is_untouched(self, db_session, scheduler, broker, make_intent, make_execution):
        intent = await make_intent(status="swiped_on")
        execution = await make_execution(
            intent_id=intent.id, delay_expires_at=datetime.utcnow() + timedelta(minutes=2)
        )
        summary = await scheduler.process_expired_delays(db_session)
        assert summary.due == 0
        assert (await _reload(db_session, Execution, execution.id)).status == "pending"
        broker.assert_not_awaited()


class TestExitBypass:
    """EXIT executions skip approval but need an open position."""

    @pytest.mark.asyncio
    async def test_exit_with_position_executes_without_approval(
        self, db_session, scheduler, broker, notifier, make_intent, make_position, make_execution
    ):
        """Happy path: EXIT goes through even though the intent was denied."""
        position = await make_position(side="Long", quantity=10)
        intent = await make_intent(status="swiped_deny")
        execution = await make_execution(
            order_action="sell", quantity=10, intent_id=intent.id,
            payload={"event": "EXIT", "position_id": position.id},
        )

        await scheduler.process_expired_delays(db_session)

        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "executed"
        broker.assert_awaited_once()
        position = await _reload(db_session, Position, position.id)
        assert position.closed_at is not None
        # Exits notify at intake, not again here
        notifier.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_exit_without_position_fails(self, db_session, scheduler, broker, make_execution):
        """Failure: a phantom EXIT is failed without calling the broker."""
        execution = await make_execution(order_action="sell", event="EXIT")

        summary = await scheduler.process_expired_delays(db_session)

        assert summary.failed == 1
        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "failed"
        assert "No open position" in execution.error_message
        broker.assert_not_awaited()


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_one_bad_record_does_not_abort_batch(
        self, db_session, scheduler, broker, make_intent, make_execution
    ):
        """Failure: an unexpected error marks only that execution failed."""
        now = datetime.utcnow()
        bad_intent = await make_intent(ticker="AAPL", status="swiped_on")
        good_intent = await make_intent(ticker="MSFT", status="swiped_on")
        bad = await make_execution(
            ticker="AAPL", intent_id=bad_intent.id, delay_expires_at=now - timedelta(minutes=2)
        )
        good = await make_execution(
            ticker="MSFT", intent_id=good_intent.id, delay_expires_at=now - timedelta(minutes=1)
        )

        async def flaky(db, execution, exec_settings=None):
            if execution.ticker == "AAPL":
                raise RuntimeError("broker exploded")
            return BrokerResult(success=True, status_code=200)

        broker.side_effect = flaky
        bad_id, good_id = bad.id, good.id
        summary = await scheduler.process_expired_delays(db_session)

        assert summary.failed == 1
        assert summary.executed == 1
        # the failure rolled the session back, so reload by id
        bad = await _reload(db_session, Execution, bad_id)
        good = await _reload(db_session, Execution, good_id)
        assert bad.status == "failed"
        assert bad.error_message == "broker exploded"
        assert good.status == "executed"

    @pytest.mark.asyncio
    async def test_broker_failure_result_still_executes(
        self, db_session, scheduler, broker, make_intent, make_execution
    ):
        broker.return_value = BrokerResult(success=False, error="HTTP 500")
        intent = await make_intent(status="swiped_on")
        execution = await make_execution(intent_id=intent.id)

        await scheduler.process_expired_delays(db_session)

        execution = await _reload(db_session, Execution, execution.id)
        assert execution.status == "executed"
        assert execution.error_message == "HTTP 500"


class TestTick:
    """Tests for tick(): sweep, mode check, demotion."""

    @pytest.mark.asyncio
    async def test_idle_after_tick_with_no_work(self, scheduler, make_settings):
        await make_settings()
        scheduler.activate()
        summary = await scheduler.tick()
        assert summary.due == 0
        assert scheduler.mode == IDLE

    @pytest.mark.asyncio
    async def test_stays_active_with_future_pending(self, scheduler, make_settings, make_execution):
        await make_settings()
        await make_execution(delay_expires_at=datetime.utcnow() + timedelta(minutes=5))
        scheduler.activate()
        await scheduler.tick()
        assert scheduler.mode == ACTIVE

    @pytest.mark.asyncio
    async def test_stays_active_with_timed_block(self, db_session, scheduler, make_settings):
        await make_settings()
        db_session.add(TickerConfig(ticker="AAPL", enabled=True, blocked_until=datetime.utcnow() + timedelta(minutes=5)))
        await db_session.commit()
        scheduler.activate()
        await scheduler.tick()
        assert scheduler.mode == ACTIVE

    @pytest.mark.asyncio
    async def test_sweeps_cooldowns_not_indefinite_blocks(self, db_session, scheduler, make_settings):
        await make_settings()
        db_session.add_all([
            TickerConfig(ticker="COOL", enabled=False, blocked_until=datetime.utcnow() - timedelta(minutes=1)),
            TickerConfig(ticker="OFF", enabled=False, blocked_until=None),
        ])
        await db_session.commit()

        summary = await scheduler.tick()

        assert summary.cooldowns_cleared == 1
        rows = {
            c.ticker: c for c in (await db_session.execute(
                select(TickerConfig).execution_options(populate_existing=True)
            )).scalars()
        }
        assert rows["COOL"].enabled is True
        assert rows["OFF"].enabled is False

    @pytest.mark.asyncio
    async def test_settings_failure_leaves_cooldowns(self, db_session, scheduler):
        """Failure: a tick that cannot read settings has no side effects."""
        db_session.add(TickerConfig(ticker="COOL", enabled=False, blocked_until=datetime.utcnow() - timedelta(minutes=1)))
        await db_session.commit()

        with patch(
            "execution_wall.services.execution_scheduler.get_execution_settings",
            new=AsyncMock(side_effect=RuntimeError("settings unreadable")),
        ):
            with pytest.raises(RuntimeError):
                await scheduler.tick()

        row = (await db_session.execute(
            select(TickerConfig).execution_options(populate_existing=True)
        )).scalars().one()
        assert row.blocked_until is not None
        assert row.enabled is False

    @pytest.mark.asyncio
    async def test_live_mode_does_not_resolve(self, db_session, scheduler, broker, make_settings, make_execution):
        """Edge case: the delay path only runs in safe mode."""
        await make_settings(execution_mode="live")
        execution = await make_execution()
        summary = await scheduler.tick()
        assert summary.execution_mode == "live"
        assert (await _reload(db_session, Execution, execution.id)).status == "pending"
        broker.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_heartbeat_activates_on_work(self, scheduler, make_execution):
        await make_execution(delay_expires_at=datetime.utcnow() + timedelta(minutes=5))
        scheduler.deactivate()
        assert await scheduler.heartbeat() is True
        assert scheduler.mode == ACTIVE

    @pytest.mark.asyncio
    async def test_heartbeat_stays_idle_without_work(self, scheduler):
        scheduler.deactivate()
        assert await scheduler.heartbeat() is False
        assert scheduler.mode == IDLE


class TestRunLoop:
    """The background loop with real timers (short intervals)."""

    @pytest.mark.asyncio
    async def test_activate_wakes_idle_loop(
        self, db_session, scheduler, broker, make_settings, make_intent, make_execution
    ):
        """Happy path: idle loop + new pending execution + activate() -> resolved well inside 10s."""
        await make_settings()
        await scheduler.start()
        try:
            for _ in range(100):
                if scheduler.mode == IDLE:
                    break
                await asyncio.sleep(0.02)
            assert scheduler.mode == IDLE

            intent = await make_intent(status="swiped_on")
            execution = await make_execution(intent_id=intent.id)
            scheduler.activate("test")

            status = None
            for _ in range(200):
                status = (await _reload(db_session, Execution, execution.id)).status
                if status != "pending":
                    break
                await db_session.commit()
                await asyncio.sleep(0.02)
            assert status == "executed"
            broker.assert_awaited_once()
        finally:
            await scheduler.stop()

        assert scheduler.is_running is False

    @pytest.mark.asyncio
    async def test_status_snapshot(self, scheduler, make_settings):
        await make_settings()
        await scheduler.tick()
        status = scheduler.get_status()
        assert status["mode"] == IDLE
        assert status["last_tick_summary"]["execution_mode"] == "safe"
        assert status["last_error"] is None
