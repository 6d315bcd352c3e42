"""
Tests for backend/execution_wall/services/daily_reset.py

Covers the midnight window, once-per-day tracking via the audit trail,
forced resets and what a reset clears versus preserves.
"""

import pytest
from datetime import date, datetime, timedelta

import pytz
from sqlalchemy import select

from execution_wall.models import AuditLog, Execution, TickerConfig, TradeIntent
from execution_wall.services.daily_reset import DailyResetService, is_midnight_window


def _utc_for_ny(year, month, day, hour, minute):
    local = pytz.timezone("America/New_York").localize(datetime(year, month, day, hour, minute))
    return local.astimezone(pytz.utc).replace(tzinfo=None)


class TestMidnightWindow:
    def test_inside(self):
        assert is_midnight_window(datetime(2026, 3, 2, 0, 0)) is True
        assert is_midnight_window(datetime(2026, 3, 2, 0, 4)) is True

    def test_outside(self):
        assert is_midnight_window(datetime(2026, 3, 2, 0, 5)) is False
        assert is_midnight_window(datetime(2026, 3, 2, 23, 59)) is False


class TestPerformReset:
    """Tests for DailyResetService.perform_reset()."""

    @pytest.mark.asyncio
    async def test_clears_blocks_and_stale_records(
        self, db_session, session_maker, make_intent, make_execution
    ):
        db_session.add_all([
            TickerConfig(ticker="AAPL", enabled=False, blocked_until=None),
            TickerConfig(ticker="MSFT", enabled=True, blocked_until=datetime.utcnow() + timedelta(hours=1)),
        ])
        await db_session.commit()
        stale_order = await make_execution(ticker="AAPL", event="ORDER")
        failed_order = await make_execution(ticker="AAPL", status="failed")
        pending_exit = await make_execution(ticker="AAPL", order_action="sell", event="EXIT")
        executed = await make_execution(ticker="AAPL", status="executed")
        await make_intent(status="swiped_off")
        await make_intent(expires_in_hours=-1)
        live = await make_intent(status="pending", expires_in_hours=1)
        pending_exit_id, executed_id, live_id = pending_exit.id, executed.id, live.id
        stale_id, failed_id = stale_order.id, failed_order.id

        service = DailyResetService(session_maker=session_maker)
        result = await service.perform_reset(db_session, reset_date=date(2026, 3, 2))

        assert result["ticker_configs_reset"] == 2
        assert result["pending_executions_cleared"] == 2
        assert result["expired_intents_cleared"] == 2
        assert result["pending_intents_extended"] == 1

        configs = (await db_session.execute(
            select(TickerConfig).execution_options(populate_existing=True)
        )).scalars().all()
        assert all(c.enabled and c.blocked_until is None for c in configs)

        remaining = set((await db_session.execute(select(Execution.id))).scalars().all())
        # EXIT orders survive the night, history is untouched
        assert remaining == {pending_exit_id, executed_id}
        assert stale_id not in remaining
        assert failed_id not in remaining

        intent = await db_session.get(TradeIntent, live_id, populate_existing=True)
        assert intent.expires_at > datetime.utcnow() + timedelta(hours=23)

        audit = (await db_session.execute(
            select(AuditLog).where(AuditLog.event_type == "daily_reset")
        )).scalars().one()
        assert '"reset_date": "2026-03-02"' in audit.details


class TestCheckAndReset:
    """Tests for check_and_reset() and force_reset()."""

    @pytest.mark.asyncio
    async def test_outside_window_skips(self, db_session, session_maker, make_settings):
        await make_settings()
        service = DailyResetService(session_maker=session_maker)
        assert await service.check_and_reset(db_session, now=_utc_for_ny(2026, 3, 2, 12, 0)) is False

    @pytest.mark.asyncio
    async def test_runs_once_per_day(self, db_session, session_maker, make_settings):
        """Happy path: the window fires once; a second check the same night is a no-op."""
        await make_settings()
        service = DailyResetService(session_maker=session_maker)

        assert await service.check_and_reset(db_session, now=_utc_for_ny(2026, 3, 2, 0, 1)) is True
        assert await service.check_and_reset(db_session, now=_utc_for_ny(2026, 3, 2, 0, 3)) is False
        assert await service.check_and_reset(db_session, now=_utc_for_ny(2026, 3, 3, 0, 2)) is True

    @pytest.mark.asyncio
    async def test_startup_catch_up(self, db_session, session_maker, make_settings):
        """Edge case: at startup the reset runs outside the window if today hasn't been done."""
        await make_settings()
        service = DailyResetService(session_maker=session_maker)
        assert await service.check_and_reset(db_session, startup=True, now=_utc_for_ny(2026, 3, 2, 9, 0)) is True

    @pytest.mark.asyncio
    async def test_restart_reads_last_reset_from_audit(self, db_session, session_maker, make_settings):
        """Edge case: a fresh service instance doesn't reset twice after a restart."""
        await make_settings()
        db_session.add(AuditLog(
            event_type="daily_reset", details="{}", timestamp=_utc_for_ny(2026, 3, 2, 0, 1),
        ))
        await db_session.commit()

        service = DailyResetService(session_maker=session_maker)
        assert await service.check_and_reset(db_session, startup=True, now=_utc_for_ny(2026, 3, 2, 9, 0)) is False

    @pytest.mark.asyncio
    async def test_force_reset_ignores_daily_check(self, db_session, session_maker, make_settings):
        await make_settings()
        service = DailyResetService(session_maker=session_maker)
        await service.check_and_reset(db_session, startup=True)

        result = await service.force_reset(db_session)

        assert result["forced"] is True
        audits = (await db_session.execute(
            select(AuditLog).where(AuditLog.event_type == "daily_reset")
        )).scalars().all()
        assert len(audits) == 2
