"""
Tests for backend/execution_wall/services/broker_gateway.py

The HTTP call is isolated in _post(), which is patched; no network.
"""

import httpx
import pytest
from unittest.mock import AsyncMock, patch

from sqlalchemy import select

from execution_wall.models import AuditLog, Execution, ExecutionSettings
from execution_wall.services import broker_gateway


def _settings(enabled=True, url="https://broker.example/hook"):
    return ExecutionSettings(
        execution_mode="safe", broker_webhook_enabled=enabled, broker_webhook_url=url,
    )


def _execution():
    return Execution(id=7, ticker="AAPL", order_action="buy", quantity=10, limit_price=189.34)


def _response(status_code, json_body=None, text=None):
    request = httpx.Request("POST", "https://broker.example/hook")
    if json_body is not None:
        return httpx.Response(status_code, json=json_body, request=request)
    return httpx.Response(status_code, text=text or "", request=request)


class TestBuildOrderPayload:
    def test_payload_shape(self):
        assert broker_gateway.build_order_payload(_execution()) == {
            "symbol": "AAPL", "action": "buy", "quantity": 10, "limit_price": 189.34,
        }

    def test_missing_limit_price(self):
        execution = Execution(ticker="AAPL", order_action="sell", quantity=1, limit_price=None)
        assert broker_gateway.build_order_payload(execution)["limit_price"] == 0.0


class TestForwardToBroker:
    """Tests for forward_to_broker()."""

    @pytest.mark.asyncio
    async def test_success(self, db_session):
        with patch.object(broker_gateway, "_post", new=AsyncMock(return_value=_response(200, {"ok": True}))) as post:
            result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings())
            await db_session.commit()

        assert result.success is True
        assert result.status_code == 200
        assert result.response == {"ok": True}
        post.assert_awaited_once_with(
            "https://broker.example/hook",
            {"symbol": "AAPL", "action": "buy", "quantity": 10, "limit_price": 189.34},
        )
        audit = (await db_session.execute(select(AuditLog))).scalars().one()
        assert audit.event_type == "broker_webhook_sent"

    @pytest.mark.asyncio
    async def test_disabled_does_not_call(self, db_session):
        """Edge case: disabled webhook is a failure result, not an error."""
        with patch.object(broker_gateway, "_post", new=AsyncMock()) as post:
            result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings(enabled=False))
        assert result.success is False
        assert "not configured" in result.error
        post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_url(self, db_session):
        with patch.object(broker_gateway, "_post", new=AsyncMock()) as post:
            result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings(url=None))
        assert result.success is False
        post.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_non_2xx(self, db_session):
        with patch.object(broker_gateway, "_post", new=AsyncMock(return_value=_response(502, text="bad gateway"))):
            result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings())
        assert result.success is False
        assert result.status_code == 502
        assert "502" in result.error

    @pytest.mark.asyncio
    async def test_network_error_never_raises(self, db_session):
        """Failure: transport errors become a failure result plus an audit entry."""
        error = httpx.ConnectError("connection refused")
        with patch.object(broker_gateway, "_post", new=AsyncMock(side_effect=error)):
            result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings())
            await db_session.commit()

        assert result.success is False
        assert "connection refused" in result.error
        audit = (await db_session.execute(select(AuditLog))).scalars().one()
        assert audit.event_type == "broker_webhook_error"

    @pytest.mark.asyncio
    async def test_timeout(self, db_session):
        with patch.object(broker_gateway, "_post", new=AsyncMock(side_effect=httpx.ReadTimeout("timed out"))):
            result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings())
        assert result.success is False


class TestTestBrokerWebhook:
    @pytest.mark.asyncio
    async def test_sends_fixed_payload(self):
        with patch.object(broker_gateway, "_post", new=AsyncMock(return_value=_response(200, {"ok": 1}))) as post:
            result = await broker_gateway.test_broker_webhook("https://broker.example/hook")
        assert result.success is True
        assert post.await_args.args[1]["symbol"] == "TEST"

    @pytest.mark.asyncio
    async def test_malformed_url_never_raises(self):
        """Failure: an unparseable URL is a failed test, not an exception."""
        result = await broker_gateway.test_broker_webhook("http://[::1")
        assert result.success is False
        assert result.error


class TestMalformedBrokerUrl:
    """A mistyped saved URL is a forward failure, never an exception."""

    @pytest.mark.asyncio
    async def test_forward_returns_failure(self, db_session):
        result = await broker_gateway.forward_to_broker(db_session, _execution(), _settings(url="http://[::1"))
        await db_session.commit()

        assert result.success is False
        assert result.error
        audit = (await db_session.execute(select(AuditLog))).scalars().one()
        assert audit.event_type == "broker_webhook_error"

    @pytest.mark.asyncio
    async def test_scheduler_still_books_fill(self, db_session, session_maker, make_settings, make_intent, make_execution):
        """Edge case: an approved order is executed and filled even when the URL is unusable."""
        from execution_wall.models import Position
        from execution_wall.services.execution_scheduler import ExecutionScheduler

        await make_settings(broker_webhook_enabled=True, broker_webhook_url="http://[::1")
        intent = await make_intent(status="swiped_on")
        execution_id = (await make_execution(intent_id=intent.id, quantity=4)).id
        scheduler = ExecutionScheduler(
            session_maker=session_maker, notifier=AsyncMock(), active_interval=0.05, idle_interval=60,
        )

        summary = await scheduler.tick()

        assert summary.due == 1
        execution = await db_session.get(Execution, execution_id, populate_existing=True)
        assert execution.status == "executed"
        assert execution.error_message
        position = (await db_session.execute(select(Position))).scalars().one()
        assert position.side == "Long"
        assert position.quantity == 4
