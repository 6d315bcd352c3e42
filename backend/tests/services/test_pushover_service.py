"""
Tests for backend/execution_wall/services/pushover_service.py
"""

import pytest
from unittest.mock import AsyncMock, patch

import httpx

from execution_wall.services import pushover_service


@pytest.fixture
def mock_client():
    """Patch httpx.AsyncClient so posts go to an AsyncMock."""
    with patch("execution_wall.services.pushover_service.httpx.AsyncClient") as mock_cls:
        client = mock_cls.return_value.__aenter__.return_value
        client.post = AsyncMock(return_value=httpx.Response(200, text='{"status":1}'))
        yield client


class TestFormatMessage:
    def test_exit_is_high_priority(self):
        message = pushover_service.format_message("exit_signal", "AAPL", {"quantity": 5, "position_id": None})
        assert message == {"title": "🚪 EXIT AAPL", "message": "quantity: 5", "priority": 1}

    def test_empty_details_use_title(self):
        message = pushover_service.format_message("order_executed", "AAPL", {})
        assert message["message"] == message["title"]
        assert message["priority"] == 0


class TestSendPushover:
    @pytest.mark.asyncio
    async def test_posts_form_body(self, mock_client):
        """Happy path: token and user travel with the formatted message."""
        ok = await pushover_service.send_pushover("user-key", "api-token", "order_executed", "AAPL", {"quantity": 1})

        assert ok is True
        data = mock_client.post.call_args.kwargs["data"]
        assert data["token"] == "api-token"
        assert data["user"] == "user-key"
        assert data["title"] == "📤 Executed AAPL"

    @pytest.mark.asyncio
    async def test_non_200_returns_false(self, mock_client):
        mock_client.post.return_value = httpx.Response(400, text="invalid token")
        assert await pushover_service.send_pushover("u", "t", "order_executed", "AAPL", {}) is False

    @pytest.mark.asyncio
    async def test_transport_error_returns_false(self, mock_client):
        """Failure: connection errors are reported, never raised."""
        mock_client.post.side_effect = httpx.ConnectError("unreachable")
        assert await pushover_service.send_pushover("u", "t", "order_executed", "AAPL", {}) is False
