"""
Tests for backend/execution_wall/services/email_service.py

Covers: get_subject, send_trade_notification, send_test_email,
        _send_email, _get_ses_client
"""

import pytest
from unittest.mock import patch, MagicMock
from botocore.exceptions import ClientError


@pytest.fixture
def mock_ses_client():
    """Create a mock SES client that returns a successful response."""
    client = MagicMock()
    client.send_email.return_value = {"MessageId": "test-msg-id-123"}
    return client


@pytest.fixture
def patch_ses(mock_ses_client):
    """Patch _get_ses_client to return the mock SES client."""
    with patch(
        "execution_wall.services.email_service._get_ses_client",
        return_value=mock_ses_client,
    ):
        yield mock_ses_client


@pytest.fixture
def ses_enabled():
    """Ensure SES is enabled for tests that need it."""
    with patch("execution_wall.services.email_service.settings") as mock_settings:
        mock_settings.ses_enabled = True
        mock_settings.ses_region = "us-east-1"
        mock_settings.ses_sender_email = "noreply@test.com"
        yield mock_settings


@pytest.fixture
def ses_disabled():
    with patch("execution_wall.services.email_service.settings") as mock_settings:
        mock_settings.ses_enabled = False
        yield mock_settings


class TestGetSesClient:
    """Tests for _get_ses_client()"""

    def test_creates_client_with_configured_region(self, ses_enabled):
        from execution_wall.services.email_service import _get_ses_client

        with patch("execution_wall.services.email_service.boto3") as mock_boto3:
            _get_ses_client()
        mock_boto3.client.assert_called_once_with("ses", region_name="us-east-1")


class TestGetSubject:
    def test_known_event(self):
        from execution_wall.services.email_service import get_subject

        assert get_subject("order_executed", "AAPL") == "📤 Order executed: AAPL - Execution Wall"

    def test_unknown_event_falls_back(self):
        from execution_wall.services.email_service import get_subject

        assert get_subject("something_else", "TSLA") == "TSLA: something_else - Execution Wall"


class TestSendTradeNotification:
    """Tests for send_trade_notification()"""

    def test_sends_html_and_text(self, ses_enabled, patch_ses):
        """Happy path: one SES call with the ticker and non-null details."""
        from execution_wall.services.email_service import send_trade_notification

        ok = send_trade_notification(
            "me@test.com", "order_executed", "AAPL", {"quantity": 10, "limit_price": None}
        )

        assert ok is True
        kwargs = patch_ses.send_email.call_args.kwargs
        assert kwargs["Source"] == "noreply@test.com"
        assert kwargs["Destination"] == {"ToAddresses": ["me@test.com"]}
        text = kwargs["Message"]["Body"]["Text"]["Data"]
        assert "Order Executed: AAPL" in text
        assert "quantity: 10" in text
        assert "limit_price" not in text
        assert "Quantity" in kwargs["Message"]["Body"]["Html"]["Data"]

    def test_skipped_when_ses_disabled(self, ses_disabled, patch_ses):
        """Edge case: nothing is sent when SES is off."""
        from execution_wall.services.email_service import send_trade_notification

        assert send_trade_notification("me@test.com", "order_executed", "AAPL", {}) is False
        patch_ses.send_email.assert_not_called()


class TestSendEmail:
    """Tests for _send_email()"""

    def test_client_error_returns_false(self, ses_enabled, patch_ses):
        """Failure: SES ClientError is logged and reported as False."""
        from execution_wall.services.email_service import _send_email

        patch_ses.send_email.side_effect = ClientError(
            {"Error": {"Code": "MessageRejected", "Message": "Email address is not verified."}},
            "SendEmail",
        )
        assert _send_email("me@test.com", "s", "<p>h</p>", "t") is False

    def test_unexpected_error_returns_false(self, ses_enabled, patch_ses):
        from execution_wall.services.email_service import _send_email

        patch_ses.send_email.side_effect = RuntimeError("network down")
        assert _send_email("me@test.com", "s", "<p>h</p>", "t") is False


class TestSendTestEmail:
    def test_sends(self, ses_enabled, patch_ses):
        from execution_wall.services.email_service import send_test_email

        assert send_test_email("me@test.com") is True
        subject = patch_ses.send_email.call_args.kwargs["Message"]["Subject"]["Data"]
        assert subject == "Execution Wall - Test Email"
