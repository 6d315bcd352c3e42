"""
Email Service - Send trade notification emails via Amazon SES

Uses boto3 SDK (HTTPS API calls, no SMTP needed).
Auth via the instance IAM role or the standard AWS environment variables.
"""

import logging
from typing import Any, Dict

import boto3
from botocore.exceptions import ClientError

from execution_wall.config import settings

logger = logging.getLogger(__name__)

BRAND_NAME = "Execution Wall"

EVENT_SUBJECTS = {
    "signal_approved": "✅ Signal approved: {ticker}",
    "order_executed": "📤 Order executed: {ticker}",
    "position_closed": "📉 Position closed: {ticker}",
    "exit_signal": "🚪 Exit signal received: {ticker}",
}

EVENT_HEADLINES = {
    "signal_approved": "Signal Approved",
    "order_executed": "Order Executed",
    "position_closed": "Position Closed",
    "exit_signal": "Exit Signal Received",
}


def _get_ses_client():
    """Get SES client using IAM instance role credentials."""
    return boto3.client("ses", region_name=settings.ses_region)


def _email_header() -> str:
    return (
        '<div style="text-align: center; padding: 20px 0;'
        ' border-bottom: 1px solid #334155;">'
        f'<h1 style="color: #3b82f6; margin: 0; font-size: 24px;">{BRAND_NAME}</h1>'
        '</div>'
    )


def _email_footer() -> str:
    return (
        '<div style="border-top: 1px solid #334155;'
        ' padding: 15px 0; text-align: center;">'
        '<p style="color: #64748b; font-size: 12px; margin: 0;">'
        'You are receiving this because trade notifications are enabled.</p>'
        '</div>'
    )


def get_subject(event_type: str, ticker: str) -> str:
    template = EVENT_SUBJECTS.get(event_type, "{ticker}: " + event_type)
    return f"{template.format(ticker=ticker)} - {BRAND_NAME}"


def _detail_rows(details: Dict[str, Any]) -> str:
    return "".join(
        '<tr>'
        f'<td style="color: #94a3b8; padding: 4px 12px 4px 0;">{key.replace("_", " ").title()}</td>'
        f'<td style="color: #f1f5f9; padding: 4px 0;">{value}</td>'
        '</tr>'
        for key, value in details.items()
        if value is not None
    )


def send_trade_notification(to: str, event_type: str, ticker: str, details: Dict[str, Any]) -> bool:
    """Send one trade event email. Returns True on success."""
    if not settings.ses_enabled:
        logger.warning("SES disabled, skipping %s email to %s", event_type, to)
        return False

    headline = EVENT_HEADLINES.get(event_type, event_type)
    subject = get_subject(event_type, ticker)
    html_body = (
        '<div style="font-family: -apple-system, BlinkMacSystemFont,'
        " 'Segoe UI', Roboto, sans-serif; max-width: 600px;"
        ' margin: 0 auto; padding: 20px;'
        ' background-color: #0f172a; color: #e2e8f0;">'
        f'{_email_header()}'
        '<div style="padding: 30px 0;">'
        f'<h2 style="color: #f1f5f9; margin: 0 0 15px 0;">{headline}: {ticker}</h2>'
        f'<table style="font-size: 14px;">{_detail_rows(details)}</table>'
        '</div>'
        f'{_email_footer()}'
        '</div>'
    )
    text_body = f"{headline}: {ticker}\n\n" + "\n".join(
        f"{key}: {value}" for key, value in details.items() if value is not None
    )

    return _send_email(to, subject, html_body, text_body)


def send_test_email(to: str) -> bool:
    """Send a connectivity test email."""
    if not settings.ses_enabled:
        logger.warning("SES disabled, skipping test email to %s", to)
        return False

    subject = f"{BRAND_NAME} - Test Email"
    html_body = (
        '<div style="font-family: -apple-system, BlinkMacSystemFont,'
        " 'Segoe UI', Roboto, sans-serif; max-width: 600px;"
        ' margin: 0 auto; padding: 20px;'
        ' background-color: #0f172a; color: #e2e8f0;">'
        f'{_email_header()}'
        '<div style="padding: 30px 0;">'
        '<p style="color: #cbd5e1; line-height: 1.6;">'
        'Email notifications are configured correctly.</p>'
        '</div>'
        f'{_email_footer()}'
        '</div>'
    )
    text_body = "Email notifications are configured correctly."
    return _send_email(to, subject, html_body, text_body)


def _send_email(to: str, subject: str, html_body: str, text_body: str) -> bool:
    """Send an email via SES. Returns True on success."""
    try:
        client = _get_ses_client()
        response = client.send_email(
            Source=settings.ses_sender_email,
            Destination={"ToAddresses": [to]},
            Message={
                "Subject": {"Data": subject, "Charset": "UTF-8"},
                "Body": {
                    "Html": {"Data": html_body, "Charset": "UTF-8"},
                    "Text": {"Data": text_body, "Charset": "UTF-8"},
                },
            },
        )
        message_id = response.get("MessageId", "unknown")
        logger.info("Email sent to %s (MessageId: %s)", to, message_id)
        return True
    except ClientError as e:
        error_code = e.response["Error"]["Code"]
        error_msg = e.response["Error"]["Message"]
        logger.error(
            "SES error sending to %s: %s - %s", to, error_code, error_msg
        )
        return False
    except Exception as e:
        logger.error("Failed to send email to %s: %s", to, e)
        return False
