"""
Notification Service

Fans trade events out to email (SES) and Pushover according to the flags in
execution_settings. Notifications are best effort: every failure is logged
and swallowed so it can never undo the state change being reported.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from execution_wall.models import ExecutionSettings
from execution_wall.services import email_service, pushover_service

logger = logging.getLogger(__name__)

# Which settings flag gates each event
EVENT_FLAGS = {
    "signal_approved": "notify_on_approval",
    "order_executed": "notify_on_execution",
    "position_closed": "notify_on_close",
    "exit_signal": "notify_on_close",
}


def _wants(exec_settings: ExecutionSettings, event_type: str) -> bool:
    flag = EVENT_FLAGS.get(event_type)
    return bool(getattr(exec_settings, flag, False)) if flag else False


async def notify(
    exec_settings: Optional[ExecutionSettings],
    event_type: str,
    ticker: str,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    if exec_settings is None or not _wants(exec_settings, event_type):
        return
    details = details or {}

    if exec_settings.email_notifications and exec_settings.notification_email:
        try:
            await asyncio.to_thread(
                email_service.send_trade_notification,
                exec_settings.notification_email,
                event_type,
                ticker,
                details,
            )
        except Exception as e:
            logger.error(f"Email notification failed for {ticker} {event_type}: {e}", exc_info=True)

    if exec_settings.pushover_enabled and exec_settings.pushover_user_key and exec_settings.pushover_api_token:
        try:
            await pushover_service.send_pushover(
                exec_settings.pushover_user_key,
                exec_settings.pushover_api_token,
                event_type,
                ticker,
                details,
            )
        except Exception as e:
            logger.error(f"Pushover notification failed for {ticker} {event_type}: {e}", exc_info=True)
