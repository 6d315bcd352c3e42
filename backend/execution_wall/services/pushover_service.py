"""
Pushover Service - Push notifications to phones via the Pushover API
"""

import logging
from typing import Any, Dict

import httpx

from execution_wall.config import settings

logger = logging.getLogger(__name__)

# -2 silent, -1 quiet, 0 normal, 1 high
EVENT_PRIORITIES = {
    "signal_approved": 0,
    "order_executed": 0,
    "position_closed": 0,
    "exit_signal": 1,
}

EVENT_TITLES = {
    "signal_approved": "✅ Approved",
    "order_executed": "📤 Executed",
    "position_closed": "📉 Closed",
    "exit_signal": "🚪 EXIT",
}


def format_message(event_type: str, ticker: str, details: Dict[str, Any]) -> Dict[str, Any]:
    title = f"{EVENT_TITLES.get(event_type, event_type)} {ticker}"
    lines = [f"{key}: {value}" for key, value in details.items() if value is not None]
    return {
        "title": title,
        "message": "\n".join(lines) or title,
        "priority": EVENT_PRIORITIES.get(event_type, 0),
    }


async def send_pushover(
    user_key: str,
    api_token: str,
    event_type: str,
    ticker: str,
    details: Dict[str, Any],
) -> bool:
    """Send one push notification. Returns True on success, never raises."""
    body = {"token": api_token, "user": user_key, **format_message(event_type, ticker, details)}
    try:
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.post(settings.pushover_api_url, data=body)
    except httpx.HTTPError as e:
        logger.error(f"Pushover request failed for {ticker} {event_type}: {e}")
        return False

    if response.status_code != 200:
        logger.error(f"Pushover error {response.status_code}: {response.text}")
        return False

    logger.info(f"📲 Pushover sent: {event_type} {ticker}")
    return True
