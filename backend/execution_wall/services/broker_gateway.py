"""
Broker Gateway

One outbound POST per order to the configured broker webhook:

    {"symbol": "AAPL", "action": "buy", "quantity": 10, "limit_price": 189.34}

Never raises. Any failure comes back as BrokerResult(success=False, error=...)
so callers can record it without reverting local state. No retries.
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.models import Execution, ExecutionSettings
from execution_wall.services.audit_service import record_audit
from execution_wall.services.settings_service import get_execution_settings

logger = logging.getLogger(__name__)

# httpx.InvalidURL (a malformed saved URL) is not an HTTPError subclass
BROKER_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


@dataclass
class BrokerResult:
    success: bool
    status_code: Optional[int] = None
    response: Any = None
    error: Optional[str] = None


def build_order_payload(execution: Execution) -> dict:
    return {
        "symbol": execution.ticker,
        "action": execution.order_action,
        "quantity": execution.quantity,
        "limit_price": float(execution.limit_price) if execution.limit_price else 0.0,
    }


async def _post(url: str, payload: dict) -> httpx.Response:
    async with httpx.AsyncClient(timeout=settings.broker_timeout_seconds) as client:
        return await client.post(url, json=payload)


def _decode(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


async def forward_to_broker(
    db: AsyncSession,
    execution: Execution,
    exec_settings: Optional[ExecutionSettings] = None,
) -> BrokerResult:
    """Forward an order to the broker webhook. Audit entries are staged on db."""
    exec_settings = exec_settings or await get_execution_settings(db)

    if not exec_settings.broker_webhook_enabled or not exec_settings.broker_webhook_url:
        logger.info("📭 Broker webhook not configured or disabled")
        return BrokerResult(success=False, error="Broker webhook not configured or disabled")

    url = exec_settings.broker_webhook_url
    payload = build_order_payload(execution)
    logger.info(f"📤 Forwarding order to broker: {url} {payload}")

    try:
        response = await _post(url, payload)
    except BROKER_ERRORS as e:
        error = str(e) or e.__class__.__name__
        logger.error(f"❌ Broker webhook error: {error}")
        record_audit(db, "broker_webhook_error", execution.ticker, {
            "execution_id": execution.id,
            "error": error,
        })
        return BrokerResult(success=False, error=error)

    data = _decode(response)
    record_audit(db, "broker_webhook_sent", execution.ticker, {
        "execution_id": execution.id,
        "webhook_url": url,
        "payload": payload,
        "response_status": response.status_code,
        "response_data": data,
        "success": response.is_success,
    })

    if not response.is_success:
        logger.error(f"❌ Broker webhook failed: {response.status_code} {response.text}")
        return BrokerResult(
            success=False,
            status_code=response.status_code,
            response=data,
            error=f"Broker responded with {response.status_code}: {response.text}",
        )

    logger.info(f"✅ Broker webhook success: {response.status_code}")
    return BrokerResult(success=True, status_code=response.status_code, response=data)


async def test_broker_webhook(url: str) -> BrokerResult:
    """Send a fixed TEST order to a webhook URL to check connectivity."""
    test_payload = {"symbol": "TEST", "action": "buy", "quantity": 1, "limit_price": 100.0}
    logger.info(f"🧪 Testing broker webhook: {url}")
    try:
        response = await _post(url, test_payload)
    except BROKER_ERRORS as e:
        return BrokerResult(success=False, error=str(e) or e.__class__.__name__)

    if not response.is_success:
        return BrokerResult(
            success=False,
            status_code=response.status_code,
            error=f"Broker responded with {response.status_code}: {response.text}",
        )
    return BrokerResult(success=True, status_code=response.status_code, response=_decode(response))
