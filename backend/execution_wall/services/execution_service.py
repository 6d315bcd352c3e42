"""
Execution Service

Lifecycle of queued orders outside the scheduler loop:
manual create/edit/cancel/execute, and the shared completion step
(forward to broker, mark executed, apply the fill) that the scheduler and
live-mode intake also use.

An execution leaves `pending` exactly once. Every override here refuses to
touch a record that is already executed, cancelled or failed.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.constants import (
    ACTION_BUY,
    ACTION_SELL,
    EVENT_EXIT,
    EVENT_ORDER,
    EXEC_CANCELLED,
    EXEC_EXECUTED,
    EXEC_FAILED,
    EXEC_PENDING,
    SIDE_LONG,
    SIDE_SHORT,
)
from execution_wall.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from execution_wall.models import Execution, ExecutionSettings, Position
from execution_wall.services.audit_service import record_audit
from execution_wall.services.broker_gateway import BrokerResult, forward_to_broker
from execution_wall.services.position_ledger import FillResult, apply_fill, get_open_position

logger = logging.getLogger(__name__)

BrokerCall = Callable[..., Awaitable[BrokerResult]]


def parse_payload(raw_payload: Optional[str]) -> Dict[str, Any]:
    if not raw_payload:
        return {}
    try:
        data = json.loads(raw_payload)
    except (TypeError, ValueError):
        return {}
    return data if isinstance(data, dict) else {}


def is_exit_payload(raw_payload: Optional[str]) -> bool:
    """EXIT executions are recognised by the event marker in their payload."""
    return parse_payload(raw_payload).get("event") == EVENT_EXIT


def is_exit(execution: Execution) -> bool:
    return is_exit_payload(execution.raw_payload)


def default_dir(order_action: str) -> str:
    return SIDE_LONG if order_action == ACTION_BUY else SIDE_SHORT


async def get_execution(db: AsyncSession, execution_id: int) -> Execution:
    execution = await db.get(Execution, execution_id)
    if execution is None:
        raise NotFoundError("Execution not found")
    return execution


def _require_pending(execution: Execution, verb: str) -> None:
    if execution.status != EXEC_PENDING:
        raise InvalidTransitionError(f"Cannot {verb} an execution in status '{execution.status}'")


async def list_executions(
    db: AsyncSession,
    statuses: Optional[List[str]] = None,
    ticker: Optional[str] = None,
    limit: int = 100,
) -> List[Execution]:
    query = select(Execution)
    if statuses:
        query = query.where(Execution.status.in_(statuses))
    if ticker:
        query = query.where(Execution.ticker == ticker.upper())
    result = await db.execute(query.order_by(Execution.created_at.desc(), Execution.id.desc()).limit(limit))
    return list(result.scalars().all())


async def get_execution_with_position(db: AsyncSession, execution_id: int) -> Dict[str, Any]:
    """Execution plus the position it acts on (payload position_id first, then open by ticker)."""
    execution = await get_execution(db, execution_id)
    payload = parse_payload(execution.raw_payload)

    position = None
    position_id = payload.get("position_id")
    if position_id:
        try:
            position = await db.get(Position, int(position_id))
        except (TypeError, ValueError):
            position = None
    if position is None:
        position = await get_open_position(db, execution.ticker)

    return {
        "execution": execution,
        "position": position,
        "is_exit": payload.get("event") == EVENT_EXIT,
    }


def stage_execution(
    db: AsyncSession,
    ticker: str,
    order_action: str,
    quantity: int,
    limit_price: Optional[float] = None,
    dir: Optional[str] = None,
    delay_minutes: int = 0,
    intent_id: Optional[int] = None,
    raw_payload: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Execution:
    """Build a pending execution and add it to the session (caller flushes/commits)."""
    if order_action not in (ACTION_BUY, ACTION_SELL):
        raise ValidationError(f"Invalid order_action '{order_action}'. Must be buy or sell")
    if quantity is None or int(quantity) <= 0:
        raise ValidationError("quantity must be a positive integer")

    now = now or datetime.utcnow()
    ticker = ticker.upper()
    dir = dir or default_dir(order_action)
    payload = raw_payload or {
        "event": EVENT_ORDER,
        "ticker": ticker,
        "dir": dir,
        "price": limit_price or 0,
        "limit_price": limit_price or 0,
        "quantity": int(quantity),
        "order_action": order_action,
    }

    execution = Execution(
        ticker=ticker,
        dir=dir,
        order_action=order_action,
        quantity=int(quantity),
        limit_price=limit_price,
        status=EXEC_PENDING,
        delay_expires_at=now + timedelta(minutes=delay_minutes) if delay_minutes > 0 else now,
        intent_id=intent_id,
        raw_payload=json.dumps(payload),
        created_at=now,
        updated_at=now,
    )
    db.add(execution)
    return execution


async def create_execution(
    db: AsyncSession,
    ticker: str,
    order_action: str,
    quantity: int,
    limit_price: Optional[float] = None,
    dir: Optional[str] = None,
    delay_minutes: int = 0,
    intent_id: Optional[int] = None,
    raw_payload: Optional[Dict[str, Any]] = None,
) -> Execution:
    """Manually queue a pending execution."""
    if not ticker:
        raise ValidationError("Missing required field: ticker")

    execution = stage_execution(
        db, ticker, order_action, quantity,
        limit_price=limit_price, dir=dir, delay_minutes=delay_minutes,
        intent_id=intent_id, raw_payload=raw_payload,
    )
    await db.flush()
    record_audit(db, "execution_created", execution.ticker, {
        "execution_id": execution.id,
        "order_action": order_action,
        "quantity": execution.quantity,
        "delay_expires_at": execution.delay_expires_at,
        "intent_id": intent_id,
    })
    await db.commit()
    await db.refresh(execution)

    logger.info(f"✅ Execution created: {execution.ticker} {order_action} {execution.quantity}")
    return execution


async def update_execution(
    db: AsyncSession,
    execution_id: int,
    limit_price: Optional[float] = None,
    quantity: Optional[int] = None,
) -> Execution:
    """Edit the limit price and/or size of a pending execution."""
    execution = await get_execution(db, execution_id)
    _require_pending(execution, "edit")

    changes = {}
    if limit_price is not None:
        if limit_price < 0:
            raise ValidationError("limit_price must be >= 0")
        execution.limit_price = limit_price
        changes["limit_price"] = limit_price
    if quantity is not None:
        if quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        execution.quantity = quantity
        changes["quantity"] = quantity

    if changes:
        record_audit(db, "execution_updated", execution.ticker, {"execution_id": execution.id, **changes})
    await db.commit()
    await db.refresh(execution)
    return execution


async def cancel_execution(db: AsyncSession, execution_id: int, reason: str = "Manually cancelled") -> Execution:
    execution = await get_execution(db, execution_id)
    _require_pending(execution, "cancel")

    execution.status = EXEC_CANCELLED
    execution.error_message = reason
    record_audit(db, "execution_cancelled", execution.ticker, {
        "execution_id": execution.id,
        "reason": reason,
    })
    await db.commit()
    await db.refresh(execution)

    logger.info(f"🚫 Execution {execution.id} cancelled: {execution.ticker}")
    return execution


async def complete_execution(
    db: AsyncSession,
    execution: Execution,
    broker: BrokerCall = forward_to_broker,
    exec_settings: Optional[ExecutionSettings] = None,
    now: Optional[datetime] = None,
) -> Tuple[BrokerResult, FillResult]:
    """
    Forward one order and book it locally (staged, caller commits).

    A failed forward is written to error_message but the execution still
    ends up executed and the fill is applied.
    """
    now = now or datetime.utcnow()
    result = await broker(db, execution, exec_settings)

    execution.status = EXEC_EXECUTED
    execution.executed_at = now
    execution.error_message = None if result.success else result.error

    fill = await apply_fill(db, execution, now=now)
    return result, fill


async def execute_now(db: AsyncSession, execution_id: int, broker: BrokerCall = forward_to_broker) -> Execution:
    """Force a pending execution through immediately, skipping the approval check."""
    execution = await get_execution(db, execution_id)
    _require_pending(execution, "execute")

    if is_exit(execution) and await get_open_position(db, execution.ticker) is None:
        # Forwarding would open a fresh position on the opposite side
        execution.status = EXEC_FAILED
        execution.error_message = f"No open position for {execution.ticker} - EXIT not forwarded"
        record_audit(db, "execution_failed", execution.ticker, {
            "execution_id": execution.id,
            "reason": execution.error_message,
            "manual": True,
        })
        await db.commit()
        await db.refresh(execution)
        logger.warning(f"⚠️ {execution.error_message}")
        return execution

    result, fill = await complete_execution(db, execution, broker=broker)
    record_audit(db, "execution_completed", execution.ticker, {
        "execution_id": execution.id,
        "order_action": execution.order_action,
        "quantity": execution.quantity,
        "manual": True,
        "broker_success": result.success,
        "position_id": fill.position.id,
        "position_closed": fill.closed,
    })
    await db.commit()
    await db.refresh(execution)

    logger.info(f"✅ Execution {execution.id} force-executed: {execution.ticker} {execution.order_action}")
    return execution
