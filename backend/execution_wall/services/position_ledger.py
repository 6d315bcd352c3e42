"""
Position Ledger

Tracks the net open position per ticker and applies fills to it.

The arithmetic lives in compute_fill(), which knows nothing about the
database, so side handling can be tested on its own.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.constants import ACTION_BUY, ACTION_SELL, SIDE_LONG, SIDE_SHORT
from execution_wall.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from execution_wall.models import Execution, Position
from execution_wall.services import ticker_gate
from execution_wall.services.audit_service import record_audit

logger = logging.getLogger(__name__)


def side_for_action(order_action: str) -> str:
    """Side of a brand-new position opened by this order action."""
    if order_action == ACTION_BUY:
        return SIDE_LONG
    if order_action == ACTION_SELL:
        return SIDE_SHORT
    raise ValidationError(f"Invalid order_action '{order_action}'. Must be buy or sell")


def compute_fill(side: str, order_action: str, existing_qty: int, fill_qty: int) -> int:
    """
    New position size after a fill.

    Long: buy adds, sell reduces. Short: sell adds to the short, buy covers it.
    A result <= 0 means the position is flat (or flipped) and should close.
    """
    if side not in (SIDE_LONG, SIDE_SHORT):
        raise ValidationError(f"Invalid position side '{side}'")
    if order_action not in (ACTION_BUY, ACTION_SELL):
        raise ValidationError(f"Invalid order_action '{order_action}'. Must be buy or sell")

    adds = (side == SIDE_LONG and order_action == ACTION_BUY) or (
        side == SIDE_SHORT and order_action == ACTION_SELL
    )
    return existing_qty + fill_qty if adds else existing_qty - fill_qty


@dataclass
class FillResult:
    position: Position
    opened: bool = False
    closed: bool = False
    previous_quantity: int = 0


async def get_open_position(db: AsyncSession, ticker: str) -> Optional[Position]:
    result = await db.execute(
        select(Position)
        .where(Position.ticker == ticker.upper(), Position.closed_at.is_(None))
        .order_by(Position.opened_at.desc())
    )
    return result.scalars().first()


async def _close(db: AsyncSession, position: Position, now: datetime, reason: str) -> None:
    position.closed_at = now
    cooldown = await ticker_gate.place_cooldown(db, position.ticker, now=now)
    record_audit(db, "position_closed", position.ticker, {
        "position_id": position.id,
        "side": position.side,
        "quantity": position.quantity,
        "reason": reason,
        "blocked_until": cooldown.blocked_until,
    })


async def apply_fill(db: AsyncSession, execution: Execution, now: Optional[datetime] = None) -> FillResult:
    """
    Apply an executed order to the ticker's open position (staged, caller commits).

    Opens a position when none exists. Closing a position places the
    post-close cooldown on the ticker gate.
    """
    now = now or datetime.utcnow()
    position = await get_open_position(db, execution.ticker)

    if position is None:
        position = Position(
            ticker=execution.ticker.upper(),
            side=side_for_action(execution.order_action),
            quantity=execution.quantity,
            entry_price=execution.limit_price or 0.0,
            opened_at=now,
        )
        db.add(position)
        await db.flush()
        logger.info(f"📈 Opened {position.side} {position.ticker} x{position.quantity}")
        return FillResult(position=position, opened=True)

    previous = position.quantity
    new_quantity = compute_fill(position.side, execution.order_action, previous, execution.quantity)

    if new_quantity <= 0:
        await _close(db, position, now, reason=f"execution {execution.id}")
        logger.info(f"📉 Closed {position.side} {position.ticker} (was {previous})")
        return FillResult(position=position, closed=True, previous_quantity=previous)

    position.quantity = new_quantity
    logger.info(f"📊 {position.ticker} {position.side} quantity {previous} -> {new_quantity}")
    return FillResult(position=position, previous_quantity=previous)


async def mark_flat(db: AsyncSession, position_id: int) -> Position:
    """Force-close a position outside the scheduler and start the ticker cooldown."""
    position = await db.get(Position, position_id)
    if position is None:
        raise NotFoundError("Position not found")
    if position.closed_at is not None:
        raise InvalidTransitionError("Position already closed")

    await _close(db, position, datetime.utcnow(), reason="mark_flat")
    await db.commit()
    await db.refresh(position)
    logger.info(f"✅ Position marked flat: {position.ticker}")
    return position
