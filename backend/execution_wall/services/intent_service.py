"""
Trade Intent Service

State machine for trade intents (WALL cards waiting on a swipe):

    pending --approve--> swiped_on
    pending --deny-----> swiped_deny
    pending --off------> swiped_off      (also blocks the ticker)
    swiped_off/deny --revive--> pending  (fresh expiry, ticker re-enabled)
    any non-terminal --invalidate--> cancelled
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import (
    CARD_INVALIDATED,
    INTENT_APPROVED,
    INTENT_BLOCKED,
    INTENT_CANCELLED,
    INTENT_DEAD_STATUSES,
    INTENT_DENIED,
    INTENT_PENDING,
    SWIPE_ACTIONS,
)
from execution_wall.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from execution_wall.models import TradeIntent
from execution_wall.services import ticker_gate
from execution_wall.services.audit_service import record_audit
from execution_wall.services.notification_service import notify
from execution_wall.services.settings_service import get_execution_settings

logger = logging.getLogger(__name__)

# Which statuses each swipe action may start from
_ALLOWED_FROM = {
    "approve": (INTENT_PENDING,),
    "deny": (INTENT_PENDING, INTENT_APPROVED),
    "off": (INTENT_PENDING, INTENT_APPROVED, INTENT_DENIED),
    "revive": (INTENT_BLOCKED, INTENT_DENIED),
}


def is_approved(intent: Optional[TradeIntent]) -> bool:
    return intent is not None and intent.status == INTENT_APPROVED


async def get_intent(db: AsyncSession, intent_id: int) -> TradeIntent:
    intent = await db.get(TradeIntent, intent_id)
    if intent is None:
        raise NotFoundError("Trade intent not found")
    return intent


async def find_live_intent(
    db: AsyncSession,
    ticker: str,
    now: Optional[datetime] = None,
    statuses: Optional[List[str]] = None,
) -> Optional[TradeIntent]:
    """
    The live intent for a ticker: not expired, not denied/blocked/cancelled,
    most recently updated first.

    Matches on ticker only (not direction or size).
    """
    now = now or datetime.utcnow()
    query = select(TradeIntent).where(
        TradeIntent.ticker == ticker.upper(),
        TradeIntent.expires_at > now,
    )
    if statuses:
        query = query.where(TradeIntent.status.in_(statuses))
    else:
        query = query.where(TradeIntent.status.notin_(INTENT_DEAD_STATUSES))

    result = await db.execute(
        query.order_by(TradeIntent.updated_at.desc(), TradeIntent.id.desc()).limit(1)
    )
    return result.scalars().first()


def cancel_intent(db: AsyncSession, intent: TradeIntent, reason: str) -> None:
    """Move an intent to cancelled/INVALIDATED (staged, caller commits)."""
    previous = intent.status
    intent.status = INTENT_CANCELLED
    intent.card_state = CARD_INVALIDATED
    record_audit(db, "intent_invalidated", intent.ticker, {
        "intent_id": intent.id,
        "previous_status": previous,
        "reason": reason,
    })


async def swipe(db: AsyncSession, intent_id: int, action: str) -> TradeIntent:
    """Apply a swipe action and its ticker-gate side effects."""
    if action not in SWIPE_ACTIONS:
        raise ValidationError("Invalid action. Must be: approve, deny, off, or revive")

    intent = await get_intent(db, intent_id)
    previous = intent.status
    if previous not in _ALLOWED_FROM[action]:
        raise InvalidTransitionError(f"Cannot {action} a trade intent in status '{previous}'")

    now = datetime.utcnow()
    intent.status = SWIPE_ACTIONS[action]

    if action in ("off", "deny"):
        # Expire immediately so the card doesn't show up next session
        intent.expires_at = now
    elif action == "revive":
        intent.expires_at = now + timedelta(hours=settings.intent_ttl_hours)

    if action in ("approve", "revive"):
        await ticker_gate.enable(db, intent.ticker)
    elif action == "off":
        await ticker_gate.block_indefinitely(db, intent.ticker)
        others = await db.execute(
            update(TradeIntent)
            .where(
                TradeIntent.ticker == intent.ticker,
                TradeIntent.id != intent.id,
                TradeIntent.status.in_((INTENT_PENDING, INTENT_APPROVED)),
            )
            .values(status=INTENT_CANCELLED, card_state=CARD_INVALIDATED)
        )
        if others.rowcount:
            logger.info(f"   ↳ Invalidated {others.rowcount} other intents for {intent.ticker}")

    record_audit(db, f"swiped_{action}", intent.ticker, {
        "intent_id": intent.id,
        "action": action,
        "previous_status": previous,
        "new_status": intent.status,
    })
    await db.commit()
    await db.refresh(intent)

    logger.info(f"✅ Trade intent {intent.id} swiped: {action}")

    if action == "approve":
        await notify(await get_execution_settings(db), "signal_approved", intent.ticker, {
            "direction": intent.dir,
            "price": intent.price,
            "quality_tier": intent.quality_tier,
        })
    return intent


async def invalidate(db: AsyncSession, intent_id: int, reason: str = "manual") -> TradeIntent:
    intent = await get_intent(db, intent_id)
    if intent.status in INTENT_DEAD_STATUSES:
        raise InvalidTransitionError(f"Cannot invalidate a trade intent in status '{intent.status}'")

    cancel_intent(db, intent, reason)
    await db.commit()
    await db.refresh(intent)
    logger.info(f"✅ Trade intent {intent.id} invalidated")
    return intent


async def list_intents(
    db: AsyncSession,
    card_states: Optional[List[str]] = None,
    statuses: Optional[List[str]] = None,
    ticker: Optional[str] = None,
    limit: int = 50,
) -> List[TradeIntent]:
    """
    Cards for the swipe deck.

    Expired intents are hidden, except when asking only for swiped_off cards:
    those are shown for the last 24 hours so they can be revived.
    """
    now = datetime.utcnow()
    query = select(TradeIntent)
    if card_states:
        query = query.where(TradeIntent.card_state.in_(card_states))
    if statuses:
        query = query.where(TradeIntent.status.in_(statuses))
    if ticker:
        query = query.where(TradeIntent.ticker == ticker.upper())

    if statuses == [INTENT_BLOCKED]:
        query = query.where(TradeIntent.created_at > now - timedelta(hours=24))
    else:
        query = query.where(TradeIntent.expires_at > now)

    result = await db.execute(query.order_by(TradeIntent.created_at.desc(), TradeIntent.id.desc()).limit(limit))
    return list(result.scalars().all())
