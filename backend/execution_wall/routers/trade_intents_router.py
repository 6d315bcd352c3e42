"""
Trade intent API routes

The swipe deck: list candidate cards and apply approve/deny/off/revive.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.schemas import InvalidateRequest, SwipeRequest, TradeIntentResponse
from execution_wall.services import intent_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/trade-intents", tags=["trade-intents"])


def _split(value: Optional[str]) -> Optional[List[str]]:
    if not value:
        return None
    return [part.strip() for part in value.split(",") if part.strip()]


@router.get("", response_model=List[TradeIntentResponse])
async def list_trade_intents(
    card_state: Optional[str] = None,
    status: Optional[str] = None,
    ticker: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
):
    """List cards. card_state and status accept comma-separated values."""
    return await intent_service.list_intents(
        db, card_states=_split(card_state), statuses=_split(status), ticker=ticker
    )


@router.get("/{intent_id}", response_model=TradeIntentResponse)
async def get_trade_intent(intent_id: int, db: AsyncSession = Depends(get_db)):
    return await intent_service.get_intent(db, intent_id)


@router.post("/{intent_id}/swipe", response_model=TradeIntentResponse)
async def swipe_trade_intent(intent_id: int, request: SwipeRequest, db: AsyncSession = Depends(get_db)):
    return await intent_service.swipe(db, intent_id, request.action)


@router.post("/{intent_id}/invalidate", response_model=TradeIntentResponse)
async def invalidate_trade_intent(
    intent_id: int,
    request: Optional[InvalidateRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    reason = request.reason if request and request.reason else "manual"
    return await intent_service.invalidate(db, intent_id, reason)
