"""
Ticker gate API routes

View and edit per-ticker blocks, and the manual "reset everything" button.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.exceptions import NotFoundError
from execution_wall.schemas import ResetAllResponse, TickerConfigResponse, TickerConfigUpdate
from execution_wall.services import ticker_gate
from execution_wall.services.execution_scheduler import execution_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/ticker-configs", tags=["ticker-configs"])


@router.get("", response_model=List[TickerConfigResponse])
async def list_ticker_configs(db: AsyncSession = Depends(get_db)):
    return await ticker_gate.list_configs(db)


@router.post("/reset-all", response_model=ResetAllResponse)
async def reset_all(db: AsyncSession = Depends(get_db)):
    """Re-enable every ticker and drop swiped_off cards"""
    counts = await ticker_gate.manual_reset(db)
    return {
        **counts,
        "message": f"Reset {counts['tickers_reset']} tickers and cleared {counts['intents_cleared']} blocked intents",
    }


@router.get("/{ticker}", response_model=TickerConfigResponse)
async def get_ticker_config(ticker: str, db: AsyncSession = Depends(get_db)):
    config = await ticker_gate.get_ticker_config(db, ticker)
    if config is None:
        raise NotFoundError(f"No config for ticker {ticker.upper()}")
    return config


@router.put("/{ticker}", response_model=TickerConfigResponse)
async def update_ticker_config(ticker: str, request: TickerConfigUpdate, db: AsyncSession = Depends(get_db)):
    config = await ticker_gate.update_config(
        db,
        ticker,
        enabled=request.enabled,
        blocked_until=request.blocked_until,
        cooldown_minutes=request.cooldown_minutes,
        clear_block=request.clear_block,
    )
    if config.blocked_until is not None:
        # Timed block needs the scheduler awake to clear it
        execution_scheduler.activate("ticker cooldown set")
    return config
