"""
Ticker Gate Service

Per-ticker accept/block state. Two kinds of block that must never be mixed up:

- timed cooldown: blocked_until is set; the execution scheduler clears it
  once the time has passed.
- indefinite block: enabled=False and blocked_until is NULL; only the daily
  reset or an explicit revive/reset clears it. The scheduler never touches it.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import INTENT_BLOCKED
from execution_wall.models import TickerConfig, TradeIntent
from execution_wall.services.audit_service import record_audit

logger = logging.getLogger(__name__)


async def get_ticker_config(db: AsyncSession, ticker: str) -> Optional[TickerConfig]:
    result = await db.execute(select(TickerConfig).where(TickerConfig.ticker == ticker.upper()))
    return result.scalars().first()


async def _get_or_create(db: AsyncSession, ticker: str) -> TickerConfig:
    config = await get_ticker_config(db, ticker)
    if config is None:
        config = TickerConfig(ticker=ticker.upper(), enabled=True, blocked_until=None)
        db.add(config)
    return config


def gate_accepts(config: Optional[TickerConfig], now: Optional[datetime] = None) -> bool:
    """True if new signals for the ticker should be accepted."""
    if config is None:
        return True
    now = now or datetime.utcnow()
    if config.blocked_until is not None:
        # Timed cooldown: blocked until the timestamp passes, whatever `enabled` says
        return config.blocked_until <= now
    return bool(config.enabled)


async def is_accepting(db: AsyncSession, ticker: str, now: Optional[datetime] = None) -> bool:
    return gate_accepts(await get_ticker_config(db, ticker), now)


async def place_cooldown(
    db: AsyncSession,
    ticker: str,
    minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> TickerConfig:
    """Block a ticker for a fixed number of minutes (staged, caller commits)."""
    minutes = minutes if minutes is not None else settings.position_close_cooldown_minutes
    now = now or datetime.utcnow()
    config = await _get_or_create(db, ticker)
    config.blocked_until = now + timedelta(minutes=minutes)
    logger.info(f"⏳ {config.ticker} cooling down until {config.blocked_until.isoformat()}")
    return config


async def block_indefinitely(db: AsyncSession, ticker: str) -> TickerConfig:
    """Block until the next daily reset or manual revive (staged, caller commits)."""
    config = await _get_or_create(db, ticker)
    config.enabled = False
    config.blocked_until = None
    logger.info(f"⛔ {config.ticker} blocked until next daily reset")
    return config


async def enable(db: AsyncSession, ticker: str) -> TickerConfig:
    """Clear any block on a ticker (staged, caller commits)."""
    config = await _get_or_create(db, ticker)
    config.enabled = True
    config.blocked_until = None
    return config


async def sweep_expired_cooldowns(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """
    Clear timed cooldowns that have elapsed.

    Filters strictly on blocked_until IS NOT NULL AND blocked_until <= now, so
    indefinite blocks (blocked_until NULL) are never matched.
    """
    now = now or datetime.utcnow()
    result = await db.execute(
        update(TickerConfig)
        .where(
            TickerConfig.blocked_until.isnot(None),
            TickerConfig.blocked_until <= now,
        )
        .values(enabled=True, blocked_until=None, updated_at=now)
    )
    cleared = result.rowcount or 0
    if cleared:
        logger.info(f"🔓 Cleared {cleared} expired ticker cooldown(s)")
    return cleared


async def has_timed_blocks(db: AsyncSession) -> bool:
    result = await db.execute(
        select(func.count(TickerConfig.id)).where(TickerConfig.blocked_until.isnot(None))
    )
    return (result.scalar() or 0) > 0


async def reset_all(db: AsyncSession) -> dict:
    """Manual reset: re-enable every blocked ticker and drop swiped_off cards (staged)."""
    tickers = await db.execute(
        update(TickerConfig)
        .where((TickerConfig.enabled.is_(False)) | (TickerConfig.blocked_until.isnot(None)))
        .values(enabled=True, blocked_until=None)
    )
    intents = await db.execute(
        delete(TradeIntent).where(TradeIntent.status == INTENT_BLOCKED)
    )
    return {"tickers_reset": tickers.rowcount or 0, "intents_cleared": intents.rowcount or 0}


async def list_configs(db: AsyncSession) -> List[TickerConfig]:
    result = await db.execute(select(TickerConfig).order_by(TickerConfig.ticker))
    return list(result.scalars().all())


async def update_config(
    db: AsyncSession,
    ticker: str,
    enabled: Optional[bool] = None,
    blocked_until: Optional[datetime] = None,
    cooldown_minutes: Optional[int] = None,
    clear_block: bool = False,
) -> TickerConfig:
    """Manual gate edit from the API (upserts the row and commits)."""
    config = await _get_or_create(db, ticker)
    if enabled is not None:
        config.enabled = enabled
    if clear_block:
        config.blocked_until = None
    elif cooldown_minutes is not None:
        config.blocked_until = datetime.utcnow() + timedelta(minutes=cooldown_minutes)
    elif blocked_until is not None:
        if blocked_until.tzinfo is not None:
            blocked_until = blocked_until.astimezone(timezone.utc).replace(tzinfo=None)
        config.blocked_until = blocked_until

    record_audit(db, "ticker_config_updated", config.ticker, {
        "enabled": config.enabled,
        "blocked_until": config.blocked_until,
    })
    await db.commit()
    await db.refresh(config)
    logger.info(f"✅ Ticker config updated: {config.ticker}")
    return config


async def manual_reset(db: AsyncSession) -> dict:
    counts = await reset_all(db)
    record_audit(db, "manual_reset", details={**counts, "source": "user"})
    await db.commit()
    logger.info(
        f"🔄 Manual reset: {counts['tickers_reset']} tickers re-enabled, "
        f"{counts['intents_cleared']} blocked intents cleared"
    )
    return counts
