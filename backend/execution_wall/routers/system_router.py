"""
System API routes

Handles system-level endpoints:
- Health check
- Background service status (schedulers, daily reset, symbol locks)
- Forced daily reset
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.constants import EXEC_PENDING, INTENT_APPROVED, INTENT_PENDING
from execution_wall.database import get_db
from execution_wall.models import Execution, Position, TickerConfig, TradeIntent
from execution_wall.services.daily_reset import daily_reset_service
from execution_wall.services.execution_scheduler import execution_scheduler
from execution_wall.services.mode_scheduler import mode_scheduler
from execution_wall.services.settings_service import get_execution_settings
from execution_wall.services.symbol_lock import symbol_lock

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.utcnow().isoformat()}


async def _count(db: AsyncSession, column, *conditions) -> int:
    result = await db.execute(select(func.count(column)).where(*conditions))
    return result.scalar() or 0


@router.get("/api/system/status")
async def get_system_status(db: AsyncSession = Depends(get_db)):
    """Get overall system status"""
    exec_settings = await get_execution_settings(db)
    now = datetime.utcnow()

    return {
        "execution_mode": exec_settings.execution_mode,
        "use_time_schedules": exec_settings.use_time_schedules,
        "execution_scheduler": execution_scheduler.get_status(),
        "mode_scheduler": mode_scheduler.status,
        "daily_reset": daily_reset_service.status,
        "symbol_locks": symbol_lock.get_status(),
        "counts": {
            "pending_executions": await _count(db, Execution.id, Execution.status == EXEC_PENDING),
            "live_intents": await _count(
                db, TradeIntent.id,
                TradeIntent.status.in_((INTENT_PENDING, INTENT_APPROVED)),
                TradeIntent.expires_at > now,
            ),
            "open_positions": await _count(db, Position.id, Position.closed_at.is_(None)),
            "blocked_tickers": await _count(
                db, TickerConfig.id,
                (TickerConfig.enabled.is_(False)) | (TickerConfig.blocked_until.isnot(None)),
            ),
        },
        "timestamp": now.isoformat(),
    }


@router.post("/api/system/daily-reset")
async def force_daily_reset(db: AsyncSession = Depends(get_db)):
    """Run the daily reset now, even if it already ran today"""
    result = await daily_reset_service.force_reset(db)
    return {"success": True, **result}
