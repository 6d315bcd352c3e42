"""Position API routes"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.exceptions import NotFoundError
from execution_wall.models import Position
from execution_wall.schemas import PositionResponse
from execution_wall.services import position_ledger

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/positions", tags=["positions"])


@router.get("", response_model=List[PositionResponse])
async def get_positions(
    open_only: bool = False,
    ticker: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """Get positions, open ones first"""
    query = select(Position)
    if open_only:
        query = query.where(Position.closed_at.is_(None))
    if ticker:
        query = query.where(Position.ticker == ticker.upper())
    query = query.order_by(Position.closed_at.isnot(None), desc(Position.opened_at)).limit(limit)

    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{position_id}", response_model=PositionResponse)
async def get_position(position_id: int, db: AsyncSession = Depends(get_db)):
    position = await db.get(Position, position_id)
    if position is None:
        raise NotFoundError("Position not found")
    return position


@router.post("/{position_id}/mark-flat", response_model=PositionResponse)
async def mark_flat(position_id: int, db: AsyncSession = Depends(get_db)):
    """Close a position by hand (e.g. flattened at the broker) and start the ticker cooldown"""
    return await position_ledger.mark_flat(db, position_id)
