"""
Execution API routes

Handles queued orders:
- List / detail (with the position an order acts on)
- Manual create, edit, cancel
- Force execute (skips the approval check)
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.schemas import (
    CancelRequest,
    ExecutionCreate,
    ExecutionResponse,
    ExecutionUpdate,
    ExecutionWithPosition,
)
from execution_wall.services import execution_service
from execution_wall.services.execution_scheduler import execution_scheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/executions", tags=["executions"])


@router.get("", response_model=List[ExecutionResponse])
async def list_executions(
    status: Optional[str] = None,
    ticker: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
):
    """List executions, newest first. status accepts comma-separated values."""
    statuses = [s.strip() for s in status.split(",") if s.strip()] if status else None
    return await execution_service.list_executions(db, statuses=statuses, ticker=ticker, limit=limit)


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(execution_id: int, db: AsyncSession = Depends(get_db)):
    return await execution_service.get_execution(db, execution_id)


@router.get("/{execution_id}/with-position", response_model=ExecutionWithPosition)
async def get_execution_with_position(execution_id: int, db: AsyncSession = Depends(get_db)):
    return await execution_service.get_execution_with_position(db, execution_id)


@router.post("", response_model=ExecutionResponse, status_code=201)
async def create_execution(request: ExecutionCreate, db: AsyncSession = Depends(get_db)):
    execution = await execution_service.create_execution(
        db,
        ticker=request.ticker,
        order_action=request.order_action,
        quantity=request.quantity,
        limit_price=request.limit_price,
        dir=request.dir,
        delay_minutes=request.delay_minutes,
        intent_id=request.intent_id,
        raw_payload=request.raw_payload,
    )
    execution_scheduler.activate("manual execution created")
    return execution


@router.put("/{execution_id}", response_model=ExecutionResponse)
async def update_execution(execution_id: int, request: ExecutionUpdate, db: AsyncSession = Depends(get_db)):
    return await execution_service.update_execution(
        db, execution_id, limit_price=request.limit_price, quantity=request.quantity
    )


@router.post("/{execution_id}/cancel", response_model=ExecutionResponse)
async def cancel_execution(
    execution_id: int,
    request: Optional[CancelRequest] = None,
    db: AsyncSession = Depends(get_db),
):
    reason = request.reason if request and request.reason else "Manually cancelled"
    return await execution_service.cancel_execution(db, execution_id, reason)


@router.post("/{execution_id}/execute", response_model=ExecutionResponse)
async def execute_now(execution_id: int, db: AsyncSession = Depends(get_db)):
    return await execution_service.execute_now(db, execution_id)
