"""
Webhook API routes

Inbound signal endpoint (TradingView alerts) and the raw webhook log.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.schemas import WebhookLogPage
from execution_wall.services import signal_intake

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhook", tags=["webhook"])


@router.post("")
async def receive_webhook(
    payload: Dict[str, Any] = Body(...),
    source: str = "tradingview",
    db: AsyncSession = Depends(get_db),
):
    """
    Receive a WALL / ORDER / ENTRY / EXIT signal.

    Gate and mode rejections come back as 200 with rejected=true so the
    sender doesn't retry them. Malformed payloads return 400.
    """
    return await signal_intake.handle_webhook(db, payload, source=source)


@router.get("/logs", response_model=WebhookLogPage)
async def get_webhook_logs(
    source: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    logs, total = await signal_intake.list_webhook_logs(db, source=source, status=status, limit=limit, offset=offset)
    return {"logs": logs, "total": total, "limit": limit, "offset": offset}


@router.post("/test")
async def test_webhook(payload: Dict[str, Any] = Body(...), db: AsyncSession = Depends(get_db)):
    """Run a payload through intake, logged with source=test."""
    return await signal_intake.handle_webhook(db, payload, source="test")
