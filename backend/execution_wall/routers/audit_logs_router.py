"""Audit log API routes"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.database import get_db
from execution_wall.models import AuditLog
from execution_wall.schemas import AuditLogPage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/audit-logs", tags=["audit-logs"])


@router.get("", response_model=AuditLogPage)
async def get_audit_logs(
    event_type: Optional[str] = None,
    ticker: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db),
):
    """Audit trail, newest first"""
    query = select(AuditLog)
    count_query = select(func.count(AuditLog.id))
    if event_type:
        query = query.where(AuditLog.event_type == event_type)
        count_query = count_query.where(AuditLog.event_type == event_type)
    if ticker:
        query = query.where(AuditLog.ticker == ticker.upper())
        count_query = count_query.where(AuditLog.ticker == ticker.upper())

    result = await db.execute(query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit).offset(offset))
    total = (await db.execute(count_query)).scalar() or 0

    return {"logs": result.scalars().all(), "total": total, "limit": limit, "offset": offset}
