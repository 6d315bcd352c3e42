"""Audit and webhook log Pydantic schemas"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class AuditLogResponse(BaseModel):
    id: int
    event_type: str
    ticker: Optional[str] = None
    details: str  # JSON
    timestamp: datetime

    class Config:
        from_attributes = True


class AuditLogPage(BaseModel):
    logs: List[AuditLogResponse]
    total: int
    limit: int
    offset: int


class WebhookLogResponse(BaseModel):
    id: int
    source: str
    payload: str  # verbatim JSON
    status: str
    error: Optional[str] = None
    timestamp: datetime

    class Config:
        from_attributes = True


class WebhookLogPage(BaseModel):
    logs: List[WebhookLogResponse]
    total: int
    limit: int
    offset: int
