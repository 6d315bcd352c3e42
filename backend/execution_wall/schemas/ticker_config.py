"""Ticker gate Pydantic schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class TickerConfigResponse(BaseModel):
    id: int
    ticker: str
    enabled: bool
    blocked_until: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class TickerConfigUpdate(BaseModel):
    enabled: Optional[bool] = None
    blocked_until: Optional[datetime] = None
    cooldown_minutes: Optional[int] = Field(default=None, ge=0)  # shortcut for blocked_until = now + N
    clear_block: bool = False


class ResetAllResponse(BaseModel):
    tickers_reset: int
    intents_cleared: int
    message: str
