"""Trade intent Pydantic schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from execution_wall.constants import SWIPE_ACTIONS


class TradeIntentResponse(BaseModel):
    id: int
    ticker: str
    dir: str
    price: Optional[float] = None
    strategy_id: Optional[str] = None
    timeframe: Optional[str] = None
    gates_hit: int = 0
    gates_total: int = 0
    confidence: float = 0.0
    quality_tier: Optional[str] = None
    quality_score: Optional[int] = None
    primary_blocker: Optional[str] = None
    card_state: str
    status: str
    intent_data: Optional[str] = None  # JSON
    gates_data: Optional[str] = None  # JSON
    expires_at: datetime
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SwipeRequest(BaseModel):
    action: str

    @field_validator("action")
    @classmethod
    def check_action(cls, v):
        if v not in SWIPE_ACTIONS:
            raise ValueError("Invalid action. Must be: approve, deny, off, or revive")
        return v


class InvalidateRequest(BaseModel):
    reason: Optional[str] = "manual"
