"""Execution Pydantic schemas"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from execution_wall.schemas.position import PositionResponse


class ExecutionResponse(BaseModel):
    id: int
    ticker: str
    dir: Optional[str] = None
    order_action: str
    quantity: int
    limit_price: Optional[float] = None
    status: str
    delay_expires_at: Optional[datetime] = None
    executed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    intent_id: Optional[int] = None
    raw_payload: Optional[str] = None  # JSON, carries "event"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ExecutionWithPosition(BaseModel):
    execution: ExecutionResponse
    position: Optional[PositionResponse] = None
    is_exit: bool = False


class ExecutionCreate(BaseModel):
    ticker: str
    order_action: str  # buy or sell
    quantity: int = Field(gt=0)
    limit_price: Optional[float] = Field(default=None, ge=0)
    dir: Optional[str] = None
    delay_minutes: int = Field(default=0, ge=0)
    intent_id: Optional[int] = None
    raw_payload: Optional[Dict[str, Any]] = None


class ExecutionUpdate(BaseModel):
    limit_price: Optional[float] = Field(default=None, ge=0)
    quantity: Optional[int] = Field(default=None, gt=0)


class CancelRequest(BaseModel):
    reason: Optional[str] = "Manually cancelled"
