"""Position Pydantic schemas"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class PositionResponse(BaseModel):
    id: int
    ticker: str
    side: str  # Long or Short
    quantity: int
    entry_price: Optional[float] = None
    opened_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None  # NULL while open
    updated_at: Optional[datetime] = None
    is_open: bool = True

    class Config:
        from_attributes = True
