"""Execution schedule Pydantic schemas"""

import re
from datetime import datetime
from typing import Annotated, Optional

from pydantic import AfterValidator, BaseModel

from execution_wall.constants import EXECUTION_MODES

HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def _check_time(v: str) -> str:
    if not HHMM.match(v):
        raise ValueError("Invalid time format. Use HH:MM (24-hour)")
    return v


def _check_days(v: str) -> str:
    parts = [p.strip() for p in v.split(",") if p.strip()]
    if not parts or any(not p.isdigit() or int(p) > 6 for p in parts):
        raise ValueError("days_of_week must be a comma list of 0-6 (0 = Sunday)")
    return ",".join(parts)


def _check_mode(v: str) -> str:
    if v not in EXECUTION_MODES:
        raise ValueError(f"Invalid execution_mode. Must be: {', '.join(EXECUTION_MODES)}")
    return v


ClockTime = Annotated[str, AfterValidator(_check_time)]
DaysOfWeek = Annotated[str, AfterValidator(_check_days)]
ModeName = Annotated[str, AfterValidator(_check_mode)]


class ScheduleResponse(BaseModel):
    id: int
    name: str
    days_of_week: str
    start_time: str
    end_time: str
    execution_mode: str
    priority: int
    enabled: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ScheduleCreate(BaseModel):
    name: str
    days_of_week: DaysOfWeek = "1,2,3,4,5"
    start_time: ClockTime
    end_time: ClockTime  # may be earlier than start_time (overnight window)
    execution_mode: ModeName
    priority: int = 0
    enabled: bool = True


class ScheduleUpdate(BaseModel):
    name: Optional[str] = None
    days_of_week: Optional[DaysOfWeek] = None
    start_time: Optional[ClockTime] = None
    end_time: Optional[ClockTime] = None
    execution_mode: Optional[ModeName] = None
    priority: Optional[int] = None
    enabled: Optional[bool] = None
