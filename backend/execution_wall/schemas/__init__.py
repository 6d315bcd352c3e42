"""Centralized Pydantic schemas for API requests/responses"""

from .execution import (
    CancelRequest,
    ExecutionCreate,
    ExecutionResponse,
    ExecutionUpdate,
    ExecutionWithPosition,
)
from .intent import InvalidateRequest, SwipeRequest, TradeIntentResponse
from .logs import AuditLogPage, AuditLogResponse, WebhookLogPage, WebhookLogResponse
from .position import PositionResponse
from .schedule import ScheduleCreate, ScheduleResponse, ScheduleUpdate
from .settings import (
    ExecutionSettingsResponse,
    ExecutionSettingsUpdate,
    TestBrokerRequest,
    TestBrokerResponse,
)
from .ticker_config import ResetAllResponse, TickerConfigResponse, TickerConfigUpdate

__all__ = [
    # Trade intent schemas
    "TradeIntentResponse",
    "SwipeRequest",
    "InvalidateRequest",
    # Execution schemas
    "ExecutionResponse",
    "ExecutionWithPosition",
    "ExecutionCreate",
    "ExecutionUpdate",
    "CancelRequest",
    # Position schemas
    "PositionResponse",
    # Ticker gate schemas
    "TickerConfigResponse",
    "TickerConfigUpdate",
    "ResetAllResponse",
    # Settings schemas
    "ExecutionSettingsResponse",
    "ExecutionSettingsUpdate",
    "TestBrokerRequest",
    "TestBrokerResponse",
    # Schedule schemas
    "ScheduleResponse",
    "ScheduleCreate",
    "ScheduleUpdate",
    # Log schemas
    "AuditLogResponse",
    "AuditLogPage",
    "WebhookLogResponse",
    "WebhookLogPage",
]
