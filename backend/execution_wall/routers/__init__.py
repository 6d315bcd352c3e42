"""
API Routers

This package contains modularized FastAPI routers for the execution wall,
one module per resource.
"""

from . import (
    audit_logs_router,
    executions_router,
    positions_router,
    schedules_router,
    settings_router,
    system_router,
    ticker_configs_router,
    trade_intents_router,
    webhook_router,
)

__all__ = [
    "audit_logs_router",
    "executions_router",
    "positions_router",
    "schedules_router",
    "settings_router",
    "system_router",
    "ticker_configs_router",
    "trade_intents_router",
    "webhook_router",
]
