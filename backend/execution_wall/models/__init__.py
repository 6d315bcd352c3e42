"""
Database Models, organized by domain.

All model classes are re-exported here:
    from execution_wall.models import TradeIntent, Execution, Position, ...
"""

from execution_wall.database import Base  # noqa: F401  re-exported for tests/conftest.py
from execution_wall.models.trading import (
    TradeIntent, Execution, Position, TickerConfig,
)
from execution_wall.models.system import (
    ExecutionSettings, ExecutionSchedule, AuditLog, WebhookLog,
)

__all__ = [
    "Base",
    # Trading
    "TradeIntent", "Execution", "Position", "TickerConfig",
    # System
    "ExecutionSettings", "ExecutionSchedule", "AuditLog", "WebhookLog",
]
