"""Trading models: trade intents, executions, positions, ticker gates."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Float,
    Integer,
    String,
    Text,
)

from execution_wall.database import Base


class TradeIntent(Base):
    """
    A proposed trade built from a WALL signal, waiting on a human swipe.

    status: pending -> swiped_on (approve) | swiped_deny (deny) |
    swiped_off (off, blocks the ticker) | cancelled (invalidated).
    """
    __tablename__ = "trade_intents"

    id = Column(Integer, primary_key=True, index=True)
    ticker = Column(String, nullable=False, index=True)
    dir = Column(String, nullable=False)  # "Long" or "Short"
    price = Column(Float, default=0.0)
    strategy_id = Column(String, nullable=True, index=True)
    timeframe = Column(String, nullable=True)

    # Quality metrics derived from the gates dict
    gates_hit = Column(Integer, default=0)
    gates_total = Column(Integer, default=0)
    confidence = Column(Float, default=0.0)
    quality_tier = Column(String, default="C")
    quality_score = Column(Integer, default=50)
    primary_blocker = Column(String, nullable=True)

    card_state = Column(String, nullable=False, default="ARMED", index=True)
    status = Column(String, nullable=False, default="pending", index=True)

    # Verbatim JSON blobs from the signal
    intent_data = Column(Text, nullable=True)
    gates_data = Column(Text, nullable=True)
    raw_payload = Column(Text, nullable=True)

    expires_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Execution(Base):
    """
    An order held behind a delay, forwarded to the broker or cancelled when it elapses.

    intent_id is a plain column, not a foreign key: deleting an intent never
    touches its executions, and the scheduler resolves it by lookup.
    """
    __tablename__ = "executions"

    id = Column(Integer, primary_key=True, index=True)
    ticker = Column(String, nullable=False, index=True)
    dir = Column(String, nullable=True)
    order_action = Column(String, nullable=False)  # "buy" or "sell"
    quantity = Column(Integer, nullable=False)
    limit_price = Column(Float, nullable=True)
    status = Column(String, nullable=False, default="pending", index=True)
    delay_expires_at = Column(DateTime, nullable=True, index=True)
    executed_at = Column(DateTime, nullable=True)
    error_message = Column(Text, nullable=True)
    intent_id = Column(Integer, nullable=True, index=True)
    raw_payload = Column(Text, nullable=True)  # JSON with "event": ORDER/ENTRY/EXIT
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class Position(Base):
    __tablename__ = "positions"

    id = Column(Integer, primary_key=True, index=True)
    ticker = Column(String, nullable=False, index=True)
    side = Column(String, nullable=False)  # "Long" or "Short"
    quantity = Column(Integer, nullable=False)
    entry_price = Column(Float, default=0.0)
    opened_at = Column(DateTime, default=datetime.utcnow)
    closed_at = Column(DateTime, nullable=True, index=True)  # NULL while open
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def is_open(self) -> bool:
        return self.closed_at is None


class TickerConfig(Base):
    """
    Per-ticker gate.

    blocked_until set -> timed cooldown, cleared by the execution scheduler.
    enabled False with blocked_until NULL -> indefinite block, cleared only by
    the daily reset or an explicit revive/reset.
    """
    __tablename__ = "ticker_configs"

    id = Column(Integer, primary_key=True, index=True)
    ticker = Column(String, unique=True, nullable=False, index=True)
    enabled = Column(Boolean, default=True, nullable=False)
    blocked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
