"""
Shared test fixtures for execution wall backend tests.

Provides reusable fixtures for:
- Async database sessions (temporary SQLite file, one per test)
- A session maker bound to the same database for background services
- Sample model factories
"""

import json
from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)

from execution_wall.services.symbol_lock import symbol_lock


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def async_engine(tmp_path):
    """Create an async SQLite engine on a throwaway file for testing.

    A file (rather than :memory:) lets the schedulers open their own
    sessions against the same data the test wrote.
    """
    from execution_wall.models import Base

    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_maker(async_engine):
    return async_sessionmaker(
        async_engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
async def db_session(session_maker):
    """Provide an async database session for tests."""
    async with session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def _clear_symbol_locks():
    """The symbol lock is process-global; start every test with it empty."""
    symbol_lock._locks.clear()
    yield
    symbol_lock._locks.clear()


# ---------------------------------------------------------------------------
# Sample data factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_settings(db_session):
    """Create the execution settings row with overrides."""
    from execution_wall.models import ExecutionSettings

    async def _make(**overrides):
        values = dict(execution_mode="safe", default_delay_bars=2, bar_duration_minutes=1)
        values.update(overrides)
        row = ExecutionSettings(**values)
        db_session.add(row)
        await db_session.commit()
        return row

    return _make


@pytest.fixture
def make_intent(db_session):
    from execution_wall.models import TradeIntent

    async def _make(ticker="AAPL", status="pending", expires_in_hours=24, created_at=None, **overrides):
        now = datetime.utcnow()
        values = dict(
            ticker=ticker,
            dir="Long",
            price=100.0,
            card_state="ARMED",
            status=status,
            expires_at=now + timedelta(hours=expires_in_hours),
            created_at=created_at or now,
            updated_at=created_at or now,
        )
        values.update(overrides)
        intent = TradeIntent(**values)
        db_session.add(intent)
        await db_session.commit()
        return intent

    return _make


@pytest.fixture
def make_execution(db_session):
    from execution_wall.models import Execution

    async def _make(
        ticker="AAPL",
        order_action="buy",
        quantity=10,
        status="pending",
        delay_expires_at=None,
        intent_id=None,
        event="ORDER",
        payload=None,
        **overrides,
    ):
        now = datetime.utcnow()
        body = payload or {"event": event, "ticker": ticker, "quantity": quantity, "order_action": order_action}
        values = dict(
            ticker=ticker,
            dir="Long" if order_action == "buy" else "Short",
            order_action=order_action,
            quantity=quantity,
            limit_price=100.0,
            status=status,
            delay_expires_at=delay_expires_at or now - timedelta(seconds=1),
            intent_id=intent_id,
            raw_payload=json.dumps(body),
            created_at=now,
            updated_at=now,
        )
        values.update(overrides)
        execution = Execution(**values)
        db_session.add(execution)
        await db_session.commit()
        return execution

    return _make


@pytest.fixture
def make_position(db_session):
    from execution_wall.models import Position

    async def _make(ticker="AAPL", side="Long", quantity=10, closed_at=None, **overrides):
        values = dict(
            ticker=ticker,
            side=side,
            quantity=quantity,
            entry_price=100.0,
            opened_at=datetime.utcnow(),
            closed_at=closed_at,
        )
        values.update(overrides)
        position = Position(**values)
        db_session.add(position)
        await db_session.commit()
        return position

    return _make
