"""
Signal Intake

Handles inbound webhook signals (TradingView style):

- WALL / SIGNAL: create or refresh the candidate card (trade intent) for a
  ticker, scored from its gates dict.
- ORDER / ENTRY: queue an execution behind the approval delay (safe mode) or
  fill it right away (live mode).
- EXIT: queue a position-closing order. Never blocked by the ticker gate.

Every payload is stored verbatim in webhook_logs before anything else.
All create/link work for a ticker runs under the symbol lock so two
deliveries of the same signal can't produce two orders.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.config import settings
from execution_wall.constants import (
    ACTION_BUY,
    ACTION_SELL,
    CARD_ARMED,
    EVENT_EXIT,
    EXEC_FAILED,
    EXEC_PENDING,
    INTENT_APPROVED,
    INTENT_PENDING,
    LOCK_EXIT,
    LOCK_ORDER,
    LOCK_WALL,
    MODE_LIVE,
    MODE_OFF,
    SIDE_LONG,
    SIDE_SHORT,
    WEBHOOK_ERROR,
    WEBHOOK_PROCESSING,
    WEBHOOK_SUCCESS,
)
from execution_wall.exceptions import ValidationError
from execution_wall.models import Execution, ExecutionSettings, TradeIntent, WebhookLog
from execution_wall.services import ticker_gate
from execution_wall.services.audit_service import record_audit
from execution_wall.services.broker_gateway import forward_to_broker
from execution_wall.services.execution_scheduler import execution_scheduler
from execution_wall.services.execution_service import complete_execution, parse_payload, stage_execution
from execution_wall.services.intent_service import find_live_intent
from execution_wall.services.notification_service import notify
from execution_wall.services.position_ledger import get_open_position
from execution_wall.services.settings_service import delay_minutes, get_execution_settings
from execution_wall.services.symbol_lock import symbol_lock

logger = logging.getLogger(__name__)

ORDER_TYPES = ("ORDER", "ENTRY")


@dataclass
class Signal:
    """An inbound payload with aliases resolved and prices reconstructed."""
    type: str
    ticker: str
    dir: Optional[str] = None
    order_action: Optional[str] = None
    price: float = 0.0
    limit_price: float = 0.0
    quantity: Optional[int] = None
    strategy_id: Optional[str] = None
    timeframe: Optional[str] = None
    intent: Optional[Dict[str, Any]] = None
    gates: Optional[Dict[str, Any]] = None
    quality_tier: Optional[str] = None
    quality_score: Optional[int] = None
    gates_hit: Optional[int] = None
    gates_total: Optional[int] = None
    primary_blocker: Optional[str] = None
    card_state: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def reconstruct_price(ticks: Any, mintick: Any, fallback: Any) -> float:
    """price = ticks * mintick when both are present (TradingView integer-tick workaround)."""
    if ticks is not None and mintick is not None:
        try:
            if float(mintick) > 0:
                return float(ticks) * float(mintick)
        except (TypeError, ValueError):
            pass
    try:
        return float(fallback or 0)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid price value: {fallback!r}")


def _dir_from_action(action: Optional[str]) -> Optional[str]:
    if action == ACTION_SELL:
        return SIDE_SHORT
    if action == ACTION_BUY:
        return SIDE_LONG
    return None


def _to_int(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid {name}: {value!r}")


def normalize(payload: Dict[str, Any]) -> Signal:
    """Resolve field aliases: symbol -> ticker, action -> dir/order_action."""
    if not isinstance(payload, dict):
        raise ValidationError("Webhook payload must be a JSON object")

    ticker = payload.get("ticker") or payload.get("symbol")
    if not ticker:
        raise ValidationError("Missing required field: ticker or symbol")

    action = payload.get("action")
    if isinstance(action, str):
        action = action.lower()

    signal_type = (payload.get("event") or payload.get("type") or ("ORDER" if action else "WALL")).upper()

    return Signal(
        type=signal_type,
        ticker=str(ticker).upper(),
        dir=payload.get("dir") or _dir_from_action(action),
        order_action=payload.get("order_action") or action,
        price=reconstruct_price(payload.get("price_ticks"), payload.get("mintick"), payload.get("price")),
        limit_price=reconstruct_price(
            payload.get("limit_price_ticks"), payload.get("mintick"), payload.get("limit_price")
        ),
        quantity=_to_int(payload.get("quantity"), "quantity"),
        strategy_id=payload.get("strategy_id"),
        timeframe=payload.get("tf"),
        intent=payload.get("intent"),
        gates=payload.get("gates"),
        quality_tier=payload.get("quality_tier"),
        quality_score=_to_int(payload.get("quality_score"), "quality_score"),
        gates_hit=_to_int(payload.get("gates_hit"), "gates_hit"),
        gates_total=_to_int(payload.get("gates_total"), "gates_total"),
        primary_blocker=payload.get("primary_blocker"),
        card_state=payload.get("card_state"),
        raw=payload,
    )


def score_gates(gates: Optional[Dict[str, Any]]) -> Tuple[int, int, float, Dict[str, int]]:
    """Gates dict -> (hits, total, confidence, 0/1 vector). Only literal True counts as a hit."""
    if not isinstance(gates, dict):
        return 0, 0, 0.0, {}
    vector = {name: 1 if value is True else 0 for name, value in gates.items()}
    hits = sum(vector.values())
    total = len(vector)
    return hits, total, (hits / total if total else 0.0), vector


def quality_tier(confidence: float) -> str:
    if confidence >= 0.9:
        return "A+"
    if confidence >= 0.8:
        return "A"
    if confidence >= 0.7:
        return "B"
    if confidence >= 0.6:
        return "C"
    return "D"


def _rejected(message: str, **extra) -> Dict[str, Any]:
    logger.info(f"⚠️ {message}")
    return {"rejected": True, "message": message, **extra}


async def handle_webhook(
    db: AsyncSession,
    payload: Dict[str, Any],
    source: str = "tradingview",
    scheduler=None,
    broker=None,
) -> Dict[str, Any]:
    """Log the raw payload, dispatch by signal type, and mark the log success/error."""
    log = WebhookLog(source=source, payload=json.dumps(payload), status=WEBHOOK_PROCESSING)
    db.add(log)
    await db.commit()
    log_id = log.id

    try:
        signal = normalize(payload)
        if signal.type in ORDER_TYPES:
            result = await handle_order(db, signal, scheduler=scheduler, broker=broker)
        elif signal.type == EVENT_EXIT:
            result = await handle_exit(db, signal, scheduler=scheduler, broker=broker)
        else:
            # WALL, SIGNAL and anything unrecognised become candidate cards
            result = await handle_wall(db, signal)
    except Exception as e:
        await db.rollback()
        await db.execute(
            update(WebhookLog).where(WebhookLog.id == log_id).values(status=WEBHOOK_ERROR, error=str(e))
        )
        await db.commit()
        logger.error(f"❌ Webhook error: {e}")
        raise

    await db.execute(update(WebhookLog).where(WebhookLog.id == log_id).values(status=WEBHOOK_SUCCESS))
    await db.commit()

    logger.info(f"✅ Webhook processed: {signal.type} {signal.ticker} {signal.dir or ''}")
    return {"success": True, "type": signal.type, **result}


# ----------------------------------------------------------------------
# WALL
# ----------------------------------------------------------------------

async def handle_wall(db: AsyncSession, signal: Signal) -> Dict[str, Any]:
    if not signal.dir:
        raise ValidationError("Missing required field: dir (Long/Short)")
    if signal.dir not in (SIDE_LONG, SIDE_SHORT):
        raise ValidationError(f'Invalid direction: {signal.dir}. Must be "Long" or "Short"')

    async with symbol_lock.held(signal.ticker, LOCK_WALL):
        if not await ticker_gate.is_accepting(db, signal.ticker):
            return _rejected(f"Ticker {signal.ticker} is blocked - signal rejected", intent_id=None)

        now = datetime.utcnow()
        existing = await find_live_intent(db, signal.ticker, now=now, statuses=[INTENT_PENDING, INTENT_APPROVED])

        hits, total, confidence, vector = score_gates(signal.gates)
        if total == 0:
            # Legacy payloads send the counts directly
            hits = signal.gates_hit or 0
            total = signal.gates_total or 0
            confidence = hits / total if total and hits else 0.0
        score = signal.quality_score if signal.quality_score is not None else round(confidence * 100)
        tier = signal.quality_tier or quality_tier(confidence)

        values = dict(
            dir=signal.dir,
            price=signal.limit_price or signal.price or 0.0,
            gates_hit=hits,
            gates_total=total,
            confidence=confidence,
            quality_tier=tier,
            quality_score=score,
            primary_blocker=signal.primary_blocker,
            expires_at=now + timedelta(hours=settings.intent_ttl_hours),
        )

        if existing is not None:
            intent = existing
            for key, value in values.items():
                setattr(intent, key, value)
            intent.strategy_id = signal.strategy_id or intent.strategy_id
            intent.timeframe = signal.timeframe or intent.timeframe
            intent.card_state = signal.card_state or intent.card_state
            if signal.intent is not None:
                intent.intent_data = json.dumps(signal.intent)
            if signal.gates is not None:
                intent.gates_data = json.dumps(signal.gates)
            intent.raw_payload = json.dumps(signal.raw)
            intent.updated_at = now
            is_update = True
        else:
            intent = TradeIntent(
                ticker=signal.ticker,
                strategy_id=signal.strategy_id,
                timeframe=signal.timeframe,
                card_state=signal.card_state or CARD_ARMED,
                status=INTENT_PENDING,
                intent_data=json.dumps(signal.intent) if signal.intent is not None else None,
                gates_data=json.dumps(signal.gates) if signal.gates is not None else None,
                raw_payload=json.dumps(signal.raw),
                created_at=now,
                updated_at=now,
                **values,
            )
            db.add(intent)
            is_update = False

        await db.flush()
        record_audit(db, "intent_updated" if is_update else "intent_created", signal.ticker, {
            "intent_id": intent.id,
            "source": "webhook",
            "type": "WALL",
            "is_update": is_update,
            "strategy_id": signal.strategy_id,
            "timeframe": signal.timeframe,
            "gates_hit": hits,
            "gates_total": total,
            "confidence": confidence,
            "quality_tier": tier,
            "quality_score": score,
            "price": intent.price,
            "gate_vector": vector,
        })
        await db.commit()

    if is_update:
        logger.info(f"🔄 Updated existing intent for {signal.ticker} (id: {intent.id})")
    else:
        logger.info(f"✨ Created new intent for {signal.ticker} (id: {intent.id})")

    return {
        "intent_id": intent.id,
        "confidence": confidence,
        "gates_hit": hits,
        "gates_total": total,
        "quality_tier": tier,
        "updated": is_update,
        "message": "Trade intent updated" if is_update else "Trade intent created - awaiting review",
    }


# ----------------------------------------------------------------------
# ORDER / ENTRY
# ----------------------------------------------------------------------

async def _finish_live(
    db: AsyncSession,
    execution: Execution,
    exec_settings: ExecutionSettings,
    broker,
) -> Dict[str, Any]:
    """Live mode: forward and book the fill inside the intake request."""
    result, fill = await complete_execution(db, execution, broker=broker or forward_to_broker, exec_settings=exec_settings)
    record_audit(db, "execution_completed", execution.ticker, {
        "execution_id": execution.id,
        "order_action": execution.order_action,
        "quantity": execution.quantity,
        "trigger": "live_mode",
        "broker_forwarded": result.success,
        "broker_error": result.error,
        "position_id": fill.position.id,
        "position_closed": fill.closed,
    })
    return {"broker_forwarded": result.success, "broker_error": result.error, "position_id": fill.position.id}


async def handle_order(db: AsyncSession, signal: Signal, scheduler=None, broker=None) -> Dict[str, Any]:
    action = signal.order_action or (
        ACTION_BUY if signal.dir == SIDE_LONG else ACTION_SELL if signal.dir == SIDE_SHORT else None
    )
    if action not in (ACTION_BUY, ACTION_SELL):
        raise ValidationError("Missing or invalid order_action or dir field")
    quantity = signal.quantity if signal.quantity is not None else 1
    if quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    limit_price = signal.limit_price or signal.price or 0.0
    scheduler = scheduler or execution_scheduler

    async with symbol_lock.held(signal.ticker, LOCK_ORDER):
        exec_settings = await get_execution_settings(db)
        mode = exec_settings.execution_mode
        if mode == MODE_OFF:
            return _rejected(f"Execution mode is off - {signal.ticker} order rejected", execution_id=None)
        if not await ticker_gate.is_accepting(db, signal.ticker):
            return _rejected(f"Ticker {signal.ticker} is blocked - order rejected", execution_id=None)

        live_intent = await find_live_intent(db, signal.ticker)
        delay = 0 if mode == MODE_LIVE else delay_minutes(exec_settings)
        execution = stage_execution(
            db, signal.ticker, action, quantity,
            limit_price=limit_price or None,
            dir=signal.dir,
            delay_minutes=delay,
            intent_id=live_intent.id if live_intent else None,
        )
        await db.flush()
        record_audit(db, "execution_created", signal.ticker, {
            "execution_id": execution.id,
            "source": "webhook",
            "type": "ORDER",
            "order_action": action,
            "quantity": quantity,
            "limit_price": limit_price,
            "intent_id": execution.intent_id,
            "delay_expires_at": execution.delay_expires_at,
            "quality_tier": signal.quality_tier,
            "quality_score": signal.quality_score,
        })

        extra: Dict[str, Any] = {}
        if mode == MODE_LIVE:
            extra = await _finish_live(db, execution, exec_settings, broker)
        await db.commit()

    if mode == MODE_LIVE:
        await notify(exec_settings, "order_executed", execution.ticker, {
            "action": execution.order_action,
            "quantity": execution.quantity,
            "limit_price": execution.limit_price,
            "trigger": "live_mode",
        })
        message = "Execution completed (live mode)"
    else:
        scheduler.activate(f"order queued for {signal.ticker}")
        message = "Execution created - pending"

    return {
        "execution_id": execution.id,
        "status": execution.status,
        "intent_id": execution.intent_id,
        "message": message,
        **extra,
    }


# ----------------------------------------------------------------------
# EXIT
# ----------------------------------------------------------------------

async def _find_pending_exit(db: AsyncSession, ticker: str, position_id: int) -> Optional[Execution]:
    result = await db.execute(
        select(Execution).where(Execution.ticker == ticker, Execution.status == EXEC_PENDING)
    )
    for execution in result.scalars().all():
        payload = parse_payload(execution.raw_payload)
        if payload.get("event") == EVENT_EXIT and payload.get("position_id") == position_id:
            return execution
    return None


async def handle_exit(db: AsyncSession, signal: Signal, scheduler=None, broker=None) -> Dict[str, Any]:
    scheduler = scheduler or execution_scheduler
    limit_price = signal.limit_price or signal.price or 0.0

    async with symbol_lock.held(signal.ticker, LOCK_EXIT):
        exec_settings = await get_execution_settings(db)
        mode = exec_settings.execution_mode
        if mode == MODE_OFF:
            return _rejected(f"Execution mode is off - {signal.ticker} exit rejected", execution_id=None)

        position = await get_open_position(db, signal.ticker)

        warning = None
        if position is not None:
            duplicate = await _find_pending_exit(db, signal.ticker, position.id)
            if duplicate is not None:
                warning = {
                    "message": f"Duplicate EXIT signal - position {position.id} already has pending exit",
                    "existing_exit_id": duplicate.id,
                    "existing_exit_created": duplicate.created_at.isoformat() if duplicate.created_at else None,
                }
                logger.warning(f"⚠️ Duplicate EXIT for {signal.ticker}: existing pending exit {duplicate.id}")
                record_audit(db, "duplicate_exit_detected", signal.ticker, {
                    "position_id": position.id,
                    "existing_exit_id": duplicate.id,
                    "new_exit_price": limit_price,
                    "new_exit_quantity": signal.quantity,
                })

        # Exit trades against the position side (or the signal's own dir)
        position_side = position.side if position is not None else signal.dir
        action = ACTION_BUY if position_side == SIDE_SHORT else ACTION_SELL
        exit_dir = SIDE_LONG if position_side == SIDE_SHORT else SIDE_SHORT

        position_qty = position.quantity if position is not None else (signal.quantity or 1)
        exit_qty = min(signal.quantity, position_qty) if signal.quantity else position_qty
        if exit_qty <= 0:
            raise ValidationError("quantity must be a positive integer")

        payload = {
            "event": EVENT_EXIT,
            "ticker": signal.ticker,
            "dir": exit_dir,
            "price": limit_price,
            "limit_price": limit_price,
            "quantity": exit_qty,
            "order_action": action,
            "position_id": position.id if position is not None else None,
        }
        delay = 0 if mode == MODE_LIVE else delay_minutes(exec_settings)
        execution = stage_execution(
            db, signal.ticker, action, exit_qty,
            limit_price=limit_price or None,
            dir=exit_dir,
            delay_minutes=delay,
            raw_payload=payload,
        )
        await db.flush()
        record_audit(db, "exit_created", signal.ticker, {
            "execution_id": execution.id,
            "position_id": position.id if position is not None else None,
            "source": "webhook",
            "type": EVENT_EXIT,
            "order_action": action,
            "quantity": exit_qty,
            "position_quantity": position_qty,
            "limit_price": limit_price,
        })

        extra: Dict[str, Any] = {}
        if mode == MODE_LIVE:
            if position is None:
                execution.status = EXEC_FAILED
                execution.error_message = f"No open position for {signal.ticker} - EXIT not forwarded"
                record_audit(db, "execution_failed", signal.ticker, {
                    "execution_id": execution.id,
                    "reason": execution.error_message,
                })
                logger.warning(f"⚠️ {execution.error_message}")
            else:
                extra = await _finish_live(db, execution, exec_settings, broker)
        await db.commit()

    if mode != MODE_LIVE:
        scheduler.activate(f"exit queued for {signal.ticker}")

    await notify(exec_settings, "exit_signal", signal.ticker, {
        "action": action,
        "quantity": exit_qty,
        "limit_price": limit_price,
        "position_id": position.id if position is not None else None,
        "status": execution.status,
    })

    result = {
        "execution_id": execution.id,
        "status": execution.status,
        "position_id": position.id if position is not None else None,
        "position_quantity": position_qty,
        "exit_quantity": exit_qty,
        "message": (
            f"Exit order created for position {position.id}"
            if position is not None else "Exit order created (no matching position found)"
        ),
        **extra,
    }
    if warning:
        result["warning"] = warning
    return result


# ----------------------------------------------------------------------
# Webhook logs
# ----------------------------------------------------------------------

async def list_webhook_logs(
    db: AsyncSession,
    source: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100,
    offset: int = 0,
) -> Tuple[List[WebhookLog], int]:
    query = select(WebhookLog)
    count_query = select(func.count(WebhookLog.id))
    if source:
        query = query.where(WebhookLog.source == source)
        count_query = count_query.where(WebhookLog.source == source)
    if status:
        query = query.where(WebhookLog.status == status)
        count_query = count_query.where(WebhookLog.status == status)

    result = await db.execute(
        query.order_by(WebhookLog.timestamp.desc(), WebhookLog.id.desc()).limit(limit).offset(offset)
    )
    total = (await db.execute(count_query)).scalar() or 0
    return list(result.scalars().all()), total
