"""
Audit Service

Append-only trail of state changes. Entries are added to the caller's
session and committed with the change they describe.
"""

import json
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.models import AuditLog

logger = logging.getLogger(__name__)


def _json_default(value: Any):
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def record_audit(
    db: AsyncSession,
    event_type: str,
    ticker: Optional[str] = None,
    details: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Stage an audit entry on the session (no flush, no commit)."""
    entry = AuditLog(
        event_type=event_type,
        ticker=ticker,
        details=json.dumps(details or {}, default=_json_default),
        timestamp=datetime.utcnow(),
    )
    db.add(entry)
    return entry


def parse_details(entry: AuditLog) -> Dict[str, Any]:
    try:
        return json.loads(entry.details) if entry.details else {}
    except json.JSONDecodeError:
        logger.warning(f"Audit log {entry.id} has malformed details")
        return {}
