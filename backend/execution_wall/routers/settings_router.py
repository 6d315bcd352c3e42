"""
Settings API routes

Handles the execution settings singleton:
- Get current settings (created with defaults on first read)
- Update settings
- Test the broker webhook
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from execution_wall.constants import MODE_SAFE
from execution_wall.database import get_db
from execution_wall.exceptions import ValidationError
from execution_wall.models import ExecutionSettings
from execution_wall.schemas import (
    ExecutionSettingsResponse,
    ExecutionSettingsUpdate,
    TestBrokerRequest,
    TestBrokerResponse,
)
from execution_wall.services.broker_gateway import test_broker_webhook
from execution_wall.services.execution_scheduler import execution_scheduler
from execution_wall.services.mode_scheduler import mode_scheduler
from execution_wall.services.settings_service import get_execution_settings, update_execution_settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])


def _to_response(row: ExecutionSettings) -> ExecutionSettingsResponse:
    # Pushover credentials are write-only; only report whether they are set
    response = ExecutionSettingsResponse.model_validate(row)
    response.pushover_configured = bool(row.pushover_user_key and row.pushover_api_token)
    return response


@router.get("", response_model=ExecutionSettingsResponse)
async def get_settings(db: AsyncSession = Depends(get_db)):
    return _to_response(await get_execution_settings(db))


@router.put("", response_model=ExecutionSettingsResponse)
async def update_settings(request: ExecutionSettingsUpdate, db: AsyncSession = Depends(get_db)):
    changes = request.model_dump(exclude_unset=True)
    row = await update_execution_settings(db, changes)

    if changes.get("execution_mode") == MODE_SAFE:
        execution_scheduler.activate("mode set to safe")
    if changes.get("use_time_schedules") or "timezone" in changes:
        await mode_scheduler.trigger_check()
        await db.refresh(row)

    return _to_response(row)


@router.post("/test-broker", response_model=TestBrokerResponse)
async def test_broker(request: Optional[TestBrokerRequest] = None, db: AsyncSession = Depends(get_db)):
    """Send a TEST order to the broker webhook (the saved URL unless one is given)"""
    url = request.url if request and request.url else None
    if not url:
        url = (await get_execution_settings(db)).broker_webhook_url
    if not url:
        raise ValidationError("No broker webhook URL configured")

    result = await test_broker_webhook(url)
    return TestBrokerResponse(success=result.success, status_code=result.status_code, error=result.error)
