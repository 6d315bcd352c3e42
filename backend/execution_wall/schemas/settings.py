"""Execution settings Pydantic schemas"""
from typing import Optional

from pydantic import BaseModel, Field


class ExecutionSettingsResponse(BaseModel):
    id: int
    execution_mode: str
    default_delay_bars: int
    bar_duration_minutes: int
    broker_webhook_url: Optional[str] = None
    broker_webhook_enabled: bool
    use_time_schedules: bool
    timezone: str
    email_notifications: bool
    notification_email: Optional[str] = None
    notify_on_approval: bool
    notify_on_execution: bool
    notify_on_close: bool
    pushover_enabled: bool
    pushover_configured: bool = False

    class Config:
        from_attributes = True


class ExecutionSettingsUpdate(BaseModel):
    execution_mode: Optional[str] = None
    default_delay_bars: Optional[int] = Field(default=None, ge=0)
    bar_duration_minutes: Optional[int] = Field(default=None, ge=0)
    broker_webhook_url: Optional[str] = None
    broker_webhook_enabled: Optional[bool] = None
    use_time_schedules: Optional[bool] = None
    timezone: Optional[str] = None
    email_notifications: Optional[bool] = None
    notification_email: Optional[str] = None
    notify_on_approval: Optional[bool] = None
    notify_on_execution: Optional[bool] = None
    notify_on_close: Optional[bool] = None
    pushover_enabled: Optional[bool] = None
    pushover_user_key: Optional[str] = None
    pushover_api_token: Optional[str] = None


class TestBrokerRequest(BaseModel):
    url: Optional[str] = None  # defaults to the saved broker_webhook_url


class TestBrokerResponse(BaseModel):
    success: bool
    status_code: Optional[int] = None
    error: Optional[str] = None
