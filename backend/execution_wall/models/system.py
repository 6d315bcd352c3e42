"""System models: execution settings, mode schedules, audit and webhook logs."""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    String,
    Text,
)

from execution_wall.database import Base


class ExecutionSettings(Base):
    """Singleton row holding the runtime trading configuration."""
    __tablename__ = "execution_settings"

    id = Column(Integer, primary_key=True, index=True)
    execution_mode = Column(String, nullable=False, default="safe")  # off, safe, live
    default_delay_bars = Column(Integer, nullable=False, default=2)
    bar_duration_minutes = Column(Integer, nullable=False, default=1)

    # Broker webhook
    broker_webhook_url = Column(String, nullable=True)
    broker_webhook_enabled = Column(Boolean, nullable=False, default=False)

    # Mode scheduler
    use_time_schedules = Column(Boolean, nullable=False, default=False)
    timezone = Column(String, nullable=False, default="America/New_York")

    # Email notifications
    email_notifications = Column(Boolean, nullable=False, default=False)
    notification_email = Column(String, nullable=True)
    notify_on_approval = Column(Boolean, nullable=False, default=True)
    notify_on_execution = Column(Boolean, nullable=False, default=True)
    notify_on_close = Column(Boolean, nullable=False, default=True)

    # Pushover
    pushover_enabled = Column(Boolean, nullable=False, default=False)
    pushover_user_key = Column(String, nullable=True)
    pushover_api_token = Column(String, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ExecutionSchedule(Base):
    """Time window that forces an execution mode while it is active."""
    __tablename__ = "execution_schedules"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    days_of_week = Column(String, nullable=False, default="1,2,3,4,5")  # 0=Sunday
    start_time = Column(String, nullable=False)  # HH:MM
    end_time = Column(String, nullable=False)  # HH:MM, may be < start_time (overnight)
    execution_mode = Column(String, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String, nullable=False, index=True)
    ticker = Column(String, nullable=True, index=True)
    details = Column(Text, nullable=False, default="{}")  # JSON
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)


class WebhookLog(Base):
    """Verbatim record of every inbound signal payload."""
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(String, nullable=False, index=True)
    payload = Column(Text, nullable=False)
    status = Column(String, nullable=False, index=True)  # processing, success, error
    error = Column(Text, nullable=True)
    timestamp = Column(DateTime, default=datetime.utcnow, index=True)
