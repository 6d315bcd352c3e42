from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite+aiosqlite:///./execution_wall.db"
    database_echo: bool = False

    # API
    cors_origins: List[str] = ["http://localhost:3000", "http://localhost:5173"]  # JSON list in .env

    # Broker webhook (URL and enable flag live in the execution_settings row)
    broker_timeout_seconds: float = 10.0

    # Symbol lock
    symbol_lock_ttl_seconds: float = 3.0

    # Execution scheduler power modes
    scheduler_active_interval_seconds: float = 10.0
    scheduler_idle_interval_seconds: float = 60.0

    # Mode scheduler
    mode_check_interval_seconds: float = 60.0

    # Ticker gate cooldown applied after a position closes
    position_close_cooldown_minutes: int = 5

    # Trade intents stay live for this long after the last WALL update
    intent_ttl_hours: int = 24

    # Retention (days)
    webhook_log_retention_days: int = 14
    audit_log_retention_days: int = 60
    trade_intent_retention_days: int = 30
    closed_position_retention_days: int = 90
    executed_execution_retention_days: int = 30

    # Amazon SES (email notifications)
    ses_enabled: bool = False
    ses_region: str = "us-east-1"
    ses_sender_email: str = "Execution Wall <noreply@example.com>"

    # Pushover
    pushover_api_url: str = "https://api.pushover.net/1/messages.json"

    class Config:
        env_file = ".env"
        case_sensitive = False


settings = Settings()
