"""Application settings using Pydantic BaseSettings."""

import re

from pydantic_settings import BaseSettings, SettingsConfigDict


def get_async_database_url() -> str:
    """Get database URL converted for asyncpg driver."""
    url = settings.database_url
    # Convert postgres:// to postgresql+asyncpg:// for SQLAlchemy async
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://") and "+asyncpg" not in url:
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    # asyncpg doesn't support sslmode, it uses ssl parameter
    if "sslmode=" in url:
        url = re.sub(r'[?&]sslmode=[^&]*', '', url)
        url = url.rstrip('?&')
    return url


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Postgres (Supabase)
    database_url: str = "sqlite+aiosqlite:///./backoffice.db"

    # Application
    environment: str = "development"
    log_level: str = "INFO"
    api_v1_prefix: str = "/api/v1"
    app_base_url: str = "http://localhost:8000"

    # Cron endpoints
    cron_secret: str | None = None

    # Twilio (SMS)
    twilio_account_sid: str | None = None
    twilio_auth_token: str | None = None
    twilio_phone_number: str | None = None
    twilio_messaging_service_sid: str | None = None
    twilio_status_callback_url: str | None = None

    # SMS reconciliation
    sms_reconcile_limit: int = 50
    sms_reconcile_batch_size: int = 10
    sms_reconcile_batch_delay_seconds: float = 0.5
    sms_stuck_queued_minutes: int = 60
    sms_stuck_sent_minutes: int = 120
    sms_reconcile_backoff_base_minutes: int = 15
    sms_reconcile_backoff_max_minutes: int = 24 * 60

    # SMS delivery outcome
    sms_failure_deactivation_threshold: int = 3

    # SMS safety guards
    sms_safety_guards_enabled: bool = True
    sms_safety_global_hourly_limit: int = 120
    sms_safety_recipient_hourly_limit: int = 3
    sms_safety_recipient_daily_limit: int = 8
    sms_idempotency_ttl_hours: int = 24 * 14
    sms_default_country_code: str = "44"

    # Idempotency
    idempotency_default_ttl_hours: int = 24

    # Invoice reminders
    invoice_reminder_days: list[int] = [7, 14, 30]
    invoice_reminder_ttl_hours: int = 24 * 45
    invoice_reminder_internal_email: str | None = None
    company_name: str = "Orange Jelly Limited"

    # Microsoft Graph (email)
    microsoft_tenant_id: str | None = None
    microsoft_client_id: str | None = None
    microsoft_client_secret: str | None = None
    microsoft_user_email: str | None = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def twilio_configured(self) -> bool:
        return bool(self.twilio_account_sid and self.twilio_auth_token)

    @property
    def graph_configured(self) -> bool:
        return bool(
            self.microsoft_tenant_id
            and self.microsoft_client_id
            and self.microsoft_client_secret
            and self.microsoft_user_email
        )


settings = Settings()
