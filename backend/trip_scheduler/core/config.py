from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from datetime import timedelta
from pathlib import Path

DEFAULT_ACTIVE_STATUSES = ["paid", "booked", "ticketed"]

class Settings(BaseSettings):
    app_name: str = Field(default="Trip Notification Scheduler", alias="APP_NAME")
    env: str = Field(default="dev", alias="ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    database_url: str | None = Field(default=None, alias="DATABASE_URL")
    # Shared secret for the cron trigger; when unset the endpoint is open (dev only)
    cron_secret: Optional[str] = Field(default=None, alias="CRON_SECRET")
    # Verifies traveller access tokens issued by the booking app (notification feed)
    secret_key: str = Field(default="devsecret", alias="SECRET_KEY")
    algorithm: str = Field(default="HS256", alias="ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    app_url: str = Field(default="https://ecovira.com", alias="APP_URL")
    # Raw env value, parsed to a list via property to avoid JSON decoding errors
    active_statuses_raw: Optional[str] = Field(default=None, alias="ACTIVE_BOOKING_STATUSES")

    # Run loop tuning
    max_concurrency: int = Field(default=8, alias="NOTIFY_MAX_CONCURRENCY")
    notify_timeout_seconds: float = Field(default=20.0, alias="NOTIFY_TIMEOUT_SECONDS")
    ledger_timeout_seconds: float = Field(default=10.0, alias="LEDGER_TIMEOUT_SECONDS")
    source_timeout_seconds: float = Field(default=30.0, alias="SOURCE_TIMEOUT_SECONDS")
    run_deadline_seconds: float = Field(default=600.0, alias="RUN_DEADLINE_SECONDS")
    departure_grace_hours: float = Field(default=1.0, alias="DEPARTURE_GRACE_HOURS")

    # In-process periodic trigger (off by default; an external cron usually calls the endpoint)
    scheduler_enabled: bool = Field(default=False, alias="SCHEDULER_ENABLED")
    scan_interval_seconds: int = Field(default=900, alias="SCAN_INTERVAL_SECONDS")

    # Delivery channels
    smtp_host: str = Field(default="smtp.gmail.com", alias="SMTP_HOST")
    smtp_port: int = Field(default=587, alias="SMTP_PORT")
    smtp_username: Optional[str] = Field(default=None, alias="SMTP_USERNAME")
    smtp_password: Optional[str] = Field(default=None, alias="SMTP_PASSWORD")
    email_from: Optional[str] = Field(default=None, alias="EMAIL_FROM")
    twilio_sid: Optional[str] = Field(default=None, alias="TWILIO_SID")
    twilio_token: Optional[str] = Field(default=None, alias="TWILIO_TOKEN")
    twilio_phone: Optional[str] = Field(default=None, alias="TWILIO_PHONE")

    class Config:
        # Load env from backend/.env regardless of CWD
        env_file = str(Path(__file__).resolve().parents[2] / ".env")
        case_sensitive = False
        populate_by_name = True

    def _parse_list(self, v: Optional[str]) -> List[str]:
        if v is None:
            return []
        s = v.strip()
        if not s:
            return []
        if s.startswith("[") and s.endswith("]"):
            try:
                import json
                loaded = json.loads(s)
                if isinstance(loaded, list):
                    return [str(e).strip() for e in loaded if str(e).strip()]
            except ValueError:
                pass
        return [e.strip() for e in s.split(",") if e.strip()]

    @property
    def active_statuses(self) -> List[str]:
        items = [s.lower() for s in self._parse_list(self.active_statuses_raw)]
        return items or list(DEFAULT_ACTIVE_STATUSES)

    @property
    def departure_grace(self) -> timedelta:
        return timedelta(hours=self.departure_grace_hours)

    @property
    def sms_configured(self) -> bool:
        return bool(self.twilio_sid and self.twilio_token and self.twilio_phone)

settings = Settings()  # type: ignore
