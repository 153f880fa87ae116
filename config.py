"""
Configuration management for MedCare Dose Engine
"""

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Application
    APP_NAME: str = "MedCare Dose Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENV: str = "development"

    # API
    API_PREFIX: str = "/api/v1"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # Database
    DATABASE_URL: str = "sqlite:///./medcare_engine.db"
    DATABASE_ECHO: bool = False

    # Push notifications (OneSignal)
    ONESIGNAL_APP_ID: Optional[str] = None
    ONESIGNAL_API_KEY: Optional[str] = None
    ONESIGNAL_API_URL: str = "https://onesignal.com/api/v1"

    # Email (Resend)
    RESEND_API_KEY: Optional[str] = None
    RESEND_API_URL: str = "https://api.resend.com"
    EMAIL_FROM: str = "MedCare <notifications@medcare.app>"
    DASHBOARD_URL: str = "https://medcare.app/dashboard"

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_PHONE_NUMBER: Optional[str] = None
    TWILIO_API_URL: str = "https://api.twilio.com/2010-04-01"

    # Per-channel delivery budget
    CHANNEL_TIMEOUT_SECONDS: float = 5.0

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Engine-specific configurations
class EngineConfig:
    """Tunables for schedule generation, sweeping and delivery"""

    # Schedule Generator
    DEDUP_TOLERANCE_SECONDS: int = 60
    GENERATION_LOOKAHEAD_DAYS: int = 1  # today + tomorrow

    # Missed-Dose Sweeper
    GRACE_WINDOW_MINUTES: int = 30
    SWEEP_BATCH_LIMIT: int = 500
    ARCHIVE_AFTER_DAYS: int = 3

    # Adherence Aggregator
    STREAK_LOOKBACK_DAYS: int = 30
    WEEK_START_DAY: int = 6  # date.weekday(): 0=Monday, 6=Sunday

    # Reminders
    REMINDER_LEAD_MINUTES: int = 15
    REMINDER_HORIZON_MINUTES: int = 60

    # Dispatcher
    DISPATCH_BATCH_LIMIT: int = 200
    DISPATCH_CLAIM_TIMEOUT_MINUTES: int = 10  # stale `dispatching` rows are reclaimed after this

    DEFAULT_TIMEZONE: str = "UTC"


# Database table names
class TableNames:
    USERS = "users"
    MEDICATIONS = "medications"
    DOSE_INSTANCES = "dose_instances"
    CAREGIVERS = "caregivers"
    NOTIFICATION_PREFERENCES = "notification_preferences"
    NOTIFICATIONS = "notifications"
    NOTIFICATION_DELIVERIES = "notification_deliveries"
    WEEKLY_REPORTS = "weekly_reports"


settings = get_settings()
engine_config = EngineConfig()
