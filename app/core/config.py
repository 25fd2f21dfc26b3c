"""
Configuration module - loads all env vars using pydantic-settings.
This is the SINGLE SOURCE OF TRUTH for all config values.
"""

from functools import lru_cache
from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # MongoDB
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_db: str = "student_portal"

    # JWT Auth
    jwt_secret_key: str = "change-this-secret"
    jwt_refresh_secret_key: str = "change-this-refresh-secret"
    jwt_algorithm: str = "HS256"
    jwt_expire_minutes: int = 1440
    jwt_refresh_expire_days: int = 7

    # Password hashing
    bcrypt_rounds: int = 12

    # DeepSeek AI (OpenAI-compatible), used by the chatbot
    deepseek_api_key: str = ""
    deepseek_base_url: str = "https://api.deepseek.com/v1"

    # Reminder sweeps (APScheduler cron jobs)
    scheduler_enabled: bool = True
    scheduler_timezone: str = "UTC"
    fee_reminder_hour: int = 9
    overdue_sweep_hour: int = 10
    library_sweep_hour: int = 8

    # Mocked payment gateway: probability a payment is declined
    payment_failure_rate: float = 0.0

    # App
    allowed_origins: str = "*"
    log_level: str = "INFO"
    debug: bool = True

    @property
    def cors_origins(self) -> List[str]:
        """Comma separated ALLOWED_ORIGINS as a list"""
        return [origin.strip() for origin in self.allowed_origins.split(",") if origin.strip()]

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
