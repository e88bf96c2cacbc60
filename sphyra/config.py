#config.py
import os
import socket
import uuid
from pydantic_settings import BaseSettings
from pydantic_settings import SettingsConfigDict
from typing import List
from functools import lru_cache

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    # Application Settings
    APP_NAME: str = "Sphyra Wellness API"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    DOCS_ENABLED: bool = True

    # Database Settings
    DATABASE_URL: str = os.environ.get("DATABASE_URL", "sqlite:///./sphyra.db")

    # CORS Settings (accept comma-separated strings to avoid JSON parsing in env)
    ALLOWED_ORIGINS: str = os.environ.get("ALLOWED_ORIGINS", "*")

    # Logging Settings
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Public frontend, used for confirmation links and redirects
    FRONTEND_URL: str = "http://localhost:5173"

    # Email (Resend)
    RESEND_API_KEY: str = ""
    EMAIL_FROM_ADDRESS: str = "noreply@sphyrawellness.com"
    EMAIL_FROM_NAME: str = "Sphyra Wellness"

    # SMS gateway (smartphone running an HTTP SMS gateway app)
    SMS_GATEWAY_URL: str = ""
    SMS_GATEWAY_TOKEN: str = ""  # "username:password", sent as Basic auth
    SMS_GATEWAY_TIMEOUT_SECONDS: float = 10.0
    SMS_DEFAULT_COUNTRY_CODE: str = "39"
    SMS_MAX_RETRIES: int = 3
    SMS_RETRY_BACKOFF_SECONDS: float = 1.0
    SMS_RETRY_MAX_BACKOFF_SECONDS: float = 10.0
    SMS_RETRY_JITTER_SECONDS: float = 0.5

    # Reminder pipeline
    REMINDER_SCHEDULER_ENABLED: bool = True
    REMINDER_TIMEZONE: str = "Europe/Rome"
    REMINDER_JOB_NAME: str = "daily_reminder_job"
    REMINDER_LOCK_LEASE_SECONDS: int = 600
    REMINDER_SETTINGS_TTL_SECONDS: int = 600
    REMINDER_DEFAULT_CHANNEL: str = "email"
    INSTANCE_ID: str = ""

    # Confirmation tokens
    CONFIRMATION_TOKEN_TTL_HOURS: int = 48
    CONFIRMATION_TOKEN_HASH_ROUNDS: int = 12

    def _split_csv(self, value: str) -> List[str]:
        if value is None:
            return []
        value = value.strip()
        if value == "":
            return []
        return [item.strip() for item in value.split(",")]

    @property
    def allowed_origins_list(self) -> List[str]:
        return self._split_csv(self.ALLOWED_ORIGINS)

    @property
    def email_configured(self) -> bool:
        return bool(self.RESEND_API_KEY)

    @property
    def sms_configured(self) -> bool:
        return bool(self.SMS_GATEWAY_URL and self.SMS_GATEWAY_TOKEN)

    @property
    def instance_id(self) -> str:
        if self.INSTANCE_ID:
            return self.INSTANCE_ID
        return _default_instance_id()


@lru_cache()
def _default_instance_id() -> str:
    # Stable for the life of the process
    return f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"


@lru_cache()
def get_settings() -> Settings:
    s = Settings()
    # Normalize ALLOWED_ORIGINS if provided as comma-separated string env var CORS_ORIGINS
    cors_env = os.environ.get("CORS_ORIGINS")
    if cors_env:
        s.ALLOWED_ORIGINS = cors_env
    return s

settings: Settings = get_settings()
