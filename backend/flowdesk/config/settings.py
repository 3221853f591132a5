# /flowdesk/config/settings.py

import sys
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # App Metadata
    environment: str = Field(default="production")
    api_version: str = "v1"
    workers: int = 1  # sessions are process-local
    allowed_hosts: str = "*"

    # WhatsApp Flow encryption
    flow_private_key: str | None = None  # PEM, "\n" sequences allowed
    flow_private_key_passphrase: str | None = None
    flow_response_version: str = "1.0"

    # Sessions
    session_ttl_minutes: int = 15
    session_sweep_interval_minutes: int = 5

    # Business rules
    max_hours_increase: float = 500
    maintenance_warning_hours: float = 50
    default_country_code: str = "90"

    # Security & limits
    api_key: str | None = None
    rate_limit_per_minute: int = 100

    # ---------------- Validators ---------------- #

    @field_validator("flow_private_key", mode="before")
    @classmethod
    def unescape_private_key(cls, v):
        """
        Environment variables usually carry the PEM on a single line with
        literal "\\n" sequences. Turn them back into real newlines.
        """
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return v.replace("\\n", "\n")
        return v

    @field_validator("default_country_code")
    @classmethod
    def country_code_must_be_digits(cls, v: str) -> str:
        v = v.lstrip("+")
        if not v.isdigit():
            raise ValueError("DEFAULT_COUNTRY_CODE must contain only digits")
        return v

    @field_validator("session_ttl_minutes", "session_sweep_interval_minutes")
    @classmethod
    def must_be_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Session timings must be positive")
        return v

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


def validate_environment(settings_obj: Settings):
    try:
        if settings_obj.workers != 1:
            raise ValueError("WORKERS must be 1 while flow sessions are held in memory")

        if settings_obj.session_sweep_interval_minutes > settings_obj.session_ttl_minutes:
            raise ValueError("SESSION_SWEEP_INTERVAL_MINUTES must not exceed SESSION_TTL_MINUTES")

        if settings_obj.max_hours_increase <= 0:
            raise ValueError("MAX_HOURS_INCREASE must be positive")

        if settings_obj.maintenance_warning_hours < 0:
            raise ValueError("MAINTENANCE_WARNING_HOURS cannot be negative")

        return settings_obj

    except Exception as e:
        print(f"--- [ERROR] Environment validation failed: {e}")
        sys.exit(1)


settings = Settings()
validate_environment(settings)
