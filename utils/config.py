"""
Strivio-Teams configuration

Pydantic-backed configuration loaded from environment variables.
Uses the STRIVIO_ prefix; DATABASE_URL is honoured as a fallback so existing
deployments keep working.
"""

import os
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from services.errors import ConfigError


class Config(BaseModel):
    """
    Key env vars:
    - STRIVIO_DATABASE_URL (or DATABASE_URL), default sqlite:///strivio.db
    - STRIVIO_LOG_LEVEL (default: INFO), STRIVIO_LOG_JSON
    - STRIVIO_SWEEP_INTERVAL_SECONDS (default: 300)
    - STRIVIO_SENDGRID_API_KEY, STRIVIO_MAIL_FROM
    - STRIVIO_EMAIL_MAX_ATTEMPTS / STRIVIO_EMAIL_BATCH_SIZE
    """

    database_url: str = Field(default="sqlite:///strivio.db")
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    # automatic assignment
    sweep_interval_seconds: int = Field(default=300)

    # email outbox
    sendgrid_api_key: Optional[str] = Field(default=None)
    mail_from: str = Field(default="no-reply@strivio.local")
    email_max_attempts: int = Field(default=5)
    email_batch_size: int = Field(default=50)

    @field_validator("sweep_interval_seconds", "email_max_attempts", "email_batch_size")
    @classmethod
    def _positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @property
    def email_enabled(self) -> bool:
        return bool(self.sendgrid_api_key)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes")


def load_config() -> Config:
    raw = {
        "database_url": os.environ.get("STRIVIO_DATABASE_URL") or os.environ.get("DATABASE_URL"),
        "log_level": os.environ.get("STRIVIO_LOG_LEVEL"),
        "log_json": _env_flag("STRIVIO_LOG_JSON"),
        "sweep_interval_seconds": os.environ.get("STRIVIO_SWEEP_INTERVAL_SECONDS"),
        "sendgrid_api_key": os.environ.get("STRIVIO_SENDGRID_API_KEY"),
        "mail_from": os.environ.get("STRIVIO_MAIL_FROM"),
        "email_max_attempts": os.environ.get("STRIVIO_EMAIL_MAX_ATTEMPTS"),
        "email_batch_size": os.environ.get("STRIVIO_EMAIL_BATCH_SIZE"),
    }
    try:
        return Config(**{k: v for k, v in raw.items() if v is not None})
    except PydanticValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}", metadata={"errors": exc.errors()}) from exc
