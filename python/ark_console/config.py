"""
Location: python/ark_console/config.py

Summary:
    Process configuration, read once from the environment (and an
    optional .env file) and passed explicitly to the gateway, stores and
    API factory. Also holds the logging setup.

Example:
    from ark_console.config import Settings, configure_logging

    settings = Settings()  # BARKD_URL must be set
    configure_logging(settings.log_level)
"""

import logging.config
from typing import Literal, Optional

from pydantic import AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


class Settings(BaseSettings):
    # ────────────────────────────────
    # 1. APP & ENVIRONMENT
    # ────────────────────────────────
    ENVIRONMENT: Literal["development", "production", "test"] = "development"
    LOG_LEVEL: Optional[str] = None
    POS_PIN: str = "1234"

    # ────────────────────────────────
    # 2. WALLET DAEMON
    # ────────────────────────────────
    BARKD_URL: AnyHttpUrl = Field(..., description="Base URL of the barkd REST server")
    DAEMON_TIMEOUT: float = Field(30.0, gt=0)

    # ────────────────────────────────
    # 3. DATABASE
    # ────────────────────────────────
    DATABASE_URL: str = "sqlite:///./ark_console.db"

    # ────────────────────────────────
    # 4. SCHEDULING
    # ────────────────────────────────
    WEBHOOK_TIMEOUT: float = Field(10.0, gt=0)
    WEBHOOK_SWEEP_INTERVAL: float = Field(0.0, ge=0)
    POLL_INTERVAL: float = Field(2.0, gt=0)
    SYNC_INTERVAL: float = Field(30.0, gt=0)

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    @field_validator("LOG_LEVEL")
    @classmethod
    def _upper_level(cls, value: Optional[str]) -> Optional[str]:
        return value.upper() if value else value

    @property
    def barkd_url(self) -> str:
        """Daemon base URL without a trailing slash."""
        return str(self.BARKD_URL).rstrip("/")

    @property
    def log_level(self) -> str:
        if self.LOG_LEVEL:
            return self.LOG_LEVEL
        return "INFO" if self.ENVIRONMENT == "production" else "DEBUG"


def configure_logging(level: str = "INFO") -> None:
    """Install a console handler on the ark_console logger tree."""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "loggers": {
            "ark_console": {"handlers": ["console"], "level": level, "propagate": False},
            "uvicorn": {"handlers": ["console"], "level": level},
            "uvicorn.error": {"handlers": ["console"], "level": level},
            "uvicorn.access": {"handlers": ["console"], "level": level},
        },
    })
