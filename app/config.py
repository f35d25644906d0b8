"""Application configuration settings."""
from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# --- Runtime toggles -----------------------------------------------------
# Runtime environment: "dev" | "staging" | "prod"
ENV = os.getenv("APP_ENV", "dev").lower()

# Gateways a payment can be routed through.
SUPPORTED_GATEWAYS = {"STRIPE", "WIPAY"}


class Settings(BaseSettings):
    """Environment configuration for the Tradeworks backend."""

    app_env: str = ENV
    database_url: str = "sqlite:///tradeworks.db"
    SECRET_KEY: str = "change-me"
    CORS_ALLOW_ORIGINS: list[str] = [
        "https://tradeworks.tt",
        "https://app.tradeworks.tt",
        "http://localhost:5173",
    ]
    SENTRY_DSN: str | None = None
    PROMETHEUS_ENABLED: bool = True
    ALLOW_DB_CREATE_ALL: bool = False

    # --- Payment gateways -----------------------------------------------
    DEFAULT_GATEWAY: str = "WIPAY"
    GATEWAY_TIMEOUT_SECONDS: float = 10.0
    PAYMENT_STATUS_REDIRECT_URL: str | None = None

    STRIPE_ENABLED: bool = False
    STRIPE_SECRET_KEY: str | None = None
    STRIPE_WEBHOOK_SECRET: str | None = None
    STRIPE_CURRENCY: str = "usd"

    WIPAY_ENABLED: bool = False
    WIPAY_ACCOUNT_NUMBER: str | None = None
    WIPAY_DEVELOPER_ID: str | None = None
    WIPAY_ENVIRONMENT: str = "sandbox"
    WIPAY_CURRENCY: str = "TTD"
    WIPAY_COUNTRY_CODE: str = "TT"
    WIPAY_CALLBACK_URL: str = "http://localhost:8000/psp/wipay/callback"
    WIPAY_VERIFY_CALLBACKS: bool = True

    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="", env_file_encoding="utf-8"
    )

    @field_validator("STRIPE_WEBHOOK_SECRET", "STRIPE_SECRET_KEY", "WIPAY_ACCOUNT_NUMBER")
    @classmethod
    def _strip_empty_secret(cls, value: str | None) -> str | None:
        """Normalise empty secrets to ``None`` for easier validation."""

        if value is None:
            return None
        cleaned = value.strip()
        return cleaned or None

    @field_validator("DEFAULT_GATEWAY")
    @classmethod
    def _known_gateway(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in SUPPORTED_GATEWAYS:
            raise ValueError(f"DEFAULT_GATEWAY must be one of {sorted(SUPPORTED_GATEWAYS)}")
        return normalized


class AppInfo(BaseModel):
    name: str = "tradeworks-backend"
    version: str = "0.1.0"


settings = Settings()


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings."""

    return settings


__all__ = [
    "ENV",
    "SUPPORTED_GATEWAYS",
    "Settings",
    "AppInfo",
    "settings",
    "get_settings",
]
