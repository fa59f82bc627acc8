"""
Application configuration from environment.
Gateway credentials and URLs are read from env; no defaults for secrets.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment (and .env file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Service identity (stamped on every log line)
    service_name: str = "payment-function"
    service_version: str = "v8.7"

    # Observability
    # Netlify exposes the deploy context as CONTEXT; fall back to APP_ENV / NODE_ENV
    app_env: str = Field(
        default="production",
        validation_alias=AliasChoices("context", "app_env", "node_env"),
    )
    debug: bool = False
    log_mask_all_levels: bool = False
    log_mask_fail_closed: bool = False
    sentry_dsn: Optional[str] = None

    # Midtrans Snap
    midtrans_server_key: str = ""
    midtrans_snap_url: str = "https://app.midtrans.com/snap/v1/transactions"
    payment_expiry_minutes: int = 15

    # Merchant webhook notified before the gateway call
    webhook_url: Optional[str] = None
    webhook_user_agent: str = "NextPay-Payment-Function"

    # Encrypted checkout tokens
    token_master_key: Optional[str] = None

    # Default customer sent to the gateway
    customer_first_name: str = "NextPay"
    customer_last_name: str = "Customer"
    customer_email: str = "customer@nextpay.com"

    # API
    api_prefix: str = "/api/v1"

    # Timeouts (seconds)
    midtrans_request_timeout: float = 10.0
    webhook_request_timeout: float = 5.0

    @property
    def debug_enabled(self) -> bool:
        return self.debug or self.app_env == "dev"


@lru_cache
def get_settings() -> Settings:
    return Settings()
