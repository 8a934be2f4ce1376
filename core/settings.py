"""
Payment processor settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so processor credentials load on their own.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    tolerance_seconds: int = 300
    ip_allowlist: list[str] | None = None  # optional IPs allowed to post webhooks


class SandboxSettings(BaseModel):
    """Offline processor for local runs; webhooks are HMAC-signed with this secret"""
    webhook_secret: str = "sandbox-webhook-secret"


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_version: Optional[str] = None


class PaymentSettings(BaseSettings):
    default_provider: str = Field(default="sandbox", validation_alias="PAYMENT__DEFAULT_PROVIDER")
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    stripe: StripeSettings = Field(default_factory=StripeSettings)
    sandbox: SandboxSettings = Field(default_factory=SandboxSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )


payment_settings = PaymentSettings()
