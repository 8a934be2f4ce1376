"""
Factory for payment processor adapters.
"""
from __future__ import annotations

from typing import Optional

from application.ports.payment_processor import PaymentProcessor
from core.settings import PaymentSettings, payment_settings


def get_payment_processor(provider: Optional[str] = None, settings: Optional[PaymentSettings] = None) -> PaymentProcessor:
    settings = settings or payment_settings
    name = (provider or settings.default_provider).lower()
    if name == "stripe":
        from .stripe_client import StripeProcessor
        return StripeProcessor(settings)
    if name == "sandbox":
        from .sandbox import SandboxProcessor
        return SandboxProcessor(settings.sandbox.webhook_secret)
    raise ValueError(f"Unsupported payment provider: {name}")
