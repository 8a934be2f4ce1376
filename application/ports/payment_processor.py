"""
Payment processor port exposing a replaceable protocol.

The application depends on this Protocol; infrastructure implements adapters.
Processors are treated as opaque capabilities: create a charge intent, move
funds to a connected account, refund, pay out, and verify webhooks.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import (
    ChargeIntent,
    ChargeIntentRequest,
    PayoutRequest,
    PayoutResult,
    ProcessorEvent,
    RefundRequest,
    RefundResult,
    TransferRequest,
    TransferResult,
)


@runtime_checkable
class PaymentProcessor(Protocol):
    """Async processor protocol; implementations do IO only, no state."""

    provider: str

    async def create_charge_intent(self, req: ChargeIntentRequest) -> ChargeIntent: ...

    async def create_transfer(self, req: TransferRequest) -> TransferResult: ...

    async def create_refund(self, req: RefundRequest) -> RefundResult: ...

    async def create_payout(self, req: PayoutRequest) -> PayoutResult: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> ProcessorEvent: ...
