"""
Stripe adapter for the PaymentProcessor port, built on the official
stripe-python SDK.

Funds are charged to the platform account and held there while in escrow;
a release is a Transfer to the artisan's connected account and a payout is
a Payout created on that connected account. The SDK is synchronous, so every
call runs in a worker thread.
"""
from __future__ import annotations

import asyncio
from typing import Any, Callable, TypeVar

import stripe

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
from core.logging_config import get_logger
from core.settings import PaymentSettings
from domain.common.exceptions import ProcessorException, ProcessorSignatureException
from infrastructure.external.payments.base import BaseProcessorClient


logger = get_logger(__name__)

T = TypeVar("T")


class StripeProcessor(BaseProcessorClient):
    provider = "stripe"
    transient_errors = (stripe.APIConnectionError, stripe.RateLimitError)

    def __init__(self, settings: PaymentSettings):
        super().__init__(retry={"max": settings.retry.max, "base": settings.retry.base_backoff})
        if not settings.stripe.secret_key:
            raise RuntimeError("PAYMENT__STRIPE__SECRET_KEY not configured")
        stripe.api_key = settings.stripe.secret_key
        if settings.stripe.api_version:
            stripe.api_version = settings.stripe.api_version
        self._webhook_secret = settings.stripe.webhook_secret
        self._tolerance = settings.webhook.tolerance_seconds

    async def _call(self, operation: str, fn: Callable[[], T]) -> T:
        try:
            return await self._retry(lambda: asyncio.to_thread(fn))
        except stripe.StripeError as exc:
            logger.warning("stripe_call_failed", operation=operation, code=exc.code, error=str(exc))
            raise ProcessorException(
                exc.user_message or str(exc),
                processor=self.provider,
                processor_code=exc.code,
                details={"operation": operation},
            ) from exc

    async def create_charge_intent(self, req: ChargeIntentRequest) -> ChargeIntent:
        params: dict[str, Any] = {
            "amount": req.amount,
            "currency": req.currency.lower(),
            "metadata": {k: str(v) for k, v in req.metadata.items()},
            "automatic_payment_methods": {"enabled": True},
            "idempotency_key": req.idempotency_key,
        }
        if req.customer:
            params["customer"] = req.customer
        if req.payment_method and req.payment_method != "card":
            params["payment_method"] = req.payment_method
        if "order_id" in req.metadata:
            params["transfer_group"] = f"order_{req.metadata['order_id']}"

        pi = await self._call("create_charge_intent", lambda: stripe.PaymentIntent.create(**params))
        self._log("stripe_intent_created", intent_id=pi["id"], amount=req.amount)
        return ChargeIntent(
            intent_id=str(pi["id"]),
            client_secret=pi.get("client_secret"),
            status=str(pi.get("status", "")),
            provider=self.provider,
        )

    async def create_transfer(self, req: TransferRequest) -> TransferResult:
        if not req.destination:
            raise ProcessorException("Transfer destination is required", processor=self.provider)
        params: dict[str, Any] = {
            "amount": req.amount,
            "currency": req.currency.lower(),
            "destination": req.destination,
            "metadata": {k: str(v) for k, v in req.metadata.items()},
            "idempotency_key": req.idempotency_key,
        }
        if "order_id" in req.metadata:
            params["transfer_group"] = f"order_{req.metadata['order_id']}"

        transfer = await self._call("create_transfer", lambda: stripe.Transfer.create(**params))
        self._log("stripe_transfer_created", transfer_id=transfer["id"], amount=req.amount)
        return TransferResult(transfer_id=str(transfer["id"]), status="paid", provider=self.provider)

    async def create_refund(self, req: RefundRequest) -> RefundResult:
        metadata = {k: str(v) for k, v in req.metadata.items()}
        if req.reason:
            metadata["reason"] = req.reason[:500]
        refund = await self._call(
            "create_refund",
            lambda: stripe.Refund.create(
                payment_intent=req.intent_id,
                amount=req.amount,
                metadata=metadata,
                idempotency_key=req.idempotency_key,
            ),
        )
        self._log("stripe_refund_created", refund_id=refund["id"], amount=req.amount)
        return RefundResult(refund_id=str(refund["id"]), status=str(refund.get("status", "")), provider=self.provider)

    async def create_payout(self, req: PayoutRequest) -> PayoutResult:
        if not req.destination:
            raise ProcessorException("Payout destination is required", processor=self.provider)
        payout = await self._call(
            "create_payout",
            lambda: stripe.Payout.create(
                amount=req.amount,
                currency=req.currency.lower(),
                metadata={k: str(v) for k, v in req.metadata.items()},
                stripe_account=req.destination,
                idempotency_key=req.idempotency_key,
            ),
        )
        status = self._map_payout_status(str(payout.get("status", "")))
        self._log("stripe_payout_created", payout_id=payout["id"], status=status, amount=req.amount)
        return PayoutResult(
            payout_id=str(payout["id"]),
            status=status,
            provider=self.provider,
            failure_message=payout.get("failure_message"),
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> ProcessorEvent:
        if not self._webhook_secret:
            raise ProcessorSignatureException("Missing PAYMENT__STRIPE__WEBHOOK_SECRET", processor=self.provider)
        lowered = {k.lower(): v for k, v in headers.items()}
        sig = lowered.get("stripe-signature")
        if not sig:
            raise ProcessorSignatureException("Missing Stripe-Signature header", processor=self.provider)
        try:
            event = stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self._webhook_secret,
                tolerance=self._tolerance,
            )
        except (stripe.SignatureVerificationError, ValueError) as exc:
            raise ProcessorSignatureException(str(exc), processor=self.provider) from exc

        provider_type = str(event["type"])
        obj = event["data"]["object"]
        normalized = ProcessorEvent(
            id=str(event["id"]),
            type=self._map_event(provider_type),
            provider=self.provider,
            provider_type=provider_type,
            data={"object": obj.to_dict() if hasattr(obj, "to_dict") else dict(obj)},
        )
        if provider_type.startswith("payment_intent."):
            normalized.intent_id = obj.get("id")
            error = obj.get("last_payment_error") or {}
            normalized.message = error.get("message")
        elif provider_type.startswith("charge.dispute."):
            normalized.intent_id = obj.get("payment_intent")
            normalized.dispute_id = obj.get("id")
            normalized.message = obj.get("reason")
        elif provider_type.startswith(("payout.", "transfer.")):
            normalized.payout_id = obj.get("id")
            normalized.message = obj.get("failure_message")
        return normalized
