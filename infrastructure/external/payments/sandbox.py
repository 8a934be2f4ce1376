"""
Offline processor for local runs and tests.

Charges, transfers, refunds and payouts succeed immediately with generated
ids. Webhooks are JSON bodies in the internal event vocabulary, signed with
HMAC-SHA256 in the ``X-Sandbox-Signature`` header.
"""
from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
from itertools import count
from typing import Any, Optional
from uuid import uuid4

from pydantic import ValidationError

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
from domain.common.exceptions import ProcessorException, ProcessorSignatureException
from infrastructure.external.payments.base import BaseProcessorClient

SIGNATURE_HEADER = "x-sandbox-signature"


class SandboxProcessor(BaseProcessorClient):
    provider = "sandbox"

    def __init__(self, webhook_secret: str = "sandbox-webhook-secret") -> None:
        super().__init__()
        self._secret = webhook_secret.encode()
        self._ids = count(1)
        self.calls: list[tuple[str, Any]] = []
        # operation -> exception raised by the next call
        self.failures: dict[str, Exception] = {}
        # operation -> seconds to stall before answering
        self.delays: dict[str, float] = {}
        self.payout_status = "paid"

    def _next_id(self, prefix: str) -> str:
        return f"{prefix}_sbx_{next(self._ids)}"

    async def _enter(self, operation: str, request: Any) -> None:
        self.calls.append((operation, request))
        delay = self.delays.get(operation)
        if delay:
            await asyncio.sleep(delay)
        failure = self.failures.pop(operation, None)
        if failure is not None:
            raise failure

    def fail_next(self, operation: str, message: str = "declined") -> None:
        self.failures[operation] = ProcessorException(message, processor=self.provider, processor_code="sandbox_declined")

    def calls_for(self, operation: str) -> list[Any]:
        return [req for op, req in self.calls if op == operation]

    async def create_charge_intent(self, req: ChargeIntentRequest) -> ChargeIntent:
        await self._enter("create_charge_intent", req)
        intent_id = self._next_id("pi")
        self._log("sandbox_intent_created", intent_id=intent_id, amount=req.amount)
        return ChargeIntent(
            intent_id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            status="requires_confirmation",
            provider=self.provider,
        )

    async def create_transfer(self, req: TransferRequest) -> TransferResult:
        await self._enter("create_transfer", req)
        return TransferResult(transfer_id=self._next_id("tr"), status="paid", provider=self.provider)

    async def create_refund(self, req: RefundRequest) -> RefundResult:
        await self._enter("create_refund", req)
        return RefundResult(refund_id=self._next_id("re"), status="succeeded", provider=self.provider)

    async def create_payout(self, req: PayoutRequest) -> PayoutResult:
        await self._enter("create_payout", req)
        return PayoutResult(payout_id=self._next_id("po"), status=self.payout_status, provider=self.provider)

    # -------------------- webhooks --------------------

    def sign(self, body: bytes) -> str:
        return hmac.new(self._secret, body, hashlib.sha256).hexdigest()

    def build_webhook(self, type: str, **fields: Optional[str]) -> tuple[dict[str, str], bytes]:
        """Signed headers and body for an event, as the processor would post it"""
        payload = {"id": fields.pop("id", None) or f"evt_{uuid4().hex[:12]}", "type": type, **fields}
        body = json.dumps(payload).encode()
        return {SIGNATURE_HEADER: self.sign(body)}, body

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> ProcessorEvent:
        lowered = {k.lower(): v for k, v in headers.items()}
        sig = lowered.get(SIGNATURE_HEADER)
        if not sig:
            raise ProcessorSignatureException("Missing X-Sandbox-Signature header", processor=self.provider)
        if not hmac.compare_digest(sig, self.sign(body)):
            raise ProcessorSignatureException("Signature mismatch", processor=self.provider)
        try:
            payload = json.loads(body)
            return ProcessorEvent(
                id=payload["id"],
                type=self._map_event(payload["type"]),
                provider=self.provider,
                provider_type=payload["type"],
                intent_id=payload.get("intent_id"),
                payout_id=payload.get("payout_id"),
                dispute_id=payload.get("dispute_id"),
                message=payload.get("message"),
                data=payload,
            )
        except (ValueError, KeyError, ValidationError) as exc:
            raise ProcessorSignatureException(f"Malformed webhook body: {exc}", processor=self.provider) from exc
