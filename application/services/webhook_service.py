"""
Webhook ingestion - routes normalised processor events to the engines.

Replays are harmless: every handler is a no-op once its target has moved
past the state the event describes.
"""
from __future__ import annotations

from typing import Any, Optional

from application.dtos.payments import ProcessorEvent
from application.ports.payment_processor import PaymentProcessor
from application.services.dispute_service import DisputeService
from application.services.payment_service import PaymentService
from application.services.payout_service import PayoutService
from core.logging_config import get_logger


logger = get_logger(__name__)


class WebhookService:

    def __init__(
        self,
        processor: PaymentProcessor,
        payments: PaymentService,
        disputes: DisputeService,
        payouts: PayoutService,
    ) -> None:
        self._processor = processor
        self._payments = payments
        self._disputes = disputes
        self._payouts = payouts

    async def ingest(self, headers: dict[str, Any], body: bytes) -> ProcessorEvent:
        """Verify and parse the raw request, then dispatch it."""
        event = self._processor.parse_webhook(headers, body)
        await self.dispatch(event)
        return event

    async def dispatch(self, event: ProcessorEvent) -> Optional[str]:
        """Returns the handled internal type, or None when the event is ignored."""
        log = logger.bind(event_id=event.id, event_type=event.type, provider_type=event.provider_type)

        if event.type == "charge.succeeded" and event.intent_id:
            await self._payments.on_charge_confirmed(event.intent_id)
        elif event.type == "charge.failed" and event.intent_id:
            await self._payments.on_charge_failed(event.intent_id, event.message)
        elif event.type == "transfer.paid" and event.payout_id:
            await self._payouts.on_payout_paid(event.payout_id)
        elif event.type == "transfer.failed" and event.payout_id:
            await self._payouts.on_payout_failed(event.payout_id, event.message)
        elif event.type == "dispute.created" and event.intent_id and event.dispute_id:
            await self._disputes.on_processor_dispute(event.intent_id, event.dispute_id, event.message)
        else:
            log.info("webhook_ignored")
            return None

        log.info("webhook_handled")
        return event.type
