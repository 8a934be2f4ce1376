import pytest

from conftest import seed_order
from domain.common.exceptions import ProcessorSignatureException
from domain.payment.entity import PaymentStatus
from infrastructure.external.payments.sandbox import SIGNATURE_HEADER


async def _processing(container, people):
    customer, artisan, _ = people
    order = await seed_order(container, customer.id, artisan.id)
    return await container.payments.create_escrow_payment(order.id, "card", customer.id)


@pytest.mark.asyncio
async def test_charge_succeeded_moves_payment_into_escrow(container, sandbox, people):
    customer, artisan, _ = people
    intent = await _processing(container, people)
    headers, body = sandbox.build_webhook("charge.succeeded", intent_id=intent.intent_id)

    event = await container.webhooks.ingest(headers, body)

    assert event.type == "charge.succeeded"
    payment = await container.payments.get_payment(intent.payment_id, customer.id)
    assert payment.status == PaymentStatus.IN_ESCROW
    items, _ = await container.notifications.list_notifications(artisan.id)
    assert any(n.data.get("event") == "payment_received" for n in items)


@pytest.mark.asyncio
async def test_replayed_events_change_nothing(container, sandbox, people):
    customer, artisan, _ = people
    intent = await _processing(container, people)
    headers, body = sandbox.build_webhook("charge.succeeded", intent_id=intent.intent_id)
    await container.webhooks.ingest(headers, body)
    await container.payments.release_escrow_payment(intent.payment_id, customer.id)

    await container.webhooks.ingest(headers, body)
    failed_headers, failed_body = sandbox.build_webhook("charge.failed", intent_id=intent.intent_id, message="late")
    await container.webhooks.ingest(failed_headers, failed_body)

    payment = await container.payments.get_payment(intent.payment_id, customer.id)
    assert payment.status == PaymentStatus.RELEASED
    assert (await container.ledger.get_wallet(artisan.id)).balance == 9500


@pytest.mark.asyncio
async def test_bad_signature_is_rejected(container, sandbox, people):
    intent = await _processing(container, people)
    headers, body = sandbox.build_webhook("charge.succeeded", intent_id=intent.intent_id)
    headers[SIGNATURE_HEADER] = "0" * 64

    with pytest.raises(ProcessorSignatureException):
        await container.webhooks.ingest(headers, body)
    with pytest.raises(ProcessorSignatureException):
        await container.webhooks.ingest({}, body)


@pytest.mark.asyncio
async def test_unknown_events_are_acknowledged_and_ignored(container, sandbox):
    headers, body = sandbox.build_webhook("customer.updated")
    event = await container.webhooks.ingest(headers, body)
    assert await container.webhooks.dispatch(event) is None


@pytest.mark.asyncio
async def test_unknown_intent_is_ignored(container, sandbox):
    headers, body = sandbox.build_webhook("charge.succeeded", intent_id="pi_unknown")
    event = await container.webhooks.ingest(headers, body)
    assert event.intent_id == "pi_unknown"


@pytest.mark.asyncio
async def test_chargeback_opens_a_payment_dispute(container, sandbox, people):
    customer, _, _ = people
    intent = await _processing(container, people)
    await container.payments.on_charge_confirmed(intent.intent_id)
    headers, body = sandbox.build_webhook(
        "dispute.created", intent_id=intent.intent_id, dispute_id="dp_42", message="fraudulent"
    )

    await container.webhooks.ingest(headers, body)
    await container.webhooks.ingest(headers, body)

    disputes = await container.disputes.list_disputes(customer.id)
    assert len(disputes) == 1
    assert disputes[0].processor_dispute_id == "dp_42"
