import pytest

from application.dtos.disputes import EvidenceDTO, ResolutionRequest
from conftest import paid_in_escrow, seed_order
from domain.common.exceptions import (
    DisputeAlreadyExistsException,
    DisputeClosedException,
    EscrowHeldException,
    InvalidSplitAmountException,
    NotAuthorizedException,
    PaymentNotInEscrowException,
    ProcessorException,
)
from domain.dispute.entity import DisputeStatus, DisputeType, ResolutionType
from domain.payment.entity import PaymentStatus


async def _payment(container, payment_id):
    async with container.uow_factory(readonly=True) as uow:
        return await uow.payments.get_by_id(payment_id)


async def _open(container, sandbox, people, **kwargs):
    customer, artisan, _ = people
    order, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    dispute = await container.disputes.initiate_dispute(
        order.id,
        customer.id,
        kwargs.get("type", DisputeType.QUALITY),
        "Tiles were laid unevenly",
        [EvidenceDTO(type="image", url="https://cdn.example.com/tiles.jpg")],
    )
    return order, payment, dispute


@pytest.mark.asyncio
async def test_open_dispute_blocks_release(container, sandbox, people):
    customer, artisan, _ = people
    _, payment, dispute = await _open(container, sandbox, people)

    assert dispute.status == DisputeStatus.OPEN
    assert dispute.against == artisan.id
    with pytest.raises(EscrowHeldException):
        await container.payments.release_escrow_payment(payment.id, customer.id)
    assert (await container.ledger.get_wallet(artisan.id)).balance == 0
    items, _ = await container.notifications.list_notifications(artisan.id)
    assert any(n.data.get("event") == "dispute_opened" for n in items)


@pytest.mark.asyncio
async def test_review_keeps_escrow_held(container, sandbox, people):
    customer, _, admin = people
    _, payment, dispute = await _open(container, sandbox, people)
    reviewed = await container.disputes.start_review(dispute.id, admin.id)
    assert reviewed.status == DisputeStatus.UNDER_REVIEW
    with pytest.raises(EscrowHeldException):
        await container.payments.release_escrow_payment(payment.id, customer.id)


@pytest.mark.asyncio
async def test_escalated_dispute_releases_hold_but_blocks_new_disputes(container, sandbox, people):
    customer, artisan, _ = people
    order, payment, dispute = await _open(container, sandbox, people)

    escalated = await container.disputes.escalate_dispute(dispute.id, "No answer from artisan", customer.id)
    assert escalated.status == DisputeStatus.ESCALATED
    with pytest.raises(DisputeAlreadyExistsException):
        await container.disputes.initiate_dispute(order.id, artisan.id, DisputeType.PAYMENT, "Customer unreachable")

    released = await container.payments.release_escrow_payment(payment.id, customer.id)
    assert released.status == PaymentStatus.RELEASED


@pytest.mark.asyncio
async def test_only_parties_open_disputes_on_charged_payments(container, sandbox, people):
    customer, artisan, admin = people
    order = await seed_order(container, customer.id, artisan.id)
    await container.payments.create_escrow_payment(order.id, "card", customer.id)
    with pytest.raises(PaymentNotInEscrowException):
        await container.disputes.initiate_dispute(order.id, customer.id, DisputeType.DELIVERY, "Never showed")

    paid, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    with pytest.raises(NotAuthorizedException):
        await container.disputes.initiate_dispute(paid.id, admin.id, DisputeType.OTHER, "Looks odd")


@pytest.mark.asyncio
async def test_full_refund_resolution(container, sandbox, people):
    customer, artisan, admin = people
    _, payment, dispute = await _open(container, sandbox, people)

    resolved = await container.disputes.resolve_dispute(
        dispute.id, ResolutionRequest(type=ResolutionType.REFUND), admin.id
    )

    assert resolved.status == DisputeStatus.RESOLVED
    assert resolved.resolution.amount == 10000
    current = await _payment(container, payment.id)
    assert current.status == PaymentStatus.REFUNDED
    assert current.refund.amount == 10000
    assert (await container.ledger.get_wallet(artisan.id)).balance == 0
    with pytest.raises(DisputeClosedException):
        await container.disputes.resolve_dispute(dispute.id, ResolutionRequest(type=ResolutionType.REFUND), admin.id)


@pytest.mark.asyncio
async def test_split_refunds_one_part_and_releases_the_rest(container, sandbox, people):
    _, artisan, admin = people
    _, payment, dispute = await _open(container, sandbox, people)

    await container.disputes.resolve_dispute(
        dispute.id,
        ResolutionRequest(type=ResolutionType.SPLIT_PAYMENT, amount=4000, release_amount=6000),
        admin.id,
    )

    current = await _payment(container, payment.id)
    assert current.status == PaymentStatus.RELEASED
    assert current.refund.amount == 4000
    assert current.released_amount == 6000
    assert current.payee_amount == 5700
    assert (await container.ledger.get_wallet(artisan.id)).balance == 5700


@pytest.mark.asyncio
async def test_failed_transfer_rolls_the_resolution_back(container, sandbox, people):
    _, artisan, admin = people
    _, payment, dispute = await _open(container, sandbox, people)
    split = ResolutionRequest(type=ResolutionType.SPLIT_PAYMENT, amount=4000, release_amount=6000)

    sandbox.fail_next("create_transfer")
    with pytest.raises(ProcessorException):
        await container.disputes.resolve_dispute(dispute.id, split, admin.id)

    current = await _payment(container, payment.id)
    assert current.status == PaymentStatus.IN_ESCROW
    assert current.refund is None
    assert (await container.disputes.get_dispute(dispute.id, admin.id)).status == DisputeStatus.OPEN
    assert (await container.ledger.get_wallet(artisan.id)).balance == 0

    resolved = await container.disputes.resolve_dispute(dispute.id, split, admin.id)

    assert resolved.status == DisputeStatus.RESOLVED
    assert (await _payment(container, payment.id)).refund.amount == 4000
    keys = [req.idempotency_key for req in sandbox.calls_for("create_refund")]
    assert len(keys) == 2 and keys[0] == keys[1]
    assert (await container.ledger.get_wallet(artisan.id)).balance == 5700


@pytest.mark.asyncio
async def test_split_must_cover_the_whole_payment(container, sandbox, people):
    _, _, admin = people
    _, payment, dispute = await _open(container, sandbox, people)

    with pytest.raises(InvalidSplitAmountException):
        await container.disputes.resolve_dispute(
            dispute.id,
            ResolutionRequest(type=ResolutionType.SPLIT_PAYMENT, amount=4000, release_amount=5000),
            admin.id,
        )

    assert (await _payment(container, payment.id)).status == PaymentStatus.IN_ESCROW
    assert (await container.disputes.get_dispute(dispute.id, admin.id)).status == DisputeStatus.OPEN


@pytest.mark.asyncio
async def test_partial_refund_releases_remainder(container, sandbox, people):
    _, artisan, admin = people
    _, payment, dispute = await _open(container, sandbox, people)

    await container.disputes.resolve_dispute(
        dispute.id, ResolutionRequest(type=ResolutionType.PARTIAL_REFUND, amount=2000), admin.id
    )

    current = await _payment(container, payment.id)
    assert current.refund.amount == 2000
    assert current.released_amount == 8000
    assert (await container.ledger.get_wallet(artisan.id)).balance == 7600


@pytest.mark.asyncio
async def test_release_resolution_pays_the_artisan(container, sandbox, people):
    _, artisan, admin = people
    _, payment, dispute = await _open(container, sandbox, people)

    await container.disputes.resolve_dispute(
        dispute.id, ResolutionRequest(type=ResolutionType.RELEASE_PAYMENT), admin.id
    )

    assert (await _payment(container, payment.id)).status == PaymentStatus.RELEASED
    assert (await container.ledger.get_wallet(artisan.id)).balance == 9500


@pytest.mark.asyncio
async def test_non_admin_cannot_resolve(container, sandbox, people):
    customer, _, _ = people
    _, _, dispute = await _open(container, sandbox, people)
    with pytest.raises(NotAuthorizedException):
        await container.disputes.resolve_dispute(
            dispute.id, ResolutionRequest(type=ResolutionType.REFUND), customer.id
        )


@pytest.mark.asyncio
async def test_messages_notify_the_other_party(container, sandbox, people):
    customer, artisan, _ = people
    _, _, dispute = await _open(container, sandbox, people)

    updated = await container.disputes.add_dispute_message(dispute.id, artisan.id, "I can redo the corner " * 10)

    assert updated.messages[-1].sender_id == artisan.id
    items, _ = await container.notifications.list_notifications(customer.id)
    message = next(n for n in items if n.data.get("event") == "dispute_message")
    assert message.message.endswith("...")
    assert len(message.message) == 103


@pytest.mark.asyncio
async def test_processor_dispute_is_idempotent(container, sandbox, people):
    customer, artisan, admin = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)

    first = await container.disputes.on_processor_dispute(payment.intent_id, "dp_1", "fraudulent")
    second = await container.disputes.on_processor_dispute(payment.intent_id, "dp_1", "fraudulent")

    assert first.id == second.id
    assert first.type == DisputeType.PAYMENT
    async with container.uow_factory(readonly=True) as uow:
        disputes = await uow.disputes.list_for_user(None)
    assert len(disputes) == 1
    items, _ = await container.notifications.list_notifications(admin.id)
    assert sum(1 for n in items if n.data.get("event") == "dispute_opened") == 1


@pytest.mark.asyncio
async def test_admin_lists_every_dispute(container, sandbox, people):
    customer, artisan, admin = people
    await _open(container, sandbox, people)
    assert len(await container.disputes.list_disputes(admin.id)) == 1
    assert len(await container.disputes.list_disputes(artisan.id, status=DisputeStatus.RESOLVED)) == 0
