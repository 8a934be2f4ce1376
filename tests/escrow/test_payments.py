import asyncio

import pytest

from conftest import make_container, paid_in_escrow, seed_order
from core.config import settings
from domain.common.exceptions import (
    DomainValidationException,
    NotAuthorizedException,
    OrderNotPayableException,
    PaymentNotInEscrowException,
    ProcessorException,
    ProcessorTimeoutException,
)
from domain.order.entity import OrderPaymentStatus
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.service import PaymentDomainService


async def _order(container, order_id):
    async with container.uow_factory(readonly=True) as uow:
        return await uow.orders.get_by_id(order_id)


@pytest.mark.parametrize(
    "amount,fee",
    [(10000, 500), (10, 1), (1, 0), (2, 0), (30, 2), (9999, 500)],
)
def test_platform_fee_rounds_half_up_and_stays_below_amount(amount, fee):
    svc = PaymentDomainService("0.05")
    assert svc.calculate_platform_fee(amount) == fee
    assert svc.calculate_platform_fee(amount) < amount


def test_payment_rejects_fee_not_below_amount():
    with pytest.raises(DomainValidationException):
        Payment(
            id=None, order_id=1, payer_id=1, payee_id=2, amount=100, platform_fee=100, currency="USD", payment_method="card"
        )


@pytest.mark.asyncio
async def test_create_intent_moves_payment_to_processing(container, sandbox, people):
    customer, artisan, _ = people
    order = await seed_order(container, customer.id, artisan.id)

    result = await container.payments.create_escrow_payment(order.id, "card", customer.id)

    assert result.intent_id.startswith("pi_sbx_")
    payment = await container.payments.get_payment(result.payment_id, customer.id)
    assert payment.status == PaymentStatus.PROCESSING
    assert payment.platform_fee == 500
    assert (await _order(container, order.id)).payment_status == OrderPaymentStatus.PROCESSING
    request = sandbox.calls_for("create_charge_intent")[0]
    assert request.destination == "acct_arno"
    assert request.application_fee == 500


@pytest.mark.asyncio
async def test_only_the_customer_can_pay(container, people):
    customer, artisan, _ = people
    order = await seed_order(container, customer.id, artisan.id)
    with pytest.raises(NotAuthorizedException):
        await container.payments.create_escrow_payment(order.id, "card", artisan.id)


@pytest.mark.asyncio
async def test_paid_order_is_not_payable_again(container, sandbox, people):
    customer, artisan, _ = people
    order, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    with pytest.raises(OrderNotPayableException):
        await container.payments.create_escrow_payment(order.id, "card", customer.id)


@pytest.mark.asyncio
async def test_declined_intent_leaves_payment_pending(container, sandbox, people):
    customer, artisan, _ = people
    order = await seed_order(container, customer.id, artisan.id)
    sandbox.fail_next("create_charge_intent", "card declined")

    with pytest.raises(ProcessorException):
        await container.payments.create_escrow_payment(order.id, "card", customer.id)

    async with container.uow_factory(readonly=True) as uow:
        payment = await uow.payments.get_by_order_id(order.id)
    assert payment.status == PaymentStatus.PENDING
    # retrying reuses the pending payment
    result = await container.payments.create_escrow_payment(order.id, "card", customer.id)
    assert result.payment_id == payment.id


@pytest.mark.asyncio
async def test_confirm_then_release_credits_net_amount(container, sandbox, people):
    customer, artisan, _ = people
    order, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    assert payment.status == PaymentStatus.IN_ESCROW
    assert (await _order(container, order.id)).payment_status == OrderPaymentStatus.PAID

    released = await container.payments.release_escrow_payment(payment.id, customer.id)

    assert released.status == PaymentStatus.RELEASED
    assert released.payee_amount == 9500
    assert released.transfer_id
    assert (await container.ledger.get_wallet(artisan.id)).balance == 9500
    assert (await _order(container, order.id)).payment_status == OrderPaymentStatus.RELEASED
    assert await container.ledger.has_reference(f"payment:{payment.id}")


@pytest.mark.asyncio
async def test_artisan_cannot_release_own_escrow(container, sandbox, people):
    customer, artisan, admin = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    with pytest.raises(NotAuthorizedException):
        await container.payments.release_escrow_payment(payment.id, artisan.id)
    released = await container.payments.release_escrow_payment(payment.id, admin.id)
    assert released.escrow.released_by == admin.id


@pytest.mark.asyncio
async def test_concurrent_releases_credit_once(container, sandbox, people):
    customer, artisan, _ = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)

    results = await asyncio.gather(
        container.payments.release_escrow_payment(payment.id, customer.id),
        container.payments.release_escrow_payment(payment.id, customer.id),
        return_exceptions=True,
    )

    ok = [r for r in results if isinstance(r, Payment)]
    errors = [r for r in results if isinstance(r, Exception)]
    assert len(ok) == 1
    assert len(errors) == 1 and isinstance(errors[0], PaymentNotInEscrowException)
    assert (await container.ledger.get_wallet(artisan.id)).balance == 9500
    assert len(sandbox.calls_for("create_transfer")) == 1


@pytest.mark.asyncio
async def test_processor_timeout_leaves_escrow_untouched(store, sandbox, people):
    customer, artisan, _ = people
    quick = settings.model_copy(
        update={"escrow": settings.escrow.model_copy(update={"processor_timeout_seconds": 0.05})}
    )
    container = await make_container(store, sandbox, quick)
    try:
        _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
        sandbox.delays["create_transfer"] = 1.0

        with pytest.raises(ProcessorTimeoutException):
            await container.payments.release_escrow_payment(payment.id, customer.id)

        current = await container.payments.get_payment(payment.id, customer.id)
        assert current.status == PaymentStatus.IN_ESCROW
        assert (await container.ledger.get_wallet(artisan.id)).balance == 0
    finally:
        await container.aclose()


@pytest.mark.asyncio
async def test_charge_failure_marks_payment_failed(container, sandbox, people):
    customer, artisan, _ = people
    order = await seed_order(container, customer.id, artisan.id)
    result = await container.payments.create_escrow_payment(order.id, "card", customer.id)

    failed = await container.payments.on_charge_failed(result.intent_id, "insufficient funds")

    assert failed.status == PaymentStatus.FAILED
    assert failed.failure_reason == "insufficient funds"
    assert (await _order(container, order.id)).payment_status == OrderPaymentStatus.FAILED


@pytest.mark.asyncio
async def test_late_charge_failure_is_ignored_after_escrow(container, sandbox, people):
    customer, artisan, _ = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    after = await container.payments.on_charge_failed(payment.intent_id, "late")
    assert after.status == PaymentStatus.IN_ESCROW


@pytest.mark.asyncio
async def test_refund_from_escrow(container, sandbox, people):
    customer, artisan, _ = people
    order, payment = await paid_in_escrow(container, sandbox, customer, artisan)

    refunded = await container.payments.process_refund(payment.id, "no show", actor_id=artisan.id)

    assert refunded.status == PaymentStatus.REFUNDED
    assert refunded.refund.amount == 10000
    assert refunded.refund.reversal_amount == 0
    assert (await _order(container, order.id)).payment_status == OrderPaymentStatus.REFUNDED
    assert (await container.ledger.get_wallet(artisan.id)).balance == 0


@pytest.mark.asyncio
async def test_refund_after_release_reverses_payee_share(container, sandbox, people):
    customer, artisan, _ = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    await container.payments.release_escrow_payment(payment.id, customer.id)

    refunded = await container.payments.process_refund(payment.id, "quality", 5000, actor_id=artisan.id)

    assert refunded.refund.reversal_amount == 4750
    assert not refunded.refund.reversal_pending
    assert (await container.ledger.get_wallet(artisan.id)).balance == 4750


@pytest.mark.asyncio
async def test_uncoverable_reversal_is_flagged_for_admins(container, sandbox, people):
    customer, artisan, admin = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    await container.payments.release_escrow_payment(payment.id, customer.id)
    await container.ledger.withdraw(artisan.id, 9000)

    refunded = await container.payments.process_refund(payment.id, "quality", actor_id=admin.id)

    assert refunded.status == PaymentStatus.REFUNDED
    assert refunded.refund.reversal_pending
    assert (await container.ledger.get_wallet(artisan.id)).balance == 500
    items, _ = await container.notifications.list_notifications(admin.id)
    assert any(n.data.get("event") == "refund_reversal_pending" for n in items)


@pytest.mark.asyncio
async def test_customer_cannot_refund_directly(container, sandbox, people):
    customer, artisan, _ = people
    _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    with pytest.raises(NotAuthorizedException):
        await container.payments.process_refund(payment.id, "changed mind", actor_id=customer.id)


@pytest.mark.asyncio
async def test_escrow_conditions_are_recorded_once(container, sandbox, people):
    customer, artisan, _ = people
    order, payment = await paid_in_escrow(container, sandbox, customer, artisan)
    await container.payments.mark_order_condition(order.id, "service_completed")
    updated = await container.payments.mark_order_condition(order.id, "service_completed")
    assert updated.escrow.satisfied == ["service_completed"]
