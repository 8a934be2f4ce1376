from datetime import timedelta

import pytest

from conftest import paid_in_escrow, seed_order
from domain.common.exceptions import NotAuthorizedException, PaymentNotRefundableException
from domain.dispute.entity import DisputeType
from domain.order.entity import OrderStatus
from domain.payment.entity import PaymentStatus


async def _age_order(container, order_id, hours):
    async with container.uow_factory() as uow:
        order = await uow.orders.get_by_id(order_id)
        order.created_at = order.created_at - timedelta(hours=hours)
        await uow.orders.update(order)


@pytest.mark.asyncio
async def test_eligible_request_refunds_immediately(container, sandbox, people):
    customer, artisan, _ = people
    order, payment = await paid_in_escrow(container, sandbox, customer, artisan)

    result = await container.refunds.process_automatic_refund(order.id, "artisan_unavailable", customer.id)

    assert result.outcome == "refunded"
    assert result.payment.status == PaymentStatus.REFUNDED
    assert result.reasons == []


@pytest.mark.asyncio
async def test_late_request_goes_to_review(container, sandbox, people):
    customer, artisan, admin = people
    order, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    await _age_order(container, order.id, hours=30)

    result = await container.refunds.process_automatic_refund(order.id, "customer_request", customer.id)

    assert result.outcome == "under_review"
    assert any("24 hours" in r for r in result.reasons)
    booking = await container.bookings.get_booking(order.id, customer.id)
    assert booking.status == OrderStatus.REFUND_REVIEW
    items, _ = await container.notifications.list_notifications(admin.id)
    assert any(n.data.get("event") == "refund_review_requested" for n in items)


@pytest.mark.asyncio
async def test_unknown_reason_and_active_dispute_need_review(container, sandbox, people):
    customer, artisan, _ = people
    order, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    await container.disputes.initiate_dispute(order.id, customer.id, DisputeType.QUALITY, "Bad grout")

    result = await container.refunds.process_automatic_refund(order.id, "did_not_like_it", customer.id)

    assert result.outcome == "under_review"
    assert len(result.reasons) == 2


@pytest.mark.asyncio
async def test_second_refund_within_cooldown_needs_review(container, sandbox, people):
    customer, artisan, _ = people
    first, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    await container.refunds.process_automatic_refund(first.id, "system_error", customer.id)

    second, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    result = await container.refunds.process_automatic_refund(second.id, "system_error", customer.id)

    assert result.outcome == "under_review"
    assert any("30 days" in r for r in result.reasons)


@pytest.mark.asyncio
async def test_only_the_customer_may_ask(container, sandbox, people):
    customer, artisan, _ = people
    order, _ = await paid_in_escrow(container, sandbox, customer, artisan)
    with pytest.raises(NotAuthorizedException):
        await container.refunds.process_automatic_refund(order.id, "system_error", artisan.id)


@pytest.mark.asyncio
async def test_unpaid_booking_cannot_be_refunded(container, people):
    customer, artisan, _ = people
    order = await seed_order(container, customer.id, artisan.id)
    await container.payments.create_escrow_payment(order.id, "card", customer.id)
    with pytest.raises(PaymentNotRefundableException):
        await container.refunds.process_automatic_refund(order.id, "system_error", customer.id)
