import pytest

from domain.common.exceptions import (
    ConflictException,
    DomainValidationException,
    NotAuthorizedException,
)
from domain.chat.entity import MessageType
from domain.order.entity import OrderStatus


@pytest.mark.asyncio
async def test_booking_opens_a_chat_with_a_system_message(container, people):
    customer, artisan, _ = people

    order = await container.bookings.create_booking(customer.id, artisan.id, 15000, description="Bathroom tiles")

    assert order.status == OrderStatus.PENDING
    chats = await container.chats.list_chats(customer.id)
    assert len(chats) == 1 and chats[0].booking_id == order.id
    messages = await container.chats.list_messages(chats[0].id, customer.id)
    assert messages[0].type == MessageType.SYSTEM
    assert f"Booking #{order.id} has been created" in messages[0].content


@pytest.mark.asyncio
async def test_bookings_are_made_with_artisans_only(container, people):
    customer, _, admin = people
    with pytest.raises(DomainValidationException):
        await container.bookings.create_booking(customer.id, admin.id, 1000)


@pytest.mark.asyncio
async def test_status_flow_and_permissions(container, sandbox, people):
    customer, artisan, _ = people
    order = await container.bookings.create_booking(customer.id, artisan.id, 10000)

    with pytest.raises(NotAuthorizedException):
        await container.bookings.change_status(order.id, customer.id, "accept")
    with pytest.raises(ConflictException):
        await container.bookings.change_status(order.id, artisan.id, "complete")

    await container.bookings.change_status(order.id, artisan.id, "accept")
    intent = await container.payments.create_escrow_payment(order.id, "card", customer.id)
    await container.payments.on_charge_confirmed(intent.intent_id)
    await container.bookings.change_status(order.id, artisan.id, "start")
    done = await container.bookings.change_status(order.id, artisan.id, "complete")
    await container.bookings.approve_service(order.id, customer.id)

    assert done.status == OrderStatus.COMPLETED
    payment = await container.payments.get_payment(intent.payment_id, customer.id)
    assert payment.escrow.satisfied == ["service_completed", "customer_approved"]


@pytest.mark.asyncio
async def test_cancel_records_reason(container, people):
    customer, artisan, admin = people
    order = await container.bookings.create_booking(customer.id, artisan.id, 10000)

    cancelled = await container.bookings.change_status(order.id, customer.id, "cancel", reason="Found someone else")

    assert cancelled.cancellation_reason == "Found someone else"
    with pytest.raises(DomainValidationException):
        await container.bookings.change_status(order.id, customer.id, "teleport")
    with pytest.raises(NotAuthorizedException):
        await container.bookings.get_booking(order.id, 9999)
    assert (await container.bookings.get_booking(order.id, admin.id)).id == order.id
