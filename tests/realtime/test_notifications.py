import asyncio
from datetime import timedelta

import pytest

from application.dtos.notifications import NotificationPayload
from conftest import FakeSocket
from domain.common.clock import utc_now
from domain.common.exceptions import NotificationNotFoundException
from domain.notification.entity import NotificationPriority, NotificationType, RelatedKind


@pytest.mark.asyncio
async def test_event_is_rendered_and_persisted(container, people):
    customer, _, _ = people
    note = await container.notifications.notify_event(
        customer.id, "payment_received", payment_id=3, order_id=9, amount=12345, currency="USD"
    )

    assert note.type == NotificationType.PAYMENT
    assert note.message == "Payment of 123.45 USD for booking #9 is held in escrow."
    assert note.related.kind == RelatedKind.PAYMENT
    assert note.action_url == "/payments/3"
    assert note.expires_at - note.created_at == timedelta(days=30)


@pytest.mark.asyncio
async def test_unknown_event_is_dropped(container, people):
    customer, _, _ = people
    assert await container.notifications.notify_event(customer.id, "no_such_event") is None


@pytest.mark.asyncio
async def test_online_recipient_gets_a_push(container, people):
    customer, _, _ = people
    ws = FakeSocket()
    await container.realtime.connect(customer.id, ws)

    await container.notifications.send_notification(
        customer.id,
        NotificationType.SYSTEM,
        NotificationPayload(title="Heads up", message="Maintenance tonight", priority=NotificationPriority.LOW),
    )
    for _ in range(5):
        await asyncio.sleep(0)

    pushed = [m for m in ws.sent if m["type"] == "notification"]
    assert pushed[0]["data"]["title"] == "Heads up"


@pytest.mark.asyncio
async def test_channels_fan_out_through_the_messenger(container, messenger, people):
    customer, artisan, _ = people
    await container.notifications.notify_event(customer.id, "payment_received", payment_id=1, order_id=1, amount=100)
    await container.notifications.notify_event(
        artisan.id, "booking_update", order_id=1, status="accepted", channels=["sms"]
    )

    assert messenger.emails == [("cara@example.com", "Payment received")]
    assert messenger.sms and messenger.sms[0][0] == "+15550001"


@pytest.mark.asyncio
async def test_read_state_is_per_recipient(container, people):
    customer, artisan, _ = people
    svc = container.notifications
    first = await svc.notify_event(customer.id, "booking_update", order_id=1, status="accepted")
    second = await svc.notify_event(customer.id, "booking_update", order_id=1, status="in_progress")

    with pytest.raises(NotificationNotFoundException):
        await svc.mark_read(artisan.id, first.id)
    read = await svc.mark_read(customer.id, first.id)
    assert read.read and read.read_at is not None

    _, unread = await svc.list_notifications(customer.id)
    assert unread == 1
    assert await svc.mark_many_read(customer.id, [second.id]) == 1
    assert await svc.mark_all_read(customer.id) == 0
    items, unread = await svc.list_notifications(customer.id, unread_only=True)
    assert items == [] and unread == 0


@pytest.mark.asyncio
async def test_delete_and_clear(container, people):
    customer, artisan, _ = people
    svc = container.notifications
    note = await svc.notify_event(customer.id, "booking_update", order_id=1, status="accepted")
    other = await svc.notify_event(customer.id, "booking_update", order_id=2, status="accepted")

    assert await svc.delete_notification(artisan.id, note.id) is False
    assert await svc.delete_notification(customer.id, note.id) is True

    await svc.mark_read(customer.id, other.id)
    assert await svc.clear_older_than(customer.id, days=0) == 1
    items, _ = await svc.list_notifications(customer.id)
    assert items == []


@pytest.mark.asyncio
async def test_expired_notifications_are_purged(container, people):
    customer, _, _ = people
    await container.notifications.notify_event(customer.id, "booking_update", order_id=1, status="accepted")
    assert await container.notifications.purge_expired(now=utc_now() + timedelta(days=31)) == 1


@pytest.mark.asyncio
async def test_admins_are_all_notified(container, people):
    _, _, admin = people
    sent = await container.notifications.notify_admins("payout_failed", payout_id=1, amount=500, reason="closed")
    assert sent == 1
    items, _ = await container.notifications.list_notifications(admin.id)
    assert items[0].message == "Payout #1 of 5.00 USD failed: closed"


@pytest.mark.asyncio
async def test_admin_lookup_failure_is_swallowed(container, people, monkeypatch):
    def unavailable(*args, **kwargs):
        raise ConnectionError("database unavailable")

    monkeypatch.setattr(container.notifications, "_uow_factory", unavailable)
    assert await container.notifications.notify_admins("payout_failed", payout_id=1, amount=500, reason="closed") == 0
