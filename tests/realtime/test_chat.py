import asyncio
from datetime import timedelta

import pytest

from conftest import FakeSocket
from domain.chat.entity import MessageStatus, MessageType
from domain.common.clock import utc_now
from domain.common.exceptions import (
    DomainValidationException,
    MessageTooOldToEditException,
    NotAuthorizedException,
)


async def flush():
    for _ in range(5):
        await asyncio.sleep(0)


async def _stored(container, message_id):
    async with container.uow_factory(readonly=True) as uow:
        return await uow.messages.get_by_id(message_id)


@pytest.fixture
def chat_users(people):
    customer, artisan, _ = people
    return customer, artisan


@pytest.mark.asyncio
async def test_start_chat_returns_existing_conversation(container, chat_users):
    customer, artisan = chat_users
    first = await container.chats.start_chat(customer.id, artisan.id, booking_id=None)
    again = await container.chats.start_chat(customer.id, artisan.id, booking_id=None)
    assert first.id == again.id
    assert [c.id for c in await container.chats.list_chats(artisan.id)] == [first.id]


@pytest.mark.asyncio
async def test_content_is_encrypted_at_rest(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)

    sent = await container.chats.send_message(chat.id, customer.id, "Gate code is 4421")

    assert sent.content == "Gate code is 4421"
    stored = await _stored(container, sent.id)
    assert stored.encrypted
    assert "4421" not in stored.content
    listed = await container.chats.list_messages(chat.id, artisan.id)
    assert [m.content for m in listed] == ["Gate code is 4421"]


@pytest.mark.asyncio
async def test_outsiders_cannot_post(container, people):
    customer, artisan, admin = people
    chat = await container.chats.start_chat(customer.id, artisan.id)
    with pytest.raises(NotAuthorizedException):
        await container.chats.send_message(chat.id, admin.id, "hello")
    with pytest.raises(DomainValidationException):
        await container.chats.send_message(chat.id, customer.id, "   ")


@pytest.mark.asyncio
async def test_receipts_only_move_forward(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    sent = await container.chats.send_message(chat.id, customer.id, "On my way?")

    read = await container.chats.mark_read(chat.id, sent.id, artisan.id)
    assert read.status == MessageStatus.READ
    delivered = await container.chats.mark_delivered(chat.id, sent.id, artisan.id)
    assert delivered.status == MessageStatus.READ

    stored = await _stored(container, sent.id)
    assert [r.user_id for r in stored.delivered_to] == [artisan.id]
    assert [r.user_id for r in stored.read_by] == [artisan.id]
    # the sender's own receipt is not recorded
    await container.chats.mark_read(chat.id, sent.id, customer.id)
    assert len((await _stored(container, sent.id)).read_by) == 1


@pytest.mark.asyncio
async def test_read_receipt_is_pushed_to_the_sender(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    ws = FakeSocket()
    await container.realtime.connect(customer.id, ws)
    sent = await container.chats.send_message(chat.id, customer.id, "Ping")

    await container.chats.mark_read(chat.id, sent.id, artisan.id)
    await flush()

    status = [m for m in ws.sent if m["type"] == "messageStatus"]
    assert status and status[-1]["data"]["status"] == "read"


@pytest.mark.asyncio
async def test_unread_count_and_mark_all_read(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    for text in ("one", "two", "three"):
        await container.chats.send_message(chat.id, customer.id, text)

    assert await container.chats.unread_count(chat.id, artisan.id) == 3
    assert await container.chats.mark_all_read(chat.id, artisan.id) == 3
    assert await container.chats.unread_count(chat.id, artisan.id) == 0
    assert await container.chats.unread_count(chat.id, customer.id) == 0


@pytest.mark.asyncio
async def test_edit_keeps_history_within_window(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    sent = await container.chats.send_message(chat.id, customer.id, "See you at 9")

    edited = await container.chats.edit_message(chat.id, sent.id, customer.id, "See you at 10")

    assert edited.content == "See you at 10"
    assert edited.edited
    assert [e.content for e in edited.edit_history] == ["See you at 9"]
    with pytest.raises(NotAuthorizedException):
        await container.chats.edit_message(chat.id, sent.id, artisan.id, "nope")


@pytest.mark.asyncio
async def test_edit_window_closes(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    sent = await container.chats.send_message(chat.id, customer.id, "Old news")
    async with container.uow_factory() as uow:
        message = await uow.messages.get_by_id(sent.id)
        message.created_at = utc_now() - timedelta(minutes=16)
        await uow.messages.update(message)

    with pytest.raises(MessageTooOldToEditException):
        await container.chats.edit_message(chat.id, sent.id, customer.id, "Fresh news")


@pytest.mark.asyncio
async def test_offline_recipient_gets_a_notification(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)

    await container.chats.send_message(chat.id, customer.id, "x" * 150)

    items, unread = await container.notifications.list_notifications(artisan.id)
    note = next(n for n in items if n.data.get("event") == "new_message")
    assert note.message == "x" * 100 + "..."
    assert unread >= 1


@pytest.mark.asyncio
async def test_online_recipient_gets_a_push_instead(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    ws = FakeSocket()
    await container.realtime.connect(artisan.id, ws)

    await container.chats.send_message(chat.id, customer.id, "Are you close?")
    await flush()

    assert "newMessage" in ws.types()
    items, _ = await container.notifications.list_notifications(artisan.id)
    assert not any(n.data.get("event") == "new_message" for n in items)


@pytest.mark.asyncio
async def test_system_and_quick_replies(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)

    system = await container.chats.send_system_message(chat.id, "booking.accepted", booking_id=7)
    quick = await container.chats.send_quick_reply(chat.id, artisan.id, 0)

    assert system.sender_id == 0
    assert system.type == MessageType.SYSTEM
    assert system.content == "Booking #7 has been accepted. Your service is confirmed."
    assert system.metadata["action"] == "booking_accepted"
    assert quick.content == "I will be there soon."
    assert quick.type == MessageType.QUICK_REPLY
    with pytest.raises(DomainValidationException):
        await container.chats.send_quick_reply(chat.id, customer.id, 99)


@pytest.mark.asyncio
async def test_reactions_replace_and_remove(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    sent = await container.chats.send_message(chat.id, customer.id, "Done!")

    await container.chats.react_to_message(chat.id, sent.id, artisan.id, "👍")
    reacted = await container.chats.react_to_message(chat.id, sent.id, artisan.id, "🎉")
    assert [(r.user_id, r.emoji) for r in reacted.reactions] == [(artisan.id, "🎉")]

    cleared = await container.chats.remove_reaction(chat.id, sent.id, artisan.id)
    assert cleared.reactions == []


@pytest.mark.asyncio
async def test_expired_messages_are_hidden_and_purged(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    async with container.uow_factory() as uow:
        stored_chat = await uow.chats.get_by_id(chat.id)
        stored_chat.settings.message_expiration.enabled = True
        stored_chat.settings.message_expiration.duration_hours = 1
        await uow.chats.update(stored_chat)

    sent = await container.chats.send_message(chat.id, customer.id, "Self destructing")
    assert sent.expires_at is not None

    later = utc_now() + timedelta(hours=2)
    assert await container.chats.purge_expired_messages(now=later) == 1
    assert await container.chats.list_messages(chat.id, customer.id) == []


@pytest.mark.asyncio
async def test_history_pages_backwards(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    ids = [(await container.chats.send_message(chat.id, customer.id, f"m{i}")).id for i in range(5)]

    newest = await container.chats.list_messages(chat.id, artisan.id, limit=2)
    older = await container.chats.list_messages(chat.id, artisan.id, before_id=newest[-1].id, limit=2)

    assert [m.id for m in newest] == [ids[4], ids[3]]
    assert [m.id for m in older] == [ids[2], ids[1]]


class BrokenRealtime:
    def is_online(self, user_id):
        return True

    async def send_to_user(self, user_id, event, data, *, skip_room=None):
        raise ConnectionError("broker down")

    async def broadcast_to_room(self, room, event, data, *, sender_id=None):
        raise ConnectionError("broker down")


@pytest.mark.asyncio
async def test_realtime_failures_do_not_fail_the_send(container, chat_users):
    customer, artisan = chat_users
    chat = await container.chats.start_chat(customer.id, artisan.id)
    container.chats.bind_realtime(BrokenRealtime())

    sent = await container.chats.send_message(chat.id, customer.id, "hello")

    assert sent.content == "hello"
    assert [m.id for m in await container.chats.list_messages(chat.id, artisan.id)] == [sent.id]
