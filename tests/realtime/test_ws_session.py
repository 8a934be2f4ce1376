import asyncio

import pytest

from api.routes.ws import ClientSession
from application.services.token_service import TokenClaims
from conftest import FakeSocket


async def flush():
    for _ in range(5):
        await asyncio.sleep(0)


async def _session(container, user):
    ws = FakeSocket()
    await container.realtime.connect(user.id, ws)
    claims = TokenClaims(user_id=user.id, role=user.role, jti="t")
    return ClientSession(ws, claims, container.realtime, container.chats), ws


def _errors(ws: FakeSocket) -> list[dict]:
    return [m["data"] for m in ws.sent if m["type"] == "error"]


@pytest.mark.asyncio
async def test_bad_message_type_is_an_error_reply(container, people):
    customer, artisan, _ = people
    chat = await container.chats.start_chat(customer.id, artisan.id)
    session, ws = await _session(container, customer)

    await session.handle(
        {"type": "sendMessage", "chat_id": chat.id, "content": "hi", "message_type": "bogus"}
    )
    await session.handle({"type": "sendMessage", "chat_id": chat.id, "content": "hi", "message_type": "system"})
    await flush()

    errors = _errors(ws)
    assert [e["event"] for e in errors] == ["sendMessage", "sendMessage"]
    assert errors[0]["message"] == "Unsupported message_type: bogus"
    assert await container.chats.list_messages(chat.id, customer.id) == []


@pytest.mark.asyncio
async def test_non_numeric_reply_to_is_an_error_reply(container, people):
    customer, artisan, _ = people
    chat = await container.chats.start_chat(customer.id, artisan.id)
    session, ws = await _session(container, customer)

    await session.handle({"type": "sendMessage", "chat_id": chat.id, "content": "hi", "reply_to_id": "abc"})
    await session.handle({"type": "sendMessage", "chat_id": chat.id, "content": "still here"})
    await flush()

    assert _errors(ws)[0]["message"] == "reply_to_id must be an integer"
    assert [m.content for m in await container.chats.list_messages(chat.id, customer.id)] == ["still here"]


@pytest.mark.asyncio
async def test_room_member_gets_one_copy_of_each_message(container, people):
    customer, artisan, _ = people
    chat = await container.chats.start_chat(customer.id, artisan.id)
    sender, sender_ws = await _session(container, customer)
    receiver, receiver_ws = await _session(container, artisan)
    other_tab = FakeSocket()
    await container.realtime.connect(artisan.id, other_tab)

    await sender.handle({"type": "join", "room": chat.room})
    await receiver.handle({"type": "join", "room": chat.room})
    await sender.handle({"type": "sendMessage", "chat_id": chat.id, "content": "on my way"})
    await flush()

    assert receiver_ws.types().count("newMessage") == 1
    assert other_tab.types().count("newMessage") == 1
    assert "newMessage" not in sender_ws.types()
    assert all("skip_room" not in m for m in receiver_ws.sent)
