import asyncio

import pytest

from conftest import FakeSocket, make_container
from domain.common.exceptions import AuthenticationException, NotAuthorizedException
from infrastructure.realtime.brokers import InMemoryRealtimeBroker


async def flush():
    for _ in range(5):
        await asyncio.sleep(0)


def _presence_events(ws: FakeSocket, user_id: int) -> list[str]:
    return [
        m["type"]
        for m in ws.sent
        if m["type"] in ("userOnline", "userOffline") and m["data"]["user_id"] == user_id
    ]


@pytest.mark.asyncio
async def test_online_and_offline_fire_on_first_and_last_connection(container, people):
    customer, artisan, _ = people
    rt = container.realtime
    watcher = FakeSocket()
    await rt.connect(artisan.id, watcher)

    phone, laptop = FakeSocket(), FakeSocket()
    await rt.connect(customer.id, phone)
    await rt.connect(customer.id, laptop)
    await flush()
    assert rt.is_online(customer.id)
    assert rt.online_users() == sorted([customer.id, artisan.id])
    assert _presence_events(watcher, customer.id) == ["userOnline"]
    assert phone.types()[0] == "welcome"

    await rt.disconnect(customer.id, phone)
    await flush()
    assert rt.is_online(customer.id)
    assert _presence_events(watcher, customer.id) == ["userOnline"]

    await rt.disconnect(customer.id, laptop)
    await flush()
    assert not rt.is_online(customer.id)
    assert _presence_events(watcher, customer.id) == ["userOnline", "userOffline"]


@pytest.mark.asyncio
async def test_presence_spans_processes(store, sandbox, people):
    customer, artisan, _ = people
    broker = InMemoryRealtimeBroker()
    node_a = await make_container(store, sandbox, broker=broker)
    node_b = await make_container(store, sandbox, broker=broker)
    try:
        watcher = FakeSocket()
        await node_b.realtime.connect(artisan.id, watcher)

        on_a, on_b = FakeSocket(), FakeSocket()
        await node_a.realtime.connect(customer.id, on_a)
        await node_b.realtime.connect(customer.id, on_b)
        await flush()
        assert node_b.realtime.is_online(customer.id)
        assert _presence_events(watcher, customer.id) == ["userOnline"]

        await node_a.realtime.disconnect(customer.id, on_a)
        await flush()
        assert node_b.realtime.is_online(customer.id)
        assert _presence_events(watcher, customer.id) == ["userOnline"]

        await node_b.realtime.disconnect(customer.id, on_b)
        await flush()
        assert not node_a.realtime.is_online(customer.id)
        assert _presence_events(watcher, customer.id) == ["userOnline", "userOffline"]
    finally:
        await node_a.aclose()
        await node_b.aclose()


@pytest.mark.asyncio
async def test_send_to_user_reaches_every_connection(container, people):
    customer, _, _ = people
    rt = container.realtime
    assert await rt.send_to_user(customer.id, "notification", {"id": 1}) is False

    one, two = FakeSocket(), FakeSocket()
    await rt.connect(customer.id, one)
    await rt.connect(customer.id, two)
    assert await rt.send_to_user(customer.id, "notification", {"id": 1}) is True
    await flush()
    assert "notification" in one.types() and "notification" in two.types()


@pytest.mark.asyncio
async def test_room_membership_is_authorized(container, people):
    customer, artisan, admin = people
    chat = await container.chats.start_chat(customer.id, artisan.id)
    rt = container.realtime
    ws = FakeSocket()
    await rt.connect(admin.id, ws)

    await rt.join_room(customer.id, customer.role, chat.room, FakeSocket())
    with pytest.raises(NotAuthorizedException):
        await rt.join_room(admin.id, admin.role, f"user:{customer.id}", ws)
    with pytest.raises(NotAuthorizedException):
        await rt.join_room(customer.id, customer.role, "admin", ws)
    await rt.join_room(admin.id, admin.role, "admin", ws)


@pytest.mark.asyncio
async def test_room_broadcast_skips_the_sender(container, people):
    customer, artisan, _ = people
    chat = await container.chats.start_chat(customer.id, artisan.id)
    rt = container.realtime
    mine, theirs = FakeSocket(), FakeSocket()
    await rt.connect(customer.id, mine)
    await rt.connect(artisan.id, theirs)
    await rt.join_room(customer.id, customer.role, chat.room, mine)
    await rt.join_room(artisan.id, artisan.role, chat.room, theirs)

    await container.chats.typing(chat.id, customer.id, True)
    await flush()

    assert "userTyping" in theirs.types()
    assert "userTyping" not in mine.types()


@pytest.mark.asyncio
async def test_authenticate_requires_active_user(container, people):
    customer, _, _ = people
    token = container.tokens.create_access_token(customer)
    claims = await container.realtime.authenticate(token)
    assert claims.user_id == customer.id

    with pytest.raises(AuthenticationException):
        await container.realtime.authenticate("not-a-token")
    with pytest.raises(AuthenticationException):
        await container.realtime.authenticate(None)

    async with container.uow_factory() as uow:
        user = await uow.users.get_by_id(customer.id)
        user.is_active = False
        await uow.users.update(user)
    with pytest.raises(AuthenticationException):
        await container.realtime.authenticate(token)
