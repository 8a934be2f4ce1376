"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key")
# Run every test against the in-process store
os.environ.setdefault("DATABASE__URL", "memory://")

from typing import Optional

import pytest
import pytest_asyncio

from core.config import settings
from domain.common.clock import utc_now
from domain.order.entity import Order
from domain.user.entity import User, UserRole
from infrastructure.container import Container, build_container
from infrastructure.external.payments.sandbox import SandboxProcessor
from infrastructure.locks import InProcessLockProvider
from infrastructure.memory.store import MemoryStore, memory_uow_factory
from infrastructure.realtime.brokers import InMemoryRealtimeBroker


class FakeSocket:
    """Records what the server pushes to one client."""

    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.closed_with: Optional[int] = None

    async def send_json(self, data) -> None:
        self.sent.append(data)

    async def close(self, code: int = 1000) -> None:
        self.closed_with = code

    def types(self) -> list[str]:
        return [m.get("type") for m in self.sent]


class RecordingMessenger:
    def __init__(self) -> None:
        self.emails: list[tuple[str, str]] = []
        self.sms: list[tuple[str, str]] = []

    def enqueue_email(self, to, subject, body, *, metadata=None):
        self.emails.append((to, subject))
        return "task-email"

    def enqueue_sms(self, to, body, *, metadata=None):
        self.sms.append((to, body))
        return "task-sms"


async def make_container(store: MemoryStore, processor: SandboxProcessor, app_settings=None, **overrides) -> Container:
    container = await build_container(
        app_settings or settings,
        uow_factory=memory_uow_factory(store),
        processor=processor,
        locks=overrides.pop("locks", None) or InProcessLockProvider(default_wait=2.0),
        broker=overrides.pop("broker", None) or InMemoryRealtimeBroker(),
        store=store,
        **overrides,
    )
    await container.start()
    return container


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def sandbox() -> SandboxProcessor:
    return SandboxProcessor(webhook_secret="whsec_test")


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest_asyncio.fixture
async def container(store, sandbox, messenger):
    c = await make_container(store, sandbox, messenger=messenger)
    yield c
    await c.aclose()


@pytest_asyncio.fixture
async def people(container):
    """A customer, an artisan with a payout account and an admin."""
    async with container.uow_factory() as uow:
        customer = await uow.users.create(User(id=None, email="cara@example.com", full_name="Cara"))
        artisan = await uow.users.create(
            User(
                id=None,
                email="arno@example.com",
                full_name="Arno",
                role=UserRole.ARTISAN,
                payout_account_id="acct_arno",
                phone="+15550001",
                notify_sms=True,
            )
        )
        admin = await uow.users.create(User(id=None, email="ada@example.com", role=UserRole.ADMIN))
    return customer, artisan, admin


async def seed_order(container: Container, user_id: int, artisan_id: int, amount: int = 10000) -> Order:
    async with container.uow_factory() as uow:
        return await uow.orders.create(
            Order(id=None, user_id=user_id, artisan_id=artisan_id, amount=amount, created_at=utc_now())
        )


async def paid_in_escrow(container: Container, sandbox: SandboxProcessor, customer: User, artisan: User, amount: int = 10000):
    """Create an order, an intent and a confirmed charge; returns (order, payment)."""
    order = await seed_order(container, customer.id, artisan.id, amount)
    result = await container.payments.create_escrow_payment(order.id, "card", customer.id)
    payment = await container.payments.on_charge_confirmed(result.intent_id)
    return order, payment
