"""Flows against the SQLAlchemy repositories on a file-backed SQLite database."""
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from conftest import RecordingMessenger, paid_in_escrow
from core.config import settings
from domain.common.clock import utc_now
from domain.common.exceptions import DuplicateReferenceException
from domain.payment.entity import PaymentStatus
from domain.user.entity import User, UserRole
from domain.wallet.entity import TransactionType, WalletTransaction
from infrastructure.container import build_container
from infrastructure.external.payments.sandbox import SandboxProcessor
from infrastructure.locks import InProcessLockProvider
from infrastructure.models import Base
from infrastructure.realtime.brokers import InMemoryRealtimeBroker
from infrastructure.unit_of_work import sqlalchemy_uow_factory


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def sandbox() -> SandboxProcessor:
    return SandboxProcessor(webhook_secret="whsec_test")


@pytest_asyncio.fixture
async def db_container(engine, sandbox):
    session_factory = async_sessionmaker(bind=engine, expire_on_commit=False)
    container = await build_container(
        settings,
        uow_factory=sqlalchemy_uow_factory(session_factory),
        processor=sandbox,
        locks=InProcessLockProvider(default_wait=2.0),
        broker=InMemoryRealtimeBroker(),
        messenger=RecordingMessenger(),
    )
    await container.start()
    yield container
    await container.aclose()


@pytest_asyncio.fixture
async def db_people(db_container):
    async with db_container.uow_factory() as uow:
        customer = await uow.users.create(User(id=None, email="cara@example.com", full_name="Cara"))
        artisan = await uow.users.create(
            User(
                id=None,
                email="arno@example.com",
                full_name="Arno",
                role=UserRole.ARTISAN,
                payout_account_id="acct_arno",
            )
        )
    return customer, artisan


@pytest.mark.asyncio
async def test_released_escrow_is_paid_out_once(db_container, sandbox, db_people):
    customer, artisan = db_people
    _, payment = await paid_in_escrow(db_container, sandbox, customer, artisan)
    released = await db_container.payments.release_escrow_payment(payment.id, customer.id)
    assert released.status == PaymentStatus.RELEASED

    later = utc_now() + timedelta(days=8)
    first = await db_container.payouts.run_payout_batch(now=later)
    second = await db_container.payouts.run_payout_batch(now=later)

    assert len(first.created) == 1 and first.paid == 1
    assert second.created == []
    async with db_container.uow_factory(readonly=True) as uow:
        stored = await uow.payments.get_by_id(payment.id)
        assert stored.payout_id == first.created[0].id
        assert await uow.payments.claim_for_payout([payment.id], first.created[0].id + 1) == 0
    assert (await db_container.ledger.get_wallet(artisan.id)).balance == 0
    assert len(sandbox.calls_for("create_payout")) == 1


@pytest.mark.asyncio
async def test_wallet_reference_is_unique_in_the_table(db_container, db_people):
    _, artisan = db_people
    await db_container.ledger.credit(artisan.id, 500, "payment:7")

    with pytest.raises(DuplicateReferenceException):
        await db_container.ledger.credit(artisan.id, 500, "payment:7")

    # the unique index holds even when the service-level check is skipped
    with pytest.raises(DuplicateReferenceException):
        async with db_container.uow_factory() as uow:
            await uow.wallets.add_transaction(
                WalletTransaction(user_id=artisan.id, type=TransactionType.CREDIT, amount=500, reference="payment:7")
            )
    assert (await db_container.ledger.get_wallet(artisan.id)).balance == 500
