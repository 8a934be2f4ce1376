from datetime import timedelta

import pytest

from conftest import paid_in_escrow
from domain.common.clock import utc_now
from domain.common.exceptions import NotAuthorizedException, ResourceBusyException
from domain.payout.entity import PayoutStatus
from domain.wallet.entity import TransactionStatus
from domain.payout.service import PayoutDomainService


def _after_hold():
    return utc_now() + timedelta(days=8)


async def _released(container, sandbox, people, count=1):
    customer, artisan, _ = people
    payments = []
    for _ in range(count):
        _, payment = await paid_in_escrow(container, sandbox, customer, artisan)
        payments.append(await container.payments.release_escrow_payment(payment.id, customer.id))
    return payments


def test_processing_fee_is_rate_plus_fixed():
    svc = PayoutDomainService("0.029", 30)
    assert svc.processing_fee(9500) == 276 + 30
    assert svc.processing_fee(0) == 0


@pytest.mark.asyncio
async def test_batch_pays_out_released_escrow_once(container, sandbox, people):
    _, artisan, _ = people
    payments = await _released(container, sandbox, people, count=2)

    report = await container.payouts.run_payout_batch(now=_after_hold())

    assert len(report.created) == 1 and report.paid == 1
    payout = report.created[0]
    assert payout.status == PayoutStatus.PAID
    assert payout.net_amount == 19000
    assert payout.gross_amount == payout.net_amount + payout.processing_fee
    assert sorted(payout.payment_ids) == sorted(p.id for p in payments)
    assert (await container.ledger.get_wallet(artisan.id)).balance == 0
    request = sandbox.calls_for("create_payout")[0]
    assert request.destination == "acct_arno" and request.amount == 19000

    again = await container.payouts.run_payout_batch(now=_after_hold())
    assert again.created == []
    assert len(sandbox.calls_for("create_payout")) == 1


@pytest.mark.asyncio
async def test_hold_period_is_respected(container, sandbox, people):
    await _released(container, sandbox, people)
    report = await container.payouts.run_payout_batch()
    assert report.created == []


@pytest.mark.asyncio
async def test_processor_rejection_returns_funds_to_wallet(container, sandbox, people):
    _, artisan, admin = people
    await _released(container, sandbox, people)
    sandbox.fail_next("create_payout", "account closed")

    report = await container.payouts.run_payout_batch(now=_after_hold())

    assert report.failed == 1
    payout = report.created[0]
    assert payout.failure_reason == "account closed"
    assert (await container.ledger.get_wallet(artisan.id)).balance == 9500
    async with container.uow_factory(readonly=True) as uow:
        tx = await uow.wallets.get_transaction(payout.wallet_reference)
    assert tx.status == TransactionStatus.FAILED
    items, _ = await container.notifications.list_notifications(admin.id)
    assert any(n.data.get("event") == "payout_failed" for n in items)


@pytest.mark.asyncio
async def test_short_wallet_fails_the_payout(container, sandbox, people):
    _, artisan, _ = people
    await _released(container, sandbox, people)
    await container.ledger.withdraw(artisan.id, 9000)

    report = await container.payouts.run_payout_batch(now=_after_hold())

    assert report.failed == 1
    assert sandbox.calls_for("create_payout") == []
    assert (await container.ledger.get_wallet(artisan.id)).balance == 500


@pytest.mark.asyncio
async def test_in_transit_payout_settles_by_webhook(container, sandbox, people):
    _, artisan, _ = people
    await _released(container, sandbox, people)
    sandbox.payout_status = "in_transit"

    report = await container.payouts.run_payout_batch(now=_after_hold())
    payout = report.created[0]
    assert payout.status == PayoutStatus.PROCESSING

    headers, body = sandbox.build_webhook("transfer.paid", payout_id=payout.processor_payout_id)
    await container.webhooks.ingest(headers, body)
    await container.webhooks.ingest(headers, body)

    settled = await container.payouts.get_payout(payout.id, artisan.id)
    assert settled.status == PayoutStatus.PAID
    async with container.uow_factory(readonly=True) as uow:
        tx = await uow.wallets.get_transaction(payout.wallet_reference)
    assert tx.status == TransactionStatus.COMPLETED


@pytest.mark.asyncio
async def test_batch_is_single_flight(container, sandbox, people):
    async with container.locks.hold("job:payouts", wait=0):
        with pytest.raises(ResourceBusyException):
            await container.payouts.run_payout_batch(now=_after_hold())


@pytest.mark.asyncio
async def test_payouts_are_private_to_the_artisan(container, sandbox, people):
    customer, artisan, admin = people
    await _released(container, sandbox, people)
    payout = (await container.payouts.run_payout_batch(now=_after_hold())).created[0]

    assert (await container.payouts.get_payout(payout.id, admin.id)).id == payout.id
    with pytest.raises(NotAuthorizedException):
        await container.payouts.get_payout(payout.id, customer.id)
    assert [p.id for p in await container.payouts.list_payouts(artisan.id)] == [payout.id]


@pytest.mark.asyncio
async def test_reconciliation_totals_released_amounts(container, sandbox, people):
    _, artisan, _ = people
    await _released(container, sandbox, people, count=2)

    lines = await container.payouts.reconcile(now=utc_now() + timedelta(minutes=1))

    assert len(lines) == 1
    assert lines[0].artisan_id == artisan.id
    assert lines[0].released_amount == 19000
    assert lines[0].payment_count == 2
