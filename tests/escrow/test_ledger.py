import asyncio

import pytest

from domain.common.exceptions import (
    ConflictException,
    DuplicateReferenceException,
    InsufficientFundsException,
)
from domain.wallet.entity import TransactionStatus, TransactionType, signed_sum


async def _log(container, user_id):
    async with container.uow_factory(readonly=True) as uow:
        return await uow.wallets.all_transactions(user_id)


@pytest.mark.asyncio
async def test_balance_matches_signed_sum_of_log(container, people):
    _, artisan, _ = people
    ledger = container.ledger
    await ledger.credit(artisan.id, 9500, "payment:1")
    await ledger.credit(artisan.id, 2000, "payment:2")
    await ledger.debit(artisan.id, 700, "refund:1", kind=TransactionType.REFUND)
    await ledger.withdraw(artisan.id, 3000)

    wallet = await ledger.get_wallet(artisan.id)
    assert wallet.balance == 9500 + 2000 - 700 - 3000
    assert signed_sum(await _log(container, artisan.id)) == wallet.balance


@pytest.mark.asyncio
async def test_overdraw_is_rejected_and_balance_unchanged(container, people):
    _, artisan, _ = people
    ledger = container.ledger
    await ledger.credit(artisan.id, 1000, "payment:1")

    with pytest.raises(InsufficientFundsException):
        await ledger.withdraw(artisan.id, 1001)
    with pytest.raises(InsufficientFundsException):
        await ledger.debit(artisan.id, 5000, "refund:9")

    wallet = await ledger.get_wallet(artisan.id)
    assert wallet.balance == 1000
    assert len(await _log(container, artisan.id)) == 1


@pytest.mark.asyncio
async def test_reference_is_unique(container, people):
    _, artisan, _ = people
    await container.ledger.credit(artisan.id, 500, "payment:7")
    with pytest.raises(DuplicateReferenceException):
        await container.ledger.credit(artisan.id, 500, "payment:7")
    assert (await container.ledger.get_wallet(artisan.id)).balance == 500


@pytest.mark.asyncio
async def test_concurrent_withdrawals_never_overdraw(container, people):
    _, artisan, _ = people
    await container.ledger.credit(artisan.id, 1000, "payment:1")

    results = await asyncio.gather(
        *(container.ledger.withdraw(artisan.id, 400) for _ in range(3)),
        return_exceptions=True,
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1 and isinstance(failures[0], InsufficientFundsException)
    assert (await container.ledger.get_wallet(artisan.id)).balance == 200


@pytest.mark.asyncio
async def test_failed_withdrawal_restores_balance(container, people):
    _, artisan, _ = people
    ledger = container.ledger
    await ledger.credit(artisan.id, 1000, "payment:1")
    tx = await ledger.withdraw(artisan.id, 600, reference="payout:1")
    assert tx.status == TransactionStatus.PENDING

    failed = await ledger.fail_withdrawal("payout:1", "bank rejected")
    assert failed.status == TransactionStatus.FAILED
    assert (await ledger.get_wallet(artisan.id)).balance == 1000
    # second failure is a no-op, confirming a failed withdrawal is not allowed
    await ledger.fail_withdrawal("payout:1")
    assert (await ledger.get_wallet(artisan.id)).balance == 1000
    with pytest.raises(ConflictException):
        await ledger.confirm_withdrawal("payout:1")
    assert signed_sum(await _log(container, artisan.id)) == 1000


@pytest.mark.asyncio
async def test_withdrawal_references_are_sequential(container, people):
    _, artisan, _ = people
    await container.ledger.credit(artisan.id, 1000, "payment:1")
    first = await container.ledger.withdraw(artisan.id, 100)
    second = await container.ledger.withdraw(artisan.id, 100)
    assert first.reference == f"withdrawal:{artisan.id}:1"
    assert second.reference == f"withdrawal:{artisan.id}:2"

    page = await container.ledger.list_transactions(artisan.id, limit=2)
    assert [tx.reference for tx in page] == [second.reference, first.reference]
