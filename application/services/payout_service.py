"""
Payout engine - batches released escrow into artisan payouts.

A batch runs under the global ``job:payouts`` lock. Each (artisan, currency)
group is claimed with a conditional update so a payment lands in at most one
payout; a group that loses the claim race is skipped and retried next run.
"""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional

from application.dtos.payments import PayoutRequest, PayoutResult
from application.ports.locks import LockProvider
from application.ports.payment_processor import PaymentProcessor
from application.services.ledger_service import LedgerService
from application.services.notification_service import NotificationService
from application.services.payment_service import call_processor
from core.logging_config import get_logger
from domain.common.clock import utc_now
from domain.common.exceptions import (
    ConflictException,
    InsufficientFundsException,
    NotAuthorizedException,
    PayoutNotFoundException,
    ProcessorException,
    ProcessorTimeoutException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.payment.entity import Payment
from domain.payout.entity import Payout, PayoutStatus
from domain.payout.service import PayoutDomainService


logger = get_logger(__name__)

PAYOUT_JOB_LOCK = "job:payouts"


def payout_lock_key(payout_id: int) -> str:
    return f"payout:{payout_id}"


@dataclass
class BatchReport:
    created: list[Payout]
    skipped_groups: int = 0

    @property
    def paid(self) -> int:
        return sum(1 for p in self.created if p.status == PayoutStatus.PAID)

    @property
    def failed(self) -> int:
        return sum(1 for p in self.created if p.status == PayoutStatus.FAILED)


@dataclass(frozen=True)
class ReconciliationLine:
    artisan_id: int
    currency: str
    released_amount: int
    payment_count: int


class PayoutService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        processor: PaymentProcessor,
        locks: LockProvider,
        ledger: LedgerService,
        notifier: NotificationService,
        *,
        hold_days: int = 7,
        fee_rate: Decimal | float | str = "0.029",
        fee_fixed: int = 30,
        batch_limit: int = 1000,
        job_lock_timeout: float = 600.0,
        processor_timeout: float = 10.0,
        reconciliation_days: int = 7,
    ) -> None:
        self._uow_factory = uow_factory
        self.processor = processor
        self._locks = locks
        self._ledger = ledger
        self._notifier = notifier
        self._domain = PayoutDomainService(fee_rate, fee_fixed)
        self._hold = timedelta(days=hold_days)
        self._batch_limit = batch_limit
        self._job_lock_timeout = job_lock_timeout
        self._timeout = processor_timeout
        self._reconciliation_window = timedelta(days=reconciliation_days)

    # -------------------- batch --------------------

    async def run_payout_batch(self, now: Optional[datetime] = None) -> BatchReport:
        now = now or utc_now()
        cutoff = now - self._hold
        async with self._locks.hold(PAYOUT_JOB_LOCK, timeout=self._job_lock_timeout, wait=0):
            async with self._uow_factory(readonly=True) as uow:
                releasable = await uow.payments.list_releasable_for_payout(cutoff, limit=self._batch_limit)

            report = BatchReport(created=[])
            for (artisan_id, currency), payments in PayoutDomainService.group(releasable).items():
                try:
                    payout = await self._open_payout(artisan_id, currency, payments, now)
                except ConflictException as exc:
                    logger.warning("payout_group_skipped", artisan_id=artisan_id, currency=currency, reason=exc.message)
                    report.skipped_groups += 1
                    continue
                if payout.status == PayoutStatus.PROCESSING:
                    payout = await self._send(payout)
                report.created.append(payout)

        logger.info(
            "payout_batch_finished",
            cutoff=cutoff.isoformat(),
            candidates=len(releasable),
            created=len(report.created),
            paid=report.paid,
            failed=report.failed,
            skipped=report.skipped_groups,
        )
        return report

    async def _open_payout(self, artisan_id: int, currency: str, payments: list[Payment], now: datetime) -> Payout:
        """Claim the group's payments and reserve the amount from the wallet in one unit of work."""
        net = sum(p.payee_amount for p in payments)
        fee = self._domain.processing_fee(net)
        async with self._uow_factory() as uow:
            payout = await uow.payouts.create(
                Payout(
                    id=None,
                    artisan_id=artisan_id,
                    currency=currency,
                    net_amount=net,
                    processing_fee=fee,
                    gross_amount=net + fee,
                    period_start=min(p.escrow.released_at or now for p in payments),
                    period_end=now,
                    payment_ids=[p.id for p in payments],
                    status=PayoutStatus.PROCESSING,
                    created_at=now,
                )
            )
            claimed = await uow.payments.claim_for_payout(payout.payment_ids, payout.id)
            if claimed != len(payout.payment_ids):
                raise ConflictException(
                    "Payments were claimed by another payout",
                    details={"artisan_id": artisan_id, "claimed": claimed, "expected": len(payout.payment_ids)},
                )
            try:
                await self._ledger.withdraw(
                    artisan_id,
                    net,
                    reference=payout.wallet_reference,
                    bank_details={"payout_id": payout.id},
                    uow=uow,
                )
            except InsufficientFundsException as exc:
                payout.mark_failed(exc.message)
                await uow.payouts.update(payout)
                logger.warning("payout_wallet_short", payout_id=payout.id, artisan_id=artisan_id, amount=net, details=exc.details)

        logger.info("payout_opened", payout_id=payout.id, artisan_id=artisan_id, net=net, fee=fee, payments=len(payments))
        if payout.status == PayoutStatus.FAILED:
            await self._notify_failed(payout)
        return payout

    async def _send(self, payout: Payout) -> Payout:
        async with self._uow_factory(readonly=True) as uow:
            artisan = await uow.users.get_by_id(payout.artisan_id)
        destination = artisan.payout_account_id if artisan else None

        if not destination:
            return await self._finalise(payout.id, paid=False, reason="artisan has no payout account")

        request = PayoutRequest(
            amount=payout.net_amount,
            currency=payout.currency,
            destination=destination,
            idempotency_key=f"payout:{payout.id}",
            metadata={"payout_id": payout.id, "artisan_id": payout.artisan_id},
        )
        try:
            result: PayoutResult = await call_processor(
                self.processor, "create_payout", lambda: self.processor.create_payout(request), self._timeout
            )
        except ProcessorTimeoutException:
            # outcome unknown; the webhook settles it
            logger.warning("payout_outcome_unknown", payout_id=payout.id)
            return payout
        except ProcessorException as exc:
            return await self._finalise(payout.id, paid=False, reason=exc.message)

        async with self._locks.hold(payout_lock_key(payout.id)):
            async with self._uow_factory() as uow:
                payout = await uow.payouts.get_by_id(payout.id, for_update=True)
                payout.mark_processing(result.payout_id)
                await uow.payouts.update(payout)

        await self._notifier.notify_event(
            payout.artisan_id,
            "payout_initiated",
            payout_id=payout.id,
            amount=payout.net_amount,
            currency=payout.currency,
        )
        if result.status == "paid":
            return await self._finalise(payout.id, paid=True)
        if result.status == "failed":
            return await self._finalise(payout.id, paid=False, reason=result.failure_message or "processor rejected the payout")
        return payout

    async def _finalise(self, payout_id: int, *, paid: bool, reason: Optional[str] = None) -> Payout:
        async with self._locks.hold(payout_lock_key(payout_id)):
            async with self._uow_factory() as uow:
                payout = await uow.payouts.get_by_id(payout_id, for_update=True)
                if payout is None:
                    raise PayoutNotFoundException(payout_id)
                changed = payout.mark_paid() if paid else payout.mark_failed(reason)
                if changed:
                    await uow.payouts.update(payout)
                    if paid:
                        await self._ledger.confirm_withdrawal(payout.wallet_reference, uow=uow)
                    else:
                        await self._ledger.fail_withdrawal(payout.wallet_reference, reason, uow=uow)

        if not changed:
            return payout
        logger.info("payout_paid" if paid else "payout_failed", payout_id=payout_id, reason=reason)
        if not paid:
            await self._notify_failed(payout)
        return payout

    async def _notify_failed(self, payout: Payout) -> None:
        context = dict(
            payout_id=payout.id,
            amount=payout.net_amount,
            currency=payout.currency,
            reason=payout.failure_reason or "unknown",
        )
        await self._notifier.notify_event(payout.artisan_id, "payout_failed", **context)
        await self._notifier.notify_admins("payout_failed", **context)

    # -------------------- processor callbacks --------------------

    async def _payout_for(self, processor_payout_id: str) -> Optional[Payout]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payouts.get_by_processor_id(processor_payout_id)

    async def on_payout_paid(self, processor_payout_id: str) -> Optional[Payout]:
        payout = await self._payout_for(processor_payout_id)
        if payout is None:
            logger.warning("payout_paid_unknown", processor_payout_id=processor_payout_id)
            return None
        if payout.status == PayoutStatus.FAILED:
            logger.info("payout_paid_ignored", payout_id=payout.id, status=payout.status.value)
            return payout
        return await self._finalise(payout.id, paid=True)

    async def on_payout_failed(self, processor_payout_id: str, message: Optional[str]) -> Optional[Payout]:
        payout = await self._payout_for(processor_payout_id)
        if payout is None:
            logger.warning("payout_failed_unknown", processor_payout_id=processor_payout_id)
            return None
        if payout.status == PayoutStatus.PAID:
            logger.info("payout_failed_ignored", payout_id=payout.id, status=payout.status.value)
            return payout
        return await self._finalise(payout.id, paid=False, reason=message or "payout failed")

    # -------------------- queries --------------------

    async def list_payouts(self, artisan_id: int, skip: int = 0, limit: int = 50) -> list[Payout]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payouts.list_by_artisan(artisan_id, skip=skip, limit=limit)

    async def get_payout(self, payout_id: int, viewer_id: int) -> Payout:
        async with self._uow_factory(readonly=True) as uow:
            payout = await uow.payouts.get_by_id(payout_id)
            if payout is None:
                raise PayoutNotFoundException(payout_id)
            if payout.artisan_id != viewer_id:
                viewer = await uow.users.get_by_id(viewer_id)
                if not (viewer and viewer.is_admin):
                    raise NotAuthorizedException("Not your payout", details={"payout_id": payout_id})
        return payout

    async def reconcile(self, now: Optional[datetime] = None) -> list[ReconciliationLine]:
        """Released totals per artisan over the reconciliation window."""
        now = now or utc_now()
        start = now - self._reconciliation_window
        async with self._uow_factory(readonly=True) as uow:
            released = await uow.payments.list_released_between(start, now)

        totals: dict[tuple[int, str], list[int]] = defaultdict(lambda: [0, 0])
        for payment in released:
            bucket = totals[(payment.payee_id, payment.currency)]
            bucket[0] += payment.payee_amount
            bucket[1] += 1
        lines = [
            ReconciliationLine(artisan_id, currency, amount, count)
            for (artisan_id, currency), (amount, count) in sorted(totals.items())
        ]
        for line in lines:
            logger.info(
                "payout_reconciliation",
                artisan_id=line.artisan_id,
                currency=line.currency,
                released_amount=line.released_amount,
                payment_count=line.payment_count,
            )
        logger.info("payout_reconciliation_finished", start=start.isoformat(), end=now.isoformat(), artisans=len(lines))
        return lines
