"""
Payment engine - escrow payment lifecycle.

    pending -> processing -> in_escrow -> released -> refunded
    pending/processing -> failed
    in_escrow -> refunded

Every transition on one payment runs under the ``payment:{id}`` lock plus a
row lock, inside one unit of work. Processor calls carry a bounded timeout;
a timed out call leaves the payment in its pre-call state. Notifications are
sent only after the unit of work commits.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from application.dtos.payments import (
    ChargeIntentRequest,
    CreateIntentResult,
    RefundRequest,
    TransferRequest,
)
from application.ports.locks import LockProvider
from application.ports.payment_processor import PaymentProcessor
from application.services.ledger_service import LedgerService
from application.services.notification_service import NotificationService
from core.logging_config import get_logger
from domain.common.clock import utc_now
from domain.common.exceptions import (
    EscrowHeldException,
    InsufficientFundsException,
    NotAuthorizedException,
    OrderNotFoundException,
    OrderNotPayableException,
    PaymentNotFoundException,
    PaymentNotInEscrowException,
    PaymentNotRefundableException,
    ProcessorTimeoutException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderPaymentStatus
from domain.payment.entity import (
    DEFAULT_ESCROW_CONDITIONS,
    Payment,
    PaymentStatus,
    RefundInfo,
    RefundStatus,
)
from domain.payment.service import PaymentDomainService
from domain.user.entity import User
from domain.wallet.entity import TransactionType


logger = get_logger(__name__)

T = TypeVar("T")


def payment_lock_key(payment_id: int) -> str:
    return f"payment:{payment_id}"


def order_lock_key(order_id: int) -> str:
    return f"order:{order_id}"


async def call_processor(processor: PaymentProcessor, operation: str, call: Callable[[], Awaitable[T]], timeout: float) -> T:
    """Await a processor call; a timeout leaves caller state untouched and raises ProcessorTimeoutException."""
    try:
        return await asyncio.wait_for(call(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("processor_timeout", provider=processor.provider, operation=operation, timeout=timeout)
        raise ProcessorTimeoutException(processor=processor.provider, operation=operation) from None


@dataclass
class RefundOutcome:
    payment: Payment
    amount: int
    reversal_amount: int
    reversal_pending: bool


class PaymentService:
    """Escrow payment use-cases; the processor is injected from the composition root."""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        processor: PaymentProcessor,
        locks: LockProvider,
        ledger: LedgerService,
        notifier: NotificationService,
        *,
        fee_rate: Decimal | float | str = "0.05",
        processor_timeout: float = 10.0,
        escrow_conditions: Sequence[str] = DEFAULT_ESCROW_CONDITIONS,
    ) -> None:
        self._uow_factory = uow_factory
        self.processor = processor
        self._locks = locks
        self._ledger = ledger
        self._notifier = notifier
        self._domain = PaymentDomainService(fee_rate)
        self._timeout = processor_timeout
        self._conditions = tuple(escrow_conditions)

    @property
    def locks(self) -> LockProvider:
        return self._locks

    # -------------------- helpers --------------------

    async def _call_processor(self, operation: str, call: Callable[[], Awaitable[T]]) -> T:
        return await call_processor(self.processor, operation, call, self._timeout)

    @staticmethod
    async def _load_payment(uow: AbstractUnitOfWork, payment_id: int, *, for_update: bool = True) -> Payment:
        payment = await uow.payments.get_by_id(payment_id, for_update=for_update)
        if payment is None:
            raise PaymentNotFoundException(str(payment_id))
        return payment

    @staticmethod
    async def _load_order(uow: AbstractUnitOfWork, order_id: int, *, for_update: bool = False) -> Order:
        order = await uow.orders.get_by_id(order_id, for_update=for_update)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def _payment_id_for_intent(self, intent_id: str) -> Optional[int]:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_intent_id(intent_id)
        return payment.id if payment else None

    async def _is_admin(self, uow: AbstractUnitOfWork, user_id: Optional[int]) -> bool:
        if user_id is None:
            return False
        user = await uow.users.get_by_id(user_id)
        return bool(user and user.is_admin)

    # -------------------- create --------------------

    async def create_escrow_payment(self, order_id: int, payment_method: str, actor_id: int) -> CreateIntentResult:
        async with self._locks.hold(order_lock_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_order(uow, order_id, for_update=True)
                if order.user_id != actor_id:
                    raise NotAuthorizedException("Only the customer can pay for this booking", details={"order_id": order_id})
                problem = order.payability_problem()
                if problem:
                    raise OrderNotPayableException(order_id, problem)
                payment = await uow.payments.get_by_order_id(order_id)
                if payment is None or payment.status != PaymentStatus.PENDING:
                    fee = self._domain.calculate_platform_fee(order.amount)
                    payment = await uow.payments.create(
                        Payment(
                            id=None,
                            order_id=order.id,
                            payer_id=order.user_id,
                            payee_id=order.artisan_id,
                            amount=order.amount,
                            platform_fee=fee,
                            currency=order.currency,
                            payment_method=payment_method,
                            created_at=utc_now(),
                        )
                    )
                payee: Optional[User] = await uow.users.get_by_id(order.artisan_id)
                payer: Optional[User] = await uow.users.get_by_id(order.user_id)

            request = ChargeIntentRequest(
                amount=payment.amount,
                currency=payment.currency,
                destination=payee.payout_account_id if payee else None,
                application_fee=payment.platform_fee,
                customer=payer.customer_account_id if payer else None,
                payment_method=payment_method,
                idempotency_key=f"intent:payment:{payment.id}",
                metadata={"payment_id": payment.id, "order_id": order_id, "payer_id": payment.payer_id, "payee_id": payment.payee_id},
            )
            logger.info("payment_intent_request", payment_id=payment.id, order_id=order_id, amount=payment.amount, fee=payment.platform_fee)
            intent = await self._call_processor("create_charge_intent", lambda: self.processor.create_charge_intent(request))

            async with self._locks.hold(payment_lock_key(payment.id)):
                async with self._uow_factory() as uow:
                    payment = await self._load_payment(uow, payment.id)
                    payment.mark_processing(intent.intent_id, intent.client_secret)
                    await uow.payments.update(payment)
                    order = await self._load_order(uow, order_id, for_update=True)
                    order.set_payment_status(OrderPaymentStatus.PROCESSING)
                    await uow.orders.update(order)

        logger.info("payment_intent_created", payment_id=payment.id, intent_id=intent.intent_id, provider=intent.provider)
        return CreateIntentResult(payment_id=payment.id, client_secret=intent.client_secret, intent_id=intent.intent_id)

    # -------------------- charge outcome --------------------

    async def on_charge_confirmed(self, intent_id: str) -> Optional[Payment]:
        payment_id = await self._payment_id_for_intent(intent_id)
        if payment_id is None:
            logger.warning("charge_confirmed_unknown_intent", intent_id=intent_id)
            return None
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                payment = await self._load_payment(uow, payment_id)
                if payment.status != PaymentStatus.PROCESSING:
                    logger.info("charge_confirmed_ignored", payment_id=payment_id, status=payment.status.value)
                    return payment
                payment.mark_in_escrow(self._conditions)
                await uow.payments.update(payment)
                order = await self._load_order(uow, payment.order_id, for_update=True)
                order.set_payment_status(OrderPaymentStatus.PAID)
                await uow.orders.update(order)

        logger.info("payment_in_escrow", payment_id=payment.id, amount=payment.amount)
        context = dict(payment_id=payment.id, order_id=payment.order_id, amount=payment.amount, currency=payment.currency)
        await self._notifier.notify_event(payment.payer_id, "payment_received", **context)
        await self._notifier.notify_event(payment.payee_id, "payment_received", **context)
        return payment

    async def on_charge_failed(self, intent_id: str, error_message: Optional[str]) -> Optional[Payment]:
        payment_id = await self._payment_id_for_intent(intent_id)
        if payment_id is None:
            logger.warning("charge_failed_unknown_intent", intent_id=intent_id)
            return None
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                payment = await self._load_payment(uow, payment_id)
                if payment.status not in (PaymentStatus.PENDING, PaymentStatus.PROCESSING):
                    logger.info("charge_failed_ignored", payment_id=payment_id, status=payment.status.value)
                    return payment
                payment.mark_failed(error_message or "charge failed")
                await uow.payments.update(payment)
                order = await self._load_order(uow, payment.order_id, for_update=True)
                order.set_payment_status(OrderPaymentStatus.FAILED)
                await uow.orders.update(order)

        logger.info("payment_failed", payment_id=payment.id, reason=payment.failure_reason)
        await self._notifier.notify_event(
            payment.payer_id,
            "payment_failed",
            payment_id=payment.id,
            order_id=payment.order_id,
            reason=payment.failure_reason,
        )
        return payment

    # -------------------- escrow conditions --------------------

    async def mark_condition_satisfied(self, payment_id: int, condition: str) -> Payment:
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                payment = await self._load_payment(uow, payment_id)
                if payment.satisfy_condition(condition):
                    await uow.payments.update(payment)
                    logger.info("escrow_condition_satisfied", payment_id=payment_id, condition=condition)
        return payment

    async def mark_order_condition(self, order_id: int, condition: str) -> Optional[Payment]:
        async with self._uow_factory(readonly=True) as uow:
            payment = await uow.payments.get_by_order_id(order_id)
        if payment is None or payment.status == PaymentStatus.FAILED:
            return None
        return await self.mark_condition_satisfied(payment.id, condition)

    # -------------------- release --------------------

    async def release_escrow_payment(self, payment_id: int, released_by: int) -> Payment:
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                payment = await self._load_payment(uow, payment_id)
                if released_by != payment.payer_id and not await self._is_admin(uow, released_by):
                    raise NotAuthorizedException("Only the customer or an admin can release escrow", details={"payment_id": payment_id})
                if payment.status != PaymentStatus.IN_ESCROW:
                    raise PaymentNotInEscrowException(payment_id, payment.status.value)
                dispute = await uow.disputes.get_active_for_payment(payment_id)
                if dispute is not None and dispute.holds_escrow:
                    raise EscrowHeldException(payment_id, dispute.id)
                await self.release_in_uow(uow, payment, payment.refundable_amount, released_by)

        await self.notify_released(payment)
        return payment

    async def release_in_uow(self, uow: AbstractUnitOfWork, payment: Payment, release_amount: int, released_by: Optional[int]) -> Payment:
        """Transfer ``release_amount`` of escrow to the payee. Caller holds the payment lock."""
        if payment.status != PaymentStatus.IN_ESCROW:
            raise PaymentNotInEscrowException(payment.id, payment.status.value)
        payee_amount = self._domain.payee_share_of_release(payment, release_amount)
        transfer_id = None
        if payee_amount > 0:
            payee = await uow.users.get_by_id(payment.payee_id)
            request = TransferRequest(
                amount=payee_amount,
                currency=payment.currency,
                destination=payee.payout_account_id if payee else None,
                source_intent_id=payment.intent_id,
                idempotency_key=f"transfer:payment:{payment.id}",
                metadata={"payment_id": payment.id, "order_id": payment.order_id},
            )
            transfer = await self._call_processor("create_transfer", lambda: self.processor.create_transfer(request))
            transfer_id = transfer.transfer_id

        payment.mark_released(
            transfer_id=transfer_id,
            released_by=released_by,
            released_amount=release_amount,
            payee_amount=payee_amount,
        )
        await uow.payments.update(payment)

        reference = f"payment:{payment.id}"
        if payee_amount > 0 and not await self._ledger.has_reference(reference, uow=uow):
            await self._ledger.credit(
                payment.payee_id,
                payee_amount,
                reference,
                related_order_id=payment.order_id,
                description=f"Escrow release for booking #{payment.order_id}",
                uow=uow,
            )

        order = await self._load_order(uow, payment.order_id, for_update=True)
        order.set_payment_status(OrderPaymentStatus.RELEASED)
        await uow.orders.update(order)
        logger.info(
            "payment_released",
            payment_id=payment.id,
            released_amount=release_amount,
            payee_amount=payee_amount,
            transfer_id=transfer_id,
        )
        return payment

    async def notify_released(self, payment: Payment) -> None:
        await self._notifier.notify_event(
            payment.payee_id,
            "escrow_released",
            payment_id=payment.id,
            order_id=payment.order_id,
            amount=payment.payee_amount,
            currency=payment.currency,
        )

    # -------------------- refund --------------------

    async def process_refund(
        self,
        payment_id: int,
        reason: str,
        amount: Optional[int] = None,
        *,
        actor_id: Optional[int] = None,
    ) -> Payment:
        """Refund to the payer; ``actor_id=None`` is a system call (auto-refund)."""
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                payment = await self._load_payment(uow, payment_id)
                if actor_id is not None and actor_id != payment.payee_id and not await self._is_admin(uow, actor_id):
                    raise NotAuthorizedException("Only the artisan or an admin can refund this payment", details={"payment_id": payment_id})
                outcome = await self.refund_in_uow(uow, payment, amount, reason)

        await self.notify_refunded(outcome)
        return outcome.payment

    async def refund_in_uow(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        amount: Optional[int],
        reason: str,
    ) -> RefundOutcome:
        """Refund inside the caller's unit of work. Caller holds the payment lock."""
        if payment.status not in (PaymentStatus.IN_ESCROW, PaymentStatus.RELEASED):
            raise PaymentNotRefundableException(payment.id, payment.status.value)
        refund_amount = self._domain.resolve_refund_amount(payment, amount)
        result = await self._issue_refund(payment, refund_amount, reason)

        reversal = 0
        reversal_pending = False
        status = RefundStatus.COMPLETED
        if payment.status == PaymentStatus.RELEASED:
            reversal = self._domain.payee_reversal_for_refund(payment, refund_amount)
            if reversal > 0:
                try:
                    await self._ledger.debit(
                        payment.payee_id,
                        reversal,
                        f"refund:{payment.id}",
                        description=f"Refund reversal for booking #{payment.order_id}",
                        kind=TransactionType.REFUND,
                        related_order_id=payment.order_id,
                        uow=uow,
                    )
                except InsufficientFundsException as exc:
                    logger.warning("refund_reversal_pending", payment_id=payment.id, reversal=reversal, details=exc.details)
                    reversal_pending = True
                    status = RefundStatus.PROCESSOR_APPROVED

        now = utc_now()
        payment.record_refund(
            RefundInfo(
                amount=refund_amount,
                reason=reason,
                status=status,
                refund_id=result.refund_id,
                reversal_amount=reversal,
                reversal_pending=reversal_pending,
                requested_at=now,
                processed_at=now,
            )
        )
        await uow.payments.update(payment)

        order = await self._load_order(uow, payment.order_id, for_update=True)
        order.mark_refunded()
        await uow.orders.update(order)
        logger.info(
            "payment_refunded",
            payment_id=payment.id,
            amount=refund_amount,
            reversal=reversal,
            reversal_pending=reversal_pending,
        )
        return RefundOutcome(payment, refund_amount, reversal, reversal_pending)

    async def refund_before_release_in_uow(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        refund_amount: int,
        reason: str,
    ) -> RefundOutcome:
        """Refund part of the escrow while keeping the rest held for release."""
        if payment.status != PaymentStatus.IN_ESCROW:
            raise PaymentNotInEscrowException(payment.id, payment.status.value)
        result = await self._issue_refund(payment, refund_amount, reason)
        now = utc_now()
        payment.record_partial_refund_before_release(
            RefundInfo(
                amount=refund_amount,
                reason=reason,
                refund_id=result.refund_id,
                requested_at=now,
                processed_at=now,
            )
        )
        await uow.payments.update(payment)
        logger.info("payment_partially_refunded", payment_id=payment.id, amount=refund_amount)
        return RefundOutcome(payment, refund_amount, 0, False)

    async def _issue_refund(self, payment: Payment, amount: int, reason: str):
        request = RefundRequest(
            intent_id=payment.intent_id or "",
            amount=amount,
            currency=payment.currency,
            reason=reason,
            idempotency_key=f"refund:payment:{payment.id}:{payment.refunded_amount}:{amount}",
            metadata={"payment_id": payment.id, "order_id": payment.order_id},
        )
        return await self._call_processor("create_refund", lambda: self.processor.create_refund(request))

    async def notify_refunded(self, outcome: RefundOutcome) -> None:
        payment = outcome.payment
        await self._notifier.notify_event(
            payment.payer_id,
            "refund_processed",
            payment_id=payment.id,
            order_id=payment.order_id,
            amount=outcome.amount,
            currency=payment.currency,
        )
        if outcome.reversal_pending:
            await self._notifier.notify_admins(
                "refund_reversal_pending",
                payment_id=payment.id,
                payee_id=payment.payee_id,
                amount=outcome.reversal_amount,
                currency=payment.currency,
            )

    # -------------------- queries --------------------

    async def get_payment(self, payment_id: int, viewer_id: int) -> Payment:
        async with self._uow_factory(readonly=True) as uow:
            payment = await self._load_payment(uow, payment_id, for_update=False)
            if viewer_id not in (payment.payer_id, payment.payee_id) and not await self._is_admin(uow, viewer_id):
                raise NotAuthorizedException("Not a party to this payment", details={"payment_id": payment_id})
        return payment

    async def list_payments(self, user_id: int, skip: int = 0, limit: int = 50, status: Optional[PaymentStatus] = None) -> list[Payment]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.payments.list_by_user(user_id, skip=skip, limit=limit, status=status)

