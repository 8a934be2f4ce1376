"""
Automatic refund path for customers.

Eligible requests go straight through the payment engine's refund; anything
else parks the booking in ``refund_review`` for an admin.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Iterable

from application.dtos.payments import AutoRefundResult, PaymentView
from application.services.notification_service import NotificationService
from application.services.payment_service import PaymentService, order_lock_key
from core.logging_config import get_logger
from domain.common.clock import utc_now
from domain.common.exceptions import (
    NotAuthorizedException,
    OrderNotFoundException,
    PaymentNotFoundException,
    PaymentNotRefundableException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order
from domain.payment.entity import Payment, PaymentStatus, RefundStatus


logger = get_logger(__name__)


class RefundService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        notifier: NotificationService,
        *,
        window_hours: int = 24,
        cooldown_days: int = 30,
        reasons: Iterable[str] = ("service_not_started", "artisan_unavailable", "customer_request", "system_error"),
    ) -> None:
        self._uow_factory = uow_factory
        self._payments = payments
        self._notifier = notifier
        self._window = timedelta(hours=window_hours)
        self._cooldown = timedelta(days=cooldown_days)
        self._reasons = frozenset(reasons)

    async def check_eligibility(self, order: Order, payment: Payment, reason: str, now: datetime) -> list[str]:
        """Reasons the refund cannot be automatic; empty when eligible."""
        problems: list[str] = []
        if order.created_at is None or now - order.created_at > self._window:
            problems.append(f"requested more than {int(self._window.total_seconds() // 3600)} hours after booking")
        if reason not in self._reasons:
            problems.append(f"reason '{reason}' needs manual review")
        async with self._uow_factory(readonly=True) as uow:
            if await uow.disputes.get_active_for_payment(payment.id) is not None:
                problems.append("payment has an active dispute")
            history = await uow.payments.list_by_user(payment.payer_id, limit=1000, status=PaymentStatus.REFUNDED)
        since = now - self._cooldown
        for previous in history:
            refund = previous.refund
            if (
                previous.id != payment.id
                and previous.payer_id == payment.payer_id
                and refund is not None
                and refund.status == RefundStatus.COMPLETED
                and refund.processed_at is not None
                and refund.processed_at >= since
            ):
                problems.append(f"a refund was already issued in the last {self._cooldown.days} days")
                break
        return problems

    async def process_automatic_refund(self, order_id: int, reason: str, actor_id: int) -> AutoRefundResult:
        now = utc_now()
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            if order.user_id != actor_id:
                raise NotAuthorizedException("Only the customer can request a refund", details={"order_id": order_id})
            payment = await uow.payments.get_by_order_id(order_id)
        if payment is None:
            raise PaymentNotFoundException(f"order {order_id}")
        if payment.status not in (PaymentStatus.IN_ESCROW, PaymentStatus.RELEASED):
            raise PaymentNotRefundableException(payment.id, payment.status.value)

        problems = await self.check_eligibility(order, payment, reason, now)
        if not problems:
            payment = await self._payments.process_refund(payment.id, f"auto:{reason}")
            logger.info("auto_refund_processed", order_id=order_id, payment_id=payment.id, reason=reason)
            return AutoRefundResult(order_id=order_id, outcome="refunded", payment=PaymentView.model_validate(payment))

        async with self._payments.locks.hold(order_lock_key(order_id)):
            async with self._uow_factory() as uow:
                order = await uow.orders.get_by_id(order_id, for_update=True)
                order.mark_refund_review(reason)
                await uow.orders.update(order)

        logger.info("auto_refund_review", order_id=order_id, payment_id=payment.id, reasons=problems)
        await self._notifier.notify_event(actor_id, "refund_under_review", order_id=order_id)
        await self._notifier.notify_admins("refund_review_requested", order_id=order_id, reasons="; ".join(problems))
        return AutoRefundResult(order_id=order_id, outcome="under_review", payment=PaymentView.model_validate(payment), reasons=problems)