"""
Dispute engine.

An open or under-review dispute holds the payment's escrow (enforced by the
release check). Resolutions move money through the payment engine inside
the dispute's own unit of work and under the payment lock, so a failed
processor call or ledger write aborts the whole resolution.
"""
from __future__ import annotations

from typing import Callable, Optional, Sequence

from application.dtos.disputes import EvidenceDTO, ResolutionRequest
from application.ports.locks import LockProvider
from application.services.notification_service import NotificationService
from application.services.payment_service import PaymentService, RefundOutcome, payment_lock_key
from core.logging_config import get_logger
from domain.common.clock import utc_now
from domain.common.exceptions import (
    DisputeAlreadyExistsException,
    DisputeClosedException,
    DisputeNotFoundException,
    NotAuthorizedException,
    PaymentNotFoundException,
    PaymentNotInEscrowException,
    PaymentNotRefundableException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.dispute.entity import (
    Dispute,
    DisputeStatus,
    DisputeType,
    Evidence,
    Resolution,
    ResolutionType,
)
from domain.dispute.service import DisputeDomainService
from domain.payment.entity import Payment, PaymentStatus


logger = get_logger(__name__)


def preview(text: str, length: int) -> str:
    return text if len(text) <= length else text[:length] + "..."


class DisputeService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        locks: LockProvider,
        notifier: NotificationService,
        *,
        preview_length: int = 100,
    ) -> None:
        self._uow_factory = uow_factory
        self._payments = payments
        self._locks = locks
        self._notifier = notifier
        self._preview_length = preview_length

    # -------------------- helpers --------------------

    @staticmethod
    async def _load(uow: AbstractUnitOfWork, dispute_id: int, *, for_update: bool = True) -> Dispute:
        dispute = await uow.disputes.get_by_id(dispute_id, for_update=for_update)
        if dispute is None:
            raise DisputeNotFoundException(dispute_id)
        return dispute

    async def _payment_of(self, dispute_id: int) -> int:
        async with self._uow_factory(readonly=True) as uow:
            dispute = await self._load(uow, dispute_id, for_update=False)
        return dispute.payment_id

    @staticmethod
    async def _is_admin(uow: AbstractUnitOfWork, user_id: int) -> bool:
        user = await uow.users.get_by_id(user_id)
        return bool(user and user.is_admin)

    async def _require_admin(self, uow: AbstractUnitOfWork, user_id: int) -> None:
        if not await self._is_admin(uow, user_id):
            raise NotAuthorizedException("Admin role required")

    # -------------------- opening --------------------

    async def initiate_dispute(
        self,
        order_id: int,
        raised_by: int,
        type: DisputeType | str,
        description: str,
        evidence: Sequence[EvidenceDTO] = (),
    ) -> Dispute:
        async with self._uow_factory(readonly=True) as uow:
            found = await uow.payments.get_by_order_id(order_id)
        if found is None:
            raise PaymentNotFoundException(f"order {order_id}")

        async with self._locks.hold(payment_lock_key(found.id)):
            async with self._uow_factory() as uow:
                payment = await uow.payments.get_by_id(found.id, for_update=True)
                if raised_by not in (payment.payer_id, payment.payee_id):
                    raise NotAuthorizedException("Only the customer or the artisan can open a dispute", details={"order_id": order_id})
                active = await uow.disputes.get_active_for_payment(payment.id)
                if active is not None:
                    raise DisputeAlreadyExistsException(payment.id, active.id)
                if payment.status not in (PaymentStatus.IN_ESCROW, PaymentStatus.RELEASED):
                    raise PaymentNotInEscrowException(payment.id, payment.status.value)
                now = utc_now()
                dispute = await uow.disputes.create(
                    Dispute(
                        id=None,
                        order_id=order_id,
                        payment_id=payment.id,
                        raised_by=raised_by,
                        against=payment.payee_id if raised_by == payment.payer_id else payment.payer_id,
                        type=type,
                        description=description,
                        evidence=[Evidence(type=e.type, url=e.url, description=e.description) for e in evidence],
                        created_at=now,
                        updated_at=now,
                    )
                )
                payment.dispute_id = dispute.id
                await uow.payments.update(payment)

        logger.info("dispute_opened", dispute_id=dispute.id, payment_id=payment.id, raised_by=raised_by, type=dispute.type.value)
        await self._notifier.notify_event(
            dispute.against,
            "dispute_opened",
            dispute_id=dispute.id,
            order_id=order_id,
            dispute_type=dispute.type.value,
        )
        return dispute

    async def on_processor_dispute(
        self,
        intent_id: str,
        processor_dispute_id: str,
        reason: Optional[str] = None,
    ) -> Optional[Dispute]:
        """Open a payment dispute for a processor chargeback; idempotent on the processor id."""
        async with self._uow_factory(readonly=True) as uow:
            existing = await uow.disputes.get_by_processor_dispute_id(processor_dispute_id)
            found = await uow.payments.get_by_intent_id(intent_id)
        if existing is not None:
            return existing
        if found is None:
            logger.warning("processor_dispute_unknown_intent", intent_id=intent_id, processor_dispute_id=processor_dispute_id)
            return None

        created = False
        async with self._locks.hold(payment_lock_key(found.id)):
            async with self._uow_factory() as uow:
                dispute = await uow.disputes.get_by_processor_dispute_id(processor_dispute_id)
                if dispute is None:
                    dispute = await uow.disputes.get_active_for_payment(found.id)
                    if dispute is not None:
                        dispute.processor_dispute_id = processor_dispute_id
                        await uow.disputes.update(dispute)
                    else:
                        payment = await uow.payments.get_by_id(found.id, for_update=True)
                        now = utc_now()
                        dispute = await uow.disputes.create(
                            Dispute(
                                id=None,
                                order_id=payment.order_id,
                                payment_id=payment.id,
                                raised_by=payment.payer_id,
                                against=payment.payee_id,
                                type=DisputeType.PAYMENT,
                                description=reason or "Chargeback opened with the card issuer",
                                processor_dispute_id=processor_dispute_id,
                                created_at=now,
                                updated_at=now,
                            )
                        )
                        payment.dispute_id = dispute.id
                        await uow.payments.update(payment)
                        created = True

        if created:
            logger.info("processor_dispute_opened", dispute_id=dispute.id, processor_dispute_id=processor_dispute_id)
            await self._notifier.notify_admins(
                "dispute_opened",
                dispute_id=dispute.id,
                order_id=dispute.order_id,
                dispute_type=dispute.type.value,
            )
        return dispute

    # -------------------- conversation / workflow --------------------

    async def add_dispute_message(
        self,
        dispute_id: int,
        sender_id: int,
        text: str,
        attachments: Optional[list[str]] = None,
    ) -> Dispute:
        payment_id = await self._payment_of(dispute_id)
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                dispute = await self._load(uow, dispute_id)
                if not dispute.is_party(sender_id) and not await self._is_admin(uow, sender_id):
                    raise NotAuthorizedException("Not a party to this dispute", details={"dispute_id": dispute_id})
                dispute.add_message(sender_id, text, attachments)
                await uow.disputes.update(dispute)

        recipients = [dispute.other_party(sender_id)] if dispute.is_party(sender_id) else [dispute.raised_by, dispute.against]
        for recipient in recipients:
            await self._notifier.notify_event(
                recipient,
                "dispute_message",
                dispute_id=dispute.id,
                preview=preview(text, self._preview_length),
            )
        return dispute

    async def start_review(self, dispute_id: int, admin_id: int) -> Dispute:
        payment_id = await self._payment_of(dispute_id)
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                await self._require_admin(uow, admin_id)
                dispute = await self._load(uow, dispute_id)
                dispute.start_review()
                await uow.disputes.update(dispute)
        logger.info("dispute_under_review", dispute_id=dispute_id, admin_id=admin_id)
        return dispute

    async def escalate_dispute(self, dispute_id: int, reason: str, actor_id: int) -> Dispute:
        payment_id = await self._payment_of(dispute_id)
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                dispute = await self._load(uow, dispute_id)
                if not dispute.is_party(actor_id) and not await self._is_admin(uow, actor_id):
                    raise NotAuthorizedException("Not a party to this dispute", details={"dispute_id": dispute_id})
                dispute.escalate(reason, actor_id)
                await uow.disputes.update(dispute)

        logger.info("dispute_escalated", dispute_id=dispute_id, actor_id=actor_id)
        context = dict(dispute_id=dispute.id, order_id=dispute.order_id, reason=reason)
        await self._notifier.notify_admins("dispute_escalated", **context)
        for party in (dispute.raised_by, dispute.against):
            await self._notifier.notify_event(party, "dispute_escalated", **context)
        return dispute

    async def close_dispute(self, dispute_id: int, reason: Optional[str], admin_id: int) -> Dispute:
        payment_id = await self._payment_of(dispute_id)
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                await self._require_admin(uow, admin_id)
                dispute = await self._load(uow, dispute_id)
                dispute.close(reason, admin_id)
                await uow.disputes.update(dispute)
        logger.info("dispute_closed", dispute_id=dispute_id, admin_id=admin_id)
        return dispute

    # -------------------- resolution --------------------

    async def resolve_dispute(self, dispute_id: int, request: ResolutionRequest, resolved_by: int) -> Dispute:
        payment_id = await self._payment_of(dispute_id)
        async with self._locks.hold(payment_lock_key(payment_id)):
            async with self._uow_factory() as uow:
                await self._require_admin(uow, resolved_by)
                dispute = await self._load(uow, dispute_id)
                payment = await uow.payments.get_by_id(payment_id, for_update=True)
                resolution = Resolution(
                    type=request.type,
                    amount=request.amount,
                    release_amount=request.release_amount,
                    description=request.description,
                    resolved_by=resolved_by,
                )
                if dispute.is_terminal:
                    raise DisputeClosedException(dispute.id, dispute.status.value)
                plan = DisputeDomainService.plan(payment, resolution)
                if resolution.type == ResolutionType.REFUND and resolution.amount is None:
                    resolution.amount = plan.refund_amount
                refund, released = await self._apply(uow, payment, resolution, plan.refund_amount, plan.release_amount, resolved_by)
                dispute.resolve(resolution)
                await uow.disputes.update(dispute)

        logger.info(
            "dispute_resolved",
            dispute_id=dispute_id,
            resolution=resolution.type.value,
            refund_amount=plan.refund_amount,
            release_amount=plan.release_amount,
        )
        if refund is not None:
            await self._payments.notify_refunded(refund)
        if released:
            await self._payments.notify_released(payment)
        for party in (dispute.raised_by, dispute.against):
            await self._notifier.notify_event(
                party,
                "dispute_resolved",
                dispute_id=dispute.id,
                order_id=dispute.order_id,
                resolution=resolution.type.value,
            )
        return dispute

    async def _apply(
        self,
        uow: AbstractUnitOfWork,
        payment: Payment,
        resolution: Resolution,
        refund_amount: int,
        release_amount: int,
        actor_id: int,
    ) -> tuple[Optional[RefundOutcome], bool]:
        reason = f"dispute_resolution:{resolution.type.value}"
        kind = resolution.type

        if kind == ResolutionType.RELEASE_PAYMENT:
            if payment.status == PaymentStatus.RELEASED:
                return None, False
            await self._payments.release_in_uow(uow, payment, release_amount, actor_id)
            return None, True

        if payment.status == PaymentStatus.RELEASED or kind == ResolutionType.REFUND:
            if payment.status not in (PaymentStatus.IN_ESCROW, PaymentStatus.RELEASED):
                raise PaymentNotRefundableException(payment.id, payment.status.value)
            return await self._payments.refund_in_uow(uow, payment, refund_amount, reason), False

        # partial refund or split of held escrow: refund one part, release the rest
        if kind == ResolutionType.PARTIAL_REFUND:
            release_amount = payment.amount - refund_amount
        outcome = await self._payments.refund_before_release_in_uow(uow, payment, refund_amount, reason)
        await self._payments.release_in_uow(uow, payment, release_amount, actor_id)
        return outcome, True

    # -------------------- queries --------------------

    async def get_dispute(self, dispute_id: int, viewer_id: int) -> Dispute:
        async with self._uow_factory(readonly=True) as uow:
            dispute = await self._load(uow, dispute_id, for_update=False)
            if not dispute.is_party(viewer_id) and not await self._is_admin(uow, viewer_id):
                raise NotAuthorizedException("Not a party to this dispute", details={"dispute_id": dispute_id})
        return dispute

    async def list_disputes(
        self,
        user_id: int,
        *,
        status: Optional[DisputeStatus] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Dispute]:
        async with self._uow_factory(readonly=True) as uow:
            scope = None if await self._is_admin(uow, user_id) else user_id
            return await uow.disputes.list_for_user(scope, skip=skip, limit=limit, status=status)
