"""
Payment repository - SQLAlchemy implementation
"""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import PaymentNotFoundException
from domain.payment.entity import EscrowInfo, Payment, PaymentStatus, RefundInfo
from domain.payment.repository import PaymentRepository
from infrastructure.models.payment import PaymentModel
from infrastructure.repositories.codec import to_json, with_dates


logger = get_logger(__name__)


class SQLAlchemyPaymentRepository(PaymentRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PaymentModel) -> Payment:
        escrow = dict(model.escrow or {})
        escrow.pop("released_at", None)
        refund = model.refund
        return Payment(
            id=model.id,
            order_id=model.order_id,
            payer_id=model.payer_id,
            payee_id=model.payee_id,
            amount=model.amount,
            platform_fee=model.platform_fee,
            currency=model.currency,
            payment_method=model.payment_method,
            status=model.status,
            intent_id=model.intent_id,
            client_secret=model.client_secret,
            transfer_id=model.transfer_id,
            escrow=EscrowInfo(released_at=model.released_at, **escrow),
            refund=RefundInfo(**with_dates(refund, "requested_at", "processed_at")) if refund else None,
            dispute_id=model.dispute_id,
            payout_id=model.payout_id,
            released_amount=model.released_amount,
            payee_amount=model.payee_amount,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: PaymentModel, entity: Payment) -> PaymentModel:
        model.order_id = entity.order_id
        model.payer_id = entity.payer_id
        model.payee_id = entity.payee_id
        model.amount = entity.amount
        model.platform_fee = entity.platform_fee
        model.currency = entity.currency
        model.payment_method = entity.payment_method
        model.status = entity.status.value
        model.intent_id = entity.intent_id
        model.client_secret = entity.client_secret
        model.transfer_id = entity.transfer_id
        model.escrow = to_json(entity.escrow)
        model.released_at = entity.escrow.released_at
        model.refund = to_json(entity.refund) if entity.refund else None
        model.dispute_id = entity.dispute_id
        model.payout_id = entity.payout_id
        model.released_amount = entity.released_amount
        model.payee_amount = entity.payee_amount
        model.failure_reason = entity.failure_reason
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        return model

    async def _one(self, *criteria, for_update: bool = False) -> Optional[Payment]:
        query = select(PaymentModel).where(*criteria).order_by(PaymentModel.id.desc()).limit(1)
        if for_update:
            query = query.with_for_update()
        db_payment = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_payment) if db_payment else None

    async def create(self, payment: Payment) -> Payment:
        db_payment = self._apply(PaymentModel(), payment)
        self.session.add(db_payment)
        await self.session.flush()
        await self.session.refresh(db_payment)
        logger.debug("payment_row_created", payment_id=db_payment.id, order_id=payment.order_id)
        return self._to_entity(db_payment)

    async def get_by_id(self, payment_id: int, *, for_update: bool = False) -> Optional[Payment]:
        return await self._one(PaymentModel.id == payment_id, for_update=for_update)

    async def get_by_order_id(self, order_id: int, *, for_update: bool = False) -> Optional[Payment]:
        return await self._one(PaymentModel.order_id == order_id, for_update=for_update)

    async def get_by_intent_id(self, intent_id: str, *, for_update: bool = False) -> Optional[Payment]:
        return await self._one(PaymentModel.intent_id == intent_id, for_update=for_update)

    async def update(self, payment: Payment) -> Payment:
        db_payment = await self.session.get(PaymentModel, payment.id)
        if not db_payment:
            raise PaymentNotFoundException(str(payment.id))
        self._apply(db_payment, payment)
        await self.session.flush()
        return self._to_entity(db_payment)

    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        query = select(PaymentModel).where(
            or_(PaymentModel.payer_id == user_id, PaymentModel.payee_id == user_id)
        )
        if status is not None:
            query = query.where(PaymentModel.status == status.value)
        query = query.order_by(PaymentModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_releasable_for_payout(self, released_before: datetime, limit: int = 1000) -> List[Payment]:
        query = (
            select(PaymentModel)
            .where(
                PaymentModel.status == PaymentStatus.RELEASED.value,
                PaymentModel.payout_id.is_(None),
                PaymentModel.released_at.is_not(None),
                PaymentModel.released_at <= released_before,
            )
            .order_by(PaymentModel.id)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def claim_for_payout(self, payment_ids: Sequence[int], payout_id: int) -> int:
        if not payment_ids:
            return 0
        result = await self.session.execute(
            update(PaymentModel)
            .where(PaymentModel.id.in_(list(payment_ids)), PaymentModel.payout_id.is_(None))
            .values(payout_id=payout_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def list_released_between(self, start: datetime, end: datetime) -> List[Payment]:
        query = (
            select(PaymentModel)
            .where(PaymentModel.released_at >= start, PaymentModel.released_at < end)
            .order_by(PaymentModel.id)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]
