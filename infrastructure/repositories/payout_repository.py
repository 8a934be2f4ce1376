"""
Payout repository - SQLAlchemy implementation
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import PayoutNotFoundException
from domain.payout.entity import Payout
from domain.payout.repository import PayoutRepository
from infrastructure.models.payout import PayoutModel


class SQLAlchemyPayoutRepository(PayoutRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: PayoutModel) -> Payout:
        return Payout(
            id=model.id,
            artisan_id=model.artisan_id,
            currency=model.currency,
            net_amount=model.net_amount,
            processing_fee=model.processing_fee,
            gross_amount=model.gross_amount,
            period_start=model.period_start,
            period_end=model.period_end,
            payment_ids=list(model.payment_ids or []),
            status=model.status,
            processor_payout_id=model.processor_payout_id,
            failure_reason=model.failure_reason,
            created_at=model.created_at,
            paid_at=model.paid_at,
        )

    @staticmethod
    def _apply(model: PayoutModel, entity: Payout) -> PayoutModel:
        model.artisan_id = entity.artisan_id
        model.currency = entity.currency
        model.net_amount = entity.net_amount
        model.processing_fee = entity.processing_fee
        model.gross_amount = entity.gross_amount
        model.period_start = entity.period_start
        model.period_end = entity.period_end
        model.payment_ids = list(entity.payment_ids)
        model.status = entity.status.value
        model.processor_payout_id = entity.processor_payout_id
        model.failure_reason = entity.failure_reason
        if entity.created_at is not None:
            model.created_at = entity.created_at
        model.paid_at = entity.paid_at
        return model

    async def _one(self, *criteria, for_update: bool = False) -> Optional[Payout]:
        query = select(PayoutModel).where(*criteria)
        if for_update:
            query = query.with_for_update()
        db_payout = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_payout) if db_payout else None

    async def create(self, payout: Payout) -> Payout:
        db_payout = self._apply(PayoutModel(), payout)
        self.session.add(db_payout)
        await self.session.flush()
        await self.session.refresh(db_payout)
        return self._to_entity(db_payout)

    async def get_by_id(self, payout_id: int, *, for_update: bool = False) -> Optional[Payout]:
        return await self._one(PayoutModel.id == payout_id, for_update=for_update)

    async def get_by_processor_id(self, processor_payout_id: str, *, for_update: bool = False) -> Optional[Payout]:
        return await self._one(PayoutModel.processor_payout_id == processor_payout_id, for_update=for_update)

    async def update(self, payout: Payout) -> Payout:
        db_payout = await self.session.get(PayoutModel, payout.id)
        if not db_payout:
            raise PayoutNotFoundException(payout.id)
        self._apply(db_payout, payout)
        await self.session.flush()
        return self._to_entity(db_payout)

    async def list_by_artisan(self, artisan_id: int, skip: int = 0, limit: int = 50) -> List[Payout]:
        query = (
            select(PayoutModel)
            .where(PayoutModel.artisan_id == artisan_id)
            .order_by(PayoutModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]
