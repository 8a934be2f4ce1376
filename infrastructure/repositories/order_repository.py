"""
Order repository - SQLAlchemy implementation
"""
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import OrderNotFoundException
from domain.order.entity import Order
from domain.order.repository import OrderRepository
from infrastructure.models.order import OrderModel


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        return Order(
            id=model.id,
            user_id=model.user_id,
            artisan_id=model.artisan_id,
            amount=model.amount,
            currency=model.currency,
            status=model.status,
            payment_status=model.payment_status,
            description=model.description,
            scheduled_at=model.scheduled_at,
            cancellation_reason=model.cancellation_reason,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: OrderModel, entity: Order) -> OrderModel:
        model.user_id = entity.user_id
        model.artisan_id = entity.artisan_id
        model.amount = entity.amount
        model.currency = entity.currency
        model.status = entity.status.value
        model.payment_status = entity.payment_status.value
        model.description = entity.description
        model.scheduled_at = entity.scheduled_at
        model.cancellation_reason = entity.cancellation_reason
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        return model

    async def create(self, order: Order) -> Order:
        db_order = self._apply(OrderModel(), order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        return self._to_entity(db_order)

    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        query = select(OrderModel).where(OrderModel.id == order_id)
        if for_update:
            query = query.with_for_update()
        db_order = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def update(self, order: Order) -> Order:
        db_order = await self.session.get(OrderModel, order.id)
        if not db_order:
            raise OrderNotFoundException(order.id)
        self._apply(db_order, order)
        await self.session.flush()
        return self._to_entity(db_order)

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Order]:
        query = (
            select(OrderModel)
            .where(or_(OrderModel.user_id == user_id, OrderModel.artisan_id == user_id))
            .order_by(OrderModel.id.desc())
            .offset(skip)
            .limit(limit)
        )
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]
