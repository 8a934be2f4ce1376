"""
Dispute repository - SQLAlchemy implementation
"""
from typing import List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import DisputeNotFoundException
from domain.dispute.entity import (
    TERMINAL_STATUSES,
    Dispute,
    DisputeMessage,
    DisputeStatus,
    Escalation,
    Evidence,
    Resolution,
)
from domain.dispute.repository import DisputeRepository
from infrastructure.models.dispute import DisputeModel
from infrastructure.repositories.codec import to_json, with_dates


class SQLAlchemyDisputeRepository(DisputeRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: DisputeModel) -> Dispute:
        return Dispute(
            id=model.id,
            order_id=model.order_id,
            payment_id=model.payment_id,
            raised_by=model.raised_by,
            against=model.against,
            type=model.type,
            description=model.description,
            status=model.status,
            evidence=[Evidence(**e) for e in model.evidence or []],
            messages=[DisputeMessage(**with_dates(m, "created_at")) for m in model.messages or []],
            resolution=Resolution(**with_dates(model.resolution, "resolved_at")) if model.resolution else None,
            escalation=Escalation(**with_dates(model.escalation, "escalated_at")) if model.escalation else None,
            processor_dispute_id=model.processor_dispute_id,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: DisputeModel, entity: Dispute) -> DisputeModel:
        model.order_id = entity.order_id
        model.payment_id = entity.payment_id
        model.raised_by = entity.raised_by
        model.against = entity.against
        model.type = entity.type.value
        model.description = entity.description
        model.status = entity.status.value
        model.evidence = to_json(entity.evidence)
        model.messages = to_json(entity.messages)
        model.resolution = to_json(entity.resolution) if entity.resolution else None
        model.escalation = to_json(entity.escalation) if entity.escalation else None
        model.processor_dispute_id = entity.processor_dispute_id
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        return model

    async def create(self, dispute: Dispute) -> Dispute:
        db_dispute = self._apply(DisputeModel(), dispute)
        self.session.add(db_dispute)
        await self.session.flush()
        await self.session.refresh(db_dispute)
        return self._to_entity(db_dispute)

    async def get_by_id(self, dispute_id: int, *, for_update: bool = False) -> Optional[Dispute]:
        query = select(DisputeModel).where(DisputeModel.id == dispute_id)
        if for_update:
            query = query.with_for_update()
        db_dispute = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_dispute) if db_dispute else None

    async def get_by_processor_dispute_id(self, processor_dispute_id: str) -> Optional[Dispute]:
        query = select(DisputeModel).where(DisputeModel.processor_dispute_id == processor_dispute_id)
        db_dispute = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_dispute) if db_dispute else None

    async def get_active_for_payment(self, payment_id: int) -> Optional[Dispute]:
        query = (
            select(DisputeModel)
            .where(
                DisputeModel.payment_id == payment_id,
                DisputeModel.status.not_in([s.value for s in TERMINAL_STATUSES]),
            )
            .order_by(DisputeModel.id)
            .limit(1)
        )
        db_dispute = (await self.session.execute(query)).scalar_one_or_none()
        return self._to_entity(db_dispute) if db_dispute else None

    async def update(self, dispute: Dispute) -> Dispute:
        db_dispute = await self.session.get(DisputeModel, dispute.id)
        if not db_dispute:
            raise DisputeNotFoundException(dispute.id)
        self._apply(db_dispute, dispute)
        await self.session.flush()
        return self._to_entity(db_dispute)

    async def list_for_user(
        self,
        user_id: Optional[int],
        skip: int = 0,
        limit: int = 50,
        status: Optional[DisputeStatus] = None,
    ) -> List[Dispute]:
        query = select(DisputeModel)
        if user_id is not None:
            query = query.where(or_(DisputeModel.raised_by == user_id, DisputeModel.against == user_id))
        if status is not None:
            query = query.where(DisputeModel.status == status.value)
        query = query.order_by(DisputeModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]
