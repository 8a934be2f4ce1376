"""
Notification repository - SQLAlchemy implementation
"""
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.exceptions import NotificationNotFoundException
from domain.notification.entity import Notification, NotificationType, RelatedRef
from domain.notification.repository import NotificationRepository
from infrastructure.models.notification import NotificationModel


class SQLAlchemyNotificationRepository(NotificationRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: NotificationModel) -> Notification:
        related = RelatedRef.of(model.related_kind, model.related_id) if model.related_kind else None
        return Notification(
            id=model.id,
            recipient_id=model.recipient_id,
            type=model.type,
            title=model.title,
            message=model.message,
            priority=model.priority,
            related=related,
            action_url=model.action_url,
            action_text=model.action_text,
            data=model.data or {},
            read=model.read,
            read_at=model.read_at,
            expires_at=model.expires_at,
            created_at=model.created_at,
        )

    @staticmethod
    def _apply(model: NotificationModel, entity: Notification) -> NotificationModel:
        model.recipient_id = entity.recipient_id
        model.type = entity.type.value
        model.title = entity.title
        model.message = entity.message
        model.priority = entity.priority.value
        model.related_kind = entity.related.kind.value if entity.related else None
        model.related_id = entity.related.id if entity.related else None
        model.action_url = entity.action_url
        model.action_text = entity.action_text
        model.data = entity.data
        model.read = entity.read
        model.read_at = entity.read_at
        model.expires_at = entity.expires_at
        if entity.created_at is not None:
            model.created_at = entity.created_at
        return model

    async def create(self, notification: Notification) -> Notification:
        db_notification = self._apply(NotificationModel(), notification)
        self.session.add(db_notification)
        await self.session.flush()
        await self.session.refresh(db_notification)
        return self._to_entity(db_notification)

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        db_notification = await self.session.get(NotificationModel, notification_id)
        return self._to_entity(db_notification) if db_notification else None

    async def update(self, notification: Notification) -> Notification:
        db_notification = await self.session.get(NotificationModel, notification.id)
        if not db_notification:
            raise NotificationNotFoundException(notification.id)
        self._apply(db_notification, notification)
        await self.session.flush()
        return self._to_entity(db_notification)

    async def list_for_recipient(
        self,
        recipient_id: int,
        *,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        query = select(NotificationModel).where(NotificationModel.recipient_id == recipient_id)
        if unread_only:
            query = query.where(NotificationModel.read.is_(False))
        if type is not None:
            query = query.where(NotificationModel.type == type.value)
        query = query.order_by(NotificationModel.created_at.desc(), NotificationModel.id.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(m) for m in result.scalars().all()]

    async def count_unread(self, recipient_id: int) -> int:
        result = await self.session.execute(
            select(func.count())
            .select_from(NotificationModel)
            .where(NotificationModel.recipient_id == recipient_id, NotificationModel.read.is_(False))
        )
        return result.scalar() or 0

    async def mark_read(self, recipient_id: int, ids: Optional[Sequence[int]], read_at: datetime) -> int:
        stmt = update(NotificationModel).where(
            NotificationModel.recipient_id == recipient_id,
            NotificationModel.read.is_(False),
        )
        if ids is not None:
            stmt = stmt.where(NotificationModel.id.in_(list(ids)))
        result = await self.session.execute(
            stmt.values(read=True, read_at=read_at).execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def delete(self, recipient_id: int, notification_id: int) -> bool:
        result = await self.session.execute(
            delete(NotificationModel).where(
                NotificationModel.id == notification_id,
                NotificationModel.recipient_id == recipient_id,
            )
        )
        return (result.rowcount or 0) > 0

    async def delete_read_before(self, recipient_id: int, before: datetime) -> int:
        result = await self.session.execute(
            delete(NotificationModel).where(
                NotificationModel.recipient_id == recipient_id,
                NotificationModel.read.is_(True),
                NotificationModel.created_at < before,
            )
        )
        return result.rowcount or 0

    async def delete_expired(self, now: datetime) -> int:
        result = await self.session.execute(
            delete(NotificationModel).where(
                NotificationModel.expires_at.is_not(None),
                NotificationModel.expires_at <= now,
            )
        )
        return result.rowcount or 0
