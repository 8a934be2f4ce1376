"""
User repository - SQLAlchemy implementation
"""
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import ConflictException, UserNotFoundException
from domain.user.entity import User, UserRole
from domain.user.repository import UserRepository
from infrastructure.models.user import UserModel
from shared.codes import BusinessCode


logger = get_logger(__name__)


class SQLAlchemyUserRepository(UserRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: UserModel) -> User:
        return User(
            id=model.id,
            email=model.email,
            full_name=model.full_name,
            phone=model.phone,
            role=model.role,
            payout_account_id=model.payout_account_id,
            customer_account_id=model.customer_account_id,
            notify_email=model.notify_email,
            notify_sms=model.notify_sms,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    @staticmethod
    def _apply(model: UserModel, entity: User) -> UserModel:
        model.email = entity.email
        model.full_name = entity.full_name
        model.phone = entity.phone
        model.role = entity.role.value
        model.payout_account_id = entity.payout_account_id
        model.customer_account_id = entity.customer_account_id
        model.notify_email = entity.notify_email
        model.notify_sms = entity.notify_sms
        model.is_active = entity.is_active
        if entity.created_at is not None:
            model.created_at = entity.created_at
        if entity.updated_at is not None:
            model.updated_at = entity.updated_at
        return model

    async def create(self, user: User) -> User:
        db_user = self._apply(UserModel(), user)
        self.session.add(db_user)
        try:
            await self.session.flush()
        except IntegrityError:
            logger.warning("create_user_conflict", field="email", email=user.email)
            raise ConflictException(
                f"Email already registered: {user.email}", code=BusinessCode.USER_ALREADY_EXISTS, field="email"
            ) from None
        await self.session.refresh(db_user)
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        db_user = await self.session.get(UserModel, user_id)
        return self._to_entity(db_user) if db_user else None

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(UserModel).where(UserModel.email == email))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    async def list_by_role(self, role: UserRole, *, active_only: bool = True) -> List[User]:
        query = select(UserModel).where(UserModel.role == role.value)
        if active_only:
            query = query.where(UserModel.is_active.is_(True))
        result = await self.session.execute(query.order_by(UserModel.id))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def update(self, user: User) -> User:
        db_user = await self.session.get(UserModel, user.id)
        if not db_user:
            raise UserNotFoundException(user.id)
        self._apply(db_user, user)
        await self.session.flush()
        await self.session.refresh(db_user)
        return self._to_entity(db_user)
