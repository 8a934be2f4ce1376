"""
API dependencies - container access, authentication and authorization
"""
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from typing import Optional

from application.services.booking_service import BookingService
from application.services.chat_service import ChatService
from application.services.dispute_service import DisputeService
from application.services.ledger_service import LedgerService
from application.services.notification_service import NotificationService
from application.services.payment_service import PaymentService
from application.services.payout_service import PayoutService
from application.services.refund_service import RefundService
from application.services.webhook_service import WebhookService
from domain.common.exceptions import NotAuthorizedException, UserNotFoundException
from domain.user.entity import User
from infrastructure.container import Container

# HTTP Bearer for direct API calls
http_bearer = HTTPBearer(
    scheme_name="Bearer",
    description="JWT Bearer token authentication",
    auto_error=False,
)


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise RuntimeError("Container not initialized. Ensure lifespan sets app.state.container.")
    return container


async def get_token(bearer_token: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)) -> str:
    if bearer_token and bearer_token.credentials:
        return bearer_token.credentials
    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Missing authentication credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_user(
    token: str = Depends(get_token),
    container: Container = Depends(get_container),
) -> User:
    """Resolve the bearer token to an active user"""
    claims = container.tokens.verify_access_token(token)
    async with container.uow_factory(readonly=True) as uow:
        user = await uow.users.get_by_id(claims.user_id)
    if user is None:
        raise UserNotFoundException(claims.user_id)
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="User account is disabled")
    return user


async def get_current_admin(current_user: User = Depends(get_current_user)) -> User:
    if not current_user.is_admin:
        raise NotAuthorizedException("Admin privileges required")
    return current_user


def get_payment_service(container: Container = Depends(get_container)) -> PaymentService:
    return container.payments


def get_refund_service(container: Container = Depends(get_container)) -> RefundService:
    return container.refunds


def get_dispute_service(container: Container = Depends(get_container)) -> DisputeService:
    return container.disputes


def get_payout_service(container: Container = Depends(get_container)) -> PayoutService:
    return container.payouts


def get_ledger_service(container: Container = Depends(get_container)) -> LedgerService:
    return container.ledger


def get_notification_service(container: Container = Depends(get_container)) -> NotificationService:
    return container.notifications


def get_chat_service(container: Container = Depends(get_container)) -> ChatService:
    return container.chats


def get_booking_service(container: Container = Depends(get_container)) -> BookingService:
    return container.bookings


def get_webhook_service(container: Container = Depends(get_container)) -> WebhookService:
    return container.webhooks
