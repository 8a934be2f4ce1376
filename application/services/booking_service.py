"""
Booking use-cases - the thin surface the escrow and chat flows hang off.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from application.ports.realtime import RealtimePush
from application.services.chat_service import ChatService
from application.services.notification_service import NotificationService
from application.services.payment_service import PaymentService, order_lock_key
from core.logging_config import get_logger
from domain.common.clock import utc_now
from domain.common.exceptions import (
    DomainValidationException,
    NotAuthorizedException,
    OrderNotFoundException,
    UserNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import Order, OrderStatus


logger = get_logger(__name__)


def booking_room(order_id: int) -> str:
    return f"booking:{order_id}"


# action -> (target status, who may do it, chat template)
_ACTIONS: dict[str, tuple[OrderStatus, str, str]] = {
    "accept": (OrderStatus.ACCEPTED, "artisan", "booking.accepted"),
    "start": (OrderStatus.IN_PROGRESS, "artisan", "booking.started"),
    "complete": (OrderStatus.COMPLETED, "artisan", "booking.completed"),
    "cancel": (OrderStatus.CANCELLED, "party", "booking.cancelled"),
}


class BookingService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        chats: ChatService,
        notifier: NotificationService,
        *,
        realtime: Optional[RealtimePush] = None,
        currency: str = "USD",
    ) -> None:
        self._uow_factory = uow_factory
        self._payments = payments
        self._chats = chats
        self._notifier = notifier
        self._realtime = realtime
        self._currency = currency

    def bind_realtime(self, realtime: RealtimePush) -> None:
        self._realtime = realtime

    async def create_booking(
        self,
        user_id: int,
        artisan_id: int,
        amount: int,
        *,
        currency: Optional[str] = None,
        description: Optional[str] = None,
        scheduled_at: Optional[datetime] = None,
    ) -> Order:
        async with self._uow_factory() as uow:
            artisan = await uow.users.get_by_id(artisan_id)
            if artisan is None or not artisan.is_active:
                raise UserNotFoundException(artisan_id)
            if not artisan.is_artisan:
                raise DomainValidationException("Bookings can only be made with artisans", field="artisan_id")
            now = utc_now()
            order = await uow.orders.create(
                Order(
                    id=None,
                    user_id=user_id,
                    artisan_id=artisan_id,
                    amount=amount,
                    currency=currency or self._currency,
                    description=description,
                    scheduled_at=scheduled_at,
                    created_at=now,
                    updated_at=now,
                )
            )

        logger.info("booking_created", order_id=order.id, user_id=user_id, artisan_id=artisan_id, amount=amount)
        chat = await self._chats.start_chat(user_id, artisan_id, order.id)
        await self._chats.send_system_message(chat.id, "booking.created", booking_id=order.id)
        await self._notifier.notify_event(artisan_id, "booking_update", order_id=order.id, status=order.status.value)
        return order

    async def get_booking(self, order_id: int, viewer_id: int) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id)
            if not order.is_party(viewer_id):
                viewer = await uow.users.get_by_id(viewer_id)
                if not (viewer and viewer.is_admin):
                    raise NotAuthorizedException("Not a party to this booking", details={"order_id": order_id})
        return order

    async def list_bookings(self, user_id: int, skip: int = 0, limit: int = 50) -> list[Order]:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.orders.list_by_user(user_id, skip=skip, limit=limit)

    async def change_status(self, order_id: int, actor_id: int, action: str, *, reason: Optional[str] = None) -> Order:
        try:
            target, who, template = _ACTIONS[action]
        except KeyError:
            raise DomainValidationException(f"Unknown booking action: {action}", field="action") from None

        async with self._payments.locks.hold(order_lock_key(order_id)):
            async with self._uow_factory() as uow:
                order = await uow.orders.get_by_id(order_id, for_update=True)
                if order is None:
                    raise OrderNotFoundException(order_id)
                allowed = order.artisan_id == actor_id if who == "artisan" else order.is_party(actor_id)
                if not allowed:
                    raise NotAuthorizedException(f"Not allowed to {action} this booking", details={"order_id": order_id})
                order.change_status(target, reason=reason)
                await uow.orders.update(order)

        logger.info("booking_status_changed", order_id=order_id, status=order.status.value, actor_id=actor_id)
        if target == OrderStatus.COMPLETED:
            await self._payments.mark_order_condition(order_id, "service_completed")

        if self._realtime is not None:
            await self._realtime.broadcast_to_room(
                booking_room(order_id),
                "bookingUpdate",
                {"order_id": order_id, "status": order.status.value, "payment_status": order.payment_status.value},
            )
        chat = await self._chats.start_chat(order.user_id, order.artisan_id, order_id)
        context = {"reason": reason} if reason else {}
        await self._chats.send_system_message(chat.id, template, booking_id=order_id, **context)
        other = order.artisan_id if actor_id == order.user_id else order.user_id
        await self._notifier.notify_event(other, "booking_update", order_id=order_id, status=order.status.value)
        return order

    async def approve_service(self, order_id: int, actor_id: int) -> None:
        """Customer sign-off on a completed booking."""
        order = await self.get_booking(order_id, actor_id)
        if order.user_id != actor_id:
            raise NotAuthorizedException("Only the customer can approve the service", details={"order_id": order_id})
        await self._payments.mark_order_condition(order_id, "customer_approved")
