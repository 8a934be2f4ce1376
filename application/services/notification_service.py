"""
Notification dispatcher - persisted notifications with realtime push and
optional e-mail/SMS fan-out.

Sending is fire-and-forget: callers never fail because a notification could
not be stored or pushed. Failures are logged and dropped.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Sequence

from application.dtos.notifications import NotificationPayload
from application.ports.messenger import OutboundMessenger
from application.ports.realtime import RealtimePush
from core.logging_config import get_logger
from domain.common.clock import utc_now
from domain.common.exceptions import NotificationNotFoundException
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.notification.entity import (
    Notification,
    NotificationPriority,
    NotificationType,
    RelatedKind,
    RelatedRef,
)
from domain.user.entity import UserRole


logger = get_logger(__name__)


@dataclass(frozen=True)
class EventTemplate:
    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    # (related kind, context key holding the id)
    related: Optional[tuple[RelatedKind, str]] = None
    channels: tuple[str, ...] = ()


EVENT_TEMPLATES: dict[str, EventTemplate] = {
    "payment_received": EventTemplate(
        NotificationType.PAYMENT, "Payment received",
        "Payment of {amount} for booking #{order_id} is held in escrow.",
        related=(RelatedKind.PAYMENT, "payment_id"), channels=("email",),
    ),
    "payment_failed": EventTemplate(
        NotificationType.PAYMENT, "Payment failed",
        "Your payment for booking #{order_id} failed: {reason}",
        NotificationPriority.HIGH, (RelatedKind.PAYMENT, "payment_id"), ("email",),
    ),
    "refund_processed": EventTemplate(
        NotificationType.PAYMENT, "Refund processed",
        "A refund of {amount} for booking #{order_id} has been processed.",
        related=(RelatedKind.PAYMENT, "payment_id"), channels=("email",),
    ),
    "refund_under_review": EventTemplate(
        NotificationType.PAYMENT, "Refund under review",
        "Your refund request for booking #{order_id} is being reviewed by our team.",
        related=(RelatedKind.BOOKING, "order_id"),
    ),
    "refund_review_requested": EventTemplate(
        NotificationType.SYSTEM, "Refund needs review",
        "Refund for booking #{order_id} needs a manual decision: {reasons}",
        NotificationPriority.HIGH, (RelatedKind.BOOKING, "order_id"),
    ),
    "refund_reversal_pending": EventTemplate(
        NotificationType.SYSTEM, "Refund reversal pending",
        "Payment #{payment_id} was refunded but {amount} could not be recovered from artisan #{payee_id}.",
        NotificationPriority.HIGH, (RelatedKind.PAYMENT, "payment_id"),
    ),
    "payout_initiated": EventTemplate(
        NotificationType.PAYMENT, "Payout initiated",
        "A payout of {amount} is on its way to your account.",
        related=(RelatedKind.PAYOUT, "payout_id"), channels=("email",),
    ),
    "payout_failed": EventTemplate(
        NotificationType.PAYMENT, "Payout failed",
        "Payout #{payout_id} of {amount} failed: {reason}",
        NotificationPriority.HIGH, (RelatedKind.PAYOUT, "payout_id"),
    ),
    "escrow_released": EventTemplate(
        NotificationType.PAYMENT, "Payment released",
        "{amount} for booking #{order_id} has been released to your wallet.",
        related=(RelatedKind.PAYMENT, "payment_id"),
    ),
    "dispute_opened": EventTemplate(
        NotificationType.DISPUTE, "Dispute opened",
        "A {dispute_type} dispute was opened for booking #{order_id}.",
        NotificationPriority.HIGH, (RelatedKind.DISPUTE, "dispute_id"), ("email",),
    ),
    "dispute_message": EventTemplate(
        NotificationType.DISPUTE, "New dispute message",
        "{preview}",
        related=(RelatedKind.DISPUTE, "dispute_id"),
    ),
    "dispute_escalated": EventTemplate(
        NotificationType.DISPUTE, "Dispute escalated",
        "Dispute #{dispute_id} was escalated: {reason}",
        NotificationPriority.HIGH, (RelatedKind.DISPUTE, "dispute_id"),
    ),
    "dispute_resolved": EventTemplate(
        NotificationType.DISPUTE, "Dispute resolved",
        "Dispute #{dispute_id} was resolved ({resolution}).",
        NotificationPriority.HIGH, (RelatedKind.DISPUTE, "dispute_id"), ("email",),
    ),
    "new_message": EventTemplate(
        NotificationType.MESSAGE, "New message",
        "{preview}",
        related=(RelatedKind.CHAT, "chat_id"),
    ),
    "booking_update": EventTemplate(
        NotificationType.BOOKING, "Booking updated",
        "Booking #{order_id} is now {status}.",
        related=(RelatedKind.BOOKING, "order_id"),
    ),
}


class _Context(dict):
    def __missing__(self, key: str) -> str:
        return ""


def format_amount(amount: Any, currency: str = "USD") -> str:
    if not isinstance(amount, int):
        return str(amount)
    return f"{amount / 100:.2f} {currency}"


class NotificationService:

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        *,
        realtime: Optional[RealtimePush] = None,
        messenger: Optional[OutboundMessenger] = None,
        ttl_days: int = 30,
    ) -> None:
        self._uow_factory = uow_factory
        self._realtime = realtime
        self._messenger = messenger
        self._ttl_days = ttl_days

    def bind_realtime(self, realtime: RealtimePush) -> None:
        self._realtime = realtime

    # -------------------- sending --------------------

    async def send_notification(
        self,
        recipient_id: int,
        type: NotificationType | str,
        payload: NotificationPayload,
    ) -> Optional[Notification]:
        """Persist, push when online, and enqueue requested channels. Never raises."""
        try:
            related = RelatedRef.of(payload.related.kind, payload.related.id) if payload.related else None
            notification = Notification.build(
                recipient_id,
                type,
                payload.title,
                payload.message,
                ttl_days=self._ttl_days,
                priority=payload.priority,
                related=related,
                data=dict(payload.data),
            )
            async with self._uow_factory() as uow:
                notification = await uow.notifications.create(notification)
                recipient = await uow.users.get_by_id(recipient_id) if payload.channels else None
        except Exception as exc:
            logger.error("notification_persist_failed", recipient_id=recipient_id, error=str(exc), exc_info=True)
            return None

        await self._push(notification)
        if recipient is not None:
            self._fan_out(recipient, notification, payload.channels)
        logger.info("notification_sent", recipient_id=recipient_id, notification_id=notification.id, type=notification.type.value)
        return notification

    async def _push(self, notification: Notification) -> None:
        if self._realtime is None or not self._realtime.is_online(notification.recipient_id):
            return
        try:
            await self._realtime.send_to_user(notification.recipient_id, "notification", _to_push(notification))
        except Exception as exc:
            logger.warning("notification_push_failed", notification_id=notification.id, error=str(exc))

    def _fan_out(self, recipient, notification: Notification, channels: Sequence[str]) -> None:
        if self._messenger is None:
            return
        for channel in channels:
            try:
                if channel == "email" and recipient.email and recipient.notify_email:
                    self._messenger.enqueue_email(
                        recipient.email,
                        notification.title,
                        notification.message,
                        metadata={"notification_id": notification.id},
                    )
                elif channel == "sms" and recipient.phone and recipient.notify_sms:
                    self._messenger.enqueue_sms(
                        recipient.phone,
                        f"{notification.title}: {notification.message}",
                        metadata={"notification_id": notification.id},
                    )
            except Exception as exc:
                logger.warning("notification_channel_enqueue_failed", channel=channel, notification_id=notification.id, error=str(exc))

    def render(self, event: str, **context: Any) -> tuple[NotificationType, NotificationPayload]:
        template = EVENT_TEMPLATES[event]
        values = _Context(context)
        if "amount" in context:
            values["amount"] = format_amount(context["amount"], context.get("currency", "USD"))
        related = None
        if template.related is not None:
            kind, key = template.related
            if context.get(key) is not None:
                related = {"kind": kind, "id": int(context[key])}
        payload = NotificationPayload(
            title=template.title,
            message=template.message.format_map(values),
            priority=template.priority,
            related=related,
            data={"event": event, **{k: v for k, v in context.items() if isinstance(v, (str, int, float, bool))}},
            channels=list(context.get("channels", template.channels)),
        )
        return template.type, payload

    async def notify_event(self, recipient_id: int, event: str, **context: Any) -> Optional[Notification]:
        try:
            type_, payload = self.render(event, **context)
        except (KeyError, ValueError) as exc:
            logger.error("notification_render_failed", notification_event=event, error=str(exc))
            return None
        return await self.send_notification(recipient_id, type_, payload)

    async def notify_admins(self, event: str, **context: Any) -> int:
        try:
            async with self._uow_factory(readonly=True) as uow:
                admins = await uow.users.list_by_role(UserRole.ADMIN)
        except Exception as exc:
            logger.error("notification_admin_lookup_failed", notification_event=event, error=str(exc))
            return 0
        sent = 0
        for admin in admins:
            if await self.notify_event(admin.id, event, **context) is not None:
                sent += 1
        return sent

    # -------------------- recipient operations --------------------

    async def list_notifications(
        self,
        recipient_id: int,
        *,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> tuple[list[Notification], int]:
        async with self._uow_factory(readonly=True) as uow:
            items = await uow.notifications.list_for_recipient(
                recipient_id, unread_only=unread_only, type=type, skip=skip, limit=limit
            )
            unread = await uow.notifications.count_unread(recipient_id)
        return items, unread

    async def mark_read(self, recipient_id: int, notification_id: int) -> Notification:
        async with self._uow_factory() as uow:
            notification = await uow.notifications.get_by_id(notification_id)
            if notification is None or notification.recipient_id != recipient_id:
                raise NotificationNotFoundException(notification_id)
            if notification.mark_read():
                await uow.notifications.update(notification)
        return notification

    async def mark_many_read(self, recipient_id: int, ids: Sequence[int]) -> int:
        async with self._uow_factory() as uow:
            return await uow.notifications.mark_read(recipient_id, list(ids), utc_now())

    async def mark_all_read(self, recipient_id: int) -> int:
        async with self._uow_factory() as uow:
            return await uow.notifications.mark_read(recipient_id, None, utc_now())

    async def delete_notification(self, recipient_id: int, notification_id: int) -> bool:
        async with self._uow_factory() as uow:
            return await uow.notifications.delete(recipient_id, notification_id)

    async def clear_older_than(self, recipient_id: int, days: int) -> int:
        before = utc_now() - timedelta(days=days)
        async with self._uow_factory() as uow:
            count = await uow.notifications.delete_read_before(recipient_id, before)
        logger.info("notifications_cleared", recipient_id=recipient_id, days=days, count=count)
        return count

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        async with self._uow_factory() as uow:
            count = await uow.notifications.delete_expired(now)
        logger.info("notifications_purged", count=count)
        return count


def _to_push(notification: Notification) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type.value,
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority.value,
        "related": {"kind": notification.related.kind.value, "id": notification.related.id} if notification.related else None,
        "action_url": notification.action_url,
        "action_text": notification.action_text,
        "data": notification.data,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }
