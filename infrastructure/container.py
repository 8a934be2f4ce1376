"""
Composition root: builds every service from settings.

The API builds one container in its lifespan; Celery tasks build their own
per run. Tests pass in-memory collaborators through the keyword overrides.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from application.ports.locks import LockProvider
from application.ports.messenger import OutboundMessenger
from application.ports.payment_processor import PaymentProcessor
from application.ports.realtime import RealtimeBrokerPort
from application.services.booking_service import BookingService
from application.services.chat_service import ChatService
from application.services.dispute_service import DisputeService
from application.services.ledger_service import LedgerService
from application.services.notification_service import NotificationService
from application.services.payment_service import PaymentService
from application.services.payout_service import PayoutService
from application.services.realtime_service import RealtimeService, RoomAuthorizer
from application.services.refund_service import RefundService
from application.services.token_service import TokenService
from application.services.webhook_service import WebhookService
from core.config import Settings
from core.logging_config import get_logger
from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.cipher import FernetMessageCipher
from infrastructure.external.cache import RedisClient, init_redis_client, shutdown_redis_client
from infrastructure.external.payments import get_payment_processor
from infrastructure.locks import InProcessLockProvider, RedisLockProvider
from infrastructure.memory.store import MemoryStore, memory_uow_factory
from infrastructure.realtime.brokers import InMemoryRealtimeBroker, RedisRealtimeBroker
from infrastructure.realtime.connection_manager import ConnectionManager


logger = get_logger(__name__)


@dataclass
class Container:
    settings: Settings
    uow_factory: Callable[..., AbstractUnitOfWork]
    processor: PaymentProcessor
    locks: LockProvider
    tokens: TokenService
    ledger: LedgerService
    notifications: NotificationService
    payments: PaymentService
    disputes: DisputeService
    payouts: PayoutService
    refunds: RefundService
    chats: ChatService
    bookings: BookingService
    webhooks: WebhookService
    realtime: RealtimeService
    connections: ConnectionManager
    store: Optional[MemoryStore] = None
    redis: Optional[RedisClient] = None
    _closers: list[Callable[[], Any]] = field(default_factory=list)

    async def start(self) -> None:
        await self.realtime.start()

    async def aclose(self) -> None:
        await self.realtime.aclose()
        for close in reversed(self._closers):
            await close()


async def build_container(
    settings: Settings,
    *,
    uow_factory: Optional[Callable[..., AbstractUnitOfWork]] = None,
    processor: Optional[PaymentProcessor] = None,
    locks: Optional[LockProvider] = None,
    broker: Optional[RealtimeBrokerPort] = None,
    messenger: Optional[OutboundMessenger] = None,
    store: Optional[MemoryStore] = None,
) -> Container:
    closers: list[Callable[[], Any]] = []

    redis: Optional[RedisClient] = None
    if settings.redis.url and (locks is None or broker is None):
        redis = await init_redis_client(settings.redis.url)
        closers.append(shutdown_redis_client)

    if uow_factory is None:
        if settings.uses_memory_store:
            store = store or MemoryStore()
            uow_factory = memory_uow_factory(store)
        else:
            from infrastructure.database import dispose_engine
            from infrastructure.unit_of_work import sqlalchemy_uow_factory

            uow_factory = sqlalchemy_uow_factory()
            closers.append(dispose_engine)

    escrow = settings.escrow
    if locks is None:
        if redis is not None:
            locks = RedisLockProvider(
                redis, default_timeout=escrow.lock_timeout_seconds, default_wait=escrow.lock_wait_seconds
            )
        else:
            locks = InProcessLockProvider(
                default_timeout=escrow.lock_timeout_seconds, default_wait=escrow.lock_wait_seconds
            )

    if broker is None:
        broker = RedisRealtimeBroker(redis) if redis is not None and settings.REALTIME_BROKER == "redis" else InMemoryRealtimeBroker()

    if processor is None:
        processor = get_payment_processor()

    if messenger is None and settings.celery.broker_url:
        from infrastructure.tasks.utils.dispatcher import TaskDispatcher

        messenger = TaskDispatcher()

    tokens = TokenService(
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM,
        expire_minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    )
    ledger = LedgerService(uow_factory, locks, currency=escrow.currency)
    notifications = NotificationService(
        uow_factory, messenger=messenger, ttl_days=settings.notifications.ttl_days
    )
    payments = PaymentService(
        uow_factory,
        processor,
        locks,
        ledger,
        notifications,
        fee_rate=str(escrow.platform_fee_rate),
        processor_timeout=escrow.processor_timeout_seconds,
        escrow_conditions=escrow.conditions,
    )
    disputes = DisputeService(
        uow_factory, payments, locks, notifications, preview_length=settings.chat.preview_length
    )
    payout_cfg = settings.payout
    payouts = PayoutService(
        uow_factory,
        processor,
        locks,
        ledger,
        notifications,
        hold_days=payout_cfg.hold_days,
        fee_rate=str(payout_cfg.fee_rate),
        fee_fixed=payout_cfg.fee_fixed,
        batch_limit=payout_cfg.batch_limit,
        job_lock_timeout=payout_cfg.job_lock_timeout,
        processor_timeout=escrow.processor_timeout_seconds,
        reconciliation_days=payout_cfg.reconciliation_days,
    )
    refunds = RefundService(
        uow_factory,
        payments,
        notifications,
        window_hours=escrow.auto_refund_window_hours,
        cooldown_days=escrow.auto_refund_cooldown_days,
        reasons=escrow.auto_refund_reasons,
    )
    chat_cfg = settings.chat
    chats = ChatService(
        uow_factory,
        locks,
        notifications,
        cipher=FernetMessageCipher.from_settings(chat_cfg.encryption_key, settings.SECRET_KEY),
        edit_window_minutes=chat_cfg.edit_window_minutes,
        encrypt_by_default=chat_cfg.encrypt_by_default,
        default_expiration_hours=chat_cfg.default_expiration_hours,
        preview_length=chat_cfg.preview_length,
    )
    bookings = BookingService(uow_factory, payments, chats, notifications, currency=escrow.currency)
    webhooks = WebhookService(processor, payments, disputes, payouts)

    connections = ConnectionManager(
        queue_max=settings.REALTIME_WS_SEND_QUEUE_MAX,
        overflow_policy=settings.REALTIME_WS_SEND_OVERFLOW_POLICY,
    )
    realtime = RealtimeService(
        broker=broker,
        connections=connections,
        tokens=tokens,
        authorizer=RoomAuthorizer(uow_factory),
        uow_factory=uow_factory,
    )
    # the registry and the services that push through it reference each other
    notifications.bind_realtime(realtime)
    chats.bind_realtime(realtime)
    bookings.bind_realtime(realtime)

    logger.info(
        "container_built",
        store="memory" if settings.uses_memory_store else "sql",
        processor=processor.provider,
        locks=type(locks).__name__,
        broker=type(broker).__name__,
    )
    return Container(
        settings=settings,
        uow_factory=uow_factory,
        processor=processor,
        locks=locks,
        tokens=tokens,
        ledger=ledger,
        notifications=notifications,
        payments=payments,
        disputes=disputes,
        payouts=payouts,
        refunds=refunds,
        chats=chats,
        bookings=bookings,
        webhooks=webhooks,
        realtime=realtime,
        connections=connections,
        store=store,
        redis=redis,
        _closers=closers,
    )
