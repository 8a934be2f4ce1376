"""In-process repository implementations over MemoryStore rows."""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Iterable, List, Optional, Sequence

from domain.chat.entity import Chat, Message
from domain.chat.repository import ChatRepository, MessageRepository
from domain.common.clock import utc_now
from domain.common.exceptions import DuplicateReferenceException
from domain.dispute.entity import Dispute, DisputeStatus
from domain.dispute.repository import DisputeRepository
from domain.notification.entity import Notification, NotificationType
from domain.notification.repository import NotificationRepository
from domain.order.entity import Order
from domain.order.repository import OrderRepository
from domain.payment.entity import Payment, PaymentStatus
from domain.payment.repository import PaymentRepository
from domain.payout.entity import Payout
from domain.payout.repository import PayoutRepository
from domain.user.entity import User, UserRole
from domain.user.repository import UserRepository
from domain.wallet.entity import Wallet, WalletTransaction
from domain.wallet.repository import WalletRepository

if TYPE_CHECKING:
    from infrastructure.memory.store import MemoryStore, _Staging


class _MemoryRepository:
    table: str

    def __init__(self, staging: "_Staging", store: "MemoryStore") -> None:
        self._staging = staging
        self._store = store

    def _get(self, row_id: Optional[int]) -> Optional[Any]:
        return self._staging.get(self.table, row_id)

    def _insert(self, entity: Any) -> Any:
        entity.id = self._store.next_id(self.table)
        self._staging.put(self.table, entity.id, entity)
        return entity

    def _save(self, entity: Any) -> Any:
        self._staging.put(self.table, entity.id, entity)
        return entity

    def _where(self, predicate: Callable[[Any], bool]) -> List[Any]:
        return [row for row in self._staging.scan(self.table) if predicate(row)]

    def _first(self, predicate: Callable[[Any], bool]) -> Optional[Any]:
        for row in self._staging.scan(self.table):
            if predicate(row):
                return row
        return None


def _page(rows: Iterable[Any], skip: int, limit: int) -> List[Any]:
    return list(rows)[skip : skip + limit]


class MemoryUserRepository(_MemoryRepository, UserRepository):
    table = "users"

    async def create(self, user: User) -> User:
        return self._insert(user)

    async def get_by_id(self, user_id: int) -> Optional[User]:
        return self._get(user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        return self._first(lambda u: u.email == email)

    async def list_by_role(self, role: UserRole, *, active_only: bool = True) -> List[User]:
        return self._where(lambda u: u.role == role and (u.is_active or not active_only))

    async def update(self, user: User) -> User:
        user.updated_at = utc_now()
        return self._save(user)


class MemoryOrderRepository(_MemoryRepository, OrderRepository):
    table = "orders"

    async def create(self, order: Order) -> Order:
        return self._insert(order)

    async def get_by_id(self, order_id: int, *, for_update: bool = False) -> Optional[Order]:
        return self._get(order_id)

    async def update(self, order: Order) -> Order:
        return self._save(order)

    async def list_by_user(self, user_id: int, skip: int = 0, limit: int = 100) -> List[Order]:
        rows = self._where(lambda o: o.is_party(user_id))
        return _page(sorted(rows, key=lambda o: o.id, reverse=True), skip, limit)


class MemoryPaymentRepository(_MemoryRepository, PaymentRepository):
    table = "payments"

    async def create(self, payment: Payment) -> Payment:
        return self._insert(payment)

    async def get_by_id(self, payment_id: int, *, for_update: bool = False) -> Optional[Payment]:
        return self._get(payment_id)

    async def get_by_order_id(self, order_id: int, *, for_update: bool = False) -> Optional[Payment]:
        rows = self._where(lambda p: p.order_id == order_id)
        return rows[-1] if rows else None

    async def get_by_intent_id(self, intent_id: str, *, for_update: bool = False) -> Optional[Payment]:
        return self._first(lambda p: p.intent_id == intent_id)

    async def update(self, payment: Payment) -> Payment:
        payment.updated_at = utc_now()
        return self._save(payment)

    async def list_by_user(
        self,
        user_id: int,
        skip: int = 0,
        limit: int = 100,
        status: Optional[PaymentStatus] = None,
    ) -> List[Payment]:
        rows = self._where(
            lambda p: user_id in (p.payer_id, p.payee_id) and (status is None or p.status == status)
        )
        return _page(sorted(rows, key=lambda p: p.id, reverse=True), skip, limit)

    async def list_releasable_for_payout(self, released_before: datetime, limit: int = 1000) -> List[Payment]:
        rows = self._where(
            lambda p: p.status == PaymentStatus.RELEASED
            and p.payout_id is None
            and p.escrow.released_at is not None
            and p.escrow.released_at <= released_before
        )
        return rows[:limit]

    async def claim_for_payout(self, payment_ids: Sequence[int], payout_id: int) -> int:
        claimed = 0
        for payment_id in payment_ids:
            payment = self._get(payment_id)
            if payment is None or payment.payout_id is not None:
                continue
            payment.payout_id = payout_id
            self._save(payment)
            claimed += 1
        return claimed

    async def list_released_between(self, start: datetime, end: datetime) -> List[Payment]:
        return self._where(
            lambda p: p.escrow.released_at is not None and start <= p.escrow.released_at < end
        )


class MemoryDisputeRepository(_MemoryRepository, DisputeRepository):
    table = "disputes"

    async def create(self, dispute: Dispute) -> Dispute:
        return self._insert(dispute)

    async def get_by_id(self, dispute_id: int, *, for_update: bool = False) -> Optional[Dispute]:
        return self._get(dispute_id)

    async def get_by_processor_dispute_id(self, processor_dispute_id: str) -> Optional[Dispute]:
        return self._first(lambda d: d.processor_dispute_id == processor_dispute_id)

    async def get_active_for_payment(self, payment_id: int) -> Optional[Dispute]:
        return self._first(lambda d: d.payment_id == payment_id and not d.is_terminal)

    async def update(self, dispute: Dispute) -> Dispute:
        return self._save(dispute)

    async def list_for_user(
        self,
        user_id: Optional[int],
        skip: int = 0,
        limit: int = 50,
        status: Optional[DisputeStatus] = None,
    ) -> List[Dispute]:
        rows = self._where(
            lambda d: (user_id is None or d.is_party(user_id)) and (status is None or d.status == status)
        )
        return _page(sorted(rows, key=lambda d: d.id, reverse=True), skip, limit)


class MemoryPayoutRepository(_MemoryRepository, PayoutRepository):
    table = "payouts"

    async def create(self, payout: Payout) -> Payout:
        return self._insert(payout)

    async def get_by_id(self, payout_id: int, *, for_update: bool = False) -> Optional[Payout]:
        return self._get(payout_id)

    async def get_by_processor_id(self, processor_payout_id: str, *, for_update: bool = False) -> Optional[Payout]:
        return self._first(lambda p: p.processor_payout_id == processor_payout_id)

    async def update(self, payout: Payout) -> Payout:
        return self._save(payout)

    async def list_by_artisan(self, artisan_id: int, skip: int = 0, limit: int = 50) -> List[Payout]:
        rows = self._where(lambda p: p.artisan_id == artisan_id)
        return _page(sorted(rows, key=lambda p: p.id, reverse=True), skip, limit)


class MemoryWalletRepository(_MemoryRepository, WalletRepository):
    table = "wallets"

    async def get_by_user_id(self, user_id: int, *, for_update: bool = False) -> Optional[Wallet]:
        return self._first(lambda w: w.user_id == user_id)

    async def create(self, wallet: Wallet) -> Wallet:
        return self._insert(wallet)

    async def update(self, wallet: Wallet) -> Wallet:
        return self._save(wallet)

    async def add_transaction(self, tx: WalletTransaction) -> WalletTransaction:
        if await self.get_transaction(tx.reference) is not None:
            raise DuplicateReferenceException(tx.reference)
        tx.id = self._store.next_id("wallet_transactions")
        tx.created_at = tx.created_at or utc_now()
        self._staging.put("wallet_transactions", tx.id, tx)
        return tx

    async def update_transaction(self, tx: WalletTransaction) -> WalletTransaction:
        self._staging.put("wallet_transactions", tx.id, tx)
        return tx

    async def get_transaction(self, reference: str) -> Optional[WalletTransaction]:
        for tx in self._staging.scan("wallet_transactions"):
            if tx.reference == reference:
                return tx
        return None

    async def list_transactions(self, user_id: int, skip: int = 0, limit: int = 50) -> List[WalletTransaction]:
        log = await self.all_transactions(user_id)
        return _page(reversed(log), skip, limit)

    async def all_transactions(self, user_id: int) -> List[WalletTransaction]:
        return [tx for tx in self._staging.scan("wallet_transactions") if tx.user_id == user_id]


class MemoryNotificationRepository(_MemoryRepository, NotificationRepository):
    table = "notifications"

    async def create(self, notification: Notification) -> Notification:
        return self._insert(notification)

    async def get_by_id(self, notification_id: int) -> Optional[Notification]:
        return self._get(notification_id)

    async def update(self, notification: Notification) -> Notification:
        return self._save(notification)

    async def list_for_recipient(
        self,
        recipient_id: int,
        *,
        unread_only: bool = False,
        type: Optional[NotificationType] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        rows = self._where(
            lambda n: n.recipient_id == recipient_id
            and (not unread_only or not n.read)
            and (type is None or n.type == type)
        )
        return _page(sorted(rows, key=lambda n: n.id, reverse=True), skip, limit)

    async def count_unread(self, recipient_id: int) -> int:
        return len(self._where(lambda n: n.recipient_id == recipient_id and not n.read))

    async def mark_read(self, recipient_id: int, ids: Optional[Sequence[int]], read_at: datetime) -> int:
        wanted = set(ids) if ids is not None else None
        count = 0
        for notification in self._where(lambda n: n.recipient_id == recipient_id and not n.read):
            if wanted is not None and notification.id not in wanted:
                continue
            notification.read = True
            notification.read_at = read_at
            self._save(notification)
            count += 1
        return count

    async def delete(self, recipient_id: int, notification_id: int) -> bool:
        notification = self._get(notification_id)
        if notification is None or notification.recipient_id != recipient_id:
            return False
        self._staging.delete(self.table, notification_id)
        return True

    async def delete_read_before(self, recipient_id: int, before: datetime) -> int:
        doomed = self._where(
            lambda n: n.recipient_id == recipient_id and n.read and n.created_at is not None and n.created_at < before
        )
        for notification in doomed:
            self._staging.delete(self.table, notification.id)
        return len(doomed)

    async def delete_expired(self, now: datetime) -> int:
        doomed = self._where(lambda n: n.is_expired(now))
        for notification in doomed:
            self._staging.delete(self.table, notification.id)
        return len(doomed)


class MemoryChatRepository(_MemoryRepository, ChatRepository):
    table = "chats"

    async def create(self, chat: Chat) -> Chat:
        return self._insert(chat)

    async def get_by_id(self, chat_id: int) -> Optional[Chat]:
        return self._get(chat_id)

    async def find(self, user_id: int, artisan_id: int, booking_id: Optional[int]) -> Optional[Chat]:
        return self._first(
            lambda c: c.user_id == user_id and c.artisan_id == artisan_id and c.booking_id == booking_id
        )

    async def update(self, chat: Chat) -> Chat:
        return self._save(chat)

    async def list_for_user(self, user_id: int, skip: int = 0, limit: int = 50) -> List[Chat]:
        rows = self._where(lambda c: c.is_participant(user_id))
        rows.sort(key=lambda c: (c.last_message_id or 0, c.id), reverse=True)
        return _page(rows, skip, limit)


class MemoryMessageRepository(_MemoryRepository, MessageRepository):
    table = "messages"

    async def create(self, message: Message) -> Message:
        return self._insert(message)

    async def get_by_id(self, message_id: int, *, for_update: bool = False) -> Optional[Message]:
        return self._get(message_id)

    async def update(self, message: Message) -> Message:
        return self._save(message)

    async def list_for_chat(self, chat_id: int, *, before_id: Optional[int] = None, limit: int = 50) -> List[Message]:
        rows = self._where(lambda m: m.chat_id == chat_id and (before_id is None or m.id < before_id))
        rows.reverse()
        return rows[:limit]

    async def list_unread(self, chat_id: int, user_id: int) -> List[Message]:
        return self._where(lambda m: m.chat_id == chat_id and m.sender_id != user_id and not m.has_read(user_id))

    async def delete_expired(self, now: datetime) -> int:
        doomed = self._where(lambda m: m.expires_at is not None and m.expires_at <= now)
        for message in doomed:
            self._staging.delete(self.table, message.id)
        return len(doomed)
