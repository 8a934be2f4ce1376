"""Infrastructure models package exports."""
from .base import Base, metadata
from .user import UserModel
from .order import OrderModel
from .payment import PaymentModel
from .dispute import DisputeModel
from .payout import PayoutModel
from .wallet import WalletModel, WalletTransactionModel
from .notification import NotificationModel
from .chat import ChatModel, MessageModel

__all__ = [
    "Base",
    "metadata",
    "UserModel",
    "OrderModel",
    "PaymentModel",
    "DisputeModel",
    "PayoutModel",
    "WalletModel",
    "WalletTransactionModel",
    "NotificationModel",
    "ChatModel",
    "MessageModel",
]
