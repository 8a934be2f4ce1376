"""
Wallet and wallet transaction tables
"""
from sqlalchemy import JSON, BigInteger, Boolean, Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, utcnow


class WalletModel(Base):
    __tablename__ = "wallets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True, index=True)
    balance = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="USD")
    is_locked = Column(Boolean, nullable=False, default=False)
    last_activity = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<WalletModel(user_id={self.user_id}, balance={self.balance})>"


class WalletTransactionModel(Base):
    __tablename__ = "wallet_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    amount = Column(BigInteger, nullable=False)
    reference = Column(String(200), nullable=False, unique=True, comment="Idempotency key, globally unique")
    description = Column(Text, nullable=False, default="")
    status = Column(String(20), nullable=False, default="completed")
    related_order_id = Column(Integer, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self):
        return f"<WalletTransactionModel(reference='{self.reference}', type='{self.type}', amount={self.amount})>"
