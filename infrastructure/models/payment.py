"""
Payment table

Escrow and refund details are value objects of the payment aggregate and are
stored as JSON next to the row; the release time is duplicated into a column
so the payout batch can select on it.
"""
from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, Text

from .base import Base, utcnow


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True, comment="Not unique: failed attempts may be retried")
    payer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    payee_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    amount = Column(BigInteger, nullable=False, comment="Minor units")
    platform_fee = Column(BigInteger, nullable=False, default=0)
    currency = Column(String(3), nullable=False)
    payment_method = Column(String(30), nullable=False)

    status = Column(String(30), nullable=False, default="pending", index=True)
    intent_id = Column(String(200), nullable=True, unique=True, index=True)
    client_secret = Column(String(500), nullable=True)
    transfer_id = Column(String(200), nullable=True)

    escrow = Column(JSON, nullable=False, default=dict)
    released_at = Column(DateTime(timezone=True), nullable=True, index=True)
    refund = Column(JSON, nullable=True)

    dispute_id = Column(Integer, nullable=True)
    payout_id = Column(Integer, nullable=True, index=True)
    released_amount = Column(BigInteger, nullable=False, default=0)
    payee_amount = Column(BigInteger, nullable=False, default=0)
    failure_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_payments_payout_candidates", "status", "payout_id", "released_at"),
    )

    def __repr__(self):
        return f"<PaymentModel(id={self.id}, order_id={self.order_id}, amount={self.amount}, status='{self.status}')>"
