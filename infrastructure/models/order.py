"""
Order (booking) table
"""
from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, Index, Integer, String, Text

from .base import Base, utcnow


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    artisan_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(BigInteger, nullable=False, comment="Minor units")
    currency = Column(String(3), nullable=False, default="USD")
    status = Column(String(30), nullable=False, default="pending", index=True)
    payment_status = Column(String(30), nullable=False, default="unpaid")
    description = Column(Text, nullable=True)
    scheduled_at = Column(DateTime(timezone=True), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    __table_args__ = (Index("ix_orders_parties", "user_id", "artisan_id"),)

    def __repr__(self):
        return f"<OrderModel(id={self.id}, status='{self.status}', amount={self.amount})>"
