"""
Payout table
"""
from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, utcnow


class PayoutModel(Base):
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    artisan_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    currency = Column(String(3), nullable=False)
    net_amount = Column(BigInteger, nullable=False)
    processing_fee = Column(BigInteger, nullable=False, default=0)
    gross_amount = Column(BigInteger, nullable=False)
    period_start = Column(DateTime(timezone=True), nullable=False)
    period_end = Column(DateTime(timezone=True), nullable=False)
    payment_ids = Column(JSON, nullable=False, default=list)
    status = Column(String(20), nullable=False, default="pending", index=True)
    processor_payout_id = Column(String(200), nullable=True, unique=True)
    failure_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    def __repr__(self):
        return f"<PayoutModel(id={self.id}, artisan_id={self.artisan_id}, net={self.net_amount}, status='{self.status}')>"
