"""
Dispute table
"""
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Text

from .base import Base, utcnow


class DisputeModel(Base):
    __tablename__ = "disputes"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, index=True)
    raised_by = Column(Integer, nullable=False, index=True)
    against = Column(Integer, nullable=False, index=True)
    type = Column(String(30), nullable=False)
    description = Column(Text, nullable=False)
    status = Column(String(30), nullable=False, default="open", index=True)
    evidence = Column(JSON, nullable=False, default=list)
    messages = Column(JSON, nullable=False, default=list)
    resolution = Column(JSON, nullable=True)
    escalation = Column(JSON, nullable=True)
    processor_dispute_id = Column(String(200), nullable=True, unique=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<DisputeModel(id={self.id}, payment_id={self.payment_id}, status='{self.status}')>"
