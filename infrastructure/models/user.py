"""
User table
"""
from sqlalchemy import Boolean, Column, DateTime, Integer, String

from .base import Base, utcnow


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)
    role = Column(String(20), nullable=False, default="user", index=True)
    payout_account_id = Column(String(100), nullable=True, comment="Connected account for transfers")
    customer_account_id = Column(String(100), nullable=True)
    notify_email = Column(Boolean, default=True, nullable=False)
    notify_sms = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<UserModel(id={self.id}, email='{self.email}', role='{self.role}')>"
