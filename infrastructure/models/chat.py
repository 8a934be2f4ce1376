"""
Chat and message tables
"""
from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Index, Integer, String, Text, UniqueConstraint

from .base import Base, utcnow


class ChatModel(Base):
    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    artisan_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("orders.id"), nullable=True)
    status = Column(String(20), nullable=False, default="active")
    settings = Column(JSON, nullable=False, default=dict)
    last_message_id = Column(Integer, nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("user_id", "artisan_id", "booking_id", name="uq_chats_pair_booking"),)


class MessageModel(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    sender_id = Column(Integer, nullable=False)
    content = Column(Text, nullable=False, comment="Ciphertext when encrypted")
    type = Column(String(20), nullable=False, default="text")
    encrypted = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default="sent")
    attachments = Column(JSON, nullable=False, default=list)
    delivered_to = Column(JSON, nullable=False, default=list)
    read_by = Column(JSON, nullable=False, default=list)
    reactions = Column(JSON, nullable=False, default=list)
    edited = Column(Boolean, nullable=False, default=False)
    edit_history = Column(JSON, nullable=False, default=list)
    reply_to_id = Column(Integer, nullable=True)
    extra_metadata = Column("metadata", JSON, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (Index("ix_messages_chat_id_id", "chat_id", "id"),)
