"""Message model. Rows are immutable once written."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, Numeric, Text, Uuid

from fixy.db.base import Base


class Message(Base):
    __tablename__ = "messages"
    __table_args__ = (Index("ix_messages_chatroom_created", "chatroom_id", "created_at"),)

    # Autoincrement id breaks created_at ties in insertion order
    id = Column(Integer, primary_key=True, autoincrement=True)
    chatroom_id = Column(Uuid, ForeignKey("chatrooms.id"), nullable=False)

    # Exactly one of sender_id / agent_id is set
    sender_id = Column(Uuid, ForeignKey("users.id"), nullable=True)
    agent_id = Column(Uuid, ForeignKey("agents.id"), nullable=True)

    content = Column(Text, nullable=False)
    is_ai = Column(Boolean, nullable=False, default=False)
    credits_used = Column(Numeric(12, 2), nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
