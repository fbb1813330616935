"""Chatroom and participant membership."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Uuid

from fixy.db.base import Base


class Chatroom(Base):
    __tablename__ = "chatrooms"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default="private")  # private, group
    owner_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))


class ChatroomParticipant(Base):
    __tablename__ = "chatroom_participants"

    chatroom_id = Column(Uuid, ForeignKey("chatrooms.id"), primary_key=True)
    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True, index=True)
    joined_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
