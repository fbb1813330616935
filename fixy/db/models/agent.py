"""Agent model: a catalog model plus prompt config, bound to one chatroom."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, String, Uuid

from fixy.db.base import Base


class Agent(Base):
    __tablename__ = "agents"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    chatroom_id = Column(Uuid, ForeignKey("chatrooms.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    model_id = Column(String(100), nullable=False)  # catalog id, e.g. "gpt-4o"

    # {"system_prompt": str, "temperature": float, "max_tokens": int}
    config = Column(JSON, nullable=False, default=dict)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
