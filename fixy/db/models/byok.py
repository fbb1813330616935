"""BYOK credential: a user's own provider API key, encrypted at rest."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text, UniqueConstraint, Uuid

from fixy.db.base import Base


class ByokCredential(Base):
    __tablename__ = "byok_credentials"
    __table_args__ = (UniqueConstraint("user_id", "provider", name="uq_byok_user_provider"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    provider = Column(String(50), nullable=False)  # openai, anthropic, google

    api_key_encrypted = Column(Text, nullable=False)  # v1:<b64(nonce || ciphertext)>
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))
