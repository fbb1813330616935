"""User model: plan and account flags. Users are never hard-deleted."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String, Uuid

from fixy.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)

    # Plan (Plan enum values)
    plan = Column(String(50), nullable=False, default="Trial")
    trial_used = Column(Boolean, nullable=False, default=False)

    # Flags
    is_admin = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
