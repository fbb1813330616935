"""Credit account and append-only transaction log."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Uuid

from fixy.db.base import Base


class CreditAccount(Base):
    """One row per user. Mutated only by CreditLedger."""

    __tablename__ = "credits"

    user_id = Column(Uuid, ForeignKey("users.id"), primary_key=True)
    used = Column(Numeric(12, 2), nullable=False, default=0)
    limit_amount = Column(Numeric(12, 2), nullable=False, default=0)
    reset_date = Column(DateTime(timezone=True), nullable=False)

    updated_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), onupdate=lambda: datetime.now(timezone.utc))


class CreditTransaction(Base):
    """Immutable ledger entry. Negative for usage, positive for top-ups, zero for resets."""

    __tablename__ = "credit_transactions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    kind = Column(String(20), nullable=False)  # usage, top_up, reset
    description = Column(String(500), nullable=False, default="")

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc), index=True)
