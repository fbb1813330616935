"""Reply lifecycle schemas."""

import uuid
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel


class ReplyStatus(str, Enum):
    """AI reply lifecycle states."""

    REQUESTED = "requested"
    AUTHORIZED = "authorized"
    CONTEXT_BUILT = "context_built"
    PROVIDER_CALLED = "provider_called"
    PERSISTED = "persisted"
    BILLED = "billed"
    DELIVERED = "delivered"
    FAILED = "failed"


TERMINAL_STATUSES = frozenset({ReplyStatus.DELIVERED, ReplyStatus.FAILED})


class FailureReason(str, Enum):
    """Why an AI reply ended in FAILED. Sent to the room in `ai-failed` events."""

    REQUIRES_BYOK = "requires_byok"
    CREDENTIAL_UNAVAILABLE = "credential_unavailable"
    TIMEOUT = "timeout"
    PROVIDER_ERROR = "provider_error"
    STORAGE_ERROR = "storage_error"
    CANCELLED = "cancelled"
    INTERNAL_ERROR = "internal_error"


class ReplyRequest(BaseModel):
    """Everything the background leg needs, captured at authorization time."""

    reply_id: str
    user_id: uuid.UUID
    chatroom_id: uuid.UUID
    agent_id: uuid.UUID
    agent_name: str
    model_id: str
    system_prompt: str = ""
    temperature: float
    max_tokens: int
    requires_credit: bool
    trigger_message_id: int


class ReplyOutcome(BaseModel):
    reply_id: str
    status: ReplyStatus
    message_id: int | None = None
    credits_charged: Decimal = Decimal("0")
    failure_reason: FailureReason | None = None
    billing_error: str | None = None
