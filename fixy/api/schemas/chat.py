"""Request and response bodies for chat routes."""

from typing import Literal

from pydantic import BaseModel, Field

from fixy.schemas.chat import AgentConfig, MessageOut


class CreateChatroomRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    type: Literal["private", "group"] = "private"


class AddParticipantRequest(BaseModel):
    user_id: str


class AddAgentRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    model_id: str
    config: AgentConfig = Field(default_factory=AgentConfig)


class SendMessageRequest(BaseModel):
    content: str = Field(..., min_length=1)
    agent_id: str | None = None


class SendMessageResponse(BaseModel):
    message: MessageOut
    reply_id: str | None = None


class TypingRequest(BaseModel):
    is_typing: bool = True


class ModelAvailability(BaseModel):
    id: str
    display_name: str
    provider: str
    credit_cost: float
    requires_elite: bool
    requires_byok: bool
    available: bool
    requires_credit: bool
    reason: str | None = None


class ReplyStatusResponse(BaseModel):
    reply_id: str
    status: str
    chatroom_id: str
    agent_id: str
    model_id: str
    status_message: str = ""
    message_id: int | None = None
    failure_reason: str | None = None
    created_at: str
    updated_at: str
