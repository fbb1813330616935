"""Pydantic schemas for chatrooms, agents and messages."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from fixy.core.clock import as_utc


class MessageOut(BaseModel):
    """A stored message as clients and realtime events see it."""

    id: int
    chatroom_id: str
    content: str
    is_ai: bool
    sender_id: str | None = None
    sender_name: str | None = None
    agent_id: str | None = None
    agent_name: str | None = None
    credits_used: float = 0
    created_at: datetime

    @classmethod
    def from_row(cls, message, sender_name: str | None = None, agent_name: str | None = None) -> "MessageOut":
        return cls(
            id=message.id,
            chatroom_id=str(message.chatroom_id),
            content=message.content,
            is_ai=message.is_ai,
            sender_id=str(message.sender_id) if message.sender_id else None,
            sender_name=sender_name,
            agent_id=str(message.agent_id) if message.agent_id else None,
            agent_name=agent_name,
            credits_used=float(message.credits_used or 0),
            created_at=as_utc(message.created_at),
        )


class AgentConfig(BaseModel):
    system_prompt: str = Field(default="", max_length=8000)
    temperature: float | None = Field(default=None, ge=0, le=2)
    max_tokens: int | None = Field(default=None, ge=1, le=32_000)


class AgentOut(BaseModel):
    id: str
    chatroom_id: str
    name: str
    model_id: str
    config: dict = Field(default_factory=dict)
    is_active: bool = True
    created_at: datetime

    @classmethod
    def from_row(cls, agent) -> "AgentOut":
        return cls(
            id=str(agent.id),
            chatroom_id=str(agent.chatroom_id),
            name=agent.name,
            model_id=agent.model_id,
            config=agent.config or {},
            is_active=agent.is_active,
            created_at=as_utc(agent.created_at),
        )


class ChatroomOut(BaseModel):
    id: str
    title: str
    type: Literal["private", "group"]
    owner_id: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, chatroom) -> "ChatroomOut":
        return cls(
            id=str(chatroom.id),
            title=chatroom.title,
            type=chatroom.type,
            owner_id=str(chatroom.owner_id),
            created_at=as_utc(chatroom.created_at),
            updated_at=as_utc(chatroom.updated_at),
        )
