"""Realtime fan-out over Redis Pub/Sub.

Topics:
    chatroom:{id}  new-message, ai-thinking, ai-failed, typing, user-joined, user-left
    user:{id}      credit-notice

Delivery is at-least-once; clients dedupe on `message.id`. Publishing never
raises: a lost realtime push must not fail the write that produced it.
"""

import json
import uuid
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger(__name__)


class EventType:
    """Event type constants for chatroom and user channels."""

    NEW_MESSAGE = "new-message"
    AI_THINKING = "ai-thinking"
    AI_FAILED = "ai-failed"
    TYPING = "typing"
    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    CREDIT_NOTICE = "credit-notice"


def chatroom_topic(chatroom_id) -> str:
    return f"chatroom:{chatroom_id}"


def user_topic(user_id) -> str:
    return f"user:{user_id}"


def build_event(event_type: str, payload: dict, now: datetime | None = None) -> dict:
    """Flat envelope: `type`, `event_id`, `timestamp`, then the payload keys."""
    now = now or datetime.now(UTC)
    return {
        "type": event_type,
        "event_id": uuid.uuid4().hex,
        "timestamp": now.isoformat(),
        **payload,
    }


class Fanout:
    """Publishes typed events to chatroom and user topics."""

    def __init__(self, redis: Redis):
        self.redis = redis

    async def publish(self, topic: str, event_type: str, payload: dict) -> bool:
        """Publish one event. Returns False (and logs) instead of raising."""
        event = build_event(event_type, payload)
        try:
            await self.redis.publish(topic, json.dumps(event, default=str))
        except Exception as exc:
            logger.warning(
                "fanout_publish_failed",
                topic=topic,
                event_type=event_type,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return False
        return True

    async def new_message(self, chatroom_id, message: dict) -> bool:
        return await self.publish(chatroom_topic(chatroom_id), EventType.NEW_MESSAGE, {"message": message})

    async def ai_thinking(self, chatroom_id, agent_id, agent_name: str, reply_id: str) -> bool:
        return await self.publish(
            chatroom_topic(chatroom_id),
            EventType.AI_THINKING,
            {
                "chatroom_id": str(chatroom_id),
                "agent_id": str(agent_id),
                "agent_name": agent_name,
                "reply_id": reply_id,
            },
        )

    async def ai_failed(self, chatroom_id, agent_id, reason: str, reply_id: str | None = None) -> bool:
        return await self.publish(
            chatroom_topic(chatroom_id),
            EventType.AI_FAILED,
            {
                "chatroom_id": str(chatroom_id),
                "agent_id": str(agent_id),
                "reason": reason,
                "reply_id": reply_id,
            },
        )

    async def typing(self, chatroom_id, user_id, is_typing: bool) -> bool:
        return await self.publish(
            chatroom_topic(chatroom_id),
            EventType.TYPING,
            {"chatroom_id": str(chatroom_id), "user_id": str(user_id), "is_typing": is_typing},
        )

    async def presence(self, chatroom_id, user_id, joined: bool) -> bool:
        event_type = EventType.USER_JOINED if joined else EventType.USER_LEFT
        return await self.publish(
            chatroom_topic(chatroom_id),
            event_type,
            {"chatroom_id": str(chatroom_id), "user_id": str(user_id)},
        )

    async def credit_notice(self, user_id, kind: str, params: dict) -> bool:
        return await self.publish(user_topic(user_id), EventType.CREDIT_NOTICE, {"kind": kind, **params})
