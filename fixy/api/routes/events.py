"""Realtime event stream for a chatroom (SSE)."""

import asyncio
import time
import uuid

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from fixy.api.deps import get_services
from fixy.core.auth import AuthUser, require_auth
from fixy.realtime.fanout import chatroom_topic, user_topic
from fixy.services.container import Services

router = APIRouter()

_EVENTS_HEARTBEAT_INTERVAL = 15  # seconds, below typical proxy idle timeouts


@router.get("/chatrooms/{chatroom_id}/events")
async def stream_chatroom_events(
    chatroom_id: uuid.UUID,
    request: Request,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Stream chatroom events and the caller's own notices via SSE.

    Subscribes to `chatroom:{id}` (new-message, ai-thinking, ai-failed,
    typing, presence) and `user:{id}` (credit-notice). Sends a heartbeat
    every 15 seconds of silence. Announces user-joined on connect and
    user-left on disconnect.

    Delivery is at-least-once: clients dedupe by `message.id`.

    Raises:
        NotFoundError / AccessDenied: chatroom missing or caller not a participant
    """
    async with services.session_factory() as session:
        await services.chatrooms.require_participant(session, chatroom_id, user.user_id)

    redis = services.redis
    fanout = services.fanout
    channels = [chatroom_topic(chatroom_id), user_topic(user.user_id)]

    async def event_generator():
        pubsub = redis.pubsub()
        await pubsub.subscribe(*channels)
        await fanout.presence(chatroom_id, user.user_id, joined=True)
        last_heartbeat = time.monotonic()

        try:
            while True:
                if await request.is_disconnected():
                    return

                now = time.monotonic()
                if now - last_heartbeat >= _EVENTS_HEARTBEAT_INTERVAL:
                    yield "event: heartbeat\ndata: {}\n\n"
                    last_heartbeat = now

                # Blocks up to 1 second waiting for a message
                try:
                    message = await asyncio.wait_for(
                        pubsub.get_message(ignore_subscribe_messages=True, timeout=1.0),
                        timeout=2.0,
                    )
                except TimeoutError:
                    continue

                if message and message["type"] == "message":
                    yield f"data: {message['data']}\n\n"
                    last_heartbeat = time.monotonic()
        finally:
            await pubsub.unsubscribe(*channels)
            await pubsub.aclose()
            await fanout.presence(chatroom_id, user.user_id, joined=False)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
