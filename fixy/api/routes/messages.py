"""Message history, send and typing routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, Query

from fixy.api.deps import get_services
from fixy.api.schemas.chat import SendMessageRequest, SendMessageResponse, TypingRequest
from fixy.core.auth import AuthUser, require_auth
from fixy.schemas.chat import MessageOut
from fixy.services.container import Services

router = APIRouter()


@router.get("/chatrooms/{chatroom_id}/messages", response_model=list[MessageOut])
async def list_messages(
    chatroom_id: uuid.UUID,
    limit: int = Query(50, ge=1, le=200),
    before: int | None = Query(None, ge=1),
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Oldest-first page of history; pass the oldest id seen as `before` to page back."""
    return await services.messages.list_messages(user.user_id, chatroom_id, limit=limit, before=before)


@router.post("/chatrooms/{chatroom_id}/messages", response_model=SendMessageResponse, status_code=201)
async def send_message(
    chatroom_id: uuid.UUID,
    body: SendMessageRequest,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Store the caller's message. With `agent_id`, the agent's reply runs in the background.

    Returns as soon as the human message is stored; follow the reply through
    the chatroom event stream or `GET /replies/{reply_id}`.
    """
    agent_id = None
    if body.agent_id:
        try:
            agent_id = uuid.UUID(body.agent_id)
        except ValueError:
            raise HTTPException(status_code=400, detail="Invalid agent_id")

    result = await services.messages.send_message(user.user_id, chatroom_id, body.content, agent_id=agent_id)
    return SendMessageResponse(message=result.message, reply_id=result.reply_id)


@router.post("/chatrooms/{chatroom_id}/typing", status_code=204)
async def typing(
    chatroom_id: uuid.UUID,
    body: TypingRequest,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    await services.messages.set_typing(user.user_id, chatroom_id, body.is_typing)
