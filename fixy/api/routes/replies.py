"""AI reply status and cancellation."""

from fastapi import APIRouter, Depends, HTTPException

from fixy.api.deps import get_services
from fixy.api.schemas.chat import ReplyStatusResponse
from fixy.core.auth import AuthUser, require_auth
from fixy.services.container import Services

router = APIRouter()


async def _load_reply(reply_id: str, user: AuthUser, services: Services) -> dict:
    data = await services.state_machine.get_reply(reply_id)
    if not data or data.get("user_id") != str(user.user_id):
        raise HTTPException(status_code=404, detail="Reply not found")
    return data


@router.get("/replies/{reply_id}", response_model=ReplyStatusResponse)
async def get_reply_status(
    reply_id: str,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Current lifecycle state of an AI reply the caller triggered."""
    data = await _load_reply(reply_id, user, services)
    message_id = data.get("message_id")
    return ReplyStatusResponse(
        reply_id=reply_id,
        status=data["status"],
        chatroom_id=data.get("chatroom_id", ""),
        agent_id=data.get("agent_id", ""),
        model_id=data.get("model_id", ""),
        status_message=data.get("status_message", ""),
        message_id=int(message_id) if message_id else None,
        failure_reason=data.get("failure_reason") or None,
        created_at=data.get("created_at", ""),
        updated_at=data.get("updated_at", ""),
    )


@router.post("/replies/{reply_id}/cancel")
async def cancel_reply(
    reply_id: str,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Cancel an in-flight reply. 409 if it already finished or runs on another instance."""
    await _load_reply(reply_id, user, services)
    cancelled = await services.dispatcher.cancel(reply_id)
    if not cancelled:
        raise HTTPException(status_code=409, detail="Reply is not running")
    return {"reply_id": reply_id, "cancelled": True}
