"""Chatroom, participant and agent routes."""

import uuid

from fastapi import APIRouter, Depends, HTTPException

from fixy.api.deps import get_services
from fixy.api.schemas.chat import AddAgentRequest, AddParticipantRequest, CreateChatroomRequest
from fixy.core.auth import AuthUser, require_auth
from fixy.schemas.chat import AgentOut, ChatroomOut
from fixy.services.container import Services

router = APIRouter()


@router.post("/chatrooms", response_model=ChatroomOut, status_code=201)
async def create_chatroom(
    body: CreateChatroomRequest,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Create a chatroom owned by the caller. Group rooms require the Teams plan."""
    return await services.chatrooms.create_chatroom(user.user_id, body.title, body.type)


@router.get("/chatrooms", response_model=list[ChatroomOut])
async def list_chatrooms(
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    return await services.chatrooms.list_chatrooms(user.user_id)


@router.get("/chatrooms/{chatroom_id}", response_model=ChatroomOut)
async def get_chatroom(
    chatroom_id: uuid.UUID,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    return await services.chatrooms.get_chatroom(user.user_id, chatroom_id)


@router.post("/chatrooms/{chatroom_id}/participants", status_code=201)
async def add_participant(
    chatroom_id: uuid.UUID,
    body: AddParticipantRequest,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    try:
        invitee_id = uuid.UUID(body.user_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid user_id")
    await services.chatrooms.add_participant(user.user_id, chatroom_id, invitee_id)
    return {"chatroom_id": str(chatroom_id), "user_id": str(invitee_id)}


@router.get("/chatrooms/{chatroom_id}/agents", response_model=list[AgentOut])
async def list_agents(
    chatroom_id: uuid.UUID,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    return await services.chatrooms.list_agents(user.user_id, chatroom_id)


@router.post("/chatrooms/{chatroom_id}/agents", response_model=AgentOut, status_code=201)
async def add_agent(
    chatroom_id: uuid.UUID,
    body: AddAgentRequest,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    """Bind a catalog model to the chatroom as a named agent."""
    return await services.chatrooms.add_agent(user.user_id, chatroom_id, body.name, body.model_id, body.config)


@router.delete("/agents/{agent_id}", status_code=204)
async def deactivate_agent(
    agent_id: uuid.UUID,
    user: AuthUser = Depends(require_auth),
    services: Services = Depends(get_services),
):
    await services.chatrooms.deactivate_agent(user.user_id, agent_id)
