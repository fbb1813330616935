"""Chatroom, participant and agent management."""

import uuid

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.clock import utcnow
from fixy.core.exceptions import AccessDenied, EntitlementDenied, NotFoundError, ValidationError
from fixy.db.models import Agent, Chatroom, ChatroomParticipant, User
from fixy.domain.catalog import get_model
from fixy.domain.entitlements import DenialReason, EntitlementEvaluator
from fixy.domain.plans import Plan
from fixy.realtime.fanout import Fanout
from fixy.schemas.chat import AgentConfig, AgentOut, ChatroomOut

logger = structlog.get_logger(__name__)

CHATROOM_TYPES = ("private", "group")


class ChatroomService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        evaluator: EntitlementEvaluator,
        fanout: Fanout,
    ):
        self.session_factory = session_factory
        self.evaluator = evaluator
        self.fanout = fanout

    async def require_participant(self, session: AsyncSession, chatroom_id: uuid.UUID, user_id: uuid.UUID) -> Chatroom:
        """Load an active chatroom the user belongs to.

        Raises:
            NotFoundError: chatroom missing or deactivated
            AccessDenied: user is not a participant
        """
        chatroom = await session.get(Chatroom, chatroom_id)
        if chatroom is None or not chatroom.is_active:
            raise NotFoundError("Chatroom not found")

        membership = await session.get(ChatroomParticipant, (chatroom_id, user_id))
        if membership is None:
            raise AccessDenied("You do not have access to this chatroom")
        return chatroom

    async def create_chatroom(self, owner_id: uuid.UUID, title: str, room_type: str = "private") -> ChatroomOut:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) > 255:
            raise ValidationError("Title must be at most 255 characters")
        if room_type not in CHATROOM_TYPES:
            raise ValidationError(f"Invalid chatroom type '{room_type}'. Must be one of: {', '.join(CHATROOM_TYPES)}")

        async with self.session_factory() as session:
            owner = await session.get(User, owner_id)
            if owner is None:
                raise NotFoundError("User not found")
            # Checked at creation only; later plan changes leave existing rooms alone
            if room_type == "group" and owner.plan != Plan.TEAMS.value:
                raise AccessDenied("Group chatrooms require the Teams plan")

            chatroom = Chatroom(title=title, type=room_type, owner_id=owner_id)
            session.add(chatroom)
            await session.flush()
            session.add(ChatroomParticipant(chatroom_id=chatroom.id, user_id=owner_id))
            await session.commit()

        logger.info("chatroom_created", chatroom_id=str(chatroom.id), owner_id=str(owner_id), type=room_type)
        return ChatroomOut.from_row(chatroom)

    async def list_chatrooms(self, user_id: uuid.UUID) -> list[ChatroomOut]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Chatroom)
                .join(ChatroomParticipant, ChatroomParticipant.chatroom_id == Chatroom.id)
                .where(ChatroomParticipant.user_id == user_id, Chatroom.is_active.is_(True))
                .order_by(Chatroom.updated_at.desc())
            )
            return [ChatroomOut.from_row(row) for row in result.scalars().all()]

    async def get_chatroom(self, user_id: uuid.UUID, chatroom_id: uuid.UUID) -> ChatroomOut:
        async with self.session_factory() as session:
            chatroom = await self.require_participant(session, chatroom_id, user_id)
        return ChatroomOut.from_row(chatroom)

    async def add_participant(self, owner_id: uuid.UUID, chatroom_id: uuid.UUID, user_id: uuid.UUID) -> None:
        """Owner adds a member to a group room. Requires the owner to be on Teams."""
        async with self.session_factory() as session:
            chatroom = await session.get(Chatroom, chatroom_id)
            if chatroom is None or not chatroom.is_active:
                raise NotFoundError("Chatroom not found")
            if chatroom.owner_id != owner_id:
                raise AccessDenied("Only the owner can add participants")

            owner = await session.get(User, owner_id)
            if owner is None or owner.plan != Plan.TEAMS.value:
                raise AccessDenied("Adding participants requires the Teams plan")

            invitee = await session.get(User, user_id)
            if invitee is None or not invitee.is_active:
                raise NotFoundError("User not found")

            session.add(ChatroomParticipant(chatroom_id=chatroom_id, user_id=user_id))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise ValidationError("User is already a participant") from None

        await self.fanout.presence(chatroom_id, user_id, joined=True)

    async def list_agents(self, user_id: uuid.UUID, chatroom_id: uuid.UUID) -> list[AgentOut]:
        async with self.session_factory() as session:
            await self.require_participant(session, chatroom_id, user_id)
            result = await session.execute(
                select(Agent)
                .where(Agent.chatroom_id == chatroom_id, Agent.is_active.is_(True))
                .order_by(Agent.created_at)
            )
            return [AgentOut.from_row(agent) for agent in result.scalars().all()]

    async def add_agent(
        self,
        user_id: uuid.UUID,
        chatroom_id: uuid.UUID,
        name: str,
        model_id: str,
        config: AgentConfig | None = None,
    ) -> AgentOut:
        """Bind a catalog model to a chatroom.

        The caller must currently be entitled to the model. Running out of
        credits does not block adding an agent, only invoking it.
        """
        name = (name or "").strip()
        if not name:
            raise ValidationError("Agent name is required")
        model = get_model(model_id)
        config = config or AgentConfig()

        async with self.session_factory() as session:
            await self.require_participant(session, chatroom_id, user_id)

        entitlement = await self.evaluator.authorize(user_id, model)
        if not entitlement.allowed and entitlement.reason != DenialReason.CREDIT_LIMIT_REACHED:
            raise EntitlementDenied(entitlement.reason.value)

        async with self.session_factory() as session:
            agent = Agent(
                chatroom_id=chatroom_id,
                name=name,
                model_id=model.id,
                config=config.model_dump(exclude_none=True),
            )
            session.add(agent)
            await session.commit()

        logger.info("agent_added", agent_id=str(agent.id), chatroom_id=str(chatroom_id), model=model.id)
        return AgentOut.from_row(agent)

    async def deactivate_agent(self, user_id: uuid.UUID, agent_id: uuid.UUID) -> None:
        async with self.session_factory() as session:
            agent = await session.get(Agent, agent_id)
            if agent is None or not agent.is_active:
                raise NotFoundError("Agent not found or you do not have access")
            membership = await session.get(ChatroomParticipant, (agent.chatroom_id, user_id))
            if membership is None:
                raise NotFoundError("Agent not found or you do not have access")

            agent.is_active = False
            agent.updated_at = utcnow()
            await session.commit()

        logger.info("agent_deactivated", agent_id=str(agent_id), user_id=str(user_id))
