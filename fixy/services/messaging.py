"""Message send path: persist the human message, then hand the AI reply off.

The request returns as soon as the human message is stored and fanned out.
Authorization runs first so a denied request leaves nothing behind.
"""

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.clock import utcnow
from fixy.core.exceptions import NotFoundError, StorageError, ValidationError
from fixy.db.models import Agent, Chatroom, Message, User
from fixy.domain.catalog import get_model
from fixy.domain.entitlements import EntitlementEvaluator
from fixy.queue.dispatcher import ReplyDispatcher
from fixy.queue.schemas import FailureReason, ReplyRequest, ReplyStatus
from fixy.queue.state_machine import ReplyStateMachine
from fixy.realtime.fanout import Fanout
from fixy.schemas.chat import MessageOut
from fixy.services.chatrooms import ChatroomService

logger = structlog.get_logger(__name__)

MAX_MESSAGE_LENGTH = 10_000


def default_system_prompt(agent_name: str) -> str:
    return f"You are {agent_name}, an AI assistant."


@dataclass(frozen=True)
class SendResult:
    message: MessageOut
    reply_id: str | None = None


class MessageService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        chatrooms: ChatroomService,
        evaluator: EntitlementEvaluator,
        state_machine: ReplyStateMachine,
        fanout: Fanout,
        dispatcher: ReplyDispatcher,
        default_temperature: float = 0.7,
        default_max_tokens: int = 1000,
    ):
        self.session_factory = session_factory
        self.chatrooms = chatrooms
        self.evaluator = evaluator
        self.state_machine = state_machine
        self.fanout = fanout
        self.dispatcher = dispatcher
        self.default_temperature = default_temperature
        self.default_max_tokens = default_max_tokens

    async def send_message(
        self,
        user_id: uuid.UUID,
        chatroom_id: uuid.UUID,
        content: str,
        agent_id: uuid.UUID | None = None,
    ) -> SendResult:
        """Store a human message and, when an agent is named, start its reply.

        Raises:
            ValidationError: empty or oversized content
            NotFoundError: chatroom or agent missing
            AccessDenied: caller is not a participant
            EntitlementDenied: the agent's model is not available to the caller
            StorageError: the human message could not be written
        """
        content = (content or "").strip()
        if not content:
            raise ValidationError("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationError(f"Message content must be at most {MAX_MESSAGE_LENGTH} characters")

        async with self.session_factory() as session:
            await self.chatrooms.require_participant(session, chatroom_id, user_id)
            sender = await session.get(User, user_id)

            agent = None
            if agent_id is not None:
                agent = await session.get(Agent, agent_id)
                if agent is None or not agent.is_active or agent.chatroom_id != chatroom_id:
                    raise NotFoundError("Agent not found in this chatroom")

        entitlement = None
        model = None
        if agent is not None:
            model = get_model(agent.model_id)
            entitlement = (await self.evaluator.authorize(user_id, model)).raise_if_denied()

        message = await self._persist_human_message(user_id, chatroom_id, content)
        payload = MessageOut.from_row(message, sender_name=sender.name if sender else None)
        await self.fanout.new_message(chatroom_id, payload.model_dump(mode="json"))

        if agent is None:
            return SendResult(message=payload)

        config = agent.config or {}
        reply = ReplyRequest(
            reply_id=uuid.uuid4().hex,
            user_id=user_id,
            chatroom_id=chatroom_id,
            agent_id=agent.id,
            agent_name=agent.name,
            model_id=model.id,
            system_prompt=config.get("system_prompt") or default_system_prompt(agent.name),
            temperature=config.get("temperature", self.default_temperature),
            max_tokens=config.get("max_tokens", self.default_max_tokens),
            requires_credit=entitlement.requires_credit,
            trigger_message_id=message.id,
        )

        try:
            await self.state_machine.create_reply(
                reply.reply_id,
                {
                    "user_id": user_id,
                    "chatroom_id": chatroom_id,
                    "agent_id": agent.id,
                    "model_id": model.id,
                    "trigger_message_id": message.id,
                },
            )
            await self.state_machine.transition(reply.reply_id, ReplyStatus.AUTHORIZED)
        except Exception as exc:
            logger.error(
                "reply_setup_failed",
                chatroom_id=str(chatroom_id),
                agent_id=str(agent.id),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            await self.fanout.ai_failed(chatroom_id, agent.id, FailureReason.INTERNAL_ERROR.value)
            return SendResult(message=payload)

        await self.fanout.ai_thinking(chatroom_id, agent.id, agent.name, reply.reply_id)
        self.dispatcher.dispatch(reply)

        return SendResult(message=payload, reply_id=reply.reply_id)

    async def _persist_human_message(self, user_id: uuid.UUID, chatroom_id: uuid.UUID, content: str) -> Message:
        now = utcnow()
        async with self.session_factory() as session:
            try:
                message = Message(chatroom_id=chatroom_id, sender_id=user_id, content=content, is_ai=False, created_at=now)
                session.add(message)
                await session.execute(
                    update(Chatroom)
                    .where(Chatroom.id == chatroom_id)
                    .values(updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise StorageError(f"Could not store message: {exc}") from exc
        return message

    async def list_messages(
        self,
        user_id: uuid.UUID,
        chatroom_id: uuid.UUID,
        limit: int = 50,
        before: int | None = None,
    ) -> list[MessageOut]:
        """Page of history, oldest first. `before` is a message id cursor."""
        if limit < 1 or limit > 200:
            raise ValidationError("limit must be between 1 and 200")

        async with self.session_factory() as session:
            await self.chatrooms.require_participant(session, chatroom_id, user_id)

            query = (
                select(Message, User.name, Agent.name)
                .outerjoin(User, User.id == Message.sender_id)
                .outerjoin(Agent, Agent.id == Message.agent_id)
                .where(Message.chatroom_id == chatroom_id)
            )
            if before is not None:
                query = query.where(Message.id < before)
            result = await session.execute(
                query.order_by(Message.created_at.desc(), Message.id.desc()).limit(limit)
            )
            rows = result.all()

        return [
            MessageOut.from_row(message, sender_name=sender_name, agent_name=agent_name)
            for message, sender_name, agent_name in reversed(rows)
        ]

    async def set_typing(self, user_id: uuid.UUID, chatroom_id: uuid.UUID, is_typing: bool) -> None:
        async with self.session_factory() as session:
            await self.chatrooms.require_participant(session, chatroom_id, user_id)
        await self.fanout.typing(chatroom_id, user_id, is_typing)
