"""Conversation context: the recent window of a chatroom, oldest first."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.exceptions import ValidationError
from fixy.db.models import Agent, Message, User
from fixy.providers.base import ChatTurn


class ContextBuilder:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], window_size: int = 20):
        self.session_factory = session_factory
        self.window_size = window_size

    async def build_context(self, chatroom_id: uuid.UUID, window_size: int | None = None) -> list[ChatTurn]:
        """Latest `window_size` messages of one chatroom as provider turns.

        Ordered by (created_at, id) so same-instant messages keep insertion order.
        Human messages map to `user`, agent messages to `assistant`.
        """
        window = self.window_size if window_size is None else window_size
        if window < 1:
            raise ValidationError("window_size must be at least 1")

        async with self.session_factory() as session:
            result = await session.execute(
                select(Message, User.name, Agent.name)
                .outerjoin(User, User.id == Message.sender_id)
                .outerjoin(Agent, Agent.id == Message.agent_id)
                .where(Message.chatroom_id == chatroom_id)
                .order_by(Message.created_at.desc(), Message.id.desc())
                .limit(window)
            )
            rows = result.all()

        turns = []
        for message, user_name, agent_name in reversed(rows):
            if message.is_ai:
                turns.append(ChatTurn(role="assistant", content=message.content, speaker_name=agent_name or ""))
            else:
                turns.append(ChatTurn(role="user", content=message.content, speaker_name=user_name or ""))
        return turns
