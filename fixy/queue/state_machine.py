"""Reply state machine backed by a Redis hash per reply."""

from datetime import UTC, datetime

from redis.asyncio import Redis

from fixy.queue.schemas import ReplyStatus


class ReplyStateMachine:
    """Manages reply state transitions with validation.

    Status lives in `reply:{id}` with a TTL so finished replies age out.
    """

    # Valid state transitions; FAILED is reachable from every non-terminal state
    TRANSITIONS = {
        ReplyStatus.REQUESTED: [ReplyStatus.AUTHORIZED, ReplyStatus.FAILED],
        ReplyStatus.AUTHORIZED: [ReplyStatus.CONTEXT_BUILT, ReplyStatus.FAILED],
        ReplyStatus.CONTEXT_BUILT: [ReplyStatus.PROVIDER_CALLED, ReplyStatus.FAILED],
        ReplyStatus.PROVIDER_CALLED: [ReplyStatus.PERSISTED, ReplyStatus.FAILED],
        ReplyStatus.PERSISTED: [ReplyStatus.BILLED, ReplyStatus.FAILED],
        ReplyStatus.BILLED: [ReplyStatus.DELIVERED, ReplyStatus.FAILED],
        ReplyStatus.DELIVERED: [],  # Terminal state
        ReplyStatus.FAILED: [],  # Terminal state
    }

    def __init__(self, redis: Redis, ttl_seconds: int = 86_400):
        self.redis = redis
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def _key(reply_id: str) -> str:
        return f"reply:{reply_id}"

    async def create_reply(self, reply_id: str, metadata: dict, now: datetime | None = None) -> None:
        """Initialize the reply hash with REQUESTED status.

        Args:
            reply_id: Unique reply identifier
            metadata: Flat string metadata (user_id, chatroom_id, agent_id, model_id)
            now: Current time (for deterministic testing)
        """
        now = now or datetime.now(UTC)
        key = self._key(reply_id)

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={
                    "status": ReplyStatus.REQUESTED.value,
                    "created_at": now.isoformat(),
                    "updated_at": now.isoformat(),
                    **{k: str(v) for k, v in metadata.items()},
                },
            )
            pipe.expire(key, self.ttl_seconds)
            await pipe.execute()

    async def transition(
        self,
        reply_id: str,
        new_status: ReplyStatus,
        message: str = "",
        fields: dict | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Transition reply to new status if valid.

        Args:
            reply_id: Unique reply identifier
            new_status: Target status
            message: Optional status message (failure reason for FAILED)
            fields: Extra hash fields to record alongside the status
            now: Current time (for deterministic testing)

        Returns:
            True if transition succeeded, False if invalid or reply not found
        """
        now = now or datetime.now(UTC)
        key = self._key(reply_id)

        current = await self.redis.hget(key, "status")
        if current is None:
            return False

        current_status = ReplyStatus(current)
        if new_status not in self.TRANSITIONS.get(current_status, []):
            return False

        async with self.redis.pipeline(transaction=True) as pipe:
            pipe.hset(
                key,
                mapping={
                    "status": new_status.value,
                    "status_message": message,
                    "updated_at": now.isoformat(),
                    **{k: str(v) for k, v in (fields or {}).items()},
                },
            )
            pipe.expire(key, self.ttl_seconds)
            await pipe.execute()

        return True

    async def get_status(self, reply_id: str) -> ReplyStatus | None:
        status = await self.redis.hget(self._key(reply_id), "status")
        return ReplyStatus(status) if status else None

    async def get_reply(self, reply_id: str) -> dict | None:
        """Get the complete reply hash, or None if unknown or expired."""
        data = await self.redis.hgetall(self._key(reply_id))
        return data if data else None
