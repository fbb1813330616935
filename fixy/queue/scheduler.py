"""Periodic credit reset runner.

Wakes every `interval_seconds` and resets every paid account whose period
has ended. Safe to run on several app instances at once: the ledger only
resets accounts with `reset_date <= now`, and a short Redis lock keeps
concurrent instances from scanning the same accounts in parallel.

Non-fatal on Redis and storage failures: the loop logs and keeps polling.
"""

import asyncio
import uuid
from datetime import UTC, datetime

import structlog
from redis.asyncio import Redis

from fixy.services.ledger import CreditLedger

logger = structlog.get_logger(__name__)

_RESET_LOCK_KEY = "fixy:credits:reset_lock"


class CreditResetRunner:
    def __init__(
        self,
        ledger: CreditLedger,
        redis: Redis,
        plan_limits: dict[str, float],
        interval_seconds: int = 3600,
        lock_ttl_seconds: int = 300,
    ) -> None:
        self.ledger = ledger
        self.redis = redis
        self.plan_limits = plan_limits
        self.interval_seconds = interval_seconds
        self.lock_ttl_seconds = lock_ttl_seconds

    async def run_once(self, now: datetime | None = None) -> int:
        """Reset every due account once.

        Args:
            now: Injectable current time for testing

        Returns:
            Number of accounts reset (0 when another instance holds the lock)
        """
        now = now or datetime.now(UTC)

        token = f"{uuid.uuid4().hex}:{now.isoformat()}"
        acquired = await self.redis.set(_RESET_LOCK_KEY, token, nx=True, ex=self.lock_ttl_seconds)
        if not acquired:
            logger.info("credit_reset_skipped_locked")
            return 0

        try:
            count = await self.ledger.reset_all(self.plan_limits, now=now)
        finally:
            await self._release_lock(token)

        logger.info("credit_reset_run_completed", reset_count=count, run_at=now.isoformat())
        return count

    async def run_forever(self) -> None:
        """Intended to run as ``asyncio.create_task(runner.run_forever())``; cancel to stop."""
        logger.info("credit_reset_runner_started", interval_seconds=self.interval_seconds)
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("credit_reset_run_failed", error=str(exc), error_type=type(exc).__name__)
            await asyncio.sleep(self.interval_seconds)

    async def _release_lock(self, token: str) -> None:
        # The lock may have expired and been taken by another instance
        if await self.redis.get(_RESET_LOCK_KEY) == token:
            await self.redis.delete(_RESET_LOCK_KEY)
        else:
            logger.warning("credit_reset_lock_lost", lock_ttl_seconds=self.lock_ttl_seconds)
