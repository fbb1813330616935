"""Background execution of AI replies, detached from the HTTP request."""

import asyncio
from collections.abc import Awaitable, Callable

import structlog

from fixy.queue.schemas import ReplyOutcome, ReplyRequest

logger = structlog.get_logger(__name__)


class ReplyDispatcher:
    """Owns one asyncio task per in-flight reply.

    Tasks outlive the request that spawned them: a client disconnect does not
    cancel a reply. They can be cancelled by id and are drained or cancelled
    when the application shuts down.
    """

    def __init__(self, run: Callable[[ReplyRequest], Awaitable[ReplyOutcome]]):
        self._run = run
        self._tasks: dict[str, asyncio.Task] = {}
        self._closed = False

    @property
    def active_count(self) -> int:
        return len(self._tasks)

    def is_running(self, reply_id: str) -> bool:
        return reply_id in self._tasks

    def dispatch(self, reply: ReplyRequest) -> asyncio.Task:
        if self._closed:
            raise RuntimeError("ReplyDispatcher is shut down")

        task = asyncio.create_task(self._run(reply), name=f"reply:{reply.reply_id}")
        self._tasks[reply.reply_id] = task
        task.add_done_callback(lambda t, reply_id=reply.reply_id: self._on_done(reply_id, t))
        logger.info("reply_dispatched", reply_id=reply.reply_id, active=len(self._tasks))
        return task

    def _on_done(self, reply_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(reply_id, None)
        if task.cancelled():
            logger.info("reply_task_cancelled", reply_id=reply_id)
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "reply_task_crashed",
                reply_id=reply_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def cancel(self, reply_id: str) -> bool:
        """Cancel an in-flight reply. Returns False if it is not running."""
        task = self._tasks.get(reply_id)
        if task is None:
            return False
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        return True

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight reply, including ones dispatched while waiting."""
        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while self._tasks:
            remaining = None if deadline is None else deadline - loop.time()
            if remaining is not None and remaining <= 0:
                break
            await asyncio.wait(list(self._tasks.values()), timeout=remaining)
            # Done callbacks run on the next loop iteration
            await asyncio.sleep(0)

    async def shutdown(self, grace_seconds: float = 10.0) -> None:
        """Stop accepting replies, give in-flight ones a grace period, cancel the rest."""
        self._closed = True
        await self.drain(timeout=grace_seconds)
        pending = list(self._tasks.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.warning("reply_tasks_cancelled_on_shutdown", count=len(pending))
