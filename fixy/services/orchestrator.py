"""Response orchestrator: the background leg of one AI reply.

authorized -> context_built -> provider_called -> persisted -> billed -> delivered

Any failure before the assistant message is persisted ends the reply in
FAILED and publishes `ai-failed` to the room, so no "thinking" indicator is
left hanging. Failures after persistence (billing) are logged and the reply
is still delivered.
"""

import asyncio
from decimal import Decimal

import structlog
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential

from fixy.core.clock import utcnow
from fixy.core.exceptions import (
    CredentialUnavailable,
    LedgerError,
    ProviderError,
    ProviderTimeoutError,
    StorageError,
)
from fixy.db.models import Chatroom, Message
from fixy.domain.catalog import AIModel, get_model
from fixy.providers.base import ChatTurn, CompletionParams
from fixy.providers.gateway import ProviderGateway
from fixy.queue.schemas import FailureReason, ReplyOutcome, ReplyRequest, ReplyStatus
from fixy.queue.state_machine import ReplyStateMachine
from fixy.realtime.fanout import Fanout
from fixy.schemas.chat import MessageOut
from fixy.services.context_builder import ContextBuilder
from fixy.services.credential_vault import CredentialVault
from fixy.services.ledger import CreditLedger

logger = structlog.get_logger(__name__)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.retryable


class ResponseOrchestrator:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        state_machine: ReplyStateMachine,
        context_builder: ContextBuilder,
        vault: CredentialVault,
        gateway: ProviderGateway,
        ledger: CreditLedger,
        fanout: Fanout,
        max_attempts: int = 3,
        retry_wait=None,
    ):
        self.session_factory = session_factory
        self.state_machine = state_machine
        self.context_builder = context_builder
        self.vault = vault
        self.gateway = gateway
        self.ledger = ledger
        self.fanout = fanout
        self.max_attempts = max_attempts
        self.retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)

    async def run(self, reply: ReplyRequest) -> ReplyOutcome:
        """Drive one authorized reply to DELIVERED or FAILED.

        Never raises except CancelledError, which is re-raised after the reply
        is marked failed.
        """
        log = logger.bind(
            reply_id=reply.reply_id,
            chatroom_id=str(reply.chatroom_id),
            agent_id=str(reply.agent_id),
            model=reply.model_id,
        )
        persisted = False

        try:
            model = get_model(reply.model_id)

            # authorized -> context_built
            context = await self.context_builder.build_context(reply.chatroom_id)
            await self._transition(reply.reply_id, ReplyStatus.CONTEXT_BUILT)

            # context_built -> provider_called
            try:
                credential = await self.vault.resolve_credential(reply.user_id, model.provider)
            except CredentialUnavailable:
                log.error("reply_credential_unavailable", provider=model.provider.value)
                return await self._fail(reply, FailureReason.CREDENTIAL_UNAVAILABLE)
            if credential is None:
                log.info("reply_no_credential", provider=model.provider.value)
                return await self._fail(reply, FailureReason.REQUIRES_BYOK)

            try:
                text = await self._call_provider(model, reply, context, credential)
            except ProviderTimeoutError as exc:
                log.warning("reply_provider_timeout", error=str(exc))
                return await self._fail(reply, FailureReason.TIMEOUT)
            except ProviderError as exc:
                log.warning(
                    "reply_provider_failed",
                    error=exc.raw_message,
                    provider_status=exc.provider_status,
                    retryable=exc.retryable,
                )
                return await self._fail(reply, FailureReason.PROVIDER_ERROR)
            await self._transition(reply.reply_id, ReplyStatus.PROVIDER_CALLED)

            # provider_called -> persisted
            cost = model.credit_cost if reply.requires_credit else Decimal("0")
            try:
                message = await self._persist(reply, text, cost)
            except StorageError as exc:
                log.error("reply_persist_failed", error=str(exc))
                return await self._fail(reply, FailureReason.STORAGE_ERROR)
            persisted = True
            await self._transition(
                reply.reply_id, ReplyStatus.PERSISTED, fields={"message_id": message.id}
            )

            # persisted -> billed
            billing_error = None
            if reply.requires_credit:
                try:
                    await self.ledger.debit(reply.user_id, cost, f"Used {model.display_name} AI model")
                except LedgerError as exc:
                    billing_error = str(exc)
                    log.error(
                        "billing_reconciliation_required",
                        user_id=str(reply.user_id),
                        message_id=message.id,
                        amount=str(cost),
                        error=billing_error,
                    )
            await self._transition(
                reply.reply_id,
                ReplyStatus.BILLED,
                message="billing_failed" if billing_error else "",
                fields={"credits_charged": str(cost if billing_error is None else Decimal("0"))},
            )

            # billed -> delivered
            payload = MessageOut.from_row(message, agent_name=reply.agent_name).model_dump(mode="json")
            await self.fanout.new_message(reply.chatroom_id, payload)
            await self._transition(reply.reply_id, ReplyStatus.DELIVERED)

            log.info("reply_delivered", message_id=message.id, credits=str(cost))
            return ReplyOutcome(
                reply_id=reply.reply_id,
                status=ReplyStatus.DELIVERED,
                message_id=message.id,
                credits_charged=cost if billing_error is None else Decimal("0"),
                billing_error=billing_error,
            )

        except asyncio.CancelledError:
            log.info("reply_cancelled", persisted=persisted)
            await self._fail(reply, FailureReason.CANCELLED, publish=not persisted)
            raise
        except Exception as exc:
            log.error("reply_failed", error=str(exc), error_type=type(exc).__name__, exc_info=True)
            return await self._fail(reply, FailureReason.INTERNAL_ERROR, publish=not persisted)

    async def _call_provider(
        self,
        model: AIModel,
        reply: ReplyRequest,
        context: list[ChatTurn],
        credential: str,
    ) -> str:
        """Call the gateway, retrying retryable ProviderErrors with backoff."""
        params = CompletionParams(temperature=reply.temperature, max_tokens=reply.max_tokens)
        text = ""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
            before_sleep=lambda rs: logger.warning(
                "provider_call_retrying",
                reply_id=reply.reply_id,
                attempt=rs.attempt_number,
                sleep_seconds=rs.next_action.sleep,
            ),
        ):
            with attempt:
                text = await self.gateway.complete(model, reply.system_prompt, context, params, credential)
        return text

    async def _persist(self, reply: ReplyRequest, text: str, cost: Decimal) -> Message:
        """Write the assistant message and bump the room in one transaction."""
        now = utcnow()
        async with self.session_factory() as session:
            try:
                message = Message(
                    chatroom_id=reply.chatroom_id,
                    agent_id=reply.agent_id,
                    content=text,
                    is_ai=True,
                    credits_used=cost,
                    created_at=now,
                )
                session.add(message)
                await session.execute(
                    update(Chatroom)
                    .where(Chatroom.id == reply.chatroom_id)
                    .values(updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
            except SQLAlchemyError as exc:
                await session.rollback()
                raise StorageError(f"Could not persist reply {reply.reply_id}: {exc}") from exc
        return message

    async def _transition(self, reply_id: str, status: ReplyStatus, message: str = "", fields: dict | None = None) -> None:
        """Record progress. Status bookkeeping failures never abort the reply."""
        try:
            await self.state_machine.transition(reply_id, status, message=message, fields=fields)
        except Exception as exc:
            logger.warning(
                "reply_status_update_failed",
                reply_id=reply_id,
                status=status.value,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def _fail(self, reply: ReplyRequest, reason: FailureReason, publish: bool = True) -> ReplyOutcome:
        await self._transition(
            reply.reply_id,
            ReplyStatus.FAILED,
            message=reason.value,
            fields={"failure_reason": reason.value},
        )
        if publish:
            await self.fanout.ai_failed(reply.chatroom_id, reply.agent_id, reason.value, reply_id=reply.reply_id)
        return ReplyOutcome(reply_id=reply.reply_id, status=ReplyStatus.FAILED, failure_reason=reason)

