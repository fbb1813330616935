"""Wires every component from explicit configuration.

The app factory builds one Services instance at startup and stores it on
`app.state.services`; routes reach it through `get_services`. Nothing below
reads global settings.
"""

from dataclasses import dataclass

from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fixy.core.config import Settings
from fixy.core.provisioning import ProvisionedUsers
from fixy.domain.entitlements import EntitlementEvaluator
from fixy.providers.gateway import ProviderGateway, default_clients
from fixy.queue.dispatcher import ReplyDispatcher
from fixy.queue.scheduler import CreditResetRunner
from fixy.queue.state_machine import ReplyStateMachine
from fixy.realtime.fanout import Fanout
from fixy.services.chatrooms import ChatroomService
from fixy.services.context_builder import ContextBuilder
from fixy.services.credential_vault import CredentialVault, SecretBox
from fixy.services.ledger import CreditLedger
from fixy.services.messaging import MessageService
from fixy.services.notifications import Notifier, RedisOutboxNotifier
from fixy.services.orchestrator import ResponseOrchestrator


@dataclass
class Services:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    redis: Redis
    fanout: Fanout
    notifier: Notifier
    vault: CredentialVault
    evaluator: EntitlementEvaluator
    ledger: CreditLedger
    context_builder: ContextBuilder
    gateway: ProviderGateway
    state_machine: ReplyStateMachine
    orchestrator: ResponseOrchestrator
    dispatcher: ReplyDispatcher
    chatrooms: ChatroomService
    messages: MessageService
    reset_runner: CreditResetRunner
    provisioned_users: ProvisionedUsers


def build_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    redis: Redis,
    gateway: ProviderGateway | None = None,
    notifier: Notifier | None = None,
    retry_wait=None,
) -> Services:
    """Construct the component graph. `gateway`, `notifier` and `retry_wait` are test seams."""
    fanout = Fanout(redis)
    notifier = notifier or RedisOutboxNotifier(redis, fanout, frontend_url=settings.frontend_url)
    vault = CredentialVault(
        session_factory,
        SecretBox(settings.encryption_key),
        platform_credentials=settings.platform_credentials(),
    )
    evaluator = EntitlementEvaluator(session_factory)
    ledger = CreditLedger(session_factory, redis, notifier)
    context_builder = ContextBuilder(session_factory, window_size=settings.context_window_size)
    gateway = gateway or ProviderGateway(default_clients(), timeout_seconds=settings.provider_timeout_seconds)
    state_machine = ReplyStateMachine(redis, ttl_seconds=settings.reply_status_ttl_seconds)
    orchestrator = ResponseOrchestrator(
        session_factory,
        state_machine,
        context_builder,
        vault,
        gateway,
        ledger,
        fanout,
        max_attempts=settings.provider_max_attempts,
        retry_wait=retry_wait,
    )
    dispatcher = ReplyDispatcher(orchestrator.run)
    chatrooms = ChatroomService(session_factory, evaluator, fanout)
    messages = MessageService(
        session_factory,
        chatrooms,
        evaluator,
        state_machine,
        fanout,
        dispatcher,
        default_temperature=settings.default_temperature,
        default_max_tokens=settings.default_max_tokens,
    )
    reset_runner = CreditResetRunner(
        ledger,
        redis,
        settings.plan_credit_limits,
        interval_seconds=settings.credit_reset_interval_seconds,
    )

    return Services(
        settings=settings,
        session_factory=session_factory,
        redis=redis,
        fanout=fanout,
        notifier=notifier,
        vault=vault,
        evaluator=evaluator,
        ledger=ledger,
        context_builder=context_builder,
        gateway=gateway,
        state_machine=state_machine,
        orchestrator=orchestrator,
        dispatcher=dispatcher,
        chatrooms=chatrooms,
        messages=messages,
        reset_runner=reset_runner,
        provisioned_users=ProvisionedUsers(),
    )
