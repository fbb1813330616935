"""Shared test fixtures: SQLite storage, fake Redis, seeded users, fake providers."""

import uuid
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from fakeredis import aioredis
from sqlalchemy.ext.asyncio import create_async_engine
from tenacity import wait_none

from fixy.core.config import Settings
from fixy.db.base import create_session_factory, create_tables
from fixy.db.models import ByokCredential, Chatroom, ChatroomParticipant, CreditAccount, User
from fixy.domain.catalog import Provider
from fixy.providers.gateway import ProviderGateway
from fixy.services.container import build_services
from fixy.services.credential_vault import SecretBox

TEST_ENCRYPTION_KEY = "a1" * 32
TEST_JWT_SECRET = "test-jwt-secret-with-enough-entropy"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        jwt_secret=TEST_JWT_SECRET,
        encryption_key=TEST_ENCRYPTION_KEY,
        openai_api_key="sk-platform-openai",
        anthropic_api_key="",
        google_ai_api_key="",
        provider_timeout_seconds=2.0,
    )


@pytest.fixture
async def engine(tmp_path):
    """File-backed SQLite so concurrent sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fixy.db'}")
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
async def redis_client():
    """Create a fake Redis client for testing."""
    client = aioredis.FakeRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def secret_box() -> SecretBox:
    return SecretBox(TEST_ENCRYPTION_KEY)


@pytest.fixture
def make_user(session_factory, secret_box):
    """Factory: insert a user with a credit account and optional BYOK keys."""

    async def _make_user(
        plan: str = "Pro",
        used: str = "0",
        limit: str = "500",
        reset_date: datetime | None = None,
        byok: tuple[Provider, ...] = (),
        email: str | None = "user@example.com",
        name: str | None = "Test User",
        is_active: bool = True,
    ) -> uuid.UUID:
        user_id = uuid.uuid4()
        async with session_factory() as session:
            session.add(User(id=user_id, email=email, name=name, plan=plan, is_active=is_active))
            await session.flush()
            session.add(
                CreditAccount(
                    user_id=user_id,
                    used=Decimal(used),
                    limit_amount=Decimal(limit),
                    reset_date=reset_date or datetime.now(UTC) + timedelta(days=30),
                )
            )
            for provider in byok:
                session.add(
                    ByokCredential(
                        user_id=user_id,
                        provider=provider.value,
                        api_key_encrypted=secret_box.encrypt(f"sk-user-{provider.value}"),
                    )
                )
            await session.commit()
        return user_id

    return _make_user


@pytest.fixture
def make_chatroom(session_factory):
    """Factory: insert a chatroom owned by `owner_id` with extra participants."""

    async def _make_chatroom(owner_id: uuid.UUID, *members: uuid.UUID, room_type: str = "private") -> uuid.UUID:
        async with session_factory() as session:
            chatroom = Chatroom(title="Test room", type=room_type, owner_id=owner_id)
            session.add(chatroom)
            await session.flush()
            for user_id in (owner_id, *members):
                session.add(ChatroomParticipant(chatroom_id=chatroom.id, user_id=user_id))
            await session.commit()
            return chatroom.id

    return _make_chatroom


class FakeProviderClient:
    """Scriptable ProviderClient: returns `text` or raises the queued side effects in order."""

    def __init__(self, provider: str, text: str = "Hello from the model"):
        self.provider = provider
        self.complete = AsyncMock(return_value=text)


@pytest.fixture
def fake_clients() -> dict[Provider, FakeProviderClient]:
    return {provider: FakeProviderClient(provider.value) for provider in Provider}


@pytest.fixture
def gateway(fake_clients, settings) -> ProviderGateway:
    return ProviderGateway(fake_clients, timeout_seconds=settings.provider_timeout_seconds)


@pytest.fixture
def services(settings, session_factory, redis_client, gateway):
    """Fully wired component graph with fake providers and no retry backoff."""
    return build_services(settings, session_factory, redis_client, gateway=gateway, retry_wait=wait_none())
