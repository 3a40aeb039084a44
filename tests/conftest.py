"""Shared test fixtures and configuration."""
import pytest
import os
from typing import Awaitable, Callable, List, Optional

import httpx
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("TWILIO_ACCOUNT_SID", "test-sid")
os.environ.setdefault("TWILIO_AUTH_TOKEN", "test-token")
os.environ.setdefault("TWILIO_PHONE_NUMBER", "+1234567890")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("COMPANY_NAME", "Test Company")

from app.main import app
from app.db.database import Base, get_db, get_session_factory
from app.core.config import Settings
from app.core.dependencies import get_activity_logger, get_response_generator, get_settings
from app.services.agent.generator import GeneratedReply, ResponseGenerator
from app.services.call_session.manager import CallSessionManager
from app.services.call_session.models import SessionContext
from app.services.call_session.transitions import CallFlowConfig
from app.services.persistence.calls import CallSessionStore
from app.services.speech.twiml import TwimlEncoder


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeResponseGenerator(ResponseGenerator):
    """Generator returning a fixed reply, or raising when configured to fail."""

    def __init__(self, reply: str = "Sure, let's schedule it", error: Optional[Exception] = None):
        self.reply = reply
        self.error = error
        self.calls: List[tuple] = []
        # Awaited mid-generation, to interleave another webhook
        self.before_reply: Optional[Callable[[], Awaitable]] = None

    async def generate(self, context: SessionContext, sanitized_input: str) -> GeneratedReply:
        self.calls.append((context, sanitized_input))
        if self.before_reply is not None:
            await self.before_reply()
        if self.error is not None:
            raise self.error
        return GeneratedReply(text=self.reply, model="fake-model")


class RecordingActivityLogger:
    """Activity logger that keeps entries in memory."""

    def __init__(self):
        self.entries: List[dict] = []

    async def log(self, activity_type, description, call_id=None, details=None):
        self.entries.append(
            {
                "type": activity_type,
                "description": description,
                "call_id": call_id,
                "details": details or {},
            }
        )


@pytest.fixture
def test_settings():
    """Override settings for testing."""
    return Settings(
        openai_api_key="test-key",
        twilio_account_sid="test-sid",
        twilio_auth_token="test-token",
        twilio_phone_number="+1234567890",
        database_url=TEST_DATABASE_URL,
        company_name="Test Company",
        verify_twilio_signature=False,
        business_hours_enabled=False,
    )


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Create all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop all tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def fake_generator():
    """Generator that answers every call with the same reply."""
    return FakeResponseGenerator()


@pytest.fixture
def activity_logger():
    """In-memory activity logger."""
    return RecordingActivityLogger()


@pytest.fixture
def flow_config(test_settings):
    """Call flow config built from test settings."""
    return CallFlowConfig.from_settings(test_settings)


def build_manager(db, generator, activity_logger, flow_config):
    return CallSessionManager(
        store=CallSessionStore(db),
        generator=generator,
        encoder=TwimlEncoder(base_url="https://calls.example.com"),
        config=flow_config,
        activity_logger=activity_logger,
    )


@pytest.fixture
def session_manager(test_db, fake_generator, activity_logger, flow_config):
    """Call session manager wired to the test database."""
    return build_manager(test_db, fake_generator, activity_logger, flow_config)


@pytest.fixture
async def other_db(test_session_factory):
    """Second database session, as used by a concurrent webhook request."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def other_generator():
    """Generator for the concurrent request's manager."""
    return FakeResponseGenerator()


@pytest.fixture
def other_manager(other_db, other_generator, activity_logger, flow_config):
    """Manager handling a concurrent webhook for the same call."""
    return build_manager(other_db, other_generator, activity_logger, flow_config)


@pytest.fixture
def override_get_db(test_db):
    """Override get_db dependency with test database."""
    async def _override_get_db():
        yield test_db
    return _override_get_db


@pytest.fixture
async def test_client(
    override_get_db, test_session_factory, test_settings, fake_generator, activity_logger
):
    """Create an async client for the app with dependency overrides."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: test_session_factory
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_response_generator] = lambda: fake_generator
    app.dependency_overrides[get_activity_logger] = lambda: activity_logger

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    # Clear overrides
    app.dependency_overrides.clear()
