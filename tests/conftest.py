"""Shared test fixtures and configuration."""
import os
import tempfile
from typing import List, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

# Set test environment variables before importing app
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("TELEPHONY_PROVIDER", "generic")
os.environ.setdefault("AUDIO_DIR", tempfile.mkdtemp(prefix="call-agent-audio-"))

from app.main import app
from app.core.dependencies import get_orchestrator, get_provider_adapter, get_session_store
from app.core.errors import SynthesisFailed
from app.db.database import Base
from app.services.agent.agent import ReplyResult, find_action_marker
from app.services.business.base import BusinessContext, BusinessDataProvider, Table, TimeSlot
from app.services.call_session.orchestrator import TurnOrchestrator
from app.services.call_session.store import CallSessionStore
from app.services.reservations.extractor import RegexReservationExtractor
from app.services.reservations.models import ReservationAction, ReservationRecord
from app.services.speech.tts import SynthesizedAudio
from app.services.telephony.generic import GenericAdapter


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeTranscriber:
    """Returns queued transcripts; queued exceptions are raised instead."""

    def __init__(self, transcripts=None):
        self.transcripts = list(transcripts or [])
        self.urls: List[str] = []

    async def transcribe(self, recording_url: str) -> str:
        self.urls.append(recording_url)
        result = self.transcripts.pop(0) if self.transcripts else ""
        if isinstance(result, Exception):
            raise result
        return result


class FakeReplyGenerator:
    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    async def generate_reply(self, turns, context) -> ReplyResult:
        self.calls.append((list(turns), context))
        text = self.replies.pop(0) if self.replies else "How else can I help you?"
        return ReplyResult(text=text, raw_action_marker=find_action_marker(text))


class FakeSynthesizer:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.texts: List[str] = []

    async def synthesize(self, text: str, voice: Optional[str] = None, base_url: str = ""):
        if self.fail:
            raise SynthesisFailed()
        self.texts.append(text)
        filename = f"speech-test-{len(self.texts)}.mp3"
        return SynthesizedAudio(filename=filename, url=f"{base_url}/audio/{filename}")


class FakeBusiness(BusinessDataProvider):
    def __init__(self, context_error: Optional[Exception] = None, reservation_error: Optional[Exception] = None):
        self.context_error = context_error
        self.reservation_error = reservation_error
        self.reservations: List[ReservationAction] = []

    async def fetch_context(self, business_id: str) -> BusinessContext:
        if self.context_error:
            raise self.context_error
        return BusinessContext(
            business_id=business_id,
            name="Test Bistro",
            tables=[Table(id="1", number=1, capacity=4)],
            available_slots=[TimeSlot(time="21:00")],
        )

    async def create_reservation(self, business_id: str, action: ReservationAction) -> ReservationRecord:
        self.reservations.append(action)
        if self.reservation_error:
            raise self.reservation_error
        return ReservationRecord(
            reservation_id="res-1",
            table_id="1",
            date="2026-10-20",
            time=action.time,
            party_size=action.party_size,
            name=action.name,
        )


class FakeArchive:
    def __init__(self):
        self.events = []

    async def call_started(self, session):
        self.events.append(("started", session.call_id))

    async def reservation_attempted(self, call_id, action, record=None, error=None):
        self.events.append(("reservation", call_id, "created" if record else "failed"))

    async def call_ended(self, session, status):
        self.events.append(("ended", session.call_id, status))


@pytest.fixture
async def test_db_engine():
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    return async_sessionmaker(test_db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(test_session_factory):
    """Create test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
def session_store():
    return CallSessionStore()


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def reply_generator():
    return FakeReplyGenerator()


@pytest.fixture
def synthesizer():
    return FakeSynthesizer()


@pytest.fixture
def business():
    return FakeBusiness()


@pytest.fixture
def archive():
    return FakeArchive()


@pytest.fixture
def orchestrator(session_store, transcriber, reply_generator, synthesizer, business, archive):
    """Orchestrator wired to in-memory fakes."""
    return TurnOrchestrator(
        store=session_store,
        transcriber=transcriber,
        reply_generator=reply_generator,
        synthesizer=synthesizer,
        business=business,
        extractor=RegexReservationExtractor(),
        archive=archive,
        gateway_timeout=1.0,
    )


@pytest.fixture
def test_client(orchestrator, session_store):
    """Create FastAPI test client with overrides."""
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    app.dependency_overrides[get_session_store] = lambda: session_store
    app.dependency_overrides[get_provider_adapter] = lambda: GenericAdapter()

    client = TestClient(app)

    yield client

    app.dependency_overrides.clear()
