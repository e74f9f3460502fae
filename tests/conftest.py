"""Shared pytest fixtures for the SpeakLoop test suite.

Provides an in-memory SQLite database wired into ``get_session()``, and
in-memory doubles for the object store, STT and LLM providers so the
pipeline can run end to end without network access.
"""

from unittest.mock import AsyncMock

import pytest

from src.core.models import SessionStatus
from tests.helpers import InMemoryObjectStore, analysis_payload

# ---------------------------------------------------------------------------
# Provider Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def object_store():
    """Empty in-memory object store."""
    return InMemoryObjectStore()


@pytest.fixture
def mock_stt():
    """Create a mock STT provider returning a fixed transcript.

    Returns:
        AsyncMock: A mock implementing the BaseSTT interface.
    """
    from src.services.transcription.base import BaseSTT

    stt = AsyncMock(spec=BaseSTT)
    stt.transcribe.return_value = "So I went to store and so I bought the milk."
    return stt


@pytest.fixture
def mock_llm():
    """Create a mock LLM provider returning a valid two-insight analysis.

    Returns:
        AsyncMock: A mock implementing the BaseLLM interface.
    """
    from src.services.llm.base import BaseLLM

    llm = AsyncMock(spec=BaseLLM)
    llm.generate.return_value = analysis_payload()
    return llm


@pytest.fixture
def pipeline(object_store, mock_stt, mock_llm, database):
    """SessionPipeline wired to the in-memory doubles and the test database."""
    from src.services.analysis import PatternAnalyzer
    from src.services.orchestrator import SessionPipeline
    from src.services.pattern_profile import PatternAggregator

    return SessionPipeline(
        store=object_store,
        stt=mock_stt,
        analyzer=PatternAnalyzer(mock_llm),
        aggregator=PatternAggregator(),
    )


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def db_engine():
    """Create an in-memory SQLite async engine with tables, dispose after test."""
    from src.services.storage.database import create_engine_for_url, init_db

    engine = create_engine_for_url("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(db_engine):
    """Yield an AsyncSession bound to the test engine; rolls back after test."""
    from sqlalchemy.ext.asyncio import async_sessionmaker

    factory = async_sessionmaker(db_engine, expire_on_commit=False)
    async with factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def repository(db_session):
    """Return a SessionRepository bound to the test session."""
    from src.services.storage.repository import SessionRepository

    return SessionRepository(db_session)


@pytest.fixture
def database(db_engine):
    """Point the module-level ``get_session()`` at the test engine."""
    from src.services.storage import database as database_module

    database_module._engine = db_engine
    database_module._session_factory = None
    yield db_engine
    database_module.reset_engine()


@pytest.fixture
def seed_session(database, object_store):
    """Factory creating a committed session, optionally with stored audio."""
    from src.services.storage.database import get_session
    from src.services.storage.repository import SessionRepository

    async def _seed(
        user_id: str = "u1",
        status: SessionStatus = SessionStatus.UPLOADED,
        audio: bytes | None = b"webm-bytes",
        extension: str = "webm",
    ):
        async with get_session() as db:
            repo = SessionRepository(db)
            record = await repo.create(user_id=user_id, duration_secs=60, status=status)
            if audio is not None:
                key = f"sessions/{user_id}/{record.id}/audio.{extension}"
                await object_store.put(key, audio, f"audio/{extension}")
                record = await repo.update(record.id, audio_url=key)
        return record

    return _seed


@pytest.fixture
def load_session(database):
    """Fetch a fresh copy of a session (with transcript and insights)."""
    from src.services.storage.database import get_session
    from src.services.storage.repository import SessionRepository

    async def _load(session_id: str):
        async with get_session() as db:
            return await SessionRepository(db).find(session_id)

    return _load
