"""Unit tests for the session processing pipeline.

The pipeline runs against the in-memory database, the in-memory object
store and mocked STT / LLM providers (see ``conftest.py``).
"""

from unittest.mock import AsyncMock

import pytest

from src.core.exceptions import (
    AggregationError,
    InvalidSessionStateError,
    ProcessingError,
    SessionNotFoundError,
    StorageError,
    TranscriptionError,
)
from src.core.models import SessionStatus
from src.services import orchestrator
from src.services.pattern_profile import PatternAggregator
from src.services.storage.database import get_session
from src.services.storage.repository import SessionRepository
from tests.helpers import analysis_payload, make_insight


@pytest.fixture(autouse=True)
def _reset_singleton():
    orchestrator.reset_pipeline()
    yield
    orchestrator.reset_pipeline()


async def _profile(user_id: str) -> dict[str, int]:
    return await PatternAggregator().get_profile(user_id)


# ---------------------------------------------------------------------------
# Happy path
# ---------------------------------------------------------------------------


async def test_run_completes_session(pipeline, seed_session, load_session, object_store, mock_stt):
    record = await seed_session()
    key = record.audio_url

    result = await pipeline.run(record.id)

    assert result.status == SessionStatus.DONE
    assert result.insight_count == 2
    assert result.word_count == 11

    done = await load_session(record.id)
    assert done.status == SessionStatus.DONE
    assert done.transcript.text == "So I went to store and so I bought the milk."
    assert done.transcript.word_count == 11
    assert len(done.insights) == 2
    assert done.focus_next == "Use 'however' instead of 'but'."
    assert done.audio_deleted_at is not None
    assert done.error_message is None
    assert key not in object_store.objects
    assert object_store.deleted == [key]

    args, kwargs = mock_stt.transcribe.call_args
    assert args == (b"webm-bytes", f"session-{record.id}.webm")
    assert kwargs["content_type"] == "audio/webm"


async def test_run_updates_pattern_profile(pipeline, seed_session):
    record = await seed_session(user_id="u7")

    await pipeline.run(record.id)

    assert await _profile("u7") == {"grammar:articles": 3, "vocabulary:overuse of 'so'": 1}


async def test_profiles_accumulate_over_sessions(pipeline, seed_session):
    first = await seed_session()
    second = await seed_session()

    await pipeline.run(first.id)
    await pipeline.run(second.id)

    assert await _profile("u1") == {"grammar:articles": 6, "vocabulary:overuse of 'so'": 2}


async def test_audio_purged_before_analysis_starts(pipeline, seed_session, load_session, mock_llm):
    record = await seed_session()
    seen = {}

    async def inspect_then_reply(prompt, **kwargs):
        current = await load_session(record.id)
        seen["status"] = current.status
        seen["audio_deleted_at"] = current.audio_deleted_at
        seen["transcript"] = current.transcript
        return analysis_payload()

    mock_llm.generate.side_effect = inspect_then_reply

    await pipeline.run(record.id)

    assert seen["status"] == SessionStatus.ANALYZING
    assert seen["audio_deleted_at"] is not None
    assert seen["transcript"] is not None


async def test_file_extension_follows_audio_key(pipeline, seed_session, mock_stt):
    record = await seed_session(extension="mp4")

    await pipeline.run(record.id)

    args, kwargs = mock_stt.transcribe.call_args
    assert args[1] == f"session-{record.id}.mp4"
    assert kwargs["content_type"] == "audio/mp4"


async def test_empty_analysis_completes(pipeline, seed_session, load_session, mock_llm):
    mock_llm.generate.return_value = analysis_payload(insights=[])
    record = await seed_session()

    result = await pipeline.run(record.id)

    assert result.insight_count == 0
    assert (await load_session(record.id)).status == SessionStatus.DONE


# ---------------------------------------------------------------------------
# Rejected runs (no side effects)
# ---------------------------------------------------------------------------


async def test_unknown_session(pipeline, database, mock_stt):
    with pytest.raises(SessionNotFoundError):
        await pipeline.run("does-not-exist")
    mock_stt.transcribe.assert_not_awaited()


@pytest.mark.parametrize(
    "status",
    [SessionStatus.CREATED, SessionStatus.TRANSCRIBING, SessionStatus.FAILED, SessionStatus.DONE],
)
async def test_wrong_status_is_noop(
    pipeline, seed_session, load_session, object_store, mock_stt, status
):
    record = await seed_session(status=status)

    with pytest.raises(InvalidSessionStateError):
        await pipeline.run(record.id)

    unchanged = await load_session(record.id)
    assert unchanged.status == status
    assert unchanged.error_message is None
    assert record.audio_url in object_store.objects
    mock_stt.transcribe.assert_not_awaited()


async def test_redelivery_after_done(pipeline, seed_session, load_session, mock_llm):
    record = await seed_session()
    await pipeline.run(record.id)

    with pytest.raises(InvalidSessionStateError):
        await pipeline.run(record.id)

    done = await load_session(record.id)
    assert done.status == SessionStatus.DONE
    assert len(done.insights) == 2
    assert mock_llm.generate.await_count == 1
    assert await _profile("u1") == {"grammar:articles": 3, "vocabulary:overuse of 'so'": 1}


async def test_lost_claim_leaves_session_alone(
    pipeline, seed_session, load_session, object_store, mock_stt
):
    record = await seed_session()
    fetch = object_store.get

    async def claim_elsewhere(key):
        async with get_session() as db:
            await SessionRepository(db).transition(
                record.id, SessionStatus.TRANSCRIBING, expected=SessionStatus.UPLOADED
            )
        return await fetch(key)

    object_store.get = claim_elsewhere

    with pytest.raises(InvalidSessionStateError):
        await pipeline.run(record.id)

    current = await load_session(record.id)
    assert current.status == SessionStatus.TRANSCRIBING
    assert current.error_message is None
    mock_stt.transcribe.assert_not_awaited()


async def test_fetch_failure_after_lost_claim_leaves_session_alone(
    pipeline, seed_session, load_session, object_store, mock_stt
):
    record = await seed_session()

    async def claim_elsewhere_then_fail(key):
        async with get_session() as db:
            await SessionRepository(db).transition(
                record.id, SessionStatus.TRANSCRIBING, expected=SessionStatus.UPLOADED
            )
        raise StorageError("transient fetch failure")

    object_store.get = claim_elsewhere_then_fail

    with pytest.raises(InvalidSessionStateError):
        await pipeline.run(record.id)

    current = await load_session(record.id)
    assert current.status == SessionStatus.TRANSCRIBING
    assert current.error_message is None
    mock_stt.transcribe.assert_not_awaited()


async def test_fetch_failure_before_claim_fails_session(
    pipeline, seed_session, load_session, object_store
):
    object_store.get = AsyncMock(side_effect=StorageError("transient fetch failure"))
    record = await seed_session()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "transient fetch failure"


# ---------------------------------------------------------------------------
# Failures (session marked FAILED)
# ---------------------------------------------------------------------------


async def test_missing_audio_pointer(pipeline, seed_session, load_session):
    record = await seed_session(audio=None)

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "Session missing audio URL"


async def test_audio_object_missing(pipeline, seed_session, load_session, object_store):
    record = await seed_session()
    object_store.objects.clear()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert "Audio not found" in failed.error_message


async def test_transcription_failure_keeps_audio(
    pipeline, seed_session, load_session, object_store, mock_stt
):
    mock_stt.transcribe.side_effect = TranscriptionError("Whisper transcription failed: 500")
    record = await seed_session()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "Whisper transcription failed: 500"
    assert failed.transcript is None
    assert failed.audio_deleted_at is None
    assert record.audio_url in object_store.objects
    assert object_store.deleted == []


async def test_audio_delete_failure(pipeline, seed_session, load_session, object_store):
    object_store.delete = AsyncMock(side_effect=RuntimeError("bucket unavailable"))
    record = await seed_session()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "bucket unavailable"
    assert failed.transcript is not None
    assert failed.audio_deleted_at is None


@pytest.mark.parametrize(
    "reply",
    [
        analysis_payload(insights=[make_insight(pattern=f"p{i}") for i in range(6)]),
        analysis_payload(insights=[make_insight(category="pronunciation")]),
        "I could not analyze this transcript.",
    ],
    ids=["six-insights", "unknown-category", "not-json"],
)
async def test_invalid_analysis_stores_nothing(
    pipeline, seed_session, load_session, object_store, mock_llm, reply
):
    mock_llm.generate.return_value = reply
    record = await seed_session()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message
    assert failed.insights == []
    assert failed.focus_next is None
    assert failed.transcript is not None
    assert failed.audio_deleted_at is not None
    assert object_store.objects == {}
    assert await _profile("u1") == {}


async def test_llm_outage(pipeline, seed_session, load_session, mock_llm):
    mock_llm.generate.side_effect = ConnectionError("Failed to connect to Claude API")
    record = await seed_session()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert "Failed to connect" in failed.error_message


async def test_aggregation_failure_keeps_insights(pipeline, seed_session, load_session):
    pipeline._aggregator = AsyncMock(spec=PatternAggregator)
    pipeline._aggregator.aggregate.side_effect = AggregationError("profile write failed")
    record = await seed_session()

    with pytest.raises(ProcessingError):
        await pipeline.run(record.id)

    failed = await load_session(record.id)
    assert failed.status == SessionStatus.FAILED
    assert failed.error_message == "profile write failed"
    assert len(failed.insights) == 2
    assert failed.focus_next == "Use 'however' instead of 'but'."


async def test_failure_detail_not_in_processing_error(pipeline, seed_session, mock_stt):
    mock_stt.transcribe.side_effect = TranscriptionError("secret upstream detail")
    record = await seed_session()

    with pytest.raises(ProcessingError) as exc_info:
        await pipeline.run(record.id)

    assert exc_info.value.detail == "Processing failed"
    assert exc_info.value.session_id == record.id
