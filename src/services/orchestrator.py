"""Session processing pipeline.

Drives one speaking session from ``UPLOADED`` to ``DONE``::

    UPLOADED -> TRANSCRIBING -> ANALYZING -> DONE
    (any non-terminal state) -> FAILED

Each transition and each stored artifact is committed in its own
``get_session()`` block before the next external call starts, so a crash
leaves the session at the last durable step. Ordering guarantees:

* audio is deleted only after the transcript is committed, and
  ``audio_deleted_at`` is committed before the ``ANALYZING`` transition;
* insights are stored only after the analysis reply validated;
* the pattern profile is updated only after the insights are committed.

A run only starts from ``UPLOADED``; the claim is a compare-and-set, so a
redelivered or concurrent job for the same session is rejected without side
effects. Nothing is retried here: retries are the scheduler's job. Any
failure after the session is known marks it ``FAILED`` with the cause.

Usage::

    from src.services.orchestrator import get_pipeline

    result = await get_pipeline().run(session_id)
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import StrEnum
from pathlib import PurePosixPath

from src.core.exceptions import (
    AudioNotFoundError,
    InvalidSessionStateError,
    ProcessingError,
    SessionNotFoundError,
    SpeakLoopError,
)
from src.core.models import SessionStatus
from src.services.analysis import PatternAnalyzer
from src.services.llm import create_llm
from src.services.pattern_profile import PatternAggregator
from src.services.storage.database import get_session
from src.services.storage.object_store import BaseObjectStore, get_object_store
from src.services.storage.repository import SessionRepository
from src.services.transcription import BaseSTT, create_stt

logger = logging.getLogger(__name__)


class PipelineStep(StrEnum):
    """Named steps, used in logs and failure messages."""

    LOAD = "load"
    FETCH_AUDIO = "fetch_audio"
    CLAIM = "claim"
    TRANSCRIBE = "transcribe"
    STORE_TRANSCRIPT = "store_transcript"
    DELETE_AUDIO = "delete_audio"
    START_ANALYSIS = "start_analysis"
    ANALYZE = "analyze"
    STORE_INSIGHTS = "store_insights"
    AGGREGATE = "aggregate"
    COMPLETE = "complete"


@dataclass
class PipelineResult:
    """Outcome of a successful run."""

    session_id: str
    status: SessionStatus
    word_count: int
    insight_count: int
    focus_next: str


@dataclass
class _RunState:
    session_id: str
    step: PipelineStep = PipelineStep.LOAD
    claimed: bool = False


def _error_message(exc: BaseException) -> str:
    """Human-readable, never-empty failure cause."""
    if isinstance(exc, SpeakLoopError):
        message = exc.detail
    else:
        message = str(exc)
    return message or type(exc).__name__ or "Unknown error"


def _audio_extension(key: str) -> str:
    return PurePosixPath(key).suffix.lstrip(".") or "webm"


class SessionPipeline:
    """Runs the transcribe -> analyze -> aggregate pipeline for one session at a time.

    Args:
        store: Object store holding session audio.
        stt: Speech-to-text provider.
        analyzer: Pattern analyzer.
        aggregator: Pattern profile aggregator.
    """

    def __init__(
        self,
        store: BaseObjectStore | None = None,
        stt: BaseSTT | None = None,
        analyzer: PatternAnalyzer | None = None,
        aggregator: PatternAggregator | None = None,
    ) -> None:
        self._store = store or get_object_store()
        self._stt = stt or create_stt()
        self._analyzer = analyzer or PatternAnalyzer(create_llm())
        self._aggregator = aggregator or PatternAggregator()

    async def run(self, session_id: str) -> PipelineResult:
        """Process one session end to end.

        Raises:
            SessionNotFoundError: The session does not exist (nothing changed).
            InvalidSessionStateError: The session is not ``UPLOADED``, or another
                delivery claimed it first (nothing changed).
            ProcessingError: Any later failure; the session is now ``FAILED``.
        """
        state = _RunState(session_id=session_id)
        try:
            return await self._execute(state)
        except SessionNotFoundError:
            logger.warning("Pipeline rejected: session %s not found", session_id)
            raise
        except InvalidSessionStateError as exc:
            if not state.claimed:
                logger.warning(
                    "Pipeline rejected: session %s in state %s", session_id, exc.status
                )
                raise
            await self._fail(state, exc)
            raise ProcessingError(session_id) from exc
        except Exception as exc:
            await self._fail(state, exc)
            raise ProcessingError(session_id) from exc

    async def _execute(self, state: _RunState) -> PipelineResult:
        session_id = state.session_id

        async with get_session() as db:
            record = await SessionRepository(db).get(session_id)
        if record.status != SessionStatus.UPLOADED:
            raise InvalidSessionStateError(
                session_id, record.status, expected=SessionStatus.UPLOADED.value
            )
        user_id = record.user_id
        audio_key = record.audio_url

        state.step = PipelineStep.FETCH_AUDIO
        if not audio_key:
            raise AudioNotFoundError(None)
        audio = await self._store.get(audio_key)

        state.step = PipelineStep.CLAIM
        await self._transition(session_id, SessionStatus.TRANSCRIBING, SessionStatus.UPLOADED)
        state.claimed = True

        state.step = PipelineStep.TRANSCRIBE
        extension = _audio_extension(audio_key)
        text = await self._stt.transcribe(
            audio,
            f"session-{session_id}.{extension}",
            content_type=f"audio/{extension}",
        )

        state.step = PipelineStep.STORE_TRANSCRIPT
        async with get_session() as db:
            transcript = await SessionRepository(db).create_transcript(session_id, text)
        word_count = transcript.word_count

        state.step = PipelineStep.DELETE_AUDIO
        await self._store.delete(audio_key)
        async with get_session() as db:
            await SessionRepository(db).update(session_id, audio_deleted_at=datetime.now(UTC))
        logger.info("session=%s audio purged (%s)", session_id, audio_key)

        state.step = PipelineStep.START_ANALYSIS
        await self._transition(session_id, SessionStatus.ANALYZING, SessionStatus.TRANSCRIBING)

        state.step = PipelineStep.ANALYZE
        analysis = await self._analyzer.analyze(text)

        state.step = PipelineStep.STORE_INSIGHTS
        async with get_session() as db:
            repo = SessionRepository(db)
            await repo.create_insights(session_id, analysis.insights)
            await repo.update(session_id, focus_next=analysis.focus_next)

        state.step = PipelineStep.AGGREGATE
        await self._aggregator.aggregate(user_id, analysis.insights)

        state.step = PipelineStep.COMPLETE
        await self._transition(session_id, SessionStatus.DONE, SessionStatus.ANALYZING)

        return PipelineResult(
            session_id=session_id,
            status=SessionStatus.DONE,
            word_count=word_count,
            insight_count=len(analysis.insights),
            focus_next=analysis.focus_next,
        )

    async def _transition(
        self,
        session_id: str,
        target: SessionStatus,
        expected: SessionStatus,
    ) -> None:
        async with get_session() as db:
            await SessionRepository(db).transition(session_id, target, expected=expected)
        logger.info("session=%s %s -> %s", session_id, expected.value, target.value)

    async def _fail(self, state: _RunState, exc: BaseException) -> None:
        """Record the failure on the session; audio is not touched.

        Before this run's claim the session is only failed if it is still
        ``UPLOADED``. If another delivery claimed it in the meantime, the
        ``InvalidSessionStateError`` propagates and the session is left alone.
        """
        message = _error_message(exc)
        logger.exception(
            "Pipeline failed for session=%s at step=%s: %s", state.session_id, state.step, message
        )
        expected = None if state.claimed else SessionStatus.UPLOADED
        try:
            async with get_session() as db:
                await SessionRepository(db).transition(
                    state.session_id,
                    SessionStatus.FAILED,
                    expected=expected,
                    error_message=message,
                )
        except InvalidSessionStateError as state_exc:
            if not state.claimed:
                logger.warning(
                    "Pipeline rejected: session %s claimed by another run (state %s)",
                    state.session_id,
                    state_exc.status,
                )
                raise
            logger.exception("Failed to mark session %s as FAILED", state.session_id)
        except Exception:
            logger.exception("Failed to mark session %s as FAILED", state.session_id)
        else:
            logger.info("session=%s -> FAILED", state.session_id)


# ---------------------------------------------------------------------------
# Module-level singleton management
# ---------------------------------------------------------------------------

_pipeline: SessionPipeline | None = None


def get_pipeline() -> SessionPipeline:
    """Return the process-wide pipeline, building its clients on first call."""
    global _pipeline
    if _pipeline is None:
        _pipeline = SessionPipeline()
    return _pipeline


def reset_pipeline() -> None:
    """Drop the memoized pipeline (test helper)."""
    global _pipeline
    _pipeline = None
