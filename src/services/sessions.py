"""Session intake, detail and deletion.

``create_uploaded_session`` is the entry point that hands the pipeline a
session in ``UPLOADED``; scheduling the run is left to the job queue.
"""

import logging

from src.core.config import get_settings
from src.core.exceptions import InvalidAudioError, SpeakLoopError
from src.core.models import (
    InsightResponse,
    InsightSeverity,
    SessionDetailResponse,
    SessionStatus,
    TranscriptResponse,
)
from src.core.utils import audio_extension, generate_audio_key
from src.services.storage.database import get_session
from src.services.storage.models_db import Insight, SpeakingSession
from src.services.storage.object_store import BaseObjectStore, get_object_store
from src.services.storage.repository import SessionRepository

logger = logging.getLogger(__name__)

_SEVERITY_RANK = {
    InsightSeverity.high.value: 0,
    InsightSeverity.medium.value: 1,
    InsightSeverity.low.value: 2,
}


def validate_audio(data: bytes, content_type: str, max_size_mb: int | None = None) -> None:
    """Reject empty, oversized or non-audio uploads.

    Raises:
        InvalidAudioError: 413 for size, 400 for everything else.
    """
    limit_mb = max_size_mb if max_size_mb is not None else get_settings().max_upload_mb
    if len(data) > limit_mb * 1024 * 1024:
        raise InvalidAudioError(f"File size exceeds {limit_mb}MB limit", status_code=413)
    if not content_type.startswith("audio/"):
        raise InvalidAudioError("File must be an audio file")
    if not data:
        raise InvalidAudioError("Audio file is empty")


async def create_uploaded_session(
    user_id: str,
    audio: bytes,
    content_type: str,
    duration_secs: int,
    language: str | None = None,
    topic: str | None = None,
    store: BaseObjectStore | None = None,
) -> SpeakingSession:
    """Create a session, store its audio and mark it ``UPLOADED``.

    If the upload fails the session stays in ``CREATED`` and the storage
    error propagates.
    """
    validate_audio(audio, content_type)
    store = store or get_object_store()

    async with get_session() as db:
        record = await SessionRepository(db).create(
            user_id=user_id,
            duration_secs=duration_secs,
            language=language or "en",
            topic=topic,
        )
    session_id = record.id

    key = generate_audio_key(user_id, session_id, audio_extension(content_type))
    await store.put(key, audio, content_type)

    async with get_session() as db:
        record = await SessionRepository(db).transition(
            session_id,
            SessionStatus.UPLOADED,
            expected=SessionStatus.CREATED,
            audio_url=key,
        )
    logger.info("session=%s uploaded %d bytes to %s", session_id, len(audio), key)
    return record


def _severity_rank(insight: Insight) -> tuple[int, int]:
    return _SEVERITY_RANK.get(insight.severity or "", len(_SEVERITY_RANK)), insight.id


async def get_session_detail(session_id: str, user_id: str) -> SessionDetailResponse:
    """Return a session owned by *user_id* with its transcript and insights.

    Insights are ordered high, medium, low, then unspecified.
    """
    async with get_session() as db:
        record = await SessionRepository(db).get_for_user(session_id, user_id)
        transcript = record.transcript
        insights = sorted(record.insights, key=_severity_rank)

    return SessionDetailResponse(
        id=record.id,
        user_id=record.user_id,
        status=SessionStatus(record.status),
        duration_secs=record.duration_secs,
        language=record.language,
        topic=record.topic,
        focus_next=record.focus_next,
        error_message=record.error_message,
        audio_deleted_at=record.audio_deleted_at,
        created_at=record.created_at,
        updated_at=record.updated_at,
        transcript=TranscriptResponse.model_validate(transcript) if transcript else None,
        insights=[InsightResponse.model_validate(i) for i in insights],
    )


async def delete_session(
    session_id: str,
    user_id: str,
    store: BaseObjectStore | None = None,
) -> None:
    """Delete a session owned by *user_id*, its transcript and insights.

    Audio that was never purged is deleted first; a storage failure there is
    logged and does not block the deletion. The pattern profile is kept.
    """
    async with get_session() as db:
        record = await SessionRepository(db).get_for_user(session_id, user_id)
        audio_key = record.audio_url if record.audio_deleted_at is None else None

    if audio_key:
        try:
            await (store or get_object_store()).delete(audio_key)
        except SpeakLoopError as exc:
            logger.warning("Failed to delete audio %s for session %s: %s", audio_key, session_id, exc)

    async with get_session() as db:
        await SessionRepository(db).delete(session_id)
    logger.info("session=%s deleted", session_id)
