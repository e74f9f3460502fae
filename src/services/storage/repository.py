"""
Data-access layer for speaking sessions and pattern profiles.

``SessionRepository`` and ``PatternProfileRepository`` receive an
``AsyncSession`` and call ``flush()`` rather than ``commit()`` so that
transaction boundaries are controlled by the caller (typically
:func:`get_session`).

Status changes go through :meth:`SessionRepository.transition`, a single
conditional ``UPDATE`` that only matches rows whose current status may move
to the target. Two concurrent deliveries of the same job therefore cannot
both claim a session.
"""

import logging
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.exceptions import InvalidSessionStateError, SessionNotFoundError
from src.core.models import (
    MAX_INSIGHTS_PER_SESSION,
    InsightResult,
    SessionStatus,
    can_transition,
)
from src.core.utils import count_words
from src.services.storage.models_db import Insight, PatternProfile, SpeakingSession, Transcript

logger = logging.getLogger(__name__)

# Columns callers may change through ``update``; status has its own path.
_UPDATABLE_FIELDS = frozenset(
    {
        "audio_url",
        "audio_deleted_at",
        "error_message",
        "focus_next",
        "duration_secs",
        "language",
        "topic",
    }
)


class SessionRepository:
    """Session store: sessions plus the transcript and insights they own.

    Args:
        session: An active SQLAlchemy ``AsyncSession``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create(
        self,
        user_id: str,
        duration_secs: int | None = None,
        language: str = "en",
        topic: str | None = None,
        status: SessionStatus = SessionStatus.CREATED,
    ) -> SpeakingSession:
        """Create and return a new session (status *CREATED* by default)."""
        record = SpeakingSession(
            user_id=user_id,
            duration_secs=duration_secs,
            language=language,
            topic=topic,
            status=status.value,
        )
        self._session.add(record)
        await self._session.flush()
        return record

    async def find(self, session_id: str) -> SpeakingSession | None:
        """Return a session by ID, or None."""
        stmt = (
            select(SpeakingSession)
            .where(SpeakingSession.id == session_id)
            .execution_options(populate_existing=True)
        )
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def get(self, session_id: str) -> SpeakingSession:
        """Return a session by ID or raise :class:`SessionNotFoundError`."""
        record = await self.find(session_id)
        if record is None:
            raise SessionNotFoundError(session_id)
        return record

    async def get_for_user(self, session_id: str, user_id: str) -> SpeakingSession:
        """Return a session only if *user_id* owns it."""
        record = await self.find(session_id)
        if record is None or record.user_id != user_id:
            raise SessionNotFoundError(session_id)
        return record

    async def update(self, session_id: str, **fields: Any) -> SpeakingSession:
        """Apply a partial update in one statement and return the fresh row.

        Raises:
            ValueError: If a field is unknown or is ``status``.
            SessionNotFoundError: If no row matched.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")
        stmt = update(SpeakingSession).where(SpeakingSession.id == session_id).values(**fields)
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            raise SessionNotFoundError(session_id)
        await self._session.flush()
        return await self.get(session_id)

    async def transition(
        self,
        session_id: str,
        target: SessionStatus,
        expected: SessionStatus | None = None,
        **fields: Any,
    ) -> SpeakingSession:
        """Move a session to *target*, optionally writing extra fields atomically.

        Only rows whose current status may reach *target* (or equals
        *expected*, when given) are updated, so status never regresses.

        Raises:
            SessionNotFoundError: If the session does not exist.
            InvalidSessionStateError: If the current status does not allow it.
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update session fields: {sorted(unknown)}")

        if expected is not None:
            sources = [expected.value] if can_transition(expected, target) else []
        else:
            sources = [s.value for s in SessionStatus if can_transition(s, target)]

        stmt = (
            update(SpeakingSession)
            .where(SpeakingSession.id == session_id, SpeakingSession.status.in_(sources))
            .values(status=target.value, **fields)
        )
        result = await self._session.execute(stmt)
        if result.rowcount == 0:
            current = await self.get(session_id)
            raise InvalidSessionStateError(
                session_id,
                current.status,
                expected=expected.value if expected else None,
            )
        await self._session.flush()
        return await self.get(session_id)

    async def delete(self, session_id: str) -> None:
        """Delete a session, cascading to its transcript and insights."""
        record = await self.get(session_id)
        await self._session.delete(record)
        await self._session.flush()

    # ------------------------------------------------------------------
    # Transcripts
    # ------------------------------------------------------------------

    async def create_transcript(self, session_id: str, text: str) -> Transcript:
        """Store the session's transcript with its word count."""
        transcript = Transcript(session_id=session_id, text=text, word_count=count_words(text))
        self._session.add(transcript)
        await self._session.flush()
        return transcript

    async def get_transcript(self, session_id: str) -> Transcript | None:
        stmt = select(Transcript).where(Transcript.session_id == session_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    async def create_insights(
        self, session_id: str, insights: Iterable[InsightResult]
    ) -> list[Insight]:
        """Store a batch of insights for a session.

        Raises:
            ValueError: If the session would end up with more than five insights.
        """
        items = list(insights)
        existing = await self.count_insights(session_id)
        if existing + len(items) > MAX_INSIGHTS_PER_SESSION:
            raise ValueError(
                f"Session {session_id} would have {existing + len(items)} insights "
                f"(max {MAX_INSIGHTS_PER_SESSION})"
            )

        rows = [
            Insight(
                session_id=session_id,
                category=item.category.value,
                pattern=item.pattern,
                detail=item.detail,
                frequency=item.frequency,
                severity=item.severity.value if item.severity else None,
                examples=item.examples,
                suggestion=item.suggestion,
            )
            for item in items
        ]
        self._session.add_all(rows)
        await self._session.flush()
        return rows

    async def list_insights(self, session_id: str) -> list[Insight]:
        stmt = select(Insight).where(Insight.session_id == session_id).order_by(Insight.id)
        result = await self._session.execute(stmt)
        return list(result.scalars().all())

    async def count_insights(self, session_id: str) -> int:
        stmt = select(func.count()).select_from(Insight).where(Insight.session_id == session_id)
        result = await self._session.execute(stmt)
        return int(result.scalar_one())


class PatternProfileRepository:
    """Per-user pattern profile storage.

    Args:
        session: An active SQLAlchemy ``AsyncSession``.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, user_id: str) -> PatternProfile | None:
        """Return the user's profile, or None if nothing was aggregated yet."""
        stmt = select(PatternProfile).where(PatternProfile.user_id == user_id)
        result = await self._session.execute(stmt)
        return result.scalar_one_or_none()

    async def upsert(self, user_id: str, patterns: dict[str, int]) -> PatternProfile:
        """Create or replace the user's pattern counts and stamp ``last_updated``."""
        now = datetime.now(UTC)
        profile = await self.get(user_id)
        if profile is None:
            profile = PatternProfile(user_id=user_id, patterns=dict(patterns), last_updated=now)
            self._session.add(profile)
        else:
            # Assign a new dict so the JSON column is marked dirty.
            profile.patterns = dict(patterns)
            profile.last_updated = now
        await self._session.flush()
        return profile
