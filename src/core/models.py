"""
Pydantic v2 models shared by the pipeline, its clients and the API layer.

Session state machine, pattern-analysis payload schema, job delivery body,
and read models returned by the session services.
"""

from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

MAX_INSIGHTS_PER_SESSION = 5

# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    version: str = "0.1.0"
    timestamp: datetime


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


class SessionStatus(StrEnum):
    """Possible states for a speaking session."""

    CREATED = "CREATED"
    UPLOADED = "UPLOADED"
    TRANSCRIBING = "TRANSCRIBING"
    ANALYZING = "ANALYZING"
    DONE = "DONE"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.DONE, SessionStatus.FAILED)


# Forward edges only; FAILED is reachable from every non-terminal state.
SESSION_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.CREATED: frozenset({SessionStatus.UPLOADED}),
    SessionStatus.UPLOADED: frozenset({SessionStatus.TRANSCRIBING}),
    SessionStatus.TRANSCRIBING: frozenset({SessionStatus.ANALYZING}),
    SessionStatus.ANALYZING: frozenset({SessionStatus.DONE}),
    SessionStatus.DONE: frozenset(),
    SessionStatus.FAILED: frozenset(),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    """Return True if *target* is reachable from *current* in one step."""
    if target == SessionStatus.FAILED:
        return not current.is_terminal
    return target in SESSION_TRANSITIONS[current]


# ---------------------------------------------------------------------------
# Pattern analysis
# ---------------------------------------------------------------------------


class InsightCategory(StrEnum):
    """Kinds of recurring speaking pattern the analyzer may report."""

    grammar = "grammar"
    vocabulary = "vocabulary"
    structure = "structure"


class InsightSeverity(StrEnum):
    """Impact of a pattern on clarity and naturalness."""

    high = "high"
    medium = "medium"
    low = "low"


class InsightResult(BaseModel):
    """One recurring pattern detected in a transcript."""

    model_config = ConfigDict(extra="ignore")

    category: InsightCategory
    pattern: str
    detail: str
    frequency: int | None = Field(default=None, ge=0)
    severity: InsightSeverity | None = None
    examples: list[str] | None = None
    suggestion: str | None = None

    @property
    def profile_key(self) -> str:
        """Composite key used in the user's pattern profile."""
        return f"{self.category.value}:{self.pattern}"


class AnalysisResult(BaseModel):
    """Validated pattern-analysis response. Any shape violation is rejected."""

    model_config = ConfigDict(extra="ignore")

    insights: list[InsightResult] = Field(max_length=MAX_INSIGHTS_PER_SESSION)
    focus_next: str = Field(alias="focusNext")
    summary: str


# ---------------------------------------------------------------------------
# Job delivery
# ---------------------------------------------------------------------------


class ProcessJobRequest(BaseModel):
    """Body of a pipeline job delivered by the scheduler."""

    session_id: str = Field(alias="sessionId", min_length=1)


class ProcessJobResponse(BaseModel):
    """POST /api/internal/process success response."""

    ok: bool = True


# ---------------------------------------------------------------------------
# Session read models
# ---------------------------------------------------------------------------


class TranscriptResponse(BaseModel):
    """Stored transcript of a session."""

    model_config = ConfigDict(from_attributes=True)

    text: str
    word_count: int
    created_at: datetime


class InsightResponse(BaseModel):
    """Stored insight of a session."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    category: str
    pattern: str
    detail: str
    frequency: int | None = None
    severity: str | None = None
    examples: list[str] | None = None
    suggestion: str | None = None


class SessionDetailResponse(BaseModel):
    """A session with its transcript and insights."""

    id: str
    user_id: str
    status: SessionStatus
    duration_secs: int | None = None
    language: str
    topic: str | None = None
    focus_next: str | None = None
    error_message: str | None = None
    audio_deleted_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    transcript: TranscriptResponse | None = None
    insights: list[InsightResponse] = Field(default_factory=list)
