"""
SpeakLoop exception hierarchy.

All application-specific exceptions inherit from SpeakLoopError,
enabling centralized error handling in the API middleware layer.
"""

from datetime import UTC, datetime


class SpeakLoopError(Exception):
    """Base exception for all SpeakLoop errors."""

    def __init__(
        self,
        detail: str = "An unexpected error occurred",
        code: str = "SPEAKLOOP_ERROR",
        status_code: int = 500,
    ) -> None:
        self.detail = detail
        self.code = code
        self.status_code = status_code
        self.timestamp = datetime.now(UTC).isoformat()
        super().__init__(detail)


class SignatureError(SpeakLoopError):
    """Raised when a job delivery is unsigned or carries a bad signature.

    The same message is used for both cases so callers learn nothing about
    which signing key was tried.
    """

    def __init__(self, detail: str = "Invalid signature") -> None:
        super().__init__(detail=detail, code="UNAUTHORIZED", status_code=401)


class InvalidPayloadError(SpeakLoopError):
    """Raised when a job delivery body cannot be parsed."""

    def __init__(self, detail: str = "Malformed job payload") -> None:
        super().__init__(detail=detail, code="INVALID_PAYLOAD", status_code=400)


class SessionNotFoundError(SpeakLoopError):
    """Raised when a session ID does not exist."""

    def __init__(self, session_id: str) -> None:
        super().__init__(
            detail=f"Session not found: {session_id}",
            code="NOT_FOUND",
            status_code=404,
        )


class InvalidSessionStateError(SpeakLoopError):
    """Raised when a session is not in the status an operation requires."""

    def __init__(self, session_id: str, status: str, expected: str | None = None) -> None:
        detail = f"Session {session_id} is in state {status}"
        if expected:
            detail += f" (expected {expected})"
        super().__init__(detail=detail, code="INVALID_STATE", status_code=400)
        self.session_id = session_id
        self.status = status


class AudioNotFoundError(SpeakLoopError):
    """Raised when an audio object is missing from storage or never recorded."""

    def __init__(self, key: str | None) -> None:
        detail = f"Audio not found: {key}" if key else "Session missing audio URL"
        super().__init__(detail=detail, code="AUDIO_NOT_FOUND", status_code=404)


class InvalidAudioError(SpeakLoopError):
    """Raised when an uploaded audio file fails size or type validation."""

    def __init__(self, detail: str, status_code: int = 400) -> None:
        super().__init__(detail=detail, code="INVALID_FILE", status_code=status_code)


class StorageError(SpeakLoopError):
    """Raised when object storage fails."""

    def __init__(self, detail: str = "Storage operation failed") -> None:
        super().__init__(detail=detail, code="STORAGE_ERROR", status_code=500)


class TranscriptionError(SpeakLoopError):
    """Raised when STT processing fails."""

    def __init__(self, detail: str = "Transcription failed") -> None:
        super().__init__(
            detail=detail,
            code="TRANSCRIPTION_ERROR",
            status_code=500,
        )


class AnalysisError(SpeakLoopError):
    """Raised when pattern analysis fails or returns an invalid payload."""

    def __init__(self, detail: str = "Analysis failed") -> None:
        super().__init__(detail=detail, code="ANALYSIS_ERROR", status_code=500)


class AggregationError(SpeakLoopError):
    """Raised when the pattern profile cannot be updated."""

    def __init__(self, detail: str = "Pattern aggregation failed") -> None:
        super().__init__(detail=detail, code="AGGREGATION_ERROR", status_code=500)


class MissingCredentialsError(SpeakLoopError):
    """Raised on first use of a client whose credentials are not configured."""

    def __init__(self, name: str, purpose: str) -> None:
        super().__init__(
            detail=(
                f"Missing required environment variable: {name}. "
                f"Configure credentials to enable {purpose}."
            ),
            code="CONFIGURATION_ERROR",
            status_code=500,
        )
        self.name = name


class ProcessingError(SpeakLoopError):
    """Generic failure returned to the scheduler when a pipeline run fails.

    The underlying cause is recorded on the session and in the logs, never
    in the response body.
    """

    def __init__(self, session_id: str | None = None) -> None:
        super().__init__(detail="Processing failed", code="PROCESSING_ERROR", status_code=500)
        self.session_id = session_id
