"""Whisper STT implementation using the OpenAI transcription API.

The ``AsyncOpenAI`` client is created lazily on first use and kept for the
life of the instance, so a missing ``OPENAI_API_KEY`` surfaces as a
configuration error when a session is transcribed rather than at startup.
Transient connection failures are retried with exponential backoff.
"""

import logging

from openai import (
    APIConnectionError,
    APITimeoutError,
    AsyncOpenAI,
    RateLimitError,
)
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from src.core.config import get_settings
from src.core.exceptions import MissingCredentialsError, TranscriptionError
from src.services.transcription.base import BaseSTT

logger = logging.getLogger(__name__)


class WhisperAPISTT(BaseSTT):
    """Speech-to-text provider backed by OpenAI's hosted Whisper model.

    Args:
        api_key: Overrides ``settings.openai_api_key``.
        model: Overrides ``settings.whisper_model``.
        language: Overrides ``settings.transcription_language``.
        settings: Optional Settings instance (defaults to get_settings()).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        language: str | None = None,
        settings=None,
    ) -> None:
        self._settings = settings or get_settings()
        self._api_key = api_key or self._settings.openai_api_key
        self._model = model or self._settings.whisper_model
        self._language = language or self._settings.transcription_language
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        """Return the cached client, creating it on first use."""
        if self._client is None:
            if not self._api_key:
                raise MissingCredentialsError("OPENAI_API_KEY", "transcription")
            self._client = AsyncOpenAI(api_key=self._api_key)
        return self._client

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=16),
        retry=retry_if_exception_type((ConnectionError, TimeoutError)),
        reraise=True,
    )
    async def _call_api(self, audio: bytes, filename: str, content_type: str, language: str) -> str:
        """Send one transcription request, mapping SDK transport errors to builtins."""
        client = self._get_client()
        try:
            response = await client.audio.transcriptions.create(
                model=self._model,
                file=(filename, audio, content_type),
                language=language,
            )
        except APITimeoutError as exc:
            logger.warning("Whisper API timeout: %s", exc)
            raise TimeoutError(f"Whisper API request timed out: {exc}") from exc
        except APIConnectionError as exc:
            logger.warning("Whisper API connection error: %s", exc)
            raise ConnectionError(f"Failed to connect to Whisper API: {exc}") from exc
        except RateLimitError as exc:
            logger.warning("Whisper API rate limit hit: %s", exc)
            raise ConnectionError(f"Whisper API rate limit exceeded: {exc}") from exc
        return response.text

    async def transcribe(self, audio: bytes, filename: str, **kwargs) -> str:
        """Transcribe encoded audio bytes.

        Args:
            audio: Encoded audio bytes.
            filename: Name hint, e.g. ``session-<id>.webm``.
            **kwargs: Optional keys: language, content_type.

        Returns:
            The transcript text.

        Raises:
            MissingCredentialsError: If no API key is configured.
            TranscriptionError: If the provider call fails or the audio is empty.
        """
        if not audio:
            raise TranscriptionError(detail="Audio payload is empty")

        content_type = kwargs.get("content_type", "audio/webm")
        language = kwargs.get("language") or self._language
        try:
            text = await self._call_api(audio, filename, content_type, language)
        except MissingCredentialsError:
            raise
        except Exception as exc:
            raise TranscriptionError(detail=f"Whisper transcription failed: {exc}") from exc

        logger.info("Transcribed %s (%d bytes -> %d chars)", filename, len(audio), len(text))
        return text
