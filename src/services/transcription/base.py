"""
Abstract base class for Speech-to-Text providers.

All STT implementations must implement this interface, enabling
provider-agnostic transcription in the session pipeline.
"""

from abc import ABC, abstractmethod


class BaseSTT(ABC):
    """Interface that every STT provider must implement."""

    @abstractmethod
    async def transcribe(self, audio: bytes, filename: str, **kwargs) -> str:
        """Transcribe raw audio bytes to text.

        Args:
            audio: Encoded audio (webm, mp4, wav, ...).
            filename: Name hint the provider uses to infer the container format.
            **kwargs: Provider-specific options (language, content_type, etc.).

        Returns:
            The transcript text.
        """
