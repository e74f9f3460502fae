"""Shared utility functions for SpeakLoop."""

import re


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences wrapping JSON from LLM responses."""
    text = text.strip()
    if text.startswith("```"):
        text = re.sub(r"^```\w*\n?", "", text)
        text = re.sub(r"\n?```$", "", text)
    return text.strip()


def count_words(text: str) -> int:
    """Number of whitespace-separated tokens in *text*."""
    return len(text.split())


def audio_extension(content_type: str, default: str = "webm") -> str:
    """Derive a file extension from an audio MIME type.

    ``audio/webm;codecs=opus`` -> ``webm``; anything unparseable falls back
    to *default*.
    """
    _, _, subtype = content_type.partition("/")
    subtype = subtype.split(";", 1)[0].strip()
    return subtype or default


def generate_audio_key(user_id: str, session_id: str, extension: str = "webm") -> str:
    """Object-store key for a session's audio."""
    return f"sessions/{user_id}/{session_id}/audio.{extension}"
