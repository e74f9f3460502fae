"""Tests for shared helpers."""

import pytest

from src.core.utils import audio_extension, count_words, generate_audio_key, strip_code_fences


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ('{"a": 1}', '{"a": 1}'),
        ('```json\n{"a": 1}\n```', '{"a": 1}'),
        ('```\n{"a": 1}\n```', '{"a": 1}'),
        ('  \n{"a": 1}  ', '{"a": 1}'),
    ],
)
def test_strip_code_fences(raw, expected):
    assert strip_code_fences(raw) == expected


@pytest.mark.parametrize(
    ("text", "expected"),
    [("", 0), ("   ", 0), ("one", 1), ("so I\twent\n\nhome", 4)],
)
def test_count_words(text, expected):
    assert count_words(text) == expected


@pytest.mark.parametrize(
    ("content_type", "expected"),
    [
        ("audio/webm", "webm"),
        ("audio/webm;codecs=opus", "webm"),
        ("audio/mp4", "mp4"),
        ("audio", "webm"),
    ],
)
def test_audio_extension(content_type, expected):
    assert audio_extension(content_type) == expected


def test_generate_audio_key():
    assert generate_audio_key("u1", "s1", "mp4") == "sessions/u1/s1/audio.mp4"
