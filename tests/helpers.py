"""Test doubles and builders shared across the test suite."""

import json
import time

import jwt

from src.core.exceptions import AudioNotFoundError
from src.core.security import JWT_ALG, SIGNATURE_ISSUER, body_digest
from src.services.storage.object_store import BaseObjectStore

CURRENT_KEY = "sig_current_test_key"
NEXT_KEY = "sig_next_test_key"


class InMemoryObjectStore(BaseObjectStore):
    """Dict-backed object store that records deletions."""

    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str]] = {}
        self.deleted: list[str] = []

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        self.objects[key] = (data, content_type)
        return key

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise AudioNotFoundError(key)
        return self.objects[key][0]

    async def delete(self, key: str) -> None:
        self.objects.pop(key, None)
        self.deleted.append(key)


def analysis_payload(insights=None, focus_next="Use 'however' instead of 'but'.") -> str:
    """Build a JSON analysis reply as the LLM would return it."""
    if insights is None:
        insights = [
            {
                "category": "grammar",
                "pattern": "articles",
                "detail": "Drops 'the' before specific nouns.",
                "frequency": 3,
                "severity": "high",
                "examples": ["I went to store", "We saw movie"],
                "suggestion": "Say 'the' before nouns both speakers know.",
            },
            {
                "category": "vocabulary",
                "pattern": "overuse of 'so'",
                "detail": "Starts most sentences with 'so'.",
                "severity": "medium",
            },
        ]
    return json.dumps(
        {"insights": insights, "focusNext": focus_next, "summary": "Clear, fluent speaker."}
    )


def make_insight(category="grammar", pattern="articles", frequency=None, **extra) -> dict:
    return {
        "category": category,
        "pattern": pattern,
        "detail": f"{category} issue: {pattern}",
        **({"frequency": frequency} if frequency is not None else {}),
        **extra,
    }


def sign(body: bytes, /, key: str = CURRENT_KEY, **claims) -> str:
    """Create a delivery signature for *body* the way the scheduler does."""
    now = int(time.time())
    payload = {
        "iss": SIGNATURE_ISSUER,
        "iat": now,
        "nbf": now,
        "exp": now + 300,
        "body": body_digest(body),
    }
    payload.update(claims)
    return jwt.encode(payload, key, algorithm=JWT_ALG)
