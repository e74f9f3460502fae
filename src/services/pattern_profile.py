"""Aggregation of session insights into the user's long-term pattern profile.

The profile is a mapping ``"category:pattern" -> running count``. Each call
adds the insights' frequencies (1 when unspecified) to the stored counts and
upserts the result. There is no deduplication here: calling twice with the
same insights counts them twice. The pipeline's status guard is what keeps a
session from being aggregated more than once.

Concurrent runs for the same user read-modify-write the same row; the last
writer wins.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Protocol

from src.core.exceptions import AggregationError
from src.services.storage.database import get_session
from src.services.storage.repository import PatternProfileRepository

logger = logging.getLogger(__name__)


class PatternLike(Protocol):
    category: str
    pattern: str
    frequency: int | None


def profile_key(category: str, pattern: str) -> str:
    return f"{category}:{pattern}"


def merge_insights(patterns: Mapping[str, int], insights: Iterable[PatternLike]) -> dict[str, int]:
    """Return a new mapping with each insight's frequency added to its key."""
    merged = dict(patterns)
    for insight in insights:
        key = profile_key(str(insight.category), insight.pattern)
        increment = 1 if insight.frequency is None else insight.frequency
        merged[key] = merged.get(key, 0) + increment
    return merged


class PatternAggregator:
    """Merges insights into ``pattern_profiles`` in a single transaction."""

    async def aggregate(self, user_id: str, insights: Iterable[PatternLike]) -> dict[str, int]:
        """Add *insights* to the user's profile, creating it if absent.

        Returns:
            The stored pattern counts after the update.

        Raises:
            AggregationError: If the profile cannot be read or written.
        """
        items = list(insights)
        try:
            async with get_session() as db:
                repo = PatternProfileRepository(db)
                profile = await repo.get(user_id)
                current = profile.patterns if profile is not None else {}
                patterns = merge_insights(current or {}, items)
                await repo.upsert(user_id, patterns)
        except Exception as exc:
            raise AggregationError(
                detail=f"Failed to update pattern profile for user {user_id}: {exc}"
            ) from exc

        logger.info("Aggregated %d insight(s) into profile of user %s", len(items), user_id)
        return patterns

    async def get_profile(self, user_id: str) -> dict[str, int]:
        """Return the user's current counts (empty if never aggregated)."""
        async with get_session() as db:
            profile = await PatternProfileRepository(db).get(user_id)
        return dict(profile.patterns) if profile is not None else {}
