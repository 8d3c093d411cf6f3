"""Pairwise relationship scoring between enriched bookmarks (no LLM calls)."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import UTC, datetime, timedelta
from typing import Any, Iterable, Sequence

from models import CONNECTION_TYPES, Bookmark, Connection, EnrichedBookmark

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CONNECTIONS_PER_BOOKMARK = 5

# A candidate is emitted only when its score is strictly above the threshold.
THRESHOLDS: dict[str, float] = {
    "same_author": 0.0,
    "shared_topic": 0.3,
    "semantic_similarity": 0.4,
    "temporal_proximity": 0.5,
}

SAME_AUTHOR_SCORE = 0.8
SAME_SOURCE_BONUS = 0.1
TOPIC_MATCH_SCORE = 0.6
THEME_SCORE_PER_MATCH = 0.15
THEME_SCORE_CAP = 0.4
SAME_CATEGORY_BONUS = 0.1
THEME_OVERLAP_BOOST = 0.2
MIN_WORD_LENGTH = 4

_ONE_HOUR = timedelta(hours=1)
_ONE_DAY = timedelta(days=1)
_ONE_WEEK = timedelta(weeks=1)
_DECAY_WINDOW = timedelta(weeks=3)


def same_author_score(first: Bookmark, second: Bookmark) -> float:
    if first.author.lower() != second.author.lower():
        return 0.0
    score = SAME_AUTHOR_SCORE
    if first.source == second.source:
        score += SAME_SOURCE_BONUS
    return min(1.0, score)


def _theme_set(item: EnrichedBookmark) -> set[str]:
    if item.metadata is None:
        return set()
    return {theme.lower() for theme in item.metadata.key_themes}


def shared_topic_score(first: EnrichedBookmark, second: EnrichedBookmark) -> float:
    """Topic match, theme overlap and category agreement; 0 without metadata on both sides."""
    meta1, meta2 = first.metadata, second.metadata
    if meta1 is None or meta2 is None:
        return 0.0

    score = 0.0
    if (
        meta1.primary_topic
        and meta2.primary_topic
        and meta1.primary_topic.lower() == meta2.primary_topic.lower()
    ):
        score += TOPIC_MATCH_SCORE

    shared_themes = _theme_set(first) & _theme_set(second)
    if shared_themes:
        score += min(THEME_SCORE_CAP, len(shared_themes) * THEME_SCORE_PER_MATCH)

    if meta1.category and meta2.category and meta1.category == meta2.category:
        score += SAME_CATEGORY_BONUS

    return min(1.0, score)


def _content_words(text: str) -> set[str]:
    return {word for word in text.lower().split() if len(word) >= MIN_WORD_LENGTH}


def semantic_similarity_score(first: EnrichedBookmark, second: EnrichedBookmark) -> float:
    """Jaccard overlap of content words, boosted when themes also overlap."""
    words1 = _content_words(first.bookmark.content)
    words2 = _content_words(second.bookmark.content)
    if not words1 or not words2:
        return 0.0

    jaccard = len(words1 & words2) / len(words1 | words2)
    boost = THEME_OVERLAP_BOOST if _theme_set(first) & _theme_set(second) else 0.0
    return min(1.0, jaccard + boost)


def _as_utc(moment: datetime) -> datetime:
    # Naive timestamps are taken to be UTC.
    if moment.tzinfo is None:
        return moment.replace(tzinfo=UTC)
    return moment


def temporal_proximity_score(first: Bookmark, second: Bookmark) -> float:
    """Step function of the bookmark time gap.

    <1h -> 0.9, <1d -> 0.7, <1w -> 0.5, then linear decay from 0.5 to 0 over
    the following three weeks.
    """
    gap = abs(_as_utc(first.bookmarked_at) - _as_utc(second.bookmarked_at))
    if gap < _ONE_HOUR:
        return 0.9
    if gap < _ONE_DAY:
        return 0.7
    if gap < _ONE_WEEK:
        return 0.5
    if gap < _ONE_WEEK + _DECAY_WINDOW:
        return max(0.0, 0.5 - ((gap - _ONE_WEEK) / _DECAY_WINDOW) * 0.5)
    return 0.0


def score_pair(first: EnrichedBookmark, second: EnrichedBookmark) -> dict[str, float]:
    return {
        "same_author": same_author_score(first.bookmark, second.bookmark),
        "shared_topic": shared_topic_score(first, second),
        "semantic_similarity": semantic_similarity_score(first, second),
        "temporal_proximity": temporal_proximity_score(first.bookmark, second.bookmark),
    }


def _ordered_pair(first_id: str, second_id: str) -> tuple[str, str]:
    return (first_id, second_id) if first_id < second_id else (second_id, first_id)


def _ranked(candidates: list[Connection]) -> list[Connection]:
    return sorted(candidates, key=lambda c: (-c.strength_score, c.key))


def detect_connections(
    enriched: Sequence[EnrichedBookmark],
    max_per_bookmark: int = DEFAULT_MAX_CONNECTIONS_PER_BOOKMARK,
) -> list[Connection]:
    """Score every unordered pair and keep each bookmark's strongest candidates.

    Top-K is taken per bookmark over the candidates it takes part in, in
    either pair role, so a connection survives if either endpoint ranks it.
    Pairs are stored with bookmark_id_1 < bookmark_id_2 and each
    (pair, type) appears at most once in the result.
    """
    per_bookmark: dict[str, list[Connection]] = defaultdict(list)

    for i, first in enumerate(enriched):
        for second in enriched[i + 1 :]:
            if first.bookmark.id == second.bookmark.id:
                continue
            id1, id2 = _ordered_pair(first.bookmark.id, second.bookmark.id)
            for connection_type, score in score_pair(first, second).items():
                if score <= THRESHOLDS[connection_type]:
                    continue
                connection = Connection(
                    bookmark_id_1=id1,
                    bookmark_id_2=id2,
                    connection_type=connection_type,  # type: ignore[arg-type]
                    strength_score=score,
                )
                per_bookmark[id1].append(connection)
                per_bookmark[id2].append(connection)

    selected: dict[tuple[str, str, str], Connection] = {}
    for item in enriched:
        for connection in _ranked(per_bookmark.get(item.bookmark.id, []))[:max_per_bookmark]:
            selected.setdefault(connection.key, connection)

    connections = _ranked(list(selected.values()))
    LOGGER.info(
        "Detected %s connections across %s bookmarks", len(connections), len(enriched)
    )
    return connections


def get_connection_summary(connections: Sequence[Connection]) -> dict[str, Any]:
    by_type = {connection_type: 0 for connection_type in CONNECTION_TYPES}
    strength_totals = {connection_type: 0.0 for connection_type in CONNECTION_TYPES}
    bookmark_ids: set[str] = set()

    for connection in connections:
        by_type[connection.connection_type] += 1
        strength_totals[connection.connection_type] += connection.strength_score
        bookmark_ids.update((connection.bookmark_id_1, connection.bookmark_id_2))

    avg_strength_by_type = {
        connection_type: (strength_totals[connection_type] / count if count else 0.0)
        for connection_type, count in by_type.items()
    }

    return {
        "total_connections": len(connections),
        "avg_connections_per_bookmark": (
            len(connections) / len(bookmark_ids) if bookmark_ids else 0.0
        ),
        "by_type": by_type,
        "avg_strength_by_type": avg_strength_by_type,
    }


def filter_by_strength(connections: Iterable[Connection], min_strength: float) -> list[Connection]:
    return [c for c in connections if c.strength_score >= min_strength]


def get_bookmark_connections(
    bookmark_id: str, connections: Iterable[Connection]
) -> list[dict[str, Any]]:
    """Connections touching bookmark_id, seen from that bookmark's side."""
    related: list[dict[str, Any]] = []
    for connection in connections:
        if bookmark_id not in (connection.bookmark_id_1, connection.bookmark_id_2):
            continue
        other = (
            connection.bookmark_id_2
            if connection.bookmark_id_1 == bookmark_id
            else connection.bookmark_id_1
        )
        related.append(
            {
                "connected_bookmark_id": other,
                "connection_type": connection.connection_type,
                "strength_score": connection.strength_score,
            }
        )
    return related
