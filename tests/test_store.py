from __future__ import annotations

from datetime import UTC, datetime

import pytest

from errors import PersistenceError
from models import Bookmark, BookmarkMetadata, Connection, EnrichmentLog
from store import InMemoryBookmarkStore


def _bookmark(bookmark_id: str, version: str | None = None) -> Bookmark:
    return Bookmark(
        id=bookmark_id,
        source="twitter",
        source_id=bookmark_id,
        url=f"https://x.com/i/{bookmark_id}",
        author="Author",
        content="content",
        bookmarked_at=datetime(2026, 1, 1, tzinfo=UTC),
        enrichment_version=version,
    )


def test_find_unenriched_and_update_version() -> None:
    store = InMemoryBookmarkStore([_bookmark("a"), _bookmark("b", version="1.0")])

    assert [b.id for b in store.find_unenriched()] == ["a"]

    store.update_enrichment_version("a", "1.0")

    assert store.find_unenriched() == []
    assert store.find_by_id("a").enrichment_version == "1.0"


def test_update_version_unknown_bookmark_raises() -> None:
    store = InMemoryBookmarkStore()

    with pytest.raises(PersistenceError, match="missing"):
        store.update_enrichment_version("missing", "1.0")


def test_upsert_metadata_replaces_previous_record() -> None:
    store = InMemoryBookmarkStore([_bookmark("a")])

    store.upsert_metadata(BookmarkMetadata(bookmark_id="a", category="Inspo"))
    store.upsert_metadata(BookmarkMetadata(bookmark_id="a", category="Tutorials"))

    assert store.find_metadata("a").category == "Tutorials"


def test_create_connection_upserts_on_pair_and_type() -> None:
    store = InMemoryBookmarkStore()

    store.create_connection(Connection("a", "b", "same_author", 0.8))
    store.create_connection(Connection("a", "b", "same_author", 0.9))
    store.create_connection(Connection("a", "b", "temporal_proximity", 0.7))

    assert sorted((c.connection_type, c.strength_score) for c in store.connections()) == [
        ("same_author", 0.9),
        ("temporal_proximity", 0.7),
    ]


def test_delete_connections_among_only_touches_inner_pairs() -> None:
    store = InMemoryBookmarkStore()
    store.create_connection(Connection("a", "b", "same_author", 0.9))
    store.create_connection(Connection("a", "z", "same_author", 0.9))

    removed = store.delete_connections_among(["a", "b"])

    assert removed == 1
    assert [c.key for c in store.connections()] == [("a", "z", "same_author")]


def test_create_enrichment_log_stamps_time() -> None:
    store = InMemoryBookmarkStore()

    store.create_enrichment_log(
        EnrichmentLog(bookmarks_processed=2, tokens_used=10, cost=0.1, model_used="gpt-4o", enrichment_type="intent")
    )

    (log,) = store.enrichment_logs()
    assert log.timestamp is not None


def test_failed_flush_rolls_back_the_change() -> None:
    class _ReadOnlyConnections(InMemoryBookmarkStore):
        def _changed(self, table: str) -> None:
            if table == "connections":
                raise PersistenceError("read-only")

    store = _ReadOnlyConnections([_bookmark("a"), _bookmark("b")])

    with pytest.raises(PersistenceError):
        store.create_connection(Connection("a", "b", "same_author", 0.9))

    assert store.connections() == []
    assert len(store.all_bookmarks()) == 2
