"""Storage collaborator used by the pipeline, plus an in-memory implementation."""

from __future__ import annotations

import copy
import logging
from contextlib import contextmanager
from dataclasses import replace
from datetime import UTC, datetime
from typing import Iterable, Iterator, Protocol

from errors import PersistenceError
from models import Bookmark, BookmarkMetadata, Connection, EnrichmentLog

LOGGER = logging.getLogger(__name__)

# Table names passed to the _changed hook.
BOOKMARKS = "bookmarks"
METADATA = "metadata"
CONNECTIONS = "connections"
ENRICHMENT_LOGS = "enrichment_logs"

_TABLE_ATTRS = {
    BOOKMARKS: "_bookmarks",
    METADATA: "_metadata",
    CONNECTIONS: "_connections",
    ENRICHMENT_LOGS: "_logs",
}


class BookmarkStore(Protocol):
    """Record store the pipeline reads bookmarks from and writes enrichment to."""

    def find_by_id(self, bookmark_id: str) -> Bookmark | None: ...

    def find_unenriched(self) -> list[Bookmark]: ...

    def update_enrichment_version(self, bookmark_id: str, version: str) -> None: ...

    def upsert_metadata(self, metadata: BookmarkMetadata) -> None: ...

    def create_connection(self, connection: Connection) -> None: ...

    def delete_connections_among(self, bookmark_ids: Iterable[str]) -> int: ...

    def create_enrichment_log(self, log: EnrichmentLog) -> None: ...


class InMemoryBookmarkStore:
    """Dict-backed store; connections are keyed by (id_1, id_2, type)."""

    def __init__(self, bookmarks: Iterable[Bookmark] = ()) -> None:
        self._bookmarks: dict[str, Bookmark] = {}
        self._metadata: dict[str, BookmarkMetadata] = {}
        self._connections: dict[tuple[str, str, str], Connection] = {}
        self._logs: list[EnrichmentLog] = []
        for bookmark in bookmarks:
            self.add_bookmark(bookmark)

    # --- writes used by ingestion and tests ---

    def add_bookmark(self, bookmark: Bookmark) -> None:
        with self._mutating(BOOKMARKS):
            self._bookmarks[bookmark.id] = bookmark

    # --- collaborator interface ---

    def find_by_id(self, bookmark_id: str) -> Bookmark | None:
        return self._bookmarks.get(bookmark_id)

    def find_unenriched(self) -> list[Bookmark]:
        return [b for b in self._bookmarks.values() if b.enrichment_version is None]

    def update_enrichment_version(self, bookmark_id: str, version: str) -> None:
        bookmark = self._bookmarks.get(bookmark_id)
        if bookmark is None:
            raise PersistenceError(f"Bookmark not found: {bookmark_id}")
        with self._mutating(BOOKMARKS):
            self._bookmarks[bookmark_id] = replace(bookmark, enrichment_version=version)

    def upsert_metadata(self, metadata: BookmarkMetadata) -> None:
        if metadata.bookmark_id not in self._bookmarks:
            raise PersistenceError(f"Bookmark not found: {metadata.bookmark_id}")
        with self._mutating(METADATA):
            self._metadata[metadata.bookmark_id] = metadata

    def create_connection(self, connection: Connection) -> None:
        """Insert or overwrite the connection stored for the same pair and type."""
        with self._mutating(CONNECTIONS):
            self._connections[connection.key] = connection

    def delete_connections_among(self, bookmark_ids: Iterable[str]) -> int:
        """Remove stored connections whose endpoints are both in bookmark_ids."""
        ids = set(bookmark_ids)
        stale = [
            key
            for key, c in self._connections.items()
            if c.bookmark_id_1 in ids and c.bookmark_id_2 in ids
        ]
        if stale:
            with self._mutating(CONNECTIONS):
                for key in stale:
                    del self._connections[key]
            LOGGER.info("Removed %s stale connections before re-detection", len(stale))
        return len(stale)

    def create_enrichment_log(self, log: EnrichmentLog) -> None:
        if log.timestamp is None:
            log = replace(log, timestamp=datetime.now(UTC))
        with self._mutating(ENRICHMENT_LOGS):
            self._logs.append(log)

    # --- reads ---

    def all_bookmarks(self) -> list[Bookmark]:
        return list(self._bookmarks.values())

    def find_metadata(self, bookmark_id: str) -> BookmarkMetadata | None:
        return self._metadata.get(bookmark_id)

    def connections(self) -> list[Connection]:
        return list(self._connections.values())

    def enrichment_logs(self) -> list[EnrichmentLog]:
        return list(self._logs)

    @contextmanager
    def _mutating(self, table: str) -> Iterator[None]:
        """Apply a change to one table, undoing it if _changed raises."""
        attr = _TABLE_ATTRS[table]
        snapshot = copy.copy(getattr(self, attr))
        try:
            yield
            self._changed(table)
        except Exception:
            setattr(self, attr, snapshot)
            raise

    def _changed(self, table: str) -> None:
        """Hook for subclasses that persist a table after it changes."""
