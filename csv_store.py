"""CSV-file-backed bookmark store.

One file per record type in a data directory. A mutation rewrites only the
file of the table it touched, through a temporary file swapped into place.
"""

from __future__ import annotations

import csv
import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from errors import PersistenceError
from models import Bookmark, BookmarkMetadata, Connection, EnrichmentLog
from store import BOOKMARKS, CONNECTIONS, ENRICHMENT_LOGS, METADATA, InMemoryBookmarkStore

LOGGER = logging.getLogger(__name__)

BOOKMARKS_FILE = "bookmarks.csv"
METADATA_FILE = "metadata.csv"
CONNECTIONS_FILE = "connections.csv"
ENRICHMENT_LOGS_FILE = "enrichment_logs.csv"

BOOKMARK_COLUMNS = [
    "id",
    "source",
    "source_id",
    "url",
    "author",
    "author_url",
    "content",
    "bookmarked_at",
    "enrichment_version",
]

METADATA_COLUMNS = [
    "bookmark_id",
    "intent",
    "author_bio",
    "company",
    "primary_topic",
    "key_themes",          # JSON list
    "category",
    "category_confidence",
    "enrichment_quality_score",
]

CONNECTION_COLUMNS = ["bookmark_id_1", "bookmark_id_2", "connection_type", "strength_score"]

ENRICHMENT_LOG_COLUMNS = [
    "bookmarks_processed",
    "tokens_used",
    "cost",
    "model_used",
    "enrichment_type",
    "timestamp",
]


class CsvBookmarkStore(InMemoryBookmarkStore):
    """InMemoryBookmarkStore that loads from and flushes to CSV files."""

    def __init__(self, directory: str | Path) -> None:
        super().__init__()
        self.directory = Path(directory)
        self._load()

    # --- loading ---

    def _load(self) -> None:
        for row in self._read(BOOKMARKS_FILE):
            bookmark = Bookmark(
                id=row["id"],
                source=row["source"],  # type: ignore[arg-type]
                source_id=row["source_id"],
                url=row["url"],
                author=row["author"],
                content=row["content"],
                bookmarked_at=datetime.fromisoformat(row["bookmarked_at"]),
                author_url=row.get("author_url") or None,
                enrichment_version=row.get("enrichment_version") or None,
            )
            self._bookmarks[bookmark.id] = bookmark

        for row in self._read(METADATA_FILE):
            themes = row.get("key_themes")
            metadata = BookmarkMetadata(
                bookmark_id=row["bookmark_id"],
                intent=row.get("intent") or None,
                author_bio=row.get("author_bio") or None,
                company=row.get("company") or None,
                primary_topic=row.get("primary_topic") or None,
                key_themes=tuple(json.loads(themes)) if themes else None,
                category=row.get("category") or None,
                category_confidence=_as_float(row.get("category_confidence")),
                enrichment_quality_score=_as_float(row.get("enrichment_quality_score")),
            )
            self._metadata[metadata.bookmark_id] = metadata

        for row in self._read(CONNECTIONS_FILE):
            connection = Connection(
                bookmark_id_1=row["bookmark_id_1"],
                bookmark_id_2=row["bookmark_id_2"],
                connection_type=row["connection_type"],  # type: ignore[arg-type]
                strength_score=float(row["strength_score"]),
            )
            self._connections[connection.key] = connection

        for row in self._read(ENRICHMENT_LOGS_FILE):
            self._logs.append(
                EnrichmentLog(
                    bookmarks_processed=int(row["bookmarks_processed"]),
                    tokens_used=int(row["tokens_used"]),
                    cost=float(row["cost"]),
                    model_used=row["model_used"],
                    enrichment_type=row["enrichment_type"],
                    timestamp=(
                        datetime.fromisoformat(row["timestamp"]) if row.get("timestamp") else None
                    ),
                )
            )

        LOGGER.info(
            "Loaded %s bookmarks, %s metadata rows, %s connections from %s",
            len(self._bookmarks),
            len(self._metadata),
            len(self._connections),
            self.directory,
        )

    def _read(self, filename: str) -> list[dict[str, str]]:
        path = self.directory / filename
        if not path.exists():
            return []
        try:
            with path.open(newline="", encoding="utf-8") as fh:
                return list(csv.DictReader(fh))
        except (OSError, csv.Error) as exc:
            raise PersistenceError(f"Could not read {path}: {exc}") from exc

    # --- flushing ---

    def _changed(self, table: str) -> None:
        if table == BOOKMARKS:
            self._write(BOOKMARKS_FILE, BOOKMARK_COLUMNS, map(_bookmark_row, self._bookmarks.values()))
        elif table == METADATA:
            self._write(METADATA_FILE, METADATA_COLUMNS, map(_metadata_row, self._metadata.values()))
        elif table == CONNECTIONS:
            self._write(
                CONNECTIONS_FILE, CONNECTION_COLUMNS, map(_connection_row, self._connections.values())
            )
        elif table == ENRICHMENT_LOGS:
            self._write(ENRICHMENT_LOGS_FILE, ENRICHMENT_LOG_COLUMNS, map(_log_row, self._logs))

    def _write(self, filename: str, columns: list[str], rows: Iterable[dict[str, Any]]) -> None:
        path = self.directory / filename
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", newline="", encoding="utf-8") as fh:
                writer = csv.DictWriter(fh, fieldnames=columns)
                writer.writeheader()
                writer.writerows(rows)
            tmp_path.replace(path)
        except OSError as exc:
            tmp_path.unlink(missing_ok=True)
            raise PersistenceError(f"Could not write {path}: {exc}") from exc


def _bookmark_row(bookmark: Bookmark) -> dict[str, Any]:
    return {
        "id": bookmark.id,
        "source": bookmark.source,
        "source_id": bookmark.source_id,
        "url": bookmark.url,
        "author": bookmark.author,
        "author_url": bookmark.author_url or "",
        "content": bookmark.content,
        "bookmarked_at": bookmark.bookmarked_at.isoformat(),
        "enrichment_version": bookmark.enrichment_version or "",
    }


def _metadata_row(metadata: BookmarkMetadata) -> dict[str, Any]:
    return {
        "bookmark_id": metadata.bookmark_id,
        "intent": metadata.intent or "",
        "author_bio": metadata.author_bio or "",
        "company": metadata.company or "",
        "primary_topic": metadata.primary_topic or "",
        "key_themes": "" if metadata.key_themes is None else json.dumps(list(metadata.key_themes)),
        "category": metadata.category or "",
        "category_confidence": _blank(metadata.category_confidence),
        "enrichment_quality_score": _blank(metadata.enrichment_quality_score),
    }


def _connection_row(connection: Connection) -> dict[str, Any]:
    return {
        "bookmark_id_1": connection.bookmark_id_1,
        "bookmark_id_2": connection.bookmark_id_2,
        "connection_type": connection.connection_type,
        "strength_score": connection.strength_score,
    }


def _log_row(log: EnrichmentLog) -> dict[str, Any]:
    return {
        "bookmarks_processed": log.bookmarks_processed,
        "tokens_used": log.tokens_used,
        "cost": log.cost,
        "model_used": log.model_used,
        "enrichment_type": log.enrichment_type,
        "timestamp": log.timestamp.isoformat() if log.timestamp else "",
    }


def _blank(value: float | None) -> float | str:
    return "" if value is None else value


def _as_float(value: str | None) -> float | None:
    return float(value) if value else None
