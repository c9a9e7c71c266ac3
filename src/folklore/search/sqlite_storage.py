"""SQLite persistence for index snapshots.

A snapshot is written to a fresh database file next to the target and
renamed over it once complete, so a reader never opens a half-written
file. The layout:

- ``metadata``: key/value pairs (format, version, next id, creation time,
  the tokenizer options the postings were built with)
- ``documents``: one row per document, word list and term set as JSON
- ``postings``: one row per ``(term, doc_id)`` pair, WITHOUT ROWID so rows
  are clustered by term; positions are packed unsigned ints

Loading rebuilds an ``IndexSnapshot`` equal to the saved one, including
the document id allocator. Postings only make sense for the tokenizer that
produced them, so a snapshot refuses to load under different options.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterator
from contextlib import closing
from datetime import datetime, timezone
import logging
import os
from pathlib import Path
import sqlite3
from uuid import uuid4

import orjson

from folklore.config import TokenizerConfig
from folklore.errors import StorageError
from folklore.search.analyzers import Tokenizer
from folklore.search.documents import DocumentStore
from folklore.search.models import Document
from folklore.search.postings import PostingStore
from folklore.search.snapshot import IndexSnapshot
from folklore.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas


logger = logging.getLogger(__name__)

FORMAT_VERSION = "2"

_SCHEMA = (
    "CREATE TABLE metadata (key TEXT PRIMARY KEY, value TEXT NOT NULL) WITHOUT ROWID",
    "CREATE TABLE documents ("
    "doc_id INTEGER PRIMARY KEY, "
    "url TEXT NOT NULL UNIQUE, "
    "title TEXT NOT NULL, "
    "raw_text TEXT NOT NULL, "
    "normalized_terms BLOB NOT NULL, "
    "terms BLOB NOT NULL)",
    "CREATE TABLE postings ("
    "term TEXT NOT NULL, "
    "doc_id INTEGER NOT NULL, "
    "frequency INTEGER NOT NULL, "
    "positions_blob BLOB NOT NULL, "
    "PRIMARY KEY (term, doc_id)) WITHOUT ROWID",
)


def _encode_positions(positions: tuple[int, ...]) -> bytes:
    return array("I", positions).tobytes()


def _decode_positions(blob: bytes) -> tuple[int, ...]:
    positions = array("I")
    if blob:
        positions.frombytes(blob)
    return tuple(positions)


class SqliteSnapshotStore:
    """Saves and loads index snapshots as a single SQLite file."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)

    def exists(self) -> bool:
        return self.db_path.exists()

    def save(self, snapshot: IndexSnapshot) -> Path:
        """Write ``snapshot`` atomically to ``db_path``.

        Raises:
            StorageError: the database could not be written.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.db_path.with_name(f".{self.db_path.name}.{uuid4().hex}.tmp")
        try:
            with closing(sqlite3.connect(tmp_path)) as conn:
                apply_write_pragmas(conn)
                with conn:
                    for statement in _SCHEMA:
                        conn.execute(statement)
                    self._store_metadata(conn, snapshot)
                    self._store_documents(conn, snapshot)
                    self._store_postings(conn, snapshot)
            os.replace(tmp_path, self.db_path)
        except (sqlite3.Error, OSError) as exc:
            tmp_path.unlink(missing_ok=True)
            raise StorageError(f"Failed to save snapshot to {self.db_path}: {exc}") from exc

        logger.info(
            "Saved snapshot version %d to %s (%d documents, %d terms)",
            snapshot.version,
            self.db_path,
            snapshot.document_count,
            len(snapshot.postings),
        )
        return self.db_path

    def load(self, tokenizer: Tokenizer | None = None) -> IndexSnapshot:
        """Rebuild the snapshot stored at ``db_path``.

        Without ``tokenizer`` the snapshot gets one built from its stored
        options.

        Raises:
            StorageError: the file is missing, unreadable, not a snapshot, or
                was built with tokenizer options other than ``tokenizer``'s.
        """
        if not self.db_path.exists():
            raise StorageError(f"Snapshot database not found: {self.db_path}")

        try:
            with closing(sqlite3.connect(f"{self.db_path.resolve().as_uri()}?mode=ro", uri=True)) as conn:
                apply_read_pragmas(conn)
                metadata = self._load_metadata(conn)
                tokenizer = self._check_tokenizer(metadata, tokenizer)
                documents = DocumentStore.from_documents(
                    self._iter_documents(conn),
                    next_id=int(metadata.get("next_id", "1")),
                    tokenizer=tokenizer,
                )
                postings = self._load_postings(conn)
        except sqlite3.Error as exc:
            raise StorageError(f"Failed to load snapshot from {self.db_path}: {exc}") from exc
        except (orjson.JSONDecodeError, ValueError, KeyError) as exc:
            raise StorageError(f"Corrupt snapshot database {self.db_path}: {exc}") from exc

        snapshot = IndexSnapshot(
            documents=documents,
            postings=postings,
            version=int(metadata.get("version", "0")),
            published_at=_parse_timestamp(metadata.get("created_at")),
        )
        logger.info(
            "Loaded snapshot version %d from %s (%d documents)",
            snapshot.version,
            self.db_path,
            snapshot.document_count,
        )
        return snapshot

    def _store_metadata(self, conn: sqlite3.Connection, snapshot: IndexSnapshot) -> None:
        metadata = [
            ("format", FORMAT_VERSION),
            ("version", str(snapshot.version)),
            ("next_id", str(snapshot.documents.next_id)),
            ("created_at", snapshot.published_at.isoformat()),
            ("doc_count", str(snapshot.document_count)),
            ("tokenizer", snapshot.documents.tokenizer.config.model_dump_json()),
        ]
        conn.executemany("INSERT INTO metadata (key, value) VALUES (?, ?)", metadata)

    def _store_documents(self, conn: sqlite3.Connection, snapshot: IndexSnapshot) -> None:
        rows = [
            (
                document.id,
                document.url,
                document.title,
                document.raw_text,
                orjson.dumps(list(document.normalized_terms)),
                orjson.dumps(sorted(document.terms)),
            )
            for document in snapshot.documents.documents()
        ]
        conn.executemany(
            "INSERT INTO documents (doc_id, url, title, raw_text, normalized_terms, terms) VALUES (?, ?, ?, ?, ?, ?)",
            rows,
        )

    def _store_postings(self, conn: sqlite3.Connection, snapshot: IndexSnapshot) -> None:
        def rows() -> Iterator[tuple[str, int, int, bytes]]:
            for term in snapshot.postings.terms():
                for posting in snapshot.postings.lookup(term):
                    yield term, posting.doc_id, posting.frequency, _encode_positions(posting.positions)

        conn.executemany(
            "INSERT INTO postings (term, doc_id, frequency, positions_blob) VALUES (?, ?, ?, ?)",
            rows(),
        )

    def _load_metadata(self, conn: sqlite3.Connection) -> dict[str, str]:
        metadata = dict(conn.execute("SELECT key, value FROM metadata").fetchall())
        if metadata.get("format") != FORMAT_VERSION:
            raise StorageError(f"Unsupported snapshot format {metadata.get('format')!r} in {self.db_path}")
        return metadata

    def _check_tokenizer(self, metadata: dict[str, str], tokenizer: Tokenizer | None) -> Tokenizer:
        stored = TokenizerConfig.model_validate_json(metadata["tokenizer"])
        if tokenizer is None:
            return Tokenizer(stored)
        if tokenizer.config != stored:
            raise StorageError(
                f"Snapshot {self.db_path} was built with tokenizer options {stored.model_dump()}, "
                f"not {tokenizer.config.model_dump()}"
            )
        return tokenizer

    def _iter_documents(self, conn: sqlite3.Connection) -> Iterator[Document]:
        cursor = conn.execute(
            "SELECT doc_id, url, title, raw_text, normalized_terms, terms FROM documents ORDER BY doc_id"
        )
        for doc_id, url, title, raw_text, normalized_terms, terms in cursor:
            yield Document(
                id=int(doc_id),
                url=url,
                title=title,
                raw_text=raw_text,
                normalized_terms=tuple(orjson.loads(normalized_terms)),
                terms=frozenset(orjson.loads(terms)),
            )

    def _load_postings(self, conn: sqlite3.Connection) -> PostingStore:
        postings = PostingStore()
        cursor = conn.execute("SELECT term, doc_id, frequency, positions_blob FROM postings ORDER BY term, doc_id")
        for term, doc_id, frequency, positions_blob in cursor:
            postings.add(term, int(doc_id), int(frequency), _decode_positions(positions_blob))
        return postings


def _parse_timestamp(value: str | None) -> datetime:
    if not value:
        return datetime.now(timezone.utc)
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return datetime.now(timezone.utc)
