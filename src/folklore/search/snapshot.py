"""Immutable index snapshots and their publication.

Readers always work on an ``IndexSnapshot``: a frozen document store paired
with a frozen posting store. Writers fork the current snapshot, apply their
changes to the fork, and publish it as the next version with a single
reference swap. A query that started on version N keeps reading version N
even while version N+1 is being built or published.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import dataclasses
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import threading

from folklore.search.analyzers import Tokenizer
from folklore.search.documents import DocumentStore
from folklore.search.models import IndexStats
from folklore.search.postings import PostingStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexSnapshot:
    """Point-in-time pairing of a document store and a posting store."""

    documents: DocumentStore
    postings: PostingStore
    version: int = 0
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        self.documents.freeze()
        self.postings.freeze()

    @classmethod
    def empty(cls, tokenizer: Tokenizer | None = None) -> IndexSnapshot:
        return cls(documents=DocumentStore(tokenizer), postings=PostingStore())

    @property
    def document_count(self) -> int:
        return len(self.documents)

    def average_length(self) -> float:
        if not len(self.documents):
            return 0.0
        return self.documents.total_length() / len(self.documents)

    def stats(self) -> IndexStats:
        return IndexStats(
            version=self.version,
            document_count=len(self.documents),
            term_count=len(self.postings),
            posting_count=self.postings.posting_count,
        )

    def dangling_references(self) -> list[tuple[str, int]]:
        """Return ``(term, doc_id)`` pairs whose document is missing.

        A consistent snapshot returns an empty list. This walks every
        posting and is meant for maintenance tooling and tests.
        """
        missing: list[tuple[str, int]] = []
        for term in self.postings.terms():
            missing.extend((term, doc_id) for doc_id in self.postings.doc_ids(term) if doc_id not in self.documents)
        return missing


@dataclass
class WorkingCopy:
    """Writable fork of a snapshot, owned by the single active writer."""

    base: IndexSnapshot
    documents: DocumentStore
    postings: PostingStore
    dirty: bool = False

    @classmethod
    def fork(cls, base: IndexSnapshot) -> WorkingCopy:
        return cls(base=base, documents=base.documents.fork(), postings=base.postings.fork())

    def to_snapshot(self) -> IndexSnapshot:
        return IndexSnapshot(documents=self.documents, postings=self.postings, version=self.base.version + 1)


class SnapshotPublisher:
    """Versioned pointer to the current snapshot with a single-writer lock."""

    def __init__(self, initial: IndexSnapshot) -> None:
        self._current = initial
        self._swap_lock = threading.Lock()
        self._writer_lock = threading.Lock()

    def current(self) -> IndexSnapshot:
        with self._swap_lock:
            return self._current

    def replace(self, snapshot: IndexSnapshot) -> IndexSnapshot:
        """Publish an externally built snapshot (e.g. one loaded from disk).

        Versions only move forward: a snapshot whose version is not newer
        than the current one is published as ``current.version + 1``.
        Returns the snapshot as published.
        """
        with self._writer_lock:
            current = self.current()
            if snapshot.version <= current.version:
                snapshot = dataclasses.replace(snapshot, version=current.version + 1)
            with self._swap_lock:
                self._current = snapshot
        logger.info("Published snapshot version %d (%d documents)", snapshot.version, snapshot.document_count)
        return snapshot

    @contextmanager
    def writer(self) -> Iterator[WorkingCopy]:
        """Fork the current snapshot for writing; publish it on clean exit.

        If the block raises, the fork is discarded and readers never see any
        of its changes. Nothing is published when the block made no change.
        """
        with self._writer_lock:
            working = WorkingCopy.fork(self.current())
            yield working
            if not working.dirty:
                return
            snapshot = working.to_snapshot()
            with self._swap_lock:
                self._current = snapshot
            logger.debug("Published snapshot version %d", snapshot.version)
