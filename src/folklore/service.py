"""SearchIndex: the indexing and retrieval core behind one object.

Owns the versioned snapshot state and wires the indexer, the query engine,
persistence and observability together. Every read runs against the
snapshot that was current when it started; every write builds the next
snapshot and publishes it in one swap.
"""

from __future__ import annotations

from collections.abc import Iterable
import logging
from pathlib import Path

from opentelemetry.trace import SpanKind

from folklore.config import Settings
from folklore.errors import IngestionFailure
from folklore.observability import (
    INDEX_DOC_COUNT,
    INDEX_TERM_COUNT,
    INGEST_COUNT,
    INGEST_LATENCY,
    SEARCH_LATENCY,
    bound_context,
    create_span,
    track_latency,
)
from folklore.search.analyzers import Tokenizer
from folklore.search.documents import DocumentIds
from folklore.search.engine import QueryEngine, ResultPage
from folklore.search.indexer import Indexer, IngestReport, IngestResult, Page
from folklore.search.models import Document, IndexStats, Posting, RankedDocument, SearchResult
from folklore.search.snapshot import IndexSnapshot, SnapshotPublisher
from folklore.search.snippet import build_snippet
from folklore.search.sqlite_storage import SqliteSnapshotStore


logger = logging.getLogger(__name__)


class SearchIndex:
    """In-memory search index with snapshot isolation and SQLite persistence.

    Interface:
    - ingest(url, title, raw_text) / ingest_batch(pages) / delete(url)
    - search(query, page_size, page_offset) -> [RankedDocument]
    - search_documents(...) -> [SearchResult]
    - get_document(id), all_ids(), lookup(term), stats()
    - save(path) / load(path)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        name: str = "default",
        snapshot: IndexSnapshot | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.name = name
        self.tokenizer = Tokenizer(self.settings.tokenizer)
        self.indexer = Indexer(self.tokenizer)
        self.engine = QueryEngine(self.tokenizer, self.settings.ranking)
        self._publisher = SnapshotPublisher(snapshot or IndexSnapshot.empty(self.tokenizer))
        self._record_size(self._publisher.current())

    @classmethod
    def from_database(cls, settings: Settings | None = None, path: Path | str | None = None) -> SearchIndex:
        """Build an index from a saved snapshot."""
        index = cls(settings)
        index.load(path)
        return index

    def snapshot(self) -> IndexSnapshot:
        """Return the currently published snapshot."""
        return self._publisher.current()

    # Writes

    def ingest(self, url: str, title: str, raw_text: str) -> IngestResult:
        """Index one fetched page and publish the result.

        Raises:
            IngestionFailure: the page could not be indexed; the published
                index is unchanged.
        """
        with create_span("folklore.ingest", attributes={"folklore.url": str(url)}) as span:
            with track_latency(INGEST_LATENCY, operation="ingest"), self._publisher.writer() as working:
                try:
                    result = self.indexer.ingest(working.documents, working.postings, url, title, raw_text)
                except IngestionFailure:
                    INGEST_COUNT.labels(status="failed").inc()
                    raise
                working.dirty = not result.unchanged
            span.set_attribute("folklore.document_id", result.document_id)
            span.set_attribute("folklore.unchanged", result.unchanged)

        INGEST_COUNT.labels(status=_status(result)).inc()
        self._record_size(self.snapshot())
        return result

    def ingest_batch(self, pages: Iterable[Page | tuple[str, str, str]]) -> IngestReport:
        """Index a batch of pages and publish them as one new snapshot.

        Each page is applied atomically on its own. Failed pages are listed
        in the report and do not stop the rest of the batch.
        """
        normalized = [page if isinstance(page, Page) else Page(*page) for page in pages]
        with create_span("folklore.ingest_batch", attributes={"folklore.batch_size": len(normalized)}) as span:
            with track_latency(INGEST_LATENCY, operation="batch"), self._publisher.writer() as working:
                report = self.indexer.ingest_batch(working.documents, working.postings, normalized)
                working.dirty = report.indexed > 0
            span.set_attribute("folklore.indexed", report.indexed)
            span.set_attribute("folklore.failed", len(report.failures))

        for result in report.results:
            INGEST_COUNT.labels(status=_status(result)).inc()
        if report.failures:
            INGEST_COUNT.labels(status="failed").inc(len(report.failures))
            logger.warning("Batch ingestion finished with %d failures", len(report.failures))
        logger.info("Ingested batch of %d pages (%d indexed)", len(normalized), report.indexed)
        self._record_size(self.snapshot())
        return report

    def delete(self, url: str) -> bool:
        """Remove the page stored under ``url``; False when it was never indexed."""
        with create_span("folklore.delete", attributes={"folklore.url": url}):
            with track_latency(INGEST_LATENCY, operation="delete"), self._publisher.writer() as working:
                removed = self.indexer.delete(working.documents, working.postings, url)
                working.dirty = removed is not None
        if removed is None:
            return False
        INGEST_COUNT.labels(status="deleted").inc()
        self._record_size(self.snapshot())
        return True

    # Reads

    def search(self, query: str, page_size: int | None = None, page_offset: int = 0) -> list[RankedDocument]:
        """Return one page of ``(doc_id, score)`` results for ``query``.

        Raises:
            InvalidQuery: malformed query or paging arguments.
        """
        return list(self.search_page(query, page_size, page_offset).hits)

    def search_page(self, query: str, page_size: int | None = None, page_offset: int = 0) -> ResultPage:
        return self._search(self.snapshot(), query, page_size, page_offset)

    def search_documents(
        self,
        query: str,
        page_size: int | None = None,
        page_offset: int = 0,
        *,
        snippet_style: str = "plain",
    ) -> list[SearchResult]:
        """Like ``search`` but returns documents with title, URL and a snippet."""
        snapshot = self.snapshot()
        page = self._search(snapshot, query, page_size, page_offset)
        terms = self.engine.parse(query).terms
        results: list[SearchResult] = []
        for hit in page.hits:
            document = snapshot.documents.get(hit.doc_id)
            results.append(
                SearchResult(
                    document_id=document.id,
                    url=document.url,
                    title=document.title,
                    score=hit.score,
                    snippet=build_snippet(document.raw_text, terms, self.tokenizer, style=snippet_style),
                )
            )
        return results

    def _search(self, snapshot: IndexSnapshot, query: str, page_size: int | None, page_offset: int) -> ResultPage:
        size = self.settings.clamp_page_size(page_size)
        match_mode = self.settings.ranking.match_mode
        attributes = {
            "folklore.query": query,
            "folklore.snapshot_version": snapshot.version,
            "folklore.page_offset": page_offset,
        }
        with create_span("folklore.search", kind=SpanKind.INTERNAL, attributes=attributes) as span:
            with bound_context(snapshot_version=snapshot.version), track_latency(SEARCH_LATENCY, match_mode=match_mode):
                page = self.engine.search_page(snapshot, query, size, page_offset)
            span.set_attribute("folklore.total_hits", page.total)
        return page

    def get_document(self, document_id: int) -> Document:
        """Raises NotFound for an id that is not in the current snapshot."""
        return self.snapshot().documents.get(document_id)

    def all_ids(self) -> DocumentIds:
        return self.snapshot().documents.all_ids()

    def lookup(self, term: str) -> tuple[Posting, ...]:
        """Postings of an already normalized term in the current snapshot."""
        return self.snapshot().postings.lookup(term)

    def stats(self) -> IndexStats:
        return self.snapshot().stats()

    # Persistence

    def save(self, path: Path | str | None = None) -> Path:
        """Persist the current snapshot; raises StorageError on failure."""
        store = SqliteSnapshotStore(path or self.settings.database_path)
        with create_span("folklore.save", attributes={"folklore.path": str(store.db_path)}):
            return store.save(self.snapshot())

    def load(self, path: Path | str | None = None) -> IndexSnapshot:
        """Replace the published snapshot with one read from disk."""
        store = SqliteSnapshotStore(path or self.settings.database_path)
        with create_span("folklore.load", attributes={"folklore.path": str(store.db_path)}):
            snapshot = store.load(self.tokenizer)
        published = self._publisher.replace(snapshot)
        self._record_size(published)
        return published

    def _record_size(self, snapshot: IndexSnapshot) -> None:
        INDEX_DOC_COUNT.labels(index=self.name).set(snapshot.document_count)
        INDEX_TERM_COUNT.labels(index=self.name).set(len(snapshot.postings))


def _status(result: IngestResult) -> str:
    if result.unchanged:
        return "unchanged"
    return "created" if result.created else "updated"
