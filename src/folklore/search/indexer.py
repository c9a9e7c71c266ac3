"""Indexer: turns fetched pages into document and posting updates.

Every page is applied all-or-nothing. Changes are recorded in an undo
journal while they are made; if anything fails part way, the journal is
replayed backwards and the stores end up exactly as they were before the
call. Callers publish the stores only after the indexer returns, so
readers never see a page half-applied.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
import logging

from folklore.errors import IngestionFailure
from folklore.search.analyzers import Tokenizer
from folklore.search.documents import DocumentStore
from folklore.search.models import Document, Posting
from folklore.search.postings import PostingStore


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Page:
    """A fetched page as handed over by the crawler."""

    url: str
    title: str
    raw_text: str


@dataclass(frozen=True)
class IngestResult:
    """Outcome of ingesting one page."""

    url: str
    document_id: int
    created: bool
    unchanged: bool = False
    terms_added: int = 0
    terms_removed: int = 0


@dataclass
class IngestReport:
    """Outcome of a batch; failed pages are listed and left untouched."""

    results: list[IngestResult] = field(default_factory=list)
    failures: list[IngestionFailure] = field(default_factory=list)

    @property
    def indexed(self) -> int:
        return sum(1 for result in self.results if not result.unchanged)

    @property
    def ok(self) -> bool:
        return not self.failures


class _UndoJournal:
    """Records prior state so a half-applied page can be rolled back."""

    def __init__(self, documents: DocumentStore, postings: PostingStore) -> None:
        self._documents = documents
        self._postings = postings
        self._document: tuple[str, Document | None, int | None] | None = None
        self._postings_log: list[tuple[str, int, Posting | None]] = []

    def record_document(self, url: str, previous: Document | None, allocated_id: int | None) -> None:
        self._document = (url, previous, allocated_id)

    def record_posting(self, term: str, doc_id: int, previous: Posting | None) -> None:
        self._postings_log.append((term, doc_id, previous))

    def rollback(self) -> None:
        for term, doc_id, previous in reversed(self._postings_log):
            self._postings.restore(term, doc_id, previous)
        self._postings_log.clear()
        if self._document is not None:
            url, previous, allocated_id = self._document
            self._documents.restore(url, previous, allocated_id)
            self._document = None


class Indexer:
    """Applies pages to a writable document store and posting store."""

    def __init__(self, tokenizer: Tokenizer | None = None) -> None:
        self.tokenizer = tokenizer or Tokenizer()

    def ingest(
        self,
        documents: DocumentStore,
        postings: PostingStore,
        url: str,
        title: str,
        raw_text: str,
    ) -> IngestResult:
        """Store one page and bring its postings in line with its new text.

        Raises:
            IngestionFailure: tokenization or storage failed; both stores are
                left as they were before the call.
        """
        if not isinstance(url, str) or not url:
            raise IngestionFailure(str(url), "URL must be a non-empty string")
        if not isinstance(title, str) or not isinstance(raw_text, str):
            raise IngestionFailure(url, "title and raw_text must be strings")

        existing = documents.get_by_url(url)
        if existing is not None and existing.title == title and existing.raw_text == raw_text:
            logger.debug("Skipping unchanged document %s (%s)", existing.id, url)
            return IngestResult(url=url, document_id=existing.id, created=False, unchanged=True)

        try:
            analysis = self.tokenizer.analyze(raw_text)
        except Exception as exc:
            logger.warning("Tokenization failed for %s: %s", url, exc)
            raise IngestionFailure(url, f"tokenization failed: {exc}") from exc

        journal = _UndoJournal(documents, postings)
        try:
            allocated = documents.next_id
            put = documents.put(url, title, raw_text, analysis=analysis)
            journal.record_document(url, put.previous, allocated if put.created else None)

            for term in sorted(put.terms_to_remove):
                previous = postings.remove(term, put.document_id)
                journal.record_posting(term, put.document_id, previous)

            for term, occurrences in sorted(put.terms_to_add.items()):
                previous = postings.add(term, put.document_id, occurrences.frequency, occurrences.positions)
                journal.record_posting(term, put.document_id, previous)
        except Exception as exc:
            journal.rollback()
            logger.warning("Rolled back ingestion of %s: %s", url, exc)
            raise IngestionFailure(url, f"storage failed: {exc}") from exc

        logger.debug(
            "Indexed document %s (%s): %d terms, %d retracted",
            put.document_id,
            url,
            len(put.terms_to_add),
            len(put.terms_to_remove),
        )
        return IngestResult(
            url=url,
            document_id=put.document_id,
            created=put.created,
            terms_added=len(put.terms_to_add),
            terms_removed=len(put.terms_to_remove),
        )

    def ingest_batch(
        self,
        documents: DocumentStore,
        postings: PostingStore,
        pages: Iterable[Page],
    ) -> IngestReport:
        """Ingest pages one by one; a failing page does not stop the batch."""
        report = IngestReport()
        for page in pages:
            try:
                report.results.append(self.ingest(documents, postings, page.url, page.title, page.raw_text))
            except IngestionFailure as failure:
                report.failures.append(failure)
        return report

    def delete(self, documents: DocumentStore, postings: PostingStore, url: str) -> Document | None:
        """Remove a page and every posting it contributed.

        Returns the removed document, or None when ``url`` was never indexed.
        """
        document = documents.get_by_url(url)
        if document is None:
            return None

        journal = _UndoJournal(documents, postings)
        try:
            for term in sorted(document.terms):
                previous = postings.remove(term, document.id)
                journal.record_posting(term, document.id, previous)
            documents.delete(url)
            journal.record_document(url, document, None)
        except Exception as exc:
            journal.rollback()
            raise IngestionFailure(url, f"delete failed: {exc}") from exc

        logger.debug("Deleted document %s (%s)", document.id, url)
        return document
