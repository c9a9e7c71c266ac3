"""Unit tests for atomic per-document ingestion."""

import pytest

from folklore.errors import IngestionFailure
from folklore.search.analyzers import Tokenizer
from folklore.search.documents import DocumentStore
from folklore.search.indexer import Indexer, Page
from folklore.search.postings import PostingStore


class FailingPostingStore(PostingStore):
    """Posting store that fails when a specific term is written."""

    def __init__(self, fail_on: str) -> None:
        super().__init__()
        self.fail_on = fail_on
        self.armed = True

    def add(self, term, doc_id, frequency, positions=()):
        if self.armed and term == self.fail_on:
            raise OSError("disk full")
        return super().add(term, doc_id, frequency, positions)


class ExplodingTokenizer(Tokenizer):
    def analyze(self, text):
        raise UnicodeError("cannot decode")


def _state(documents, postings):
    return (
        list(documents.documents()),
        documents.next_id,
        {term: postings.lookup(term) for term in postings.terms()},
    )


@pytest.fixture
def stores(tokenizer):
    return DocumentStore(tokenizer), PostingStore()


@pytest.fixture
def indexer(tokenizer):
    return Indexer(tokenizer)


@pytest.mark.unit
class TestIngest:
    def test_every_document_lands_in_shared_posting_list(self, indexer, stores):
        documents, postings = stores
        for n in range(5):
            indexer.ingest(documents, postings, f"https://a.example/{n}", "", f"shared term page{n} shared")

        shared = postings.lookup("shared")

        assert [posting.doc_id for posting in shared] == [1, 2, 3, 4, 5]
        assert all(posting.frequency == 2 for posting in shared)
        assert all(posting.positions == (0, 3) for posting in shared)

    def test_reingest_identical_page_is_idempotent(self, indexer, stores):
        documents, postings = stores
        indexer.ingest(documents, postings, "https://a.example/x", "A", "caching strategies")
        before = _state(documents, postings)

        result = indexer.ingest(documents, postings, "https://a.example/x", "A", "caching strategies")

        assert result.unchanged
        assert result.document_id == 1
        assert _state(documents, postings) == before

    def test_reingest_retracts_stale_terms(self, indexer, stores):
        documents, postings = stores
        indexer.ingest(documents, postings, "https://a.example/other", "", "alpha")
        indexer.ingest(documents, postings, "https://a.example/x", "", "alpha")

        result = indexer.ingest(documents, postings, "https://a.example/x", "", "bravo")

        assert not result.created
        assert result.terms_removed > 0
        assert [posting.doc_id for posting in postings.lookup("alpha")] == [1]
        assert [posting.doc_id for posting in postings.lookup("bravo")] == [2]
        assert all(posting.doc_id != 2 for posting in postings.lookup("alph"))

    def test_new_title_alone_updates_document(self, indexer, stores):
        documents, postings = stores
        indexer.ingest(documents, postings, "https://a.example/x", "Old", "text")

        result = indexer.ingest(documents, postings, "https://a.example/x", "New", "text")

        assert not result.unchanged
        assert documents.get(1).title == "New"

    def test_empty_text_is_stored_without_postings(self, indexer, stores):
        documents, postings = stores

        result = indexer.ingest(documents, postings, "https://a.example/x", "Empty", "...")

        assert result.created
        assert documents.get(result.document_id).length == 0
        assert len(postings) == 0

    @pytest.mark.parametrize(
        ("url", "title", "raw_text"),
        [("", "t", "text"), ("https://a.example/x", None, "text"), ("https://a.example/x", "t", b"bytes")],
    )
    def test_rejects_invalid_input(self, indexer, stores, url, title, raw_text):
        documents, postings = stores

        with pytest.raises(IngestionFailure):
            indexer.ingest(documents, postings, url, title, raw_text)

        assert len(documents) == 0


@pytest.mark.unit
class TestRollback:
    def test_storage_failure_restores_previous_version(self, tokenizer):
        documents = DocumentStore(tokenizer)
        postings = FailingPostingStore(fail_on="zeta")
        indexer = Indexer(tokenizer)
        indexer.ingest(documents, postings, "https://a.example/x", "A", "alpha beta")
        before = _state(documents, postings)

        with pytest.raises(IngestionFailure) as excinfo:
            indexer.ingest(documents, postings, "https://a.example/x", "A", "alpha zeta")

        assert isinstance(excinfo.value.__cause__, OSError)
        assert excinfo.value.url == "https://a.example/x"
        assert _state(documents, postings) == before

    def test_storage_failure_on_new_url_rewinds_allocator(self, tokenizer):
        documents = DocumentStore(tokenizer)
        postings = FailingPostingStore(fail_on="zeta")
        indexer = Indexer(tokenizer)

        with pytest.raises(IngestionFailure):
            indexer.ingest(documents, postings, "https://a.example/x", "A", "alpha zeta")

        assert len(documents) == 0
        assert len(postings) == 0
        assert documents.next_id == 1

        postings.armed = False
        result = indexer.ingest(documents, postings, "https://a.example/x", "A", "alpha zeta")
        assert result.document_id == 1

    def test_tokenizer_failure_leaves_stores_untouched(self, tokenizer):
        documents = DocumentStore(tokenizer)
        postings = PostingStore()
        Indexer(tokenizer).ingest(documents, postings, "https://a.example/x", "A", "alpha")
        before = _state(documents, postings)

        with pytest.raises(IngestionFailure, match="tokenization failed"):
            Indexer(ExplodingTokenizer()).ingest(documents, postings, "https://a.example/x", "A", "changed")

        assert _state(documents, postings) == before


@pytest.mark.unit
class TestBatchAndDelete:
    def test_batch_reports_failures_and_keeps_going(self, indexer, stores):
        documents, postings = stores
        pages = [
            Page("https://a.example/1", "", "one"),
            Page("", "", "broken"),
            Page("https://a.example/2", "", "two"),
        ]

        report = indexer.ingest_batch(documents, postings, pages)

        assert [result.url for result in report.results] == ["https://a.example/1", "https://a.example/2"]
        assert len(report.failures) == 1
        assert report.indexed == 2
        assert not report.ok

    def test_delete_retracts_all_postings(self, indexer, stores):
        documents, postings = stores
        indexer.ingest(documents, postings, "https://a.example/1", "", "shared alpha")
        indexer.ingest(documents, postings, "https://a.example/2", "", "shared beta")

        removed = indexer.delete(documents, postings, "https://a.example/1")

        assert removed.id == 1
        assert 1 not in documents
        assert [posting.doc_id for posting in postings.lookup("shared")] == [2]
        assert "alpha" not in postings
        assert all(posting.doc_id != 1 for term in postings.terms() for posting in postings.lookup(term))

    def test_delete_unknown_url_returns_none(self, indexer, stores):
        documents, postings = stores

        assert indexer.delete(documents, postings, "https://a.example/none") is None
