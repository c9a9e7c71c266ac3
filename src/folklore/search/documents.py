"""Document store: canonical metadata keyed by a stable document id."""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass
import logging

from folklore.errors import NotFound
from folklore.search.analyzers import DocumentAnalysis, TermOccurrences, Tokenizer
from folklore.search.models import Document


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PutResult:
    """Outcome of storing a page.

    ``terms_to_remove`` holds the terms the previous version of the document
    had and the new one lacks; their postings must be retracted.
    ``terms_to_add`` holds every term of the new version with its
    occurrences; their postings must be written.
    """

    document_id: int
    terms_to_remove: frozenset[str]
    terms_to_add: Mapping[str, TermOccurrences]
    previous: Document | None

    @property
    def created(self) -> bool:
        return self.previous is None


class DocumentIds:
    """Lazy, finite, restartable view over the ids of a document store.

    Each iteration walks the ids in ascending order.
    """

    def __init__(self, documents: Mapping[int, Document]) -> None:
        self._documents = documents

    def __iter__(self) -> Iterator[int]:
        yield from sorted(self._documents)

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._documents


class DocumentStore:
    """Holds documents by id and by URL, allocating ids on first sight of a URL.

    Like the posting store it is copy-on-write: ``fork()`` returns a writable
    copy and a frozen store never changes.
    """

    def __init__(self, tokenizer: Tokenizer | None = None) -> None:
        self.tokenizer = tokenizer or Tokenizer()
        self._documents: dict[int, Document] = {}
        self._by_url: dict[str, int] = {}
        self._next_id = 1
        self._total_length = 0
        self._frozen = False

    def fork(self) -> DocumentStore:
        forked = DocumentStore(self.tokenizer)
        forked._documents = dict(self._documents)
        forked._by_url = dict(self._by_url)
        forked._next_id = self._next_id
        forked._total_length = self._total_length
        return forked

    @classmethod
    def from_documents(
        cls,
        documents: Iterable[Document],
        *,
        next_id: int | None = None,
        tokenizer: Tokenizer | None = None,
    ) -> DocumentStore:
        """Rebuild a store from persisted documents."""
        store = cls(tokenizer)
        for document in documents:
            store._store(document)
        highest = max(store._documents, default=0)
        store._next_id = max(next_id or 1, highest + 1)
        return store

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def next_id(self) -> int:
        """The id the next unseen URL will receive. Ids are never reused."""
        return self._next_id

    def _check_writable(self) -> None:
        if self._frozen:
            raise RuntimeError("DocumentStore is frozen; fork() it before writing")

    def put(
        self,
        url: str,
        title: str,
        raw_text: str,
        *,
        analysis: DocumentAnalysis | None = None,
    ) -> PutResult:
        """Store a page, reusing the id of a previously seen URL.

        ``analysis`` lets the caller pass an already computed tokenization of
        ``raw_text``; otherwise the store's tokenizer is used.
        """
        self._check_writable()
        if not url:
            raise ValueError("Document URL must not be empty")
        if analysis is None:
            analysis = self.tokenizer.analyze(raw_text)

        previous_id = self._by_url.get(url)
        previous = self._documents.get(previous_id) if previous_id is not None else None
        if previous_id is None:
            document_id = self._next_id
            self._next_id += 1
        else:
            document_id = previous_id

        new_terms = frozenset(analysis.terms)
        document = Document(
            id=document_id,
            url=url,
            title=title,
            raw_text=raw_text,
            normalized_terms=analysis.words,
            terms=new_terms,
        )
        self._store(document)

        stale = previous.terms - new_terms if previous is not None else frozenset()
        if previous is not None:
            logger.debug("Replacing document %s (%s): %d stale terms", document_id, url, len(stale))
        return PutResult(
            document_id=document_id,
            terms_to_remove=stale,
            terms_to_add=analysis.terms,
            previous=previous,
        )

    def delete(self, url: str) -> Document | None:
        """Drop the document stored under ``url``; returns it, or None if unknown."""
        self._check_writable()
        document_id = self._by_url.get(url)
        if document_id is None:
            return None
        return self._drop(document_id)

    def restore(self, url: str, previous: Document | None, allocated_id: int | None = None) -> None:
        """Put ``url`` back to ``previous`` (None means it was unknown).

        ``allocated_id`` is the id handed out by a ``put`` being undone; when
        it was the most recent allocation the counter is rewound.
        """
        self._check_writable()
        current_id = self._by_url.get(url)
        if current_id is not None:
            self._drop(current_id)
        if previous is not None:
            self._store(previous)
        elif allocated_id is not None and allocated_id == self._next_id - 1:
            self._next_id = allocated_id

    def _store(self, document: Document) -> None:
        replaced = self._documents.get(document.id)
        if replaced is not None:
            self._total_length -= replaced.length
        self._documents[document.id] = document
        self._by_url[document.url] = document.id
        self._total_length += document.length

    def _drop(self, document_id: int) -> Document:
        document = self._documents.pop(document_id)
        del self._by_url[document.url]
        self._total_length -= document.length
        return document

    def get(self, document_id: int) -> Document:
        """Return the document for ``document_id`` or raise NotFound."""
        try:
            return self._documents[document_id]
        except KeyError:
            raise NotFound(document_id) from None

    def get_by_url(self, url: str) -> Document | None:
        document_id = self._by_url.get(url)
        return self._documents.get(document_id) if document_id is not None else None

    def all_ids(self) -> DocumentIds:
        return DocumentIds(self._documents)

    def documents(self) -> Iterator[Document]:
        for doc_id in sorted(self._documents):
            yield self._documents[doc_id]

    def __len__(self) -> int:
        return len(self._documents)

    def __contains__(self, document_id: object) -> bool:
        return document_id in self._documents

    def total_length(self) -> int:
        """Sum of normalized word counts across all documents."""
        return self._total_length
