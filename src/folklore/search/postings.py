"""Posting store: term -> ordered postings, one entry per document.

Each term owns a posting list sorted by document id plus a dict keyed by
document id, so a single ``(term, document_id)`` entry is updated or
removed in O(log n) without touching postings for other documents.

Stores are copy-on-write. ``fork()`` shares every posting list with the
parent and clones a list the first time the fork writes to it, so a
published (frozen) store never changes underneath its readers.
"""

from __future__ import annotations

from bisect import bisect_left, insort
from collections.abc import Iterator, Sequence

from folklore.search.models import Posting


class _PostingList:
    __slots__ = ("doc_ids", "entries")

    def __init__(self, doc_ids: list[int] | None = None, entries: dict[int, Posting] | None = None) -> None:
        self.doc_ids: list[int] = doc_ids if doc_ids is not None else []
        self.entries: dict[int, Posting] = entries if entries is not None else {}

    def clone(self) -> _PostingList:
        return _PostingList(list(self.doc_ids), dict(self.entries))


class PostingStore:
    """Maps each term to the postings of every document containing it."""

    def __init__(self) -> None:
        self._terms: dict[str, _PostingList] = {}
        self._owned: set[str] = set()
        self._posting_count = 0
        self._frozen = False

    def fork(self) -> PostingStore:
        """Return a writable copy that shares posting lists until written."""
        forked = PostingStore()
        forked._terms = dict(self._terms)
        forked._posting_count = self._posting_count
        # Both sides now share every list; either must clone before writing.
        self._owned = set()
        return forked

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _writable(self, term: str) -> _PostingList:
        if self._frozen:
            raise RuntimeError("PostingStore is frozen; fork() it before writing")
        postings = self._terms.get(term)
        if postings is None:
            postings = _PostingList()
            self._terms[term] = postings
            self._owned.add(term)
        elif term not in self._owned:
            postings = postings.clone()
            self._terms[term] = postings
            self._owned.add(term)
        return postings

    def add(self, term: str, doc_id: int, frequency: int, positions: Sequence[int] = ()) -> Posting | None:
        """Insert or replace the posting for ``(term, doc_id)``.

        Postings for other documents under the same term are left untouched.
        Returns the entry that was replaced, if any.
        """
        if frequency <= 0:
            raise ValueError(f"Posting frequency must be positive, got {frequency} for {term!r}")
        postings = self._writable(term)
        previous = postings.entries.get(doc_id)
        if previous is None:
            insort(postings.doc_ids, doc_id)
            self._posting_count += 1
        postings.entries[doc_id] = Posting(doc_id=doc_id, frequency=frequency, positions=tuple(positions))
        return previous

    def remove(self, term: str, doc_id: int) -> Posting | None:
        """Delete the posting for ``(term, doc_id)``; absent pairs are a no-op.

        Returns the removed entry, if any.
        """
        existing = self._terms.get(term)
        if existing is None or doc_id not in existing.entries:
            return None
        postings = self._writable(term)
        previous = postings.entries.pop(doc_id)
        del postings.doc_ids[bisect_left(postings.doc_ids, doc_id)]
        self._posting_count -= 1
        if not postings.doc_ids:
            del self._terms[term]
            self._owned.discard(term)
        return previous

    def restore(self, term: str, doc_id: int, previous: Posting | None) -> None:
        """Put ``(term, doc_id)`` back to ``previous`` (None means absent)."""
        if previous is None:
            self.remove(term, doc_id)
        else:
            self.add(term, doc_id, previous.frequency, previous.positions)

    def lookup(self, term: str) -> tuple[Posting, ...]:
        """Return the postings for ``term`` ordered by document id; empty if unknown."""
        postings = self._terms.get(term)
        if postings is None:
            return ()
        return tuple(postings.entries[doc_id] for doc_id in postings.doc_ids)

    def doc_ids(self, term: str) -> Sequence[int]:
        """Return the sorted document ids for ``term`` without materializing postings."""
        postings = self._terms.get(term)
        if postings is None:
            return ()
        return tuple(postings.doc_ids)

    def get(self, term: str, doc_id: int) -> Posting | None:
        postings = self._terms.get(term)
        if postings is None:
            return None
        return postings.entries.get(doc_id)

    def document_frequency(self, term: str) -> int:
        postings = self._terms.get(term)
        return len(postings.doc_ids) if postings is not None else 0

    def terms(self) -> Iterator[str]:
        return iter(sorted(self._terms))

    def __contains__(self, term: object) -> bool:
        return term in self._terms

    def __len__(self) -> int:
        return len(self._terms)

    @property
    def posting_count(self) -> int:
        return self._posting_count


def intersect_doc_ids(lists: Sequence[Sequence[int]]) -> list[int]:
    """Sorted merge-join of ascending document id lists.

    Walks the shortest list and advances a cursor into each of the others
    with binary search, so the cost is bounded by the postings touched.
    """

    if not lists:
        return []
    ordered = sorted(lists, key=len)
    driver, others = ordered[0], ordered[1:]
    cursors = [0] * len(others)
    result: list[int] = []
    for doc_id in driver:
        matched = True
        for idx, other in enumerate(others):
            cursor = bisect_left(other, doc_id, cursors[idx])
            cursors[idx] = cursor
            if cursor >= len(other):
                return result
            if other[cursor] != doc_id:
                matched = False
                break
        if matched:
            result.append(doc_id)
    return result


def union_doc_ids(lists: Sequence[Sequence[int]]) -> list[int]:
    """Ascending union of document id lists."""

    merged: set[int] = set()
    for ids in lists:
        merged.update(ids)
    return sorted(merged)
