"""Unit tests for the posting store."""

import pytest

from folklore.search.models import Posting
from folklore.search.postings import PostingStore, intersect_doc_ids, union_doc_ids


@pytest.fixture
def store():
    return PostingStore()


@pytest.mark.unit
class TestPostingStore:
    def test_term_maps_to_every_document(self, store):
        store.add("cache", 3, 1, (0,))
        store.add("cache", 1, 2, (0, 4))
        store.add("cache", 2, 5, (1, 2, 3))

        postings = store.lookup("cache")

        assert [posting.doc_id for posting in postings] == [1, 2, 3]
        assert [posting.frequency for posting in postings] == [2, 5, 1]
        assert store.document_frequency("cache") == 3
        assert store.posting_count == 3

    def test_add_replaces_only_its_own_entry(self, store):
        store.add("cache", 1, 1, (0,))
        store.add("cache", 2, 1, (0,))

        previous = store.add("cache", 1, 4, (0, 1, 2))

        assert previous == Posting(doc_id=1, frequency=1, positions=(0,))
        assert store.get("cache", 1).frequency == 4
        assert store.get("cache", 2).frequency == 1
        assert store.posting_count == 2

    def test_unknown_term_looks_up_empty(self, store):
        assert store.lookup("missing") == ()
        assert store.doc_ids("missing") == ()
        assert store.get("missing", 1) is None
        assert "missing" not in store

    def test_remove_absent_pair_is_a_noop(self, store):
        store.add("cache", 1, 1)

        assert store.remove("cache", 2) is None
        assert store.remove("other", 1) is None
        assert [posting.doc_id for posting in store.lookup("cache")] == [1]

    def test_remove_last_posting_drops_term(self, store):
        store.add("cache", 1, 1)
        store.add("cache", 2, 1)

        store.remove("cache", 1)
        assert store.doc_ids("cache") == (2,)

        store.remove("cache", 2)
        assert "cache" not in store
        assert len(store) == 0
        assert store.posting_count == 0

    def test_restore_puts_back_previous_entry(self, store):
        store.add("cache", 1, 2, (0, 3))
        previous = store.add("cache", 1, 9, (1,))

        store.restore("cache", 1, previous)
        assert store.get("cache", 1) == previous

        store.restore("cache", 1, None)
        assert store.get("cache", 1) is None

    def test_rejects_non_positive_frequency(self, store):
        with pytest.raises(ValueError, match="frequency"):
            store.add("cache", 1, 0)

    def test_terms_are_sorted(self, store):
        for term in ("zeta", "alpha", "mid"):
            store.add(term, 1, 1)

        assert list(store.terms()) == ["alpha", "mid", "zeta"]

    def test_frozen_store_rejects_writes(self, store):
        store.add("cache", 1, 1)
        store.freeze()

        with pytest.raises(RuntimeError):
            store.add("cache", 2, 1)
        with pytest.raises(RuntimeError):
            store.remove("cache", 1)
        assert store.frozen


@pytest.mark.unit
class TestCopyOnWrite:
    def test_fork_writes_do_not_leak_into_parent(self, store):
        store.add("cache", 1, 1)
        store.freeze()

        fork = store.fork()
        fork.add("cache", 2, 1)
        fork.remove("cache", 1)
        fork.add("new", 2, 1)

        assert store.doc_ids("cache") == (1,)
        assert "new" not in store
        assert fork.doc_ids("cache") == (2,)
        assert store.posting_count == 1
        assert fork.posting_count == 2

    def test_parent_writes_do_not_leak_into_fork(self, store):
        store.add("cache", 1, 1)

        fork = store.fork()
        store.add("cache", 2, 1)

        assert fork.doc_ids("cache") == (1,)
        assert store.doc_ids("cache") == (1, 2)

    def test_fork_is_writable(self, store):
        store.freeze()

        fork = store.fork()

        assert not fork.frozen
        fork.add("cache", 1, 1)


@pytest.mark.unit
class TestMerges:
    def test_intersect_keeps_common_ids_in_order(self):
        assert intersect_doc_ids([[1, 3, 5, 7], [3, 4, 5], [0, 3, 5, 9]]) == [3, 5]

    def test_intersect_single_list(self):
        assert intersect_doc_ids([[2, 4]]) == [2, 4]

    def test_intersect_with_empty_list(self):
        assert intersect_doc_ids([[1, 2], []]) == []
        assert intersect_doc_ids([]) == []

    def test_intersect_disjoint(self):
        assert intersect_doc_ids([[1, 2], [3, 4]]) == []

    def test_union_is_sorted_and_deduplicated(self):
        assert union_doc_ids([[5, 1], [2, 5], []]) == [1, 2, 5]
