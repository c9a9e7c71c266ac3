"""Unit tests for query evaluation and ranking."""

import pytest

from folklore.config import RankingConfig, TokenizerConfig
from folklore.errors import InvalidQuery
from folklore.search.analyzers import Tokenizer
from folklore.search.engine import QueryEngine
from folklore.search.snapshot import IndexSnapshot


@pytest.fixture
def engine(tokenizer, ranking):
    return QueryEngine(tokenizer, ranking)


def _ids(results):
    return [result.doc_id for result in results]


@pytest.mark.unit
class TestMatching:
    def test_exact_word_is_found(self, engine, build_snapshot):
        snapshot = build_snapshot([("https://a.example/x", "A", "Caching strategies")])

        assert _ids(engine.search(snapshot, "caching")) == [1]
        assert _ids(engine.search(snapshot, "CACHING!")) == [1]

    def test_four_character_substring_matches(self, engine, build_snapshot):
        snapshot = build_snapshot(
            [
                ("https://a.example/1", "", "partitioning data"),
                ("https://a.example/2", "", "unrelated text"),
            ]
        )

        assert _ids(engine.search(snapshot, "titi")) == [1]
        assert _ids(engine.search(snapshot, "ition")) == [1]
        assert engine.search(snapshot, "gnin") == []

    def test_substring_longer_than_ngram_window(self, engine, build_snapshot):
        snapshot = build_snapshot(
            [
                ("https://a.example/1", "", "partitioning data"),
                ("https://a.example/2", "", "partit ition"),
            ]
        )

        assert _ids(engine.search(snapshot, "partition")) == [1]

    def test_long_query_word_requires_grams_in_one_word(self, build_snapshot):
        config = TokenizerConfig(n_gram_max=2)
        engine = QueryEngine(Tokenizer(config))
        # "abba" holds both 2-grams of "abab" but not "abab" itself
        snapshot = build_snapshot(
            [("https://a.example/1", "", "abba"), ("https://a.example/2", "", "xababx")],
            config=config,
        )

        assert _ids(engine.search(snapshot, "abab")) == [2]

    def test_all_terms_required(self, engine, build_snapshot, sample_pages):
        snapshot = build_snapshot(sample_pages)

        assert engine.search(snapshot, "caching zebra") == []
        assert _ids(engine.search(snapshot, "layers")) == [2]

    def test_worked_example_ranks_adjacent_terms_first(self, engine, build_snapshot, sample_pages):
        snapshot = build_snapshot(sample_pages)

        results = engine.search(snapshot, "caching database")

        assert _ids(results) == [2, 1]
        assert results[0].score > results[1].score > 0

    def test_quoted_phrase_requires_consecutive_words(self, engine, build_snapshot, sample_pages):
        snapshot = build_snapshot(sample_pages)

        assert _ids(engine.search(snapshot, '"database caching"')) == [2]
        assert engine.search(snapshot, '"caching database"') == []
        assert _ids(engine.search(snapshot, '"caching" database')) == [2, 1]

    def test_phrase_does_not_bridge_removed_stop_words(self, build_snapshot):
        config = TokenizerConfig(stop_words={"of"})
        engine = QueryEngine(Tokenizer(config))
        snapshot = build_snapshot(
            [
                ("https://a.example/1", "", "database of caching"),
                ("https://a.example/2", "", "database caching"),
            ],
            config=config,
        )

        assert _ids(engine.search(snapshot, '"database caching"')) == [2]
        assert _ids(engine.search(snapshot, '"database of caching"')) == [1]

    def test_long_word_frequency_counts_overlapping_occurrences(self, build_snapshot):
        config = TokenizerConfig(n_gram_max=5)
        engine = QueryEngine(Tokenizer(config))
        snapshot = build_snapshot([("https://a.example/1", "", "aaaaaaaa")], config=config)

        assert engine.match_term(snapshot, "aaaaaa")[1].frequency == 3
        assert engine.match_term(snapshot, "aaaaa")[1].frequency == 4

    def test_any_mode_ranks_by_coverage(self, tokenizer, build_snapshot, sample_pages):
        engine = QueryEngine(tokenizer, RankingConfig(match_mode="any"))
        snapshot = build_snapshot(
            [*sample_pages, ("https://c.example/z", "", "layers of zebra caching")],
        )

        results = engine.search(snapshot, "zebra layers")

        assert _ids(results)[0] == 3
        assert set(_ids(results)) == {2, 3}
        assert engine.search(snapshot, "nothing matches") == []


@pytest.mark.unit
class TestRanking:
    def test_higher_term_frequency_scores_higher(self, engine, build_snapshot):
        snapshot = build_snapshot(
            [
                ("https://a.example/1", "", "cache notes other"),
                ("https://a.example/2", "", "cache cache notes"),
                ("https://a.example/3", "", "unrelated words here"),
            ]
        )

        assert _ids(engine.search(snapshot, "cache")) == [2, 1]

    def test_rarer_term_weighs_more(self, engine, build_snapshot):
        snapshot = build_snapshot(
            [
                ("https://a.example/1", "", "common alpha"),
                ("https://a.example/2", "", "rare beta"),
                ("https://a.example/3", "", "common gamma"),
            ]
        )
        engine = QueryEngine(engine.tokenizer, RankingConfig(match_mode="any"))

        results = engine.search(snapshot, "common rare")

        # equal coverage, length and frequency; only the document frequency differs
        assert _ids(results) == [2, 1, 3]

    def test_ties_break_on_lower_document_id(self, engine, build_snapshot):
        snapshot = build_snapshot([(f"https://a.example/{n}", "", "same text") for n in range(4)])

        results = engine.search(snapshot, "same")

        assert _ids(results) == [1, 2, 3, 4]
        assert len({result.score for result in results}) == 1

    def test_repeated_queries_are_identical(self, engine, build_snapshot, sample_pages):
        snapshot = build_snapshot(sample_pages)

        first = engine.search(snapshot, "caching database")

        assert all(engine.search(snapshot, "caching database") == first for _ in range(5))


@pytest.mark.unit
class TestEmptyAndPaging:
    def test_empty_index_returns_empty(self, engine, tokenizer):
        assert engine.search(IndexSnapshot.empty(tokenizer), "anything") == []

    @pytest.mark.parametrize("query", ["", "   ", "?!.", '""'])
    def test_query_without_terms_returns_empty(self, engine, build_snapshot, sample_pages, query):
        assert engine.search(build_snapshot(sample_pages), query) == []

    def test_stop_word_only_query_returns_empty(self, build_snapshot, sample_pages):
        config = TokenizerConfig(stop_words={"the"})
        engine = QueryEngine(Tokenizer(config))

        assert engine.search(build_snapshot(sample_pages, config=config), "the") == []

    def test_pages_partition_the_results(self, engine, build_snapshot):
        snapshot = build_snapshot([(f"https://a.example/{n}", "", "same text") for n in range(5)])

        pages = [engine.search(snapshot, "same", page_size=2, page_offset=offset) for offset in (0, 2, 4)]

        assert [_ids(page) for page in pages] == [[1, 2], [3, 4], [5]]

    def test_offset_beyond_results_is_empty(self, engine, build_snapshot, sample_pages):
        snapshot = build_snapshot(sample_pages)

        assert engine.search(snapshot, "caching", page_size=10, page_offset=50) == []

    def test_search_page_reports_total(self, engine, build_snapshot, sample_pages):
        page = engine.search_page(build_snapshot(sample_pages), "caching", page_size=1)

        assert page.total == 2
        assert len(page.hits) == 1
        assert page.has_more

    @pytest.mark.parametrize(
        ("page_size", "page_offset"),
        [(0, 0), (-1, 0), (10, -1), (True, 0), ("10", 0)],
    )
    def test_invalid_paging_raises(self, engine, build_snapshot, sample_pages, page_size, page_offset):
        with pytest.raises(InvalidQuery):
            engine.search(build_snapshot(sample_pages), "caching", page_size=page_size, page_offset=page_offset)

    def test_unterminated_quote_raises(self, engine, build_snapshot, sample_pages):
        with pytest.raises(InvalidQuery):
            engine.search(build_snapshot(sample_pages), '"database caching')

    def test_non_string_query_raises(self, engine, build_snapshot, sample_pages):
        with pytest.raises(InvalidQuery):
            engine.search(build_snapshot(sample_pages), None)
