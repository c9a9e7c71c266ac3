"""Query engine: ranks documents of an index snapshot for a query.

``search`` is a pure function of the snapshot and the query text. It never
mutates the snapshot, so a caller may abandon a query at any point.

A query word matches every document word it is a substring of. Words up to
``n_gram_max`` characters are index keys themselves (as words or n-grams)
and resolve with one posting lookup. Longer words are split into their
``n_gram_max``-grams; the documents holding all of them at a common word
position are candidates, and each candidate is verified against the stored
word at that position.

Score of a matching document::

    sum(idf(t) * bm25(tf, dl, avgdl) for matched t) * coverage * proximity

``coverage`` is the fraction of query terms the document matched (always 1
under AND semantics) and ``proximity`` rewards query words appearing close
together. Results are ordered by score descending, then by document id
ascending, which makes pagination reproducible.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
import logging

from folklore.config import RankingConfig
from folklore.errors import InvalidQuery
from folklore.search.analyzers import Tokenizer
from folklore.search.models import Posting, RankedDocument
from folklore.search.phrase import contains_phrase, get_min_span, proximity_bonus
from folklore.search.postings import intersect_doc_ids, union_doc_ids
from folklore.search.query import ParsedQuery, parse_query
from folklore.search.snapshot import IndexSnapshot
from folklore.search.stats import bm25, calculate_idf, coverage


logger = logging.getLogger(__name__)

# doc_id -> occurrences of one query term in that document
TermMatches = Mapping[int, Posting]


@dataclass(frozen=True)
class ResultPage:
    """One page of ranked results plus the size of the full result set."""

    hits: tuple[RankedDocument, ...]
    total: int
    page_size: int
    page_offset: int

    @property
    def has_more(self) -> bool:
        return self.page_offset + len(self.hits) < self.total


class QueryEngine:
    """Compute BM25 scores for the documents of an index snapshot."""

    def __init__(self, tokenizer: Tokenizer | None = None, ranking: RankingConfig | None = None) -> None:
        self.tokenizer = tokenizer or Tokenizer()
        self.ranking = ranking or RankingConfig()

    def parse(self, query_text: str) -> ParsedQuery:
        return parse_query(query_text, self.tokenizer)

    def search(
        self,
        snapshot: IndexSnapshot,
        query_text: str,
        page_size: int = 10,
        page_offset: int = 0,
    ) -> list[RankedDocument]:
        """Return the requested page of ``(doc_id, score)`` results.

        An empty index, a query without terms, or an offset past the end all
        yield an empty list.

        Raises:
            InvalidQuery: malformed query text or paging arguments.
        """
        return list(self.search_page(snapshot, query_text, page_size, page_offset).hits)

    def search_page(
        self,
        snapshot: IndexSnapshot,
        query_text: str,
        page_size: int = 10,
        page_offset: int = 0,
    ) -> ResultPage:
        _validate_paging(page_size, page_offset)
        ranked = self.rank(snapshot, self.parse(query_text))
        hits = tuple(ranked[page_offset : page_offset + page_size])
        return ResultPage(hits=hits, total=len(ranked), page_size=page_size, page_offset=page_offset)

    def rank(self, snapshot: IndexSnapshot, query: ParsedQuery) -> list[RankedDocument]:
        """Return every matching document in final order."""
        if query.is_empty() or not snapshot.document_count:
            return []

        matches: dict[str, TermMatches] = {}
        for term in query.terms:
            found = self.match_term(snapshot, term)
            if not found and self.ranking.match_mode == "all":
                return []
            matches[term] = found

        id_lists = [list(found) for found in matches.values() if found]
        if self.ranking.match_mode == "all":
            candidates = intersect_doc_ids(id_lists)
        else:
            candidates = union_doc_ids(id_lists)

        if query.phrases:
            candidates = [doc_id for doc_id in candidates if _matches_phrases(matches, doc_id, query)]
        if not candidates:
            return []

        total_docs = snapshot.document_count
        avg_length = snapshot.average_length()
        idf = {term: calculate_idf(len(found), total_docs) for term, found in matches.items() if found}

        ranked: list[RankedDocument] = []
        for doc_id in candidates:
            doc_length = snapshot.documents.get(doc_id).length
            score = 0.0
            positions: dict[str, Sequence[int]] = {}
            for term, found in matches.items():
                posting = found.get(doc_id)
                if posting is None:
                    continue
                positions[term] = posting.positions
                weight = bm25(posting.frequency, doc_length, avg_length, k1=self.ranking.bm25_k1, b=self.ranking.bm25_b)
                score += idf[term] * weight

            score *= coverage(len(positions), len(query.terms))
            if self.ranking.phrase_bonus and len(positions) > 1:
                score *= proximity_bonus(get_min_span(positions), len(positions))
            ranked.append(RankedDocument(doc_id=doc_id, score=score))

        ranked.sort(key=lambda entry: (-entry.score, entry.doc_id))
        logger.debug("Query %r matched %d documents", query.text, len(ranked))
        return ranked

    def match_term(self, snapshot: IndexSnapshot, term: str) -> dict[int, Posting]:
        """Return the documents containing ``term`` inside any of their words.

        The returned dict is ordered by document id.
        """
        window = self.tokenizer.config.n_gram_max
        if len(term) <= window:
            return {posting.doc_id: posting for posting in snapshot.postings.lookup(term)}

        grams = sorted({term[offset : offset + window] for offset in range(len(term) - window + 1)})
        id_lists = [snapshot.postings.doc_ids(gram) for gram in grams]
        if any(not ids for ids in id_lists):
            return {}

        found: dict[int, Posting] = {}
        for doc_id in intersect_doc_ids(id_lists):
            shared = set(snapshot.postings.get(grams[0], doc_id).positions)
            for gram in grams[1:]:
                shared.intersection_update(snapshot.postings.get(gram, doc_id).positions)
            if not shared:
                continue
            words = snapshot.documents.get(doc_id).normalized_terms
            verified = tuple(position for position in sorted(shared) if term in words[position])
            if verified:
                frequency = sum(_count_overlapping(words[position], term) for position in verified)
                found[doc_id] = Posting(doc_id=doc_id, frequency=frequency, positions=verified)
        return found


def _matches_phrases(
    matches: Mapping[str, TermMatches],
    doc_id: int,
    query: ParsedQuery,
) -> bool:
    for idx, phrase in enumerate(query.phrases):
        offsets = query.phrase_offsets[idx] if idx < len(query.phrase_offsets) else None
        term_positions = []
        for word in phrase:
            posting = matches[word].get(doc_id)
            if posting is None:
                return False
            term_positions.append(posting.positions)
        if not contains_phrase(term_positions, offsets):
            return False
    return True


def _validate_paging(page_size: int, page_offset: int) -> None:
    if not isinstance(page_size, int) or isinstance(page_size, bool) or page_size < 1:
        raise InvalidQuery(f"page_size must be a positive integer, got {page_size!r}")
    if not isinstance(page_offset, int) or isinstance(page_offset, bool) or page_offset < 0:
        raise InvalidQuery(f"page_offset must be a non-negative integer, got {page_offset!r}")


def _count_overlapping(word: str, term: str) -> int:
    """Occurrences of ``term`` in ``word``, overlaps included, as the n-gram windows count them."""
    return sum(1 for offset in range(len(word) - len(term) + 1) if word.startswith(term, offset))
