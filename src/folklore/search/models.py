"""Search data models."""

from __future__ import annotations

from dataclasses import dataclass, field

from pydantic import BaseModel, ConfigDict


@dataclass(frozen=True, slots=True)
class Posting:
    """Links one term to one document, with occurrence data."""

    doc_id: int
    frequency: int
    positions: tuple[int, ...] = ()


@dataclass(frozen=True, slots=True)
class Document:
    """Canonical metadata of one ingested page.

    ``terms`` is the full set of index keys (words and n-grams) the
    document currently contributes postings for.
    """

    id: int
    url: str
    title: str
    raw_text: str
    normalized_terms: tuple[str, ...] = ()
    terms: frozenset[str] = field(default_factory=frozenset)

    @property
    def length(self) -> int:
        """Number of indexed words, used for length normalization.

        Empty slots left by stop words do not count.
        """
        return sum(1 for word in self.normalized_terms if word)


@dataclass(frozen=True, slots=True)
class RankedDocument:
    """Represents a scored document produced by the query engine."""

    doc_id: int
    score: float


class SearchResult(BaseModel):
    """A ranked document enriched for presentation."""

    model_config = ConfigDict(frozen=True)

    document_id: int
    url: str
    title: str
    score: float
    snippet: str = ""


class IndexStats(BaseModel):
    """Size of one published snapshot."""

    model_config = ConfigDict(frozen=True)

    version: int
    document_count: int
    term_count: int
    posting_count: int
