"""Tokenizer for the indexing and retrieval core.

Raw text flows through a composable pipeline: a regex splitter yields word
tokens, filters normalize and drop them, and the n-gram filter expands each
surviving word into character n-grams. N-grams share the position of the
word they were cut from, so phrase and proximity scoring keep working for
partial matches.

Every stage is a pure function of its input: the same text always yields
the same token sequence.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Mapping, Sequence
from dataclasses import dataclass
import re
from typing import Literal, Protocol

from folklore.config import TokenizerConfig


TokenKind = Literal["word", "ngram"]


@dataclass
class Token:
    """Represents a token emitted by the pipeline."""

    text: str
    position: int
    start_char: int
    end_char: int
    kind: TokenKind = "word"

    def copy_with(self, **updates: object) -> Token:
        data = {
            "text": self.text,
            "position": self.position,
            "start_char": self.start_char,
            "end_char": self.end_char,
            "kind": self.kind,
        }
        data.update(updates)
        return Token(**data)  # type: ignore[arg-type]


class WordSplitter(Protocol):
    """Protocol implemented by word splitters."""

    def __call__(self, text: str) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class TokenFilter(Protocol):
    """Protocol implemented by token filters."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:  # pragma: no cover - interface definition
        ...


class RegexTokenizer:
    """Splits text on non-alphanumeric boundaries.

    Underscores count as separators, so ``read_through`` yields two words.
    """

    def __init__(self, pattern: str = r"[^\W_]+", flags: int = re.UNICODE) -> None:
        self.pattern = re.compile(pattern, flags)

    def __call__(self, text: str) -> Iterator[Token]:
        for position, match in enumerate(self.pattern.finditer(text)):
            yield Token(
                text=match.group(0),
                position=position,
                start_char=match.start(),
                end_char=match.end(),
            )


class LowercaseFilter:
    """Filter that case-folds token text."""

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            folded = token.text.casefold()
            if folded == token.text:
                yield token
            else:
                yield token.copy_with(text=folded)


class StopFilter:
    """Removes stop words from the stream."""

    def __init__(self, stop_words: Iterable[str], *, case_fold: bool = True) -> None:
        self.stop_words = frozenset(word.casefold() if case_fold else word for word in stop_words)

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            if token.text not in self.stop_words:
                yield token


class NGramFilter:
    """Emits each word followed by its character n-grams.

    Only windows strictly shorter than the word are emitted; the full word
    is already present as the word token itself.
    """

    def __init__(self, n_gram_min: int, n_gram_max: int) -> None:
        self.n_gram_min = n_gram_min
        self.n_gram_max = n_gram_max

    def __call__(self, tokens: Iterable[Token]) -> Iterator[Token]:
        for token in tokens:
            yield token
            word = token.text
            upper = min(self.n_gram_max, len(word) - 1)
            for size in range(self.n_gram_min, upper + 1):
                for offset in range(len(word) - size + 1):
                    yield Token(
                        text=word[offset : offset + size],
                        position=token.position,
                        start_char=token.start_char + offset,
                        end_char=token.start_char + offset + size,
                        kind="ngram",
                    )


class AnalyzerPipeline:
    """Composable analyzer pipeline (splitter + filters)."""

    def __init__(self, splitter: WordSplitter, filters: Sequence[TokenFilter] | None = None) -> None:
        self.splitter = splitter
        self.filters = list(filters or [])

    def __call__(self, text: str) -> list[Token]:
        stream: Iterable[Token] = self.splitter(text)
        for token_filter in self.filters:
            stream = token_filter(stream)
        return list(stream)


@dataclass(frozen=True)
class TermOccurrences:
    """Per-term frequency and word positions for one piece of text."""

    frequency: int
    positions: tuple[int, ...]


@dataclass(frozen=True)
class DocumentAnalysis:
    """Normalized words of a text plus its term occurrences.

    ``words[i]`` is the word at position ``i``; a removed stop word leaves
    an empty string in its slot so positions match the posting data.
    """

    words: tuple[str, ...]
    terms: Mapping[str, TermOccurrences]

    @property
    def is_empty(self) -> bool:
        return not self.words


class Tokenizer:
    """Turns raw text into normalized word and n-gram tokens.

    Ingestion and querying must use the same instance (or two instances
    built from equal configs) so that query terms line up with indexed ones.
    """

    def __init__(self, config: TokenizerConfig | None = None) -> None:
        self.config = config or TokenizerConfig()
        filters: list[TokenFilter] = []
        if self.config.case_fold:
            filters.append(LowercaseFilter())
        if self.config.stop_words:
            filters.append(StopFilter(self.config.stop_words, case_fold=self.config.case_fold))
        self._words = AnalyzerPipeline(RegexTokenizer(), filters)
        self._ngrams = NGramFilter(self.config.n_gram_min, self.config.n_gram_max)

    def words(self, text: str) -> list[Token]:
        """Return normalized word tokens.

        Positions count every word of the raw text, stop words included, so
        dropping a stop word leaves a gap.
        """
        if not text:
            return []
        return self._words(text)

    def tokenize(self, text: str) -> list[Token]:
        """Return word tokens interleaved with their n-grams, in position order."""
        return list(self._ngrams(self.words(text)))

    def analyze(self, text: str) -> DocumentAnalysis:
        """Return the normalized words of ``text`` and its tokens grouped by term."""
        words = self.words(text)
        return DocumentAnalysis(
            words=word_slots(words),
            terms=group_terms(self._ngrams(words)),
        )


def word_slots(words: Sequence[Token]) -> tuple[str, ...]:
    """Lay word tokens out by position, with ``""`` where a word was dropped."""
    if not words:
        return ()
    slots = [""] * (words[-1].position + 1)
    for token in words:
        slots[token.position] = token.text
    return tuple(slots)


def group_terms(tokens: Iterable[Token]) -> dict[str, TermOccurrences]:
    """Collapse a token stream into per-term frequency and sorted distinct positions."""

    counts: dict[str, int] = {}
    positions: dict[str, list[int]] = {}
    for token in tokens:
        counts[token.text] = counts.get(token.text, 0) + 1
        seen = positions.setdefault(token.text, [])
        if not seen or seen[-1] != token.position:
            seen.append(token.position)
    return {term: TermOccurrences(frequency=counts[term], positions=tuple(positions[term])) for term in counts}
