"""Query parsing.

A query is a list of bare words plus optional double-quoted phrases::

    "database caching" layers

Every word, quoted or not, is a required term under AND semantics. A
quoted run of two or more words additionally has to appear at consecutive
positions; a stop word inside the quotes still takes up its position, so
``"cost of caching"`` requires exactly one word between the other two. A
quoted single word is just another term.
"""

from __future__ import annotations

from dataclasses import dataclass
import re

from folklore.errors import InvalidQuery
from folklore.search.analyzers import Tokenizer


_PHRASE_PATTERN = re.compile(r'"([^"]*)"')


@dataclass(frozen=True)
class ParsedQuery:
    """Normalized query terms, deduplicated; quoted words come first."""

    text: str
    terms: tuple[str, ...]
    phrases: tuple[tuple[str, ...], ...] = ()
    # word offsets within each phrase, relative to its first kept word
    phrase_offsets: tuple[tuple[int, ...], ...] = ()

    @classmethod
    def empty(cls, text: str = "") -> ParsedQuery:
        return cls(text=text, terms=())

    def is_empty(self) -> bool:
        return not self.terms


def parse_query(query_text: str, tokenizer: Tokenizer) -> ParsedQuery:
    """Split ``query_text`` into terms and phrases with the ingestion tokenizer.

    Raises:
        InvalidQuery: the text is not a string or has an unterminated quote.
    """
    if not isinstance(query_text, str):
        raise InvalidQuery(f"Query must be a string, got {type(query_text).__name__}")
    if query_text.count('"') % 2:
        raise InvalidQuery(f"Unterminated quote in query: {query_text!r}")

    seen: set[str] = set()
    terms: list[str] = []
    phrases: list[tuple[str, ...]] = []
    phrase_offsets: list[tuple[int, ...]] = []

    def collect(words: list[str]) -> None:
        for word in words:
            if word not in seen:
                seen.add(word)
                terms.append(word)

    for match in _PHRASE_PATTERN.finditer(query_text):
        tokens = tokenizer.words(match.group(1))
        words = [token.text for token in tokens]
        if len(words) > 1:
            offsets = tuple(token.position - tokens[0].position for token in tokens)
            if (tuple(words), offsets) not in zip(phrases, phrase_offsets):
                phrases.append(tuple(words))
                phrase_offsets.append(offsets)
        collect(words)

    remainder = _PHRASE_PATTERN.sub(" ", query_text)
    collect([token.text for token in tokenizer.words(remainder)])

    if not terms:
        return ParsedQuery.empty(query_text)
    return ParsedQuery(
        text=query_text,
        terms=tuple(terms),
        phrases=tuple(phrases),
        phrase_offsets=tuple(phrase_offsets),
    )
