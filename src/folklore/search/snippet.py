"""Snippet extraction for search results.

The snippet is a window of the raw text around the earliest word that
matches a query term, widened to sentence boundaries when they are close.
Matches are located through the tokenizer's character offsets, so a query
word matches wherever the index matched it, including inside longer words.
"""

from __future__ import annotations

from collections.abc import Sequence
import re
from typing import Literal

from folklore.search.analyzers import Token, Tokenizer


SENTENCE_END_PATTERN = re.compile(r"[.!?]\s+")
WORD_BOUNDARY_PATTERN = re.compile(r"\s+")

HighlightStyle = Literal["plain", "html"]


def find_sentence_start(text: str, position: int, max_lookback: int = 200) -> int:
    """Return the start of the sentence containing ``position``.

    Falls back to a word boundary, then to ``position - max_lookback``.
    """
    if position <= 0:
        return 0

    start_search = max(0, position - max_lookback)
    window = text[start_search:position]

    sentence_ends = list(SENTENCE_END_PATTERN.finditer(window))
    if sentence_ends:
        return start_search + sentence_ends[-1].end()

    if start_search == 0:
        return 0
    quarter = len(window) // 4
    for match in WORD_BOUNDARY_PATTERN.finditer(window):
        if match.start() >= quarter:
            return start_search + match.end()
    return start_search


def find_sentence_end(text: str, position: int, max_lookahead: int = 200) -> int:
    """Return the end of the sentence containing ``position``."""
    if position >= len(text):
        return len(text)

    end_search = min(len(text), position + max_lookahead)
    window = text[position:end_search]

    match = SENTENCE_END_PATTERN.search(window)
    if match:
        return position + match.start() + 1

    if end_search == len(text):
        return end_search
    three_quarters = (len(window) * 3) // 4
    for boundary in reversed(list(WORD_BOUNDARY_PATTERN.finditer(window))):
        if boundary.start() <= three_quarters:
            return position + boundary.start()
    return end_search


def find_match_spans(text: str, terms: Sequence[str], tokenizer: Tokenizer) -> list[tuple[int, int]]:
    """Return ``(start, end)`` character spans of the words matching ``terms``.

    A word matches a term when it contains it, which is how the query
    engine matches terms against indexed words.
    """
    wanted = [term for term in terms if term]
    if not text or not wanted:
        return []
    spans: list[tuple[int, int]] = []
    for token in tokenizer.words(text):
        span = _locate(token, text, wanted, tokenizer.config.case_fold)
        if span is not None:
            spans.append(span)
    return spans


def _locate(token: Token, text: str, terms: Sequence[str], case_fold: bool) -> tuple[int, int] | None:
    for term in terms:
        if token.text == term:
            return token.start_char, token.end_char
        if term not in token.text:
            continue
        surface = text[token.start_char : token.end_char]
        haystack = surface.casefold() if case_fold else surface
        offset = haystack.find(term)
        # casefold may change the length of the word; highlight the whole word then
        if offset == -1 or len(haystack) != len(surface):
            return token.start_char, token.end_char
        return token.start_char + offset, token.start_char + offset + len(term)
    return None


def extract_snippet_window(
    text: str,
    match_start: int,
    match_end: int,
    max_chars: int = 300,
    surrounding_context: int = 100,
) -> tuple[int, int]:
    """Return the ``(start, end)`` window of ``text`` to show around a match."""
    initial_start = max(0, match_start - surrounding_context)
    initial_end = min(len(text), match_end + surrounding_context)

    start = find_sentence_start(text, initial_start, max_lookback=surrounding_context)
    end = find_sentence_end(text, initial_end, max_lookahead=surrounding_context)

    if end - start > max_chars:
        center = (match_start + match_end) // 2
        start = max(0, center - max_chars // 2)
        end = min(len(text), start + max_chars)
    return start, end


def highlight_spans(
    text: str,
    spans: Sequence[tuple[int, int]],
    style: HighlightStyle = "plain",
    max_highlights: int = 3,
) -> str:
    """Wrap the first ``max_highlights`` non-overlapping spans of ``text``."""
    selected: list[tuple[int, int]] = []
    for start, end in sorted(spans, key=lambda span: (span[0], -(span[1] - span[0]))):
        if selected and start < selected[-1][1]:
            continue
        selected.append((start, end))
        if len(selected) >= max_highlights:
            break

    result = text
    for start, end in reversed(selected):
        matched = result[start:end]
        replacement = f"<mark>{matched}</mark>" if style == "html" else f"[[{matched}]]"
        result = result[:start] + replacement + result[end:]
    return result


def build_snippet(
    text: str,
    terms: Sequence[str],
    tokenizer: Tokenizer,
    max_chars: int = 300,
    surrounding_context: int = 100,
    style: HighlightStyle = "plain",
) -> str:
    """Build a highlighted snippet of ``text`` for the given query terms.

    Without any match the beginning of the text is returned unhighlighted.
    """
    if not text:
        return ""

    spans = find_match_spans(text, terms, tokenizer)
    if not spans:
        return text[:max_chars].strip()

    first_start, first_end = spans[0]
    start, end = extract_snippet_window(
        text,
        first_start,
        first_end,
        max_chars=max_chars,
        surrounding_context=surrounding_context,
    )
    window = text[start:end]
    local_spans = [(s - start, e - start) for s, e in spans if s >= start and e <= end]
    highlighted = highlight_spans(window, local_spans, style=style)

    stripped = highlighted.strip()
    prefix = "..." if start > 0 else ""
    suffix = "..." if end < len(text) else ""
    return f"{prefix}{stripped}{suffix}"
