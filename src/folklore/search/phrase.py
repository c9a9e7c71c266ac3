"""Phrase matching and proximity scoring over word positions."""

from __future__ import annotations

from collections.abc import Mapping, Sequence


MAX_PHRASE_BONUS = 1.5


def get_min_span(term_positions: Mapping[str, Sequence[int]]) -> float:
    """Calculate minimum span containing at least one of each term.

    The span is the number of positions from first to last term inclusive.
    For adjacent terms, span equals the number of terms.

    Args:
        term_positions: Dictionary mapping terms to their positions.

    Returns:
        Minimum span, or infinity if not all terms are present.
    """
    if not term_positions or any(not positions for positions in term_positions.values()):
        return float("inf")

    if len(term_positions) == 1:
        return 1.0

    position_lists = list(term_positions.values())
    min_span = float("inf")

    # Greedy: anchor on each position of the first term and pull the
    # closest position of every other term.
    for anchor in position_lists[0]:
        span_positions = [anchor]
        for other_positions in position_lists[1:]:
            closest = min(other_positions, key=lambda p: (abs(p - anchor), p))
            span_positions.append(closest)
        span = max(span_positions) - min(span_positions) + 1
        min_span = min(min_span, span)

    return min_span


def proximity_bonus(span: float, term_count: int) -> float:
    """Multiplier in [1.0, MAX_PHRASE_BONUS] for how tightly terms cluster.

    Adjacent terms get the full bonus; the bonus decays linearly and is gone
    once the span reaches three times the term count.
    """
    if term_count < 2 or span == float("inf"):
        return 1.0
    if span <= term_count:
        return MAX_PHRASE_BONUS
    scatter_ratio = span / term_count
    if scatter_ratio >= 3.0:
        return 1.0
    bonus = MAX_PHRASE_BONUS - (scatter_ratio - 1.0) * (MAX_PHRASE_BONUS - 1.0) / 2.0
    return max(1.0, bonus)


def contains_phrase(term_positions: Sequence[Sequence[int]], offsets: Sequence[int] | None = None) -> bool:
    """Return True when the terms occur in order at the given distances.

    ``term_positions[i]`` holds the sorted positions of the i-th phrase word
    and ``offsets[i]`` its distance from the first word; without offsets the
    words must be adjacent.
    """
    if not term_positions or any(not positions for positions in term_positions):
        return False
    if offsets is None:
        offsets = range(len(term_positions))
    following = [(offsets[idx] - offsets[0], set(positions)) for idx, positions in enumerate(term_positions) if idx]
    for start in term_positions[0]:
        if all(start + distance in positions for distance, positions in following):
            return True
    return False
