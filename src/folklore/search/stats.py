"""Statistical helpers for BM25 style scoring.

The functions here stay independent of the stores so they can be unit
tested on plain numbers. Each weight is monotonic in its input: more
occurrences never lower a term's weight, and a rarer term never weighs
less than a more common one.
"""

from __future__ import annotations

import math


def calculate_idf(doc_freq: int, total_docs: int) -> float:
    """Return the smoothed BM25 inverse document frequency.

    ``log(1 + (N - df + 0.5) / (df + 0.5))`` stays positive for a term
    found in every document and strictly decreases as ``df`` grows.
    """

    if total_docs <= 0:
        return 0.0
    df = max(0, min(doc_freq, total_docs))
    return math.log1p((total_docs - df + 0.5) / (df + 0.5))


def bm25(tf: int, doc_length: int, avg_doc_length: float, *, k1: float = 1.2, b: float = 0.75) -> float:
    """Compute the BM25 term weight without IDF.

    dl/avgdl is capped at 4x so very long pages are not pushed to the
    bottom purely for their size.
    """

    if tf <= 0:
        return 0.0
    max_length_ratio = 4.0
    raw_ratio = doc_length / max(avg_doc_length, 1e-9)
    normalized_length = min(raw_ratio, max_length_ratio)
    denominator = tf + k1 * (1 - b + b * normalized_length)
    return (tf * (k1 + 1)) / denominator


def coverage(matched_terms: int, query_terms: int) -> float:
    """Fraction of distinct query terms a document matched."""

    if query_terms <= 0:
        return 0.0
    return min(matched_terms, query_terms) / query_terms
