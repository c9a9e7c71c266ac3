"""Folklore: a search engine over a curated allow-list of engineering websites.

The package holds the indexing and retrieval core. Fetching pages and
deciding which sites to trust happen elsewhere; this core receives
already-fetched ``(url, title, raw_text)`` triples and answers queries.
"""

from folklore.errors import FolkloreError, IngestionFailure, InvalidQuery, NotFound, StorageError
from folklore.service import SearchIndex


__all__ = [
    "FolkloreError",
    "IngestionFailure",
    "InvalidQuery",
    "NotFound",
    "SearchIndex",
    "StorageError",
]
