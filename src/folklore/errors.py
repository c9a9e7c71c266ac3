"""Error kinds raised by the indexing and retrieval core.

A search with no matches is not an error: it is a successful call that
returns an empty sequence. Only the situations below raise.
"""

from __future__ import annotations


class FolkloreError(Exception):
    """Base class for all errors raised by folklore."""


class NotFound(FolkloreError, LookupError):
    """Raised when a document id is requested that was never assigned."""

    def __init__(self, document_id: int) -> None:
        super().__init__(f"Unknown document id: {document_id}")
        self.document_id = document_id


class InvalidQuery(FolkloreError, ValueError):
    """Raised for malformed query syntax or invalid paging arguments."""


class IngestionFailure(FolkloreError, RuntimeError):
    """Raised when a document could not be ingested.

    The index is left exactly as it was before the failed call.
    """

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to ingest {url}: {reason}")
        self.url = url
        self.reason = reason


class StorageError(FolkloreError):
    """Raised when a persisted index cannot be written or read back."""
