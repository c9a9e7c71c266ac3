"""Shared SQLite PRAGMA helpers for the snapshot database."""

from __future__ import annotations

import sqlite3


def apply_read_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -65536,
    mmap_size_bytes: int = 134217728,
    busy_timeout_ms: int | None = 30000,
    query_only: bool = True,
) -> None:
    """Apply read-optimized PRAGMAs for loading a snapshot."""
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms}")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute(f"PRAGMA mmap_size = {mmap_size_bytes}")
    conn.execute("PRAGMA temp_store = MEMORY")
    if query_only:
        conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -65536,
    page_size: int = 4096,
    journal_mode: str = "DELETE",
    synchronous: str = "NORMAL",
) -> None:
    """Apply write-optimized PRAGMAs; call before the first table is created.

    A snapshot file is written once into a private temporary path and then
    renamed into place, so a rollback journal is enough.
    """
    conn.execute(f"PRAGMA page_size = {page_size}")
    conn.execute(f"PRAGMA journal_mode = {journal_mode}")
    conn.execute(f"PRAGMA synchronous = {synchronous}")
    conn.execute(f"PRAGMA cache_size = {cache_size_kb}")
    conn.execute("PRAGMA temp_store = MEMORY")
