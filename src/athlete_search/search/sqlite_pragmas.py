"""Shared SQLite PRAGMA helpers for the index connections."""

from __future__ import annotations

import sqlite3


def apply_read_pragmas(
    conn: sqlite3.Connection,
    *,
    cache_size_kb: int = -16384,
    mmap_size_bytes: int = 67108864,
    busy_timeout_ms: int | None = 30000,
    query_only: bool = True,
) -> None:
    """Apply PRAGMAs for snapshot readers."""
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute(f"PRAGMA mmap_size = {int(mmap_size_bytes)}")
    if query_only:
        conn.execute("PRAGMA query_only = 1")


def apply_write_pragmas(
    conn: sqlite3.Connection,
    *,
    synchronous: str = "FULL",
    cache_size_kb: int = -16384,
    busy_timeout_ms: int | None = 30000,
) -> None:
    """Apply PRAGMAs for the single writer connection.

    WAL lets readers keep their snapshot while the writer commits.
    """
    if synchronous.upper() not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
        raise ValueError(f"Unsupported synchronous level: {synchronous}")
    if busy_timeout_ms is not None:
        conn.execute(f"PRAGMA busy_timeout = {int(busy_timeout_ms)}")
    conn.execute("PRAGMA journal_mode = WAL")
    conn.execute(f"PRAGMA synchronous = {synchronous.upper()}")
    conn.execute(f"PRAGMA cache_size = {int(cache_size_kb)}")
    conn.execute("PRAGMA temp_store = MEMORY")
