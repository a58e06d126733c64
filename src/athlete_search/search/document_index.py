"""SQLite-backed inverted index for athlete documents.

Layout: a ``documents`` table with stored fields and per-field lengths, a
``postings`` table keyed by (field, term, doc_id) with binary-encoded
positions, and a ``metadata`` key/value table.

Consistency model:
- One writer connection, serialized by a lock. Every write runs in its own
  ``BEGIN IMMEDIATE`` transaction and is committed before the call returns.
- Each search opens an ``IndexSnapshot``: a separate read connection holding a
  WAL read transaction. It sees every commit that finished before it was
  opened and nothing after, and never blocks (or is blocked by) the writer.
- Every commit bumps a ``generation`` counter that snapshots report.
"""

from __future__ import annotations

from array import array
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
import logging
from pathlib import Path
import sqlite3
import threading
from typing import Any

import orjson

from athlete_search.domain.models import AthleteDocument
from athlete_search.errors import IndexUnavailableError, ValidationError
from athlete_search.observability.metrics import INDEX_DOC_COUNT, INDEX_WRITES
from athlete_search.observability.tracing import create_span
from athlete_search.search.schema import AGE_VALUE, Schema, TextField, create_athlete_schema
from athlete_search.search.sqlite_pragmas import apply_read_pragmas, apply_write_pragmas
from athlete_search.search.stats import FieldLengthStats


logger = logging.getLogger(__name__)

_DOCUMENT_COLUMNS = (
    "name",
    "age_text",
    "age_value",
    "weight_code",
    "location",
    "image",
    "location_icon",
    "photos",
)

_LENGTH_COLUMN_BY_FIELD = {
    "name": "name_length",
    "location": "location_length",
}

_NUMERIC_COLUMN_BY_FIELD = {
    AGE_VALUE: "age_value",
}

_SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS metadata (
        key TEXT PRIMARY KEY,
        value TEXT
    );

    CREATE TABLE IF NOT EXISTS documents (
        doc_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        age_text TEXT,
        age_value INTEGER,
        weight_code TEXT,
        location TEXT,
        image TEXT,
        location_icon TEXT,
        photos BLOB,
        name_length INTEGER NOT NULL DEFAULT 0,
        location_length INTEGER NOT NULL DEFAULT 0
    ) WITHOUT ROWID;

    CREATE TABLE IF NOT EXISTS postings (
        field TEXT NOT NULL,
        term TEXT NOT NULL,
        doc_id TEXT NOT NULL,
        tf INTEGER NOT NULL,
        doc_length INTEGER NOT NULL,
        positions_blob BLOB,
        PRIMARY KEY (field, term, doc_id)
    ) WITHOUT ROWID;

    CREATE INDEX IF NOT EXISTS idx_postings_doc ON postings(doc_id);
    CREATE INDEX IF NOT EXISTS idx_documents_age ON documents(age_value);
"""


class IndexState(str, Enum):
    UNOPENED = "unopened"
    OPEN = "open"
    CLOSED = "closed"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class Posting:
    doc_id: str
    frequency: int
    doc_length: int
    positions: tuple[int, ...] = ()


def _encode_positions(positions: list[int]) -> bytes:
    return array("I", positions).tobytes()


def _decode_positions(blob: bytes | None) -> tuple[int, ...]:
    if not blob:
        return ()
    positions = array("I")
    positions.frombytes(blob)
    return tuple(positions)


def _document_from_row(row: sqlite3.Row | tuple) -> AthleteDocument:
    doc_id, name, age_text, age_value, weight_code, location, image, location_icon, photos = row
    return AthleteDocument(
        id=doc_id,
        name=name,
        age_text=age_text,
        age_value=age_value,
        weight_code=weight_code,
        location=location,
        image=image,
        location_icon=location_icon,
        photos=orjson.loads(photos) if photos else [],
    )


class IndexSnapshot:
    """Point-in-time, read-only view of the index used by a single search.

    Not shared between threads. Close it (or use it as a context manager)
    to release the WAL read mark.
    """

    def __init__(self, conn: sqlite3.Connection, schema: Schema) -> None:
        self._conn = conn
        self.schema = schema
        self._closed = False
        self._postings_cache: dict[tuple[str, str], list[Posting]] = {}
        self._terms_cache: dict[str, list[str]] = {}
        self._stats_cache: dict[str, FieldLengthStats] = {}
        try:
            conn.execute("BEGIN")
            row = conn.execute("SELECT value FROM metadata WHERE key = 'generation'").fetchone()
            self.generation = int(row[0]) if row else 0
            self.doc_count = int(conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0])
        except sqlite3.Error as exc:
            conn.close()
            raise IndexUnavailableError(f"Failed to open index snapshot: {exc}") from exc

    def __enter__(self) -> IndexSnapshot:
        return self

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.debug("Snapshot rollback failed during close", exc_info=True)
        finally:
            self._conn.close()

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        if self._closed:
            raise IndexUnavailableError("Snapshot is closed")
        try:
            return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as exc:
            raise IndexUnavailableError(f"Index read failed: {exc}") from exc

    def postings(self, field_name: str, term: str) -> list[Posting]:
        """Return postings (with positions) for one term of one field."""
        key = (field_name, term)
        cached = self._postings_cache.get(key)
        if cached is not None:
            return cached
        rows = self._query(
            "SELECT doc_id, tf, doc_length, positions_blob FROM postings WHERE field = ? AND term = ?",
            (field_name, term),
        )
        postings = [
            Posting(doc_id=doc_id, frequency=int(tf), doc_length=int(doc_length), positions=_decode_positions(blob))
            for doc_id, tf, doc_length, blob in rows
        ]
        self._postings_cache[key] = postings
        return postings

    def terms(self, field_name: str) -> list[str]:
        """Return the sorted distinct terms of a field."""
        cached = self._terms_cache.get(field_name)
        if cached is None:
            rows = self._query("SELECT DISTINCT term FROM postings WHERE field = ? ORDER BY term", (field_name,))
            cached = [row[0] for row in rows]
            self._terms_cache[field_name] = cached
        return cached

    def docs_with_prefix(self, field_name: str, prefix: str) -> list[str]:
        """Return ids of documents holding any term of ``field_name`` that starts with ``prefix``."""
        rows = self._query(
            "SELECT DISTINCT doc_id FROM postings WHERE field = ? AND term >= ? AND term < ?",
            (field_name, prefix, prefix + "\U0010ffff"),
        )
        return [row[0] for row in rows]

    def docs_matching_glob(self, field_name: str, glob: str) -> list[str]:
        """Return ids of documents holding a term of ``field_name`` matching an SQLite GLOB pattern."""
        rows = self._query(
            "SELECT DISTINCT doc_id FROM postings WHERE field = ? AND term GLOB ?",
            (field_name, glob),
        )
        return [row[0] for row in rows]

    def field_stats(self, field_name: str) -> FieldLengthStats:
        """Aggregate length stats for a text field; keyword fields have unit length."""
        cached = self._stats_cache.get(field_name)
        if cached is not None:
            return cached
        column = _LENGTH_COLUMN_BY_FIELD.get(field_name)
        if column is None:
            stats = FieldLengthStats(field=field_name, total_terms=self.doc_count, document_count=self.doc_count)
        else:
            row = self._query(f"SELECT COUNT(*), SUM({column}) FROM documents")[0]
            stats = FieldLengthStats(field=field_name, total_terms=int(row[1] or 0), document_count=int(row[0] or 0))
        self._stats_cache[field_name] = stats
        return stats

    def numeric_range(
        self,
        field_name: str,
        lower: float | None,
        upper: float | None,
        *,
        include_lower: bool = True,
        include_upper: bool = True,
    ) -> list[str]:
        """Return ids of documents whose numeric field lies in the range."""
        column = _NUMERIC_COLUMN_BY_FIELD.get(field_name)
        if column is None:
            raise KeyError(f"Field '{field_name}' is not a numeric field")
        clauses = [f"{column} IS NOT NULL"]
        params: list[Any] = []
        if lower is not None:
            clauses.append(f"{column} {'>=' if include_lower else '>'} ?")
            params.append(lower)
        if upper is not None:
            clauses.append(f"{column} {'<=' if include_upper else '<'} ?")
            params.append(upper)
        rows = self._query(f"SELECT doc_id FROM documents WHERE {' AND '.join(clauses)}", tuple(params))
        return [row[0] for row in rows]

    def all_doc_ids(self) -> list[str]:
        return [row[0] for row in self._query("SELECT doc_id FROM documents")]

    def get_documents(self, doc_ids: Iterable[str]) -> dict[str, AthleteDocument]:
        ids = list(dict.fromkeys(doc_ids))
        found: dict[str, AthleteDocument] = {}
        columns = ", ".join(("doc_id", *_DOCUMENT_COLUMNS))
        # SQLite caps bound parameters; stay well below the limit
        for offset in range(0, len(ids), 500):
            chunk = ids[offset : offset + 500]
            placeholders = ", ".join("?" for _ in chunk)
            rows = self._query(f"SELECT {columns} FROM documents WHERE doc_id IN ({placeholders})", tuple(chunk))
            for row in rows:
                document = _document_from_row(row)
                found[document.id] = document
        return found

    def get_document(self, doc_id: str) -> AthleteDocument | None:
        return self.get_documents([doc_id]).get(doc_id)


class DocumentIndex:
    """Owns the on-disk index: upsert-by-id, delete, rebuild and snapshots.

    State machine: ``UNOPENED -> OPEN -> CLOSED``. A failed ``open()`` moves
    the index to ``UNAVAILABLE`` for good; every later call raises
    ``IndexUnavailableError``.
    """

    def __init__(
        self,
        db_path: str | Path,
        schema: Schema | None = None,
        *,
        synchronous: str = "FULL",
        busy_timeout_ms: int = 30000,
    ) -> None:
        self.db_path = Path(db_path)
        self.schema = schema or create_athlete_schema()
        self._synchronous = synchronous
        self._busy_timeout_ms = busy_timeout_ms
        self._state = IndexState.UNOPENED
        self._writer: sqlite3.Connection | None = None
        self._write_lock = threading.Lock()
        self._generation = 0
        self._open_error: str | None = None

    @property
    def state(self) -> IndexState:
        return self._state

    @property
    def generation(self) -> int:
        """Generation of the last commit made through this index."""
        return self._generation

    def __enter__(self) -> DocumentIndex:
        return self.open()

    def __exit__(self, *_exc: object) -> None:
        self.close()

    def open(self) -> DocumentIndex:
        with self._write_lock:
            if self._state is IndexState.OPEN:
                return self
            self._check_not_unavailable()
            if self._state is IndexState.CLOSED:
                raise IndexUnavailableError("Index has been closed")
            conn = None
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
                apply_write_pragmas(conn, synchronous=self._synchronous, busy_timeout_ms=self._busy_timeout_ms)
                conn.executescript(_SCHEMA_SQL)
                conn.execute(
                    "INSERT OR IGNORE INTO metadata (key, value) VALUES ('schema', ?)",
                    (orjson.dumps(self.schema.to_dict()).decode("utf-8"),),
                )
                conn.execute("INSERT OR IGNORE INTO metadata (key, value) VALUES ('generation', '0')")
                row = conn.execute("SELECT value FROM metadata WHERE key = 'generation'").fetchone()
                self._generation = int(row[0]) if row else 0
                doc_count = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
            except (sqlite3.Error, OSError, ValueError) as exc:
                if conn is not None:
                    conn.close()
                self._state = IndexState.UNAVAILABLE
                self._open_error = str(exc)
                logger.error("Failed to open index at %s: %s", self.db_path, exc)
                raise IndexUnavailableError(f"Failed to open index at {self.db_path}: {exc}") from exc
            self._writer = conn
            self._state = IndexState.OPEN
            INDEX_DOC_COUNT.labels().set(doc_count)
        logger.info("Opened index %s (documents=%d, generation=%d)", self.db_path, doc_count, self._generation)
        return self

    def close(self) -> None:
        with self._write_lock:
            if self._state is not IndexState.OPEN:
                if self._state is IndexState.UNOPENED:
                    self._state = IndexState.CLOSED
                return
            try:
                if self._writer is not None:
                    self._writer.close()
            except sqlite3.Error:
                logger.warning("Error closing index writer", exc_info=True)
            self._writer = None
            self._state = IndexState.CLOSED

    def _check_not_unavailable(self) -> None:
        if self._state is IndexState.UNAVAILABLE:
            raise IndexUnavailableError(f"Index is unavailable: {self._open_error}")

    def _require_open(self) -> sqlite3.Connection:
        self._check_not_unavailable()
        if self._state is not IndexState.OPEN or self._writer is None:
            raise IndexUnavailableError(f"Index is {self._state.value}")
        return self._writer

    # Writes

    def upsert(self, document: AthleteDocument) -> int:
        """Insert or replace the document with ``document.id``; returns the committed generation."""
        if not document.id or not document.id.strip():
            raise ValidationError("document id must not be empty")
        if not document.name or not document.name.strip():
            raise ValidationError(f"document '{document.id}' has an empty name")
        with create_span("index.upsert", attributes={"doc.id": document.id}):
            return self._write("upsert", lambda conn: self._write_document(conn, document))

    def delete(self, doc_id: str) -> int:
        """Remove the document if present; returns the generation after the call."""
        if not doc_id or not doc_id.strip():
            raise ValidationError("document id must not be empty")
        with create_span("index.delete", attributes={"doc.id": doc_id}):
            return self._write("delete", lambda conn: self._delete_document(conn, doc_id))

    def rebuild(self, documents: Iterable[AthleteDocument]) -> int:
        """Replace the whole index with ``documents`` in one transaction.

        Holds the write lock for the duration, so concurrent upserts wait.
        Any failure rolls back to the previous contents. Returns the number
        of documents in the rebuilt index.
        """

        def _replace_all(conn: sqlite3.Connection) -> bool:
            conn.execute("DELETE FROM postings")
            conn.execute("DELETE FROM documents")
            for document in documents:
                self._write_document(conn, document)
            return True

        with create_span("index.rebuild"):
            self._write("rebuild", _replace_all)
            with self.open_snapshot() as snapshot:
                return snapshot.doc_count

    def _write(self, operation: str, apply) -> int:
        with self._write_lock:
            conn = self._require_open()
            try:
                conn.execute("BEGIN IMMEDIATE")
                changed = apply(conn)
                if changed:
                    conn.execute(
                        "UPDATE metadata SET value = CAST(value AS INTEGER) + 1 WHERE key = 'generation'"
                    )
                generation = int(conn.execute("SELECT value FROM metadata WHERE key = 'generation'").fetchone()[0])
                doc_count = conn.execute("SELECT COUNT(*) FROM documents").fetchone()[0]
                conn.execute("COMMIT")
            except sqlite3.Error as exc:
                self._rollback(conn)
                INDEX_WRITES.labels(operation=operation, status="error").inc()
                logger.error("Index %s failed, rolled back: %s", operation, exc)
                raise IndexUnavailableError(f"Index {operation} failed: {exc}") from exc
            except Exception:
                self._rollback(conn)
                INDEX_WRITES.labels(operation=operation, status="error").inc()
                raise
            self._generation = generation
            # Gauge updates follow commit order
            INDEX_DOC_COUNT.labels().set(doc_count)
        INDEX_WRITES.labels(operation=operation, status="ok").inc()
        return generation

    @staticmethod
    def _rollback(conn: sqlite3.Connection) -> None:
        if not conn.in_transaction:
            return
        try:
            conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.warning("Rollback failed", exc_info=True)

    def _delete_document(self, conn: sqlite3.Connection, doc_id: str) -> bool:
        conn.execute("DELETE FROM postings WHERE doc_id = ?", (doc_id,))
        return conn.execute("DELETE FROM documents WHERE doc_id = ?", (doc_id,)).rowcount > 0

    def _write_document(self, conn: sqlite3.Connection, document: AthleteDocument) -> bool:
        conn.execute("DELETE FROM postings WHERE doc_id = ?", (document.id,))
        postings, lengths = self._analyze(document)
        conn.execute(
            "INSERT OR REPLACE INTO documents ("
            "doc_id, name, age_text, age_value, weight_code, location, image, location_icon, photos, "
            "name_length, location_length"
            ") VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                document.id,
                document.name,
                document.age_text,
                document.age_value,
                document.weight_code,
                document.location,
                document.image,
                document.location_icon,
                orjson.dumps(document.photos) if document.photos else None,
                lengths.get("name", 0),
                lengths.get("location", 0),
            ),
        )
        if postings:
            conn.executemany(
                "INSERT INTO postings (field, term, doc_id, tf, doc_length, positions_blob) VALUES (?, ?, ?, ?, ?, ?)",
                postings,
            )
        return True

    def _analyze(self, document: AthleteDocument) -> tuple[list[tuple], dict[str, int]]:
        rows: list[tuple] = []
        lengths: dict[str, int] = {}
        for schema_field in self.schema.term_fields:
            value = getattr(document, self.schema.source_of(schema_field.name), None)
            if value is None or value == "":
                continue
            tokens = self.schema.analyzer_for(schema_field.name)(str(value))
            if not tokens:
                continue
            positions_by_term: dict[str, list[int]] = {}
            for token in tokens:
                positions_by_term.setdefault(token.text, []).append(token.position)
            if isinstance(schema_field, TextField):
                lengths[schema_field.name] = len(tokens)
            for term, positions in positions_by_term.items():
                rows.append(
                    (schema_field.name, term, document.id, len(positions), len(tokens), _encode_positions(positions))
                )
        return rows, lengths

    # Reads

    def open_snapshot(self) -> IndexSnapshot:
        """Open a read view reflecting every commit completed before this call."""
        self._require_open()
        conn = None
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False, isolation_level=None)
            apply_read_pragmas(conn, busy_timeout_ms=self._busy_timeout_ms)
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            raise IndexUnavailableError(f"Failed to open index snapshot: {exc}") from exc
        return IndexSnapshot(conn, self.schema)

    def doc_count(self) -> int:
        with self.open_snapshot() as snapshot:
            return snapshot.doc_count
