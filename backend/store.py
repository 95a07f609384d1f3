"""Safewatch Backend — sqlite-backed document store

Every collection lives in one ``documents`` table as JSON rows keyed by
(collection, id). Queries address fields by dotted path ("location.geohash")
through json_extract; the hot paths have matching expression indexes.

Connections are opened per operation, so the store is safe to share between
the request threadpool and the scheduler thread. Writes go through
``transaction()``, which takes the sqlite write lock up front (BEGIN IMMEDIATE)
and either commits everything or nothing.
"""

import json
import logging
import re
import sqlite3
import threading
import time
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from config import DB_PATH, STORE_TIMEOUT_SECONDS, VOTES
from errors import InvalidInput, StoreUnavailable

logger = logging.getLogger("safewatch.store")

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$")
_OPS = {"==": "=", "<": "<", "<=": "<=", ">": ">", ">=": ">="}

_SCHEMA = f"""
    CREATE TABLE IF NOT EXISTS documents (
        collection  TEXT NOT NULL,
        id          TEXT NOT NULL,
        data        TEXT NOT NULL,
        PRIMARY KEY (collection, id)
    );

    CREATE INDEX IF NOT EXISTS idx_documents_geohash
        ON documents(collection, json_extract(data, '$.location.geohash'));
    CREATE INDEX IF NOT EXISTS idx_documents_cell
        ON documents(collection, json_extract(data, '$.geohash'));
    CREATE INDEX IF NOT EXISTS idx_documents_report
        ON documents(collection, json_extract(data, '$.reportId'));
    CREATE INDEX IF NOT EXISTS idx_documents_expires
        ON documents(collection, json_extract(data, '$.expiresAt'));
    CREATE INDEX IF NOT EXISTS idx_documents_created
        ON documents(collection, json_extract(data, '$.createdAt'));

    -- one vote per (report, voter)
    CREATE UNIQUE INDEX IF NOT EXISTS uq_votes_report_voter
        ON documents(json_extract(data, '$.reportId'), json_extract(data, '$.voterId'))
        WHERE collection = '{VOTES}';
"""

Where = list[tuple[str, str, Any]]
OrderBy = list[tuple[str, bool]]


def _field_expr(field: str) -> str:
    if not _FIELD_RE.match(field):
        raise InvalidInput(f"invalid field path {field!r}")
    return f"json_extract(data, '$.{field}')"


def _load(doc_id: str, raw: str) -> dict:
    doc = json.loads(raw)
    doc["id"] = doc_id
    return doc


def _dump(doc: dict) -> str:
    return json.dumps({k: v for k, v in doc.items() if k != "id"}, ensure_ascii=False)


class Transaction:
    """Document operations bound to one open connection."""

    def __init__(self, conn: sqlite3.Connection):
        self._conn = conn

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        row = self._conn.execute(
            "SELECT data FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        ).fetchone()
        return _load(doc_id, row[0]) if row else None

    def insert(self, collection: str, doc: dict) -> str:
        doc_id = uuid.uuid4().hex
        self._conn.execute(
            "INSERT INTO documents (collection, id, data) VALUES (?, ?, ?)",
            (collection, doc_id, _dump(doc)),
        )
        return doc_id

    def put(self, collection: str, doc_id: str, doc: dict):
        self._conn.execute(
            "INSERT OR REPLACE INTO documents (collection, id, data) VALUES (?, ?, ?)",
            (collection, doc_id, _dump(doc)),
        )

    def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        current = self.get(collection, doc_id)
        if current is None:
            return False
        current.update(fields)
        self._conn.execute(
            "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
            (_dump(current), collection, doc_id),
        )
        return True

    def delete(self, collection: str, doc_id: str) -> bool:
        cur = self._conn.execute(
            "DELETE FROM documents WHERE collection = ? AND id = ?",
            (collection, doc_id),
        )
        return cur.rowcount > 0

    def find(
        self,
        collection: str,
        where: Optional[Where] = None,
        order_by: Optional[OrderBy] = None,
        limit: Optional[int] = None,
    ) -> list[dict]:
        clauses = ["collection = ?"]
        params: list[Any] = [collection]
        for field, op, value in where or []:
            if op not in _OPS:
                raise InvalidInput(f"unsupported operator {op!r}")
            expr = _field_expr(field)
            if value is None and op == "==":
                clauses.append(f"{expr} IS NULL")
                continue
            clauses.append(f"{expr} {_OPS[op]} ?")
            params.append(value)

        sql = f"SELECT id, data FROM documents WHERE {' AND '.join(clauses)}"
        if order_by:
            terms = [f"{_field_expr(f)} {'DESC' if desc else 'ASC'}" for f, desc in order_by]
            sql += " ORDER BY " + ", ".join(terms)
        if limit is not None:
            sql += " LIMIT ?"
            params.append(int(limit))

        rows = self._conn.execute(sql, params).fetchall()
        return [_load(doc_id, raw) for doc_id, raw in rows]

    def collection_counts(self) -> dict[str, int]:
        rows = self._conn.execute(
            "SELECT collection, COUNT(*) FROM documents GROUP BY collection"
        ).fetchall()
        return {name: int(n) for name, n in rows}


class DocumentStore:
    """JSON document store on a single sqlite file."""

    def __init__(
        self,
        db_path: str = DB_PATH,
        timeout: float = STORE_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.db_path = str(db_path)
        self._timeout = timeout
        self._clock = clock
        self._ts_lock = threading.Lock()
        self._last_ts = 0.0
        self._init_db()

    def _init_db(self):
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._connect()
        try:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StoreUnavailable(f"schema setup failed: {e}") from e
        finally:
            conn.close()
        logger.info(f"Document store ready at {self.db_path}")

    def _connect(self) -> sqlite3.Connection:
        try:
            # isolation_level=None: no implicit transactions, we issue BEGIN ourselves
            conn = sqlite3.connect(self.db_path, timeout=self._timeout, isolation_level=None)
            conn.execute("PRAGMA synchronous=NORMAL")
        except sqlite3.Error as e:
            raise StoreUnavailable(f"cannot open {self.db_path}: {e}") from e
        return conn

    # ── Clock ──

    def now(self) -> float:
        return float(self._clock())

    def server_timestamp(self) -> float:
        """Store-assigned timestamp, strictly increasing for this store."""
        with self._ts_lock:
            ts = float(self._clock())
            if ts <= self._last_ts:
                ts = self._last_ts + 1e-6
            self._last_ts = ts
            return ts

    # ── Access ──

    def read(self, fn: Callable[[Transaction], Any]) -> Any:
        """Run a read-only callable in autocommit mode."""
        conn = self._connect()
        try:
            return fn(Transaction(conn))
        except sqlite3.Error as e:
            raise StoreUnavailable(f"read failed: {e}") from e
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield Transaction(conn)
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            _rollback(conn)
            raise StoreUnavailable(f"transaction aborted: {e}") from e
        except BaseException:
            _rollback(conn)
            raise
        finally:
            conn.close()

    def stats(self) -> dict[str, int]:
        return self.read(lambda txn: txn.collection_counts())


def _rollback(conn: sqlite3.Connection):
    try:
        if conn.in_transaction:
            conn.execute("ROLLBACK")
    except sqlite3.Error as e:
        logger.warning(f"Rollback failed: {e}")
