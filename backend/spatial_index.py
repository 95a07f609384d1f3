"""Safewatch Backend — Spatial Index Adapter

Prefix range queries over geohash fields, plus the handful of document
operations the managers need. Reads are retried a bounded number of times on
StoreUnavailable; writes are not. ``batch_replace`` and ``replace_collection``
land all of their deletes and inserts in one transaction or none of them.
"""

import functools
import logging
import time
from typing import Any, Iterable, Optional

from config import STORE_READ_RETRIES
from errors import StoreUnavailable
from store import DocumentStore, OrderBy

logger = logging.getLogger("safewatch.index")

# Upper bound for a prefix range: [prefix, prefix + U+FFFF)
PREFIX_SENTINEL = "\uffff"


def _retry_reads(func):
    @functools.wraps(func)
    def wrapper(self, *args, **kwargs):
        attempt = 0
        while True:
            try:
                return func(self, *args, **kwargs)
            except StoreUnavailable as e:
                attempt += 1
                if attempt > self.read_retries:
                    raise
                logger.warning(f"{func.__name__} failed (attempt {attempt}/{self.read_retries}), retrying: {e}")
                time.sleep(self.retry_backoff * attempt)
    return wrapper


class SpatialIndex:
    def __init__(self, store: DocumentStore, read_retries: int = STORE_READ_RETRIES,
                 retry_backoff: float = 0.05):
        self.store = store
        self.read_retries = read_retries
        self.retry_backoff = retry_backoff

    def now(self) -> float:
        return self.store.now()

    def server_timestamp(self) -> float:
        return self.store.server_timestamp()

    # ── Reads ──

    @_retry_reads
    def range_by_prefix(self, collection: str, field: str, prefix: str,
                        order_by: Optional[OrderBy] = None,
                        limit: Optional[int] = None) -> list[dict]:
        """Documents whose ``field`` lies in [prefix, prefix + U+FFFF)."""
        where = [(field, ">=", prefix), (field, "<", prefix + PREFIX_SENTINEL)]
        return self.store.read(lambda txn: txn.find(collection, where, order_by, limit))

    @_retry_reads
    def range_query(self, collection: str, field: str, *,
                    gte: Any = None, gt: Any = None, lte: Any = None, lt: Any = None,
                    order_by: Optional[OrderBy] = None,
                    limit: Optional[int] = None) -> list[dict]:
        where = [
            (field, op, value)
            for op, value in ((">=", gte), (">", gt), ("<=", lte), ("<", lt))
            if value is not None
        ]
        return self.store.read(lambda txn: txn.find(collection, where, order_by, limit))

    @_retry_reads
    def exact_query(self, collection: str, field_matches: dict[str, Any],
                    order_by: Optional[OrderBy] = None,
                    limit: Optional[int] = None) -> list[dict]:
        where = [(field, "==", value) for field, value in field_matches.items()]
        return self.store.read(lambda txn: txn.find(collection, where, order_by, limit))

    @_retry_reads
    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        return self.store.read(lambda txn: txn.get(collection, doc_id))

    @_retry_reads
    def all(self, collection: str) -> list[dict]:
        return self.store.read(lambda txn: txn.find(collection))

    # ── Writes ──

    def insert(self, collection: str, doc: dict) -> str:
        with self.store.transaction() as txn:
            return txn.insert(collection, doc)

    def update(self, collection: str, doc_id: str, fields: dict) -> bool:
        with self.store.transaction() as txn:
            return txn.update(collection, doc_id, fields)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self.store.transaction() as txn:
            return txn.delete(collection, doc_id)

    def batch_replace(self, collection: str, deletes: Iterable[str],
                      inserts: Iterable[dict]) -> list[str]:
        """Delete ``deletes`` and insert ``inserts`` as one atomic unit.

        Returns the ids assigned to the inserted documents.
        """
        with self.store.transaction() as txn:
            for doc_id in deletes:
                txn.delete(collection, doc_id)
            return [txn.insert(collection, doc) for doc in inserts]

    def replace_collection(self, collection: str, inserts: Iterable[dict]) -> tuple[int, list[str]]:
        """Swap the whole collection for ``inserts`` in one transaction.

        The current documents are read under the write lock, so a concurrent
        replace (another process on the same file) either lands entirely
        before this one or entirely after it. Returns (deleted, new ids).
        """
        with self.store.transaction() as txn:
            previous = txn.find(collection)
            for doc in previous:
                txn.delete(collection, doc["id"])
            return len(previous), [txn.insert(collection, doc) for doc in inserts]

    def transaction(self):
        """Raw transaction for read-modify-write sequences."""
        return self.store.transaction()
