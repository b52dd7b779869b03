"""Push-based document store backed by SQLite.

Every collection lives in the ``documents`` table as JSON bodies keyed by
``(collection, doc_id)``. Writers go through :class:`DocumentStore`, which
notifies subscribers of the touched collection with a fresh snapshot after
each committed write. Writes made by other connections or processes bump the
same per-collection version through triggers; :meth:`DocumentStore.refresh`
picks those up and re-delivers stale subscriptions. Counter increments are a
single ``UPDATE`` so concurrent voters never lose updates.
"""

from __future__ import annotations

import json
import logging
import re
import sqlite3
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterator, Mapping, Optional
from uuid import uuid4

from .db import apply_schema, create_connection, execute, query_all, query_one

logger = logging.getLogger(__name__)

_FIELD_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class StoreError(RuntimeError):
    """Base class for document store failures."""


class StoreUnavailable(StoreError):
    """Raised when the store cannot be reached or is misconfigured."""


class NotFound(StoreError):
    """Raised when mutating or deleting a document that does not exist."""


class ValidationError(StoreError):
    """Raised when a write is rejected before it reaches the store."""


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def now_ms() -> int:
    return int(time.time() * 1000)


@dataclass
class Document:
    """A stored record and its store-assigned id."""

    id: str
    data: dict[str, Any]


SnapshotCallback = Callable[[list[Document]], None]
ErrorCallback = Callable[[StoreError], None]


class Subscription:
    """Handle returned by :meth:`DocumentStore.subscribe`."""

    def __init__(
        self,
        store: "DocumentStore",
        collection: str,
        on_next: SnapshotCallback,
        order_by: Optional[str],
        direction: str,
        on_error: Optional[ErrorCallback],
    ) -> None:
        self.store = store
        self.collection = collection
        self.on_next = on_next
        self.order_by = order_by
        self.direction = direction
        self.on_error = on_error
        self.active = True
        self.seen_version: Optional[int] = None

    def cancel(self) -> None:
        """Stop receiving snapshots. Safe to call more than once."""

        if not self.active:
            return
        self.active = False
        self.store._remove_subscription(self)


def _validate_field(name: str) -> str:
    if not _FIELD_PATTERN.match(name or ""):
        raise ValueError(f"Invalid field name '{name}'")
    return name


class DocumentStore:
    """Collection-oriented store with subscriptions and atomic counters."""

    def __init__(self, database_url: str, clock: Callable[[], int] | None = None) -> None:
        self._connection = create_connection(database_url)
        self._clock = clock or now_ms
        self._lock = threading.RLock()
        self._subscriptions: dict[str, list[Subscription]] = {}
        self._closed = False

    @contextmanager
    def _guard(self, operation: str) -> Iterator[sqlite3.Connection]:
        if self._closed:
            raise StoreUnavailable(f"{operation} failed: the document store is closed.")
        try:
            with self._lock:
                yield self._connection
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"{operation} failed: {exc}") from exc

    def _resolve(self, fields: Mapping[str, Any]) -> str:
        stamp = None
        resolved = {}
        for key, value in fields.items():
            if value is SERVER_TIMESTAMP:
                if stamp is None:
                    stamp = self._clock()
                value = stamp
            resolved[key] = value
        return json.dumps(resolved)

    def initialize(self) -> None:
        with self._guard("initialize") as db:
            apply_schema(db)

    def close(self) -> None:
        with self._lock:
            self._subscriptions.clear()
            if not self._closed:
                self._closed = True
                self._connection.close()

    def server_time(self) -> int:
        """Current time according to the store, in epoch milliseconds."""

        return self._clock()

    # Reads

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self._guard("get") as db:
            row = query_one(
                db,
                "SELECT doc_id, data FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
        return Document(row["doc_id"], json.loads(row["data"])) if row else None

    def list(self, collection: str, order_by: str | None = None, direction: str = "asc") -> list[Document]:
        if direction not in {"asc", "desc"}:
            raise ValueError(f"Unsupported sort direction '{direction}'")
        query = "SELECT doc_id, data FROM documents WHERE collection = ?"
        params: list[Any] = [collection]
        if order_by:
            query += f" ORDER BY json_extract(data, ?) {direction.upper()}, seq ASC"
            params.append(f"$.{_validate_field(order_by)}")
        else:
            query += " ORDER BY seq ASC"
        with self._guard("list") as db:
            rows = query_all(db, query, params)
        return [Document(row["doc_id"], json.loads(row["data"])) for row in rows]

    # Writes

    def insert(self, collection: str, record: Mapping[str, Any]) -> str:
        doc_id = uuid4().hex
        with self._guard("insert") as db:
            execute(
                db,
                "INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)",
                (collection, doc_id, self._resolve(record)),
            )
        self._notify(collection)
        return doc_id

    def update(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        with self._guard("update") as db:
            cursor = execute(
                db,
                "UPDATE documents SET data = json_patch(data, ?) WHERE collection = ? AND doc_id = ?",
                (self._resolve(fields), collection, doc_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"{collection}/{doc_id} does not exist.")
        self._notify(collection)

    def delete(self, collection: str, doc_id: str) -> None:
        with self._guard("delete") as db:
            cursor = execute(
                db,
                "DELETE FROM documents WHERE collection = ? AND doc_id = ?",
                (collection, doc_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"{collection}/{doc_id} does not exist.")
        self._notify(collection)

    def increment_field(self, collection: str, doc_id: str, field_name: str, delta: int) -> None:
        """Add ``delta`` to a numeric field in one statement, never going below zero."""

        path = f"$.{_validate_field(field_name)}"
        with self._guard("increment") as db:
            cursor = execute(
                db,
                """
                UPDATE documents
                SET data = json_set(data, ?, MAX(COALESCE(json_extract(data, ?), 0) + ?, 0))
                WHERE collection = ? AND doc_id = ?
                """,
                (path, path, int(delta), collection, doc_id),
            )
            if cursor.rowcount == 0:
                raise NotFound(f"{collection}/{doc_id} does not exist.")
        self._notify(collection)

    def upsert_merge(self, collection: str, doc_id: str, fields: Mapping[str, Any]) -> None:
        with self._guard("upsert") as db:
            execute(
                db,
                """
                INSERT INTO documents (collection, doc_id, data) VALUES (?, ?, ?)
                ON CONFLICT (collection, doc_id)
                DO UPDATE SET data = json_patch(documents.data, excluded.data)
                """,
                (collection, doc_id, self._resolve(fields)),
            )
        self._notify(collection)

    # Subscriptions

    def subscribe(
        self,
        collection: str,
        on_next: SnapshotCallback,
        order_by: str | None = None,
        direction: str = "asc",
        on_error: ErrorCallback | None = None,
    ) -> Subscription:
        """Deliver the current snapshot now and again after every write to ``collection``."""

        subscription = Subscription(self, collection, on_next, order_by, direction, on_error)
        with self._lock:
            self._subscriptions.setdefault(collection, []).append(subscription)
        self._deliver(subscription)
        return subscription

    def _remove_subscription(self, subscription: Subscription) -> None:
        with self._lock:
            listeners = self._subscriptions.get(subscription.collection, [])
            if subscription in listeners:
                listeners.remove(subscription)

    def _version(self, db: sqlite3.Connection, collection: str) -> int:
        row = query_one(db, "SELECT version FROM collection_versions WHERE collection = ?", (collection,))
        return row["version"] if row else 0

    def _deliver(self, subscription: Subscription) -> None:
        if not subscription.active:
            return
        try:
            with self._guard("snapshot") as db:
                version = self._version(db, subscription.collection)
                snapshot = self.list(subscription.collection, subscription.order_by, subscription.direction)
        except StoreUnavailable as exc:
            logger.warning("Snapshot for %s unavailable: %s", subscription.collection, exc)
            if subscription.on_error is not None:
                subscription.on_error(exc)
            return
        subscription.seen_version = version
        subscription.on_next(snapshot)

    def _notify(self, collection: str) -> None:
        with self._lock:
            listeners = list(self._subscriptions.get(collection, []))
        self._deliver_all(collection, listeners)

    def _deliver_all(self, collection: str, listeners: list[Subscription]) -> None:
        for subscription in listeners:
            try:
                self._deliver(subscription)
            except Exception:  # pylint: disable=broad-except
                logger.exception("Subscriber for %s raised while handling a snapshot", collection)

    def refresh(self) -> int:
        """Re-deliver subscriptions whose collection changed behind our back.

        Picks up writes from other connections, such as the CLI or another
        worker process. Returns the number of subscriptions that were re-sent.
        """

        with self._lock:
            watched = {
                collection: list(listeners)
                for collection, listeners in self._subscriptions.items()
                if listeners
            }
        if not watched:
            return 0
        with self._guard("refresh") as db:
            versions = {collection: self._version(db, collection) for collection in watched}
        delivered = 0
        for collection, listeners in watched.items():
            stale = [sub for sub in listeners if sub.seen_version != versions[collection]]
            self._deliver_all(collection, stale)
            delivered += len(stale)
        return delivered
