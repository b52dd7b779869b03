"""Live user count: heartbeats in, an approximate active-client count out.

Each client upserts its own presence document with a server-assigned
``lastSeen`` once a minute. Every client reads the whole presence collection
and counts the records seen within the active window. Old client ids are never
cleaned up, so the count scans every client ever seen; that is acceptable for
small deployments.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional
from uuid import uuid4

from .data_access.store import SERVER_TIMESTAMP, DocumentStore, StoreError
from .models.entities import PresenceRecord

logger = logging.getLogger(__name__)

PRESENCE_COLLECTION = "presence"
ACTIVE_WINDOW_MS = 120_000
HEARTBEAT_INTERVAL_MS = 60_000
CLIENT_ID_KEY = "study_sphere_client_id"


def count_active(records: Iterable[PresenceRecord], now: int, active_window_ms: int = ACTIVE_WINDOW_MS) -> int:
    """Count records whose last heartbeat falls inside the active window."""

    active = 0
    for record in records:
        if record.last_seen is None:
            continue
        if now - record.last_seen < active_window_ms:
            active += 1
    return active


class PresenceEstimator:
    """Counts active clients in the latest presence snapshot.

    ``active_count`` is recounted against the store clock on every read, so
    clients drop out of the window even when no new heartbeat arrives.
    """

    def __init__(
        self,
        store: DocumentStore,
        clock: Callable[[], int] | None = None,
        active_window_ms: int = ACTIVE_WINDOW_MS,
        on_count: Callable[[int], None] | None = None,
    ) -> None:
        self.loaded = False
        self._records: list[PresenceRecord] = []
        self._clock = clock or store.server_time
        self._active_window_ms = active_window_ms
        self._on_count = on_count
        self._subscription = store.subscribe(PRESENCE_COLLECTION, self._on_snapshot, on_error=self._on_error)

    @property
    def active_count(self) -> int:
        return count_active(self._records, self._clock(), self._active_window_ms)

    def _on_snapshot(self, documents) -> None:
        self._records = [PresenceRecord.from_document(doc.id, doc.data) for doc in documents]
        self.loaded = True
        if self._on_count is not None:
            self._on_count(self.active_count)

    def _on_error(self, exc: StoreError) -> None:
        # Keep counting from the last good snapshot.
        logger.warning("Presence snapshot failed, keeping count %s: %s", self.active_count, exc)

    def close(self) -> None:
        self._subscription.cancel()


def send_heartbeat(store: DocumentStore, client_id: str) -> bool:
    """Upsert this client's presence record. Never raises on store failure."""

    try:
        store.upsert_merge(PRESENCE_COLLECTION, client_id, {"lastSeen": SERVER_TIMESTAMP})
    except StoreError as exc:
        logger.debug("Heartbeat for %s not recorded: %s", client_id, exc)
        return False
    return True


class HeartbeatEmitter:
    """Calls ``beat`` on start and then every ``interval_ms`` until stopped."""

    def __init__(
        self,
        beat: Callable[[], Any],
        interval_ms: int = HEARTBEAT_INTERVAL_MS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self._beat = beat
        self._interval = interval_ms / 1000
        self._timer_factory = timer_factory
        self._timer = None
        self._running = False
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
        self._tick()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _tick(self) -> None:
        if not self._running:
            return
        try:
            self._beat()
        except Exception:  # pylint: disable=broad-except
            logger.warning("Heartbeat failed; retrying on the next interval", exc_info=True)
        self._schedule()

    def _schedule(self) -> None:
        with self._lock:
            if not self._running:
                return
            timer = self._timer_factory(self._interval, self._tick)
            timer.daemon = True
            self._timer = timer
            timer.start()


class ClientIdentityProvider:
    """Stable anonymous client token kept in any mutable key/value storage."""

    def __init__(self, storage: MutableMapping, key: str = CLIENT_ID_KEY) -> None:
        self._storage = storage
        self._key = key

    def get_or_create(self) -> str:
        client_id = self._storage.get(self._key)
        if not client_id:
            client_id = uuid4().hex
            self._storage[self._key] = client_id
        return client_id


class JsonFileStorage(MutableMapping):
    """Tiny key/value file used to keep a terminal client's identity across runs."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def _load(self) -> dict:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as handle:
            return json.load(handle)

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("w", encoding="utf-8") as handle:
            json.dump(data, handle)

    def __getitem__(self, key: str) -> Any:
        return self._load()[key]

    def __setitem__(self, key: str, value: Any) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def __delitem__(self, key: str) -> None:
        data = self._load()
        del data[key]
        self._save(data)

    def __iter__(self) -> Iterator[str]:
        return iter(self._load())

    def __len__(self) -> int:
        return len(self._load())


def live_count(estimator: Optional[PresenceEstimator]) -> int:
    return estimator.active_count if estimator is not None else 0
