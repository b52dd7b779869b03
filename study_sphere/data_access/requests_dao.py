"""Data access helpers for student resource requests."""

from __future__ import annotations

from typing import Callable, Iterable

from ..models.entities import REQUEST_STATUSES, ResourceRequest
from .store import DocumentStore, StoreError, ValidationError, now_ms

REQUESTS_COLLECTION = "requests"


def add_request(store: DocumentStore, title: str, details: str = "") -> str:
    """Record a new pending request and return its id."""

    title = (title or "").strip()
    if not title:
        raise ValidationError("Please tell us which subject or topic you need.")
    return store.insert(
        REQUESTS_COLLECTION,
        {
            "title": title,
            "details": (details or "").strip(),
            "status": "pending",
            "createdAt": now_ms(),
        },
    )


def subscribe_to_requests(
    store: DocumentStore,
    callback: Callable[[list[ResourceRequest]], None],
    on_error: Callable[[StoreError], None] | None = None,
):
    """Stream requests newest first."""

    def _on_next(documents) -> None:
        callback([ResourceRequest.from_document(doc.id, doc.data) for doc in documents])

    return store.subscribe(REQUESTS_COLLECTION, _on_next, order_by="createdAt", direction="desc", on_error=on_error)


def get_request(store: DocumentStore, request_id: str) -> ResourceRequest | None:
    document = store.get(REQUESTS_COLLECTION, request_id)
    return ResourceRequest.from_document(document.id, document.data) if document else None


def set_request_status(store: DocumentStore, request_id: str, status: str) -> None:
    if status not in REQUEST_STATUSES:
        raise ValidationError(f"Unsupported request status '{status}'.")
    store.update(REQUESTS_COLLECTION, request_id, {"status": status})


def toggle_request_status(store: DocumentStore, request_id: str, current_status: str) -> str:
    """Flip pending/completed and return the new status."""

    new_status = "completed" if current_status == "pending" else "pending"
    set_request_status(store, request_id, new_status)
    return new_status


def delete_request(store: DocumentStore, request_id: str) -> None:
    store.delete(REQUESTS_COLLECTION, request_id)


def pending_count(requests: Iterable[ResourceRequest]) -> int:
    return sum(1 for request in requests if request.is_pending)


class RequestMirror:
    """Local copy of the request queue for the admin dashboard."""

    def __init__(self, store: DocumentStore) -> None:
        self.items: list[ResourceRequest] = []
        self.loaded = False
        self._subscription = subscribe_to_requests(store, self._on_requests)

    def _on_requests(self, requests: list[ResourceRequest]) -> None:
        self.items = requests
        self.loaded = True

    def close(self) -> None:
        self._subscription.cancel()
