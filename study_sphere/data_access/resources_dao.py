"""Data access helpers for catalogue resources."""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Callable, Optional

from ..models.entities import RESOURCE_TYPES, Resource
from .store import DocumentStore, StoreError, ValidationError, now_ms

RESOURCES_COLLECTION = "resources"
PROTECTED_IDS = frozenset({"1", "2"})
VOTE_FIELDS = {"like": "likes", "dislike": "dislikes"}


def _initial_data() -> list[Resource]:
    added_at = now_ms()
    return [
        Resource(
            id="1",
            title="Calculus Cheat Sheet",
            description="A comprehensive quick reference guide for limits, derivatives, and integrals.",
            type="PDF",
            url="https://pdfobject.com/pdf/sample.pdf",
            category="Mathematics",
            added_at=added_at,
            likes=12,
            dislikes=1,
            views=120,
            is_pinned=True,
        ),
        Resource(
            id="2",
            title="The French Revolution Explained",
            description="Deep dive into the causes and effects of the revolution.",
            type="VIDEO",
            url="https://www.youtube.com/watch?v=VEZqarUnVpo",
            category="History",
            added_at=added_at - 100000,
            likes=45,
            dislikes=2,
            views=340,
        ),
    ]


def _ensure_mutable(resource_id: str, action: str) -> None:
    if resource_id in PROTECTED_IDS:
        raise ValidationError(f"Cannot {action} sample data.")


def subscribe_to_resources(
    store: DocumentStore,
    callback: Callable[[list[Resource]], None],
    on_fallback: Optional[Callable[[StoreError | None], None]] = None,
):
    """Stream resources newest first, falling back to the sample catalogue.

    The fallback is used both for an empty collection and for a failed
    snapshot, so the feed never renders empty and broken on first load.
    """

    def _on_next(documents) -> None:
        resources = [Resource.from_document(doc.id, doc.data) for doc in documents]
        if not resources:
            if on_fallback is not None:
                on_fallback(None)
            callback(_initial_data())
            return
        callback(resources)

    def _on_error(exc: StoreError) -> None:
        if on_fallback is not None:
            on_fallback(exc)
        callback(_initial_data())

    return store.subscribe(RESOURCES_COLLECTION, _on_next, order_by="addedAt", direction="desc", on_error=_on_error)


def list_resources(store: DocumentStore) -> list[Resource]:
    """Return stored resources newest first, without the sample fallback."""

    documents = store.list(RESOURCES_COLLECTION, order_by="addedAt", direction="desc")
    return [Resource.from_document(doc.id, doc.data) for doc in documents]


def get_resource(store: DocumentStore, resource_id: str) -> Resource | None:
    """Fetch one resource, including the sample records."""

    if resource_id in PROTECTED_IDS:
        return next(resource for resource in _initial_data() if resource.id == resource_id)
    document = store.get(RESOURCES_COLLECTION, resource_id)
    return Resource.from_document(document.id, document.data) if document else None


def create_resource(
    store: DocumentStore,
    title: str,
    description: str,
    type: str,  # pylint: disable=redefined-builtin
    url: str,
    category: str,
    thumbnail_url: Optional[str] = None,
    added_at: Optional[int] = None,
) -> str:
    """Insert a new resource with zeroed counters and return its id."""

    title = (title or "").strip()
    category = (category or "").strip()
    url = (url or "").strip()
    if not title:
        raise ValidationError("Title is required.")
    if not category:
        raise ValidationError("Category is required.")
    if not url:
        raise ValidationError("A content link is required.")
    if type not in RESOURCE_TYPES:
        raise ValidationError(f"Unsupported resource type '{type}'.")

    resource = Resource(
        id="",
        title=title,
        description=(description or "").strip(),
        type=type,
        url=url,
        category=category,
        added_at=added_at if added_at is not None else now_ms(),
        thumbnail_url=(thumbnail_url or "").strip() or None,
    )
    return store.insert(RESOURCES_COLLECTION, resource.to_document())


def delete_resource(store: DocumentStore, resource_id: str) -> None:
    """Remove a resource. Sample records cannot be deleted."""

    _ensure_mutable(resource_id, "delete")
    store.delete(RESOURCES_COLLECTION, resource_id)


def toggle_pin(store: DocumentStore, resource_id: str, current_status: bool) -> bool:
    """Flip the featured flag (last writer wins) and return the new value."""

    _ensure_mutable(resource_id, "pin")
    new_status = not current_status
    store.update(RESOURCES_COLLECTION, resource_id, {"isPinned": new_status})
    return new_status


def vote(store: DocumentStore, resource_id: str, kind: str, increment: bool) -> None:
    """Atomically add or remove one like/dislike."""

    if kind not in VOTE_FIELDS:
        raise ValidationError(f"Unsupported vote '{kind}'.")
    _ensure_mutable(resource_id, "vote on")
    store.increment_field(RESOURCES_COLLECTION, resource_id, VOTE_FIELDS[kind], 1 if increment else -1)


def increment_view(store: DocumentStore, resource_id: str) -> None:
    _ensure_mutable(resource_id, "count views on")
    store.increment_field(RESOURCES_COLLECTION, resource_id, "views", 1)


def vote_key(resource_id: str) -> str:
    return f"vote_{resource_id}"


def current_vote(ledger: MutableMapping, resource_id: str) -> Optional[str]:
    stored = ledger.get(vote_key(resource_id))
    return stored if stored in VOTE_FIELDS else None


def apply_vote(ledger: MutableMapping, store: DocumentStore, resource_id: str, kind: str) -> Optional[str]:
    """Toggle this client's vote and return the vote now recorded, if any.

    Repeating the same vote withdraws it; switching withdraws the old vote
    before adding the new one. The ledger is only updated once the store
    accepted the writes.
    """

    if kind not in VOTE_FIELDS:
        raise ValidationError(f"Unsupported vote '{kind}'.")
    _ensure_mutable(resource_id, "vote on")
    previous = current_vote(ledger, resource_id)
    if previous == kind:
        vote(store, resource_id, kind, increment=False)
        ledger.pop(vote_key(resource_id), None)
        return None
    if previous:
        vote(store, resource_id, previous, increment=False)
    vote(store, resource_id, kind, increment=True)
    ledger[vote_key(resource_id)] = kind
    return kind


class ResourceMirror:
    """Local read-through copy of the resource collection.

    ``loaded`` stays False until the first snapshot (or fallback) arrives, so
    callers can tell "still loading" apart from "nothing matched".
    """

    def __init__(self, store: DocumentStore) -> None:
        self.items: list[Resource] = []
        self.loaded = False
        self.using_fallback = False
        self.last_error: StoreError | None = None
        self._pending_fallback = False
        self._pending_error: StoreError | None = None
        self._subscription = subscribe_to_resources(store, self._on_resources, on_fallback=self._on_fallback)

    def _on_fallback(self, exc: StoreError | None) -> None:
        self._pending_fallback = True
        self._pending_error = exc

    def _on_resources(self, resources: list[Resource]) -> None:
        self.using_fallback, self.last_error = self._pending_fallback, self._pending_error
        self._pending_fallback, self._pending_error = False, None
        self.items = resources
        self.loaded = True

    def close(self) -> None:
        self._subscription.cancel()
