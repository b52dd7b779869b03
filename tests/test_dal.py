"""Data access layer tests."""

from __future__ import annotations

import threading

import pytest

from study_sphere.data_access import requests_dao, resources_dao
from study_sphere.data_access.seed import DEMO_RESOURCES, seed
from study_sphere.data_access.store import (
    SERVER_TIMESTAMP,
    DocumentStore,
    NotFound,
    StoreUnavailable,
    ValidationError,
)


def _create(store, **overrides) -> str:
    fields = {
        "title": "Organic Chemistry Notes",
        "description": "Reaction mechanisms",
        "type": "PDF",
        "url": "https://example.com/chem.pdf",
        "category": "Chemistry",
    }
    fields.update(overrides)
    return resources_dao.create_resource(store, **fields)


def _file_store(tmp_path) -> DocumentStore:
    store = DocumentStore(f"sqlite:///{tmp_path / 'shared.db'}")
    store.initialize()
    return store


def test_store_crud_flow(memory_store):
    doc_id = memory_store.insert("notes", {"title": "Draft", "pages": 2})
    assert memory_store.get("notes", doc_id).data == {"title": "Draft", "pages": 2}

    memory_store.update("notes", doc_id, {"title": "Final"})
    assert memory_store.get("notes", doc_id).data == {"title": "Final", "pages": 2}

    memory_store.delete("notes", doc_id)
    assert memory_store.get("notes", doc_id) is None


def test_missing_documents_raise_not_found(memory_store):
    with pytest.raises(NotFound):
        memory_store.update("notes", "missing", {"title": "x"})
    with pytest.raises(NotFound):
        memory_store.delete("notes", "missing")
    with pytest.raises(NotFound):
        memory_store.increment_field("notes", "missing", "likes", 1)


def test_increment_is_atomic_and_never_negative(memory_store):
    doc_id = memory_store.insert("resources", {"likes": 0})
    memory_store.increment_field("resources", doc_id, "likes", 1)
    memory_store.increment_field("resources", doc_id, "likes", 1)
    memory_store.increment_field("resources", doc_id, "views", 1)
    assert memory_store.get("resources", doc_id).data == {"likes": 2, "views": 1}

    memory_store.increment_field("resources", doc_id, "likes", -5)
    assert memory_store.get("resources", doc_id).data["likes"] == 0


def test_increment_rejects_unsafe_field_names(memory_store):
    doc_id = memory_store.insert("resources", {})
    with pytest.raises(ValueError):
        memory_store.increment_field("resources", doc_id, "likes') --", 1)


def test_upsert_merge_creates_then_merges(memory_store, clock):
    memory_store.upsert_merge("presence", "client", {"lastSeen": SERVER_TIMESTAMP, "agent": "firefox"})
    clock.advance(500)
    memory_store.upsert_merge("presence", "client", {"lastSeen": SERVER_TIMESTAMP})
    assert memory_store.get("presence", "client").data == {"lastSeen": clock.now, "agent": "firefox"}


def test_subscription_pushes_snapshots_until_cancelled(memory_store):
    snapshots = []
    subscription = memory_store.subscribe(
        "requests",
        lambda docs: snapshots.append([doc.data["createdAt"] for doc in docs]),
        order_by="createdAt",
        direction="desc",
    )
    memory_store.insert("requests", {"createdAt": 1})
    memory_store.insert("requests", {"createdAt": 3})
    memory_store.insert("other", {"createdAt": 2})
    assert snapshots == [[], [1], [3, 1]]

    subscription.cancel()
    subscription.cancel()
    memory_store.insert("requests", {"createdAt": 4})
    assert snapshots == [[], [1], [3, 1]]


def test_closed_store_reports_unavailable(memory_store):
    errors = []
    memory_store.close()
    with pytest.raises(StoreUnavailable):
        memory_store.insert("resources", {})
    memory_store.subscribe("resources", lambda docs: None, on_error=errors.append)
    assert len(errors) == 1
    assert isinstance(errors[0], StoreUnavailable)


def test_concurrent_increments_are_not_lost(tmp_path):
    store = _file_store(tmp_path)
    doc_id = store.insert("resources", {"likes": 0})

    def voter():
        for _ in range(50):
            store.increment_field("resources", doc_id, "likes", 1)

    threads = [threading.Thread(target=voter) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert store.get("resources", doc_id).data["likes"] == 400
    store.close()


def test_increments_from_two_connections_accumulate(tmp_path):
    server = _file_store(tmp_path)
    worker = _file_store(tmp_path)
    doc_id = server.insert("resources", {"views": 0})
    for _ in range(25):
        server.increment_field("resources", doc_id, "views", 1)
        worker.increment_field("resources", doc_id, "views", 1)
    assert server.get("resources", doc_id).data["views"] == 50
    server.close()
    worker.close()


def test_refresh_delivers_writes_from_another_store(tmp_path):
    server = _file_store(tmp_path)
    cli = _file_store(tmp_path)
    mirror = resources_dao.ResourceMirror(server)
    assert mirror.using_fallback

    resource_id = _create(cli, title="Seeded")
    assert mirror.using_fallback
    assert server.refresh() == 1
    assert not mirror.using_fallback
    assert [r.title for r in mirror.items] == ["Seeded"]
    assert server.refresh() == 0

    resources_dao.vote(cli, resource_id, "like", True)
    server.refresh()
    assert mirror.items[0].likes == 1

    resources_dao.delete_resource(cli, resource_id)
    server.refresh()
    assert mirror.using_fallback
    assert {r.id for r in mirror.items} == {"1", "2"}

    mirror.close()
    server.close()
    cli.close()


def test_own_writes_are_not_delivered_twice(memory_store):
    snapshots = []
    memory_store.subscribe("notes", snapshots.append)
    memory_store.insert("notes", {"title": "Draft"})
    assert memory_store.refresh() == 0
    assert len(snapshots) == 2


def test_create_resource_zeroes_counters(memory_store):
    resource_id = _create(memory_store)
    resource = resources_dao.get_resource(memory_store, resource_id)
    assert resource.title == "Organic Chemistry Notes"
    assert (resource.likes, resource.dislikes, resource.views) == (0, 0, 0)
    assert resource.is_pinned is False
    assert resource.added_at > 0


@pytest.mark.parametrize(
    "overrides",
    [{"title": "   "}, {"category": ""}, {"url": ""}, {"type": "AUDIO"}],
)
def test_create_resource_validation(memory_store, overrides):
    with pytest.raises(ValidationError):
        _create(memory_store, **overrides)
    assert memory_store.list(resources_dao.RESOURCES_COLLECTION) == []


def test_empty_collection_falls_back_to_sample_data(memory_store):
    mirror = resources_dao.ResourceMirror(memory_store)
    assert mirror.loaded
    assert mirror.using_fallback
    assert [r.id for r in mirror.items] == ["1", "2"]

    _create(memory_store)
    assert not mirror.using_fallback
    assert [r.title for r in mirror.items] == ["Organic Chemistry Notes"]
    mirror.close()


def test_failed_subscription_falls_back_to_sample_data(memory_store):
    memory_store.close()
    mirror = resources_dao.ResourceMirror(memory_store)
    assert mirror.loaded
    assert mirror.using_fallback
    assert isinstance(mirror.last_error, StoreUnavailable)
    assert {r.id for r in mirror.items} == {"1", "2"}


def test_subscription_orders_newest_first(memory_store):
    _create(memory_store, title="Older", added_at=100)
    _create(memory_store, title="Newer", added_at=200)
    received = []
    subscription = resources_dao.subscribe_to_resources(memory_store, received.append)
    assert [r.title for r in received[-1]] == ["Newer", "Older"]
    subscription.cancel()


def test_like_then_unlike_restores_count(memory_store):
    resource_id = _create(memory_store)
    ledger: dict = {}

    assert resources_dao.apply_vote(ledger, memory_store, resource_id, "like") == "like"
    assert resources_dao.get_resource(memory_store, resource_id).likes == 1

    assert resources_dao.apply_vote(ledger, memory_store, resource_id, "like") is None
    assert resources_dao.get_resource(memory_store, resource_id).likes == 0
    assert ledger == {}


def test_switching_vote_moves_the_count(memory_store):
    resource_id = _create(memory_store)
    ledger: dict = {}
    resources_dao.apply_vote(ledger, memory_store, resource_id, "like")
    resources_dao.apply_vote(ledger, memory_store, resource_id, "dislike")
    resource = resources_dao.get_resource(memory_store, resource_id)
    assert (resource.likes, resource.dislikes) == (0, 1)
    assert resources_dao.current_vote(ledger, resource_id) == "dislike"


@pytest.mark.parametrize("resource_id", ["1", "2"])
def test_protected_records_reject_mutation(memory_store, resource_id):
    mirror = resources_dao.ResourceMirror(memory_store)
    before = [(r.id, r.likes, r.views) for r in mirror.items]

    with pytest.raises(ValidationError):
        resources_dao.delete_resource(memory_store, resource_id)
    with pytest.raises(ValidationError):
        resources_dao.vote(memory_store, resource_id, "like", True)
    with pytest.raises(ValidationError):
        resources_dao.increment_view(memory_store, resource_id)
    with pytest.raises(ValidationError):
        resources_dao.toggle_pin(memory_store, resource_id, False)
    with pytest.raises(ValidationError):
        resources_dao.apply_vote({}, memory_store, resource_id, "dislike")

    assert [(r.id, r.likes, r.views) for r in mirror.items] == before
    mirror.close()


def test_toggle_pin_and_delete(memory_store):
    resource_id = _create(memory_store)
    assert resources_dao.toggle_pin(memory_store, resource_id, False) is True
    assert resources_dao.get_resource(memory_store, resource_id).is_pinned is True

    resources_dao.delete_resource(memory_store, resource_id)
    assert resources_dao.get_resource(memory_store, resource_id) is None
    with pytest.raises(NotFound):
        resources_dao.delete_resource(memory_store, resource_id)


def test_request_lifecycle(memory_store):
    received = []
    subscription = requests_dao.subscribe_to_requests(memory_store, received.append)

    request_id = requests_dao.add_request(memory_store, "Thermodynamics", "Second law problems")
    item = requests_dao.get_request(memory_store, request_id)
    assert item.status == "pending"
    assert requests_dao.pending_count(received[-1]) == 1

    assert requests_dao.toggle_request_status(memory_store, request_id, item.status) == "completed"
    assert requests_dao.pending_count(received[-1]) == 0
    assert requests_dao.toggle_request_status(memory_store, request_id, "completed") == "pending"

    requests_dao.delete_request(memory_store, request_id)
    assert received[-1] == []
    subscription.cancel()


def test_request_validation(memory_store):
    with pytest.raises(ValidationError):
        requests_dao.add_request(memory_store, "  ", "details")
    request_id = requests_dao.add_request(memory_store, "Calculus")
    with pytest.raises(ValidationError):
        requests_dao.set_request_status(memory_store, request_id, "archived")


def test_seed_only_fills_an_empty_catalogue(memory_store):
    assert seed(memory_store) == len(DEMO_RESOURCES)
    assert seed(memory_store) == 0
    titles = [r.title for r in resources_dao.list_resources(memory_store)]
    assert titles[0] == DEMO_RESOURCES[0]["title"]
