"""Assistant transcript storage tests."""

from __future__ import annotations

import pytest

from study_sphere.models.entities import ChatMessage
from study_sphere.services.assistant import (
    WELCOME_ID,
    TranscriptCache,
    load_transcript,
    save_transcript,
    to_history,
)


def test_least_recently_used_browser_is_evicted(clock):
    cache = TranscriptCache(max_clients=2, idle_ttl_ms=60_000, clock=clock)
    first = cache.storage_for("a")
    first["marker"] = True
    cache.storage_for("b")
    cache.storage_for("a")
    cache.storage_for("c")

    assert "b" not in cache
    assert len(cache) == 2
    assert cache.storage_for("a") is first


def test_idle_transcripts_expire(clock):
    cache = TranscriptCache(max_clients=10, idle_ttl_ms=60_000, clock=clock)
    stale = cache.storage_for("a")
    stale["marker"] = True
    clock.advance(30_000)
    cache.storage_for("b")
    clock.advance(30_000)

    cache.storage_for("b")
    assert "a" not in cache
    assert "b" in cache
    assert cache.storage_for("a") == {}


def test_discard_drops_one_browser(clock):
    cache = TranscriptCache(clock=clock)
    cache.storage_for("a")
    cache.storage_for("b")
    cache.discard("a")
    cache.discard("missing")
    assert "a" not in cache
    assert len(cache) == 1


def test_transcript_round_trip_keeps_greeting_out_of_history(clock):
    storage: dict = {}
    transcript = load_transcript(storage)
    assert [message.id for message in transcript] == [WELCOME_ID]

    transcript.append(ChatMessage(id="q1", role="user", text="What is a limit?", timestamp=clock()))
    save_transcript(storage, transcript)
    restored = load_transcript(storage)
    assert to_history(restored) == [{"role": "user", "text": "What is a limit?"}]


def test_transcript_rejects_unknown_roles():
    with pytest.raises(ValueError):
        ChatMessage.from_dict({"id": "1", "role": "system", "text": "hi", "timestamp": 0})
