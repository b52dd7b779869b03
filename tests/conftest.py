"""Shared pytest fixtures."""

from __future__ import annotations

from pathlib import Path
import sys
from typing import Generator

import pytest
from flask import Flask

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from study_sphere.app import create_app
from study_sphere.config import TestingConfig
from study_sphere.data_access.db import close_store
from study_sphere.data_access.store import DocumentStore

ADMIN_PASSKEY = "test-passkey"


class _TestConfig(TestingConfig):
    DATABASE_URL: str = ""


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class FakeCompletionService:
    """Stands in for the Gemini client in route tests."""

    def __init__(self, reply: str = "Here is a summary.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[tuple] = []

    def complete(self, system_prompt, history, new_message):
        from study_sphere.services.completion import ServiceUnavailable

        self.calls.append(("complete", system_prompt, list(history), new_message))
        if self.fail:
            raise ServiceUnavailable("offline")
        return self.reply

    def analyze_image(self, base64_bytes, mime_type, prompt=None):
        from study_sphere.services.completion import ServiceUnavailable

        self.calls.append(("analyze_image", base64_bytes, mime_type, prompt))
        if self.fail:
            raise ServiceUnavailable("offline")
        return self.reply


@pytest.fixture()
def app(tmp_path: Path) -> Generator[Flask, None, None]:
    """Configure a Flask application for testing with a temp SQLite database."""

    db_path = tmp_path / "test.db"
    _TestConfig.DATABASE_URL = f"sqlite:///{db_path}"
    application = create_app(_TestConfig)
    application.extensions["completion_service"] = FakeCompletionService()
    yield application
    close_store(application)


@pytest.fixture()
def client(app: Flask):
    """Flask test client."""

    return app.test_client()


@pytest.fixture()
def runner(app: Flask):
    """Flask CLI runner."""

    return app.test_cli_runner()


@pytest.fixture()
def store(app: Flask) -> DocumentStore:
    """The app's document store."""

    return app.extensions["document_store"]


@pytest.fixture()
def admin_client(client):
    """Test client already signed in to the admin console."""

    client.post("/auth/login", data={"passkey": ADMIN_PASSKEY}, follow_redirects=True)
    return client


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def memory_store(clock: FakeClock) -> Generator[DocumentStore, None, None]:
    """Standalone in-memory store whose server time is ``clock``."""

    document_store = DocumentStore("sqlite:///:memory:", clock=clock)
    document_store.initialize()
    yield document_store
    document_store.close()
