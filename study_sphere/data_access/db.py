"""SQLite connection management utilities."""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Sequence

import click
from flask import Flask, current_app

SCHEMA_PATH = Path(__file__).resolve().parents[1] / "schema.sql"


def create_connection(database_url: str) -> sqlite3.Connection:
    """Instantiate a SQLite connection for the provided URL."""

    if database_url == "sqlite:///:memory:":
        db_path = ":memory:"
    elif database_url.startswith("sqlite:///"):
        db_path = database_url.replace("sqlite:///", "", 1)
    elif database_url.startswith("sqlite://"):
        db_path = database_url.replace("sqlite://", "", 1)
    else:
        raise ValueError("Only sqlite database URLs are supported in this implementation.")

    connection = sqlite3.connect(db_path, check_same_thread=False)
    connection.row_factory = sqlite3.Row
    return connection


def execute(db: sqlite3.Connection, query: str, params: Sequence[Any] | None = None) -> sqlite3.Cursor:
    """Execute a write query and commit immediately."""

    cursor = db.execute(query, params or [])
    db.commit()
    return cursor


def query_all(db: sqlite3.Connection, query: str, params: Sequence[Any] | None = None) -> list[sqlite3.Row]:
    """Execute a read query returning multiple rows."""

    cursor = db.execute(query, params or [])
    return cursor.fetchall()


def query_one(db: sqlite3.Connection, query: str, params: Sequence[Any] | None = None) -> sqlite3.Row | None:
    """Execute a read query returning a single row."""

    cursor = db.execute(query, params or [])
    return cursor.fetchone()


def apply_schema(db: sqlite3.Connection) -> None:
    """Create the documents table if it does not exist yet."""

    with SCHEMA_PATH.open("r", encoding="utf-8") as sql_file:
        db.executescript(sql_file.read())
    db.commit()


def get_store():
    """Return the application-wide document store."""

    return current_app.extensions["document_store"]


def init_db(app: Flask | None = None) -> None:
    """Initialize the database schema by executing the SQL script."""

    app = app or current_app
    with app.app_context():
        get_store().initialize()


def close_store(app: Flask) -> None:
    """Cancel app-level subscriptions and close the store connection."""

    for key in ("resource_mirror", "request_mirror", "presence_estimator"):
        mirror = app.extensions.pop(key, None)
        if mirror is not None:
            mirror.close()
    store = app.extensions.pop("document_store", None)
    if store is not None:
        store.close()


def init_app(app: Flask) -> None:
    """Create the document store and wire its CLI commands into the Flask app."""

    from .store import DocumentStore  # pylint: disable=import-outside-toplevel

    store = DocumentStore(app.config["DATABASE_URL"])
    store.initialize()
    app.extensions["document_store"] = store

    @app.cli.command("init-db")
    def init_db_command() -> None:
        """Create the documents table."""

        init_db(app)
        click.echo("Initialized the database.")

    @app.cli.command("seed")
    def seed_command() -> None:
        """Insert the demo catalogue."""

        from .seed import seed  # pylint: disable=import-outside-toplevel

        inserted = seed(store)
        click.echo(f"Seeded {inserted} resources.")
