"""Application factory for Study Sphere."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

import click
from flask import Flask, render_template, request
from flask_login import LoginManager, current_user
from flask_wtf import CSRFProtect
from flask_wtf.csrf import generate_csrf

from .config import BaseConfig, get_config
from .data_access.db import get_store, init_app as init_db_app
from .data_access.requests_dao import RequestMirror
from .data_access.resources_dao import ResourceMirror
from .data_access.store import StoreError
from .feed import SORT_OPTIONS, FeedViewState, build_feed, thumbnail_for
from .models.entities import AdminUser
from .presence import (
    ClientIdentityProvider,
    HeartbeatEmitter,
    JsonFileStorage,
    PresenceEstimator,
    send_heartbeat,
)
from .services.assistant import TranscriptCache
from .services.completion import GeminiCompletionService

csrf = CSRFProtect()
login_manager = LoginManager()
login_manager.login_view = "auth.login"
login_manager.login_message_category = "info"


@login_manager.user_loader
def load_user(user_id: str) -> AdminUser | None:
    """Restore the admin principal from the session."""

    if user_id != AdminUser().get_id():
        return None
    return AdminUser()


def create_app(config_object: type[BaseConfig] | None = None) -> Flask:
    """Create and configure the Flask application instance."""

    app = Flask(
        __name__,
        template_folder=str(Path(__file__).parent / "views"),
    )

    config_cls = config_object or get_config()
    app.config.from_object(config_cls)

    csrf.init_app(app)
    login_manager.init_app(app)
    init_db_app(app)
    init_live_views(app)
    app.extensions["completion_service"] = GeminiCompletionService(
        app.config["GEMINI_API_KEY"],
        app.config["GEMINI_MODEL"],
    )
    app.extensions["assistant_transcripts"] = TranscriptCache(
        max_clients=app.config["ASSISTANT_MAX_CLIENTS"],
        idle_ttl_ms=app.config["ASSISTANT_IDLE_TTL_MS"],
    )

    register_blueprints(app)
    register_error_handlers(app)
    register_cli(app)

    @app.route("/")
    def index() -> str:
        """Render the searchable, sortable resource feed."""

        mirror = app.extensions["resource_mirror"]
        state = FeedViewState.from_args(request.args)
        feed = build_feed(mirror.items, mirror.loaded, state)
        return render_template(
            "index.html",
            feed=feed,
            state=state,
            sort_options=SORT_OPTIONS,
            using_fallback=mirror.using_fallback,
            thumbnail_for=thumbnail_for,
        )

    @app.context_processor
    def inject_globals() -> Dict[str, Any]:
        """Expose common template variables."""

        return {
            "current_user": current_user,
            "current_year": datetime.now(timezone.utc).year,
            "csrf_token": generate_csrf,
            "heartbeat_interval_ms": app.config["HEARTBEAT_INTERVAL_MS"],
        }

    return app


def init_live_views(app: Flask) -> None:
    """Subscribe the app-wide mirrors that pages render from."""

    store = app.extensions["document_store"]
    app.extensions["resource_mirror"] = ResourceMirror(store)
    app.extensions["request_mirror"] = RequestMirror(store)
    app.extensions["presence_estimator"] = PresenceEstimator(
        store,
        active_window_ms=app.config["ACTIVE_WINDOW_MS"],
    )

    @app.before_request
    def sync_live_views() -> None:
        """Pick up writes made by the CLI or by other worker processes."""

        try:
            store.refresh()
        except StoreError as exc:
            app.logger.warning(f"Live views not refreshed: {exc}")


def register_blueprints(app: Flask) -> None:
    """Import and register application blueprints."""

    from .controllers import (  # pylint: disable=import-outside-toplevel
        admin,
        assistant,
        auth,
        presence,
        resource_requests,
        resources,
    )

    app.register_blueprint(auth.bp)
    app.register_blueprint(resources.bp)
    app.register_blueprint(resource_requests.bp)
    app.register_blueprint(presence.bp)
    app.register_blueprint(admin.bp)
    app.register_blueprint(assistant.bp)
    csrf.exempt(presence.bp)


def register_error_handlers(app: Flask) -> None:
    """Register user-friendly error handlers."""

    @app.errorhandler(404)
    def not_found(error: Exception) -> tuple[str, int]:
        return (
            render_template(
                "error.html",
                title="Page Not Found",
                message="We could not locate the page you requested.",
            ),
            404,
        )

    @app.errorhandler(500)
    def server_error(error: Exception) -> tuple[str, int]:
        return (
            render_template(
                "error.html",
                title="Server Error",
                message="An unexpected error occurred. Please try again.",
            ),
            500,
        )


def register_cli(app: Flask) -> None:
    """Attach the terminal heartbeat client."""

    @app.cli.command("heartbeat")
    @click.option(
        "--client-file",
        default=str(Path.home() / ".study_sphere_client.json"),
        show_default=True,
        help="Where this terminal client's identity is kept.",
    )
    def heartbeat_command(client_file: str) -> None:
        """Count this terminal as a live user until interrupted."""

        with app.app_context():
            store = get_store()
        client_id = ClientIdentityProvider(JsonFileStorage(client_file)).get_or_create()
        emitter = HeartbeatEmitter(
            lambda: send_heartbeat(store, client_id),
            interval_ms=app.config["HEARTBEAT_INTERVAL_MS"],
        )
        click.echo(f"Sending heartbeats as {client_id}. Press Ctrl+C to stop.")
        emitter.start()
        try:
            while emitter.running:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("Stopping heartbeats.")
        finally:
            emitter.stop()
