"""Heartbeat and live-count endpoints polled by the browser."""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, session

from ..data_access.db import get_store
from ..presence import ClientIdentityProvider, live_count, send_heartbeat

bp = Blueprint("presence", __name__, url_prefix="/presence")


@bp.route("/heartbeat", methods=["POST"])
def heartbeat():
    """Mark this browser as present. Failures are reported, never raised."""

    session.permanent = True
    client_id = ClientIdentityProvider(session).get_or_create()
    recorded = send_heartbeat(get_store(), client_id)
    return jsonify({"recorded": recorded})


@bp.route("/count")
def count():
    """Current number of active clients."""

    estimator = current_app.extensions.get("presence_estimator")
    return jsonify({"active": live_count(estimator)})
