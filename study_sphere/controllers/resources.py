"""Resource viewer and voting routes."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, session, url_for

from ..data_access import resources_dao
from ..data_access.db import get_store
from ..data_access.store import NotFound, StoreError, StoreUnavailable, ValidationError
from ..feed import embed_url

bp = Blueprint("resources", __name__, url_prefix="/resources", template_folder="../views")


def _back_to_feed():
    return redirect(request.referrer or url_for("index"))


@bp.route("/<resource_id>")
def detail(resource_id: str):
    """Show the embedded viewer and count the view."""

    store = get_store()
    try:
        resource = resources_dao.get_resource(store, resource_id)
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Could not load resource {resource_id}: {exc}")
        flash("The catalogue is unreachable right now. Please try again.", "danger")
        return redirect(url_for("index"))
    if not resource:
        abort(404)

    try:
        resources_dao.increment_view(store, resource_id)
    except StoreError as exc:
        # View counts are best effort; sample records never count.
        current_app.logger.debug(f"View for {resource_id} not counted: {exc}")

    return render_template(
        "resource_detail.html",
        resource=resource,
        embed_url=embed_url(resource.url, resource.type),
        user_vote=resources_dao.current_vote(session, resource_id),
    )


@bp.route("/<resource_id>/vote/<kind>", methods=["POST"])
def vote(resource_id: str, kind: str):
    """Toggle this browser's like or dislike."""

    if kind not in resources_dao.VOTE_FIELDS:
        abort(404)
    try:
        resources_dao.apply_vote(session, get_store(), resource_id, kind)
    except ValidationError as exc:
        flash(str(exc), "warning")
    except NotFound:
        flash("That resource no longer exists.", "warning")
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Vote on {resource_id} failed: {exc}")
        flash("Could not record your vote. Please try again.", "danger")
    return _back_to_feed()
