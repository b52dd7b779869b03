"""Admin console: curation, request queue and live analytics."""

from __future__ import annotations

from flask import Blueprint, abort, current_app, flash, redirect, render_template, url_for
from flask_wtf import FlaskForm
from wtforms import SelectField, StringField, SubmitField, TextAreaField
from wtforms.validators import URL, InputRequired, Length, Optional

from ..data_access import requests_dao, resources_dao
from ..data_access.db import get_store
from ..data_access.store import NotFound, StoreUnavailable, ValidationError
from ..feed import feed_stats
from ..presence import live_count
from .auth import admin_required

bp = Blueprint("admin", __name__, url_prefix="/admin", template_folder="../views")


class ResourceForm(FlaskForm):
    """Form for adding a catalogue resource."""

    title = StringField("Title", validators=[InputRequired(), Length(max=150)])
    description = TextAreaField("Description", validators=[Length(max=2000)])
    type = SelectField("Type", choices=[("PDF", "PDF"), ("VIDEO", "Video")], default="PDF")
    url = StringField("Content Link", validators=[InputRequired(), URL()])
    thumbnail_url = StringField("Cover Image Link", validators=[Optional(), URL()])
    category = StringField("Category", validators=[InputRequired(), Length(max=80)])
    submit = SubmitField("Add resource")


@bp.route("/")
@admin_required
def dashboard():
    """Render resources, requests and usage metrics."""

    resource_mirror = current_app.extensions["resource_mirror"]
    request_mirror = current_app.extensions["request_mirror"]
    return render_template(
        "admin_dashboard.html",
        form=ResourceForm(),
        resources=resource_mirror.items,
        requests=request_mirror.items,
        stats=feed_stats(resource_mirror.items),
        pending_requests=requests_dao.pending_count(request_mirror.items),
        live_users=live_count(current_app.extensions.get("presence_estimator")),
        protected_ids=resources_dao.PROTECTED_IDS,
    )


@bp.route("/resources", methods=["POST"])
@admin_required
def create_resource():
    """Add a resource from the dashboard form."""

    form = ResourceForm()
    if not form.validate_on_submit():
        for field, errors in form.errors.items():
            for error in errors:
                flash(f"{field}: {error}", "danger")
        return redirect(url_for("admin.dashboard"))
    try:
        resources_dao.create_resource(
            get_store(),
            title=form.title.data,
            description=form.description.data,
            type=form.type.data,
            url=form.url.data,
            category=form.category.data,
            thumbnail_url=form.thumbnail_url.data,
        )
    except ValidationError as exc:
        flash(str(exc), "danger")
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Error adding resource: {exc}")
        flash("Failed to save to database. Check the database configuration.", "danger")
    else:
        flash("Resource added successfully!", "success")
    return redirect(url_for("admin.dashboard"))


@bp.route("/resources/<resource_id>/delete", methods=["POST"])
@admin_required
def delete_resource(resource_id: str):
    """Delete a resource; sample records are refused."""

    try:
        resources_dao.delete_resource(get_store(), resource_id)
    except ValidationError as exc:
        flash(str(exc), "warning")
    except NotFound:
        flash("That resource was already removed.", "info")
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Error deleting resource {resource_id}: {exc}")
        flash("Failed to delete.", "danger")
    else:
        flash("Resource deleted.", "info")
    return redirect(url_for("admin.dashboard"))


@bp.route("/resources/<resource_id>/pin", methods=["POST"])
@admin_required
def toggle_pin(resource_id: str):
    """Feature or un-feature a resource."""

    store = get_store()
    try:
        resource = resources_dao.get_resource(store, resource_id)
        if not resource:
            abort(404)
        pinned = resources_dao.toggle_pin(store, resource_id, resource.is_pinned)
    except ValidationError as exc:
        flash(str(exc), "warning")
    except NotFound:
        flash("That resource no longer exists.", "warning")
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Error pinning resource {resource_id}: {exc}")
        flash("Could not update the featured flag. Please try again.", "danger")
    else:
        flash("Resource featured." if pinned else "Resource unpinned.", "success")
    return redirect(url_for("admin.dashboard"))


@bp.route("/requests/<request_id>/toggle", methods=["POST"])
@admin_required
def toggle_request(request_id: str):
    """Flip a request between pending and completed."""

    store = get_store()
    try:
        item = requests_dao.get_request(store, request_id)
        if not item:
            abort(404)
        status = requests_dao.toggle_request_status(store, request_id, item.status)
    except NotFound:
        flash("That request no longer exists.", "warning")
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Error updating request {request_id}: {exc}")
        flash("Could not update the request. Please try again.", "danger")
    else:
        flash(f"Request marked {status}.", "success")
    return redirect(url_for("admin.dashboard"))


@bp.route("/requests/<request_id>/delete", methods=["POST"])
@admin_required
def delete_request(request_id: str):
    """Remove a request from the queue."""

    try:
        requests_dao.delete_request(get_store(), request_id)
    except NotFound:
        flash("That request was already removed.", "info")
    except StoreUnavailable as exc:
        current_app.logger.warning(f"Error deleting request {request_id}: {exc}")
        flash("Failed to delete.", "danger")
    else:
        flash("Request deleted.", "info")
    return redirect(url_for("admin.dashboard"))
