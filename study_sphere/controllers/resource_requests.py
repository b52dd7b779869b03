"""Student requests for missing material."""

from __future__ import annotations

from flask import Blueprint, current_app, flash, redirect, render_template, url_for
from flask_wtf import FlaskForm
from wtforms import StringField, SubmitField, TextAreaField
from wtforms.validators import InputRequired, Length

from ..data_access import requests_dao
from ..data_access.db import get_store
from ..data_access.store import StoreUnavailable, ValidationError

bp = Blueprint("requests", __name__, url_prefix="/requests", template_folder="../views")


class RequestForm(FlaskForm):
    """Ask for a resource that is not in the catalogue yet."""

    title = StringField("Subject / Topic", validators=[InputRequired(), Length(max=150)])
    details = TextAreaField("Details", validators=[Length(max=2000)])
    submit = SubmitField("Submit request")


@bp.route("/new", methods=["GET", "POST"])
def new_request():
    """Collect a resource request."""

    form = RequestForm()
    if form.validate_on_submit():
        try:
            requests_dao.add_request(get_store(), form.title.data, form.details.data)
        except ValidationError as exc:
            form.title.errors.append(str(exc))
        except StoreUnavailable as exc:
            current_app.logger.warning(f"Request could not be saved: {exc}")
            flash("Error submitting request. Please try again.", "danger")
        else:
            flash("Request submitted! We'll try to add this soon.", "success")
            return redirect(url_for("index"))
    return render_template("request_form.html", form=form)
