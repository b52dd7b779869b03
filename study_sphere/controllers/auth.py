"""Admin sign-in against the shared passkey."""

from __future__ import annotations

from functools import wraps
from typing import Callable

import bcrypt
from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf import FlaskForm
from wtforms import PasswordField, SubmitField
from wtforms.validators import InputRequired

from ..models.entities import AdminUser

bp = Blueprint("auth", __name__, url_prefix="/auth", template_folder="../views")


class AdminLoginForm(FlaskForm):
    """Passkey form guarding the admin console."""

    passkey = PasswordField("Passkey", validators=[InputRequired()])
    submit = SubmitField("Unlock")


def verify_passkey(candidate: str) -> bool:
    """Compare a submitted passkey with the configured bcrypt hash."""

    stored_hash = current_app.config.get("ADMIN_PASSKEY_HASH") or ""
    if not stored_hash or not candidate:
        return False
    return bcrypt.checkpw(candidate.encode("utf-8"), stored_hash.encode("utf-8"))


def admin_required(view: Callable) -> Callable:
    """Decorator restricting a view to the signed-in admin."""

    @wraps(view)
    @login_required
    def wrapped(*args, **kwargs):
        if not getattr(current_user, "is_admin", False):
            abort(403)
        return view(*args, **kwargs)

    return wrapped


@bp.route("/login", methods=["GET", "POST"])
def login():
    """Unlock the admin console."""

    if current_user.is_authenticated:
        return redirect(url_for("admin.dashboard"))

    form = AdminLoginForm()
    if form.validate_on_submit():
        if not verify_passkey(form.passkey.data):
            form.passkey.errors.append("Invalid passkey")
        else:
            login_user(AdminUser())
            flash("Admin console unlocked.", "success")
            return redirect(request.args.get("next") or url_for("admin.dashboard"))
    return render_template("admin_login.html", form=form)


@bp.route("/logout")
@login_required
def logout():
    """Lock the admin console again."""

    logout_user()
    flash("You have been signed out.", "info")
    return redirect(url_for("index"))
