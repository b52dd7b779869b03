"""AI study assistant: chat tutor and image scanner."""

from __future__ import annotations

import base64

from flask import Blueprint, current_app, flash, redirect, render_template, session, url_for
from flask_wtf import FlaskForm
from flask_wtf.file import FileAllowed, FileField, FileRequired
from wtforms import StringField, SubmitField
from wtforms.validators import InputRequired, Length

from ..presence import ClientIdentityProvider
from ..services import assistant as assistant_service

bp = Blueprint("assistant", __name__, url_prefix="/assistant", template_folder="../views")

IMAGE_EXTENSIONS = ["png", "jpg", "jpeg", "gif", "webp"]


class ChatForm(FlaskForm):
    message = StringField("Message", validators=[InputRequired(), Length(max=4000)])
    submit = SubmitField("Send")


class ScanForm(FlaskForm):
    image = FileField(
        "Study Image",
        validators=[FileRequired(), FileAllowed(IMAGE_EXTENSIONS, "Please upload an image file.")],
    )
    submit = SubmitField("Analyze")


def _transcript_storage() -> dict:
    """Per-browser transcript holder, evicted when idle or crowded out."""

    client_id = ClientIdentityProvider(session).get_or_create()
    return current_app.extensions["assistant_transcripts"].storage_for(client_id)


@bp.route("/", methods=["GET", "POST"])
def chat():
    """Show the conversation and send new questions."""

    storage = _transcript_storage()
    transcript = assistant_service.load_transcript(storage)
    form = ChatForm()
    if form.validate_on_submit():
        transcript = assistant_service.send_chat_message(
            current_app.extensions["completion_service"],
            transcript,
            form.message.data,
        )
        assistant_service.save_transcript(storage, transcript)
        return redirect(url_for("assistant.chat"))
    return render_template("assistant.html", form=form, messages=transcript)


@bp.route("/reset", methods=["POST"])
def reset():
    """Start a fresh conversation."""

    client_id = ClientIdentityProvider(session).get_or_create()
    current_app.extensions["assistant_transcripts"].discard(client_id)
    return redirect(url_for("assistant.chat"))


@bp.route("/scan", methods=["GET", "POST"])
def scan():
    """Explain an uploaded photo of notes, a textbook page or a diagram."""

    form = ScanForm()
    analysis = None
    if form.validate_on_submit():
        upload = form.image.data
        mime_type = upload.mimetype or ""
        if not mime_type.startswith("image/"):
            flash("Please upload an image file.", "warning")
        else:
            encoded = base64.b64encode(upload.read()).decode("ascii")
            analysis = assistant_service.scan_image(
                current_app.extensions["completion_service"],
                encoded,
                mime_type,
            )
    return render_template("assistant_scan.html", form=form, analysis=analysis)
