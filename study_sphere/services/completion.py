"""Text and vision completions backed by the Gemini API."""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Iterable, Mapping

from google import genai
from google.genai import types

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_PROMPT = "Analyze this image and explain its educational content."
EMPTY_CHAT_RESPONSE = "I couldn't generate a response."
EMPTY_IMAGE_RESPONSE = "Analysis complete, but no text returned."


class ServiceUnavailable(RuntimeError):
    """Raised when the completion service cannot produce an answer."""


class GeminiCompletionService:
    """Thin wrapper around ``google-genai`` for chat and image analysis."""

    def __init__(self, api_key: str, model: str = DEFAULT_MODEL, client: genai.Client | None = None) -> None:
        self.model = model
        self._api_key = api_key
        self._client = client

    def _get_client(self) -> genai.Client:
        if self._client is None:
            if not self._api_key:
                raise ServiceUnavailable("GEMINI_API_KEY is not configured.")
            self._client = genai.Client(api_key=self._api_key)
        return self._client

    def complete(self, system_prompt: str, history: Iterable[Mapping[str, str]], new_message: str) -> str:
        """Send ``new_message`` after ``history`` (dicts with ``role`` and ``text``)."""

        client = self._get_client()
        contents = [
            types.Content(role=entry["role"], parts=[types.Part(text=entry["text"])]) for entry in history
        ]
        try:
            chat = client.chats.create(
                model=self.model,
                history=contents,
                config=types.GenerateContentConfig(system_instruction=system_prompt),
            )
            response = chat.send_message(new_message)
        except Exception as exc:  # pylint: disable=broad-except
            logger.error(f"Gemini chat error: {exc}")
            raise ServiceUnavailable("The study assistant is unavailable.") from exc
        return response.text or EMPTY_CHAT_RESPONSE

    def analyze_image(self, base64_bytes: str, mime_type: str, prompt: str | None = None) -> str:
        """Describe an inline base64 image with the vision model."""

        client = self._get_client()
        try:
            data = base64.b64decode(base64_bytes, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ServiceUnavailable("The image could not be decoded.") from exc
        try:
            response = client.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=data, mime_type=mime_type),
                    prompt or DEFAULT_IMAGE_PROMPT,
                ],
            )
        except Exception as exc:  # pylint: disable=broad-except
            logger.error(f"Gemini vision error: {exc}")
            raise ServiceUnavailable("Image analysis is unavailable.") from exc
        return response.text or EMPTY_IMAGE_RESPONSE
