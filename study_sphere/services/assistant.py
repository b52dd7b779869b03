"""Session-scoped assistant transcript and scanner helpers."""

from __future__ import annotations

import threading
from collections import OrderedDict
from collections.abc import MutableMapping
from typing import Callable
from uuid import uuid4

from ..data_access.store import now_ms
from ..models.entities import ChatMessage
from .completion import GeminiCompletionService, ServiceUnavailable

TRANSCRIPT_KEY = "assistant_transcript"
WELCOME_ID = "welcome"
WELCOME_TEXT = (
    "Hello! I'm your AI study assistant. Ask me anything about your subjects, "
    "or request a summary of a complex topic!"
)
SYSTEM_PROMPT = (
    "You are a helpful, encouraging, and academic study assistant for college students. "
    "Keep answers concise but thorough."
)
CHAT_FALLBACK = "I'm having trouble connecting to the study network. Please try again later."
SCAN_PROMPT = (
    "Identify the educational content in this image. If it contains text, summarize it. "
    "If it contains diagrams or math problems, explain them step-by-step."
)
SCAN_FALLBACK = "Failed to analyze image. Please try again."


def welcome_message(clock: Callable[[], int] = now_ms) -> ChatMessage:
    return ChatMessage(id=WELCOME_ID, role="model", text=WELCOME_TEXT, timestamp=clock())


def load_transcript(storage: MutableMapping) -> list[ChatMessage]:
    stored = storage.get(TRANSCRIPT_KEY)
    if not stored:
        return [welcome_message()]
    return [ChatMessage.from_dict(entry) for entry in stored]


def save_transcript(storage: MutableMapping, messages: list[ChatMessage]) -> None:
    storage[TRANSCRIPT_KEY] = [message.to_dict() for message in messages]


class TranscriptCache:
    """Per-browser transcript holders, bounded by client count and idle time.

    Holders are kept in least-recently-used order. Touching a holder moves it
    to the back; holders idle for ``idle_ttl_ms`` are dropped on the next
    access, and the oldest holder is evicted once ``max_clients`` is exceeded.
    """

    def __init__(
        self,
        max_clients: int = 500,
        idle_ttl_ms: int = 2 * 60 * 60 * 1000,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self.max_clients = max_clients
        self.idle_ttl_ms = idle_ttl_ms
        self._clock = clock
        self._entries: OrderedDict[str, tuple[int, dict]] = OrderedDict()
        self._lock = threading.Lock()

    def storage_for(self, client_id: str) -> dict:
        now = self._clock()
        with self._lock:
            self._expire(now)
            entry = self._entries.pop(client_id, None)
            storage = entry[1] if entry else {}
            self._entries[client_id] = (now, storage)
            while len(self._entries) > self.max_clients:
                self._entries.popitem(last=False)
            return storage

    def discard(self, client_id: str) -> None:
        with self._lock:
            self._entries.pop(client_id, None)

    def _expire(self, now: int) -> None:
        while self._entries:
            touched, _ = next(iter(self._entries.values()))
            if now - touched < self.idle_ttl_ms:
                return
            self._entries.popitem(last=False)

    def __contains__(self, client_id: object) -> bool:
        return client_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)


def to_history(messages: list[ChatMessage]) -> list[dict]:
    """Prior turns for the model; the canned greeting is not sent."""

    return [{"role": message.role, "text": message.text} for message in messages if message.id != WELCOME_ID]


def send_chat_message(
    service: GeminiCompletionService,
    transcript: list[ChatMessage],
    text: str,
    clock: Callable[[], int] = now_ms,
) -> list[ChatMessage]:
    """Return the transcript extended with the user turn and the model reply.

    A failed completion is answered with a placeholder reply instead of an
    error so the conversation stays usable.
    """

    text = (text or "").strip()
    if not text:
        return list(transcript)
    history = to_history(transcript)
    user_message = ChatMessage(id=uuid4().hex, role="user", text=text, timestamp=clock())
    try:
        reply = service.complete(SYSTEM_PROMPT, history, text)
    except ServiceUnavailable:
        reply = CHAT_FALLBACK
    bot_message = ChatMessage(id=uuid4().hex, role="model", text=reply, timestamp=clock())
    return [*transcript, user_message, bot_message]


def scan_image(service: GeminiCompletionService, base64_data: str, mime_type: str) -> str:
    """Explain an uploaded study image, degrading failures to a placeholder."""

    try:
        return service.analyze_image(base64_data, mime_type, SCAN_PROMPT)
    except ServiceUnavailable:
        return SCAN_FALLBACK
