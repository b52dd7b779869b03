"""Dataclass-style entity representations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

from flask_login import UserMixin

RESOURCE_TYPES = ("PDF", "VIDEO")
REQUEST_STATUSES = ("pending", "completed")
CHAT_ROLES = ("user", "model")


@dataclass
class AdminUser(UserMixin):
    """The single shared-secret admin principal for Flask-Login."""

    user_id: str = "admin"

    def get_id(self) -> str:
        return self.user_id

    @property
    def is_admin(self) -> bool:
        return True


@dataclass
class Resource:
    """Catalogue entry linking to a PDF or video."""

    id: str
    title: str
    description: str
    type: str
    url: str
    category: str
    added_at: int
    thumbnail_url: Optional[str] = None
    likes: int = 0
    dislikes: int = 0
    views: int = 0
    is_pinned: bool = False

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "Resource":
        """Build a resource from a stored document, defaulting missing counters."""

        return cls(
            id=doc_id,
            title=data.get("title") or "",
            description=data.get("description") or "",
            type=data.get("type") or "PDF",
            url=data.get("url") or "",
            category=data.get("category") or "",
            added_at=int(data.get("addedAt") or 0),
            thumbnail_url=data.get("thumbnailUrl") or None,
            likes=int(data.get("likes") or 0),
            dislikes=int(data.get("dislikes") or 0),
            views=int(data.get("views") or 0),
            is_pinned=bool(data.get("isPinned") or False),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "type": self.type,
            "url": self.url,
            "thumbnailUrl": self.thumbnail_url,
            "category": self.category,
            "addedAt": self.added_at,
            "likes": self.likes,
            "dislikes": self.dislikes,
            "views": self.views,
            "isPinned": self.is_pinned,
        }


@dataclass
class ResourceRequest:
    """Student request for material missing from the catalogue."""

    id: str
    title: str
    details: str
    status: str
    created_at: int

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "ResourceRequest":
        return cls(
            id=doc_id,
            title=data.get("title") or "",
            details=data.get("details") or "",
            status=data.get("status") or "pending",
            created_at=int(data.get("createdAt") or 0),
        )

    @property
    def is_pending(self) -> bool:
        return self.status == "pending"


@dataclass
class PresenceRecord:
    """Last heartbeat seen for one anonymous client."""

    client_id: str
    last_seen: Optional[int] = None

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "PresenceRecord":
        last_seen = data.get("lastSeen")
        return cls(client_id=doc_id, last_seen=int(last_seen) if last_seen is not None else None)


@dataclass
class ChatMessage:
    """One assistant transcript entry, held in server memory per browser."""

    id: str
    role: str
    text: str
    timestamp: int

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "role": self.role, "text": self.text, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ChatMessage":
        role = data["role"]
        if role not in CHAT_ROLES:
            raise ValueError(f"Unknown chat role '{role}'")
        return cls(
            id=str(data["id"]),
            role=role,
            text=data["text"],
            timestamp=int(data["timestamp"]),
        )
