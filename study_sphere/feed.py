"""Ranking, filtering and view-state helpers for the resource feed.

Everything here is a pure function of its inputs: the store snapshot comes in,
an ordered list goes out. Counters are never touched here; votes and views go
through :mod:`study_sphere.data_access.resources_dao` and come back as a new
snapshot.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Iterable, Mapping, Optional, Sequence

from .models.entities import Resource

ALL_CATEGORIES = "All"
SORT_OPTIONS = ("newest", "popular", "views", "oldest")
DEFAULT_SORT = "newest"

_SORT_KEYS = {
    "newest": lambda resource: -(resource.added_at or 0),
    "oldest": lambda resource: resource.added_at or 0,
    "popular": lambda resource: -(resource.likes or 0),
    "views": lambda resource: -(resource.views or 0),
}


def matches(resource: Resource, search_term: str, category: str) -> bool:
    """Return True when the resource passes both the search and category filters."""

    term = (search_term or "").lower()
    matches_search = term in (resource.title or "").lower() or term in (resource.description or "").lower()
    matches_category = category == ALL_CATEGORIES or resource.category == category
    return matches_search and matches_category


def render(
    resources: Iterable[Resource],
    search_term: str = "",
    category: str = ALL_CATEGORIES,
    sort_by: str = DEFAULT_SORT,
) -> list[Resource]:
    """Filter then order resources, pinned entries first.

    ``sorted`` is stable, so resources that tie on the chosen key keep the
    order the store delivered them in. An unknown ``sort_by`` only applies the
    pinned-first partition.
    """

    secondary = _SORT_KEYS.get(sort_by, lambda resource: 0)
    filtered = [resource for resource in resources if matches(resource, search_term, category)]
    return sorted(filtered, key=lambda resource: (not resource.is_pinned, secondary(resource)))


def derive_categories(resources: Iterable[Resource]) -> list[str]:
    """Selectable categories: ``All`` then each category in first-seen order."""

    categories = [ALL_CATEGORIES]
    seen = set()
    for resource in resources:
        if resource.category not in seen:
            seen.add(resource.category)
            categories.append(resource.category)
    return categories


@dataclass(frozen=True)
class FeedViewState:
    """Immutable search/sort/category selection for one feed view."""

    search_term: str = ""
    category: str = ALL_CATEGORIES
    sort_by: str = DEFAULT_SORT

    @classmethod
    def from_args(cls, args: Mapping[str, str]) -> "FeedViewState":
        """Build a state from request query parameters."""

        state = cls()
        state = reduce_view_state(state, "search", args.get("q") or "")
        state = reduce_view_state(state, "select_category", args.get("category") or ALL_CATEGORIES)
        return reduce_view_state(state, "sort", args.get("sort") or DEFAULT_SORT)

    @property
    def has_active_filters(self) -> bool:
        return bool(self.search_term) or self.category != ALL_CATEGORIES or self.sort_by != DEFAULT_SORT


def reduce_view_state(state: FeedViewState, action: str, value: Optional[str] = None) -> FeedViewState:
    """Apply one user action and return the next view state."""

    if action == "search":
        return replace(state, search_term=value or "")
    if action == "select_category":
        return replace(state, category=(value or "").strip() or ALL_CATEGORIES)
    if action == "sort":
        if value in SORT_OPTIONS:
            return replace(state, sort_by=value)
        return state
    if action == "reset":
        return FeedViewState()
    return state


@dataclass(frozen=True)
class FeedResult:
    """What the catalogue page renders."""

    items: list
    categories: list
    is_loading: bool

    @property
    def is_empty(self) -> bool:
        return not self.is_loading and not self.items


def build_feed(resources: Sequence[Resource], loaded: bool, state: FeedViewState) -> FeedResult:
    """Render the feed for a view state; ``loaded`` comes from the subscription."""

    if not loaded:
        return FeedResult(items=[], categories=[ALL_CATEGORIES], is_loading=True)
    return FeedResult(
        items=render(resources, state.search_term, state.category, state.sort_by),
        categories=derive_categories(resources),
        is_loading=False,
    )


@dataclass(frozen=True)
class FeedStats:
    total_resources: int
    total_views: int
    top_resource: Optional[Resource]


def feed_stats(resources: Sequence[Resource]) -> FeedStats:
    """Dashboard totals; the first resource wins ties for most viewed."""

    top = None
    for resource in resources:
        if top is None or (resource.views or 0) > (top.views or 0):
            top = resource
    return FeedStats(
        total_resources=len(resources),
        total_views=sum(resource.views or 0 for resource in resources),
        top_resource=top,
    )


# Viewer helpers

_DRIVE_ID_PATTERNS = (re.compile(r"/d/([a-zA-Z0-9_-]+)"), re.compile(r"[?&]id=([a-zA-Z0-9_-]+)"))


def _youtube_id(url: str) -> Optional[str]:
    if "v=" in url:
        return url.split("v=", 1)[1].split("&", 1)[0] or None
    if "youtu.be/" in url:
        return url.split("youtu.be/", 1)[1].split("?", 1)[0] or None
    return None


def embed_url(url: str, resource_type: str) -> str:
    """URL suitable for an iframe: YouTube embed links, Drive previews."""

    if not url:
        return ""
    if resource_type == "VIDEO" and ("youtube.com" in url or "youtu.be" in url):
        video_id = _youtube_id(url)
        if video_id:
            return f"https://www.youtube.com/embed/{video_id}?autoplay=1"
    if resource_type == "PDF" and "drive.google.com" in url:
        return re.sub(r"/view.*", "/preview", url)
    return url


def thumbnail_for(resource: Resource) -> Optional[str]:
    """Cover image for a card, derived from Drive or YouTube links when possible."""

    if resource.thumbnail_url:
        if "drive.google.com" in resource.thumbnail_url:
            for pattern in _DRIVE_ID_PATTERNS:
                found = pattern.search(resource.thumbnail_url)
                if found:
                    return f"https://lh3.googleusercontent.com/d/{found.group(1)}"
        return resource.thumbnail_url
    if resource.type == "VIDEO" and "youtube.com" in resource.url and "v=" in resource.url:
        video_id = _youtube_id(resource.url)
        if video_id:
            return f"https://img.youtube.com/vi/{video_id}/0.jpg"
    return None
