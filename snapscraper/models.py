"""
Domain Types
============
Typed records produced and consumed by the extraction core.

- ``Category``: the six content groupings a profile page exposes
- ``ProfileRecord``: profile metadata (immutable)
- ``ContentTile`` variants: one record per matched node / payload
- ``ScriptPayload`` / ``AnchorElement``: the two kinds of content source
- ``RawDocument`` / ``FetchFailure`` / ``ProbeResult``: fetcher outcomes
- ``VideoResolutionResult``: resolver output
- ``TabResult``: what the service returns per request
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Union

from bs4 import Tag


class Category(str, Enum):
    """Content categories of a public profile page, in display order."""
    PROFILE = "profile"
    SPOTLIGHT = "spotlight"
    STORIES = "stories"
    LENSES = "lenses"
    TAGGED = "tagged"
    RELATED = "related"

    @classmethod
    def parse(cls, value: Union[str, "Category"]) -> "Category":
        """Case-insensitive lookup; raises ``ValueError`` for unknown names."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(c.value for c in cls)
            raise ValueError(f"unknown category {value!r} (expected one of: {names})") from None


# Categories that hold content tiles (everything but the profile header)
TILE_CATEGORIES: Tuple[Category, ...] = (
    Category.SPOTLIGHT,
    Category.STORIES,
    Category.LENSES,
    Category.TAGGED,
    Category.RELATED,
)


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfileRecord:
    """Profile header data. Replaced wholesale on refetch, never mutated."""
    display_name: str
    bio: Optional[str] = None
    avatar_url: Optional[str] = None
    follower_count: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> dict:
        return {_camel(f.name): getattr(self, f.name) for f in fields(self)}


# ---------------------------------------------------------------------------
# Content tiles (tagged union by category)
# ---------------------------------------------------------------------------

@dataclass
class ContentTile:
    """Fields shared by every tile variant."""
    category: ClassVar[Category]

    thumbnail_url: Optional[str] = None
    user: Optional[str] = None
    description: Optional[str] = None
    canonical_url: Optional[str] = None

    def is_valid(self) -> bool:
        """A thumbnail alone is never enough: need a user or a description."""
        return bool(self.user) or bool(self.description)

    def dedup_key(self) -> Tuple:
        if self.canonical_url:
            return ("url", self.canonical_url)
        return tuple(getattr(self, f.name) for f in fields(self))

    def to_dict(self) -> dict:
        data: Dict[str, Any] = {"category": self.category.value}
        for f in fields(self):
            data[_camel(f.name)] = getattr(self, f.name)
        return data


@dataclass
class CounterTile(ContentTile):
    """Video tiles that carry engagement counters."""
    views: Optional[str] = None
    comments: Optional[str] = None
    shares: Optional[str] = None


@dataclass
class SpotlightTile(CounterTile):
    category: ClassVar[Category] = Category.SPOTLIGHT


@dataclass
class TaggedTile(CounterTile):
    category: ClassVar[Category] = Category.TAGGED


@dataclass
class LensTile(ContentTile):
    category: ClassVar[Category] = Category.LENSES


@dataclass
class StoryTile(ContentTile):
    category: ClassVar[Category] = Category.STORIES
    is_story: bool = field(default=True, init=False)

    def is_valid(self) -> bool:
        return bool(self.user) and bool(self.description)


@dataclass
class RelatedTile(ContentTile):
    category: ClassVar[Category] = Category.RELATED
    is_profile: bool = field(default=True, init=False)

    def is_valid(self) -> bool:
        return bool(self.user)


# ---------------------------------------------------------------------------
# Content sources (tagged union, discriminated by ``kind``)
# ---------------------------------------------------------------------------

@dataclass(frozen=True, eq=False)
class ScriptPayload:
    """A decoded structured-data object embedded in the document."""
    data: Dict[str, Any]
    kind: ClassVar[str] = "script"

    @property
    def shape(self) -> str:
        """Value of the ``@type`` discriminator ('' when absent)."""
        value = self.data.get("@type", "")
        if isinstance(value, list):
            value = value[0] if value else ""
        return str(value)


@dataclass(frozen=True, eq=False)
class AnchorElement:
    """A plain markup node matched by a category's anchor cascade."""
    node: Tag
    kind: ClassVar[str] = "anchor"


ContentSource = Union[ScriptPayload, AnchorElement]


# ---------------------------------------------------------------------------
# Fetch outcomes
# ---------------------------------------------------------------------------

@dataclass
class RawDocument:
    """Successful fetch: response text plus transport metadata."""
    url: str
    text: str
    status: int = 200
    content_type: str = ""


@dataclass
class FetchFailure:
    """Unsuccessful fetch. Returned, never raised."""
    url: str
    status: int = 0          # 0 = network error / timeout / parse failure
    message: str = ""
    retryable: bool = True
    degraded: bool = False

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'status': self.status,
            'message': self.message,
            'retryable': self.retryable,
            'degraded': self.degraded,
        }


@dataclass
class ProbeResult:
    """Outcome of a lightweight existence probe."""
    url: str
    exists: bool = False
    status: int = 0
    content_type: str = ""

    @property
    def is_video(self) -> bool:
        ctype = self.content_type.lower()
        return self.exists and (
            ctype.startswith("video/")
            or "mpegurl" in ctype
            or "dash+xml" in ctype
        )


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class VideoResolutionResult:
    """A playable-media URL and the strategy that found it."""
    url: str
    strategy_index: int
    confidence: float
    strategy_name: str = ""

    def to_dict(self) -> dict:
        return {
            'url': self.url,
            'strategyIndex': self.strategy_index,
            'confidence': self.confidence,
            'strategyName': self.strategy_name,
        }


@dataclass
class TabResult:
    """Outcome of one (subject, category, locale) request.

    ``category`` is None only when the requested name was not a category.
    """
    subject: str
    category: Optional[Category]
    locale: str = "en-US"
    tiles: List[ContentTile] = field(default_factory=list)
    profile: Optional[ProfileRecord] = None
    failure: Optional[FetchFailure] = None
    request_id: int = 0
    stale: bool = False

    @property
    def ok(self) -> bool:
        return self.failure is None

    def to_dict(self) -> dict:
        return {
            'subject': self.subject,
            'category': self.category.value if self.category else None,
            'locale': self.locale,
            'tiles': [t.to_dict() for t in self.tiles],
            'profile': self.profile.to_dict() if self.profile else None,
            'failure': self.failure.to_dict() if self.failure else None,
            'requestId': self.request_id,
            'stale': self.stale,
        }
