"""
Tile Mappers
============
Turn one matched content source into one typed ``ContentTile``.

Anchor mappers read plain markup nodes; payload mappers read decoded
structured-data objects.  Every field is read through a small cascade so a
renamed class or a missing attribute only empties that field.  Mappers
never validate: the normalizer applies the per-category invariants.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from bs4 import Tag

from .cascade import ExtractionRule, css_rule, extract_field
from .models import (
    LensTile,
    RelatedTile,
    ScriptPayload,
    SpotlightTile,
    StoryTile,
    TaggedTile,
)
from .utils import (
    absolute_url,
    background_image_url,
    clean_text,
    first_srcset_url,
    format_count,
    hashtag_for,
    normalize_subject,
    split_counters,
    user_from_href,
)

logger = logging.getLogger(__name__)

ADD_LINK_RE = re.compile(r"/add/([^?/#]+)")

DEFAULT_PROFILE_IMAGE = "https://cf-st.sc-cdn.net/aps/bolt/default-profile-{username}.webp"

# How many enclosing containers to search for a tagged tile's caption
_CAPTION_SEARCH_DEPTH = 3


@dataclass(frozen=True)
class MappingContext:
    """Per-request facts every mapper may need."""
    subject: str
    base_url: str

    @property
    def hashtag(self) -> str:
        return hashtag_for(self.subject)

    def url(self, value: Optional[str]) -> Optional[str]:
        return absolute_url(value, self.base_url)


# ---------------------------------------------------------------------------
# Field cascades (evaluated against a single tile node)
# ---------------------------------------------------------------------------

def _self_attr(attr: str, transform=lambda v: v) -> ExtractionRule:
    return ExtractionRule(
        name=f"self@{attr}",
        predicate=lambda node: [node],
        accessor=lambda node: transform(node.get(attr)),
    )


THUMBNAIL_RULES: List[ExtractionRule] = [
    css_rule("img", "src"),
    css_rule("img", "srcset", transform=first_srcset_url),
    css_rule("img", "data-src"),
    css_rule("img", "data-lazy"),
    css_rule('[style*="background"]', "style", transform=background_image_url),
    _self_attr("style", transform=background_image_url),
    _self_attr("data-thumbnail"),
]

AUTHOR_RULES: List[ExtractionRule] = [
    css_rule('[class*="author"]'),
    css_rule('[class*="user"]'),
    css_rule('[class*="profile"]'),
]

DESCRIPTION_RULES: List[ExtractionRule] = [
    css_rule('[class*="description"]'),
    css_rule('[class*="caption"]'),
]

STORY_TITLE_RULES: List[ExtractionRule] = [
    css_rule('[class*="title"]'),
    css_rule('[class*="topic"]'),
    css_rule("h1, h2, h3"),
    css_rule("p"),
    _self_attr("aria-label"),
    css_rule("img", "alt"),
]


def _thumbnail(node: Tag, ctx: MappingContext) -> Optional[str]:
    return ctx.url(extract_field(node, THUMBNAIL_RULES))


def _href(node: Tag) -> Optional[str]:
    href = node.get("href")
    if not href:
        inner = node.find("a", href=True)
        href = inner.get("href") if inner else None
    return href


def _counter_fields(counters: List[str]) -> Dict[str, Optional[str]]:
    padded = list(counters[:3]) + [None] * (3 - min(len(counters), 3))
    return {"views": padded[0], "comments": padded[1], "shares": padded[2]}


def _text_without(text: str, fragment: Optional[str]) -> str:
    if fragment:
        text = text.replace(fragment, " ")
    return clean_text(text)


# ---------------------------------------------------------------------------
# Anchor mappers
# ---------------------------------------------------------------------------

def map_spotlight_anchor(node: Tag, ctx: MappingContext) -> SpotlightTile:
    """Spotlight link: counters and caption share the anchor text."""
    href = _href(node)
    text = node.get_text(" ", strip=True)

    author = extract_field(node, AUTHOR_RULES)
    caption = extract_field(node, DESCRIPTION_RULES)
    remaining = _text_without(_text_without(text, caption), author)
    counters, leftover = split_counters(remaining)

    return SpotlightTile(
        thumbnail_url=_thumbnail(node, ctx),
        user=user_from_href(href) or author or ctx.subject,
        description=caption or leftover or None,
        canonical_url=ctx.url(href),
        **_counter_fields(counters),
    )


def _nearby_caption(node: Tag) -> Optional[str]:
    """Hashtag-bearing or sentence-length paragraph near a tagged link."""
    container = node.find_parent("div")
    for _ in range(_CAPTION_SEARCH_DEPTH):
        if container is None:
            break
        for paragraph in container.find_all("p"):
            text = clean_text(paragraph.get_text(" "))
            if text and ("#" in text or len(text) > 20):
                return text
        container = container.parent
    return None


def map_tagged_anchor(node: Tag, ctx: MappingContext) -> TaggedTile:
    """Spotlight link on the Tagged tab; caption lives in a nearby paragraph."""
    href = _href(node)
    text = node.get_text(" ", strip=True)
    author = extract_field(node, AUTHOR_RULES)
    counters, leftover = split_counters(_text_without(text, author))

    return TaggedTile(
        thumbnail_url=_thumbnail(node, ctx),
        user=user_from_href(href) or author,
        description=_nearby_caption(node) or leftover or None,
        canonical_url=ctx.url(href),
        **_counter_fields(counters),
    )


def map_lens_anchor(node: Tag, ctx: MappingContext) -> LensTile:
    """Lens unlock link; lenses on a profile belong to the profile owner."""
    href = _href(node)
    description = extract_field(node, [css_rule("p"), css_rule("h3, h4, h5"), css_rule("img", "alt")])
    return LensTile(
        thumbnail_url=_thumbnail(node, ctx),
        user=ctx.subject,
        description=description,
        canonical_url=ctx.url(href),
    )


def map_related_anchor(node: Tag, ctx: MappingContext) -> Optional[RelatedTile]:
    """Recommended-profile card; requires a display name heading."""
    href = _href(node) or ""
    match = ADD_LINK_RE.search(href)
    if not match:
        return None
    username = match.group(1)

    name = node.find("h5")
    name_text = clean_text(name.get_text(" ")) if name else ""
    if not name_text:
        return None

    paragraph = node.find("p")
    description = clean_text(paragraph.get_text(" ")) if paragraph else ""

    image = node.find("img")
    thumbnail = None
    if image is not None:
        thumbnail = image.get("src") or image.get("data-src") or image.get("data-lazy")
    if not thumbnail:
        thumbnail = DEFAULT_PROFILE_IMAGE.format(username=username)

    return RelatedTile(
        thumbnail_url=ctx.url(thumbnail),
        user=name_text,
        description=description or f"@{username}",
        canonical_url=ctx.url(href),
    )


def map_story_card(node: Tag, ctx: MappingContext) -> StoryTile:
    """Story card container or story link."""
    href = _href(node)
    return StoryTile(
        thumbnail_url=_thumbnail(node, ctx),
        user=extract_field(node, AUTHOR_RULES) or user_from_href(href) or ctx.subject,
        description=extract_field(node, STORY_TITLE_RULES),
        canonical_url=ctx.url(href),
    )


# ---------------------------------------------------------------------------
# Structured-payload mappers
# ---------------------------------------------------------------------------

_INTERACTION_FIELDS = {
    "watchaction": "views",
    "viewaction": "views",
    "likeaction": "views",
    "commentaction": "comments",
    "shareaction": "shares",
}


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _text_of(value: Any) -> str:
    if isinstance(value, list):
        return " ".join(str(v) for v in value)
    return str(value or "")


def _interaction_counters(data: Dict[str, Any]) -> Dict[str, Optional[str]]:
    counters: Dict[str, Optional[str]] = {"views": None, "comments": None, "shares": None}
    stats = data.get("interactionStatistic") or []
    if isinstance(stats, dict):
        stats = [stats]
    for stat in stats:
        if not isinstance(stat, dict):
            continue
        kind = stat.get("interactionType")
        if isinstance(kind, dict):
            kind = kind.get("@type", "")
        kind = str(kind or "").rsplit("/", 1)[-1].lower()
        field_name = _INTERACTION_FIELDS.get(kind)
        if field_name and counters[field_name] is None:
            counters[field_name] = format_count(stat.get("userInteractionCount"))
    return counters


def map_video_object(payload: ScriptPayload, ctx: MappingContext) -> Optional[TaggedTile]:
    """
    ``VideoObject`` JSON-LD that mentions the subject's hashtag.

    Caller guarantees ``payload.shape == "VideoObject"``.
    """
    data = payload.data
    if ctx.hashtag.lower() not in _text_of(data.get("keywords")).lower():
        return None

    creator = _first(data.get("creator")) or _first(data.get("author")) or {}
    user = None
    if isinstance(creator, dict):
        user = creator.get("alternateName") or creator.get("name")
    elif isinstance(creator, str):
        user = creator

    return TaggedTile(
        thumbnail_url=ctx.url(_first(data.get("thumbnailUrl"))),
        user=normalize_subject(user) if user else None,
        description=clean_text(data.get("name") or data.get("description") or "") or None,
        canonical_url=ctx.url(data.get("url") or data.get("@id")),
        **_interaction_counters(data),
    )
