"""
Category Registry
=================
Maps every ``Category`` to a fixed ``CategorySpec``: where the content lives
upstream, which cascade locates its tile nodes, which structured-payload
shapes it accepts, and which mappers turn sources into tiles.

The registry is filled once at import time and is the ONLY place that knows
per-category behaviour.  The normalizer, the availability checker and the
service look specs up by enum value; nothing branches on category strings.

Usage::

    from snapscraper.categories import CategoryRegistry

    spec = CategoryRegistry.get(Category.TAGGED)
    nodes = extract_nodes(tree, spec.anchor_rules)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple

from bs4 import Tag

from .cascade import ExtractionRule, nodes_rule
from .mappers import (
    MappingContext,
    map_lens_anchor,
    map_related_anchor,
    map_spotlight_anchor,
    map_story_card,
    map_tagged_anchor,
    map_video_object,
)
from .models import Category, ContentTile, ScriptPayload

logger = logging.getLogger(__name__)

AnchorMapper = Callable[[Tag, MappingContext], Optional[ContentTile]]
PayloadMapper = Callable[[ScriptPayload, MappingContext], Optional[ContentTile]]


@dataclass(frozen=True)
class CategorySpec:
    """Everything the core needs to know about one category."""
    category: Category
    label: str                                    # navigation label upstream
    tab: Optional[str] = None                     # ?tab= value; None = main profile page
    anchor_rules: Tuple[ExtractionRule, ...] = ()
    map_anchor: Optional[AnchorMapper] = None
    payload_types: FrozenSet[str] = frozenset()
    map_payload: Optional[PayloadMapper] = None
    exclude_subject: bool = False                 # drop tiles authored by the subject
    dedup_by_author: bool = False                 # dedup on (user, description)

    @property
    def has_tiles(self) -> bool:
        return self.map_anchor is not None or self.map_payload is not None


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

_SPEC_REGISTRY: Dict[Category, CategorySpec] = {}


class CategoryRegistry:
    """Typed lookup from ``Category`` to its ``CategorySpec``."""

    @staticmethod
    def register(spec: CategorySpec) -> None:
        """Register (or replace) the spec for ``spec.category``."""
        _SPEC_REGISTRY[spec.category] = spec
        logger.debug(f"[CATEGORIES] Registered spec: {spec.category.value}")

    @staticmethod
    def get(category: Category) -> CategorySpec:
        """Spec for *category*; every enum member is registered at import."""
        return _SPEC_REGISTRY[Category.parse(category)]

    @staticmethod
    def specs() -> List[CategorySpec]:
        """All specs in display order."""
        return [_SPEC_REGISTRY[c] for c in Category if c in _SPEC_REGISTRY]

    @staticmethod
    def by_label(label: str) -> Optional[CategorySpec]:
        """Spec whose navigation label or tab value matches *label*."""
        wanted = (label or "").strip().lower()
        if not wanted:
            return None
        for spec in _SPEC_REGISTRY.values():
            if wanted in (spec.label.lower(), spec.category.value):
                return spec
        return None


# ---------------------------------------------------------------------------
# Built-in specs
# ---------------------------------------------------------------------------

def _auto_register() -> None:
    """Register the built-in spec of every category.

    Anchor cascades list the current selector first and older/legacy
    markup after it; the first selector that matches anything wins.
    """
    CategoryRegistry.register(CategorySpec(
        category=Category.PROFILE,
        label="Profile",
    ))

    CategoryRegistry.register(CategorySpec(
        category=Category.SPOTLIGHT,
        label="Spotlight",
        tab="Spotlight",
        anchor_rules=(
            nodes_rule('a[href*="/spotlight/"]'),
            nodes_rule('[data-testid="spotlight-tile"]'),
            nodes_rule('[class*="SpotlightResultTile_container"]'),
            nodes_rule('.spotlight-tile, .tile-container'),
        ),
        map_anchor=map_spotlight_anchor,
    ))

    CategoryRegistry.register(CategorySpec(
        category=Category.STORIES,
        label="Stories",
        anchor_rules=(
            nodes_rule('[data-testid="story-card"]'),
            nodes_rule('[class*="StoryCard"]'),
            nodes_rule('.story-container'),
            nodes_rule('a[href*="/story/"]'),
        ),
        map_anchor=map_story_card,
    ))

    CategoryRegistry.register(CategorySpec(
        category=Category.LENSES,
        label="Lenses",
        tab="Lenses",
        anchor_rules=(
            nodes_rule('a[href*="/unlock/"]'),
            nodes_rule('a[href*="/lens/"]'),
        ),
        map_anchor=map_lens_anchor,
    ))

    CategoryRegistry.register(CategorySpec(
        category=Category.TAGGED,
        label="Tagged",
        tab="Tagged",
        anchor_rules=(
            nodes_rule('a[href*="/spotlight/"]'),
        ),
        map_anchor=map_tagged_anchor,
        payload_types=frozenset({"VideoObject"}),
        map_payload=map_video_object,
        exclude_subject=True,
        dedup_by_author=True,
    ))

    CategoryRegistry.register(CategorySpec(
        category=Category.RELATED,
        label="Related",
        anchor_rules=(
            nodes_rule('a[href*="/add/"]'),
        ),
        map_anchor=map_related_anchor,
    ))


_auto_register()
