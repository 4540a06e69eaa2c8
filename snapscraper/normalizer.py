"""
Tab Content Normalizer
======================
Turns one parsed tab document into the filtered, deduplicated tile list of
a category.

Pipeline per (subject, category):

1. **Collect**  : structured payloads (JSON-LD) of an accepted shape, then
   the anchor nodes located by the category's cascade
2. **Map**      : one dispatch point on the source's ``kind`` picks the
   payload mapper or the anchor mapper
3. **Validate** : tiles violating the category's required-field rule are
   discarded
4. **Filter**   : categories that exclude the subject drop self-authored tiles
5. **Dedup**    : by canonical URL (or full field tuple), plus
   (user, description) where the category asks for it
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple

from bs4 import BeautifulSoup

from .cascade import extract_nodes
from .categories import CategoryRegistry, CategorySpec
from .mappers import MappingContext
from .models import AnchorElement, Category, ContentSource, ContentTile, ScriptPayload
from .parser import iter_json_scripts
from .utils import normalize_subject

logger = logging.getLogger(__name__)

_JSON_LD_SELECTOR = 'script[type="application/ld+json"]'


def _flatten_payload(data: Any) -> Iterator[Dict[str, Any]]:
    """Yield every object of a JSON-LD document (lists, @graph, ItemList)."""
    if isinstance(data, list):
        for item in data:
            yield from _flatten_payload(item)
        return
    if not isinstance(data, dict):
        return
    if "@graph" in data:
        yield from _flatten_payload(data["@graph"])
        return
    elements = data.get("itemListElement")
    if isinstance(elements, list):
        for element in elements:
            if isinstance(element, dict) and isinstance(element.get("item"), dict):
                yield from _flatten_payload(element["item"])
            else:
                yield from _flatten_payload(element)
        return
    yield data


def same_user(a: Optional[str], b: Optional[str]) -> bool:
    """Usernames compare case-insensitively, ignoring a leading '@'."""
    if not a or not b:
        return False
    return normalize_subject(a).casefold() == normalize_subject(b).casefold()


class TabContentNormalizer:
    """
    Extracts typed tiles for a category from a parsed document.
    """

    def __init__(self, base_url: str):
        """
        Args:
            base_url: Upstream base URL used to absolutize tile links
        """
        self.base_url = base_url

    def collect_sources(self, tree: BeautifulSoup, spec: CategorySpec) -> List[ContentSource]:
        """Structured payloads of an accepted shape followed by anchor nodes."""
        sources: List[ContentSource] = []

        if spec.payload_types:
            for data in iter_json_scripts(tree, _JSON_LD_SELECTOR):
                for item in _flatten_payload(data):
                    payload = ScriptPayload(item)
                    if payload.shape in spec.payload_types:
                        sources.append(payload)

        if spec.anchor_rules:
            sources.extend(AnchorElement(node) for node in extract_nodes(tree, spec.anchor_rules))

        return sources

    def map_source(
        self,
        source: ContentSource,
        spec: CategorySpec,
        ctx: MappingContext,
    ) -> Optional[ContentTile]:
        """Single dispatch point between payload and anchor mapping."""
        if source.kind == ScriptPayload.kind:
            if spec.map_payload is None or source.shape not in spec.payload_types:
                return None
            return spec.map_payload(source, ctx)
        if source.kind == AnchorElement.kind:
            if spec.map_anchor is None:
                return None
            return spec.map_anchor(source.node, ctx)
        return None

    def normalize(
        self,
        tree: BeautifulSoup,
        subject: str,
        category: Category,
    ) -> List[ContentTile]:
        """
        Extract the tiles of *category* for *subject*.

        Args:
            tree: Parsed tab document
            subject: Profile username
            category: Content category (not PROFILE)

        Returns:
            Valid, filtered, deduplicated tiles in document order
        """
        spec = CategoryRegistry.get(category)
        subject = normalize_subject(subject)
        ctx = MappingContext(subject=subject, base_url=self.base_url)

        tiles: List[ContentTile] = []
        seen: Set[Tuple] = set()
        seen_authors: Set[Tuple] = set()
        invalid = self_authored = duplicates = 0

        sources = self.collect_sources(tree, spec)
        for source in sources:
            try:
                tile = self.map_source(source, spec, ctx)
            except Exception as e:
                logger.debug(f"[TABS] {spec.category.value}: mapping failed: {e}")
                tile = None
            if tile is None:
                continue

            if not tile.is_valid():
                invalid += 1
                continue

            if spec.exclude_subject and same_user(tile.user, subject):
                self_authored += 1
                continue

            key = tile.dedup_key()
            author_key = (tile.user, tile.description)
            if key in seen or (spec.dedup_by_author and author_key in seen_authors):
                duplicates += 1
                continue
            seen.add(key)
            seen_authors.add(author_key)
            tiles.append(tile)

        logger.info(
            f"[TABS] @{subject} {spec.category.value}: {len(tiles)} tile(s) "
            f"from {len(sources)} source(s); dropped invalid={invalid}, "
            f"self={self_authored}, duplicate={duplicates}"
        )
        return tiles
