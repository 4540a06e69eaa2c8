"""
Tests for tab content normalisation.

Covers:
  1. Spotlight counters and selector fallbacks
  2. Tagged self-filter, payload mapping and (user, description) dedup
  3. Related / stories / lenses mappings
  4. Tile invariants and URL dedup for every category
"""

import pytest

from snapscraper.categories import CategoryRegistry
from snapscraper.mappers import DEFAULT_PROFILE_IMAGE
from snapscraper.models import (
    AnchorElement,
    Category,
    LensTile,
    RelatedTile,
    ScriptPayload,
    SpotlightTile,
    StoryTile,
    TaggedTile,
)
from snapscraper.normalizer import TabContentNormalizer
from snapscraper.parser import parse_document

from tests.fakes import BASE_URL, json_ld, page, spotlight_anchor, video_object


@pytest.fixture
def normalizer():
    return TabContentNormalizer(BASE_URL)


def _tiles(normalizer, html, subject, category):
    return normalizer.normalize(parse_document(html), subject, category)


# ====================================================================
# 1. Spotlight
# ====================================================================

class TestSpotlight:

    def test_two_tiles_with_counters(self, normalizer):
        """Two qualifying anchors with '12K 3K 500' yield two tiles with those counters."""
        html = page(
            spotlight_anchor("alice", "abc111", "Morning run 12K 3K 500")
            + spotlight_anchor("alice", "abc222", "Evening swim 12K 3K 500")
        )
        tiles = _tiles(normalizer, html, "alice", Category.SPOTLIGHT)

        assert len(tiles) == 2
        for tile in tiles:
            assert isinstance(tile, SpotlightTile)
            assert (tile.views, tile.comments, tile.shares) == ("12K", "3K", "500")
            assert tile.user == "alice"
        assert tiles[0].description == "Morning run"
        assert tiles[0].canonical_url == f"{BASE_URL}/@alice/spotlight/abc111"
        assert tiles[0].thumbnail_url == "https://cf-st.sc-cdn.net/t/abc111.jpg"

    def test_duplicate_links_are_collapsed(self, normalizer):
        html = page(
            spotlight_anchor("alice", "same", "First 1K 2 3")
            + spotlight_anchor("alice", "same", "First 1K 2 3")
        )
        assert len(_tiles(normalizer, html, "alice", Category.SPOTLIGHT)) == 1

    def test_legacy_tile_markup_fallback(self, normalizer):
        """Without spotlight links the data-testid tiles are used."""
        html = page(
            '<div data-testid="spotlight-tile" data-thumbnail="https://cf-st.sc-cdn.net/t/z.jpg">'
            '<span class="author">zed</span><span class="caption">Hello there</span>'
            '<span>1K 20 3</span></div>'
        )
        tiles = _tiles(normalizer, html, "alice", Category.SPOTLIGHT)

        assert len(tiles) == 1
        tile = tiles[0]
        assert tile.user == "zed"
        assert tile.description == "Hello there"
        assert (tile.views, tile.comments, tile.shares) == ("1K", "20", "3")
        assert tile.thumbnail_url == "https://cf-st.sc-cdn.net/t/z.jpg"
        assert tile.canonical_url is None

    def test_no_matching_nodes_yields_empty_list(self, normalizer):
        assert _tiles(normalizer, page("<p>Nothing to see</p>"), "alice", Category.SPOTLIGHT) == []


# ====================================================================
# 2. Tagged
# ====================================================================

class TestTagged:

    def test_self_mention_is_filtered(self, normalizer):
        """A tagged document whose only mention is by the subject yields nothing."""
        html = page('<div>' + spotlight_anchor("bob", "own1", "My clip 1K 2 3") + '</div>')
        assert _tiles(normalizer, html, "bob", Category.TAGGED) == []

    def test_self_filter_is_case_insensitive(self, normalizer):
        html = page(json_ld(video_object("BOB", "Mine", "https://www.snapchat.com/@BOB/spotlight/x",
                                         "#bob fun")))
        assert _tiles(normalizer, html, "bob", Category.TAGGED) == []

    def test_video_object_payloads(self, normalizer):
        items = {
            "@context": "https://schema.org",
            "@type": "ItemList",
            "itemListElement": [
                {"@type": "ListItem", "position": 1,
                 "item": video_object("eve", "Dance with dave", f"{BASE_URL}/@eve/spotlight/e1",
                                      "#dave #dance", views=1500)},
                {"@type": "ListItem", "position": 2,
                 "item": video_object("mal", "Unrelated", f"{BASE_URL}/@mal/spotlight/m1", "#other")},
            ],
        }
        html = page(json_ld(items) + json_ld({"@type": "ImageObject", "url": "https://x/y.jpg"}))
        tiles = _tiles(normalizer, html, "dave123", Category.TAGGED)

        assert len(tiles) == 1
        tile = tiles[0]
        assert isinstance(tile, TaggedTile)
        assert tile.user == "eve"
        assert tile.description == "Dance with dave"
        assert tile.views == "2K"
        assert tile.canonical_url == f"{BASE_URL}/@eve/spotlight/e1"
        assert tile.thumbnail_url == f"{BASE_URL}/@eve/spotlight/e1/thumb.jpg"

    def test_graph_payloads_are_flattened(self, normalizer):
        graph = {"@graph": [video_object("eve", "Clip", f"{BASE_URL}/@eve/spotlight/g1", "#dave")]}
        tiles = _tiles(normalizer, page(json_ld(graph)), "dave", Category.TAGGED)
        assert [t.user for t in tiles] == ["eve"]

    def test_dedup_by_user_and_description(self, normalizer):
        """Same author and caption under two different links count once."""
        html = page(
            '<div>' + spotlight_anchor("eve", "v1", "") + '<p>Shoutout #dave</p></div>'
            '<div>' + spotlight_anchor("eve", "v2", "") + '<p>Shoutout #dave</p></div>'
            '<div>' + spotlight_anchor("ann", "v3", "") + '<p>Another mention of dave here</p></div>'
        )
        tiles = _tiles(normalizer, html, "dave", Category.TAGGED)

        assert [(t.user, t.description) for t in tiles] == [
            ("eve", "Shoutout #dave"),
            ("ann", "Another mention of dave here"),
        ]

    def test_payload_and_anchor_sources_combined(self, normalizer):
        html = page(
            json_ld(video_object("eve", "From payload", f"{BASE_URL}/@eve/spotlight/p1", "#dave"))
            + '<div>' + spotlight_anchor("ann", "a1", "") + '<p>From the anchor #dave</p></div>'
        )
        users = [t.user for t in _tiles(normalizer, html, "dave", Category.TAGGED)]
        assert users == ["eve", "ann"]


# ====================================================================
# 3. Related / stories / lenses
# ====================================================================

class TestOtherCategories:

    def test_related_profiles(self, normalizer):
        html = page(
            '<a href="/add/carol?ref=1"><img src="https://cf-st.sc-cdn.net/p/carol.jpg">'
            '<h5>Carol C</h5><p>Artist</p></a>'
            '<a href="/add/dan"><h5>Dan</h5></a>'
            '<a href="/add/nameless"><p>No heading</p></a>'
        )
        tiles = _tiles(normalizer, html, "alice", Category.RELATED)

        assert len(tiles) == 2
        carol, dan = tiles
        assert isinstance(carol, RelatedTile) and carol.is_profile is True
        assert carol.user == "Carol C"
        assert carol.description == "Artist"
        assert carol.thumbnail_url == "https://cf-st.sc-cdn.net/p/carol.jpg"
        assert dan.description == "@dan"
        assert dan.thumbnail_url == DEFAULT_PROFILE_IMAGE.format(username="dan")

    def test_story_cards(self, normalizer):
        html = page(
            '<div data-testid="story-card"><img src="https://cf-st.sc-cdn.net/s/1.jpg">'
            '<div class="title">Weekend trip</div></div>'
            '<div data-testid="story-card"><span class="author">guest</span><h3>Q&amp;A</h3></div>'
            '<div data-testid="story-card"><img src="https://cf-st.sc-cdn.net/s/3.jpg"></div>'
        )
        tiles = _tiles(normalizer, html, "alice", Category.STORIES)

        assert [(t.user, t.description) for t in tiles] == [
            ("alice", "Weekend trip"),
            ("guest", "Q&A"),
        ]
        assert all(isinstance(t, StoryTile) and t.is_story for t in tiles)

    def test_lenses_belong_to_subject(self, normalizer):
        html = page(
            '<a href="/unlock/?type=SNAPCODE&uuid=abc"><img src="https://cf-st.sc-cdn.net/l/1.png">'
            '<p>Sparkle lens</p></a>'
        )
        tiles = _tiles(normalizer, html, "@alice", Category.LENSES)

        assert len(tiles) == 1
        assert isinstance(tiles[0], LensTile)
        assert tiles[0].user == "alice"
        assert tiles[0].description == "Sparkle lens"


# ====================================================================
# 4. Invariants
# ====================================================================

class TestTileInvariants:

    def test_thumbnail_alone_is_never_valid(self):
        for cls in (SpotlightTile, TaggedTile, LensTile, StoryTile, RelatedTile):
            assert cls(thumbnail_url="https://x/y.jpg").is_valid() is False

    def test_story_needs_user_and_description(self):
        assert StoryTile(user="a").is_valid() is False
        assert StoryTile(description="d").is_valid() is False
        assert StoryTile(user="a", description="d").is_valid() is True

    def test_related_needs_user(self):
        assert RelatedTile(description="d").is_valid() is False
        assert RelatedTile(user="u").is_valid() is True

    def test_other_tiles_need_user_or_description(self):
        assert SpotlightTile(description="d").is_valid() is True
        assert LensTile(user="u").is_valid() is True

    def test_every_output_tile_satisfies_its_invariant(self, normalizer):
        html = page(
            spotlight_anchor("alice", "s1", "Clip 1K 2 3")
            + '<a href="/add/x"><h5>X</h5></a><a href="/add/y"></a>'
            + '<div data-testid="story-card"><img src="https://a/b.jpg"></div>'
        )
        tree = parse_document(html)
        for spec in CategoryRegistry.specs():
            if not spec.has_tiles:
                continue
            for tile in normalizer.normalize(tree, "alice", spec.category):
                assert tile.is_valid()
                assert tile.category is spec.category

    def test_to_dict_uses_camel_case(self):
        data = SpotlightTile(thumbnail_url="t", user="u", canonical_url="c", views="1K").to_dict()
        assert data["category"] == "spotlight"
        assert data["thumbnailUrl"] == "t"
        assert data["canonicalUrl"] == "c"
        assert data["views"] == "1K"


class TestSourceDispatch:

    def test_map_source_dispatches_on_kind(self, normalizer):
        from snapscraper.mappers import MappingContext

        spec = CategoryRegistry.get(Category.TAGGED)
        ctx = MappingContext(subject="dave", base_url=BASE_URL)
        payload = ScriptPayload(video_object("eve", "Clip", f"{BASE_URL}/@eve/spotlight/k", "#dave"))
        tree = parse_document(page(spotlight_anchor("ann", "k2", "Hi 1K 2 3")))
        anchor = AnchorElement(tree.select_one("a"))

        assert payload.kind == "script" and anchor.kind == "anchor"
        assert normalizer.map_source(payload, spec, ctx).user == "eve"
        assert normalizer.map_source(anchor, spec, ctx).user == "ann"

    def test_payload_of_wrong_shape_is_ignored(self, normalizer):
        from snapscraper.mappers import MappingContext

        spec = CategoryRegistry.get(Category.TAGGED)
        ctx = MappingContext(subject="dave", base_url=BASE_URL)
        payload = ScriptPayload({"@type": "ImageObject", "keywords": "#dave", "name": "x"})
        assert normalizer.map_source(payload, spec, ctx) is None
