"""
Tests for text, counter and URL helpers.
"""

import pytest

from snapscraper.utils import (
    absolute_url,
    background_image_url,
    first_srcset_url,
    format_count,
    hashtag_for,
    normalize_subject,
    parse_count,
    profile_category_label,
    profile_path,
    split_counters,
    user_from_href,
)


# ====================================================================
# Counters
# ====================================================================

class TestCounters:

    def test_split_counters_extracts_three_tokens(self):
        counters, description = split_counters("Sunset run 12K 3K 500")
        assert counters == ["12K", "3K", "500"]
        assert description == "Sunset run"

    def test_split_counters_decimal_suffix(self):
        counters, _ = split_counters("1.2M 45K 7")
        assert counters == ["1.2M", "45K", "7"]

    def test_split_counters_ignores_digits_inside_words(self):
        counters, description = split_counters("mp4 trip2024 10K")
        assert counters == ["10K"]
        assert description == "mp4 trip2024"

    @pytest.mark.parametrize("raw,expected", [
        ("12,743,200", 12743200), ("12.7M", 12700000), ("3K", 3000),
        (950, 950), ("", None), ("abc", None), (None, None),
    ])
    def test_parse_count(self, raw, expected):
        assert parse_count(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("12743200", "13M"), (12400, "12K"), (950, "950"), ("1,500", "2K"), (None, None),
    ])
    def test_format_count(self, raw, expected):
        assert format_count(raw) == expected


# ====================================================================
# Subjects and URLs
# ====================================================================

class TestSubjectsAndUrls:

    def test_normalize_subject(self):
        assert normalize_subject(" @alice ") == "alice"
        assert normalize_subject("bob") == "bob"

    def test_profile_path(self):
        assert profile_path("alice") == "/@alice?locale=en-US"
        assert profile_path("@alice", "fr-FR", "Spotlight") == "/@alice?locale=fr-FR&tab=Spotlight"

    def test_absolute_url(self):
        base = "https://www.snapchat.com"
        assert absolute_url("/@alice/spotlight/x", base) == "https://www.snapchat.com/@alice/spotlight/x"
        assert absolute_url("//cdn.example.com/a.jpg", base) == "https://cdn.example.com/a.jpg"
        assert absolute_url("https://other.example/a", base) == "https://other.example/a"
        assert absolute_url("javascript:void(0)", base) is None
        assert absolute_url("", base) is None

    def test_user_from_href(self):
        assert user_from_href("/@alice/spotlight/abc") == "alice"
        assert user_from_href("/spotlight/abc") is None

    def test_first_srcset_url(self):
        assert first_srcset_url("https://a/1.jpg 1x, https://a/2.jpg 2x") == "https://a/1.jpg"
        assert first_srcset_url(None) is None

    def test_background_image_url(self):
        style = "width: 10px; background-image: url('https://a/thumb.jpg');"
        assert background_image_url(style) == "https://a/thumb.jpg"
        assert background_image_url("color: red") is None

    def test_profile_category_label(self):
        assert profile_category_label("public-profile-subcategory-v3-artist") == "Artist"
        assert profile_category_label(None) is None

    def test_hashtag_strips_trailing_digits(self):
        assert hashtag_for("dave123") == "#dave"
        assert hashtag_for("@alice") == "#alice"
