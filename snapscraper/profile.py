"""
Profile Header Extraction
=========================
Builds the immutable ``ProfileRecord`` for a subject from the main profile
page.

Every field is a cascade.  Embedded ``__NEXT_DATA__`` is the most precise
source and is tried first; Open Graph / plain meta tags and visible markup
follow.  A field whose cascade never fires is simply left empty.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from operator import attrgetter
from typing import Any, List, Optional

from bs4 import BeautifulSoup

from .cascade import ExtractionRule, css_rule, extract_field, json_path_rule, meta_rule, regex_rule
from .models import ProfileRecord
from .parser import next_data
from .utils import (
    SUBSCRIBER_TEXT_RE,
    first_srcset_url,
    format_count,
    is_http_url,
    normalize_subject,
    profile_category_label,
)

logger = logging.getLogger(__name__)

PROFILE_INFO = "props.pageProps.userProfile.publicProfileInfo"


@dataclass
class ProfilePage:
    """A parsed profile page with its ``__NEXT_DATA__`` decoded once."""
    soup: BeautifulSoup
    next_data: Optional[Any] = None

    @classmethod
    def from_tree(cls, soup: BeautifulSoup) -> "ProfilePage":
        return cls(soup=soup, next_data=next_data(soup))


_soup = attrgetter("soup")
_payload = attrgetter("next_data")


def _https_only(value: Optional[str]) -> Optional[str]:
    return value if value and value.startswith("https://") else None


def _http_only(value: Optional[str]) -> Optional[str]:
    return value if is_http_url(value) else None


# ---------------------------------------------------------------------------
# Field cascades
# ---------------------------------------------------------------------------

DISPLAY_NAME_RULES: List[ExtractionRule] = [
    json_path_rule(f"{PROFILE_INFO}.title", payload=_payload),
    meta_rule("og:title", scope=_soup),
    css_rule("title", scope=_soup),
    css_rule("h1", scope=_soup),
]

BIO_RULES: List[ExtractionRule] = [
    json_path_rule(f"{PROFILE_INFO}.bio", payload=_payload),
    meta_rule("og:description", scope=_soup),
    meta_rule("description", scope=_soup),
]

AVATAR_RULES: List[ExtractionRule] = [
    css_rule('img[alt="Profile Picture"]', "srcset", scope=_soup,
             transform=lambda v: _https_only(first_srcset_url(v))),
    meta_rule("og:image", scope=_soup),
    css_rule('img[data-testid="profile-image"]', "src", scope=_soup, transform=_http_only),
]

FOLLOWER_RULES: List[ExtractionRule] = [
    json_path_rule(f"{PROFILE_INFO}.subscriberCount", payload=_payload, transform=format_count),
    json_path_rule("props.pageProps.publicProfile.subscriberCount", payload=_payload,
                   transform=format_count),
    json_path_rule("props.initialProps.pageProps.profile.subscriberCount", payload=_payload,
                   transform=format_count),
    regex_rule(SUBSCRIBER_TEXT_RE, text=lambda page: page.soup.get_text(" "), transform=format_count),
]

CATEGORY_RULES: List[ExtractionRule] = [
    json_path_rule(f"{PROFILE_INFO}.subcategoryStringId", payload=_payload,
                   transform=profile_category_label),
]


def extract_profile(tree: BeautifulSoup, subject: str) -> ProfileRecord:
    """
    Extract the profile header of *subject* from its main page.

    Args:
        tree: Parsed main profile page
        subject: Username, used as the display-name fallback

    Returns:
        ProfileRecord (never raises on missing fields)
    """
    page = ProfilePage.from_tree(tree)
    record = ProfileRecord(
        display_name=extract_field(page, DISPLAY_NAME_RULES) or normalize_subject(subject),
        bio=extract_field(page, BIO_RULES),
        avatar_url=extract_field(page, AVATAR_RULES),
        follower_count=extract_field(page, FOLLOWER_RULES),
        category=extract_field(page, CATEGORY_RULES),
    )
    logger.info(
        f"[PROFILE] @{normalize_subject(subject)}: name='{record.display_name}', "
        f"followers={record.follower_count}, category={record.category}"
    )
    return record
