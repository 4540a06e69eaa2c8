"""
Utility Functions
Text cleanup, engagement-counter parsing, and upstream URL helpers.
"""

import logging
import re
from typing import List, Optional, Tuple
from urllib.parse import urlencode, urljoin, urlparse

logger = logging.getLogger(__name__)

# Engagement counters as rendered in tile text: "12K", "3.4M", "500"
COUNTER_RE = re.compile(r"(?<![A-Za-z0-9.,])\d+(?:[.,]\d+)?[kKmMbB]?(?![A-Za-z0-9])")

# "@username" segment inside a profile/content href
HREF_USER_RE = re.compile(r"/@([^/?#]+)")

# url(...) inside an inline style attribute
BACKGROUND_URL_RE = re.compile(r"background(?:-image)?\s*:[^;]*url\(\s*['\"]?([^'\")]+)['\"]?\s*\)", re.IGNORECASE)

SUBSCRIBER_TEXT_RE = re.compile(r"(\d+(?:,\d+)*)\s*subscribers?", re.IGNORECASE)

_SUBCATEGORY_PREFIX = "public-profile-subcategory-v3-"


def clean_text(text: Optional[str]) -> str:
    """Clean and normalize text content."""
    if not text:
        return ""

    # Replace multiple whitespace with single space
    text = re.sub(r'\s+', ' ', text)

    return text.strip()


def normalize_subject(subject: str) -> str:
    """Strip whitespace and a leading '@' from a username."""
    subject = (subject or "").strip()
    if subject.startswith("@"):
        subject = subject[1:]
    return subject


def profile_path(subject: str, locale: str = "en-US", tab: Optional[str] = None) -> str:
    """
    Build the upstream resource path for a profile page or one of its tabs.

    Examples:
        profile_path("alice")                   -> "/@alice?locale=en-US"
        profile_path("alice", tab="Spotlight")  -> "/@alice?locale=en-US&tab=Spotlight"
    """
    params = {"locale": locale}
    if tab:
        params["tab"] = tab
    return f"/@{normalize_subject(subject)}?{urlencode(params)}"


def absolute_url(url: Optional[str], base_url: str) -> Optional[str]:
    """Resolve *url* against *base_url*; None for empty/javascript/data URLs."""
    if not url:
        return None
    url = url.strip()
    if not url or url.lower().startswith(('javascript:', 'mailto:', 'data:', '#')):
        return None
    if url.startswith("//"):
        return "https:" + url
    return urljoin(base_url.rstrip("/") + "/", url)


def is_http_url(value: object) -> bool:
    """Check if *value* is an absolute http(s) URL string."""
    if not isinstance(value, str):
        return False
    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def user_from_href(href: Optional[str]) -> Optional[str]:
    """Extract the username from an href like ``/@alice/spotlight/abc``."""
    if not href:
        return None
    match = HREF_USER_RE.search(href)
    return match.group(1) if match else None


def split_counters(text: str) -> Tuple[List[str], str]:
    """
    Split tile text into engagement counters and the remaining description.

    Args:
        text: Visible text of a tile, e.g. ``"Sunset run 12K 3K 500"``

    Returns:
        (counters, description), e.g. ``(["12K", "3K", "500"], "Sunset run")``
    """
    text = clean_text(text)
    counters = COUNTER_RE.findall(text)
    description = clean_text(COUNTER_RE.sub(" ", text))
    return counters, description


def first_srcset_url(srcset: Optional[str]) -> Optional[str]:
    """Return the first URL of a ``srcset`` attribute (format: ``"url size, ..."``)."""
    if not srcset:
        return None
    first = srcset.split(",")[0].strip()
    url = first.split(" ")[0].strip()
    return url or None


def background_image_url(style: Optional[str]) -> Optional[str]:
    """Extract the URL of an inline ``background-image`` declaration."""
    if not style:
        return None
    match = BACKGROUND_URL_RE.search(style)
    return match.group(1).strip() if match else None


def parse_count(value: object) -> Optional[int]:
    """
    Parse a raw subscriber/view count into an integer.

    Accepts ints, digit strings with separators ("12,743,200") and compact
    forms ("12.7M", "3K").
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    text = str(value).strip().replace(",", "").replace(" ", "")
    if not text:
        return None
    multiplier = 1
    suffix = text[-1].lower()
    if suffix in ("k", "m", "b"):
        multiplier = {"k": 1_000, "m": 1_000_000, "b": 1_000_000_000}[suffix]
        text = text[:-1]
    try:
        return int(round(float(text) * multiplier))
    except ValueError:
        return None


def format_count(value: object) -> Optional[str]:
    """
    Format a count compactly: 12743200 -> "13M", 12400 -> "12K", 950 -> "950".
    """
    count = parse_count(value)
    if count is None:
        return None
    if count >= 1_000_000:
        return f"{int(count / 1_000_000 + 0.5)}M"
    if count >= 1_000:
        return f"{int(count / 1_000 + 0.5)}K"
    return str(count)


def profile_category_label(subcategory_id: Optional[str]) -> Optional[str]:
    """``"public-profile-subcategory-v3-artist"`` -> ``"Artist"``."""
    if not subcategory_id or not isinstance(subcategory_id, str):
        return None
    label = subcategory_id.replace(_SUBCATEGORY_PREFIX, "").strip()
    if not label:
        return None
    return label[0].upper() + label[1:]


def hashtag_for(subject: str) -> str:
    """Hashtag used by tagged content: the subject without trailing digits."""
    return "#" + re.sub(r"\d+$", "", normalize_subject(subject))
