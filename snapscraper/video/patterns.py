"""
Video URL Patterns
==================
Shared regular expressions, key lists and the bounded JSON walk used by the
resolution strategies.
"""

from __future__ import annotations

import re
from typing import Any, Iterator, Optional, Tuple
from urllib.parse import urlparse

from ..utils import is_http_url

# Maximum nesting depth expanded when walking decoded JSON
MAX_JSON_DEPTH = 10

VIDEO_EXT_RE = re.compile(r"\.(mp4|webm|mov|m4v|m3u8|mpd|ts|m4s)(\?|#|$)", re.IGNORECASE)

# Progressive files only; manifests are handled by the manifest strategy
PROGRESSIVE_EXT = r"(?:mp4|webm|mov|m4v)"
MANIFEST_EXT = r"(?:m3u8|mpd)"

IMAGE_EXT_RE = re.compile(r"\.(jpe?g|png|gif|webp|avif|bmp|svg)(\?|#|$)", re.IGNORECASE)

# Keys / attribute names / URL fragments that point at stills, not video
EXCLUDED_HINT_RE = re.compile(r"thumb|poster|preview|icon", re.IGNORECASE)

# 540x960-style dimension tokens mark resized image assets
DIMENSION_RE = re.compile(r"\d{2,4}x\d{2,4}")

CDN_HOST_HINTS = (
    "sc-cdn.net",
    "snapcdn.",
    "bolt-gcdn.",
    "cf-st.",
)

VIDEO_KEYS = frozenset(k.lower() for k in (
    "contentUrl",
    "videoUrl",
    "video_url",
    "videoSrc",
    "mediaUrl",
    "media_url",
    "mediaSrc",
    "playbackUrl",
    "playback_url",
    "playableUrl",
    "streamUrl",
    "stream_url",
    "hlsUrl",
    "hls_url",
    "dashUrl",
    "mp4Url",
    "downloadUrl",
    "snapMediaUrl",
    "embedUrl",
    "src",
    "url",
))

# Keys too generic to trust without a video extension or CDN host
GENERIC_KEYS = frozenset({"url", "src", "embedurl"})

STATE_NAMES = (
    "__APOLLO_STATE__",
    "__INITIAL_STATE__",
    "__PRELOADED_STATE__",
    "__REDUX_STATE__",
    "__NUXT__",
    "__STATE__",
)

STATE_ASSIGN_RE = re.compile(
    r"(?:window\.)?(" + "|".join(re.escape(n) for n in STATE_NAMES) + r")\s*=\s*"
)


def has_video_extension(url: Optional[str]) -> bool:
    return bool(url) and VIDEO_EXT_RE.search(url) is not None


def is_cdn_url(url: Optional[str]) -> bool:
    if not is_http_url(url):
        return False
    host = urlparse(url).netloc.lower()
    return any(hint in host for hint in CDN_HOST_HINTS)


def is_still_image(url: str) -> bool:
    """Image extension, still-asset hint or dimension token."""
    return bool(
        IMAGE_EXT_RE.search(url)
        or EXCLUDED_HINT_RE.search(url)
        or DIMENSION_RE.search(urlparse(url).path)
    )


def looks_like_video_url(value: Any) -> bool:
    """An http(s) URL with a video extension, or a non-image CDN asset."""
    if not is_http_url(value):
        return False
    if has_video_extension(value):
        return not EXCLUDED_HINT_RE.search(value)
    return is_cdn_url(value) and not is_still_image(value)


def iter_json_leaves(data: Any, max_depth: int = MAX_JSON_DEPTH) -> Iterator[Tuple[Tuple[str, ...], Any]]:
    """
    Yield ``(path, value)`` for every scalar in *data*.

    Explicit-stack walk: containers deeper than *max_depth* are not
    expanded and a container already visited is never walked twice.
    """
    stack = [((), data, 0)]
    seen = set()
    while stack:
        path, node, depth = stack.pop()
        if isinstance(node, (dict, list)):
            if depth > max_depth or id(node) in seen:
                continue
            seen.add(id(node))
            items = node.items() if isinstance(node, dict) else enumerate(node)
            children = [(path + (str(key),), value, depth + 1) for key, value in items]
            stack.extend(reversed(children))
        else:
            yield path, node


def leaf_key(path: Tuple[str, ...]) -> str:
    """Nearest non-index segment of a JSON path, lower-cased."""
    for segment in reversed(path):
        if not segment.isdigit():
            return segment.lower()
    return ""


def path_is_excluded(path: Tuple[str, ...]) -> bool:
    return any(EXCLUDED_HINT_RE.search(segment) for segment in path if not segment.isdigit())
