"""
Video Resolution Strategies
===========================
The eight ordered heuristics that locate a playable media URL for a content
page.  Each returns candidates; the resolver validates them and stops at the
first strategy that yields a valid one.

 #  Strategy               Source
 1  structured payloads    __NEXT_DATA__ / application/json / JSON-LD
 2  data attributes        data-*video* / data-*media* / data-*src* / data-*url*
 3  media elements         <video src>, <source src>
 4  background images     poster/thumb asset rewritten to its video twin
 5  client state blobs     __APOLLO_STATE__, __INITIAL_STATE__, ...
 6  CDN reconstruction     content id plugged into known CDN templates
 7  script text patterns   quoted / escaped / bare URLs, de-obfuscated
 8  streaming manifests    first segment of an HLS or DASH manifest
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, List, Optional
from urllib.parse import urljoin, urlparse

from lxml import etree

from ..models import RawDocument
from ..parser import decode_json, script_text
from ..utils import absolute_url, background_image_url, is_http_url
from .base import Candidate, ResolutionContext, ResolutionStrategy
from .patterns import (
    DIMENSION_RE,
    EXCLUDED_HINT_RE,
    GENERIC_KEYS,
    IMAGE_EXT_RE,
    MANIFEST_EXT,
    PROGRESSIVE_EXT,
    STATE_ASSIGN_RE,
    STATE_NAMES,
    VIDEO_KEYS,
    has_video_extension,
    is_cdn_url,
    iter_json_leaves,
    leaf_key,
    looks_like_video_url,
    path_is_excluded,
)

logger = logging.getLogger(__name__)


def _unique(urls: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for url in urls:
        if url and url not in seen:
            seen.add(url)
            result.append(url)
    return result


def _same_host(url: str, base_url: str) -> bool:
    """Links back to the upstream site are pages, never media."""
    return urlparse(url).netloc.lower() == urlparse(base_url).netloc.lower()


def _unescape_js(text: str) -> str:
    """Undo the escaping JSON/JS string literals apply to URLs."""
    return (
        text.replace("\\u002F", "/")
        .replace("\\u002f", "/")
        .replace("\\u0026", "&")
        .replace("\\/", "/")
    )


# ---------------------------------------------------------------------------
# 1. Structured payloads
# ---------------------------------------------------------------------------

class StructuredPayloadStrategy(ResolutionStrategy):
    index = 1
    name = "structured-payload"
    confidence = 0.95

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        ranked, other = [], []
        for payload in ctx.json_payloads():
            for path, value in iter_json_leaves(payload):
                if not isinstance(value, str) or leaf_key(path) not in VIDEO_KEYS:
                    continue
                if path_is_excluded(path):
                    continue
                url = absolute_url(value, ctx.base_url)
                if not is_http_url(url) or IMAGE_EXT_RE.search(url):
                    continue
                if has_video_extension(url):
                    ranked.append(url)
                elif is_cdn_url(url) or (
                    leaf_key(path) not in GENERIC_KEYS and not _same_host(url, ctx.base_url)
                ):
                    other.append(url)
        return [Candidate(url) for url in _unique(ranked + other)]


# ---------------------------------------------------------------------------
# 2. Data attributes
# ---------------------------------------------------------------------------

_DATA_ATTR_RE = re.compile(r"^data-.*(video|media|src|url)", re.IGNORECASE)


class DataAttributeStrategy(ResolutionStrategy):
    index = 2
    name = "data-attribute"
    confidence = 0.85

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        if ctx.document is None:
            return []
        urls = []
        for node in ctx.document.find_all(True):
            for attr, value in node.attrs.items():
                if not isinstance(value, str) or not _DATA_ATTR_RE.match(attr):
                    continue
                if EXCLUDED_HINT_RE.search(attr):
                    continue
                url = absolute_url(value, ctx.base_url)
                if not is_http_url(url) or IMAGE_EXT_RE.search(url):
                    continue
                if has_video_extension(url) or is_cdn_url(url):
                    urls.append(url)
        return [Candidate(url) for url in _unique(urls)]


# ---------------------------------------------------------------------------
# 3. Media elements
# ---------------------------------------------------------------------------

class MediaElementStrategy(ResolutionStrategy):
    index = 3
    name = "media-element"
    confidence = 0.9

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        if ctx.document is None:
            return []
        urls = []
        for node in ctx.document.select('video[src], video source[src], source[type^="video"][src]'):
            url = absolute_url(node.get("src"), ctx.base_url)
            if is_http_url(url):
                urls.append(url)
        return [Candidate(url) for url in _unique(urls)]


# ---------------------------------------------------------------------------
# 4. Background-image heuristic
# ---------------------------------------------------------------------------

_STILL_SEGMENT_RE = re.compile(r"/(poster|posters|thumb|thumbs|thumbnail|thumbnails)/", re.IGNORECASE)
_STILL_EXT_RE = re.compile(r"\.(jpe?g|png|webp|gif|avif)(?=$|\?|#)", re.IGNORECASE)


def video_twin(image_url: str) -> Optional[str]:
    """``.../thumb/abc.jpg`` -> ``.../video/abc.mp4``; None when nothing changes."""
    twin = _STILL_SEGMENT_RE.sub("/video/", image_url)
    twin = _STILL_EXT_RE.sub(".mp4", twin)
    return twin if twin != image_url else None


class BackgroundImageStrategy(ResolutionStrategy):
    index = 4
    name = "background-image"
    confidence = 0.6

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        if ctx.document is None:
            return []
        images = []
        for node in ctx.document.select('[style*="background"]'):
            url = absolute_url(background_image_url(node.get("style")), ctx.base_url)
            if url and re.search(r"poster|thumb", url, re.IGNORECASE):
                images.append(url)

        for image in _unique(images):
            twin = video_twin(image)
            if not twin:
                continue
            probe = await ctx.fetcher.probe(twin)
            if probe.is_video:
                return [Candidate(twin, verified=True)]
            logger.debug(f"[VIDEO] background twin rejected: {twin} (status {probe.status})")
        return []


# ---------------------------------------------------------------------------
# 5. Client-side state blobs
# ---------------------------------------------------------------------------

def _decode_state_blobs(text: str) -> List[Any]:
    blobs = []
    decoder = json.JSONDecoder()
    for match in STATE_ASSIGN_RE.finditer(text):
        start = match.end()
        if start >= len(text) or text[start] not in "{[":
            continue
        try:
            data, _ = decoder.raw_decode(text, start)
        except (ValueError, RecursionError):
            logger.debug(f"[VIDEO] undecodable {match.group(1)} blob")
            continue
        blobs.append(data)
    return blobs


class StateBlobStrategy(ResolutionStrategy):
    index = 5
    name = "state-blob"
    confidence = 0.8

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        if ctx.document is None:
            return []
        blobs: List[Any] = []
        for script in ctx.document.find_all("script"):
            if script.get("id") in STATE_NAMES:
                data = decode_json(script_text(script))
                if data is not None:
                    blobs.append(data)
        for text in ctx.inline_scripts():
            blobs.extend(_decode_state_blobs(text))

        urls = []
        for blob in blobs:
            for path, value in iter_json_leaves(blob):
                if path_is_excluded(path):
                    continue
                if looks_like_video_url(value):
                    urls.append(value)
        return [Candidate(url) for url in _unique(urls)]


# ---------------------------------------------------------------------------
# 6. CDN pattern reconstruction
# ---------------------------------------------------------------------------

_CONTENT_ID_RE = re.compile(r"/(?:spotlight|story|s|p|v)/([A-Za-z0-9_-]{4,})")
_ID_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_-]{6,}$")


def content_id(canonical_url: str) -> Optional[str]:
    """Content identifier embedded in a canonical URL."""
    path = urlparse(canonical_url).path
    match = _CONTENT_ID_RE.search(path)
    if match:
        return match.group(1)
    last = path.rstrip("/").rsplit("/", 1)[-1]
    if _ID_SEGMENT_RE.match(last) and not last.startswith("@"):
        return last
    return None


class CdnPatternStrategy(ResolutionStrategy):
    index = 6
    name = "cdn-pattern"
    confidence = 0.7

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        cid = content_id(ctx.canonical_url)
        if not cid:
            return []
        for template in ctx.cdn_templates:
            url = template.format(content_id=cid)
            probe = await ctx.fetcher.probe(url)
            if probe.is_video:
                return [Candidate(url, verified=True)]
        logger.debug(f"[VIDEO] no CDN template served content id {cid}")
        return []


# ---------------------------------------------------------------------------
# 7. Script text patterns
# ---------------------------------------------------------------------------

_QUOTED_URL_RE = re.compile(
    r"[\"'](https?://[^\"'\s]+?\." + PROGRESSIVE_EXT + r"(?:\?[^\"'\s]*)?)[\"']",
    re.IGNORECASE,
)
_BARE_URL_RE = re.compile(
    r"https?://[^\s\"'<>()\\]+?\." + PROGRESSIVE_EXT + r"(?=$|[?#\s\"'<>()\\,;])(?:\?[^\s\"'<>()\\]*)?",
    re.IGNORECASE,
)
_HEX_ESCAPE_RE = re.compile(r"\\x([0-9a-fA-F]{2})")
_HEX_RUN_RE = re.compile(r"\b(?:[0-9a-fA-F]{2}){20,}\b")


def _deobfuscate(text: str) -> str:
    """Decode ``\\xNN`` escapes and long hex runs into readable text."""
    decoded = _HEX_ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), text)
    pieces = []
    for run in _HEX_RUN_RE.findall(decoded):
        try:
            pieces.append(bytes.fromhex(run).decode("utf-8", errors="ignore"))
        except ValueError:
            continue
    return "\n".join([decoded] + pieces)


def _acceptable_script_url(url: str) -> bool:
    return not EXCLUDED_HINT_RE.search(url) and not DIMENSION_RE.search(url)


def scan_script_text(text: str) -> List[str]:
    """Progressive video URLs mentioned in a script body."""
    text = _unescape_js(text)
    urls = [m.group(1) for m in _QUOTED_URL_RE.finditer(text)]
    urls.extend(m.group(0) for m in _BARE_URL_RE.finditer(text))
    return [u for u in _unique(urls) if _acceptable_script_url(u)]


class ScriptPatternStrategy(ResolutionStrategy):
    index = 7
    name = "script-pattern"
    confidence = 0.65

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        urls: List[str] = []
        scripts = ctx.inline_scripts()
        for text in scripts:
            urls.extend(scan_script_text(text))
        if not urls:
            for text in scripts:
                urls.extend(scan_script_text(_deobfuscate(text)))
        return [Candidate(url) for url in _unique(urls)]


# ---------------------------------------------------------------------------
# 8. Streaming manifests
# ---------------------------------------------------------------------------

_MANIFEST_URL_RE = re.compile(
    r"https?://[^\s\"'<>()\\]+?\." + MANIFEST_EXT + r"(?=$|[?#\s\"'<>()\\,;])(?:\?[^\s\"'<>()\\]*)?",
    re.IGNORECASE,
)


def first_hls_entry(text: str) -> Optional[str]:
    """First URI line of an HLS playlist."""
    for line in text.splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            return line
    return None


def _local(tag: Any) -> str:
    return etree.QName(tag).localname if isinstance(tag, str) else ""


def first_dash_segment(text: str, manifest_url: str) -> Optional[str]:
    """
    First media URL of a DASH MPD: the first ``BaseURL`` or the first
    segment of the first ``SegmentTemplate``.
    """
    try:
        root = etree.fromstring(text.encode("utf-8"))
    except (etree.XMLSyntaxError, ValueError) as e:
        logger.debug(f"[VIDEO] unparseable MPD {manifest_url}: {e}")
        return None

    base = manifest_url
    for node in root.iter():
        if _local(node.tag) == "BaseURL" and (node.text or "").strip():
            return urljoin(base, node.text.strip())

    for node in root.iter():
        if _local(node.tag) != "SegmentTemplate":
            continue
        media = node.get("media")
        if not media:
            continue
        representation = None
        for candidate in root.iter():
            if _local(candidate.tag) == "Representation":
                representation = candidate
                break
        rep_id = representation.get("id", "") if representation is not None else ""
        bandwidth = representation.get("bandwidth", "") if representation is not None else ""
        number = node.get("startNumber", "1")
        segment = (
            media.replace("$RepresentationID$", rep_id)
            .replace("$Bandwidth$", bandwidth)
            .replace("$Time$", "0")
        )
        segment = re.sub(
            r"\$Number(?:%0(\d+)d)?\$",
            lambda m: number.zfill(int(m.group(1))) if m.group(1) else number,
            segment,
        )
        return urljoin(base, segment)
    return None


class ManifestStrategy(ResolutionStrategy):
    index = 8
    name = "streaming-manifest"
    confidence = 0.75

    async def _fetch_text(self, ctx: ResolutionContext, url: str) -> Optional[str]:
        outcome = await ctx.fetcher.fetch_url(url)
        if isinstance(outcome, RawDocument):
            return outcome.text
        logger.debug(f"[VIDEO] manifest fetch failed: {url} ({outcome.message})")
        return None

    async def _resolve_hls(self, ctx: ResolutionContext, url: str, text: str) -> Optional[str]:
        entry = first_hls_entry(text)
        if not entry:
            return None
        entry_url = urljoin(url, entry)
        if "#EXT-X-STREAM-INF" in text and ".m3u8" in entry_url.lower():
            # Master playlist: follow one variant level
            variant = await self._fetch_text(ctx, entry_url)
            if variant is None:
                return None
            segment = first_hls_entry(variant)
            return urljoin(entry_url, segment) if segment else None
        return entry_url

    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        manifests: List[str] = []
        for text in ctx.inline_scripts():
            manifests.extend(m.group(0) for m in _MANIFEST_URL_RE.finditer(_unescape_js(text)))

        for url in _unique(manifests):
            text = await self._fetch_text(ctx, url)
            if not text:
                continue
            if ".mpd" in urlparse(url).path.lower():
                segment = first_dash_segment(text, url)
            else:
                segment = await self._resolve_hls(ctx, url, text)
            if segment:
                return [Candidate(segment, verified=True)]
        return []


def default_strategies() -> List[ResolutionStrategy]:
    """All strategies in priority order."""
    return [
        StructuredPayloadStrategy(),
        DataAttributeStrategy(),
        MediaElementStrategy(),
        BackgroundImageStrategy(),
        StateBlobStrategy(),
        CdnPatternStrategy(),
        ScriptPatternStrategy(),
        ManifestStrategy(),
    ]
