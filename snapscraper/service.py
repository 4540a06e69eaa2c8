"""
Profile Scraper Service
=======================
Wires fetcher, parser, normalizer, cache, availability checker and video
resolver into the API callers use.

Flow for one ``get_tab(subject, category, locale)``::

    results cache ──hit──▶ tiles
        │ miss
        ▼
    documents cache ──miss──▶ DocumentFetcher.fetch(/@subject?locale=..&tab=..)
        │
        ▼
    parse_document ──▶ TabContentNormalizer.normalize ──▶ tiles (cached)

Failures never escape: a ``FetchFailure`` or ``ParseFailure`` aborts only
that category and comes back on ``TabResult.failure``.

``load_tab`` adds the stale-response guard: every request for a
(subject, category) pair gets a monotonically increasing id and only the
newest request's result is applied to the caller-visible state.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Awaitable, Callable, Dict, Hashable, List, Optional, Tuple, Union

from bs4 import BeautifulSoup

from .availability import CategoryAvailability
from .cache import ResponseCache
from .categories import CategoryRegistry
from .errors import FetchError, ParseFailure
from .fetcher import DocumentFetcher
from .models import (
    Category,
    ContentTile,
    FetchFailure,
    ProfileRecord,
    RawDocument,
    TabResult,
    VideoResolutionResult,
)
from .normalizer import TabContentNormalizer
from .parser import parse_document
from .profile import extract_profile
from .run_config import ScraperRunConfig
from .scheduler import CooperativeScheduler
from .utils import normalize_subject, profile_path
from .video import VideoURLResolver

logger = logging.getLogger(__name__)


class RequestTracker:
    """Monotonic request ids per key; only the newest id is current."""

    def __init__(self):
        self._ids = itertools.count(1)
        self._latest: Dict[Hashable, int] = {}

    def begin(self, key: Hashable) -> int:
        request_id = next(self._ids)
        self._latest[key] = request_id
        return request_id

    def is_current(self, key: Hashable, request_id: int) -> bool:
        return self._latest.get(key) == request_id

    def latest(self, key: Hashable) -> Optional[int]:
        return self._latest.get(key)


class ProfileScraper:
    """
    Public entry point of the extraction core.

    Usage::

        async with ProfileScraper(ScraperRunConfig.from_env()) as scraper:
            profile = await scraper.get_profile("alice")
            spotlight = await scraper.get_tab("alice", Category.SPOTLIGHT)
            video = await scraper.resolve_video(spotlight.tiles[0].canonical_url)
    """

    def __init__(
        self,
        config: Optional[ScraperRunConfig] = None,
        fetcher: Optional[DocumentFetcher] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        background_validation: bool = True,
    ):
        """
        Args:
            config: Run configuration (defaults to ``ScraperRunConfig()``)
            fetcher: Document fetcher; one is created (and closed) when omitted
            clock: Time source for both caches
            sleep: Used by the background scheduler between validation steps
            background_validation: Start the scheduler worker automatically.
                When False, queued validation only runs on
                ``scheduler.run_pending()``.
        """
        self.config = config or ScraperRunConfig()
        self.fetcher = fetcher or DocumentFetcher(self.config)
        self._owns_fetcher = fetcher is None
        self.background_validation = background_validation

        self.normalizer = TabContentNormalizer(self.config.upstream_base_url)
        self.results = ResponseCache(self.config.cache_ttl_seconds, clock=clock, name="results")
        self.documents = ResponseCache(self.config.cache_ttl_seconds, clock=clock, name="documents")
        self.scheduler = CooperativeScheduler(self.config.validation_step_delay, sleep=sleep)
        self.availability = CategoryAvailability(
            self._load_tree,
            self.normalizer,
            self.scheduler,
            validation_timeout=self.config.validation_timeout,
        )
        self.resolver = VideoURLResolver(self.fetcher, self.config)
        self.tracker = RequestTracker()
        self._visible: Dict[Tuple[str, Category], TabResult] = {}

    async def __aenter__(self) -> "ProfileScraper":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self.scheduler.stop()
        if self._owns_fetcher:
            await self.fetcher.close()

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def _document(self, subject: str, category: Category, locale: str) -> RawDocument:
        """Raw document a category lives on; shared by main-page categories."""
        tab = CategoryRegistry.get(category).tab

        async def produce() -> RawDocument:
            outcome = await self.fetcher.fetch(profile_path(subject, locale, tab))
            if isinstance(outcome, FetchFailure):
                raise FetchError(outcome)
            return outcome

        return await self.documents.get_or_fetch((subject, tab, locale), produce)

    async def _load_tree(self, subject: str, category: Category, locale: Optional[str] = None) -> BeautifulSoup:
        document = await self._document(subject, category, locale or self.config.locale)
        return parse_document(document.text, url=document.url)

    def _start_validation(self, subject: str) -> None:
        if self.background_validation:
            self.scheduler.start()
        self.availability.ensure_validation(subject)

    def _failed(self, subject: str, category: Optional[Category], locale: str, error: Exception) -> TabResult:
        label = category.value if category else "?"
        if isinstance(error, FetchError):
            failure = error.failure
        elif isinstance(error, ParseFailure):
            failure = FetchFailure(
                url=error.url,
                status=0,
                message=f"parse failure: {error}",
                retryable=False,
            )
        elif isinstance(error, ValueError) and category is None:
            failure = FetchFailure(url="", status=0, message=str(error), retryable=False)
        else:
            logger.error(f"[SERVICE] @{subject} {label} ({locale}) unexpected {type(error).__name__}: {error}")
            failure = FetchFailure(
                url="",
                status=0,
                message=f"unexpected error: {type(error).__name__}",
                retryable=False,
            )
        logger.warning(f"[SERVICE] @{subject} {label} ({locale}) failed: {failure.message}")
        return TabResult(subject=subject, category=category, locale=locale, failure=failure)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def get_profile(self, subject: str, locale: Optional[str] = None) -> TabResult:
        """Profile header of *subject* (``TabResult.profile``)."""
        subject = normalize_subject(subject)
        locale = locale or self.config.locale
        if not subject:
            return TabResult(subject=subject, category=Category.PROFILE, locale=locale,
                             failure=FetchFailure(url="", message="empty subject", retryable=False))
        self._start_validation(subject)

        async def produce() -> ProfileRecord:
            tree = await self._load_tree(subject, Category.PROFILE, locale)
            return extract_profile(tree, subject)

        try:
            profile = await self.results.get_or_fetch((subject, Category.PROFILE, locale), produce)
        except Exception as e:
            return self._failed(subject, Category.PROFILE, locale, e)
        return TabResult(subject=subject, category=Category.PROFILE, locale=locale, profile=profile)

    async def get_tab(
        self,
        subject: str,
        category: Union[Category, str],
        locale: Optional[str] = None,
    ) -> TabResult:
        """
        Tiles of one category for *subject*.

        Args:
            subject: Username (a leading '@' is ignored)
            category: ``Category`` or its name
            locale: Upstream locale (defaults to the configured one)

        Returns:
            TabResult with ``tiles`` or ``failure`` set; an unknown
            category name is a non-retryable failure
        """
        try:
            category = Category.parse(category)
        except ValueError as e:
            return self._failed(normalize_subject(subject), None, locale or self.config.locale, e)
        if category is Category.PROFILE:
            return await self.get_profile(subject, locale)

        subject = normalize_subject(subject)
        locale = locale or self.config.locale
        if not subject:
            return TabResult(subject=subject, category=category, locale=locale,
                             failure=FetchFailure(url="", message="empty subject", retryable=False))
        self._start_validation(subject)

        if self.availability.is_empty(subject, category):
            logger.info(f"[SERVICE] @{subject} {category.value}: validated empty, not fetching")
            return TabResult(subject=subject, category=category, locale=locale)

        async def produce() -> List[ContentTile]:
            tree = await self._load_tree(subject, category, locale)
            return self.normalizer.normalize(tree, subject, category)

        try:
            tiles = await self.results.get_or_fetch((subject, category, locale), produce)
        except Exception as e:
            return self._failed(subject, category, locale, e)
        return TabResult(subject=subject, category=category, locale=locale, tiles=list(tiles))

    async def load_tab(
        self,
        subject: str,
        category: Union[Category, str],
        locale: Optional[str] = None,
    ) -> TabResult:
        """
        ``get_tab`` guarded against out-of-order completion.

        The result is applied to ``current_tab`` only when no newer request
        for the same (subject, category) started meanwhile; otherwise it is
        returned with ``stale=True`` and discarded.
        """
        try:
            category = Category.parse(category)
        except ValueError as e:
            return self._failed(normalize_subject(subject), None, locale or self.config.locale, e)
        key = (normalize_subject(subject), category)
        request_id = self.tracker.begin(key)

        result = await self.get_tab(subject, category, locale)
        result.request_id = request_id

        if self.tracker.is_current(key, request_id):
            self._visible[key] = result
        else:
            result.stale = True
            logger.info(
                f"[SERVICE] discarded stale result #{request_id} for @{key[0]} {category.value} "
                f"(newest is #{self.tracker.latest(key)})"
            )
        return result

    def current_tab(self, subject: str, category: Union[Category, str]) -> Optional[TabResult]:
        """Last result applied by ``load_tab``; None for unknown categories."""
        try:
            category = Category.parse(category)
        except ValueError:
            return None
        return self._visible.get((normalize_subject(subject), category))

    async def available_categories(self, subject: str, timeout: Optional[float] = None) -> List[Category]:
        """Categories with content (only settled ones when validation misses *timeout*)."""
        subject = normalize_subject(subject)
        self._start_validation(subject)
        return await self.availability.available_categories(subject, timeout)

    def first_available(self, subject: str, preferred: Union[Category, str]) -> Optional[Category]:
        try:
            preferred = Category.parse(preferred)
        except ValueError:
            preferred = Category.SPOTLIGHT
        return self.availability.first_available(normalize_subject(subject), preferred)

    async def resolve_video(self, canonical_url: str) -> Optional[VideoResolutionResult]:
        """Playable media URL for a tile, or None (use the thumbnail)."""
        return await self.resolver.resolve(canonical_url)

    def health(self) -> dict:
        self.results.purge_expired()
        self.documents.purge_expired()
        return {
            'degraded': self.fetcher.degraded,
            'consecutiveTimeouts': self.fetcher.consecutive_timeouts,
            'requestsSent': self.fetcher.requests_sent,
            'caches': {
                'results': self.results.stats().to_dict(),
                'documents': self.documents.stats().to_dict(),
            },
            'scheduler': {
                'running': self.scheduler.running,
                'pending': self.scheduler.pending,
            },
        }

    async def check_upstream(self) -> dict:
        """Reachability of the upstream root (one HEAD, ranged-GET fallback)."""
        base_url = self.config.upstream_base_url
        probe = await self.fetcher.probe(base_url)
        if not probe.exists:
            logger.warning(f"[SERVICE] upstream {base_url} unreachable (status {probe.status})")
        return {
            'upstream': base_url,
            'reachable': probe.exists,
            'status': probe.status,
            'degraded': self.fetcher.degraded,
        }
