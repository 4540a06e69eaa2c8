"""
Video URL Resolver
==================
Resolves a content page's canonical URL to a playable media URL by running
the resolution strategies strictly in priority order.

The first strategy that produces a candidate passing validation wins and the
remaining strategies are never invoked.  A candidate is valid when the
strategy already verified it, when it carries a known video extension, or
when an existence probe reports video content.  Exhausting every strategy
yields ``None`` and the caller falls back to the tile thumbnail.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional, Sequence

from ..errors import ParseFailure
from ..models import RawDocument, VideoResolutionResult
from ..parser import parse_document
from ..run_config import ScraperRunConfig
from ..utils import absolute_url
from .base import Candidate, ResolutionContext, ResolutionStrategy
from .patterns import has_video_extension
from .strategies import default_strategies

if TYPE_CHECKING:
    from ..fetcher import DocumentFetcher

logger = logging.getLogger(__name__)


class VideoURLResolver:
    """
    Ordered-strategy video URL resolver.

    Usage::

        resolver = VideoURLResolver(fetcher)
        result = await resolver.resolve("https://www.snapchat.com/@alice/spotlight/abc")
        if result:
            print(result.url, result.strategy_index)
    """

    def __init__(
        self,
        fetcher: "DocumentFetcher",
        config: Optional[ScraperRunConfig] = None,
        strategies: Optional[Sequence[ResolutionStrategy]] = None,
    ):
        self.fetcher = fetcher
        self.config = config or ScraperRunConfig()
        self.strategies: List[ResolutionStrategy] = list(
            strategies if strategies is not None else default_strategies()
        )

    async def _build_context(self, canonical_url: str) -> ResolutionContext:
        ctx = ResolutionContext(
            canonical_url=canonical_url,
            fetcher=self.fetcher,
            cdn_templates=tuple(self.config.cdn_templates),
        )
        outcome = await self.fetcher.fetch_url(canonical_url)
        if not isinstance(outcome, RawDocument):
            logger.info(f"[VIDEO] document unavailable ({outcome.message}); "
                        f"document strategies will find nothing")
            return ctx
        try:
            ctx.document = parse_document(outcome.text, url=canonical_url)
        except ParseFailure as e:
            logger.info(f"[VIDEO] document unparseable: {e}")
        return ctx

    @staticmethod
    def _needs_probe(candidate: Candidate) -> bool:
        return not (candidate.verified or has_video_extension(candidate.url))

    async def _is_valid(self, candidate: Candidate) -> bool:
        if not self._needs_probe(candidate):
            return True
        probe = await self.fetcher.probe(candidate.url)
        return probe.is_video

    async def resolve(self, canonical_url: str) -> Optional[VideoResolutionResult]:
        """
        Resolve *canonical_url* to a playable media URL.

        Args:
            canonical_url: Absolute (or upstream-relative) content page URL

        Returns:
            VideoResolutionResult, or None when every strategy is exhausted
        """
        url = absolute_url(canonical_url, self.config.upstream_base_url)
        if not url:
            logger.warning(f"[VIDEO] not a resolvable URL: {canonical_url!r}")
            return None

        ctx = await self._build_context(url)

        for strategy in self.strategies:
            try:
                candidates = await strategy.candidates(ctx)
            except Exception as e:
                logger.warning(f"[VIDEO] strategy #{strategy.index} {strategy.name} failed: {e}")
                continue

            probes_left = self.config.max_probes_per_strategy
            for candidate in candidates:
                if self._needs_probe(candidate):
                    if probes_left <= 0:
                        logger.debug(f"[VIDEO] #{strategy.index} {strategy.name}: probe limit reached, "
                                     f"skipping {candidate.url}")
                        continue
                    probes_left -= 1
                try:
                    valid = await self._is_valid(candidate)
                except Exception as e:
                    logger.debug(f"[VIDEO] validation of {candidate.url} failed: {e}")
                    continue
                if valid:
                    logger.info(
                        f"[VIDEO] resolved via #{strategy.index} {strategy.name}: {candidate.url}"
                    )
                    return VideoResolutionResult(
                        url=candidate.url,
                        strategy_index=strategy.index,
                        confidence=strategy.confidence,
                        strategy_name=strategy.name,
                    )
            logger.debug(f"[VIDEO] #{strategy.index} {strategy.name}: no valid candidate")

        logger.info(f"[VIDEO] all {len(self.strategies)} strategies exhausted for {url}")
        return None
