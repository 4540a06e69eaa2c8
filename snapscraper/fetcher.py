"""
Document Fetcher
================
The only component that talks to the network.

- ``fetch(resource_path)``: GET a path behind the upstream/proxy base URL
- ``fetch_url(url)``: GET an absolute URL (content pages, manifests)
- ``probe(url)``: lightweight existence check (HEAD, ranged-GET fallback)

Every call returns a value (``RawDocument``, ``FetchFailure`` or
``ProbeResult``); network errors, timeouts and non-2xx statuses never raise
past this boundary.  ``asyncio.CancelledError`` is deliberately left alone so
callers can abort an in-flight request by cancelling the awaiting task.

Retry/backoff lives here and only here (``RetryPolicy``): a single retry
for transient 5xx responses or timeouts by default.
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Dict, Optional, Union
from urllib.parse import urljoin

import aiohttp

from .models import FetchFailure, ProbeResult, RawDocument
from .run_config import ScraperRunConfig

logger = logging.getLogger(__name__)

Outcome = Union[RawDocument, FetchFailure]


class RetryPolicy:
    """
    Retry logic with exponential backoff, shared by every fetcher call.
    """

    # HTTP status codes that count as transient upstream failures
    RETRYABLE_STATUS_CODES = {500, 502, 503, 504}

    def __init__(
        self,
        max_attempts: int = 2,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        exponential_base: float = 2.0,
        jitter: bool = True
    ):
        """
        Initialize the retry policy.

        Args:
            max_attempts: Total attempts including the first one (2 = one retry)
            base_delay: Delay before the first retry in seconds
            max_delay: Upper bound for any single delay
            exponential_base: Base for exponential backoff
            jitter: Add random jitter (±25%) to each delay
        """
        self.max_attempts = max(1, max_attempts)
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter

    def calculate_delay(self, attempt: int) -> float:
        """
        Calculate delay after a failed attempt.

        Args:
            attempt: Failed attempt number (0-indexed)

        Returns:
            Delay in seconds
        """
        delay = self.base_delay * (self.exponential_base ** attempt)
        delay = min(delay, self.max_delay)

        if self.jitter:
            jitter_range = delay * 0.25
            delay += random.uniform(-jitter_range, jitter_range)

        return max(0.0, delay)

    def should_retry(self, status_code: int, attempt: int, timed_out: bool = False) -> bool:
        """
        Determine if a failed attempt should be retried.

        Args:
            status_code: HTTP status code (0 when no response arrived)
            attempt: Failed attempt number (0-indexed)
            timed_out: Whether the attempt hit the timeout

        Returns:
            True if another attempt is allowed and the failure is transient
        """
        if attempt + 1 >= self.max_attempts:
            return False
        return timed_out or status_code in self.RETRYABLE_STATUS_CODES


class DocumentFetcher:
    """
    Async HTTP client for upstream documents behind a routed base URL.

    Usage::

        async with DocumentFetcher(config) as fetcher:
            outcome = await fetcher.fetch("/@alice?locale=en-US")
            if isinstance(outcome, FetchFailure):
                ...
    """

    def __init__(
        self,
        config: Optional[ScraperRunConfig] = None,
        session: Optional[aiohttp.ClientSession] = None,
        retry: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.config = config or ScraperRunConfig()
        self.base_url = self.config.upstream_base_url.rstrip("/")
        self.retry = retry or self.config.retry_policy()
        self.degraded_threshold = self.config.degraded_threshold
        self._timeout = aiohttp.ClientTimeout(total=self.config.timeout_seconds)
        self._headers: Dict[str, str] = self.config.request_headers()
        self._session = session
        self._owns_session = session is None
        self._sleep = sleep
        self.consecutive_timeouts = 0
        self.requests_sent = 0

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def __aenter__(self) -> "DocumentFetcher":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self._headers, timeout=self._timeout)
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        """Close the session if this fetcher created it."""
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None

    @property
    def degraded(self) -> bool:
        """True once the timeout budget has been exceeded repeatedly."""
        return self.consecutive_timeouts >= self.degraded_threshold

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def url_for(self, resource_path: str) -> str:
        """Join a resource path onto the upstream base URL."""
        if resource_path.startswith(("http://", "https://")):
            return resource_path
        if resource_path.startswith("/"):
            return self.base_url + resource_path
        return urljoin(self.base_url + "/", resource_path)

    async def fetch(self, resource_path: str) -> Outcome:
        """Fetch a resource path through the upstream boundary."""
        return await self._send("GET", self.url_for(resource_path))

    async def fetch_url(self, url: str) -> Outcome:
        """Fetch an absolute (or base-relative) URL."""
        return await self._send("GET", self.url_for(url))

    async def probe(self, url: str) -> ProbeResult:
        """
        Check that *url* exists without downloading it.

        Uses HEAD; servers that refuse HEAD get a one-byte ranged GET.
        """
        url = self.url_for(url)
        outcome = await self._send("HEAD", url, read_body=False)
        if isinstance(outcome, FetchFailure) and outcome.status in (405, 501):
            outcome = await self._send("GET", url, read_body=False, headers={"Range": "bytes=0-0"})

        if isinstance(outcome, FetchFailure):
            logger.debug(f"[PROBE] miss {url[:90]} ({outcome.message})")
            return ProbeResult(url=url, exists=False, status=outcome.status)

        logger.debug(f"[PROBE] hit {url[:90]} ({outcome.status}, {outcome.content_type})")
        return ProbeResult(
            url=url,
            exists=True,
            status=outcome.status,
            content_type=outcome.content_type,
        )

    # ------------------------------------------------------------------
    # Request loop
    # ------------------------------------------------------------------

    async def _send(
        self,
        method: str,
        url: str,
        read_body: bool = True,
        headers: Optional[Dict[str, str]] = None,
    ) -> Outcome:
        session = await self._get_session()
        attempt = 0

        while True:
            self.requests_sent += 1
            timed_out = False
            try:
                async with session.request(
                    method,
                    url,
                    headers=headers,
                    timeout=self._timeout,
                    allow_redirects=True,
                ) as response:
                    status = response.status
                    content_type = response.headers.get("Content-Type", "")
                    text = await response.text(errors="replace") if read_body else ""
            except asyncio.TimeoutError:
                timed_out = True
                status = 0
                self._record_timeout(url)
                failure = FetchFailure(
                    url=url,
                    status=0,
                    message=f"timed out after {self.config.timeout_seconds}s",
                    retryable=True,
                    degraded=self.degraded,
                )
            except aiohttp.ClientError as e:
                status = 0
                failure = FetchFailure(
                    url=url,
                    status=0,
                    message=f"network error: {e.__class__.__name__}: {e}",
                    retryable=True,
                    degraded=self.degraded,
                )
            else:
                self.consecutive_timeouts = 0
                if 200 <= status < 300:
                    logger.debug(f"[FETCH] {method} {url[:90]} -> {status}")
                    return RawDocument(url=url, text=text, status=status, content_type=content_type)
                failure = FetchFailure(
                    url=url,
                    status=status,
                    message=f"HTTP {status}",
                    retryable=status in RetryPolicy.RETRYABLE_STATUS_CODES or status == 429,
                )

            if self.retry.should_retry(status, attempt, timed_out=timed_out):
                delay = self.retry.calculate_delay(attempt)
                logger.warning(
                    f"[FETCH] Attempt {attempt + 1} failed for {url[:90]}: "
                    f"{failure.message}. Retrying in {delay:.2f}s..."
                )
                await self._sleep(delay)
                attempt += 1
                continue

            if method != "HEAD":
                logger.info(f"[FETCH] {method} {url[:90]} failed: {failure.message}")
            return failure

    def _record_timeout(self, url: str) -> None:
        self.consecutive_timeouts += 1
        if self.consecutive_timeouts == self.degraded_threshold:
            logger.warning(
                f"[FETCH] {self.consecutive_timeouts} consecutive timeouts "
                f"(last: {url[:90]}); upstream service degraded"
            )
