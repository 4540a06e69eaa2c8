"""
Failure Taxonomy
================
Exceptions used inside the extraction core.

Upstream-data failures are local: the fetcher *returns* a ``FetchFailure``
value instead of raising, the parser raises ``ParseFailure`` which the
service converts into a per-category failure, and ``ValidationTimeout`` is
caught by the availability checker and treated as "category unknown".
Nothing defined here is meant to escape ``ProfileScraper``.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import FetchFailure


class ScraperError(Exception):
    """Base class for all snapscraper exceptions."""


class ParseFailure(ScraperError):
    """Document text could not be turned into a navigable tree."""

    def __init__(self, message: str, url: str = ""):
        super().__init__(message)
        self.url = url


class FetchError(ScraperError):
    """Carries a ``FetchFailure`` out of a cache producer.

    Raised only so the cache does not store the failure; the service
    catches it and hands the wrapped ``FetchFailure`` back to the caller.
    """

    def __init__(self, failure: "FetchFailure"):
        super().__init__(failure.message)
        self.failure = failure


class ValidationTimeout(ScraperError):
    """Background category validation missed the caller's deadline."""

    def __init__(self, subject: str, timeout: float):
        super().__init__(
            f"category validation for '{subject}' did not finish within {timeout:.1f}s"
        )
        self.subject = subject
        self.timeout = timeout
