"""
Category Availability
=====================
Decides which content categories a subject actually has, so empty tabs can
be hidden and the caller can fall back to the first populated one.

Per (subject, category) a small state machine is kept::

    UNVALIDATED ──▶ CHECKING ──▶ AVAILABLE
         ▲              │    └─▶ EMPTY
         └──────────────┘  (probe failed: unknown, retried by a later pass)

Validation runs as a low-priority job on the ``CooperativeScheduler``:

1. Fetch the main profile page and look for real navigation
   (``[role="tab"]``, ``a[href*="tab="]``, tab buttons).  Categories named
   there are AVAILABLE, the rest EMPTY; main-page categories (stories,
   related) also count as AVAILABLE when their tiles are present.
2. No navigation found: probe every category by running its extraction,
   pausing between probes.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set, Tuple
from urllib.parse import parse_qs, urlparse

from bs4 import BeautifulSoup

from .categories import CategoryRegistry
from .errors import FetchError, ParseFailure, ValidationTimeout
from .models import TILE_CATEGORIES, Category
from .normalizer import TabContentNormalizer
from .scheduler import CooperativeScheduler
from .utils import clean_text, normalize_subject

logger = logging.getLogger(__name__)

# Loads and parses the document a category lives on; raises FetchError / ParseFailure
TreeLoader = Callable[[str, Category], Awaitable[BeautifulSoup]]

NAVIGATION_SELECTOR = (
    '[role="tab"], a[href*="tab="], '
    '[role="tablist"] button, .tab-navigation button, button.tab-button'
)


class AvailabilityState(str, Enum):
    UNVALIDATED = "unvalidated"
    CHECKING = "checking"
    AVAILABLE = "available"
    EMPTY = "empty"


_ALLOWED: Dict[AvailabilityState, Set[AvailabilityState]] = {
    AvailabilityState.UNVALIDATED: {AvailabilityState.CHECKING},
    AvailabilityState.CHECKING: {
        AvailabilityState.AVAILABLE,
        AvailabilityState.EMPTY,
        AvailabilityState.UNVALIDATED,
    },
    AvailabilityState.AVAILABLE: set(),
    AvailabilityState.EMPTY: set(),
}


def inspect_navigation(tree: BeautifulSoup) -> Optional[Set[Category]]:
    """
    Categories named by the page's tab navigation.

    Returns:
        The set of categories found, or None when the page has no
        recognisable navigation at all.
    """
    found: Set[Category] = set()
    for node in tree.select(NAVIGATION_SELECTOR):
        labels = [clean_text(node.get_text(" "))]
        href = node.get("href")
        if href:
            labels.extend(parse_qs(urlparse(href).query).get("tab", []))
        for label in labels:
            spec = CategoryRegistry.by_label(label)
            if spec is not None:
                found.add(spec.category)
    return found or None


class CategoryAvailability:
    """
    Tracks and validates category availability per subject.
    """

    def __init__(
        self,
        load_tree: TreeLoader,
        normalizer: TabContentNormalizer,
        scheduler: CooperativeScheduler,
        validation_timeout: float = 10.0,
    ):
        self._load_tree = load_tree
        self._normalizer = normalizer
        self._scheduler = scheduler
        self.validation_timeout = validation_timeout
        self._states: Dict[Tuple[str, Category], AvailabilityState] = {}
        self._validations: Dict[str, asyncio.Future] = {}

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def state(self, subject: str, category: Category) -> AvailabilityState:
        return self._states.get((normalize_subject(subject), category), AvailabilityState.UNVALIDATED)

    def _transition(self, subject: str, category: Category, new: AvailabilityState) -> bool:
        current = self.state(subject, category)
        if new not in _ALLOWED[current]:
            logger.debug(
                f"[VALIDATE] @{subject} {category.value}: ignored {current.value} -> {new.value}"
            )
            return False
        self._states[(subject, category)] = new
        return True

    def _settle(self, subject: str, category: Category, has_content: bool) -> None:
        new = AvailabilityState.AVAILABLE if has_content else AvailabilityState.EMPTY
        if self._transition(subject, category, new):
            logger.debug(f"[VALIDATE] @{subject} {category.value}: {new.value}")

    def is_empty(self, subject: str, category: Category) -> bool:
        """True only once validation has shown the category has no content."""
        return self.state(subject, category) is AvailabilityState.EMPTY

    def _unresolved(self, subject: str) -> List[Category]:
        return [
            c for c in Category
            if self.state(subject, c) in (AvailabilityState.UNVALIDATED, AvailabilityState.CHECKING)
        ]

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def ensure_validation(self, subject: str) -> asyncio.Future:
        """Schedule validation for *subject* unless one is pending or settled."""
        subject = normalize_subject(subject)
        existing = self._validations.get(subject)
        if existing is not None and (not existing.done() or not self._unresolved(subject)):
            return existing
        future = self._scheduler.submit(lambda: self.validate(subject), name=f"validate:@{subject}")
        self._validations[subject] = future
        return future

    async def validate(self, subject: str) -> List[Category]:
        """Background job: settle every category of *subject*."""
        subject = normalize_subject(subject)
        pending = [c for c in Category if self._transition(subject, c, AvailabilityState.CHECKING)]
        if not pending:
            return self.available(subject)
        logger.info(f"[VALIDATE] @{subject}: checking {len(pending)} categor{'y' if len(pending) == 1 else 'ies'}")

        try:
            return await self._validate_pending(subject)
        except Exception as e:
            logger.warning(f"[VALIDATE] @{subject}: validation aborted ({type(e).__name__}: {e}); will retry later")
            return self.available(subject)
        finally:
            # Nothing may stay CHECKING once this pass is over (cancelled included)
            self._reset(subject, [
                c for c in pending if self.state(subject, c) is AvailabilityState.CHECKING
            ])

    async def _validate_pending(self, subject: str) -> List[Category]:
        try:
            main = await self._load_tree(subject, Category.PROFILE)
        except (FetchError, ParseFailure) as e:
            logger.warning(f"[VALIDATE] @{subject}: main page unavailable ({e}); will retry later")
            return self.available(subject)

        self._settle(subject, Category.PROFILE, True)

        navigation = inspect_navigation(main)
        if navigation is not None:
            logger.info(
                f"[VALIDATE] @{subject}: navigation lists "
                f"{sorted(c.value for c in navigation)}"
            )
            for category in TILE_CATEGORIES:
                spec = CategoryRegistry.get(category)
                has_content = category in navigation
                if not has_content and spec.tab is None:
                    has_content = bool(self._normalizer.normalize(main, subject, category))
                self._settle(subject, category, has_content)
        else:
            logger.info(f"[VALIDATE] @{subject}: no navigation found, probing content")
            for category in TILE_CATEGORIES:
                if self.state(subject, category) is not AvailabilityState.CHECKING:
                    continue
                await self._scheduler.pause()
                await self._probe(subject, category, main)

        available = self.available(subject)
        logger.info(f"[VALIDATE] @{subject}: available {[c.value for c in available]}")
        return available

    async def _probe(self, subject: str, category: Category, main: BeautifulSoup) -> None:
        spec = CategoryRegistry.get(category)
        try:
            tree = main if spec.tab is None else await self._load_tree(subject, category)
        except (FetchError, ParseFailure) as e:
            logger.debug(f"[VALIDATE] @{subject} {category.value}: probe failed ({e})")
            self._reset(subject, [category])
            return
        self._settle(subject, category, bool(self._normalizer.normalize(tree, subject, category)))

    def _reset(self, subject: str, categories: Iterable[Category]) -> None:
        for category in categories:
            self._transition(subject, category, AvailabilityState.UNVALIDATED)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def available(self, subject: str) -> List[Category]:
        """Categories currently known to have content, in display order."""
        return [c for c in Category if self.state(subject, c) is AvailabilityState.AVAILABLE]

    async def _await_validation(self, subject: str, timeout: float) -> None:
        future = self.ensure_validation(subject)
        try:
            await asyncio.wait_for(asyncio.shield(future), timeout)
        except asyncio.TimeoutError:
            raise ValidationTimeout(subject, timeout) from None

    async def available_categories(self, subject: str, timeout: Optional[float] = None) -> List[Category]:
        """
        Wait (up to *timeout*) for validation and return the populated categories.

        On timeout only the categories already shown AVAILABLE are returned;
        the rest are treated as unknown.
        """
        subject = normalize_subject(subject)
        timeout = self.validation_timeout if timeout is None else timeout
        try:
            await self._await_validation(subject, timeout)
        except ValidationTimeout as e:
            logger.warning(f"[VALIDATE] {e}; returning settled categories only")
        except Exception as e:
            logger.warning(f"[VALIDATE] @{subject}: validation failed: {e}")
        return self.available(subject)

    def first_available(self, subject: str, preferred: Category) -> Optional[Category]:
        """*preferred* if it has content, else the first populated tile category."""
        if self.state(subject, preferred) is AvailabilityState.AVAILABLE:
            return preferred
        for category in TILE_CATEGORIES:
            if self.state(subject, category) is AvailabilityState.AVAILABLE:
                return category
        return None
