"""
Tests for background category validation and the cooperative scheduler.

Covers:
  1. Scheduler ordering, pauses, failures and worker lifecycle
  2. Navigation-based validation
  3. Content probing when no navigation exists
  4. Timeouts, fallbacks and the state machine
"""

import asyncio

import pytest

from snapscraper.availability import (
    AvailabilityState,
    CategoryAvailability,
    inspect_navigation,
)
from snapscraper.errors import FetchError
from snapscraper.models import Category, FetchFailure
from snapscraper.normalizer import TabContentNormalizer
from snapscraper.parser import parse_document
from snapscraper.scheduler import CooperativeScheduler

from tests.fakes import BASE_URL, page, spotlight_anchor

NAV = (
    '<div role="tablist">'
    '<button role="tab">Spotlight</button>'
    '<a role="tab" href="/@alice?locale=en-US&tab=Tagged">Mentions</a>'
    '</div>'
)
RELATED = '<a href="/add/carol"><h5>Carol</h5><p>Artist</p></a>'


def _loader(pages, calls=None):
    async def load(subject, category):
        if calls is not None:
            calls.append(category)
        html = pages.get(category)
        if isinstance(html, Exception):
            raise html
        if html is None:
            raise FetchError(FetchFailure(url=f"/@{subject}", status=404, message="HTTP 404", retryable=False))
        return parse_document(html)
    return load


def _checker(pages, sleep, calls=None):
    scheduler = CooperativeScheduler(step_delay=0.25, sleep=sleep)
    checker = CategoryAvailability(_loader(pages, calls), TabContentNormalizer(BASE_URL), scheduler)
    return checker, scheduler


# ====================================================================
# 1. Scheduler
# ====================================================================

class TestCooperativeScheduler:

    @pytest.mark.asyncio
    async def test_run_pending_runs_jobs_in_order(self, fake_sleep):
        scheduler = CooperativeScheduler(step_delay=0.1, sleep=fake_sleep)
        order = []

        async def job(n):
            order.append(n)
            await scheduler.pause()
            return n * 10

        futures = [scheduler.submit(lambda n=n: job(n), name=f"job{n}") for n in (1, 2, 3)]
        assert scheduler.pending == 3

        assert await scheduler.run_pending() == 3
        assert order == [1, 2, 3]
        assert [f.result() for f in futures] == [10, 20, 30]
        assert fake_sleep.delays == [0.1, 0.1, 0.1]

    @pytest.mark.asyncio
    async def test_failing_job_sets_exception(self, fake_sleep):
        scheduler = CooperativeScheduler(sleep=fake_sleep)

        async def broken():
            raise ValueError("bad")

        future = scheduler.submit(broken)
        await scheduler.run_pending()
        with pytest.raises(ValueError):
            future.result()

    @pytest.mark.asyncio
    async def test_worker_runs_submitted_jobs(self, fake_sleep):
        scheduler = CooperativeScheduler(sleep=fake_sleep)
        scheduler.start()
        try:
            async def job():
                return "done"

            result = await asyncio.wait_for(scheduler.submit(job), 1)
            assert result == "done"
            assert scheduler.running
        finally:
            await scheduler.stop()
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_stop_cancels_queued_jobs(self, fake_sleep):
        scheduler = CooperativeScheduler(sleep=fake_sleep)

        async def job():
            return 1

        future = scheduler.submit(job)
        await scheduler.stop()
        assert future.cancelled()


# ====================================================================
# 2. Navigation
# ====================================================================

class TestNavigationValidation:

    def test_inspect_navigation_reads_labels_and_tab_params(self):
        tree = parse_document(page(NAV))
        assert inspect_navigation(tree) == {Category.SPOTLIGHT, Category.TAGGED}

    def test_inspect_navigation_without_tabs(self):
        assert inspect_navigation(parse_document(page("<p>plain</p>"))) is None

    @pytest.mark.asyncio
    async def test_navigation_decides_tab_categories(self, fake_sleep):
        calls = []
        checker, scheduler = _checker({Category.PROFILE: page(NAV + RELATED)}, fake_sleep, calls)

        checker.ensure_validation("alice")
        await scheduler.run_pending()

        assert checker.available("alice") == [
            Category.PROFILE, Category.SPOTLIGHT, Category.TAGGED, Category.RELATED,
        ]
        assert checker.state("alice", Category.LENSES) is AvailabilityState.EMPTY
        assert checker.state("alice", Category.STORIES) is AvailabilityState.EMPTY
        # Only the main page was needed
        assert calls == [Category.PROFILE]


# ====================================================================
# 3. Content probing
# ====================================================================

class TestContentProbing:

    @pytest.mark.asyncio
    async def test_probes_each_category_with_pauses(self, fake_sleep):
        pages = {
            Category.PROFILE: page(RELATED),
            Category.SPOTLIGHT: page(spotlight_anchor("alice", "s1", "Clip 1K 2 3")),
            Category.TAGGED: page("<p>no mentions</p>"),
            # lenses page fails to load
        }
        checker, scheduler = _checker(pages, fake_sleep)

        checker.ensure_validation("alice")
        await scheduler.run_pending()

        assert checker.state("alice", Category.SPOTLIGHT) is AvailabilityState.AVAILABLE
        assert checker.state("alice", Category.RELATED) is AvailabilityState.AVAILABLE
        assert checker.state("alice", Category.TAGGED) is AvailabilityState.EMPTY
        assert checker.state("alice", Category.STORIES) is AvailabilityState.EMPTY
        assert checker.state("alice", Category.LENSES) is AvailabilityState.UNVALIDATED
        assert fake_sleep.delays == [0.25] * 5

    @pytest.mark.asyncio
    async def test_failed_probe_is_retried_by_a_later_pass(self, fake_sleep):
        pages = {Category.PROFILE: page(RELATED)}
        checker, scheduler = _checker(pages, fake_sleep)

        first = checker.ensure_validation("alice")
        await scheduler.run_pending()
        assert checker.state("alice", Category.SPOTLIGHT) is AvailabilityState.UNVALIDATED

        pages[Category.SPOTLIGHT] = page(spotlight_anchor("alice", "s1", "Clip 1K 2 3"))
        second = checker.ensure_validation("alice")
        assert second is not first
        await scheduler.run_pending()
        assert checker.state("alice", Category.SPOTLIGHT) is AvailabilityState.AVAILABLE

    @pytest.mark.asyncio
    async def test_unexpected_error_does_not_strand_categories(self, fake_sleep):
        pages = {Category.PROFILE: RuntimeError("loader bug")}
        checker, scheduler = _checker(pages, fake_sleep)

        first = checker.ensure_validation("alice")
        await scheduler.run_pending()
        assert first.result() == []
        assert all(checker.state("alice", c) is AvailabilityState.UNVALIDATED for c in Category)

        pages[Category.PROFILE] = page(NAV)
        checker.ensure_validation("alice")
        await scheduler.run_pending()
        assert checker.state("alice", Category.SPOTLIGHT) is AvailabilityState.AVAILABLE

    @pytest.mark.asyncio
    async def test_error_mid_probe_keeps_settled_categories(self, fake_sleep):
        pages = {
            Category.PROFILE: page(RELATED),
            Category.SPOTLIGHT: page(spotlight_anchor("alice", "s1", "Clip 1K 2 3")),
            Category.LENSES: RuntimeError("loader bug"),
        }
        checker, scheduler = _checker(pages, fake_sleep)

        checker.ensure_validation("alice")
        await scheduler.run_pending()

        assert checker.state("alice", Category.SPOTLIGHT) is AvailabilityState.AVAILABLE
        assert checker.state("alice", Category.STORIES) is AvailabilityState.EMPTY
        for category in (Category.LENSES, Category.TAGGED, Category.RELATED):
            assert checker.state("alice", category) is AvailabilityState.UNVALIDATED

    @pytest.mark.asyncio
    async def test_main_page_failure_leaves_everything_unknown(self, fake_sleep):
        checker, scheduler = _checker({}, fake_sleep)
        checker.ensure_validation("alice")
        await scheduler.run_pending()
        assert checker.available("alice") == []
        assert all(checker.state("alice", c) is AvailabilityState.UNVALIDATED for c in Category)


# ====================================================================
# 4. Queries and state machine
# ====================================================================

class TestAvailabilityQueries:

    @pytest.mark.asyncio
    async def test_timeout_returns_only_settled_categories(self, fake_sleep):
        checker, _ = _checker({Category.PROFILE: page(NAV)}, fake_sleep)
        # Scheduler never runs, so validation cannot finish
        assert await checker.available_categories("alice", timeout=0.01) == []

    @pytest.mark.asyncio
    async def test_available_categories_after_validation(self, fake_sleep):
        checker, scheduler = _checker({Category.PROFILE: page(NAV)}, fake_sleep)
        checker.ensure_validation("@alice")
        await scheduler.run_pending()
        assert await checker.available_categories("alice", timeout=0.01) == [
            Category.PROFILE, Category.SPOTLIGHT, Category.TAGGED,
        ]

    @pytest.mark.asyncio
    async def test_first_available_falls_back_in_display_order(self, fake_sleep):
        checker, scheduler = _checker({Category.PROFILE: page(NAV)}, fake_sleep)
        checker.ensure_validation("alice")
        await scheduler.run_pending()

        assert checker.first_available("alice", Category.TAGGED) is Category.TAGGED
        assert checker.first_available("alice", Category.LENSES) is Category.SPOTLIGHT
        assert checker.first_available("nobody", Category.LENSES) is None

    def test_illegal_transition_is_ignored(self, fake_sleep):
        checker, _ = _checker({}, fake_sleep)
        assert checker._transition("alice", Category.SPOTLIGHT, AvailabilityState.AVAILABLE) is False
        assert checker.state("alice", Category.SPOTLIGHT) is AvailabilityState.UNVALIDATED
        assert checker.is_empty("alice", Category.SPOTLIGHT) is False
