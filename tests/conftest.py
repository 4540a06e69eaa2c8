"""Shared fixtures: fake network, clock and sleep."""

import logging

import pytest

from snapscraper.run_config import ScraperRunConfig

from tests.fakes import BASE_URL, FakeClock, FakeFetcher, FakeSleep


@pytest.fixture(autouse=True)
def _capture_debug_logs(caplog):
    caplog.set_level(logging.DEBUG, logger="snapscraper")


@pytest.fixture
def config():
    return ScraperRunConfig(upstream_base_url=BASE_URL, retry_jitter=False, retry_base_delay=0.01)


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_sleep():
    return FakeSleep()
