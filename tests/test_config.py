"""
Tests for ScraperRunConfig population and converters.
"""

import os

import pytest

from snapscraper.fetcher import RetryPolicy
from snapscraper.run_config import ScraperRunConfig

_VARS = (
    "SNAPSCRAPER_UPSTREAM_BASE_URL",
    "SNAPSCRAPER_LOCALE",
    "SNAPSCRAPER_CACHE_TTL_SECONDS",
    "SNAPSCRAPER_MAX_ATTEMPTS",
    "SNAPSCRAPER_RETRY_JITTER",
    "SNAPSCRAPER_CDN_TEMPLATES",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in _VARS:
        monkeypatch.delenv(name, raising=False)


class TestRunConfig:

    def test_defaults(self):
        cfg = ScraperRunConfig()
        assert cfg.locale == "en-US"
        assert cfg.max_attempts == 2
        assert cfg.cache_ttl_seconds == 300.0
        assert cfg.max_probes_per_strategy == 3
        assert len(cfg.cdn_templates) == 3

    def test_templates_are_not_shared_between_instances(self):
        first = ScraperRunConfig()
        first.cdn_templates.append("https://example.invalid/{content_id}.mp4")
        assert len(ScraperRunConfig().cdn_templates) == 3

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("SNAPSCRAPER_LOCALE", "fr-FR")
        monkeypatch.setenv("SNAPSCRAPER_CACHE_TTL_SECONDS", "60")
        monkeypatch.setenv("SNAPSCRAPER_MAX_ATTEMPTS", "3")
        monkeypatch.setenv("SNAPSCRAPER_RETRY_JITTER", "false")
        monkeypatch.setenv("SNAPSCRAPER_MAX_PROBES_PER_STRATEGY", "5")
        monkeypatch.setenv("SNAPSCRAPER_CDN_TEMPLATES", "https://a/{content_id}.mp4, https://b/{content_id}.mp4")

        cfg = ScraperRunConfig.from_env()

        assert cfg.locale == "fr-FR"
        assert cfg.cache_ttl_seconds == 60.0
        assert cfg.max_attempts == 3
        assert cfg.retry_jitter is False
        assert cfg.max_probes_per_strategy == 5
        assert cfg.cdn_templates == ["https://a/{content_id}.mp4", "https://b/{content_id}.mp4"]

    def test_blank_env_values_keep_defaults(self, monkeypatch):
        monkeypatch.setenv("SNAPSCRAPER_LOCALE", "  ")
        assert ScraperRunConfig.from_env().locale == "en-US"

    def test_env_file_is_loaded(self, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("SNAPSCRAPER_UPSTREAM_BASE_URL=http://proxy.local:8080\n")
        try:
            cfg = ScraperRunConfig.from_env(str(env_file))
            assert cfg.upstream_base_url == "http://proxy.local:8080"
        finally:
            os.environ.pop("SNAPSCRAPER_UPSTREAM_BASE_URL", None)

    def test_real_environment_wins_over_env_file(self, monkeypatch, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("SNAPSCRAPER_LOCALE=de-DE\n")
        monkeypatch.setenv("SNAPSCRAPER_LOCALE", "fr-FR")
        assert ScraperRunConfig.from_env(str(env_file)).locale == "fr-FR"

    def test_retry_policy_converter(self):
        cfg = ScraperRunConfig(max_attempts=4, retry_base_delay=1.0, retry_max_delay=2.0, retry_jitter=False)
        policy = cfg.retry_policy()
        assert isinstance(policy, RetryPolicy)
        assert policy.max_attempts == 4
        assert [policy.calculate_delay(a) for a in range(3)] == [1.0, 2.0, 2.0]

    def test_request_headers(self):
        headers = ScraperRunConfig(accept_language="fr-FR").request_headers()
        assert headers["Accept-Language"] == "fr-FR"
        assert "Mozilla" in headers["User-Agent"]
