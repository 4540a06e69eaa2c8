"""
Unified Run Configuration
=========================
Single source of truth for ALL scraper defaults and runtime limits.

Every subsystem (fetcher, cache, availability checker, video resolver, CLI)
reads from this object.  Environment variables and CLI flags populate it;
component-specific objects such as ``RetryPolicy`` are built *from* it via
factory methods.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

ENV_PREFIX = "SNAPSCRAPER_"


# ---------------------------------------------------------------------------
# Canonical defaults: the ONLY place these numbers live
# ---------------------------------------------------------------------------
_DEFAULTS = {
    "upstream_base_url": "https://www.snapchat.com",
    "locale": "en-US",
    "timeout_seconds": 15.0,         # per-request total timeout
    "max_attempts": 2,               # first try + one retry for transient 5xx/timeout
    "retry_base_delay": 0.5,         # seconds before the retry
    "retry_max_delay": 5.0,
    "retry_jitter": True,
    "cache_ttl_seconds": 300.0,      # 5 minutes, matches upstream staleness tolerance
    "validation_step_delay": 0.25,   # pause between background category probes
    "validation_timeout": 10.0,      # caller-visible deadline for availability
    "degraded_threshold": 3,         # consecutive timeouts before signalling degradation
    "user_agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/122.0.0.0 Safari/537.36"
    ),
    "max_probes_per_strategy": 3,    # existence checks one resolver strategy may spend
    "accept_language": "en-US,en;q=0.5",
    "cdn_templates": [
        "https://cf-st.sc-cdn.net/d/{content_id}.mp4",
        "https://bolt-gcdn.sc-cdn.net/3/{content_id}.mp4",
        "https://cf-st.sc-cdn.net/c/{content_id}.27.mp4",
    ],
}


def _env(name: str) -> Optional[str]:
    value = os.environ.get(ENV_PREFIX + name.upper())
    if value is None or value.strip() == "":
        return None
    return value.strip()


def _env_bool(value: str) -> bool:
    return value.lower() in ("1", "true", "yes", "on")


@dataclass
class ScraperRunConfig:
    """
    Unified configuration consumed by every scraper subsystem.

    Populate via:
      - ``ScraperRunConfig()``                 → all defaults
      - ``ScraperRunConfig(cache_ttl_seconds=60)`` → override one value
      - ``ScraperRunConfig.from_env()``        → from SNAPSCRAPER_* variables / .env
      - ``ScraperRunConfig.from_cli_args(ns)`` → from argparse Namespace
    """

    # ---- Upstream ----
    upstream_base_url: str = _DEFAULTS["upstream_base_url"]
    locale: str = _DEFAULTS["locale"]

    # ---- Fetch limits ----
    timeout_seconds: float = _DEFAULTS["timeout_seconds"]
    max_attempts: int = _DEFAULTS["max_attempts"]
    retry_base_delay: float = _DEFAULTS["retry_base_delay"]
    retry_max_delay: float = _DEFAULTS["retry_max_delay"]
    retry_jitter: bool = _DEFAULTS["retry_jitter"]
    degraded_threshold: int = _DEFAULTS["degraded_threshold"]

    # ---- Cache ----
    cache_ttl_seconds: float = _DEFAULTS["cache_ttl_seconds"]

    # ---- Background validation ----
    validation_step_delay: float = _DEFAULTS["validation_step_delay"]
    validation_timeout: float = _DEFAULTS["validation_timeout"]

    # ---- Identity ----
    user_agent: str = _DEFAULTS["user_agent"]
    accept_language: str = _DEFAULTS["accept_language"]

    # ---- Video resolution ----
    max_probes_per_strategy: int = _DEFAULTS["max_probes_per_strategy"]
    cdn_templates: List[str] = field(default_factory=lambda: list(_DEFAULTS["cdn_templates"]))

    # -----------------------------------------------------------------------
    # Factory helpers
    # -----------------------------------------------------------------------
    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> "ScraperRunConfig":
        """Build config from ``SNAPSCRAPER_*`` environment variables.

        A ``.env`` file (explicit path, or the nearest one found from the
        working directory) is loaded first; real environment variables win.
        """
        if env_file:
            load_dotenv(Path(env_file))
        else:
            load_dotenv()

        cfg = cls()
        for name in ("upstream_base_url", "locale", "user_agent", "accept_language"):
            value = _env(name)
            if value is not None:
                setattr(cfg, name, value)
        for name in ("timeout_seconds", "retry_base_delay", "retry_max_delay",
                     "cache_ttl_seconds", "validation_step_delay", "validation_timeout"):
            value = _env(name)
            if value is not None:
                setattr(cfg, name, float(value))
        for name in ("max_attempts", "degraded_threshold", "max_probes_per_strategy"):
            value = _env(name)
            if value is not None:
                setattr(cfg, name, int(value))
        jitter = _env("retry_jitter")
        if jitter is not None:
            cfg.retry_jitter = _env_bool(jitter)
        templates = _env("cdn_templates")
        if templates is not None:
            cfg.cdn_templates = [t.strip() for t in templates.split(",") if t.strip()]
        return cfg

    @classmethod
    def from_cli_args(cls, args) -> "ScraperRunConfig":
        """Build config from an argparse Namespace (``__main__.py``).

        Environment values are the base; flags that were given override them.
        """
        cfg = cls.from_env(getattr(args, "env_file", None))
        if getattr(args, "base_url", None):
            cfg.upstream_base_url = args.base_url
        if getattr(args, "locale", None):
            cfg.locale = args.locale
        if getattr(args, "timeout", None):
            cfg.timeout_seconds = float(args.timeout)
        if getattr(args, "retries", None) is not None:
            cfg.max_attempts = int(args.retries) + 1
        return cfg

    # -----------------------------------------------------------------------
    # Converters to component-specific objects
    # -----------------------------------------------------------------------
    def retry_policy(self):
        """Return the ``RetryPolicy`` every fetcher call goes through."""
        # Import here to avoid circular dependency
        from .fetcher import RetryPolicy
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
            jitter=self.retry_jitter,
        )

    def request_headers(self) -> dict:
        return {
            "User-Agent": self.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": self.accept_language,
        }

    # -----------------------------------------------------------------------
    # Logging helper
    # -----------------------------------------------------------------------
    def log_summary(self) -> None:
        """Emit a structured summary to the logger."""
        logger.info("=" * 60)
        logger.info("SCRAPER RUN CONFIG")
        logger.info("=" * 60)
        logger.info(f"  Upstream:         {self.upstream_base_url}")
        logger.info(f"  Locale:           {self.locale}")
        logger.info(f"  Timeout:          {self.timeout_seconds}s per request")
        logger.info(f"  Attempts:         {self.max_attempts} (backoff {self.retry_base_delay}s)")
        logger.info(f"  Cache TTL:        {self.cache_ttl_seconds}s")
        logger.info(f"  Validation:       {self.validation_step_delay}s between probes, "
                    f"{self.validation_timeout}s deadline")
        logger.info(f"  CDN Templates:    {len(self.cdn_templates)} configured")
        logger.info("=" * 60)
