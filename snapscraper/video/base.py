"""
Resolution Strategy Contract
============================
Defines what every video-URL resolution strategy implements and the
per-request context they share.

To add a strategy:
    1. Subclass ``ResolutionStrategy`` in ``strategies.py``
    2. Set ``index``, ``name`` and ``confidence``
    3. Implement ``candidates(ctx)``
    4. Add it to ``default_strategies()`` at its priority position
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, List, Optional, Sequence

from bs4 import BeautifulSoup

from ..parser import decode_json, next_data, script_text

if TYPE_CHECKING:
    from ..fetcher import DocumentFetcher

logger = logging.getLogger(__name__)

_JSON_SCRIPT_SELECTOR = 'script[type="application/json"], script[type="application/ld+json"]'


@dataclass
class Candidate:
    """A URL a strategy believes is playable.

    ``verified`` is set when the strategy already confirmed the URL (e.g.
    through a probe), so the resolver does not need to check it again.
    """
    url: str
    verified: bool = False


@dataclass
class ResolutionContext:
    """Everything strategies may read for one canonical URL.

    The document is fetched once by the resolver; when that fetch fails
    ``document`` is None and document-based strategies find nothing.
    """
    canonical_url: str
    fetcher: "DocumentFetcher"
    document: Optional[BeautifulSoup] = None
    cdn_templates: Sequence[str] = ()
    _scripts: Optional[List[str]] = field(default=None, repr=False)
    _payloads: Optional[List[Any]] = field(default=None, repr=False)

    @property
    def base_url(self) -> str:
        return self.canonical_url

    def inline_scripts(self) -> List[str]:
        """Text of every inline ``<script>`` in document order."""
        if self._scripts is None:
            self._scripts = []
            if self.document is not None:
                for script in self.document.find_all("script"):
                    if script.get("src"):
                        continue
                    text = script_text(script)
                    if text and text.strip():
                        self._scripts.append(text)
        return self._scripts

    def json_payloads(self) -> List[Any]:
        """Decoded ``__NEXT_DATA__``, ``application/json`` and JSON-LD payloads."""
        if self._payloads is None:
            self._payloads = []
            if self.document is not None:
                data = next_data(self.document)
                if data is not None:
                    self._payloads.append(data)
                for script in self.document.select(_JSON_SCRIPT_SELECTOR):
                    if script.get("id") == "__NEXT_DATA__":
                        continue
                    data = decode_json(script_text(script))
                    if data is not None:
                        self._payloads.append(data)
        return self._payloads


class ResolutionStrategy(ABC):
    """Abstract base for the ordered video-URL strategies."""

    index: int = 0
    name: str = ""
    confidence: float = 0.0

    @abstractmethod
    async def candidates(self, ctx: ResolutionContext) -> List[Candidate]:
        """Return candidate URLs in preference order (possibly empty).

        Must not fetch the canonical document again; use ``ctx``.
        """
        ...

    def __repr__(self) -> str:
        return f"<{type(self).__name__} #{self.index} {self.name}>"
