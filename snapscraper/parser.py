"""
Structured Tree Parser
Turns raw document text into a navigable BeautifulSoup tree and decodes
embedded JSON payloads.
"""

import json
import logging
import re
from typing import Any, Iterator, Optional

from bs4 import BeautifulSoup

from .errors import ParseFailure

logger = logging.getLogger(__name__)

_BS_PARSER = "lxml"

# <!-- ... --> or <![CDATA[ ... ]]> wrappers some pages put around JSON
_JSON_WRAPPER_RE = re.compile(r"^\s*(?:<!--|<!\[CDATA\[)\s*|\s*(?:-->|\]\]>)\s*$")


def parse_document(html: str, url: str = "") -> BeautifulSoup:
    """
    Parse markup into a tree.

    Args:
        html: Raw document text
        url: Source URL (only used in error messages)

    Returns:
        BeautifulSoup tree

    Raises:
        ParseFailure: If the text is empty or yields no elements
    """
    if not html or not html.strip():
        raise ParseFailure("empty document", url=url)

    soup = BeautifulSoup(html, _BS_PARSER)

    # ── Parse-quality guard ──────────────────────────────────────
    # lxml occasionally produces an empty tree from valid HTML.
    # If the body has text but lxml found zero <a> tags, retry with
    # html.parser.
    body = soup.find('body')
    body_len = len(body.get_text(strip=True)) if body else 0
    a_count = len(soup.find_all('a', href=True))
    if body_len > 200 and a_count == 0 and '<a ' in html:
        logger.info(
            f"[PARSER] lxml produced 0 links from {body_len} chars "
            f"of body text, retrying with html.parser"
        )
        soup = BeautifulSoup(html, 'html.parser')

    if soup.find(True) is None:
        raise ParseFailure("document contains no elements", url=url)

    return soup


def decode_json(text: Optional[str]) -> Optional[Any]:
    """Decode a JSON payload; None for empty or malformed text."""
    if not text:
        return None
    text = _JSON_WRAPPER_RE.sub("", text).strip()
    if not text:
        return None
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        # RecursionError: nesting deeper than the decoder can follow
        logger.debug(f"[PARSER] malformed JSON payload ({len(text)} chars)")
        return None


def script_text(script) -> str:
    """Text of a <script> node (``.string`` is None for some parsers)."""
    if script is None:
        return ""
    return script.string if script.string is not None else script.get_text()


def iter_json_scripts(soup: BeautifulSoup, selector: str) -> Iterator[Any]:
    """Yield the decoded JSON of every <script> matching *selector*."""
    for script in soup.select(selector):
        data = decode_json(script_text(script))
        if data is not None:
            yield data


def next_data(soup: BeautifulSoup) -> Optional[Any]:
    """Decoded ``__NEXT_DATA__`` payload, if the page carries one."""
    return decode_json(script_text(soup.find('script', id='__NEXT_DATA__')))
