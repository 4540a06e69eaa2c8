"""
Selector Cascade Engine
=======================
Ordered-fallback field extraction.

Upstream class names and page structure churn constantly, so no single
selector is authoritative.  Each logical field is described by a *cascade*:
an ordered list of cheap ``ExtractionRule``s.  Rules are evaluated strictly
in list order and evaluation stops at the first rule that fires; later
rules are never touched.

A rule *fires* when its predicate matches at least one node and a matched
node yields a non-empty value through the rule's accessor.  When no rule
fires the result is ``None`` (an extraction miss), never an exception.

Public API
----------
- ``ExtractionRule``: (predicate, accessor) pair
- ``extract_field(tree, rules)``: first non-empty value
- ``extract_nodes(tree, rules)``: node list of the first matching rule
- ``css_rule`` / ``meta_rule`` / ``json_path_rule`` / ``regex_rule`` / ``nodes_rule``
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence, Union

from .utils import clean_text

logger = logging.getLogger(__name__)


def _identity(value: Any) -> Any:
    return value


def is_empty(value: Any) -> bool:
    """None, blank strings and empty containers count as 'no value'."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


@dataclass(frozen=True)
class ExtractionRule:
    """One step of a cascade.

    ``predicate(tree)`` returns the matching nodes (possibly none);
    ``accessor(node)`` reads the value from a matched node.
    """
    name: str
    predicate: Callable[[Any], Iterable[Any]]
    accessor: Callable[[Any], Any] = _identity

    def matches(self, tree: Any) -> List[Any]:
        """Nodes matched by the predicate; [] when the predicate breaks."""
        try:
            return [node for node in (self.predicate(tree) or []) if node is not None]
        except Exception as e:
            logger.debug(f"[CASCADE] rule '{self.name}' predicate failed: {e}")
            return []

    def apply(self, tree: Any) -> Optional[Any]:
        """Return the first non-empty accessor value, or None."""
        for node in self.matches(tree):
            try:
                value = self.accessor(node)
            except Exception as e:
                logger.debug(f"[CASCADE] rule '{self.name}' accessor failed: {e}")
                continue
            if isinstance(value, str):
                value = clean_text(value)
            if not is_empty(value):
                return value
        return None


def extract_field(tree: Any, rules: Sequence[ExtractionRule]) -> Optional[Any]:
    """
    Evaluate *rules* in order and return the first firing rule's value.

    Args:
        tree: Parsed document (or any object the rules understand)
        rules: Cascade in priority order

    Returns:
        The value, or None when no rule fires
    """
    for rule in rules:
        value = rule.apply(tree)
        if value is not None:
            logger.debug(f"[CASCADE] fired '{rule.name}'")
            return value
    return None


def extract_nodes(tree: Any, rules: Sequence[ExtractionRule]) -> List[Any]:
    """
    Return the node list of the first rule whose predicate matches anything.

    Used to locate tile containers: once one selector finds nodes the
    remaining selectors are not evaluated.
    """
    for rule in rules:
        nodes = rule.matches(tree)
        if nodes:
            logger.debug(f"[CASCADE] '{rule.name}' matched {len(nodes)} node(s)")
            return nodes
    return []


# ---------------------------------------------------------------------------
# Rule constructors
# ---------------------------------------------------------------------------

def _node_value(node: Any, attr: Optional[str]) -> Any:
    if attr is None:
        return node.get_text(" ", strip=True)
    value = node.get(attr)
    if isinstance(value, list):
        return " ".join(value)
    return value


def css_rule(
    selector: str,
    attr: Optional[str] = None,
    name: Optional[str] = None,
    scope: Callable[[Any], Any] = _identity,
    transform: Callable[[Any], Any] = _identity,
) -> ExtractionRule:
    """
    Match *selector* and read an attribute (or the text when *attr* is None).

    Args:
        selector: CSS selector
        attr: Attribute name; None reads the node text
        name: Rule name for debug logs (defaults to the selector)
        scope: Maps the cascade input to the tree to select from
        transform: Post-processes the raw value (e.g. pick a srcset URL)
    """
    return ExtractionRule(
        name=name or (f"{selector}@{attr}" if attr else selector),
        predicate=lambda tree: scope(tree).select(selector),
        accessor=lambda node: transform(_node_value(node, attr)),
    )


def meta_rule(key: str, scope: Callable[[Any], Any] = _identity) -> ExtractionRule:
    """``<meta property=key>`` or ``<meta name=key>`` content."""
    return css_rule(
        f'meta[property="{key}"], meta[name="{key}"]',
        attr="content",
        name=f"meta:{key}",
        scope=scope,
    )


def _walk_path(data: Any, path: Sequence[Union[str, int]]) -> Any:
    current = data
    for key in path:
        if isinstance(current, dict):
            current = current.get(key)
        elif isinstance(current, list) and isinstance(key, int) and -len(current) <= key < len(current):
            current = current[key]
        else:
            return None
        if current is None:
            return None
    return current


def json_path_rule(
    path: str,
    payload: Callable[[Any], Any] = _identity,
    transform: Callable[[Any], Any] = _identity,
) -> ExtractionRule:
    """
    Read a dotted path (``"props.pageProps.bio"``) from a decoded payload.

    Numeric segments index into lists.
    """
    keys: List[Union[str, int]] = [int(k) if k.isdigit() else k for k in path.split(".")]

    def predicate(tree: Any) -> List[Any]:
        value = _walk_path(payload(tree), keys)
        return [] if value is None else [value]

    return ExtractionRule(name=f"json:{path}", predicate=predicate, accessor=transform)


def regex_rule(
    pattern: Union[str, "re.Pattern[str]"],
    group: int = 1,
    text: Callable[[Any], str] = lambda tree: tree.get_text(" "),
    transform: Callable[[Any], Any] = _identity,
) -> ExtractionRule:
    """Match a regular expression against the tree's text."""
    compiled = re.compile(pattern) if isinstance(pattern, str) else pattern
    return ExtractionRule(
        name=f"regex:{compiled.pattern[:40]}",
        predicate=lambda tree: [m.group(group) for m in compiled.finditer(text(tree) or "")],
        accessor=transform,
    )


def nodes_rule(selector: str, scope: Callable[[Any], Any] = _identity) -> ExtractionRule:
    """Node-locating rule for ``extract_nodes``."""
    return ExtractionRule(name=selector, predicate=lambda tree: scope(tree).select(selector))
