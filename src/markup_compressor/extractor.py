"""Preservation extractor: swaps preserved regions for placeholder tokens."""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from markup_compressor.patterns import ExtractionRule
from markup_compressor.placeholders import PlaceholderAllocator

logger = logging.getLogger(__name__)


def _cuts_token(start: int, end: int, spans: list[tuple[int, int]]) -> bool:
    """True if [start, end) begins or ends strictly inside one of *spans*."""
    return any(s < start < e or s < end < e for s, e in spans)


def _extract_rule(text: str, rule: ExtractionRule, allocator: PlaceholderAllocator) -> tuple[str, int]:
    count = 0
    # tokens from earlier rules are inert: a match may enclose one but never cut into it
    spans = [m.span() for m in allocator.token_re.finditer(text)]

    def _replace(match: re.Match[str]) -> str:
        nonlocal count
        if not match.group(0):
            return ""
        if spans and (_cuts_token(*match.span(), spans) or _cuts_token(*match.span(rule.group), spans)):
            return match.group(0)
        kind = rule.kind if rule.classify is None else rule.classify(match)
        if kind is None:
            return match.group(0)
        preserved = rule.render(match) if rule.render is not None else match.group(rule.group)
        token = allocator.allocate(preserved, kind, rule.id)
        count += 1
        if rule.group == 0:
            return token
        # keep the rest of the match (e.g. the <pre> tags) in the working text
        base = match.start()
        start, end = match.span(rule.group)
        whole = match.group(0)
        return whole[:start - base] + token + whole[end - base:]

    return rule.matcher.sub(_replace, text), count


def extract(
    document: str,
    rules: Iterable[ExtractionRule],
    allocator: PlaceholderAllocator | None = None,
) -> tuple[str, PlaceholderAllocator]:
    """Apply *rules* in precedence order, replacing every match with a token.

    Each rule scans the current working text, so a region taken by an earlier
    rule is invisible to later ones.

    Args:
        document: Input text.
        rules: Extraction rules; sorted by precedence here (stable).
        allocator: Allocator to use; a fresh one is created for *document* if omitted.

    Returns:
        The working text with placeholders, and the allocator holding the segments.
    """
    if allocator is None:
        allocator = PlaceholderAllocator(document)

    text = document
    for rule in sorted(rules, key=lambda r: r.precedence):
        text, count = _extract_rule(text, rule, allocator)
        if count:
            logger.debug("extracted %d segment(s) with rule %s", count, rule.id)

    return text, allocator
