"""Placeholder tokens for preserved segments."""

from __future__ import annotations

import dataclasses
import re
import secrets
from collections.abc import Iterable

from markup_compressor.errors import AllocationExhausted, UnresolvedPlaceholder
from markup_compressor.patterns import ContentKind

# Token shape: %%%~<nonce>~<KIND>~<n>~%%%
# No whitespace, quotes, '<', '>' or '=': no minifier pass can split or merge it.
TOKEN_PREFIX = "%%%~"
TOKEN_SUFFIX = "~%%%"


@dataclasses.dataclass(slots=True)
class PreservedSegment:
    """A region of the document held out of minification."""

    token: str
    text: str            # original text, or its compressed form once the adapter ran
    kind: ContentKind
    order: int           # extraction order, 0-based
    rule_id: str = ""
    consumed: bool = False


def _new_nonce(document: str) -> str:
    while True:
        nonce = secrets.token_hex(4)
        if f"~{nonce}~" not in document:
            return nonce


class PlaceholderAllocator:
    """Hands out unique tokens for one pipeline run and remembers what they stand for.

    The nonce is random per run and checked against the input, so no string
    already in the document can look like one of this run's tokens.
    """

    def __init__(self, document: str, *, max_segments: int | None = None) -> None:
        self.nonce = _new_nonce(document)
        self.max_segments = max_segments
        self._segments: dict[str, PreservedSegment] = {}
        self.token_re = re.compile(
            re.escape(f"{TOKEN_PREFIX}{self.nonce}~") + r"[A-Z_]+~\d+" + re.escape(TOKEN_SUFFIX)
        )

    def __len__(self) -> int:
        return len(self._segments)

    def allocate(self, text: str, kind: ContentKind, rule_id: str = "") -> str:
        """Store *text* and return the token that stands for it."""
        order = len(self._segments)
        if self.max_segments is not None and order >= self.max_segments:
            raise AllocationExhausted(self.max_segments)
        token = f"{TOKEN_PREFIX}{self.nonce}~{kind.name}~{order}{TOKEN_SUFFIX}"
        self._segments[token] = PreservedSegment(token=token, text=text, kind=kind, order=order, rule_id=rule_id)
        return token

    def resolve(self, token: str) -> PreservedSegment:
        try:
            return self._segments[token]
        except KeyError:
            raise UnresolvedPlaceholder(f"Unknown placeholder {token!r}", token=token) from None

    def all(self) -> tuple[PreservedSegment, ...]:
        """All segments in allocation order."""
        return tuple(self._segments.values())

    def tokens_in(self, text: str) -> list[str]:
        return self.token_re.findall(text)

    def expand(self, text: str, keep: Iterable[ContentKind] = (), *, consume: bool = True) -> str:
        """Replace every token in *text* with its segment text, recursively.

        Tokens of a kind listed in *keep* stay in place. With *consume*, each
        expanded segment is marked consumed and expanding it again is an error;
        without it the expansion is a preview that leaves the segments untouched.
        """
        keep = frozenset(keep)

        def _substitute(match: re.Match[str]) -> str:
            segment = self.resolve(match.group(0))
            if segment.kind in keep:
                return match.group(0)
            if consume:
                if segment.consumed:
                    raise UnresolvedPlaceholder(
                        f"Placeholder {segment.token!r} restored more than once", token=segment.token
                    )
                segment.consumed = True
            return self.token_re.sub(_substitute, segment.text)

        return self.token_re.sub(_substitute, text)

    def leftovers(self, text: str) -> list[str]:
        """Return tokens, or fragments of tokens, still present in *text*."""
        found = self.tokens_in(text)
        if found:
            return found
        marker = f"~{self.nonce}~"
        index = text.find(marker)
        if index == -1:
            return []
        return [text[max(0, index - len(TOKEN_PREFIX)):index + len(marker) + 16]]
