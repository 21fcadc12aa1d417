"""Restorer: puts preserved segments back in place of their tokens."""

from __future__ import annotations

import logging

from markup_compressor.errors import UnresolvedPlaceholder
from markup_compressor.placeholders import PlaceholderAllocator

logger = logging.getLogger(__name__)


def restore(working_text: str, allocator: PlaceholderAllocator) -> str:
    """Replace every token in *working_text* with its segment text.

    Tokens nested inside segment text (a CDATA section inside a script body,
    a PHP tag inside a conditional comment) are expanded recursively, so one
    pass over the working text restores everything.

    Raises:
        UnresolvedPlaceholder: If a token is unknown, restored twice, or any
            token or token fragment is left in the output.
    """
    text = allocator.expand(working_text)

    leftovers = allocator.leftovers(text)
    if leftovers:
        raise UnresolvedPlaceholder(f"Placeholder left in output: {leftovers[0]!r}", token=leftovers[0])

    dropped = [segment for segment in allocator.all() if not segment.consumed]
    if dropped:
        # their tokens went away with a removed comment
        logger.debug(
            "dropped %d preserved segment(s): %s",
            len(dropped),
            ", ".join(segment.token for segment in dropped),
        )
    return text
