"""Exception hierarchy.

Every error raised by the compressor derives from MarkupCompressorError so
callers can catch the base class or a specific subclass.
"""

from __future__ import annotations


class MarkupCompressorError(Exception):
    """Base exception for all markup compressor errors."""


class ConfigurationError(MarkupCompressorError):
    """Invalid configuration value or preserve pattern."""


class MissingCapability(MarkupCompressorError):
    """A requested script/style compressor backend is not available."""

    def __init__(self, backend: str, detail: str = "") -> None:
        message = f"Compressor backend '{backend}' is not available"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.backend = backend


class UnresolvedPlaceholder(MarkupCompressorError):
    """A placeholder survived restoration or could not be resolved."""

    def __init__(self, message: str, *, token: str = "") -> None:
        super().__init__(message)
        self.token = token


class AllocationExhausted(MarkupCompressorError):
    """More preserved segments than the configured maximum."""

    def __init__(self, limit: int) -> None:
        super().__init__(f"Preserved segment limit of {limit} exceeded")
        self.limit = limit


class CompressorError(MarkupCompressorError):
    """A backend failed while compressing an embedded script or style."""

    def __init__(self, message: str, *, backend: str = "") -> None:
        super().__init__(message)
        self.backend = backend
