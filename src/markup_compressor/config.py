"""Compressor configuration.

Configurations are frozen dataclasses: one instance can be shared by any
number of concurrent compress calls. Problems are reported with
ConfigurationError when the instance is built, never halfway through a run.
"""

from __future__ import annotations

import dataclasses
import enum
import re
from collections.abc import Iterable

from markup_compressor.errors import ConfigurationError

# Predefined tag sets for remove_surrounding_spaces
BLOCK_TAGS_MIN = "html,head,body,br,p"
BLOCK_TAGS_MAX = (
    BLOCK_TAGS_MIN
    + ",h1,h2,h3,h4,h5,h6,blockquote,center,dl,fieldset,form,frame,frameset,"
    "hr,noframes,ol,table,tbody,tr,td,th,tfoot,thead,ul"
)
ALL_TAGS = "all"

_TAG_LIST_RE = re.compile(r"^\s*[a-z][a-z0-9]*(?:\s*,\s*[a-z][a-z0-9]*)*\s*$", re.IGNORECASE)


class JsBackend(enum.Enum):
    """JavaScript compressor backends."""

    YUI = "yui"
    CLOSURE = "closure"


class ClosureLevel(enum.Enum):
    """Closure Compiler compilation levels."""

    WHITESPACE = "WHITESPACE_ONLY"
    SIMPLE = "SIMPLE"
    ADVANCED = "ADVANCED"


class ErrorPolicy(enum.Enum):
    """What to do when a backend fails on one embedded segment."""

    RAISE = "raise"
    KEEP_ORIGINAL = "keep_original"


def compile_preserve_pattern(pattern: str | re.Pattern[str]) -> re.Pattern[str]:
    """Compile a user preserve pattern, raising ConfigurationError if malformed."""
    if isinstance(pattern, re.Pattern):
        return pattern
    if not isinstance(pattern, str):
        raise ConfigurationError(f"Preserve pattern must be a string or compiled regex, got {type(pattern).__name__}")
    if not pattern:
        raise ConfigurationError("Preserve pattern must not be empty")
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid regex pattern '{pattern}': {e}") from e


def normalize_surrounding_spaces(value: str | None) -> str | None:
    """Resolve 'min'/'max'/'all' aliases and validate a custom tag list."""
    if value is None:
        return None
    name = value.strip().lower()
    if name == "min":
        return BLOCK_TAGS_MIN
    if name == "max":
        return BLOCK_TAGS_MAX
    if name == ALL_TAGS:
        return ALL_TAGS
    if not _TAG_LIST_RE.match(value):
        raise ConfigurationError(
            f"remove_surrounding_spaces must be 'min', 'max', 'all' or a comma separated tag list, got '{value}'"
        )
    return ",".join(tag.strip().lower() for tag in value.split(","))


@dataclasses.dataclass(frozen=True, slots=True)
class HtmlConfiguration:
    """Switches for HTML compression. Defaults match the classic HtmlCompressor."""

    enabled: bool = True
    remove_comments: bool = True
    remove_multi_spaces: bool = True
    remove_intertag_spaces: bool = False
    remove_quotes: bool = False
    preserve_line_breaks: bool = False
    simple_doctype: bool = False
    remove_script_attributes: bool = False
    remove_style_attributes: bool = False
    remove_link_attributes: bool = False
    remove_form_attributes: bool = False
    remove_input_attributes: bool = False
    simple_boolean_attributes: bool = False
    remove_javascript_protocol: bool = False
    remove_http_protocol: bool = False
    remove_https_protocol: bool = False
    remove_surrounding_spaces: str | None = None
    remove_spaces_inside_tags: bool = True
    trim: bool = True

    # template-engine and user preservation
    preserve_php: bool = False
    preserve_server_script: bool = False
    preserve_ssi: bool = False
    preserve_patterns: tuple[re.Pattern[str], ...] = ()

    # embedded script/style compression
    compress_javascript: bool = False
    compress_css: bool = False
    compress_js_with_preserved_blocks: bool = True
    compress_css_with_preserved_blocks: bool = True
    js_backend: JsBackend = JsBackend.YUI
    yui_line_break: int = -1
    yui_keep_bang_comments: bool = False
    closure_level: ClosureLevel = ClosureLevel.SIMPLE
    closure_externs: tuple[str, ...] = ()
    closure_custom_externs_only: bool = False
    closure_command: tuple[str, ...] = ("google-closure-compiler",)
    closure_timeout: float | None = 30.0
    on_compressor_error: ErrorPolicy = ErrorPolicy.RAISE

    max_segments: int | None = None

    def __post_init__(self) -> None:
        patterns = self.preserve_patterns
        if isinstance(patterns, (str, re.Pattern)):
            patterns = (patterns,)
        object.__setattr__(
            self, "preserve_patterns", tuple(compile_preserve_pattern(p) for p in patterns)
        )
        object.__setattr__(
            self, "remove_surrounding_spaces", normalize_surrounding_spaces(self.remove_surrounding_spaces)
        )
        object.__setattr__(self, "closure_externs", tuple(self.closure_externs))
        object.__setattr__(self, "closure_command", tuple(self.closure_command))
        try:
            object.__setattr__(self, "js_backend", JsBackend(self.js_backend))
            object.__setattr__(self, "closure_level", ClosureLevel(self.closure_level))
            object.__setattr__(self, "on_compressor_error", ErrorPolicy(self.on_compressor_error))
        except ValueError as e:
            raise ConfigurationError(str(e)) from e
        if not self.closure_command:
            raise ConfigurationError("closure_command must not be empty")
        if self.closure_custom_externs_only and self.closure_level is not ClosureLevel.ADVANCED:
            raise ConfigurationError("closure_custom_externs_only requires closure_level ADVANCED")
        if self.closure_timeout is not None and self.closure_timeout <= 0:
            raise ConfigurationError(f"closure_timeout must be > 0, got {self.closure_timeout}")
        if self.max_segments is not None and self.max_segments < 0:
            raise ConfigurationError(f"max_segments must be >= 0, got {self.max_segments}")

    @classmethod
    def minimal(cls, **overrides: object) -> HtmlConfiguration:
        """Configuration with every rewriting pass switched off."""
        values: dict[str, object] = {
            "remove_comments": False,
            "remove_multi_spaces": False,
            "remove_spaces_inside_tags": False,
            "trim": False,
        }
        values.update(overrides)
        return cls(**values)  # type: ignore[arg-type]

    def with_enabled(self, enabled: bool) -> HtmlConfiguration:
        return dataclasses.replace(self, enabled=enabled)

    def with_preserve_patterns(self, patterns: Iterable[str | re.Pattern[str]]) -> HtmlConfiguration:
        """Return a copy with *patterns* appended after the existing user patterns."""
        return dataclasses.replace(self, preserve_patterns=(*self.preserve_patterns, *patterns))


@dataclasses.dataclass(frozen=True, slots=True)
class XmlConfiguration:
    """Switches for XML compression."""

    enabled: bool = True
    remove_comments: bool = True
    remove_intertag_spaces: bool = True
    trim: bool = True
    max_segments: int | None = None

    def __post_init__(self) -> None:
        if self.max_segments is not None and self.max_segments < 0:
            raise ConfigurationError(f"max_segments must be >= 0, got {self.max_segments}")

    @classmethod
    def minimal(cls) -> XmlConfiguration:
        return cls(remove_comments=False, remove_intertag_spaces=False, trim=False)

    def with_enabled(self, enabled: bool) -> XmlConfiguration:
        return dataclasses.replace(self, enabled=enabled)
