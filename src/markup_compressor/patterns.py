"""Pattern registry: which regions of a document are preserved, and in what order.

Rules are applied by ascending precedence. Rules that can hold any other
construct as free text (template tags, conditional comments) come first;
narrower rules such as plain comments come last so they never misfire inside
a region that was already preserved.
"""

from __future__ import annotations

import dataclasses
import enum
import re
from collections.abc import Callable
from pathlib import Path

from markup_compressor.config import HtmlConfiguration, XmlConfiguration, compile_preserve_pattern
from markup_compressor.errors import ConfigurationError


class ContentKind(enum.Enum):
    """What a preserved segment holds."""

    COMMENT = "comment"
    CONDITIONAL_COMMENT = "conditional_comment"
    PRE = "pre"
    TEXTAREA = "textarea"
    SCRIPT = "script"
    STYLE = "style"
    CDATA = "cdata"
    CUSTOM = "custom"
    PHP_TAG = "php_tag"
    SERVER_SCRIPT_TAG = "server_script_tag"
    SERVER_SIDE_INCLUDE = "server_side_include"
    SKIP = "skip"
    EVENT = "event"
    LINE_BREAK = "line_break"


# Kinds that come from template engines or user patterns
USER_KINDS = frozenset({
    ContentKind.CUSTOM,
    ContentKind.PHP_TAG,
    ContentKind.SERVER_SCRIPT_TAG,
    ContentKind.SERVER_SIDE_INCLUDE,
})


@dataclasses.dataclass(frozen=True, slots=True)
class ExtractionRule:
    """A preserve pattern together with its precedence and content kind."""

    id: str
    matcher: re.Pattern[str]
    precedence: int
    kind: ContentKind
    group: int = 0                                                    # part of the match to preserve
    classify: Callable[[re.Match[str]], ContentKind | None] | None = None  # None leaves the match alone
    render: Callable[[re.Match[str]], str] | None = None              # segment text if not the group


# --- Precedence slots (lowest extracted first) ---
PRECEDENCE_SKIP = 5
PRECEDENCE_CONDITIONAL_COMMENT = 10
PRECEDENCE_SSI = 20
PRECEDENCE_SERVER_SCRIPT = 30
PRECEDENCE_PHP = 40
PRECEDENCE_CUSTOM = 50
PRECEDENCE_PRE = 60
PRECEDENCE_CDATA = 70
PRECEDENCE_SCRIPT = 80
PRECEDENCE_EVENT = 85
PRECEDENCE_COMMENT = 90
PRECEDENCE_LINE_BREAK = 95

# --- Built-in patterns ---
SKIP_BLOCK_RE = re.compile(r"<!--\s*\{\{\{\s*-->(.*?)<!--\s*\}\}\}\s*-->", re.DOTALL | re.IGNORECASE)
CONDITIONAL_COMMENT_RE = re.compile(r"(<!(?:--)?\[[^\]]+?]>)(.*?)(<!\[[^\]]+]-->)", re.DOTALL | re.IGNORECASE)
SERVER_SIDE_INCLUDE_RE = re.compile(r"<!--\s*#.*?-->", re.DOTALL)
SERVER_SCRIPT_TAG_RE = re.compile(r"<%.*?%>", re.DOTALL)
PHP_TAG_RE = re.compile(r"<\?php.*?(?:\?>|\Z)", re.DOTALL | re.IGNORECASE)
PRE_RE = re.compile(r"(<pre(?:\s[^>]*)?>)(.*?)(</pre\s*>)", re.DOTALL | re.IGNORECASE)
TEXTAREA_RE = re.compile(r"(<textarea(?:\s[^>]*)?>)(.*?)(</textarea\s*>)", re.DOTALL | re.IGNORECASE)
CDATA_RE = re.compile(r"<!\[CDATA\[.*?\]\]>", re.DOTALL)
SCRIPT_RE = re.compile(r"(<script(?:\s[^>]*)?>)(.*?)(</script\s*>)", re.DOTALL | re.IGNORECASE)
STYLE_RE = re.compile(r"(<style(?:\s[^>]*)?>)(.*?)(</style\s*>)", re.DOTALL | re.IGNORECASE)
EVENT_DOUBLE_QUOTED_RE = re.compile(r"""(\son[a-z]+\s*=\s*")([^"\\\r\n]*(?:\\.[^"\\\r\n]*)*)(")""", re.IGNORECASE)
EVENT_SINGLE_QUOTED_RE = re.compile(r"""(\son[a-z]+\s*=\s*')([^'\\\r\n]*(?:\\.[^'\\\r\n]*)*)(')""", re.IGNORECASE)
COMMENT_RE = re.compile(r"<!---->|<!--[^\[].*?-->", re.DOTALL)
LINE_BREAK_RE = re.compile(r"(?:[ \t]*(\r?\n)[ \t]*)+")

_TYPE_ATTR_RE = re.compile(r"""\btype\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""", re.IGNORECASE)

JAVASCRIPT_TYPES = frozenset({
    "",
    "text/javascript",
    "application/javascript",
    "application/x-javascript",
    "text/ecmascript",
    "application/ecmascript",
    "module",
})
# script templates that are markup and get compressed along with the page
MARKUP_SCRIPT_TYPES = frozenset({"text/x-jquery-tmpl"})


def script_type(open_tag: str) -> str:
    """Return the lowercased type attribute of a <script> open tag, or ''."""
    match = _TYPE_ATTR_RE.search(open_tag)
    if not match:
        return ""
    value = next(g for g in match.groups() if g is not None)
    return value.strip().lower()


def _classify_script(match: re.Match[str]) -> ContentKind | None:
    if not match.group(2).strip():
        return None
    kind = script_type(match.group(1))
    if kind in JAVASCRIPT_TYPES:
        return ContentKind.SCRIPT
    if kind in MARKUP_SCRIPT_TYPES:
        return None
    # some custom script (template, JSON data): keep it, but never run the JS compressor on it
    return ContentKind.SKIP


def _classify_style(match: re.Match[str]) -> ContentKind | None:
    return ContentKind.STYLE if match.group(2).strip() else None


def _render_skip_block(match: re.Match[str]) -> str:
    return match.group(1)


def _render_line_break(match: re.Match[str]) -> str:
    return match.group(1)


def build_html_rules(
    config: HtmlConfiguration,
    *,
    compress_inner: Callable[[str], str] | None = None,
) -> tuple[ExtractionRule, ...]:
    """Return the active HTML rules for *config*, ordered by precedence.

    Args:
        config: HTML configuration.
        compress_inner: Compresses the markup inside conditional comments.
            When omitted, conditional comments are kept verbatim.
    """
    if compress_inner is None:
        render_conditional = None
    else:
        def render_conditional(match: re.Match[str]) -> str:
            return match.group(1) + compress_inner(match.group(2)) + match.group(3)

    rules: list[ExtractionRule] = [
        ExtractionRule("skip-block", SKIP_BLOCK_RE, PRECEDENCE_SKIP, ContentKind.SKIP, render=_render_skip_block),
        ExtractionRule(
            "conditional-comment",
            CONDITIONAL_COMMENT_RE,
            PRECEDENCE_CONDITIONAL_COMMENT,
            ContentKind.CONDITIONAL_COMMENT,
            render=render_conditional,
        ),
    ]

    if config.preserve_ssi:
        rules.append(ExtractionRule(
            "server-side-include", SERVER_SIDE_INCLUDE_RE, PRECEDENCE_SSI, ContentKind.SERVER_SIDE_INCLUDE
        ))
    if config.preserve_server_script:
        rules.append(ExtractionRule(
            "server-script", SERVER_SCRIPT_TAG_RE, PRECEDENCE_SERVER_SCRIPT, ContentKind.SERVER_SCRIPT_TAG
        ))
    if config.preserve_php:
        rules.append(ExtractionRule("php", PHP_TAG_RE, PRECEDENCE_PHP, ContentKind.PHP_TAG))

    for index, pattern in enumerate(config.preserve_patterns):
        rules.append(ExtractionRule(f"custom-{index}", pattern, PRECEDENCE_CUSTOM, ContentKind.CUSTOM))

    rules.extend([
        ExtractionRule("pre", PRE_RE, PRECEDENCE_PRE, ContentKind.PRE, group=2),
        ExtractionRule("textarea", TEXTAREA_RE, PRECEDENCE_PRE, ContentKind.TEXTAREA, group=2),
        ExtractionRule("cdata", CDATA_RE, PRECEDENCE_CDATA, ContentKind.CDATA),
        ExtractionRule("script", SCRIPT_RE, PRECEDENCE_SCRIPT, ContentKind.SCRIPT, group=2, classify=_classify_script),
        ExtractionRule("style", STYLE_RE, PRECEDENCE_SCRIPT, ContentKind.STYLE, group=2, classify=_classify_style),
        ExtractionRule("event-double-quoted", EVENT_DOUBLE_QUOTED_RE, PRECEDENCE_EVENT, ContentKind.EVENT, group=2),
        ExtractionRule("event-single-quoted", EVENT_SINGLE_QUOTED_RE, PRECEDENCE_EVENT, ContentKind.EVENT, group=2),
    ])

    if not config.remove_comments:
        rules.append(ExtractionRule("comment", COMMENT_RE, PRECEDENCE_COMMENT, ContentKind.COMMENT))
    if config.preserve_line_breaks:
        rules.append(ExtractionRule(
            "line-break", LINE_BREAK_RE, PRECEDENCE_LINE_BREAK, ContentKind.LINE_BREAK, render=_render_line_break
        ))

    return tuple(sorted(rules, key=lambda rule: rule.precedence))


def build_xml_rules(config: XmlConfiguration) -> tuple[ExtractionRule, ...]:
    """Return the active XML rules for *config*, ordered by precedence."""
    rules = [ExtractionRule("cdata", CDATA_RE, PRECEDENCE_CDATA, ContentKind.CDATA)]
    if not config.remove_comments:
        rules.append(ExtractionRule("comment", COMMENT_RE, PRECEDENCE_COMMENT, ContentKind.COMMENT))
    return tuple(rules)


def parse_preserve_patterns(text: str) -> tuple[re.Pattern[str], ...]:
    """Parse a custom preserve patterns file: one regex per line, blank lines ignored.

    Raises:
        ConfigurationError: If a line is not a valid regular expression.
    """
    patterns: list[re.Pattern[str]] = []
    for line in text.splitlines():
        if not line.strip():
            continue
        patterns.append(compile_preserve_pattern(line))
    return tuple(patterns)


def read_preserve_patterns(path: str | Path, encoding: str = "utf-8") -> tuple[re.Pattern[str], ...]:
    """Read and compile a custom preserve patterns file."""
    try:
        text = Path(path).read_text(encoding=encoding)
    except OSError as e:
        raise ConfigurationError(f"Unable to read custom pattern definitions file: {e}") from e
    return parse_preserve_patterns(text)
