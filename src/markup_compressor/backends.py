"""Script and style compressor backends, and the adapter that runs them on preserved segments.

A backend is anything with ``compress(source: str) -> str``. Two families ship
with the package:

* ``yui``: token-level minification through rjsmin (JavaScript) and rcssmin (CSS).
* ``closure``: the Closure Compiler command line tool, run as a subprocess.

A backend whose library or executable is missing raises MissingCapability the
first time it is asked to compress something, so a configuration that never
compresses scripts never needs the backend installed.
"""

from __future__ import annotations

import logging
import re
import shutil
import subprocess
from collections.abc import Iterable
from typing import Protocol

from markup_compressor.config import ClosureLevel, ErrorPolicy, HtmlConfiguration, JsBackend
from markup_compressor.errors import CompressorError, MissingCapability, UnresolvedPlaceholder
from markup_compressor.patterns import USER_KINDS
from markup_compressor.placeholders import PlaceholderAllocator, PreservedSegment

logger = logging.getLogger(__name__)


class Compressor(Protocol):
    """Anything that can minify a script or style body."""

    def compress(self, source: str) -> str: ...


def _insert_line_breaks(text: str, column: int, breakers: str) -> str:
    """Break the line after a *breakers* character once it is longer than *column*.

    Characters inside string literals are never treated as break points.
    """
    if column < 0:
        return text
    out: list[str] = []
    line_length = 0
    quote = ""
    escaped = False
    for char in text:
        out.append(char)
        line_length = 0 if char == "\n" else line_length + 1
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = ""
            continue
        if char in "\"'`":
            quote = char
        elif char in breakers and line_length > column:
            out.append("\n")
            line_length = 0
    return "".join(out)


class YuiJavaScriptCompressor:
    """JavaScript minification with rjsmin.

    Args:
        line_break: Column after which a line is broken at the next ';' or '}'.
            -1 keeps everything on one line.
        keep_bang_comments: Keep ``/*! ... */`` license comments.
    """

    name = "yui"

    def __init__(self, *, line_break: int = -1, keep_bang_comments: bool = False) -> None:
        self.line_break = line_break
        self.keep_bang_comments = keep_bang_comments

    def compress(self, source: str) -> str:
        try:
            import rjsmin
        except ImportError as e:
            raise MissingCapability(self.name, "the rjsmin package is not installed") from e
        minified = rjsmin.jsmin(source, keep_bang_comments=self.keep_bang_comments)
        return _insert_line_breaks(minified, self.line_break, ";}")


class YuiCssCompressor:
    """CSS minification with rcssmin. Same options as YuiJavaScriptCompressor."""

    name = "yui"

    def __init__(self, *, line_break: int = -1, keep_bang_comments: bool = False) -> None:
        self.line_break = line_break
        self.keep_bang_comments = keep_bang_comments

    def compress(self, source: str) -> str:
        try:
            import rcssmin
        except ImportError as e:
            raise MissingCapability(self.name, "the rcssmin package is not installed") from e
        minified = rcssmin.cssmin(source, keep_bang_comments=self.keep_bang_comments)
        return _insert_line_breaks(minified, self.line_break, "}")


class ClosureJavaScriptCompressor:
    """JavaScript compilation with the Closure Compiler CLI.

    The source is piped to the compiler's stdin and the compiled code read from
    its stdout.

    Args:
        level: Compilation level.
        externs: Paths of extern files passed with ``--externs``.
        custom_externs_only: Drop the default browser externs (``--env CUSTOM``).
        command: Executable and leading arguments, e.g. ``("java", "-jar", "compiler.jar")``.
        timeout: Seconds before the compiler is killed; None waits forever.
    """

    name = "closure"

    def __init__(
        self,
        *,
        level: ClosureLevel = ClosureLevel.SIMPLE,
        externs: Iterable[str] = (),
        custom_externs_only: bool = False,
        command: Iterable[str] = ("google-closure-compiler",),
        timeout: float | None = None,
    ) -> None:
        self.level = ClosureLevel(level)
        self.externs = tuple(externs)
        self.custom_externs_only = custom_externs_only
        self.command = tuple(command)
        self.timeout = timeout

    def build_args(self, executable: str) -> list[str]:
        args = [executable, *self.command[1:], "--compilation_level", self.level.value, "--warning_level", "QUIET"]
        for extern in self.externs:
            args.extend(["--externs", extern])
        if self.custom_externs_only:
            args.extend(["--env", "CUSTOM"])
        return args

    def compress(self, source: str) -> str:
        executable = shutil.which(self.command[0])
        if executable is None:
            raise MissingCapability(self.name, f"'{self.command[0]}' was not found on PATH")
        try:
            completed = subprocess.run(
                self.build_args(executable),
                input=source,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise CompressorError(f"Closure Compiler timed out after {self.timeout}s", backend=self.name) from e
        except OSError as e:
            raise MissingCapability(self.name, str(e)) from e
        if completed.returncode != 0:
            raise CompressorError(
                f"Closure Compiler exited with status {completed.returncode}: {completed.stderr.strip()}",
                backend=self.name,
            )
        return completed.stdout.rstrip("\n")


def javascript_compressor_for(config: HtmlConfiguration) -> Compressor:
    """Build the JavaScript backend selected by *config*."""
    if config.js_backend is JsBackend.CLOSURE:
        return ClosureJavaScriptCompressor(
            level=config.closure_level,
            externs=config.closure_externs,
            custom_externs_only=config.closure_custom_externs_only,
            command=config.closure_command,
            timeout=config.closure_timeout,
        )
    return YuiJavaScriptCompressor(line_break=config.yui_line_break, keep_bang_comments=config.yui_keep_bang_comments)


def css_compressor_for(config: HtmlConfiguration) -> Compressor:
    """Build the CSS backend for *config*. Closure has no CSS mode, so CSS always goes to rcssmin."""
    return YuiCssCompressor(line_break=config.yui_line_break, keep_bang_comments=config.yui_keep_bang_comments)


# --- CDATA wrappers around script bodies ---
_COMMENTED_CDATA_RE = re.compile(r"^\s*/\*\s*<!\[CDATA\[\s*\*/(.*?)/\*\s*\]\]>\s*\*/\s*$", re.DOTALL)
_CDATA_RE = re.compile(r"^\s*<!\[CDATA\[(.*?)\]\]>\s*$", re.DOTALL)


def unwrap_cdata(source: str) -> tuple[str, str, str]:
    """Split a CDATA wrapper off *source*.

    Returns:
        (prefix, body, suffix); prefix and suffix are empty when there is no wrapper.
    """
    match = _COMMENTED_CDATA_RE.match(source)
    if match:
        return "/*<![CDATA[*/", match.group(1), "/*]]>*/"
    match = _CDATA_RE.match(source)
    if match:
        return "<![CDATA[", match.group(1), "]]>"
    return "", source, ""


def compress_segment(
    segment: PreservedSegment,
    compressor: Compressor,
    allocator: PlaceholderAllocator,
    *,
    with_preserved_blocks: bool = True,
    on_error: ErrorPolicy = ErrorPolicy.RAISE,
) -> bool:
    """Run *compressor* over one script or style segment, updating it in place.

    Tokens of nested non-user segments (CDATA, comments) are expanded first so
    the backend sees real code. Tokens of user segments (PHP, SSI, custom
    patterns) stay in the code and must come out of the backend intact.

    Args:
        segment: The SCRIPT or STYLE segment.
        compressor: Backend to run.
        allocator: Allocator that owns *segment*.
        with_preserved_blocks: Compress even if the body holds user segments.
        on_error: Policy for a CompressorError from the backend.

    Returns:
        True if the segment text was replaced.

    Raises:
        MissingCapability: If the backend is not available.
        CompressorError: If the backend fails and *on_error* is RAISE.
        UnresolvedPlaceholder: If the backend dropped or mangled a user token.
    """
    source = allocator.expand(segment.text, keep=USER_KINDS, consume=False)
    user_tokens = allocator.tokens_in(source)
    if user_tokens and not with_preserved_blocks:
        logger.debug("%s holds %d preserved block(s); left uncompressed", segment.token, len(user_tokens))
        return False

    prefix, body, suffix = unwrap_cdata(source)
    try:
        compressed = compressor.compress(body)
    except CompressorError as e:
        if on_error is ErrorPolicy.RAISE:
            raise
        logger.warning("keeping %s uncompressed: %s", segment.kind.value, e)
        return False

    for token in user_tokens:
        if token not in compressed:
            raise UnresolvedPlaceholder(
                f"Compressor dropped placeholder {token!r} from a {segment.kind.value} body", token=token
            )

    # mark the nested segments as used; their text now lives in the compressed body
    allocator.expand(segment.text, keep=USER_KINDS)
    segment.text = prefix + compressed + suffix
    return True
