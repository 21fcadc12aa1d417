"""Pipeline orchestrator: extract, minify, compress embedded code, restore."""

from __future__ import annotations

import dataclasses
import enum
import logging

from markup_compressor.backends import (
    Compressor,
    compress_segment,
    css_compressor_for,
    javascript_compressor_for,
)
from markup_compressor.config import HtmlConfiguration, XmlConfiguration
from markup_compressor.errors import ConfigurationError
from markup_compressor.extractor import extract
from markup_compressor.minifier import minify_html, minify_xml, remove_javascript_protocol
from markup_compressor.patterns import ContentKind, build_html_rules, build_xml_rules
from markup_compressor.placeholders import PlaceholderAllocator, PreservedSegment
from markup_compressor.restorer import restore

logger = logging.getLogger(__name__)


class PipelineState(enum.Enum):
    """Stages of one compress run, in the order they are entered."""

    DISABLED = "disabled"
    EXTRACTING = "extracting"
    MINIFYING = "minifying"
    COMPRESSING_EMBEDDED = "compressing_embedded"
    RESTORING = "restoring"
    DONE = "done"


@dataclasses.dataclass(frozen=True, slots=True)
class CompressionResult:
    """Result of compression with detailed statistics."""

    text: str                                  # the compressed document
    original_length: int                       # len(original input)
    compressed_length: int                     # len(text)
    ratio: float                               # compressed_length / original_length (0.0-1.0)
    savings_pct: float                         # (1 - ratio) * 100
    segments: tuple[PreservedSegment, ...]     # what was held out of minification
    states: tuple[PipelineState, ...]          # stages the run went through

    def __str__(self) -> str:
        return self.text


def _build_result(
    document: str,
    text: str,
    segments: tuple[PreservedSegment, ...],
    states: list[PipelineState],
) -> CompressionResult:
    original_length = len(document)
    compressed_length = len(text)
    ratio = compressed_length / original_length if original_length > 0 else 1.0
    return CompressionResult(
        text=text,
        original_length=original_length,
        compressed_length=compressed_length,
        ratio=ratio,
        savings_pct=(1.0 - ratio) * 100,
        segments=segments,
        states=tuple(states),
    )


class HtmlCompressor:
    """Compresses HTML documents.

    Instances hold only the (frozen) configuration and the backends, so one
    instance can compress any number of documents, from any number of threads.

    Args:
        config: Configuration; ``HtmlConfiguration()`` if omitted.
        js_compressor: Backend for script bodies. Defaults to the one selected
            by ``config.js_backend``.
        css_compressor: Backend for style bodies. Defaults to rcssmin.
    """

    def __init__(
        self,
        config: HtmlConfiguration | None = None,
        *,
        js_compressor: Compressor | None = None,
        css_compressor: Compressor | None = None,
    ) -> None:
        self.config = config if config is not None else HtmlConfiguration()
        self.js_compressor = js_compressor if js_compressor is not None else javascript_compressor_for(self.config)
        self.css_compressor = css_compressor if css_compressor is not None else css_compressor_for(self.config)

    def compress(self, document: str) -> str:
        """Compress *document* and return the result."""
        return self.compress_with_stats(document).text

    def compress_with_stats(self, document: str) -> CompressionResult:
        """Compress *document* and return the text with statistics and the stages run.

        Raises:
            MissingCapability: If script/style compression is on and its backend is unavailable.
            CompressorError: If a backend fails and ``on_compressor_error`` is RAISE.
            UnresolvedPlaceholder: On an internal consistency failure.
            AllocationExhausted: If the document has more than ``max_segments`` preserved regions.
        """
        config = self.config
        if not config.enabled or not document:
            return _build_result(document, document, (), [PipelineState.DISABLED])

        states = [PipelineState.EXTRACTING]
        allocator = PlaceholderAllocator(document, max_segments=config.max_segments)
        rules = build_html_rules(config, compress_inner=self.compress)
        text, allocator = extract(document, rules, allocator)

        states.append(PipelineState.MINIFYING)
        text = minify_html(text, config)
        if config.remove_javascript_protocol:
            for segment in allocator.all():
                if segment.kind is ContentKind.EVENT:
                    segment.text = remove_javascript_protocol(segment.text)

        if config.compress_javascript or config.compress_css:
            states.append(PipelineState.COMPRESSING_EMBEDDED)
            self._compress_embedded(text, allocator)

        states.append(PipelineState.RESTORING)
        result = restore(text, allocator)
        states.append(PipelineState.DONE)

        logger.debug(
            "html compressed %d -> %d chars, %d preserved segment(s)", len(document), len(result), len(allocator)
        )
        return _build_result(document, result, allocator.all(), states)

    def _compress_embedded(self, text: str, allocator: PlaceholderAllocator) -> None:
        config = self.config
        compressed = 0
        for segment in allocator.all():
            if segment.token not in text:
                # removed along with a comment; nothing to compress
                continue
            if segment.kind is ContentKind.SCRIPT and config.compress_javascript:
                compressed += compress_segment(
                    segment,
                    self.js_compressor,
                    allocator,
                    with_preserved_blocks=config.compress_js_with_preserved_blocks,
                    on_error=config.on_compressor_error,
                )
            elif segment.kind is ContentKind.STYLE and config.compress_css:
                compressed += compress_segment(
                    segment,
                    self.css_compressor,
                    allocator,
                    with_preserved_blocks=config.compress_css_with_preserved_blocks,
                    on_error=config.on_compressor_error,
                )
        logger.debug("compressed %d embedded script/style segment(s)", compressed)


class XmlCompressor:
    """Compresses XML documents. CDATA sections are always kept verbatim."""

    def __init__(self, config: XmlConfiguration | None = None) -> None:
        self.config = config if config is not None else XmlConfiguration()

    def compress(self, document: str) -> str:
        return self.compress_with_stats(document).text

    def compress_with_stats(self, document: str) -> CompressionResult:
        config = self.config
        if not config.enabled or not document:
            return _build_result(document, document, (), [PipelineState.DISABLED])

        states = [PipelineState.EXTRACTING]
        allocator = PlaceholderAllocator(document, max_segments=config.max_segments)
        text, allocator = extract(document, build_xml_rules(config), allocator)

        states.append(PipelineState.MINIFYING)
        text = minify_xml(text, config)

        states.append(PipelineState.RESTORING)
        result = restore(text, allocator)
        states.append(PipelineState.DONE)

        logger.debug(
            "xml compressed %d -> %d chars, %d preserved segment(s)", len(document), len(result), len(allocator)
        )
        return _build_result(document, result, allocator.all(), states)


def compressor_for(configuration: HtmlConfiguration | XmlConfiguration | None = None) -> HtmlCompressor | XmlCompressor:
    """Return the compressor matching the configuration type (HTML if None)."""
    if configuration is None or isinstance(configuration, HtmlConfiguration):
        return HtmlCompressor(configuration)
    if isinstance(configuration, XmlConfiguration):
        return XmlCompressor(configuration)
    raise ConfigurationError(
        f"Expected HtmlConfiguration or XmlConfiguration, got {type(configuration).__name__}"
    )


def compress(document: str, configuration: HtmlConfiguration | XmlConfiguration | None = None) -> str:
    """Minify an HTML or XML document.

    Regions that must keep their exact text (``<pre>`` and ``<textarea>``
    bodies, scripts and styles, CDATA, conditional comments, template tags,
    custom preserve patterns) are swapped for placeholder tokens, the rest of
    the markup is minified, and the regions are put back.

    Args:
        document: Markup to compress.
        configuration: ``HtmlConfiguration`` or ``XmlConfiguration``;
            ``HtmlConfiguration()`` if omitted.

    Returns:
        Compressed document string.

    Raises:
        ConfigurationError: If the configuration is not a known type.
        MissingCapability: If an enabled script/style backend is unavailable.
        CompressorError: If a backend fails and no fallback was requested.
        UnresolvedPlaceholder: On an internal consistency failure.
    """
    return compressor_for(configuration).compress(document)


def compress_with_stats(
    document: str,
    configuration: HtmlConfiguration | XmlConfiguration | None = None,
) -> CompressionResult:
    """Compress a document and return detailed statistics about the compression.

    Args:
        document: Markup to compress.
        configuration: ``HtmlConfiguration`` or ``XmlConfiguration``.

    Returns:
        A CompressionResult with the compressed text, lengths, ratio, the
        preserved segments and the pipeline stages that ran.
    """
    return compressor_for(configuration).compress_with_stats(document)
