"""Markup Compressor - minify HTML and XML while keeping significant regions intact."""

from markup_compressor.backends import (
    ClosureJavaScriptCompressor,
    Compressor,
    YuiCssCompressor,
    YuiJavaScriptCompressor,
)
from markup_compressor.compressor import (
    CompressionResult,
    HtmlCompressor,
    PipelineState,
    XmlCompressor,
    compress,
    compress_with_stats,
)
from markup_compressor.config import (
    BLOCK_TAGS_MAX,
    BLOCK_TAGS_MIN,
    ClosureLevel,
    ErrorPolicy,
    HtmlConfiguration,
    JsBackend,
    XmlConfiguration,
)
from markup_compressor.errors import (
    AllocationExhausted,
    CompressorError,
    ConfigurationError,
    MarkupCompressorError,
    MissingCapability,
    UnresolvedPlaceholder,
)
from markup_compressor.patterns import ContentKind, read_preserve_patterns

__all__ = [
    "compress",
    "compress_with_stats",
    "HtmlCompressor",
    "XmlCompressor",
    "CompressionResult",
    "PipelineState",
    "HtmlConfiguration",
    "XmlConfiguration",
    "JsBackend",
    "ClosureLevel",
    "ErrorPolicy",
    "BLOCK_TAGS_MIN",
    "BLOCK_TAGS_MAX",
    "ContentKind",
    "read_preserve_patterns",
    "Compressor",
    "YuiJavaScriptCompressor",
    "YuiCssCompressor",
    "ClosureJavaScriptCompressor",
    "MarkupCompressorError",
    "ConfigurationError",
    "MissingCapability",
    "UnresolvedPlaceholder",
    "AllocationExhausted",
    "CompressorError",
]
