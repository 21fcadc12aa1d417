"""FastAPI REST API for markup-compressor."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Literal

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from markup_compressor import (
    AllocationExhausted,
    CompressionResult,
    CompressorError,
    ConfigurationError,
    HtmlCompressor,
    HtmlConfiguration,
    MarkupCompressorError,
    MissingCapability,
    UnresolvedPlaceholder,
    XmlCompressor,
    XmlConfiguration,
)
from markup_compressor.analyzer import analyze
from markup_compressor.logging_config import configure_from_env

logger = logging.getLogger(__name__)

API_VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Redis Cache
# ---------------------------------------------------------------------------

redis_client: aioredis.Redis | None = None

# Cache TTL in seconds (default: 1 hour)
CACHE_TTL = int(os.getenv("CACHE_TTL", "3600"))

# Redis connection URL
REDIS_URL = os.getenv("REDIS_URL", "redis://redis:6379")

# Upper bound on preserved regions per document
MAX_SEGMENTS = int(os.getenv("MAX_SEGMENTS", "50000"))

CACHE_PREFIXES = ("compress_html", "compress_xml", "compress_stats")


def _generate_cache_key(prefix: str, data: dict) -> str:
    """Generate a cache key from request data."""
    # Sort dict keys for consistent hashing
    sorted_data = json.dumps(data, sort_keys=True)
    hash_value = hashlib.sha256(sorted_data.encode()).hexdigest()[:16]
    return f"{prefix}:{hash_value}"


async def _cache_get(key: str) -> str | None:
    if redis_client is None:
        return None
    try:
        return await redis_client.get(key)
    except RedisError as e:
        logger.warning("cache read failed for %s: %s", key, e)
        return None


async def _cache_set(key: str, value: str) -> None:
    if redis_client is None:
        return
    try:
        await redis_client.setex(key, CACHE_TTL, value)
    except RedisError as e:
        logger.warning("cache write failed for %s: %s", key, e)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------


class HtmlOptions(BaseModel):
    """HTML compression switches. Names and defaults follow HtmlConfiguration."""

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
    remove_surrounding_spaces: str | None = Field(
        default=None, description="'min', 'max', 'all' or a comma separated list of tag names"
    )
    remove_spaces_inside_tags: bool = True
    trim: bool = True
    preserve_php: bool = False
    preserve_server_script: bool = False
    preserve_ssi: bool = False
    preserve_patterns: list[str] = Field(default_factory=list, description="Custom regex patterns to preserve")
    compress_javascript: bool = False
    compress_css: bool = False
    compress_js_with_preserved_blocks: bool = True
    compress_css_with_preserved_blocks: bool = True
    js_backend: Literal["yui", "closure"] = "yui"
    yui_line_break: int = Field(default=-1, ge=-1)
    yui_keep_bang_comments: bool = False
    closure_level: Literal["WHITESPACE_ONLY", "SIMPLE", "ADVANCED"] = "SIMPLE"
    closure_timeout: float = Field(default=30.0, gt=0, le=120, description="Seconds before a Closure run is killed")
    on_compressor_error: Literal["raise", "keep_original"] = "raise"

    def to_configuration(self) -> HtmlConfiguration:
        return HtmlConfiguration(max_segments=MAX_SEGMENTS, **self.model_dump(include=set(HtmlOptions.model_fields)))


class CompressHtmlRequest(HtmlOptions):
    """Request body for HTML compression endpoints."""

    text: str = Field(..., description="HTML to compress")

    model_config = {"json_schema_extra": {
        "examples": [
            {
                "text": "<html>\n  <body>\n    <p> Hello   world </p>\n  </body>\n</html>",
                "remove_intertag_spaces": True,
            }
        ]
    }}


class CompressXmlRequest(BaseModel):
    """Request body for the /compress/xml endpoint."""

    text: str = Field(..., description="XML to compress")
    remove_comments: bool = True
    remove_intertag_spaces: bool = True
    trim: bool = True

    def to_configuration(self) -> XmlConfiguration:
        return XmlConfiguration(
            remove_comments=self.remove_comments,
            remove_intertag_spaces=self.remove_intertag_spaces,
            trim=self.trim,
            max_segments=MAX_SEGMENTS,
        )


class CompressResponse(BaseModel):
    """Response body for the /compress/html and /compress/xml endpoints."""

    text: str = Field(..., description="Compressed markup")


class SegmentResponse(BaseModel):
    """A region held out of minification."""

    order: int
    kind: str
    rule: str
    length: int


class CompressStatsResponse(BaseModel):
    """Response body for the /compress/stats endpoint."""

    text: str = Field(..., description="Compressed markup")
    original_length: int = Field(..., description="Original text length")
    compressed_length: int = Field(..., description="Compressed text length")
    ratio: float = Field(..., description="Compression ratio (0.0-1.0)")
    savings_pct: float = Field(..., description="Percentage of characters saved")
    segments: list[SegmentResponse] = Field(default_factory=list, description="Preserved regions")
    states: list[str] = Field(default_factory=list, description="Pipeline stages that ran")


class BatchItem(BaseModel):
    """A single item in a batch compression request."""

    id: str = Field(..., description="Unique identifier for this item")
    text: str = Field(..., description="HTML to compress")


class BatchRequest(HtmlOptions):
    """Request body for batch compression."""

    items: list[BatchItem] = Field(..., description="List of documents to compress")


class BatchItemResponse(BaseModel):
    """A single result in a batch compression response."""

    id: str
    text: str
    original_length: int
    compressed_length: int
    ratio: float
    savings_pct: float


class BatchResponse(BaseModel):
    """Response body for batch compression."""

    items: list[BatchItemResponse]
    total_original_length: int
    total_compressed_length: int
    overall_ratio: float
    overall_savings_pct: float


class AnalyzeRequest(BaseModel):
    """Request body for the /analyze endpoint."""

    text: str = Field(..., description="HTML page to analyze")
    js_backend: Literal["yui", "closure"] = "yui"


class AnalysisStepResponse(BaseModel):
    name: str
    size: int
    incremental_gain: int
    total_gain: int
    skipped: str | None = None


class AnalyzeResponse(BaseModel):
    """Response body for the /analyze endpoint."""

    original_size: int
    js_backend: str
    steps: list[AnalysisStepResponse]
    recommended_options: dict[str, Any]


class HealthResponse(BaseModel):
    """Response body for health check."""

    status: str = "ok"
    version: str
    cache_enabled: bool = False
    redis_connected: bool = False


class CacheStatsResponse(BaseModel):
    """Response body for cache statistics."""

    enabled: bool
    connected: bool
    ttl_seconds: int
    redis_url: str
    keys_count: int | None = None
    memory_used: str | None = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _http_error(e: MarkupCompressorError) -> HTTPException:
    """Map a compressor error to the HTTP status the client should see."""
    if isinstance(e, MissingCapability):
        return HTTPException(status_code=501, detail=str(e))
    if isinstance(e, UnresolvedPlaceholder):
        logger.error("placeholder restoration failed: %s", e)
        return HTTPException(status_code=500, detail="Internal consistency failure while restoring the document")
    if isinstance(e, AllocationExhausted):
        return HTTPException(status_code=413, detail=str(e))
    if isinstance(e, (ConfigurationError, CompressorError)):
        return HTTPException(status_code=422, detail=str(e))
    return HTTPException(status_code=500, detail=str(e))


def _result_to_stats_response(result: CompressionResult) -> CompressStatsResponse:
    """Convert a CompressionResult to the API response model."""
    return CompressStatsResponse(
        text=result.text,
        original_length=result.original_length,
        compressed_length=result.compressed_length,
        ratio=result.ratio,
        savings_pct=result.savings_pct,
        segments=[
            SegmentResponse(
                order=segment.order,
                kind=segment.kind.value,
                rule=segment.rule_id,
                length=len(segment.text),
            )
            for segment in result.segments
        ],
        states=[state.value for state in result.states],
    )


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifespan - logging and the Redis connection."""
    global redis_client
    configure_from_env()
    try:
        redis_client = aioredis.from_url(
            REDIS_URL,
            encoding="utf-8",
            decode_responses=True,
        )
        await redis_client.ping()
        logger.info("connected to redis at %s", REDIS_URL.split("@")[-1])
    except (RedisError, OSError) as e:
        logger.warning("redis unavailable, caching disabled: %s", e)
        redis_client = None

    yield

    if redis_client:
        await redis_client.aclose()


app = FastAPI(
    title="Markup Compressor API",
    description=(
        "REST API for minifying HTML and XML. Removes redundant whitespace, comments "
        "and implied attributes while keeping <pre>, <textarea>, scripts, styles, CDATA, "
        "conditional comments and template tags intact."
    ),
    version=API_VERSION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Check API health, version, and cache status."""
    redis_connected = False
    if redis_client:
        try:
            await redis_client.ping()
            redis_connected = True
        except RedisError as e:
            logger.warning("redis ping failed: %s", e)

    return HealthResponse(
        status="ok",
        version=API_VERSION,
        cache_enabled=redis_client is not None,
        redis_connected=redis_connected,
    )


@app.get("/cache/stats", response_model=CacheStatsResponse, tags=["Cache"])
async def cache_stats() -> CacheStatsResponse:
    """Get cache statistics and Redis connection info."""
    keys_count = None
    memory_used = None
    connected = False

    if redis_client:
        try:
            await redis_client.ping()
            connected = True
            keys_count = 0
            for prefix in CACHE_PREFIXES:
                keys_count += len(await redis_client.keys(f"{prefix}:*"))

            info = await redis_client.info("memory")
            memory_used = info.get("used_memory_human", "unknown")
        except RedisError as e:
            logger.warning("reading cache stats failed: %s", e)

    return CacheStatsResponse(
        enabled=redis_client is not None,
        connected=connected,
        ttl_seconds=CACHE_TTL,
        redis_url=REDIS_URL.split("@")[-1] if "@" in REDIS_URL else REDIS_URL,
        keys_count=keys_count,
        memory_used=memory_used,
    )


@app.post("/compress/html", response_model=CompressResponse, tags=["Compression"])
async def compress_html(req: CompressHtmlRequest) -> CompressResponse:
    """Minify an HTML document.

    Results are cached in Redis for improved performance.
    """
    cache_key = _generate_cache_key("compress_html", req.model_dump())
    cached = await _cache_get(cache_key)
    if cached is not None:
        return CompressResponse(text=cached)

    try:
        result = await asyncio.to_thread(HtmlCompressor(req.to_configuration()).compress, req.text)
    except MarkupCompressorError as e:
        raise _http_error(e) from e

    await _cache_set(cache_key, result)
    return CompressResponse(text=result)


@app.post("/compress/xml", response_model=CompressResponse, tags=["Compression"])
async def compress_xml(req: CompressXmlRequest) -> CompressResponse:
    """Minify an XML document. CDATA sections are kept verbatim."""
    cache_key = _generate_cache_key("compress_xml", req.model_dump())
    cached = await _cache_get(cache_key)
    if cached is not None:
        return CompressResponse(text=cached)

    try:
        result = await asyncio.to_thread(XmlCompressor(req.to_configuration()).compress, req.text)
    except MarkupCompressorError as e:
        raise _http_error(e) from e

    await _cache_set(cache_key, result)
    return CompressResponse(text=result)


@app.post("/compress/stats", response_model=CompressStatsResponse, tags=["Compression"])
async def compress_html_with_stats(req: CompressHtmlRequest) -> CompressStatsResponse:
    """Minify an HTML document and return detailed compression statistics.

    Returns the compressed text along with the compression ratio, the
    preserved regions and the pipeline stages that ran.
    """
    cache_key = _generate_cache_key("compress_stats", req.model_dump())
    cached = await _cache_get(cache_key)
    if cached is not None:
        return CompressStatsResponse(**json.loads(cached))

    try:
        result = await asyncio.to_thread(HtmlCompressor(req.to_configuration()).compress_with_stats, req.text)
    except MarkupCompressorError as e:
        raise _http_error(e) from e

    response = _result_to_stats_response(result)
    await _cache_set(cache_key, response.model_dump_json())
    return response


@app.post("/compress/batch", response_model=BatchResponse, tags=["Compression"])
async def compress_batch(req: BatchRequest) -> BatchResponse:
    """Minify multiple HTML documents in a single request.

    Each item is compressed independently with the same settings.
    Returns per-item results and aggregate statistics.
    """
    def _compress_all() -> list[CompressionResult]:
        compressor = HtmlCompressor(req.to_configuration())
        return [compressor.compress_with_stats(item.text) for item in req.items]

    try:
        results = await asyncio.to_thread(_compress_all)
    except MarkupCompressorError as e:
        raise _http_error(e) from e

    items: list[BatchItemResponse] = []
    total_orig = 0
    total_comp = 0
    for item, result in zip(req.items, results):
        items.append(BatchItemResponse(
            id=item.id,
            text=result.text,
            original_length=result.original_length,
            compressed_length=result.compressed_length,
            ratio=result.ratio,
            savings_pct=result.savings_pct,
        ))
        total_orig += result.original_length
        total_comp += result.compressed_length

    overall_ratio = total_comp / total_orig if total_orig > 0 else 1.0
    return BatchResponse(
        items=items,
        total_original_length=total_orig,
        total_compressed_length=total_comp,
        overall_ratio=overall_ratio,
        overall_savings_pct=(1.0 - overall_ratio) * 100,
    )


@app.post("/analyze", response_model=AnalyzeResponse, tags=["Analysis"])
async def analyze_page(req: AnalyzeRequest) -> AnalyzeResponse:
    """Apply increasingly aggressive options to one page and report what each one saves."""
    try:
        report = await asyncio.to_thread(analyze, req.text, req.js_backend)
    except MarkupCompressorError as e:
        raise _http_error(e) from e

    return AnalyzeResponse(
        original_size=report.original_size,
        js_backend=report.js_backend,
        steps=[
            AnalysisStepResponse(
                name=step.name,
                size=step.size,
                incremental_gain=step.incremental_gain,
                total_gain=step.total_gain,
                skipped=step.skipped,
            )
            for step in report.steps
        ],
        recommended_options=report.recommended_options(),
    )
