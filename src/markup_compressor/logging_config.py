"""structlog + stdlib bridge for the CLI tools and the HTTP service.

The library modules only use ``logging.getLogger(__name__)``; nothing is
configured on import. Applications call configure() once at startup.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TextIO

import structlog

# loggers of the compression pipeline; their DEBUG output is per-document noise
PIPELINE_LOGGERS = (
    "markup_compressor.extractor",
    "markup_compressor.restorer",
    "markup_compressor.compressor",
)


def configure(
    *,
    json_output: bool = False,
    level: str = "INFO",
    stream: TextIO | None = None,
    trace_pipeline: bool = False,
) -> None:
    """Route stdlib logging through structlog.

    Args:
        json_output: JSON lines (service mode) instead of the console renderer.
        level: Root logger level; unknown names fall back to INFO.
        stream: Where records go; stderr by default.
        trace_pipeline: Let the pipeline modules log at DEBUG when the root
            level allows it. Off by default, which caps those loggers at INFO.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer(colors=False)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in PIPELINE_LOGGERS:
        logging.getLogger(name).setLevel(logging.NOTSET if trace_pipeline else logging.INFO)


def configure_from_env() -> None:
    """configure() driven by LOG_LEVEL, LOG_JSON and LOG_TRACE_PIPELINE."""
    configure(
        json_output=os.getenv("LOG_JSON", "1").lower() in {"1", "true", "yes"},
        level=os.getenv("LOG_LEVEL", "INFO"),
        trace_pipeline=os.getenv("LOG_TRACE_PIPELINE", "").lower() in {"1", "true", "yes"},
    )
