"""Observability module for structured logging and OpenTelemetry tracing."""

from corpus_builder.observability.context import (
    begin_crawl_context,
    get_trace_context,
    set_trace_context,
    trace_context,
)
from corpus_builder.observability.logging import JsonFormatter, configure_logging
from corpus_builder.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "JsonFormatter",
    "begin_crawl_context",
    "configure_logging",
    "create_span",
    "get_trace_context",
    "get_tracer",
    "init_tracing",
    "set_trace_context",
    "trace_context",
]
