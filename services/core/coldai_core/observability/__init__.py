"""Observability package for structured logging."""

from coldai_core.observability.logging import (
    JsonFormatter,
    RequestContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "JsonFormatter",
    "RequestContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
