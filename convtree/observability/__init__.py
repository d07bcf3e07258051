"""Observability helpers."""

from convtree.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_reconstruction,
    record_parser_failure,
    record_delegation_resolution,
    record_sub_session_fetch,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_reconstruction",
    "record_parser_failure",
    "record_delegation_resolution",
    "record_sub_session_fetch",
]
