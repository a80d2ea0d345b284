"""Observability helpers."""

from loopdash.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_rotation,
    record_cancellation,
    record_history_deletion,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_rotation",
    "record_cancellation",
    "record_history_deletion",
]
