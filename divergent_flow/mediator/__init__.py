"""
Request dispatch for the Divergent Flow backend.

Design intent:
- Route every command/query to exactly one handler.
- Run all validators of a request before its handler, never after.
"""
from __future__ import annotations

from .base import (
    AmbiguousHandlerError,
    CancellationToken,
    NoHandlerError,
    OperationCancelled,
    ValidationFailed,
    ValidationFailure,
    aggregate_failures,
)
from .dispatcher import Dispatcher, HandlerRegistry
from .validation import run_validators

__all__ = [
    "AmbiguousHandlerError",
    "CancellationToken",
    "Dispatcher",
    "HandlerRegistry",
    "NoHandlerError",
    "OperationCancelled",
    "ValidationFailed",
    "ValidationFailure",
    "aggregate_failures",
    "run_validators",
]
