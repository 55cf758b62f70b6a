"""
Type inference boundary for captured text.

Design intent:
- Keep the classifier behind a small provider interface so it can be swapped.
- The current provider is a fixed-answer placeholder.
"""
from __future__ import annotations

from .base import EmptyInputError, TypeInferenceService
from .basic import BasicTypeInferenceService
from .reinference import ReinferenceSummary, reinfer_captures, run_reinference_loop

__all__ = [
    "BasicTypeInferenceService",
    "EmptyInputError",
    "ReinferenceSummary",
    "TypeInferenceService",
    "reinfer_captures",
    "run_reinference_loop",
]
