from __future__ import annotations

from ..internal_core.contracts import TypeConfirmation, TypeInferenceResult
from .base import EmptyInputError, TypeInferenceService

FIXED_INFERRED_TYPE = "action"
FIXED_CONFIDENCE = 50.0


class BasicTypeInferenceService(TypeInferenceService):
    """Placeholder classifier: every non-blank text is an "action" at 50% confidence."""

    def infer(self, text: str) -> TypeInferenceResult:
        if text is None or not text.strip():
            raise EmptyInputError()
        return TypeInferenceResult(inferred_type=FIXED_INFERRED_TYPE, confidence=FIXED_CONFIDENCE)

    def confirm(self, confirmation: TypeConfirmation) -> None:
        if confirmation is None:
            raise ValueError("confirmation is required")
        # Confirmations are accepted but not stored yet.
        return None

    def name(self) -> str:
        return "basic"
