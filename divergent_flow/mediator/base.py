from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple


class DivergentFlowError(RuntimeError):
    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class NoHandlerError(DivergentFlowError):
    def __init__(self, request_type: type):
        super().__init__("NO_HANDLER", f"No handler registered for {request_type.__name__}")
        self.request_type = request_type


class AmbiguousHandlerError(DivergentFlowError):
    def __init__(self, request_type: type):
        super().__init__(
            "AMBIGUOUS_HANDLER",
            f"More than one handler registered for {request_type.__name__}",
        )
        self.request_type = request_type


class OperationCancelled(DivergentFlowError):
    def __init__(self, message: str = "Operation was cancelled."):
        super().__init__("CANCELLED", message)


@dataclass(frozen=True, order=True)
class ValidationFailure:
    field: str
    message: str


def aggregate_failures(failures: Iterable[ValidationFailure]) -> Dict[str, List[str]]:
    """Deduplicate by (field, message) and group by field; independent of input order."""
    grouped: Dict[str, List[str]] = {}
    for failure in sorted(set(failures)):
        grouped.setdefault(failure.field, []).append(failure.message)
    return grouped


class ValidationFailed(DivergentFlowError):
    """Raised by the validation stage; carries deduplicated (field, message) failures."""

    def __init__(self, failures: Iterable[ValidationFailure]):
        self.failures: Tuple[ValidationFailure, ...] = tuple(sorted(set(failures)))
        fields = ", ".join(sorted({f.field for f in self.failures}))
        super().__init__("VALIDATION_FAILED", f"Validation failed for: {fields}")

    @property
    def errors(self) -> Dict[str, List[str]]:
        return aggregate_failures(self.failures)


class CancellationToken:
    """Shared cancel flag checked at entry of every store/validator/handler call."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelled()


def ensure_token(token: "CancellationToken | None") -> CancellationToken:
    return token if token is not None else CancellationToken()
