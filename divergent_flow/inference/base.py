from __future__ import annotations

from abc import ABC, abstractmethod

from ..internal_core.contracts import TypeConfirmation, TypeInferenceResult
from ..mediator.base import DivergentFlowError


class EmptyInputError(DivergentFlowError):
    def __init__(self, message: str = "Text cannot be null or empty."):
        super().__init__("EMPTY_INPUT", message)


class TypeInferenceService(ABC):
    @abstractmethod
    def infer(self, text: str) -> TypeInferenceResult: ...

    @abstractmethod
    def confirm(self, confirmation: TypeConfirmation) -> None: ...

    @abstractmethod
    def name(self) -> str: ...
