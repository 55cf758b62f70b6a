from __future__ import annotations

from dataclasses import dataclass
from typing import List

from ..inference.base import TypeInferenceService
from ..internal_core.contracts import TypeConfirmation, TypeInferenceResult
from ..mediator.base import CancellationToken, ValidationFailure
from ..mediator.dispatcher import HandlerRegistry
from ..mediator.validation import collect, inclusive_between, not_empty


@dataclass(frozen=True)
class InferTypeQuery:
    text: str


@dataclass(frozen=True)
class ConfirmTypeCommand:
    confirmation: TypeConfirmation


REQUEST_TYPES = (InferTypeQuery, ConfirmTypeCommand)


async def validate_infer_type(request: InferTypeQuery, token: CancellationToken) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(not_empty("Text", request.text))


async def validate_confirm_type(
    request: ConfirmTypeCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    confirmation = request.confirmation
    if confirmation is None:
        return [ValidationFailure("Request", "'Request' must not be empty.")]
    return collect(
        not_empty("Text", confirmation.text),
        not_empty("InferredType", confirmation.inferred_type),
        not_empty("ConfirmedType", confirmation.confirmed_type),
        inclusive_between("InferredConfidence", confirmation.inferred_confidence, 0, 100),
    )


class TypeInferenceHandlers:
    def __init__(self, service: TypeInferenceService):
        self._service = service

    async def infer(self, request: InferTypeQuery, token: CancellationToken) -> TypeInferenceResult:
        token.raise_if_cancelled()
        return self._service.infer(request.text)

    async def confirm(self, request: ConfirmTypeCommand, token: CancellationToken) -> None:
        token.raise_if_cancelled()
        self._service.confirm(request.confirmation)


def register(registry: HandlerRegistry, service: TypeInferenceService) -> TypeInferenceHandlers:
    handlers = TypeInferenceHandlers(service)
    registry.register_handler(InferTypeQuery, handlers.infer)
    registry.register_handler(ConfirmTypeCommand, handlers.confirm)
    registry.register_validator(InferTypeQuery, validate_infer_type)
    registry.register_validator(ConfirmTypeCommand, validate_confirm_type)
    return handlers
