from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from ..internal_core.contracts import Capture, CaptureDto, capture_to_dto, now_ms
from ..internal_core.entity_store import EntityStore
from ..mediator.base import CancellationToken, ValidationFailure
from ..mediator.dispatcher import HandlerRegistry
from ..mediator.validation import collect, inclusive_between, not_empty

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateCaptureCommand:
    text: str
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None


@dataclass(frozen=True)
class UpdateCaptureCommand:
    id: str
    text: str
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None


@dataclass(frozen=True)
class DeleteCaptureCommand:
    id: str


@dataclass(frozen=True)
class GetAllCapturesQuery:
    pass


@dataclass(frozen=True)
class GetCaptureByIdQuery:
    id: str


REQUEST_TYPES = (
    CreateCaptureCommand,
    UpdateCaptureCommand,
    DeleteCaptureCommand,
    GetAllCapturesQuery,
    GetCaptureByIdQuery,
)


async def validate_create_capture(
    request: CreateCaptureCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Text", request.text),
        inclusive_between("TypeConfidence", request.type_confidence, 0, 100),
    )


async def validate_update_capture(
    request: UpdateCaptureCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Id", request.id),
        not_empty("Text", request.text),
        inclusive_between("TypeConfidence", request.type_confidence, 0, 100),
    )


class CaptureHandlers:
    def __init__(self, store: EntityStore[Capture]):
        self._store = store

    async def create(self, request: CreateCaptureCommand, token: CancellationToken) -> CaptureDto:
        capture = Capture(
            id=str(uuid.uuid4()),
            text=request.text,
            created_at=now_ms(),
            inferred_type=request.inferred_type,
            type_confidence=request.type_confidence,
        )
        logger.debug(
            "Creating capture %s via %s (text_length=%d)",
            capture.id,
            self._store.name(),
            len(request.text),
        )
        created = await self._store.insert(capture, token)
        return capture_to_dto(created)

    async def update(
        self, request: UpdateCaptureCommand, token: CancellationToken
    ) -> Optional[CaptureDto]:
        changes = {
            "text": request.text,
            "inferred_type": request.inferred_type,
            "type_confidence": request.type_confidence,
        }
        saved = await self._store.patch(request.id, lambda current: changes, token)
        return None if saved is None else capture_to_dto(saved)

    async def delete(self, request: DeleteCaptureCommand, token: CancellationToken) -> bool:
        return await self._store.delete(request.id, token)

    async def get_all(self, request: GetAllCapturesQuery, token: CancellationToken) -> List[CaptureDto]:
        captures = await self._store.get_all(token)
        return [capture_to_dto(capture) for capture in captures]

    async def get_by_id(
        self, request: GetCaptureByIdQuery, token: CancellationToken
    ) -> Optional[CaptureDto]:
        capture = await self._store.get_by_id(request.id, token)
        return None if capture is None else capture_to_dto(capture)


def register(registry: HandlerRegistry, store: EntityStore[Capture]) -> CaptureHandlers:
    handlers = CaptureHandlers(store)
    registry.register_handler(CreateCaptureCommand, handlers.create)
    registry.register_handler(UpdateCaptureCommand, handlers.update)
    registry.register_handler(DeleteCaptureCommand, handlers.delete)
    registry.register_handler(GetAllCapturesQuery, handlers.get_all)
    registry.register_handler(GetCaptureByIdQuery, handlers.get_by_id)
    registry.register_validator(CreateCaptureCommand, validate_create_capture)
    registry.register_validator(UpdateCaptureCommand, validate_update_capture)
    return handlers
