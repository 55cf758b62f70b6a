from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import List, Optional

from ..internal_core.contracts import Collection, CollectionDto, collection_to_dto, now_ms
from ..internal_core.entity_store import EntityStore
from ..internal_core.projection import ProjectionWriter
from ..mediator.base import CancellationToken, ValidationFailure
from ..mediator.dispatcher import HandlerRegistry
from ..mediator.validation import collect, max_length, not_empty

NAME_MAX_LENGTH = 200

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateCollectionCommand:
    name: str


@dataclass(frozen=True)
class UpdateCollectionCommand:
    id: str
    name: str


@dataclass(frozen=True)
class DeleteCollectionCommand:
    id: str


@dataclass(frozen=True)
class GetAllCollectionsQuery:
    pass


@dataclass(frozen=True)
class GetCollectionByIdQuery:
    id: str


REQUEST_TYPES = (
    CreateCollectionCommand,
    UpdateCollectionCommand,
    DeleteCollectionCommand,
    GetAllCollectionsQuery,
    GetCollectionByIdQuery,
)


async def validate_create_collection(
    request: CreateCollectionCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Name", request.name),
        max_length("Name", request.name, NAME_MAX_LENGTH),
    )


async def validate_update_collection(
    request: UpdateCollectionCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Id", request.id),
        not_empty("Name", request.name),
        max_length("Name", request.name, NAME_MAX_LENGTH),
    )


class CollectionHandlers:
    def __init__(self, store: EntityStore[Collection], projection: ProjectionWriter):
        self._store = store
        self._projection = projection

    async def create(self, request: CreateCollectionCommand, token: CancellationToken) -> CollectionDto:
        logger.debug("Creating collection name=%s", request.name)
        collection = Collection(id=str(uuid.uuid4()), name=request.name, created_at=now_ms())
        created = await self._store.insert(collection, token)
        await self._projection.sync_collection(created, token)
        return collection_to_dto(created)

    async def update(
        self, request: UpdateCollectionCommand, token: CancellationToken
    ) -> Optional[CollectionDto]:
        saved = await self._store.patch(request.id, lambda current: {"name": request.name}, token)
        if saved is None:
            logger.warning("Collection %s not found", request.id)
            return None
        await self._projection.sync_collection(saved, token)
        return collection_to_dto(saved)

    async def delete(self, request: DeleteCollectionCommand, token: CancellationToken) -> bool:
        return await self._store.delete(request.id, token)

    async def get_all(
        self, request: GetAllCollectionsQuery, token: CancellationToken
    ) -> List[CollectionDto]:
        return [collection_to_dto(c) for c in await self._store.get_all(token)]

    async def get_by_id(
        self, request: GetCollectionByIdQuery, token: CancellationToken
    ) -> Optional[CollectionDto]:
        collection = await self._store.get_by_id(request.id, token)
        return None if collection is None else collection_to_dto(collection)


def register(
    registry: HandlerRegistry, store: EntityStore[Collection], projection: ProjectionWriter
) -> CollectionHandlers:
    handlers = CollectionHandlers(store, projection)
    registry.register_handler(CreateCollectionCommand, handlers.create)
    registry.register_handler(UpdateCollectionCommand, handlers.update)
    registry.register_handler(DeleteCollectionCommand, handlers.delete)
    registry.register_handler(GetAllCollectionsQuery, handlers.get_all)
    registry.register_handler(GetCollectionByIdQuery, handlers.get_by_id)
    registry.register_validator(CreateCollectionCommand, validate_create_collection)
    registry.register_validator(UpdateCollectionCommand, validate_update_collection)
    return handlers
