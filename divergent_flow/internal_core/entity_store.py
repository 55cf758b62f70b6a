from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import OrderedDict
from threading import RLock
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from pydantic import BaseModel

from ..mediator.base import CancellationToken, DivergentFlowError, ensure_token

EntityT = TypeVar("EntityT", bound=BaseModel)

# Fields that survive an update untouched.
IMMUTABLE_FIELDS = ("id", "created_at")

# Maps the current stored entity to field changes; None leaves it as is.
ChangeBuilder = Callable[[Any], Optional[Dict[str, Any]]]

logger = logging.getLogger(__name__)


class DuplicateIdError(DivergentFlowError):
    def __init__(self, entity_id: str):
        super().__init__("DUPLICATE_ID", f"Entity already exists: {entity_id}")
        self.entity_id = entity_id


class EntityStore(ABC, Generic[EntityT]):
    @abstractmethod
    async def get_all(self, token: Optional[CancellationToken] = None) -> List[EntityT]: ...

    @abstractmethod
    async def get_by_id(
        self, entity_id: str, token: Optional[CancellationToken] = None
    ) -> Optional[EntityT]: ...

    @abstractmethod
    async def insert(self, entity: EntityT, token: Optional[CancellationToken] = None) -> EntityT: ...

    @abstractmethod
    async def update(
        self, entity_id: str, entity: EntityT, token: Optional[CancellationToken] = None
    ) -> Optional[EntityT]: ...

    @abstractmethod
    async def patch(
        self, entity_id: str, build_changes: ChangeBuilder, token: Optional[CancellationToken] = None
    ) -> Optional[EntityT]:
        """Apply `build_changes(current)` to the stored entity as one atomic step.

        Returns the stored entity afterwards, or None when the id is unknown.
        """

    @abstractmethod
    async def delete(self, entity_id: str, token: Optional[CancellationToken] = None) -> bool: ...

    @abstractmethod
    def name(self) -> str: ...


def merge_mutable_fields(existing: EntityT, incoming: EntityT) -> EntityT:
    return incoming.model_copy(
        update={field: getattr(existing, field) for field in IMMUTABLE_FIELDS},
        deep=True,
    )


def apply_changes(existing: EntityT, changes: Optional[Dict[str, Any]]) -> EntityT:
    if not changes:
        return existing
    allowed = {field: value for field, value in changes.items() if field not in IMMUTABLE_FIELDS}
    return existing.model_copy(update=allowed, deep=True)


class InMemoryEntityStore(EntityStore[EntityT]):
    """Process-local store; one lock serializes every read and write."""

    def __init__(self, label: str = "entity"):
        self._label = label
        self._lock = RLock()
        self._entities: "OrderedDict[str, EntityT]" = OrderedDict()

    def name(self) -> str:
        return f"memory:{self._label}"

    async def get_all(self, token: Optional[CancellationToken] = None) -> List[EntityT]:
        ensure_token(token).raise_if_cancelled()
        with self._lock:
            return [entity.model_copy(deep=True) for entity in self._entities.values()]

    async def get_by_id(
        self, entity_id: str, token: Optional[CancellationToken] = None
    ) -> Optional[EntityT]:
        ensure_token(token).raise_if_cancelled()
        with self._lock:
            entity = self._entities.get(entity_id)
            return None if entity is None else entity.model_copy(deep=True)

    async def insert(self, entity: EntityT, token: Optional[CancellationToken] = None) -> EntityT:
        ensure_token(token).raise_if_cancelled()
        entity_id = getattr(entity, "id")
        with self._lock:
            if entity_id in self._entities:
                raise DuplicateIdError(entity_id)
            stored = entity.model_copy(deep=True)
            self._entities[entity_id] = stored
            logger.debug("%s insert id=%s count=%d", self.name(), entity_id, len(self._entities))
            return stored.model_copy(deep=True)

    async def update(
        self, entity_id: str, entity: EntityT, token: Optional[CancellationToken] = None
    ) -> Optional[EntityT]:
        ensure_token(token).raise_if_cancelled()
        with self._lock:
            existing = self._entities.get(entity_id)
            if existing is None:
                logger.debug("%s update id=%s not found", self.name(), entity_id)
                return None
            stored = merge_mutable_fields(existing, entity)
            self._entities[entity_id] = stored
            return stored.model_copy(deep=True)

    async def patch(
        self, entity_id: str, build_changes: ChangeBuilder, token: Optional[CancellationToken] = None
    ) -> Optional[EntityT]:
        ensure_token(token).raise_if_cancelled()
        with self._lock:
            existing = self._entities.get(entity_id)
            if existing is None:
                logger.debug("%s patch id=%s not found", self.name(), entity_id)
                return None
            stored = apply_changes(existing, build_changes(existing.model_copy(deep=True)))
            self._entities[entity_id] = stored
            return stored.model_copy(deep=True)

    async def delete(self, entity_id: str, token: Optional[CancellationToken] = None) -> bool:
        ensure_token(token).raise_if_cancelled()
        with self._lock:
            removed = self._entities.pop(entity_id, None)
        logger.debug("%s delete id=%s removed=%s", self.name(), entity_id, removed is not None)
        return removed is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entities)
