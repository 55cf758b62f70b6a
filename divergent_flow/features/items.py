from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from ..internal_core.contracts import (
    DashboardDataDto,
    DashboardMetrics,
    Item,
    ItemDto,
    is_action_like,
    item_to_dto,
    item_to_task_dto,
    now_ms,
)
from ..internal_core.entity_store import EntityStore
from ..internal_core.projection import ProjectionWriter
from ..mediator.base import CancellationToken, ValidationFailure
from ..mediator.dispatcher import HandlerRegistry
from ..mediator.validation import at_least, collect, inclusive_between, not_empty

DAY_MS = 24 * 60 * 60 * 1000
UPCOMING_WINDOW_DAYS = 7
UPCOMING_LIMIT = 10

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreateItemCommand:
    text: str
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    collection_id: Optional[str] = None


@dataclass(frozen=True)
class UpdateItemCommand:
    id: str
    text: str
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    collection_id: Optional[str] = None


@dataclass(frozen=True)
class DeleteItemCommand:
    id: str


@dataclass(frozen=True)
class MarkItemReviewedCommand:
    id: str
    confirmed_type: Optional[str] = None
    confirmed_confidence: Optional[float] = None


@dataclass(frozen=True)
class GetAllItemsQuery:
    pass


@dataclass(frozen=True)
class GetItemByIdQuery:
    id: str


@dataclass(frozen=True)
class GetReviewQueueQuery:
    limit: int = 3
    max_confidence: Optional[float] = 0.75


@dataclass(frozen=True)
class GetDashboardDataQuery:
    now_ms: Optional[int] = None


REQUEST_TYPES = (
    CreateItemCommand,
    UpdateItemCommand,
    DeleteItemCommand,
    MarkItemReviewedCommand,
    GetAllItemsQuery,
    GetItemByIdQuery,
    GetReviewQueueQuery,
    GetDashboardDataQuery,
)


async def validate_create_item(
    request: CreateItemCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Text", request.text),
        inclusive_between("TypeConfidence", request.type_confidence, 0, 100),
    )


async def validate_update_item(
    request: UpdateItemCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Id", request.id),
        not_empty("Text", request.text),
        inclusive_between("TypeConfidence", request.type_confidence, 0, 100),
    )


async def validate_mark_reviewed(
    request: MarkItemReviewedCommand, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(
        not_empty("Id", request.id),
        inclusive_between("ConfirmedConfidence", request.confirmed_confidence, 0, 100),
    )


async def validate_review_queue(
    request: GetReviewQueueQuery, token: CancellationToken
) -> List[ValidationFailure]:
    token.raise_if_cancelled()
    return collect(at_least("Limit", request.limit, 1))


def _review_sort_key(item: Item, max_confidence: Optional[float]) -> tuple:
    reviewed_rank = 1 if item.last_reviewed_at is not None else 0
    if max_confidence is None:
        confidence_rank = 1
    elif item.type_confidence is None:
        confidence_rank = 0
    else:
        confidence_rank = 1 if item.type_confidence > max_confidence else 0
    return (reviewed_rank, confidence_rank, item.created_at)


def _needs_review(item: Item, max_confidence: Optional[float]) -> bool:
    if item.last_reviewed_at is None:
        return True
    if item.type_confidence is None:
        return True
    return max_confidence is not None and item.type_confidence <= max_confidence


def build_review_queue(items: List[Item], limit: int, max_confidence: Optional[float]) -> List[Item]:
    ordered = sorted(items, key=lambda item: _review_sort_key(item, max_confidence))
    return [item for item in ordered if _needs_review(item, max_confidence)][:limit]


def _utc_day_start_ms(at_ms: int) -> int:
    moment = datetime.fromtimestamp(at_ms / 1000, tz=timezone.utc)
    day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    return int(day_start.timestamp() * 1000)


def build_dashboard(items: List[Item], at_ms: int) -> DashboardDataDto:
    today_start = _utc_day_start_ms(at_ms)
    today_end = today_start + DAY_MS
    action_items = sorted(
        (item for item in items if is_action_like(item.inferred_type)),
        key=lambda item: item.created_at,
    )

    metrics = DashboardMetrics(
        total_items=len(items),
        pending_review=sum(1 for item in items if item.last_reviewed_at is None),
        action_items=len(action_items),
        completed_today=sum(
            1
            for item in items
            if item.last_reviewed_at is not None and today_start <= item.last_reviewed_at < today_end
        ),
    )
    today_tasks = [
        item
        for item in action_items
        if today_start <= item.created_at < today_end and item.last_reviewed_at is None
    ]
    overdue_tasks = [
        item for item in action_items if item.created_at < today_start and item.last_reviewed_at is None
    ]
    upcoming_tasks = [
        item
        for item in action_items
        if item.created_at >= today_start - UPCOMING_WINDOW_DAYS * DAY_MS
        and item.last_reviewed_at is not None
    ][:UPCOMING_LIMIT]

    return DashboardDataDto(
        metrics=metrics,
        today_tasks=[item_to_task_dto(item) for item in today_tasks],
        overdue_tasks=[item_to_task_dto(item) for item in overdue_tasks],
        upcoming_tasks=[item_to_task_dto(item) for item in upcoming_tasks],
    )


class ItemHandlers:
    def __init__(self, store: EntityStore[Item], projection: ProjectionWriter):
        self._store = store
        self._projection = projection

    async def create(self, request: CreateItemCommand, token: CancellationToken) -> ItemDto:
        item = Item(
            id=str(uuid.uuid4()),
            type="capture",
            text=request.text,
            created_at=now_ms(),
            inferred_type=request.inferred_type,
            type_confidence=request.type_confidence,
            collection_id=request.collection_id,
        )
        logger.debug(
            "Creating item %s at %d via %s",
            item.id,
            item.created_at,
            self._store.name(),
        )
        created = await self._store.insert(item, token)
        await self._projection.sync_item(created, token)
        return item_to_dto(created)

    async def update(self, request: UpdateItemCommand, token: CancellationToken) -> Optional[ItemDto]:
        changes = {
            "text": request.text,
            "inferred_type": request.inferred_type,
            "type_confidence": request.type_confidence,
            "collection_id": request.collection_id,
        }
        saved = await self._store.patch(request.id, lambda current: changes, token)
        if saved is None:
            logger.warning("Item %s not found", request.id)
            return None
        await self._projection.sync_item(saved, token)
        return item_to_dto(saved)

    async def mark_reviewed(
        self, request: MarkItemReviewedCommand, token: CancellationToken
    ) -> Optional[ItemDto]:
        changes = {"last_reviewed_at": now_ms()}
        if request.confirmed_type is not None:
            changes["inferred_type"] = request.confirmed_type
        if request.confirmed_confidence is not None:
            changes["type_confidence"] = request.confirmed_confidence

        saved = await self._store.patch(request.id, lambda current: changes, token)
        if saved is None:
            return None
        await self._projection.sync_item(saved, token)
        return item_to_dto(saved)

    async def delete(self, request: DeleteItemCommand, token: CancellationToken) -> bool:
        return await self._store.delete(request.id, token)

    async def get_all(self, request: GetAllItemsQuery, token: CancellationToken) -> List[ItemDto]:
        return [item_to_dto(item) for item in await self._store.get_all(token)]

    async def get_by_id(self, request: GetItemByIdQuery, token: CancellationToken) -> Optional[ItemDto]:
        item = await self._store.get_by_id(request.id, token)
        return None if item is None else item_to_dto(item)

    async def review_queue(self, request: GetReviewQueueQuery, token: CancellationToken) -> List[ItemDto]:
        items = await self._store.get_all(token)
        queue = build_review_queue(items, request.limit, request.max_confidence)
        return [item_to_dto(item) for item in queue]

    async def dashboard(self, request: GetDashboardDataQuery, token: CancellationToken) -> DashboardDataDto:
        items = await self._store.get_all(token)
        return build_dashboard(items, request.now_ms if request.now_ms is not None else now_ms())


def register(
    registry: HandlerRegistry, store: EntityStore[Item], projection: ProjectionWriter
) -> ItemHandlers:
    handlers = ItemHandlers(store, projection)
    registry.register_handler(CreateItemCommand, handlers.create)
    registry.register_handler(UpdateItemCommand, handlers.update)
    registry.register_handler(DeleteItemCommand, handlers.delete)
    registry.register_handler(MarkItemReviewedCommand, handlers.mark_reviewed)
    registry.register_handler(GetAllItemsQuery, handlers.get_all)
    registry.register_handler(GetItemByIdQuery, handlers.get_by_id)
    registry.register_handler(GetReviewQueueQuery, handlers.review_queue)
    registry.register_handler(GetDashboardDataQuery, handlers.dashboard)
    registry.register_validator(CreateItemCommand, validate_create_item)
    registry.register_validator(UpdateItemCommand, validate_update_item)
    registry.register_validator(MarkItemReviewedCommand, validate_mark_reviewed)
    registry.register_validator(GetReviewQueueQuery, validate_review_queue)
    return handlers
