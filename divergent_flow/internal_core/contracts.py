from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ACTION_LIKE_TYPES = frozenset({"action", "task", "todo", "reminder"})


def now_ms() -> int:
    return int(time.time() * 1000)


class CamelModel(BaseModel):
    """Base for every wire/storage model: camelCase on the outside, snake_case inside."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_storage_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_storage_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Capture(CamelModel):
    id: str = Field(min_length=1)
    text: str
    created_at: int
    updated_at: Optional[int] = None
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    is_migrated: bool = False


class Item(CamelModel):
    id: str = Field(min_length=1)
    type: str = "capture"
    text: str
    created_at: int
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    last_reviewed_at: Optional[int] = None
    collection_id: Optional[str] = None


class Collection(CamelModel):
    id: str = Field(min_length=1)
    name: str
    created_at: int


# Response DTOs.


class CaptureDto(CamelModel):
    id: str
    text: str
    created_at: int
    updated_at: Optional[int] = None
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    is_migrated: bool = False


class ItemDto(CamelModel):
    id: str
    type: str = "capture"
    text: str
    created_at: int
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    last_reviewed_at: Optional[int] = None
    collection_id: Optional[str] = None


class CollectionDto(CamelModel):
    id: str
    name: str
    created_at: int


class TaskItemDto(CamelModel):
    id: str
    text: str
    created_at: int
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    last_reviewed_at: Optional[int] = None


class DashboardMetrics(CamelModel):
    total_items: int = 0
    pending_review: int = 0
    action_items: int = 0
    completed_today: int = 0


class DashboardDataDto(CamelModel):
    metrics: DashboardMetrics = Field(default_factory=DashboardMetrics)
    today_tasks: List[TaskItemDto] = Field(default_factory=list)
    overdue_tasks: List[TaskItemDto] = Field(default_factory=list)
    upcoming_tasks: List[TaskItemDto] = Field(default_factory=list)


class TypeInferenceResult(CamelModel):
    inferred_type: str
    confidence: float


class TypeConfirmation(CamelModel):
    text: str = ""
    inferred_type: str = ""
    inferred_confidence: float = 0.0
    confirmed_type: str = ""


def capture_to_dto(capture: Capture) -> CaptureDto:
    return CaptureDto.model_validate(capture.model_dump())


def item_to_dto(item: Item) -> ItemDto:
    return ItemDto.model_validate(item.model_dump())


def collection_to_dto(collection: Collection) -> CollectionDto:
    return CollectionDto.model_validate(collection.model_dump())


def item_to_task_dto(item: Item) -> TaskItemDto:
    return TaskItemDto(
        id=item.id,
        text=item.text,
        created_at=item.created_at,
        inferred_type=item.inferred_type,
        type_confidence=item.type_confidence,
        last_reviewed_at=item.last_reviewed_at,
    )


def is_action_like(inferred_type: Optional[str]) -> bool:
    if not inferred_type:
        return False
    return inferred_type.lower() in ACTION_LIKE_TYPES
