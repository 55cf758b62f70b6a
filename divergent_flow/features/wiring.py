from __future__ import annotations

from dataclasses import dataclass

from ..inference.base import TypeInferenceService
from ..internal_core.contracts import Capture, Collection, Item
from ..internal_core.entity_store import EntityStore
from ..internal_core.projection import ProjectionWriter
from ..mediator.dispatcher import Dispatcher, HandlerRegistry
from . import captures, collections, items, type_inference

ALL_REQUEST_TYPES = (
    *captures.REQUEST_TYPES,
    *items.REQUEST_TYPES,
    *collections.REQUEST_TYPES,
    *type_inference.REQUEST_TYPES,
)


@dataclass
class Services:
    capture_store: EntityStore[Capture]
    item_store: EntityStore[Item]
    collection_store: EntityStore[Collection]
    projection: ProjectionWriter
    inference: TypeInferenceService


def build_registry(services: Services) -> HandlerRegistry:
    registry = HandlerRegistry()
    captures.register(registry, services.capture_store)
    items.register(registry, services.item_store, services.projection)
    collections.register(registry, services.collection_store, services.projection)
    type_inference.register(registry, services.inference)
    registry.ensure_complete(ALL_REQUEST_TYPES)
    return registry


def build_dispatcher(services: Services) -> Dispatcher:
    return Dispatcher(build_registry(services))
