from __future__ import annotations

"""
HTTP surface for the Divergent Flow backend.

Design intent:
- Each route builds one command/query and sends it through the dispatcher.
- Validation failures become 400 with field-grouped messages.
- Absent results become 404 with an empty body.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

from fastapi import APIRouter, FastAPI, Query, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from divergent_flow.features import captures, collections, items, type_inference
from divergent_flow.features.wiring import Services, build_dispatcher
from divergent_flow.inference.basic import BasicTypeInferenceService
from divergent_flow.inference.reinference import run_reinference_loop
from divergent_flow.internal_core.config import AppConfig, load_config
from divergent_flow.internal_core.contracts import (
    Capture,
    CaptureDto,
    CamelModel,
    Collection,
    CollectionDto,
    DashboardDataDto,
    Item,
    ItemDto,
    TypeConfirmation,
    TypeInferenceResult,
)
from divergent_flow.internal_core.entity_store import InMemoryEntityStore
from divergent_flow.internal_core.projection import (
    BackgroundProjectionWriter,
    NullProjectionWriter,
    ProjectionWriter,
    RedisProjectionWriter,
)
from divergent_flow.internal_core.redis_store import RedisCaptureStore, build_redis_client
from divergent_flow.mediator.base import CancellationToken, ValidationFailed
from divergent_flow.mediator.dispatcher import Dispatcher

from .cors import build_cors_policy

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class CreateCaptureRequest(CamelModel):
    text: Optional[str] = ""
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None


class UpdateCaptureRequest(CamelModel):
    text: Optional[str] = ""
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None


class CreateItemRequest(CamelModel):
    text: Optional[str] = ""
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    collection_id: Optional[str] = None


class UpdateItemRequest(CamelModel):
    text: Optional[str] = ""
    inferred_type: Optional[str] = None
    type_confidence: Optional[float] = None
    collection_id: Optional[str] = None


class MarkItemReviewedRequest(CamelModel):
    confirmed_type: Optional[str] = None
    confirmed_confidence: Optional[float] = None


class CollectionRequest(CamelModel):
    name: Optional[str] = ""


class TypeInferenceRequest(CamelModel):
    text: Optional[str] = ""


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level, format=_LOG_FORMAT)
    logging.getLogger().setLevel(level)


def build_services(config: AppConfig) -> Services:
    redis_client = build_redis_client(config) if config.redis_enabled else None
    projection: ProjectionWriter = NullProjectionWriter()
    if redis_client is not None:
        projection = BackgroundProjectionWriter(
            RedisProjectionWriter(redis_client, timeout_seconds=config.PROJECTION_TIMEOUT_SECONDS)
        )

    if config.DF_CAPTURE_STORE == "redis" and redis_client is not None:
        capture_store = RedisCaptureStore(redis_client)
    else:
        capture_store = InMemoryEntityStore[Capture]("capture")

    return Services(
        capture_store=capture_store,
        item_store=InMemoryEntityStore[Item]("item"),
        collection_store=InMemoryEntityStore[Collection]("collection"),
        projection=projection,
        inference=BasicTypeInferenceService(),
    )


def _dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


async def _send(request: Request, message: Any) -> Any:
    return await _dispatcher(request).send(message, CancellationToken())


async def validation_failed_handler(request: Request, exc: ValidationFailed) -> JSONResponse:
    logger.info("Validation failed for %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=400,
        content={"title": "Validation failed", "status": 400, "errors": exc.errors},
    )


def _not_found(kind: str, entity_id: str) -> Response:
    logger.warning("%s with ID %s not found", kind, entity_id)
    return Response(status_code=404)


captures_router = APIRouter(prefix="/api/captures", tags=["captures"])
items_router = APIRouter(prefix="/api/items", tags=["items"])
collections_router = APIRouter(prefix="/api/collections", tags=["collections"])
type_router = APIRouter(prefix="/api/type-inference", tags=["type-inference"])


@captures_router.get("", response_model=List[CaptureDto])
async def get_all_captures(request: Request) -> List[CaptureDto]:
    logger.info("Getting all captures")
    return await _send(request, captures.GetAllCapturesQuery())


@captures_router.get("/{capture_id}", response_model=CaptureDto, name="get_capture")
async def get_capture(capture_id: str, request: Request) -> Any:
    logger.info("Getting capture with ID: %s", capture_id)
    capture = await _send(request, captures.GetCaptureByIdQuery(capture_id))
    if capture is None:
        return _not_found("Capture", capture_id)
    return capture


@captures_router.post("", response_model=CaptureDto, status_code=201)
async def create_capture(payload: CreateCaptureRequest, request: Request, response: Response) -> CaptureDto:
    logger.info("Creating new capture")
    capture = await _send(
        request,
        captures.CreateCaptureCommand(
            text=payload.text or "",
            inferred_type=payload.inferred_type,
            type_confidence=payload.type_confidence,
        ),
    )
    response.headers["Location"] = str(request.url_for("get_capture", capture_id=capture.id))
    return capture


@captures_router.put("/{capture_id}", response_model=CaptureDto)
async def update_capture(capture_id: str, payload: UpdateCaptureRequest, request: Request) -> Any:
    logger.info("Updating capture with ID: %s", capture_id)
    capture = await _send(
        request,
        captures.UpdateCaptureCommand(
            id=capture_id,
            text=payload.text or "",
            inferred_type=payload.inferred_type,
            type_confidence=payload.type_confidence,
        ),
    )
    if capture is None:
        return _not_found("Capture", capture_id)
    return capture


@captures_router.delete("/{capture_id}", status_code=204)
async def delete_capture(capture_id: str, request: Request) -> Response:
    logger.info("Deleting capture with ID: %s", capture_id)
    deleted = await _send(request, captures.DeleteCaptureCommand(capture_id))
    if not deleted:
        return _not_found("Capture", capture_id)
    return Response(status_code=204)


@items_router.get("", response_model=List[ItemDto])
async def get_all_items(request: Request) -> List[ItemDto]:
    logger.info("Getting all items")
    return await _send(request, items.GetAllItemsQuery())


@items_router.get("/review-queue", response_model=List[ItemDto])
async def get_review_queue(
    request: Request,
    limit: int = Query(default=3),
    max_confidence: Optional[float] = Query(default=0.75, alias="maxConfidence"),
) -> List[ItemDto]:
    logger.info("Getting review queue (limit=%s max_confidence=%s)", limit, max_confidence)
    return await _send(request, items.GetReviewQueueQuery(limit=limit, max_confidence=max_confidence))


@items_router.get("/dashboard", response_model=DashboardDataDto)
async def get_dashboard(request: Request) -> DashboardDataDto:
    logger.info("Getting dashboard data")
    return await _send(request, items.GetDashboardDataQuery())


@items_router.get("/{item_id}", response_model=ItemDto, name="get_item")
async def get_item(item_id: str, request: Request) -> Any:
    logger.info("Getting item with ID: %s", item_id)
    item = await _send(request, items.GetItemByIdQuery(item_id))
    if item is None:
        return _not_found("Item", item_id)
    return item


@items_router.post("", response_model=ItemDto, status_code=201)
async def create_item(payload: CreateItemRequest, request: Request, response: Response) -> ItemDto:
    logger.info("Creating new item")
    item = await _send(
        request,
        items.CreateItemCommand(
            text=payload.text or "",
            inferred_type=payload.inferred_type,
            type_confidence=payload.type_confidence,
            collection_id=payload.collection_id,
        ),
    )
    response.headers["Location"] = str(request.url_for("get_item", item_id=item.id))
    return item


@items_router.put("/{item_id}", response_model=ItemDto)
async def update_item(item_id: str, payload: UpdateItemRequest, request: Request) -> Any:
    logger.info("Updating item with ID: %s", item_id)
    item = await _send(
        request,
        items.UpdateItemCommand(
            id=item_id,
            text=payload.text or "",
            inferred_type=payload.inferred_type,
            type_confidence=payload.type_confidence,
            collection_id=payload.collection_id,
        ),
    )
    if item is None:
        return _not_found("Item", item_id)
    return item


@items_router.post("/{item_id}/review", response_model=ItemDto)
async def mark_item_reviewed(item_id: str, payload: MarkItemReviewedRequest, request: Request) -> Any:
    logger.info("Marking item %s as reviewed", item_id)
    item = await _send(
        request,
        items.MarkItemReviewedCommand(
            id=item_id,
            confirmed_type=payload.confirmed_type,
            confirmed_confidence=payload.confirmed_confidence,
        ),
    )
    if item is None:
        return _not_found("Item", item_id)
    return item


@items_router.delete("/{item_id}", status_code=204)
async def delete_item(item_id: str, request: Request) -> Response:
    logger.info("Deleting item with ID: %s", item_id)
    deleted = await _send(request, items.DeleteItemCommand(item_id))
    if not deleted:
        return _not_found("Item", item_id)
    return Response(status_code=204)


@collections_router.get("", response_model=List[CollectionDto])
async def get_all_collections(request: Request) -> List[CollectionDto]:
    logger.info("Getting all collections")
    return await _send(request, collections.GetAllCollectionsQuery())


@collections_router.get("/{collection_id}", response_model=CollectionDto, name="get_collection")
async def get_collection(collection_id: str, request: Request) -> Any:
    logger.info("Getting collection with ID: %s", collection_id)
    collection = await _send(request, collections.GetCollectionByIdQuery(collection_id))
    if collection is None:
        return _not_found("Collection", collection_id)
    return collection


@collections_router.post("", response_model=CollectionDto, status_code=201)
async def create_collection(payload: CollectionRequest, request: Request, response: Response) -> CollectionDto:
    logger.info("Creating new collection")
    collection = await _send(request, collections.CreateCollectionCommand(name=payload.name or ""))
    response.headers["Location"] = str(
        request.url_for("get_collection", collection_id=collection.id)
    )
    return collection


@collections_router.put("/{collection_id}", response_model=CollectionDto)
async def update_collection(collection_id: str, payload: CollectionRequest, request: Request) -> Any:
    logger.info("Updating collection with ID: %s", collection_id)
    collection = await _send(
        request,
        collections.UpdateCollectionCommand(id=collection_id, name=payload.name or ""),
    )
    if collection is None:
        return _not_found("Collection", collection_id)
    return collection


@collections_router.delete("/{collection_id}", status_code=204)
async def delete_collection(collection_id: str, request: Request) -> Response:
    logger.info("Deleting collection with ID: %s", collection_id)
    deleted = await _send(request, collections.DeleteCollectionCommand(collection_id))
    if not deleted:
        return _not_found("Collection", collection_id)
    return Response(status_code=204)


@type_router.post("/infer", response_model=TypeInferenceResult)
async def infer_type(payload: TypeInferenceRequest, request: Request) -> TypeInferenceResult:
    logger.info("Inferring type for capture text")
    return await _send(request, type_inference.InferTypeQuery(payload.text or ""))


@type_router.post("/confirm")
async def confirm_type(payload: TypeConfirmation, request: Request) -> Response:
    logger.info("Confirming type for capture")
    await _send(request, type_inference.ConfirmTypeCommand(payload))
    return Response(status_code=200)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    config: AppConfig = app.state.config
    services: Services = app.state.services
    logger.info(
        "Active stores: captures=%s items=%s collections=%s projection=%s",
        services.capture_store.name(),
        services.item_store.name(),
        services.collection_store.name(),
        type(services.projection).__name__,
    )

    stop_token = CancellationToken()
    loop_task: Optional[asyncio.Task] = None
    if config.DF_REINFERENCE_ENABLED:
        loop_task = asyncio.create_task(
            run_reinference_loop(
                services.capture_store,
                services.inference,
                config.DF_REINFERENCE_THRESHOLD,
                config.DF_REINFERENCE_INTERVAL_SECONDS,
                stop_token,
            )
        )
    try:
        yield
    finally:
        stop_token.cancel()
        if loop_task is not None:
            loop_task.cancel()
            try:
                await loop_task
            except asyncio.CancelledError:
                pass
        await services.projection.drain(config.PROJECTION_TIMEOUT_SECONDS)


def create_app(config: Optional[AppConfig] = None, services: Optional[Services] = None) -> FastAPI:
    config = config or load_config()
    configure_logging(config.DF_LOG_LEVEL)
    services = services or build_services(config)

    app = FastAPI(
        title="Divergent Flow API",
        description="ADHD-friendly brain management tool API",
        lifespan=_lifespan,
    )
    app.state.config = config
    app.state.services = services
    app.state.dispatcher = build_dispatcher(services)

    policy = build_cors_policy(config)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=policy.allow_origins,
        allow_origin_regex=policy.allow_origin_regex,
        allow_credentials=policy.allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ValidationFailed, validation_failed_handler)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "Healthy"}

    app.include_router(captures_router)
    app.include_router(items_router)
    app.include_router(collections_router)
    app.include_router(type_router)
    return app


app = create_app()


if __name__ == "__main__":
    import os

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
