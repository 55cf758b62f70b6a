from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Optional, Set

from ..mediator.base import CancellationToken
from .contracts import Collection, Item

DEFAULT_WRITE_TIMEOUT_SECONDS = 5.0

logger = logging.getLogger(__name__)


def item_key(item_id: str) -> str:
    return f"item:{item_id}"


def collection_key(collection_id: str) -> str:
    return f"collection:{collection_id}"


class ProjectionWriter(ABC):
    """Best-effort secondary copy. Implementations must never raise to the caller."""

    @abstractmethod
    async def sync_item(self, item: Item, token: Optional[CancellationToken] = None) -> None: ...

    @abstractmethod
    async def sync_collection(
        self, collection: Collection, token: Optional[CancellationToken] = None
    ) -> None: ...

    async def drain(self, timeout: Optional[float] = None) -> None:
        return None


class NullProjectionWriter(ProjectionWriter):
    async def sync_item(self, item: Item, token: Optional[CancellationToken] = None) -> None:
        return None

    async def sync_collection(
        self, collection: Collection, token: Optional[CancellationToken] = None
    ) -> None:
        return None


class RedisProjectionWriter(ProjectionWriter):
    def __init__(self, client: Any, timeout_seconds: float = DEFAULT_WRITE_TIMEOUT_SECONDS):
        self._client = client
        self._timeout_seconds = timeout_seconds

    async def _write(self, key: str, payload: str) -> bool:
        try:
            await asyncio.wait_for(self._client.set(key, payload), timeout=self._timeout_seconds)
        except Exception as exc:
            # Primary write already committed.
            logger.warning("Failed to sync %s to Redis projection (non-fatal): %r", key, exc)
            return False
        logger.debug("Synced %s to Redis projection", key)
        return True

    async def sync_item(self, item: Item, token: Optional[CancellationToken] = None) -> None:
        if token is not None and token.cancelled:
            return
        await self._write(item_key(item.id), item.to_storage_json())

    async def sync_collection(
        self, collection: Collection, token: Optional[CancellationToken] = None
    ) -> None:
        if token is not None and token.cancelled:
            return
        await self._write(collection_key(collection.id), collection.to_storage_json())


class BackgroundProjectionWriter(ProjectionWriter):
    """Hands each sync to a tracked task so callers only wait for the scheduling.

    The caller schedules after its primary commit, which keeps commit-before-projection
    ordering. `drain()` waits for outstanding syncs and cancels what is left at the deadline.
    """

    def __init__(self, inner: ProjectionWriter):
        self._inner = inner
        self._tasks: Set[asyncio.Task] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _schedule(self, sync: Awaitable[None]) -> None:
        task = asyncio.ensure_future(sync)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def sync_item(self, item: Item, token: Optional[CancellationToken] = None) -> None:
        self._schedule(self._inner.sync_item(item.model_copy(deep=True), token))

    async def sync_collection(
        self, collection: Collection, token: Optional[CancellationToken] = None
    ) -> None:
        self._schedule(self._inner.sync_collection(collection.model_copy(deep=True), token))

    async def drain(self, timeout: Optional[float] = None) -> None:
        if not self._tasks:
            return
        done, unfinished = await asyncio.wait(set(self._tasks), timeout=timeout)
        self._tasks.difference_update(done)
        if unfinished:
            logger.warning("Cancelling %d unfinished projection syncs", len(unfinished))
            for task in unfinished:
                task.cancel()
            await asyncio.gather(*unfinished, return_exceptions=True)
            self._tasks.difference_update(unfinished)
        await self._inner.drain(timeout)
