from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional

from pydantic import ValidationError
from redis.asyncio import Redis
from redis.exceptions import WatchError

from ..mediator.base import CancellationToken, ensure_token
from .config import AppConfig
from .contracts import Capture
from .entity_store import (
    ChangeBuilder,
    DuplicateIdError,
    EntityStore,
    apply_changes,
    merge_mutable_fields,
)

CAPTURES_SET_KEY = "captures:ids"

logger = logging.getLogger(__name__)


def capture_key(capture_id: str) -> str:
    return f"capture:{capture_id}"


def serialize_capture(capture: Capture) -> str:
    return capture.to_storage_json()


def deserialize_capture(raw: Any) -> Optional[Capture]:
    if raw is None:
        return None
    try:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return Capture.model_validate_json(raw)
    except (UnicodeDecodeError, ValidationError):
        return None


def build_redis_client(config: AppConfig) -> Redis:
    return Redis.from_url(
        config.REDIS_URL,
        password=config.redis_password(),
        decode_responses=True,
        socket_timeout=config.REDIS_SOCKET_TIMEOUT_SECONDS,
        socket_connect_timeout=config.REDIS_SOCKET_TIMEOUT_SECONDS,
    )


def _decode(value: Any) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else str(value)


class RedisCaptureStore(EntityStore[Capture]):
    """Captures as JSON strings under capture:{id}, indexed by the captures:ids set."""

    def __init__(self, client: Redis):
        self._client = client

    def name(self) -> str:
        return "redis:capture"

    async def get_all(self, token: Optional[CancellationToken] = None) -> List[Capture]:
        token = ensure_token(token)
        token.raise_if_cancelled()

        members = await self._client.smembers(CAPTURES_SET_KEY)
        if not members:
            logger.debug("RedisCaptureStore.get_all no ids found")
            return []

        ids = sorted(_decode(member) for member in members)
        values = await self._client.mget([capture_key(capture_id) for capture_id in ids])

        results: List[Capture] = []
        missing = 0
        deserialization_failures = 0
        for value in values:
            token.raise_if_cancelled()
            if value is None:
                missing += 1
                continue
            capture = deserialize_capture(value)
            if capture is None:
                deserialization_failures += 1
                continue
            results.append(capture)

        if missing or deserialization_failures:
            logger.warning(
                "RedisCaptureStore.get_all had missing=%d deserialization_failures=%d out_of=%d",
                missing,
                deserialization_failures,
                len(values),
            )
        results.sort(key=lambda capture: (capture.created_at, capture.id))
        return results

    async def get_by_id(
        self, entity_id: str, token: Optional[CancellationToken] = None
    ) -> Optional[Capture]:
        ensure_token(token).raise_if_cancelled()
        value = await self._client.get(capture_key(entity_id))
        if value is None:
            logger.debug("RedisCaptureStore.get_by_id id=%s not found", entity_id)
            return None
        capture = deserialize_capture(value)
        if capture is None:
            logger.warning("RedisCaptureStore.get_by_id id=%s failed to deserialize", entity_id)
        return capture

    async def insert(self, entity: Capture, token: Optional[CancellationToken] = None) -> Capture:
        ensure_token(token).raise_if_cancelled()
        key = capture_key(entity.id)
        payload = serialize_capture(entity)

        # An existing id is already indexed, so the SADD is a no-op on conflict.
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.set(key, payload, nx=True)
            pipe.sadd(CAPTURES_SET_KEY, entity.id)
            saved, indexed = await pipe.execute()
        if not saved:
            raise DuplicateIdError(entity.id)
        logger.debug(
            "RedisCaptureStore.insert id=%s payload_bytes=%d indexed=%s",
            entity.id,
            len(payload.encode("utf-8")),
            indexed,
        )
        return entity.model_copy(deep=True)

    async def _rewrite(
        self,
        entity_id: str,
        transform: Callable[[Capture], Capture],
        token: CancellationToken,
    ) -> Optional[Capture]:
        """Optimistic read-modify-write: WATCH the key, retry when it changed before EXEC."""
        key = capture_key(entity_id)
        async with self._client.pipeline(transaction=True) as pipe:
            while True:
                token.raise_if_cancelled()
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        logger.debug("RedisCaptureStore rewrite id=%s not found", entity_id)
                        return None
                    existing = deserialize_capture(raw)
                    if existing is None:
                        logger.warning("RedisCaptureStore rewrite id=%s failed to deserialize", entity_id)
                        return None

                    stored = transform(existing)
                    pipe.multi()
                    pipe.set(key, serialize_capture(stored), xx=True)
                    pipe.sadd(CAPTURES_SET_KEY, entity_id)
                    await pipe.execute()
                    return stored
                except WatchError:
                    logger.debug("RedisCaptureStore rewrite id=%s raced, retrying", entity_id)
                    continue

    async def update(
        self, entity_id: str, entity: Capture, token: Optional[CancellationToken] = None
    ) -> Optional[Capture]:
        token = ensure_token(token)
        token.raise_if_cancelled()
        return await self._rewrite(
            entity_id, lambda existing: merge_mutable_fields(existing, entity), token
        )

    async def patch(
        self, entity_id: str, build_changes: ChangeBuilder, token: Optional[CancellationToken] = None
    ) -> Optional[Capture]:
        token = ensure_token(token)
        token.raise_if_cancelled()
        return await self._rewrite(
            entity_id,
            lambda existing: apply_changes(existing, build_changes(existing.model_copy(deep=True))),
            token,
        )

    async def delete(self, entity_id: str, token: Optional[CancellationToken] = None) -> bool:
        ensure_token(token).raise_if_cancelled()
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.delete(capture_key(entity_id))
            pipe.srem(CAPTURES_SET_KEY, entity_id)
            deleted, deindexed = await pipe.execute()
        logger.debug(
            "RedisCaptureStore.delete id=%s deleted=%s deindexed=%s",
            entity_id,
            deleted,
            deindexed,
        )
        return bool(deleted)
