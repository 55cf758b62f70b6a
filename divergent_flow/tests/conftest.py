import asyncio
from typing import Dict, List, Optional, Set

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import WatchError

from divergent_flow.api.main import create_app
from divergent_flow.internal_core.config import AppConfig


class FakePipeline:
    """Transactional pipeline: immediate commands while WATCHing, queued after MULTI."""

    def __init__(self, redis: "FakeRedis") -> None:
        self._redis = redis
        self._watched: Dict[str, int] = {}
        self._watching = False
        self._queued: List[tuple] = []
        self._in_multi = False

    async def __aenter__(self) -> "FakePipeline":
        return self

    async def __aexit__(self, *exc_info) -> None:
        self._reset()

    def _reset(self) -> None:
        self._watched.clear()
        self._watching = False
        self._queued = []
        self._in_multi = False

    async def watch(self, *keys) -> None:
        self._watching = True
        for key in keys:
            self._watched[key] = self._redis.versions.get(key, 0)

    def multi(self) -> None:
        self._in_multi = True

    def _command(self, name: str, *args, **kwargs):
        if self._watching and not self._in_multi:
            return getattr(self._redis, name)(*args, **kwargs)
        self._queued.append((name, args, kwargs))
        return self

    def get(self, key):
        return self._command("get", key)

    def set(self, key, value, nx=False, xx=False):
        return self._command("set", key, value, nx=nx, xx=xx)

    def sadd(self, key, *members):
        return self._command("sadd", key, *members)

    def srem(self, key, *members):
        return self._command("srem", key, *members)

    def delete(self, *keys):
        return self._command("delete", *keys)

    async def execute(self) -> list:
        try:
            for key, version in self._watched.items():
                if self._redis.versions.get(key, 0) != version:
                    raise WatchError("Watched variable changed.")
            return [self._redis.apply(name, *args, **kwargs) for name, args, kwargs in self._queued]
        finally:
            self._reset()


class FakeRedis:
    """Just enough of the redis.asyncio surface for the store and projection tests."""

    def __init__(self) -> None:
        self.values: Dict[str, str] = {}
        self.sets: Dict[str, Set[str]] = {}
        self.versions: Dict[str, int] = {}
        self.fail_writes = False
        # Hand control back to the loop between reading a value and returning it.
        self.yield_on_get = False
        # When set, writes block until the event fires.
        self.write_gate: Optional[asyncio.Event] = None

    def _touch(self, key: str) -> None:
        self.versions[key] = self.versions.get(key, 0) + 1

    def apply(self, name: str, *args, **kwargs):
        return getattr(self, f"_{name}")(*args, **kwargs)

    def _set(self, key, value, nx=False, xx=False):
        if self.fail_writes:
            raise ConnectionError("redis unavailable")
        if nx and key in self.values:
            return None
        if xx and key not in self.values:
            return None
        self.values[key] = value
        self._touch(key)
        return True

    def _delete(self, *keys):
        removed = 0
        for key in keys:
            if self.values.pop(key, None) is not None:
                removed += 1
                self._touch(key)
        return removed

    def _sadd(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        added = len(set(members) - bucket)
        bucket.update(members)
        return added

    def _srem(self, key, *members):
        bucket = self.sets.setdefault(key, set())
        removed = len(bucket & set(members))
        bucket.difference_update(members)
        return removed

    async def get(self, key):
        value = self.values.get(key)
        if self.yield_on_get:
            await asyncio.sleep(0)
        return value

    async def set(self, key, value, nx=False, xx=False):
        if self.write_gate is not None:
            await self.write_gate.wait()
        return self._set(key, value, nx=nx, xx=xx)

    async def mget(self, keys):
        return [self.values.get(key) for key in keys]

    async def delete(self, *keys):
        return self._delete(*keys)

    async def sadd(self, key, *members):
        return self._sadd(key, *members)

    async def srem(self, key, *members):
        return self._srem(key, *members)

    async def smembers(self, key):
        return set(self.sets.get(key, set()))

    def pipeline(self, transaction: bool = True) -> FakePipeline:
        return FakePipeline(self)


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def client() -> TestClient:
    return TestClient(create_app(AppConfig()))
