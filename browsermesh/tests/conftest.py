"""
Shared fixtures: in-memory automation engine, flaky storage backend,
a minimal async Redis double and a scripted replay fetcher.
"""

from __future__ import annotations

import asyncio
import fnmatch
from typing import Any, Optional

import pytest

from browsermesh.core.config import BrokerConfig
from browsermesh.core.errors import UsageFetchError
from browsermesh.core.types import Result, Ok
from browsermesh.observability.metrics import MetricsCollector
from browsermesh.reliability.retry import RetryPolicy
from browsermesh.session.engine import EngineOpenParams
from browsermesh.session.registry import SessionRegistry
from browsermesh.storage.resources import InMemoryResourceBackend, ResourceStore
from browsermesh.usage.meter import UsageMeter
from browsermesh.usage.replay import ReplayTotals


# =============================================================================
# AUTOMATION ENGINE
# =============================================================================
class FakeHandle:
    """Automation handle whose liveness and close behaviour tests control."""

    def __init__(self, remote_id: str) -> None:
        self._remote_id = remote_id
        self.alive = True
        self.fail_close = False
        self.close_calls = 0

    @property
    def remote_id(self) -> str:
        return self._remote_id

    async def is_alive(self) -> bool:
        return self.alive

    async def close(self) -> None:
        self.close_calls += 1
        self.alive = False
        if self.fail_close:
            raise RuntimeError("remote close failed")

    async def debugger_url(self) -> Optional[str]:
        return f"https://debugger.example/{self._remote_id}"


class FakeEngineFactory:
    """
    Opens FakeHandles.

    gates maps a session id to an Event the open call waits on, so tests
    can hold a creation in flight.
    """

    def __init__(self) -> None:
        self.opened: list[EngineOpenParams] = []
        self.handles: list[FakeHandle] = []
        self.gates: dict[str, asyncio.Event] = {}
        self.fail_with: Optional[Exception] = None

    async def open(self, params: EngineOpenParams) -> FakeHandle:
        self.opened.append(params)
        gate = self.gates.get(params.session_id)
        if gate is not None:
            await gate.wait()
        if self.fail_with is not None:
            raise self.fail_with
        remote_id = params.resume_id or f"bb-remote-{len(self.opened)}"
        handle = FakeHandle(remote_id)
        self.handles.append(handle)
        return handle


# =============================================================================
# STORAGE
# =============================================================================
class FlakyBackend(InMemoryResourceBackend):
    """In-memory backend whose first `failures` purges raise."""

    __slots__ = ("failures", "delete_attempts")

    def __init__(self, failures: int = 0) -> None:
        super().__init__()
        self.failures = failures
        self.delete_attempts = 0

    async def delete_for_session(self, session_id: str) -> int:
        self.delete_attempts += 1
        if self.delete_attempts <= self.failures:
            raise ConnectionError(f"purge attempt {self.delete_attempts} failed")
        return await super().delete_for_session(session_id)


class RecordingSleep:
    """Stand-in for asyncio.sleep that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class FakeRedisPipeline:
    def __init__(self, client: FakeRedis) -> None:
        self._client = client
        self._ops: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    async def __aenter__(self) -> FakeRedisPipeline:
        return self

    async def __aexit__(self, *exc: Any) -> None:
        self._ops.clear()

    def __getattr__(self, name: str):
        def queue(*args: Any, **kwargs: Any) -> FakeRedisPipeline:
            self._ops.append((name, args, kwargs))
            return self
        return queue

    async def execute(self) -> list[Any]:
        results = []
        for name, args, kwargs in self._ops:
            results.append(await getattr(self._client, name)(*args, **kwargs))
        self._ops.clear()
        return results


def _b(value: Any) -> bytes:
    if isinstance(value, bytes):
        return value
    return str(value).encode("utf-8")


class FakeRedis:
    """The subset of redis.asyncio.Redis the resource backend uses (bytes mode)."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[bytes, bytes]] = {}
        self.sets: dict[str, set[bytes]] = {}

    def pipeline(self, transaction: bool = True) -> FakeRedisPipeline:
        return FakeRedisPipeline(self)

    async def hset(self, key: str, mapping: dict[str, Any]) -> int:
        target = self.hashes.setdefault(key, {})
        for field_name, value in mapping.items():
            target[_b(field_name)] = _b(value)
        return len(mapping)

    async def hgetall(self, key: str) -> dict[bytes, bytes]:
        return dict(self.hashes.get(key, {}))

    async def hget(self, key: str, field_name: str) -> Optional[bytes]:
        return self.hashes.get(key, {}).get(_b(field_name))

    async def sadd(self, key: str, *members: Any) -> int:
        target = self.sets.setdefault(key, set())
        before = len(target)
        target.update(_b(m) for m in members)
        return len(target) - before

    async def smembers(self, key: str) -> set[bytes]:
        return set(self.sets.get(key, set()))

    async def delete(self, *keys: str) -> int:
        removed = 0
        for key in keys:
            key = key.decode("utf-8") if isinstance(key, bytes) else key
            if self.hashes.pop(key, None) is not None:
                removed += 1
            if self.sets.pop(key, None) is not None:
                removed += 1
        return removed

    async def scan_iter(self, match: str = "*"):
        for key in list(self.hashes) + list(self.sets):
            if fnmatch.fnmatchcase(key, match):
                yield key.encode("utf-8")


# =============================================================================
# REPLAY
# =============================================================================
class StubReplayFetcher:
    """Returns a scripted result; optionally waits on a gate first."""

    def __init__(self, result: Result[Optional[ReplayTotals], UsageFetchError]) -> None:
        self.result = result
        self.calls: list[str] = []
        self.gate: Optional[asyncio.Event] = None

    async def fetch(self, remote_id: str) -> Result[Optional[ReplayTotals], UsageFetchError]:
        self.calls.append(remote_id)
        if self.gate is not None:
            await self.gate.wait()
        return self.result


# =============================================================================
# FIXTURES
# =============================================================================
@pytest.fixture
def config() -> BrokerConfig:
    return BrokerConfig(proxies=True, context_id="ctx-test")


@pytest.fixture
def engine() -> FakeEngineFactory:
    return FakeEngineFactory()


@pytest.fixture
def sleeper() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def backend() -> FlakyBackend:
    return FlakyBackend()


@pytest.fixture
def store(backend: FlakyBackend, sleeper: RecordingSleep) -> ResourceStore:
    return ResourceStore(backend=backend, purge_policy=RetryPolicy(), sleep=sleeper)


@pytest.fixture
def meter() -> UsageMeter:
    return UsageMeter()


@pytest.fixture
def metrics() -> MetricsCollector:
    return MetricsCollector()


@pytest.fixture
def replay() -> StubReplayFetcher:
    return StubReplayFetcher(Ok(None))


@pytest.fixture
def registry(
    engine: FakeEngineFactory,
    store: ResourceStore,
    meter: UsageMeter,
    replay: StubReplayFetcher,
    metrics: MetricsCollector,
) -> SessionRegistry:
    return SessionRegistry(
        engine_factory=engine,
        resource_store=store,
        meter=meter,
        replay_fetcher=replay,
        metrics=metrics,
    )
