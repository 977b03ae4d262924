"""
Resource Store: Per-Session Artifact Storage

Holds blobs captured during a session (screenshots, downloads) under a
store-wide unique name, each owned by exactly one session:

    name -> ResourceEntry(session_id, name, payload)

Entries live until their owning session is cleaned up. Purging a
session runs through retry_with_backoff; when every attempt fails the
caller gets Err(ResourcePurgeError) and decides how fatal that is.

Backends:
    InMemoryResourceBackend  process-local dict (default)
    RedisResourceBackend     redis.asyncio, shared between broker processes

Payloads above COMPRESSION_THRESHOLD_BYTES are LZ4-compressed at rest
when that makes them smaller; get() always returns the original bytes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol

import lz4.frame

from browsermesh.core import constants as C
from browsermesh.core.errors import ResourceConflictError, ResourcePurgeError
from browsermesh.core.types import Result, Ok, Err, Timestamp
from browsermesh.reliability.retry import RetryPolicy, Sleeper, retry_with_backoff

if TYPE_CHECKING:
    import redis.asyncio as aioredis

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


# =============================================================================
# MODEL
# =============================================================================
@dataclass(frozen=True, slots=True)
class ResourceEntry:
    """One stored artifact and its owning session."""
    session_id: str
    name: str
    payload: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    created: Timestamp = field(default_factory=Timestamp.now)

    @property
    def size(self) -> int:
        return len(self.payload)

    @property
    def uri(self) -> str:
        return f"resource://{self.name}"


def encode_payload(payload: bytes) -> tuple[bytes, bool]:
    """Compress with LZ4 when above threshold and actually smaller."""
    if len(payload) <= C.COMPRESSION_THRESHOLD_BYTES:
        return payload, False
    compressed = lz4.frame.compress(payload)
    if len(compressed) >= len(payload):
        return payload, False
    return compressed, True


def decode_payload(data: bytes, compressed: bool) -> bytes:
    return lz4.frame.decompress(data) if compressed else data


# =============================================================================
# BACKEND PROTOCOL
# =============================================================================
class ResourceBackend(Protocol):
    """Storage operations a ResourceStore needs. Failures raise."""

    async def write(self, entry: ResourceEntry) -> None: ...

    async def read(self, name: str) -> Optional[ResourceEntry]: ...

    async def owner_of(self, name: str) -> Optional[str]: ...

    async def names_for_session(self, session_id: str) -> list[str]: ...

    async def delete_for_session(self, session_id: str) -> int: ...

    async def delete_all(self) -> int: ...

    async def count(self) -> int: ...


@dataclass(slots=True)
class _StoredBlob:
    session_id: str
    data: bytes
    compressed: bool
    content_type: str
    created: Timestamp


class InMemoryResourceBackend:
    """Process-local backend with a per-session name index."""

    __slots__ = ("_blobs", "_by_session")

    def __init__(self) -> None:
        self._blobs: dict[str, _StoredBlob] = {}
        self._by_session: dict[str, set[str]] = {}

    async def write(self, entry: ResourceEntry) -> None:
        data, compressed = encode_payload(entry.payload)
        self._blobs[entry.name] = _StoredBlob(
            session_id=entry.session_id,
            data=data,
            compressed=compressed,
            content_type=entry.content_type,
            created=entry.created,
        )
        self._by_session.setdefault(entry.session_id, set()).add(entry.name)

    async def read(self, name: str) -> Optional[ResourceEntry]:
        blob = self._blobs.get(name)
        if blob is None:
            return None
        return ResourceEntry(
            session_id=blob.session_id,
            name=name,
            payload=decode_payload(blob.data, blob.compressed),
            content_type=blob.content_type,
            created=blob.created,
        )

    async def owner_of(self, name: str) -> Optional[str]:
        blob = self._blobs.get(name)
        return blob.session_id if blob else None

    async def names_for_session(self, session_id: str) -> list[str]:
        return sorted(self._by_session.get(session_id, ()))

    async def delete_for_session(self, session_id: str) -> int:
        names = self._by_session.pop(session_id, set())
        for name in names:
            self._blobs.pop(name, None)
        return len(names)

    async def delete_all(self) -> int:
        removed = len(self._blobs)
        self._blobs.clear()
        self._by_session.clear()
        return removed

    async def count(self) -> int:
        return len(self._blobs)


class RedisResourceBackend:
    """
    Redis backend.

    Keys:
        {prefix}:blob:{name}        HASH owner, data, compressed, content_type, created
        {prefix}:session:{sid}      SET of names owned by sid

    The client must be created with decode_responses=False.
    """

    __slots__ = ("_client", "_prefix")

    def __init__(
        self,
        client: aioredis.Redis,
        prefix: str = C.REDIS_KEY_PREFIX,
    ) -> None:
        self._client = client
        self._prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = C.REDIS_KEY_PREFIX) -> RedisResourceBackend:
        import redis.asyncio as aioredis

        return cls(aioredis.Redis.from_url(url, decode_responses=False), prefix=prefix)

    def _blob_key(self, name: str) -> str:
        return f"{self._prefix}:blob:{name}"

    def _session_key(self, session_id: str) -> str:
        return f"{self._prefix}:session:{session_id}"

    async def write(self, entry: ResourceEntry) -> None:
        data, compressed = encode_payload(entry.payload)
        async with self._client.pipeline(transaction=True) as pipe:
            pipe.hset(self._blob_key(entry.name), mapping={
                "owner": entry.session_id,
                "data": data,
                "compressed": "1" if compressed else "0",
                "content_type": entry.content_type,
                "created": str(entry.created.nanos),
            })
            pipe.sadd(self._session_key(entry.session_id), entry.name)
            await pipe.execute()

    async def read(self, name: str) -> Optional[ResourceEntry]:
        raw = await self._client.hgetall(self._blob_key(name))
        if not raw:
            return None
        fields = {_text(k): v for k, v in raw.items()}
        return ResourceEntry(
            session_id=_text(fields["owner"]),
            name=name,
            payload=decode_payload(bytes(fields["data"]), _text(fields["compressed"]) == "1"),
            content_type=_text(fields.get("content_type", DEFAULT_CONTENT_TYPE)),
            created=Timestamp(nanos=int(_text(fields["created"]))),
        )

    async def owner_of(self, name: str) -> Optional[str]:
        owner = await self._client.hget(self._blob_key(name), "owner")
        return _text(owner) if owner is not None else None

    async def names_for_session(self, session_id: str) -> list[str]:
        members = await self._client.smembers(self._session_key(session_id))
        return sorted(_text(m) for m in members)

    async def delete_for_session(self, session_id: str) -> int:
        names = await self.names_for_session(session_id)
        async with self._client.pipeline(transaction=True) as pipe:
            for name in names:
                pipe.delete(self._blob_key(name))
            pipe.delete(self._session_key(session_id))
            await pipe.execute()
        return len(names)

    async def delete_all(self) -> int:
        removed = 0
        keys = [key async for key in self._client.scan_iter(match=f"{self._prefix}:*")]
        for key in keys:
            if _text(key).startswith(f"{self._prefix}:blob:"):
                removed += 1
        if keys:
            await self._client.delete(*keys)
        return removed

    async def count(self) -> int:
        total = 0
        async for _ in self._client.scan_iter(match=f"{self._prefix}:blob:*"):
            total += 1
        return total


def _text(value: bytes | str) -> str:
    return value.decode("utf-8") if isinstance(value, bytes) else value


# =============================================================================
# STORE
# =============================================================================
class ResourceStore:
    """
    Session-partitioned artifact store with retrying purge.

    Usage:
        store = ResourceStore()
        await store.put("s1", "screenshot-1700000000000", png_bytes)
        data = await store.get("screenshot-1700000000000")

        result = await store.clear_for_session("s1")
        if result.is_err():
            logger.warning(result.error)
    """

    __slots__ = ("_backend", "_purge_policy", "_sleep", "_lock")

    def __init__(
        self,
        backend: Optional[ResourceBackend] = None,
        purge_policy: Optional[RetryPolicy] = None,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._backend: ResourceBackend = backend or InMemoryResourceBackend()
        self._purge_policy = purge_policy or RetryPolicy.default()
        self._sleep = sleep
        self._lock = asyncio.Lock()

    async def put(
        self,
        session_id: str,
        name: str,
        payload: bytes,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> Result[ResourceEntry, ResourceConflictError]:
        """
        Store `payload` under `name` for `session_id`.

        Re-putting a name under the same owner replaces it; a name owned
        by another session is rejected.
        """
        entry = ResourceEntry(
            session_id=session_id,
            name=name,
            payload=bytes(payload),
            content_type=content_type,
        )
        async with self._lock:
            owner = await self._backend.owner_of(name)
            if owner is not None and owner != session_id:
                return Err(ResourceConflictError.name_taken(name, owner, session_id))
            await self._backend.write(entry)
        logger.debug(f"Stored resource {name} ({entry.size} bytes) for session {session_id}")
        return Ok(entry)

    async def get(self, name: str) -> Optional[bytes]:
        entry = await self._backend.read(name)
        return entry.payload if entry else None

    async def get_entry(self, name: str) -> Optional[ResourceEntry]:
        return await self._backend.read(name)

    async def names_for_session(self, session_id: str) -> list[str]:
        return await self._backend.names_for_session(session_id)

    async def count(self) -> int:
        return await self._backend.count()

    async def clear_for_session(self, session_id: str) -> Result[int, ResourcePurgeError]:
        """Delete every entry owned by `session_id`, retrying on failure."""

        async def purge_once() -> int:
            async with self._lock:
                return await self._backend.delete_for_session(session_id)

        result = await retry_with_backoff(
            purge_once,
            policy=self._purge_policy,
            operation=f"purge resources for {session_id}",
            sleep=self._sleep,
        )
        if result.is_err():
            failure = result.error
            return Err(ResourcePurgeError.retries_exhausted(
                session_id=session_id,
                attempts=failure.context.get("attempts", self._purge_policy.max_attempts),
                cause=failure.cause,
            ))

        removed = result.unwrap()
        if removed:
            logger.info(f"Purged {removed} resources for session {session_id}")
        return Ok(removed)

    async def clear_all(self) -> int:
        async with self._lock:
            removed = await self._backend.delete_all()
        logger.info(f"Cleared {removed} resources")
        return removed
