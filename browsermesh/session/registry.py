"""
Session Registry: Lifecycle Owner for Remote Browsing Contexts

Owns the map session_id -> Session and is the only component that opens
or closes an automation handle.

Concurrency Model:
    - One FIFO asyncio.Lock per session id serializes every operation
      on that id in arrival order; different ids never wait on each other
    - One map lock guards dictionary mutation and is never held across I/O
    - A session is committed to the map only after its handle opened, in a
      block with no suspension point; a handle opened but never committed
      is closed again

Cleanup Sequence (cleanup_session):
    (a) close the automation handle           best effort
    (b) purge ResourceStore entries           retried, then logged
    (c) fetch replay totals into UsageMeter   best effort, optional
    (d) remove the map entry                  always, even on cancellation
    (e) retarget the active id to the default always

The default session id is generated once per registry. The record that
holds it carries metadata.is_default, and the next ensure_default_session
after a close opens a fresh remote context under the same id.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional
from uuid import uuid4

from browsermesh.core import constants as C
from browsermesh.core.config import BrokerConfig
from browsermesh.core.errors import (
    BrowserMeshError,
    SessionCreationError,
    SessionError,
    SessionExpiredError,
)
from browsermesh.core.types import Result, Ok, Err, Timestamp
from browsermesh.observability.logging import log_context
from browsermesh.observability.metrics import MetricsCollector
from browsermesh.reliability.best_effort import best_effort
from browsermesh.session.engine import (
    AutomationEngineFactory,
    AutomationHandle,
    EngineOpenParams,
)
from browsermesh.session.models import (
    CleanupReport,
    Session,
    SessionMetadata,
    live_view_url,
)
from browsermesh.session.state_machine import SessionLifecycle, SessionState
from browsermesh.storage.resources import ResourceStore
from browsermesh.usage.meter import UsageKey, UsageMeter
from browsermesh.usage.replay import UsageReplayFetcher

logger = logging.getLogger(__name__)


def generate_default_session_id() -> str:
    return f"{C.DEFAULT_SESSION_PREFIX}_{Timestamp.now().millis}_{uuid4().hex[:8]}"


# =============================================================================
# PER-ID LOCKS
# =============================================================================
@dataclass(slots=True)
class _LockEntry:
    lock: asyncio.Lock
    users: int = 0


class _KeyedLocks:
    """
    One asyncio.Lock per key, dropped once nobody holds or awaits it.

    asyncio.Lock wakes waiters in FIFO order, which gives per-key
    arrival ordering.
    """

    __slots__ = ("_entries",)

    def __init__(self) -> None:
        self._entries: dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _LockEntry(lock=asyncio.Lock())
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(key) is entry:
                del self._entries[key]

    def __len__(self) -> int:
        return len(self._entries)


# =============================================================================
# SESSION REGISTRY
# =============================================================================
class SessionRegistry:
    """
    Creates, resumes, resolves and destroys sessions.

    Usage:
        registry = SessionRegistry(engine_factory, ResourceStore(), UsageMeter())

        result = await registry.ensure_default_session(config)
        session = result.unwrap()

        result = await registry.create_or_resume_session("research", config)
        report = await registry.cleanup_session("research")
    """

    __slots__ = (
        "_engine_factory",
        "_resources",
        "_meter",
        "_replay_fetcher",
        "_sessions",
        "_map_lock",
        "_locks",
        "_lifecycle",
        "_default_session_id",
        "_active_session_id",
        "_opened",
        "_open_failures",
        "_closed",
        "_expired",
        "_cleanup_errors",
        "_active_gauge",
    )

    def __init__(
        self,
        engine_factory: AutomationEngineFactory,
        resource_store: ResourceStore,
        meter: UsageMeter,
        replay_fetcher: Optional[UsageReplayFetcher] = None,
        metrics: Optional[MetricsCollector] = None,
        default_session_id: Optional[str] = None,
    ) -> None:
        self._engine_factory = engine_factory
        self._resources = resource_store
        self._meter = meter
        self._replay_fetcher = replay_fetcher

        self._sessions: dict[str, Session] = {}
        self._map_lock = asyncio.Lock()
        self._locks = _KeyedLocks()
        self._lifecycle = SessionLifecycle()

        self._default_session_id = default_session_id or generate_default_session_id()
        self._active_session_id = self._default_session_id

        metrics = metrics or MetricsCollector()
        self._opened = metrics.counter(
            "browsermesh_sessions_opened_total", ["kind"], "Remote sessions opened",
        )
        self._open_failures = metrics.counter(
            "browsermesh_session_open_failures_total", ["kind"], "Failed open/resume calls",
        )
        self._closed = metrics.counter(
            "browsermesh_sessions_closed_total", help_text="Sessions cleaned up",
        )
        self._expired = metrics.counter(
            "browsermesh_sessions_expired_total", help_text="Sessions found with a defunct handle",
        )
        self._cleanup_errors = metrics.counter(
            "browsermesh_cleanup_errors_total", ["step"], "Cleanup steps that failed",
        )
        self._active_gauge = metrics.gauge(
            "browsermesh_active_sessions", help_text="Sessions currently registered",
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------
    @property
    def default_session_id(self) -> str:
        return self._default_session_id

    @property
    def active_session_id(self) -> str:
        """Session the façade currently targets."""
        return self._active_session_id

    def state_of(self, session_id: str) -> SessionState:
        return self._lifecycle.state_of(session_id)

    def list_sessions(self) -> list[Session]:
        return list(self._sessions.values())

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------
    async def ensure_default_session(
        self,
        config: BrokerConfig,
    ) -> Result[Session, SessionError]:
        """
        Return the live default session, opening it if needed.

        A cached default whose handle is defunct is cleaned up and
        reopened. Concurrent callers share one remote open.
        """
        async with self._locks.hold(self._default_session_id):
            return await self._ensure_default_locked(config)

    async def create_or_resume_session(
        self,
        session_id: str,
        config: BrokerConfig,
        resume_id: Optional[str] = None,
    ) -> Result[Session, SessionError]:
        """
        Return the live session for `session_id`, opening it if needed.

        Idempotent: a live session is returned as-is, whatever resume_id
        says. With resume_id the factory attaches to that remote session;
        failure is reported, never replaced by a fresh session. A defunct
        handle is cleaned up and reported as Err(SessionExpiredError).
        """
        if session_id == self._default_session_id:
            return await self.ensure_default_session(config)

        async with self._locks.hold(session_id):
            existing = self._sessions.get(session_id)
            if existing is None:
                return await self._open(session_id, config, resume_id=resume_id, is_default=False)
            if await self._is_alive(existing):
                self._active_session_id = session_id
                return Ok(existing)
            return await self._expire_locked(existing)

    async def get_session(
        self,
        session_id: Optional[str],
        config: BrokerConfig,
        create_if_missing: bool = True,
    ) -> Result[Optional[Session], SessionError]:
        """
        Resolve `session_id` (None means the default session).

        Returns:
            Ok(session) for a live session
            Ok(None) when absent and create_if_missing is False
            Err(SessionExpiredError) when a named session's handle is
                defunct; the entry has been cleaned up
        """
        if session_id is None or session_id == self._default_session_id:
            async with self._locks.hold(self._default_session_id):
                if self._default_session_id not in self._sessions and not create_if_missing:
                    return Ok(None)
                return await self._ensure_default_locked(config)

        async with self._locks.hold(session_id):
            existing = self._sessions.get(session_id)
            if existing is None:
                if not create_if_missing:
                    return Ok(None)
                return await self._open(session_id, config, resume_id=None, is_default=False)
            if await self._is_alive(existing):
                self._active_session_id = session_id
                return Ok(existing)
            return await self._expire_locked(existing)

    # -------------------------------------------------------------------------
    # Teardown
    # -------------------------------------------------------------------------
    async def cleanup_session(self, session_id: str) -> Optional[CleanupReport]:
        """
        Tear down `session_id` if it is live.

        Returns None when there was nothing to clean up, so calling it
        twice is harmless. Step failures are collected in the report.
        """
        async with self._locks.hold(session_id):
            session = self._sessions.get(session_id)
            if session is None:
                logger.debug(f"No live session {session_id} to clean up")
                return None
            return await self._cleanup_locked(session)

    async def close_all(self) -> list[CleanupReport]:
        """Clean up every registered session."""
        reports: list[CleanupReport] = []
        for session_id in list(self._sessions):
            report = await self.cleanup_session(session_id)
            if report is not None:
                reports.append(report)
        return reports

    # -------------------------------------------------------------------------
    # Internals (caller holds the id's lock)
    # -------------------------------------------------------------------------
    async def _ensure_default_locked(self, config: BrokerConfig) -> Result[Session, SessionError]:
        session_id = self._default_session_id
        existing = self._sessions.get(session_id)
        if existing is not None:
            if await self._is_alive(existing):
                self._active_session_id = session_id
                return Ok(existing)
            logger.warning(
                f"Default session {session_id} is no longer alive, recreating",
                extra={"session_id": session_id, "remote_id": existing.remote_id},
            )
            self._expired.inc()
            await self._cleanup_locked(existing)

        return await self._open(session_id, config, resume_id=None, is_default=True)

    async def _expire_locked(self, session: Session) -> Result[Session, SessionError]:
        logger.warning(
            f"Session {session.id} is no longer alive",
            extra={"session_id": session.id, "remote_id": session.remote_id},
        )
        self._expired.inc()
        await self._cleanup_locked(session)
        return Err(SessionExpiredError.handle_defunct(session.id, session.remote_id))

    async def _is_alive(self, session: Session) -> bool:
        result = await best_effort(
            session.handle.is_alive,
            "check session liveness",
            session_id=session.id,
        )
        return bool(result.unwrap_or(False))

    async def _open(
        self,
        session_id: str,
        config: BrokerConfig,
        resume_id: Optional[str],
        is_default: bool,
    ) -> Result[Session, SessionError]:
        kind = "default" if is_default else ("resumed" if resume_id else "named")
        params = EngineOpenParams(
            session_id=session_id,
            resume_id=resume_id,
            proxies=config.proxies,
            context_id=config.context_id,
            credentials=config.credentials,
        )

        with log_context(session_id=session_id):
            self._lifecycle.transition(session_id, "OPEN_REQUESTED").unwrap()
            committed = False
            try:
                try:
                    handle = await self._engine_factory.open(params)
                except Exception as e:
                    self._open_failures.inc(kind=kind)
                    if resume_id:
                        error = SessionCreationError.resume_failed(session_id, resume_id, e)
                    else:
                        error = SessionCreationError.open_failed(session_id, e)
                    logger.error(str(error), extra={"error_code": error.code.name})
                    return Err(error)

                try:
                    debugger = await best_effort(
                        handle.debugger_url,
                        "fetch debugger url",
                        level=logging.INFO,
                    )
                    session = Session(
                        id=session_id,
                        handle=handle,
                        metadata=SessionMetadata(
                            is_default=is_default,
                            proxies=config.proxies,
                            context_id=config.context_id,
                            resumed_from=resume_id,
                            live_view_url=live_view_url(handle.remote_id),
                            debugger_url=debugger.unwrap_or(None),
                        ),
                    )
                    async with self._map_lock:
                        self._sessions[session_id] = session
                        self._active_session_id = session_id
                        self._lifecycle.transition(session_id, "OPEN_SUCCEEDED").unwrap()
                        committed = True
                except BaseException:
                    await self._discard(handle)
                    raise
            finally:
                if not committed:
                    self._lifecycle.transition(session_id, "OPEN_FAILED")

            self._opened.inc(kind=kind)
            self._active_gauge.set(len(self._sessions))
            logger.info(
                f"Opened {kind} session {session_id} (remote {session.remote_id})",
                extra={"remote_id": session.remote_id},
            )
            return Ok(session)

    async def _discard(self, handle: AutomationHandle) -> None:
        """Close a handle that never made it into the map."""
        await best_effort(handle.close, "close uncommitted handle")

    async def _cleanup_locked(self, session: Session) -> CleanupReport:
        report = CleanupReport(
            session_id=session.id,
            remote_id=session.remote_id,
            was_default=session.is_default,
        )

        with log_context(session_id=session.id, remote_id=session.remote_id):
            self._lifecycle.transition(session.id, "CLOSE_REQUESTED").unwrap()
            try:
                closed = await best_effort(session.handle.close, "close automation handle")
                if closed.is_err():
                    self._record_failure(report, "close", closed.error)

                purged = await self._resources.clear_for_session(session.id)
                if purged.is_err():
                    logger.warning(str(purged.error), extra={"error_code": purged.error.code.name})
                    self._record_failure(report, "purge", purged.error)
                else:
                    report.resources_purged = purged.unwrap()

                if self._replay_fetcher is not None and session.remote_id:
                    await self._fold_replay(session, report)
            finally:
                async with self._map_lock:
                    self._sessions.pop(session.id, None)
                    if self._active_session_id == session.id:
                        self._active_session_id = self._default_session_id
                    self._lifecycle.transition(session.id, "CLOSE_COMPLETED")
                self._closed.inc()
                self._active_gauge.set(len(self._sessions))

            if report.ok:
                logger.info(f"Cleaned up session {session.id}")
            else:
                logger.warning(
                    f"Cleaned up session {session.id} with {len(report.errors)} step errors",
                    extra={"errors": [e.code.name for e in report.errors]},
                )
        return report

    async def _fold_replay(self, session: Session, report: CleanupReport) -> None:
        fetcher = self._replay_fetcher
        remote_id = session.remote_id

        async def fetch():
            return await fetcher.fetch(remote_id)

        fetched = await best_effort(fetch, "fetch replay usage")
        if fetched.is_err():
            self._record_failure(report, "replay", fetched.error)
            return

        totals = fetched.unwrap()
        if totals is None:
            return
        report.replay_totals = totals
        self._meter.record(
            UsageKey(session.id, C.CLOSE_TOOL_NAME, C.REPLAY_OPERATION),
            totals.to_metrics(),
        )
        logger.info(
            f"Replay usage for {remote_id}: {totals.total_input_tokens} input tokens, "
            f"{totals.total_output_tokens} output tokens",
        )

    def _record_failure(self, report: CleanupReport, step: str, error: BrowserMeshError) -> None:
        report.errors.append(error)
        self._cleanup_errors.inc(step=step)
