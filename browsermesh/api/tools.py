"""
Tool Handlers: Session and Usage Operations

Implements:
- browserbase_session_create: create or resume a session and make it active
- browserbase_session_close: clean up the active session, reset to default
- browserbase_usage_stats: snapshot (and optionally reset) usage counters

Handlers never raise for expected failures; they return a ToolResponse
with is_error set and the error code attached.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from browsermesh.core import constants as C
from browsermesh.core.config import BrokerConfig
from browsermesh.core.errors import BrowserMeshError, ErrorCode, SessionNotFoundError
from browsermesh.observability.logging import log_context
from browsermesh.session.models import live_view_url
from browsermesh.session.registry import SessionRegistry
from browsermesh.usage.meter import SnapshotScope, UsageKey, UsageMeter, UsageMetrics

logger = logging.getLogger(__name__)

CREATE_TOOL_NAME = "browserbase_session_create"
CLOSE_TOOL_NAME = C.CLOSE_TOOL_NAME
USAGE_TOOL_NAME = "browserbase_usage_stats"
TOOL_NAMES = (CREATE_TOOL_NAME, CLOSE_TOOL_NAME, USAGE_TOOL_NAME)


@dataclass(slots=True)
class ToolResponse:
    """Transport-neutral tool result."""
    content: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    is_error: bool = False
    error_code: Optional[ErrorCode] = None

    @classmethod
    def ok(cls, *lines: str, **data: Any) -> ToolResponse:
        return cls(content=list(lines), data=data)

    @classmethod
    def failure(cls, error: BrowserMeshError) -> ToolResponse:
        return cls(
            content=[error.message],
            data={"error": error.to_dict()},
            is_error=True,
            error_code=error.code,
        )

    @property
    def text(self) -> str:
        return "\n".join(self.content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "content": [{"type": "text", "text": line} for line in self.content],
            "data": self.data,
            "isError": self.is_error,
            "errorCode": self.error_code.name if self.error_code else None,
        }


class SessionTools:
    """
    Session and usage tool handlers bound to one broker.

    Usage:
        tools = SessionTools(registry, meter, config)

        response = await tools.create_session()
        tools.record_call("browserbase_stagehand_navigate", "navigate")
        response = await tools.close_session()
        response = tools.usage_stats(scope="perSession", reset=True)
    """

    __slots__ = ("_registry", "_meter", "_config")

    def __init__(
        self,
        registry: SessionRegistry,
        meter: UsageMeter,
        config: BrokerConfig,
    ) -> None:
        self._registry = registry
        self._meter = meter
        self._config = config

    async def create_session(self, session_id: Optional[str] = None) -> ToolResponse:
        """
        Create or reuse a session and set it as active.

        A caller-supplied session_id is both the registry id and the
        remote session to resume.
        """
        if session_id:
            logger.info(f"Creating or resuming session with specified id {session_id}")
            result = await self._registry.create_or_resume_session(
                session_id, self._config, resume_id=session_id,
            )
        else:
            result = await self._registry.ensure_default_session(self._config)

        if result.is_err():
            return ToolResponse.failure(result.error)

        session = result.unwrap()
        view_url = live_view_url(session.remote_id)
        debugger = session.metadata.debugger_url
        return ToolResponse.ok(
            f"Browserbase Live Session View URL: {view_url}",
            f"Browserbase Live Debugger URL: {debugger}",
            sessionId=session.id,
            remoteId=session.remote_id,
            liveViewUrl=view_url,
            debuggerUrl=debugger,
        )

    async def close_session(self) -> ToolResponse:
        """
        Clean up the active session and reset to the default context.

        Always succeeds; cleanup step failures are reported in the
        message and under cleanupErrors.
        """
        previous = self._registry.active_session_id
        default_id = self._registry.default_session_id

        with log_context(session_id=previous, tool=CLOSE_TOOL_NAME):
            report = await self._registry.cleanup_session(previous)

            if report is None:
                not_found = SessionNotFoundError.missing(previous)
                if previous != default_id:
                    message = (
                        f"No active session found for session ID '{previous}'. "
                        "The context has been reset to default."
                    )
                else:
                    message = (
                        "No active session found to close. "
                        "Session context has been reset to default."
                    )
                logger.info(message)
                return ToolResponse(
                    content=[message],
                    data={
                        "previousSessionId": previous,
                        "remoteId": None,
                        "message": message,
                        "cleanupErrors": [],
                    },
                    error_code=not_found.code,
                )

            if report.ok:
                message = (
                    f"Browserbase session ({previous}) closed successfully. "
                    "Context reset to default."
                )
            else:
                message = (
                    f"Browserbase session ({previous}) closed, but some cleanup steps "
                    "encountered errors. Context reset to default."
                )
            if report.remote_id and not report.was_default:
                message += f" View replay at {live_view_url(report.remote_id)}"

            if report.replay_totals is not None:
                logger.info(
                    f"Total token usage: {report.replay_totals.total_input_tokens} input tokens, "
                    f"{report.replay_totals.total_output_tokens} output tokens",
                )

            return ToolResponse.ok(
                message,
                previousSessionId=previous,
                remoteId=report.remote_id,
                message=message,
                cleanupErrors=[e.to_dict() for e in report.errors],
            )

    def usage_stats(
        self,
        scope: SnapshotScope | str = SnapshotScope.ALL,
        session_id: Optional[str] = None,
        reset: bool = False,
    ) -> ToolResponse:
        """Snapshot usage; with reset, the snapshot is taken before clearing."""
        try:
            parsed = SnapshotScope.parse(scope)
        except ValueError:
            return ToolResponse(
                content=[f"Unknown usage scope '{scope}'"],
                is_error=True,
                error_code=ErrorCode.INVALID_ARGUMENT,
            )

        snapshot = self._meter.snapshot(parsed, session_id=session_id)
        if reset:
            self._meter.reset()
        return ToolResponse(content=["Usage stats"], data=snapshot.to_dict())

    def record_call(
        self,
        tool_name: str,
        operation: str,
        session_id: Optional[str] = None,
        metrics: Optional[UsageMetrics] = None,
    ) -> UsageKey:
        """Meter an action tool call against `session_id` or the active session."""
        key = UsageKey(
            session_id=session_id or self._registry.active_session_id,
            tool_name=tool_name,
            operation=operation,
        )
        self._meter.record(key, metrics)
        return key
