"""
Session Records

Session is the registry's bookkeeping around one remote browsing
context. The automation handle is exposed read-only; only the registry
opens and closes it. Metadata is a typed struct with an extras bag for
provider-specific fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from browsermesh.core import constants as C
from browsermesh.core.errors import BrowserMeshError
from browsermesh.core.types import Timestamp
from browsermesh.session.engine import AutomationHandle
from browsermesh.usage.replay import ReplayTotals


@dataclass(slots=True)
class SessionMetadata:
    """
    Per-session attributes.

    is_default is durable: whether a record is the default session is
    read from here, never recomputed from the id.
    """
    is_default: bool = False
    proxies: bool = False
    context_id: Optional[str] = None
    resumed_from: Optional[str] = None
    live_view_url: Optional[str] = None
    debugger_url: Optional[str] = None
    extras: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "isDefault": self.is_default,
            "proxies": self.proxies,
            "contextId": self.context_id,
            "resumedFrom": self.resumed_from,
            "liveViewUrl": self.live_view_url,
            "debuggerUrl": self.debugger_url,
            "extras": dict(self.extras),
        }


class Session:
    """
    One registered session.

    remote_id and metadata may be updated after creation; the handle
    cannot be replaced.
    """

    __slots__ = ("id", "created", "remote_id", "metadata", "_handle")

    def __init__(
        self,
        id: str,
        handle: AutomationHandle,
        remote_id: Optional[str] = None,
        metadata: Optional[SessionMetadata] = None,
        created: Optional[Timestamp] = None,
    ) -> None:
        self.id = id
        self._handle = handle
        self.remote_id = remote_id if remote_id is not None else handle.remote_id
        self.metadata = metadata or SessionMetadata()
        self.created = created or Timestamp.now()

    @property
    def handle(self) -> AutomationHandle:
        return self._handle

    @property
    def is_default(self) -> bool:
        return self.metadata.is_default

    @property
    def live_view_url(self) -> str:
        return self.metadata.live_view_url or live_view_url(self.remote_id)

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.id,
            "remoteId": self.remote_id,
            "created": self.created.to_iso(),
            "metadata": self.metadata.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"Session(id={self.id!r}, remote_id={self.remote_id!r}, "
            f"default={self.metadata.is_default})"
        )


def live_view_url(remote_id: str) -> str:
    return f"{C.LIVE_VIEW_BASE_URL}/{remote_id}"


@dataclass(slots=True)
class CleanupReport:
    """Outcome of tearing down one live session."""
    session_id: str
    remote_id: Optional[str]
    was_default: bool
    resources_purged: int = 0
    replay_totals: Optional[ReplayTotals] = None
    errors: list[BrowserMeshError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "sessionId": self.session_id,
            "remoteId": self.remote_id,
            "wasDefault": self.was_default,
            "resourcesPurged": self.resources_purged,
            "replayTotals": self.replay_totals.to_dict() if self.replay_totals else None,
            "errors": [e.to_dict() for e in self.errors],
        }
