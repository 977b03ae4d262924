"""
Automation Engine Boundary

The registry never drives a browser itself. It asks an
AutomationEngineFactory to open (or resume) a remote browsing context
and receives an AutomationHandle it owns until cleanup.

Implementations wrap a concrete provider SDK; tests use in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from browsermesh.core.config import ProviderCredentials


@dataclass(frozen=True, slots=True)
class EngineOpenParams:
    """
    Inputs for opening a remote context.

    resume_id set means "attach to this existing remote session";
    the factory must fail rather than open a fresh one if it cannot.
    """
    session_id: str
    resume_id: Optional[str] = None
    proxies: bool = False
    context_id: Optional[str] = None
    credentials: ProviderCredentials = ProviderCredentials()


class AutomationHandle(Protocol):
    """Owned capability over one remote browsing context."""

    @property
    def remote_id(self) -> str: ...

    async def is_alive(self) -> bool: ...

    async def close(self) -> None: ...

    async def debugger_url(self) -> Optional[str]: ...


class AutomationEngineFactory(Protocol):
    async def open(self, params: EngineOpenParams) -> AutomationHandle: ...
