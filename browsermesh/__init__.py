"""
browsermesh: Session Broker for Remote Browser Automation

Brokers many concurrent tool invocations onto a set of remote
browser-automation sessions and meters their usage.

Architecture:
    SessionRegistry   id -> Session, create/resume/cleanup
    ResourceStore     per-session artifact storage with retrying purge
    UsageMeter        call/token/cost counters, global and per session
    UsageReplayFetcher post-close token accounting over HTTP
    SessionTools      create/close/usage tool handlers
"""

__version__ = "0.1.0"

from browsermesh.core import (
    BrokerConfig,
    BrowserMeshError,
    Err,
    Ok,
    Result,
    resolve_config,
)
from browsermesh.session import SessionRegistry, Session
from browsermesh.storage import ResourceStore
from browsermesh.usage import UsageMeter, UsageReplayFetcher
from browsermesh.api import SessionTools, ToolResponse

__all__ = [
    "__version__",
    "BrokerConfig",
    "BrowserMeshError",
    "Err",
    "Ok",
    "Result",
    "resolve_config",
    "SessionRegistry",
    "Session",
    "ResourceStore",
    "UsageMeter",
    "UsageReplayFetcher",
    "SessionTools",
    "ToolResponse",
]
