"""
Session module: lifecycle registry and engine boundary.

Components:
- SessionRegistry: owns id -> Session, create/resume/cleanup
- SessionLifecycle: per-id ABSENT/CREATING/ACTIVE/CLOSING table
- AutomationEngineFactory / AutomationHandle: provider boundary
"""

from browsermesh.session.engine import (
    AutomationEngineFactory,
    AutomationHandle,
    EngineOpenParams,
)
from browsermesh.session.models import CleanupReport, Session, SessionMetadata
from browsermesh.session.registry import SessionRegistry
from browsermesh.session.state_machine import SessionLifecycle, SessionState

__all__ = [
    "AutomationEngineFactory",
    "AutomationHandle",
    "EngineOpenParams",
    "CleanupReport",
    "Session",
    "SessionMetadata",
    "SessionRegistry",
    "SessionLifecycle",
    "SessionState",
]
