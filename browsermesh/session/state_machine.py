"""
Session State Machine: Per-Id Lifecycle FSM

States:
    ABSENT    → No session registered under the id
    CREATING  → Remote context is being opened or resumed
    ACTIVE    → Session registered and usable
    CLOSING   → Cleanup in progress

Transitions:
    ABSENT   → CREATING : OPEN_REQUESTED
    CREATING → ACTIVE   : OPEN_SUCCEEDED
    CREATING → ABSENT   : OPEN_FAILED (error or cancellation)
    ACTIVE   → CLOSING  : CLOSE_REQUESTED
    CLOSING  → ABSENT   : CLOSE_COMPLETED

CREATING and CLOSING are only ever observed by tasks that do not hold
the id's lock; the registry serializes everything else.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional

from browsermesh.core.types import Result, Ok, Err, Timestamp


# =============================================================================
# SESSION STATE ENUMERATION
# =============================================================================
class SessionState(Enum):
    """Lifecycle states for one session id."""
    ABSENT = auto()
    CREATING = auto()
    ACTIVE = auto()
    CLOSING = auto()

    @property
    def is_transient(self) -> bool:
        return self in (SessionState.CREATING, SessionState.CLOSING)


# =============================================================================
# TRANSITION DEFINITIONS
# =============================================================================
@dataclass(frozen=True, slots=True)
class SessionTransition:
    from_state: SessionState
    to_state: SessionState
    trigger: str


VALID_TRANSITIONS: frozenset[SessionTransition] = frozenset({
    SessionTransition(SessionState.ABSENT, SessionState.CREATING, "OPEN_REQUESTED"),
    SessionTransition(SessionState.CREATING, SessionState.ACTIVE, "OPEN_SUCCEEDED"),
    SessionTransition(SessionState.CREATING, SessionState.ABSENT, "OPEN_FAILED"),
    SessionTransition(SessionState.ACTIVE, SessionState.CLOSING, "CLOSE_REQUESTED"),
    SessionTransition(SessionState.CLOSING, SessionState.ABSENT, "CLOSE_COMPLETED"),
})


@dataclass(frozen=True, slots=True)
class StateTransitionEvent:
    """Event emitted on state transition."""
    session_id: str
    from_state: SessionState
    to_state: SessionState
    trigger: str
    timestamp: Timestamp


# =============================================================================
# LIFECYCLE TABLE
# =============================================================================
class SessionLifecycle:
    """
    State table for every session id the registry has seen.

    Ids in ABSENT are not stored, so the table only grows with live
    sessions.

    Usage:
        lifecycle = SessionLifecycle()
        lifecycle.transition("s1", "OPEN_REQUESTED")
        lifecycle.state_of("s1")   # SessionState.CREATING

    Thread Safety:
        Not thread-safe; callers run on one event loop.
    """

    __slots__ = ("_states", "_listeners")

    def __init__(self) -> None:
        self._states: dict[str, SessionState] = {}
        self._listeners: list[Callable[[StateTransitionEvent], None]] = []

    def add_listener(self, listener: Callable[[StateTransitionEvent], None]) -> None:
        self._listeners.append(listener)

    def state_of(self, session_id: str) -> SessionState:
        return self._states.get(session_id, SessionState.ABSENT)

    def transition(
        self,
        session_id: str,
        trigger: str,
    ) -> Result[StateTransitionEvent, str]:
        """
        Apply `trigger` to the id's current state.

        Returns:
            Ok(event) on success
            Err(message) if no transition matches
        """
        current = self.state_of(session_id)

        match: Optional[SessionTransition] = None
        for t in VALID_TRANSITIONS:
            if t.from_state == current and t.trigger == trigger:
                match = t
                break

        if match is None:
            return Err(
                f"No valid transition from {current.name} "
                f"with trigger '{trigger}' for session '{session_id}'"
            )

        if match.to_state is SessionState.ABSENT:
            self._states.pop(session_id, None)
        else:
            self._states[session_id] = match.to_state

        event = StateTransitionEvent(
            session_id=session_id,
            from_state=current,
            to_state=match.to_state,
            trigger=trigger,
            timestamp=Timestamp.now(),
        )
        for listener in self._listeners:
            listener(event)
        return Ok(event)
