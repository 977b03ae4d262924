"""
Error Hierarchy for the Browser Session Broker

Design Principles:
- Expected failures are returned inside Err, not raised
- Each error names a stable code for programmatic handling
- Errors carry enough context to be logged as a single JSON line
- Best-effort side work (purge, replay fetch) errors are logged, never propagated

Each error type includes:
- Unique error code
- Human-readable message
- Optional cause for root cause analysis
- Timestamp for log correlation

Usage:
    result = await registry.create_or_resume_session("s1", config)
    match result:
        case Ok(session):
            use(session)
        case Err(SessionCreationError() as error):
            report(error.to_dict())
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from browsermesh.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Session lifecycle errors
    - 2xxx: Resource store errors
    - 3xxx: Usage metering errors
    - 6xxx: Reliability errors
    - 9xxx: Internal/configuration errors
    """

    # Session lifecycle (1xxx)
    SESSION_CREATION_FAILED = 1001
    SESSION_RESUME_FAILED = 1002
    SESSION_EXPIRED = 1003
    SESSION_NOT_FOUND = 1004

    # Resource store (2xxx)
    RESOURCE_PURGE_FAILED = 2001
    RESOURCE_NAME_CONFLICT = 2002

    # Usage metering (3xxx)
    USAGE_FETCH_FAILED = 3001

    # Reliability (6xxx)
    RELIABILITY_RETRY_EXHAUSTED = 6001
    RELIABILITY_OPERATION_FAILED = 6002

    # Internal (9xxx)
    CONFIGURATION_INVALID = 9002
    INVALID_ARGUMENT = 9003


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class BrowserMeshError(Exception):
    """
    Base class for all broker errors.

    Subclasses add classmethod constructors for each failure they
    represent; call sites never build errors from raw codes.
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[BaseException] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def with_context(self, **kwargs: Any) -> BrowserMeshError:
        """Return a copy of this error with extra context fields."""
        return type(self)(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            timestamp=self.timestamp,
            cause=self.cause,
            context={**self.context, **kwargs},
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for logs and tool responses (cause is summarized, not traced)."""
        data: dict[str, Any] = {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.to_iso(),
            "context": self.context,
        }
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


def _describe(cause: Optional[BaseException]) -> str:
    if cause is None:
        return "unknown error"
    text = str(cause)
    return text or type(cause).__name__


# =============================================================================
# SESSION LIFECYCLE ERRORS
# =============================================================================
@dataclass
class SessionError(BrowserMeshError):
    """Common parent for session lifecycle failures."""


@dataclass
class SessionCreationError(SessionError):
    """
    The automation provider could not open or resume a remote session.

    The session is never registered when this is returned.
    """

    @classmethod
    def open_failed(
        cls,
        session_id: str,
        cause: Optional[BaseException] = None,
    ) -> SessionCreationError:
        return cls(
            code=ErrorCode.SESSION_CREATION_FAILED,
            message=f"Failed to create browser session '{session_id}': {_describe(cause)}",
            cause=cause,
            context={"session_id": session_id},
        )

    @classmethod
    def resume_failed(
        cls,
        session_id: str,
        resume_id: str,
        cause: Optional[BaseException] = None,
    ) -> SessionCreationError:
        return cls(
            code=ErrorCode.SESSION_RESUME_FAILED,
            message=(
                f"Failed to resume remote session '{resume_id}' "
                f"for '{session_id}': {_describe(cause)}"
            ),
            cause=cause,
            context={"session_id": session_id, "resume_id": resume_id},
        )


@dataclass
class SessionExpiredError(SessionError):
    """A named session's automation handle was found defunct."""

    @classmethod
    def handle_defunct(
        cls,
        session_id: str,
        remote_id: str,
    ) -> SessionExpiredError:
        return cls(
            code=ErrorCode.SESSION_EXPIRED,
            message=(
                f"Session '{session_id}' (remote {remote_id}) is no longer alive "
                "and has been removed"
            ),
            context={"session_id": session_id, "remote_id": remote_id},
        )


@dataclass
class SessionNotFoundError(SessionError):
    """No live session exists for the id. Informational, not a hard failure."""

    @classmethod
    def missing(cls, session_id: str) -> SessionNotFoundError:
        return cls(
            code=ErrorCode.SESSION_NOT_FOUND,
            message=f"No active session found for session ID '{session_id}'",
            context={"session_id": session_id},
        )


# =============================================================================
# RESOURCE STORE ERRORS
# =============================================================================
@dataclass
class ResourceError(BrowserMeshError):
    """Common parent for resource store failures."""


@dataclass
class ResourcePurgeError(ResourceError):
    """Purging a session's resources failed after all retries."""

    @classmethod
    def retries_exhausted(
        cls,
        session_id: str,
        attempts: int,
        cause: Optional[BaseException] = None,
    ) -> ResourcePurgeError:
        return cls(
            code=ErrorCode.RESOURCE_PURGE_FAILED,
            message=(
                f"Failed to purge resources for session '{session_id}' "
                f"after {attempts} attempts: {_describe(cause)}"
            ),
            cause=cause,
            context={"session_id": session_id, "attempts": attempts},
        )


@dataclass
class ResourceConflictError(ResourceError):
    """A resource name is already owned by another session."""

    @classmethod
    def name_taken(
        cls,
        name: str,
        owner: str,
        requested_by: str,
    ) -> ResourceConflictError:
        return cls(
            code=ErrorCode.RESOURCE_NAME_CONFLICT,
            message=f"Resource '{name}' is owned by session '{owner}'",
            context={"name": name, "owner": owner, "requested_by": requested_by},
        )


# =============================================================================
# USAGE ERRORS
# =============================================================================
@dataclass
class UsageFetchError(BrowserMeshError):
    """The replay accounting endpoint could not be queried."""

    @classmethod
    def request_failed(
        cls,
        remote_id: str,
        cause: Optional[BaseException] = None,
    ) -> UsageFetchError:
        return cls(
            code=ErrorCode.USAGE_FETCH_FAILED,
            message=f"Replay fetch for remote session '{remote_id}' failed: {_describe(cause)}",
            cause=cause,
            context={"remote_id": remote_id},
        )

    @classmethod
    def bad_status(cls, remote_id: str, status_code: int) -> UsageFetchError:
        return cls(
            code=ErrorCode.USAGE_FETCH_FAILED,
            message=f"Replay endpoint returned HTTP {status_code} for '{remote_id}'",
            context={"remote_id": remote_id, "status_code": status_code},
        )


# =============================================================================
# RELIABILITY ERRORS
# =============================================================================
@dataclass
class ReliabilityError(BrowserMeshError):
    """Errors produced by the retry and best-effort combinators."""

    @classmethod
    def retry_exhausted(
        cls,
        attempts: int,
        last_error: Optional[BaseException],
    ) -> ReliabilityError:
        return cls(
            code=ErrorCode.RELIABILITY_RETRY_EXHAUSTED,
            message=f"Retry exhausted after {attempts} attempts: {_describe(last_error)}",
            cause=last_error,
            context={"attempts": attempts},
        )

    @classmethod
    def operation_failed(
        cls,
        operation: str,
        cause: BaseException,
    ) -> ReliabilityError:
        return cls(
            code=ErrorCode.RELIABILITY_OPERATION_FAILED,
            message=f"Operation '{operation}' failed: {_describe(cause)}",
            cause=cause,
            context={"operation": operation},
        )


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================
@dataclass
class ConfigurationError(BrowserMeshError):
    """Configuration could not be parsed or violates an invariant."""

    @classmethod
    def invalid(cls, reason: str, **context: Any) -> ConfigurationError:
        return cls(
            code=ErrorCode.CONFIGURATION_INVALID,
            message=f"Configuration error: {reason}",
            context=dict(context),
        )
