"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the broker:
- Result/Either containers for expected failures
- Error hierarchy with stable codes
- Configuration management with validation
"""

from browsermesh.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
)
from browsermesh.core.errors import (
    ErrorCode,
    BrowserMeshError,
    SessionError,
    SessionCreationError,
    SessionExpiredError,
    SessionNotFoundError,
    ResourceError,
    ResourcePurgeError,
    ResourceConflictError,
    UsageFetchError,
    ReliabilityError,
    ConfigurationError,
)
from browsermesh.core.config import BrokerConfig, TokenPricing, resolve_config

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ErrorCode",
    "BrowserMeshError",
    "SessionError",
    "SessionCreationError",
    "SessionExpiredError",
    "SessionNotFoundError",
    "ResourceError",
    "ResourcePurgeError",
    "ResourceConflictError",
    "UsageFetchError",
    "ReliabilityError",
    "ConfigurationError",
    "BrokerConfig",
    "TokenPricing",
    "resolve_config",
]
