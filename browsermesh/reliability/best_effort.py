"""
Best-Effort Execution: Try, Log, Continue

Side work attached to a primary operation (closing a remote handle,
purging artifacts, fetching replay accounting) must never fail that
operation. best_effort runs such work and always hands back a Result:
- Exceptions become Err(ReliabilityError) after being logged
- Callables that already return a Result have their Err logged and passed through
- Cancellation is not intercepted; it belongs to the caller
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, TypeVar, Union

from browsermesh.core.types import Result, Ok, Err
from browsermesh.core.errors import BrowserMeshError, ReliabilityError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def best_effort(
    func: Callable[[], Awaitable[Union[T, Result[T, Any]]]],
    operation: str,
    level: int = logging.WARNING,
    **log_fields: Any,
) -> Result[T, BrowserMeshError]:
    """
    Run `func`, never letting an Exception escape.

    Args:
        func: Zero-argument coroutine function
        operation: Name recorded in logs and in the resulting error
        level: Log level used for failures
        **log_fields: Extra structured fields for the failure log line
    """
    try:
        outcome = await func()
    except Exception as e:
        error = ReliabilityError.operation_failed(operation, e)
        logger.log(
            level,
            f"{operation} failed: {e}",
            exc_info=logger.isEnabledFor(logging.DEBUG),
            extra={"operation": operation, "error_code": error.code.name, **log_fields},
        )
        return Err(error)

    if isinstance(outcome, Err):
        error = outcome.error
        code = error.code.name if isinstance(error, BrowserMeshError) else "UNKNOWN"
        logger.log(
            level,
            f"{operation} failed: {error}",
            extra={"operation": operation, "error_code": code, **log_fields},
        )
        if isinstance(error, BrowserMeshError):
            return outcome
        return Err(ReliabilityError.operation_failed(operation, RuntimeError(str(error))))

    if isinstance(outcome, Ok):
        return outcome
    return Ok(outcome)
