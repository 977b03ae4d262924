"""
Reliability module: bounded retry and best-effort execution.
"""

from browsermesh.reliability.retry import RetryPolicy, calculate_backoff, retry_with_backoff
from browsermesh.reliability.best_effort import best_effort

__all__ = [
    "RetryPolicy",
    "calculate_backoff",
    "retry_with_backoff",
    "best_effort",
]
