"""
Usage module: call/token metering and replay accounting.
"""

from browsermesh.usage.meter import (
    SnapshotScope,
    UsageKey,
    UsageMetrics,
    OperationStats,
    SessionUsage,
    UsageSnapshot,
    UsageMeter,
)
from browsermesh.usage.replay import ReplayTotals, UsageReplayFetcher, summarize_replay

__all__ = [
    "SnapshotScope",
    "UsageKey",
    "UsageMetrics",
    "OperationStats",
    "SessionUsage",
    "UsageSnapshot",
    "UsageMeter",
    "ReplayTotals",
    "UsageReplayFetcher",
    "summarize_replay",
]
