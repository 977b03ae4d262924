"""
Usage Meter: Per-Operation Call and Token Accounting

Tracks every metered tool call twice, once in the global bucket for its
operation and once in the calling session's bucket, so that for every
operation:

    global[op].call_count == sum(per_session[s].operations[op].call_count)

Data Model:
    global:      operation -> OperationStats
    per_session: session_id -> SessionUsage(operations: operation -> OperationStats)

Buckets are created lazily on first record and survive session cleanup;
only reset() clears them. A single lock guards both maps, so a record()
racing a reset() lands entirely before or entirely after it.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional

from browsermesh.core.config import TokenPricing

logger = logging.getLogger(__name__)


# =============================================================================
# KEYS AND SCOPES
# =============================================================================
class SnapshotScope(str, Enum):
    """Which portion of the usage data a snapshot returns."""
    GLOBAL = "global"
    PER_SESSION = "perSession"
    ALL = "all"

    @classmethod
    def parse(cls, value: str | SnapshotScope) -> SnapshotScope:
        if isinstance(value, SnapshotScope):
            return value
        normalized = value.strip()
        if normalized in ("per_session", "per-session"):
            return cls.PER_SESSION
        return cls(normalized)


@dataclass(frozen=True, slots=True)
class UsageKey:
    """Identifies one metering bucket."""
    session_id: str
    tool_name: str
    operation: str


@dataclass(frozen=True, slots=True)
class UsageMetrics:
    """
    Numeric usage attached to a call.

    cost_usd left as None is derived from the meter's TokenPricing.
    """
    input_tokens: int = 0
    output_tokens: int = 0
    time_ms: float = 0.0
    cost_usd: Optional[float] = None

    def __post_init__(self) -> None:
        if self.input_tokens < 0 or self.output_tokens < 0:
            raise ValueError("token counts must be non-negative")
        if self.time_ms < 0:
            raise ValueError("time_ms must be non-negative")
        if self.cost_usd is not None and self.cost_usd < 0:
            raise ValueError("cost_usd must be non-negative")

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def priced(self, pricing: TokenPricing) -> UsageMetrics:
        if self.cost_usd is not None:
            return self
        return replace(self, cost_usd=pricing.cost(self.input_tokens, self.output_tokens))

    def to_dict(self) -> dict[str, Any]:
        return {
            "inputTokens": self.input_tokens,
            "outputTokens": self.output_tokens,
            "totalTokens": self.total_tokens,
            "timeMs": self.time_ms,
            "costUsd": self.cost_usd or 0.0,
        }


# =============================================================================
# BUCKETS
# =============================================================================
@dataclass(slots=True)
class OperationStats:
    """
    Counters for one operation, globally or within one session.

    Invariant: sum(tool_call_counts.values()) == call_count
    """
    call_count: int = 0
    tool_call_counts: dict[str, int] = field(default_factory=dict)
    input_tokens: int = 0
    output_tokens: int = 0
    time_ms: float = 0.0
    cost_usd: float = 0.0
    has_metrics: bool = False

    def add_call(self, tool_name: str, metrics: Optional[UsageMetrics]) -> None:
        self.call_count += 1
        self.tool_call_counts[tool_name] = self.tool_call_counts.get(tool_name, 0) + 1
        if metrics is not None:
            self.input_tokens += metrics.input_tokens
            self.output_tokens += metrics.output_tokens
            self.time_ms += metrics.time_ms
            self.cost_usd += metrics.cost_usd or 0.0
            self.has_metrics = True

    @property
    def metrics(self) -> UsageMetrics:
        return UsageMetrics(
            input_tokens=self.input_tokens,
            output_tokens=self.output_tokens,
            time_ms=self.time_ms,
            cost_usd=self.cost_usd,
        )

    def copy(self) -> OperationStats:
        return replace(self, tool_call_counts=dict(self.tool_call_counts))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "callCount": self.call_count,
            "toolCallCounts": dict(self.tool_call_counts),
        }
        if self.has_metrics:
            data["metrics"] = self.metrics.to_dict()
        return data


@dataclass(slots=True)
class SessionUsage:
    """All operation buckets for one session."""
    operations: dict[str, OperationStats] = field(default_factory=dict)

    def copy(self) -> SessionUsage:
        return SessionUsage(operations={op: s.copy() for op, s in self.operations.items()})

    def to_dict(self) -> dict[str, Any]:
        return {"operations": {op: s.to_dict() for op, s in self.operations.items()}}


@dataclass(slots=True)
class UsageSnapshot:
    """
    Detached copy of meter state.

    A section is None when the requested scope excluded it; the wire
    form omits excluded sections entirely.
    """
    global_operations: Optional[dict[str, OperationStats]] = None
    per_session: Optional[dict[str, SessionUsage]] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {}
        if self.global_operations is not None:
            data["global"] = {op: s.to_dict() for op, s in self.global_operations.items()}
        if self.per_session is not None:
            data["perSession"] = {sid: u.to_dict() for sid, u in self.per_session.items()}
        return data


# =============================================================================
# METER
# =============================================================================
class UsageMeter:
    """
    Process-wide usage aggregator with an explicit reset lifecycle.

    Usage:
        meter = UsageMeter(pricing=config.pricing)
        meter.record(UsageKey("s1", "browserbase_stagehand_navigate", "navigate"))
        meter.record(key, UsageMetrics(input_tokens=120, output_tokens=40))

        snap = meter.snapshot(SnapshotScope.ALL, session_id="s1")
        meter.reset()
    """

    __slots__ = ("_global", "_per_session", "_pricing", "_lock")

    def __init__(self, pricing: Optional[TokenPricing] = None) -> None:
        self._global: dict[str, OperationStats] = {}
        self._per_session: dict[str, SessionUsage] = {}
        self._pricing = pricing or TokenPricing()
        self._lock = threading.Lock()

    def record(self, key: UsageKey, metrics: Optional[UsageMetrics] = None) -> None:
        """Count one call against the global and session buckets for key.operation."""
        priced = metrics.priced(self._pricing) if metrics is not None else None

        with self._lock:
            global_stats = self._global.get(key.operation)
            if global_stats is None:
                global_stats = self._global[key.operation] = OperationStats()
            global_stats.add_call(key.tool_name, priced)

            session = self._per_session.get(key.session_id)
            if session is None:
                session = self._per_session[key.session_id] = SessionUsage()
            session_stats = session.operations.get(key.operation)
            if session_stats is None:
                session_stats = session.operations[key.operation] = OperationStats()
            session_stats.add_call(key.tool_name, priced)

        if priced is not None:
            logger.info(
                "usage_metrics",
                extra={
                    "event": "usage_metrics",
                    "session_id": key.session_id,
                    "tool_name": key.tool_name,
                    "operation": key.operation,
                    "metrics": priced.to_dict(),
                },
            )

    def snapshot(
        self,
        scope: SnapshotScope | str = SnapshotScope.ALL,
        session_id: Optional[str] = None,
    ) -> UsageSnapshot:
        """
        Copy the requested portion of usage data. Never mutates the meter.

        With session_id, per-session output holds only that session,
        reported as empty operations when it has recorded nothing.
        """
        scope = SnapshotScope.parse(scope)

        with self._lock:
            global_ops = None
            if scope in (SnapshotScope.GLOBAL, SnapshotScope.ALL):
                global_ops = {op: s.copy() for op, s in self._global.items()}

            per_session = None
            if scope in (SnapshotScope.PER_SESSION, SnapshotScope.ALL):
                if session_id is not None:
                    usage = self._per_session.get(session_id)
                    per_session = {session_id: usage.copy() if usage else SessionUsage()}
                else:
                    per_session = {sid: u.copy() for sid, u in self._per_session.items()}

        return UsageSnapshot(global_operations=global_ops, per_session=per_session)

    def reset(self) -> None:
        """Clear all counters."""
        with self._lock:
            self._global = {}
            self._per_session = {}
        logger.info("Usage counters reset")

    def totals(self) -> UsageMetrics:
        """Summed metrics across all global buckets."""
        with self._lock:
            stats = list(self._global.values())
        return UsageMetrics(
            input_tokens=sum(s.input_tokens for s in stats),
            output_tokens=sum(s.output_tokens for s in stats),
            time_ms=sum(s.time_ms for s in stats),
            cost_usd=sum(s.cost_usd for s in stats),
        )

    def session_ids(self) -> list[str]:
        with self._lock:
            return list(self._per_session)

    @property
    def pricing(self) -> TokenPricing:
        return self._pricing
