"""
Lifecycle Metrics: Prometheus-Compatible Counters and Gauges

Operational counters for the session registry (sessions opened,
closed, expired, cleanup step failures) and a gauge of live sessions.
Tool usage accounting lives in browsermesh.usage; these metrics
describe the broker itself.
"""

from __future__ import annotations

import threading
from collections import defaultdict
from typing import Iterator, Sequence

LabelKey = tuple[tuple[str, str], ...]


class _Metric:
    __slots__ = ("_name", "_help", "_label_names", "_values", "_lock")

    kind = "untyped"

    def __init__(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> None:
        self._name = name
        self._help = help_text
        self._label_names = tuple(label_names)
        self._values: dict[LabelKey, float] = defaultdict(float)
        self._lock = threading.Lock()

    def _key(self, labels: dict[str, str]) -> LabelKey:
        return tuple(sorted((k, str(labels.get(k, ""))) for k in self._label_names))

    def get(self, **labels: str) -> float:
        key = self._key(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def collect(self) -> Iterator[tuple[dict[str, str], float]]:
        with self._lock:
            items = list(self._values.items())
        for key, value in items:
            yield dict(key), value

    @property
    def name(self) -> str:
        return self._name

    @property
    def help_text(self) -> str:
        return self._help


class Counter(_Metric):
    """
    Monotonically increasing counter.

    Usage:
        opened = Counter("browsermesh_sessions_opened_total", ["kind"])
        opened.inc(kind="default")
    """

    kind = "counter"

    def inc(self, value: float = 1.0, **labels: str) -> None:
        if value < 0:
            raise ValueError("Counter can only increase")
        key = self._key(labels)
        with self._lock:
            self._values[key] += value


class Gauge(_Metric):
    """Gauge that can go up and down."""

    kind = "gauge"

    def set(self, value: float, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] = value

    def inc(self, value: float = 1.0, **labels: str) -> None:
        key = self._key(labels)
        with self._lock:
            self._values[key] += value

    def dec(self, value: float = 1.0, **labels: str) -> None:
        self.inc(-value, **labels)


class MetricsCollector:
    """
    Registry of named metrics with Prometheus text export.

    One collector per broker instance; components receive it through
    their constructors rather than reaching for a process global.
    """

    __slots__ = ("_metrics", "_lock")

    def __init__(self) -> None:
        self._metrics: dict[str, _Metric] = {}
        self._lock = threading.Lock()

    def counter(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> Counter:
        return self._get_or_create(Counter, name, label_names, help_text)

    def gauge(
        self,
        name: str,
        label_names: Sequence[str] = (),
        help_text: str = "",
    ) -> Gauge:
        return self._get_or_create(Gauge, name, label_names, help_text)

    def _get_or_create(self, cls, name, label_names, help_text):
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                metric = cls(name, label_names, help_text)
                self._metrics[name] = metric
            elif not isinstance(metric, cls):
                raise TypeError(f"Metric '{name}' already registered as {metric.kind}")
            return metric

    def export_prometheus(self) -> str:
        """Export all metrics in Prometheus text format."""
        lines: list[str] = []
        with self._lock:
            metrics = list(self._metrics.values())

        for metric in metrics:
            if metric.help_text:
                lines.append(f"# HELP {metric.name} {metric.help_text}")
            lines.append(f"# TYPE {metric.name} {metric.kind}")
            for labels, value in metric.collect():
                lines.append(f"{metric.name}{_format_labels(labels)} {value}")

        return "\n".join(lines)


def _format_labels(labels: dict[str, str]) -> str:
    if not labels:
        return ""
    pairs = [f'{k}="{v}"' for k, v in sorted(labels.items())]
    return "{" + ",".join(pairs) + "}"
