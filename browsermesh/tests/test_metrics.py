"""
Unit Tests: Lifecycle Metrics

Tests:
    - Counter and gauge arithmetic
    - Collector registration rules
    - Prometheus text export, standalone and from a live registry
"""

import pytest

from browsermesh.observability.metrics import Counter, Gauge, MetricsCollector


class TestMetricTypes:
    """Tests for Counter and Gauge."""

    def test_counter_labels_are_independent(self):
        counter = Counter("opened_total", ["kind"])
        counter.inc(kind="default")
        counter.inc(2, kind="named")

        assert counter.get(kind="default") == 1
        assert counter.get(kind="named") == 2
        assert counter.get(kind="resumed") == 0

    def test_counter_rejects_decrease(self):
        with pytest.raises(ValueError):
            Counter("opened_total").inc(-1)

    def test_gauge_moves_both_ways(self):
        gauge = Gauge("active")
        gauge.set(3)
        gauge.dec()
        gauge.inc(0.5)

        assert gauge.get() == 2.5


class TestCollector:
    """Tests for MetricsCollector."""

    def test_same_name_returns_same_metric(self):
        collector = MetricsCollector()
        assert collector.counter("a_total") is collector.counter("a_total")

    def test_kind_mismatch_raises(self):
        collector = MetricsCollector()
        collector.counter("a_total")

        with pytest.raises(TypeError):
            collector.gauge("a_total")

    def test_export_prometheus_text(self):
        collector = MetricsCollector()
        collector.counter("cleanup_errors_total", ["step"], "Cleanup steps that failed").inc(step="purge")
        collector.gauge("active_sessions").set(2)

        lines = collector.export_prometheus().splitlines()

        assert lines == [
            "# HELP cleanup_errors_total Cleanup steps that failed",
            "# TYPE cleanup_errors_total counter",
            'cleanup_errors_total{step="purge"} 1.0',
            "# TYPE active_sessions gauge",
            "active_sessions 2.0",
        ]

    def test_empty_collector_exports_nothing(self):
        assert MetricsCollector().export_prometheus() == ""

    @pytest.mark.asyncio
    async def test_registry_lifecycle_is_exported(self, registry, config, metrics):
        await registry.ensure_default_session(config)
        await registry.create_or_resume_session("named", config)
        await registry.cleanup_session("named")

        text = metrics.export_prometheus()

        assert "# HELP browsermesh_sessions_opened_total Remote sessions opened" in text
        assert "# TYPE browsermesh_sessions_opened_total counter" in text
        assert 'browsermesh_sessions_opened_total{kind="default"} 1.0' in text
        assert 'browsermesh_sessions_opened_total{kind="named"} 1.0' in text
        assert "browsermesh_sessions_closed_total 1.0" in text
        assert "# TYPE browsermesh_active_sessions gauge" in text
        assert "browsermesh_active_sessions 1.0" in text
