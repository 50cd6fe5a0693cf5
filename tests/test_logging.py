"""Tests for logging setup and the metrics collector."""

import structlog

from one_agent.infrastructure.observability.logging import MetricsCollector, add_service_context, setup_logging


def test_setup_logging_binds_service_context():
    setup_logging("DEBUG", "console", service_name="one-agent-test")

    assert structlog.contextvars.get_contextvars()["service"] == "one-agent-test"
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


def test_bound_session_id_is_added_unless_explicit():
    with structlog.contextvars.bound_contextvars(session_id="bound"):
        assert add_service_context(None, "info", {})["session_id"] == "bound"
        assert add_service_context(None, "info", {"session_id": "explicit"})["session_id"] == "explicit"


def test_metrics_summary():
    collector = MetricsCollector()
    collector.increment_counter("turns.started")
    collector.increment_counter("turns.started")
    collector.set_gauge("sessions.active", 3)
    collector.record_latency("turn", 10.0)
    collector.record_latency("turn", 30.0)

    summary = collector.get_metrics_summary()

    assert summary["counters"] == {"turns.started": 2}
    assert summary["gauges"] == {"sessions.active": 3}
    assert summary["latency"]["turn"] == {"count": 2, "avg_ms": 20.0, "min_ms": 10.0, "max_ms": 30.0}

    collector.reset()
    assert collector.get_metrics_summary() == {"counters": {}, "gauges": {}, "latency": {}}


def test_latency_series_keeps_fixed_size_aggregates():
    collector = MetricsCollector()
    for i in range(10000):
        collector.record_latency("capability", float(i % 100))

    series = collector.latencies["capability"]

    assert set(series) == {"count", "sum", "min", "max"}
    assert series["count"] == 10000
    assert collector.get_metrics_summary()["latency"]["capability"] == {
        "count": 10000, "avg_ms": 49.5, "min_ms": 0.0, "max_ms": 99.0
    }
