import structlog
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime
import os


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "one-agent"
) -> None:
    """Setup structured logging configuration"""

    # Configure Python logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    # Processors for structlog
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
    ]

    # Add appropriate renderer based on format
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development"),
        version=os.getenv("SERVICE_VERSION", "unknown")
    )


def add_service_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add service context to all log entries"""

    if "timestamp" not in event_dict:
        event_dict["timestamp"] = datetime.utcnow().isoformat()

    context = structlog.contextvars.get_contextvars()

    trace_id = context.get("trace_id")
    if trace_id:
        event_dict["trace_id"] = trace_id

    # Explicit session_id arguments win over the bound one
    session_id = context.get("session_id")
    if session_id and "session_id" not in event_dict:
        event_dict["session_id"] = session_id

    return event_dict


class AgentLogger:
    """Specialized logger for agent loop operations"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_capability_execution(
        self,
        capability: str,
        session_id: str,
        arguments: Dict[str, Any],
        ok: bool = True,
        sentinel: Optional[str] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None
    ):
        """Log capability execution events"""

        self.logger.info(
            "capability_execution",
            capability=capability,
            session_id=session_id,
            arguments=arguments,
            ok=ok,
            sentinel=sentinel,
            duration_ms=duration_ms,
            error=error
        )

    def log_state_transition(
        self,
        session_id: str,
        from_state: str,
        to_state: str,
        depth: int = 0
    ):
        """Log agent loop state transitions"""

        self.logger.debug(
            "state_transition",
            session_id=session_id,
            from_state=from_state,
            to_state=to_state,
            depth=depth
        )

    def log_context_update(
        self,
        session_id: str,
        context_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log context updates"""

        self.logger.info(
            "context_update",
            session_id=session_id,
            context_type=context_type,
            action=action,
            details=details or {}
        )


# Global logger instance
agent_logger = AgentLogger("one_agent")


class MetricsCollector:
    """In-process turn and capability metrics, mirrored to debug log events.

    Counters and latencies are keyed by name only; tags travel with the log
    event but do not split the aggregates.
    """

    def __init__(self):
        self.counters: Dict[str, int] = {}
        self.gauges: Dict[str, float] = {}
        self.latencies: Dict[str, Dict[str, float]] = {}

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        series = self.latencies.get(operation)
        if series is None:
            series = self.latencies[operation] = {"count": 0, "sum": 0.0, "min": float("inf"), "max": 0.0}

        series["count"] += 1
        series["sum"] += duration_ms
        series["min"] = min(series["min"], duration_ms)
        series["max"] = max(series["max"], duration_ms)
        agent_logger.logger.debug("metric", kind="latency", name=operation, value=round(duration_ms, 2), tags=tags or {})

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] = self.counters.get(name, 0) + value
        agent_logger.logger.debug("metric", kind="counter", name=name, value=value, tags=tags or {})

    def set_gauge(self, name: str, value: float, tags: Optional[Dict[str, str]] = None):
        self.gauges[name] = value
        agent_logger.logger.debug("metric", kind="gauge", name=name, value=value, tags=tags or {})

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Counters, gauges and count/avg/min/max per latency series"""

        latencies = {
            name: {
                "count": series["count"],
                "avg_ms": round(series["sum"] / series["count"], 2),
                "min_ms": round(series["min"], 2),
                "max_ms": round(series["max"], 2),
            }
            for name, series in self.latencies.items()
        }
        return {"counters": dict(self.counters), "gauges": dict(self.gauges), "latency": latencies}

    def reset(self):
        self.counters.clear()
        self.gauges.clear()
        self.latencies.clear()


metrics = MetricsCollector()
