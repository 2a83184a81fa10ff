"""Structured events and metrics for action execution."""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, Iterator

from action_engine.util.logging import get_logger, normalize_level


@dataclass(frozen=True)
class LogEvent:
    """One JSON line on the events logger.

    Attributes:
        event_type: Dotted event name such as ``action.finished``.
        timestamp: Unix timestamp in seconds.
        payload: Event fields (runner, action id, status, ...).
        context: Fields shared by every event of the logger.
    """

    event_type: str
    timestamp: float
    payload: dict[str, Any]
    context: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    """Logger that emits machine-readable JSON events."""

    def __init__(self, logger_name: str, context: dict[str, Any] | None = None) -> None:
        """Initialize the event logger.

        Args:
            logger_name: Logger name used for output.
            context: Optional shared context to attach to every event.
        """

        self._logger = get_logger(logger_name)
        self._context = context or {}

    def log(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        level: str = "INFO",
    ) -> None:
        """Emit a structured log event.

        Args:
            event_type: Machine-readable event name.
            payload: Structured event data. Values that are not JSON types are
                rendered with ``str``.
            level: Logging level string (default: INFO).
        """

        numeric_level = normalize_level(level)
        if not self._logger.isEnabledFor(numeric_level):
            return
        event = LogEvent(
            event_type=event_type,
            timestamp=time.time(),
            payload=payload,
            context=dict(self._context),
        )
        self._logger.log(numeric_level, json.dumps(asdict(event), sort_keys=True, default=str))


@dataclass
class DurationStats:
    """Running summary of one duration metric."""

    count: int = 0
    total_s: float = 0.0
    max_s: float = 0.0

    def add(self, duration_s: float) -> None:
        self.count += 1
        self.total_s += duration_s
        self.max_s = max(self.max_s, duration_s)

    @property
    def avg_s(self) -> float:
        return self.total_s / self.count if self.count else 0.0


@dataclass
class MetricsCollector:
    """Counters and duration summaries for a runtime session.

    Durations are folded into ``DurationStats`` as they arrive, so a session
    with many actions keeps constant memory per metric.
    """

    counters: dict[str, int] = field(default_factory=dict)
    durations: dict[str, DurationStats] = field(default_factory=dict)

    def increment(self, name: str, value: int = 1) -> None:
        """Increment a named counter.

        Args:
            name: Counter name, e.g. ``actions.failed``.
            value: Increment amount.
        """

        self.counters[name] = self.counters.get(name, 0) + value

    def record_duration(self, name: str, duration_s: float) -> None:
        """Add one observation to a duration metric."""

        self.durations.setdefault(name, DurationStats()).add(duration_s)

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-compatible copy of the collected metrics."""

        return {
            "counters": dict(self.counters),
            "durations": {
                name: {
                    "count": stats.count,
                    "total_s": stats.total_s,
                    "avg_s": stats.avg_s,
                    "max_s": stats.max_s,
                }
                for name, stats in self.durations.items()
            },
        }


@dataclass(frozen=True)
class ObservabilityManager:
    """Events and metrics shared by the runners of one session."""

    events: EventLogger
    metrics: MetricsCollector

    def log_event(self, event_type: str, payload: dict[str, Any], *, level: str = "INFO") -> None:
        """Log an event with the configured event logger."""

        self.events.log(event_type, payload, level=level)

    @contextmanager
    def track_duration(self, metric_name: str) -> Iterator[None]:
        """Record the wall time of the enclosed block under ``metric_name``."""

        start = time.perf_counter()
        try:
            yield
        finally:
            self.metrics.record_duration(metric_name, time.perf_counter() - start)


def create_observability_manager(context: dict[str, Any] | None = None) -> ObservabilityManager:
    """Create a manager logging events on ``action_engine.events``.

    Args:
        context: Fields attached to every event, such as a session id.
    """

    return ObservabilityManager(
        events=EventLogger("action_engine.events", context=context),
        metrics=MetricsCollector(),
    )
