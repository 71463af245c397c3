"""
Lightweight in-memory metrics and the default observer.

Counters and timings are kept per process without Prometheus or
OpenTelemetry. Labels are folded into the metric key so that
``crawl_pages_total{domain=example.com}`` is its own series.
"""

import threading
import time
from collections import defaultdict
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from scrape_pipeline.core.protocols import Observer
from scrape_pipeline.utils.logging import format_fields, get_logger

logger = get_logger(__name__)


def series_key(name: str, labels: dict[str, str] | None = None) -> str:
    """Metric name with sorted labels, e.g. ``requests{domain=a.com}``."""
    if not labels:
        return name
    rendered = ",".join(f"{k}={labels[k]}" for k in sorted(labels))
    return f"{name}{{{rendered}}}"


@dataclass
class TimingStats:
    """Statistics for timing measurements."""

    count: int = 0
    total_ms: float = 0.0
    min_ms: float = float("inf")
    max_ms: float = 0.0

    @property
    def avg_ms(self) -> float:
        return self.total_ms / self.count if self.count > 0 else 0.0

    def record(self, duration_ms: float) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.min_ms = min(self.min_ms, duration_ms)
        self.max_ms = max(self.max_ms, duration_ms)

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "total_ms": round(self.total_ms, 2),
            "avg_ms": round(self.avg_ms, 2),
            "min_ms": round(self.min_ms, 2) if self.count > 0 else 0.0,
            "max_ms": round(self.max_ms, 2),
        }


@dataclass
class Metrics:
    """
    Thread-safe counters, gauges and timings.

    A process-wide instance is available through Metrics.get(); tests and
    embedded pipelines can build their own.

    Example:
        >>> metrics = Metrics.get()
        >>> metrics.increment("crawl_pages_total", labels={"domain": "example.com"})
        >>> with metrics.timer("crawl_fetch_latency_ms"):
        ...     await fetch()
    """

    _counters: dict[str, float] = field(
        default_factory=lambda: defaultdict(float))
    _gauges: dict[str, float] = field(default_factory=dict)
    _timings: dict[str, TimingStats] = field(
        default_factory=lambda: defaultdict(TimingStats)
    )
    _lock: threading.Lock = field(default_factory=threading.Lock)

    @classmethod
    def get(cls) -> "Metrics":
        """Get the process-wide metrics instance."""
        global _default_metrics
        if _default_metrics is None:
            _default_metrics = cls()
        return _default_metrics

    @classmethod
    def reset(cls) -> None:
        """Drop the process-wide instance (useful for testing)."""
        global _default_metrics
        _default_metrics = None

    def increment(
        self,
        name: str,
        value: float = 1,
        labels: dict[str, str] | None = None,
    ) -> float:
        """Add ``value`` to a counter and return the new total."""
        key = series_key(name, labels)
        with self._lock:
            self._counters[key] += value
            return self._counters[key]

    def set_gauge(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        with self._lock:
            self._gauges[series_key(name, labels)] = value

    def get_counter(self, name: str, labels: dict[str, str] | None = None) -> float:
        with self._lock:
            return self._counters.get(series_key(name, labels), 0)

    def get_gauge(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        with self._lock:
            return self._gauges.get(series_key(name, labels))

    def observe(
        self,
        name: str,
        duration_ms: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        """Record a timing observation in milliseconds."""
        with self._lock:
            self._timings[series_key(name, labels)].record(duration_ms)

    def get_timing(self, name: str, labels: dict[str, str] | None = None) -> TimingStats | None:
        """Copy of the timing statistics for a series, if any."""
        with self._lock:
            stats = self._timings.get(series_key(name, labels))
            if stats is None:
                return None
            return TimingStats(
                count=stats.count,
                total_ms=stats.total_ms,
                min_ms=stats.min_ms,
                max_ms=stats.max_ms,
            )

    @contextmanager
    def timer(self, name: str, labels: dict[str, str] | None = None) -> Iterator[None]:
        """Time the enclosed block into the ``name`` series."""
        start = time.perf_counter()
        try:
            yield
        finally:
            self.observe(name, (time.perf_counter() - start) * 1000, labels)

    def snapshot(self) -> dict:
        with self._lock:
            return {
                "counters": dict(self._counters),
                "gauges": dict(self._gauges),
                "timings": {
                    name: stats.to_dict()
                    for name, stats in self._timings.items()
                },
            }

    def summary(self) -> str:
        """Human-readable dump of every series."""
        snap = self.snapshot()
        lines = ["=== Metrics Summary ==="]

        if snap["counters"]:
            lines.append("\nCounters:")
            for name, value in sorted(snap["counters"].items()):
                lines.append(f"  {name}: {value:,.0f}")

        if snap["gauges"]:
            lines.append("\nGauges:")
            for name, value in sorted(snap["gauges"].items()):
                lines.append(f"  {name}: {value:,.2f}")

        if snap["timings"]:
            lines.append("\nTimings:")
            for name, stats in sorted(snap["timings"].items()):
                lines.append(
                    f"  {name}: {stats['count']} calls, "
                    f"avg={stats['avg_ms']:.1f}ms, "
                    f"min={stats['min_ms']:.1f}ms, "
                    f"max={stats['max_ms']:.1f}ms"
                )

        return "\n".join(lines)


_default_metrics: Metrics | None = None

# Metric names ending in these suffixes are counters; the rest are gauges
_COUNTER_SUFFIXES = ("_total",)
_TIMING_SUFFIXES = ("_ms",)


class LoggingObserver:
    """
    Default Observer: metrics into Metrics, spans as timings, logs to logging.

    Example:
        >>> observer = LoggingObserver()
        >>> end = observer.start_span("crawl_run")
        >>> observer.record_metric("crawl_pages_total", 1, {"domain": "example.com"})
        >>> end()
    """

    def __init__(self, metrics: Metrics | None = None) -> None:
        self.metrics = metrics or Metrics.get()

    def record_metric(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        if name.endswith(_COUNTER_SUFFIXES):
            self.metrics.increment(name, value, labels)
        elif name.endswith(_TIMING_SUFFIXES):
            self.metrics.observe(name, value, labels)
        else:
            self.metrics.set_gauge(name, value, labels)

    def start_span(self, name: str) -> Callable[[], None]:
        start = time.perf_counter()
        logger.debug(f"Span started: {name}")

        def end() -> None:
            duration_ms = (time.perf_counter() - start) * 1000
            self.metrics.observe(f"span_{name}_ms", duration_ms)
            logger.debug(f"Span finished: {name} ({duration_ms:.1f}ms)")

        return end

    def log(self, level: str, message: str, fields: dict[str, Any] | None = None) -> None:
        numeric_level = _LEVELS.get(level.lower(), 20)
        context = format_fields(fields)
        logger.log(numeric_level, f"{message} {context}" if context else message)


_LEVELS = {"debug": 10, "info": 20, "warn": 30, "warning": 30, "error": 40, "critical": 50}


class SafeObserver:
    """
    Wraps an Observer so its failures never reach the pipeline.

    Observer errors are logged and dropped; the crawl carries on.
    """

    def __init__(self, inner: Observer) -> None:
        self.inner = inner

    def record_metric(
        self,
        name: str,
        value: float,
        labels: dict[str, str] | None = None,
    ) -> None:
        try:
            self.inner.record_metric(name, value, labels)
        except Exception as e:
            logger.warning(f"Observer failed to record {name}: {e}")

    def start_span(self, name: str) -> Callable[[], None]:
        try:
            end = self.inner.start_span(name)
        except Exception as e:
            logger.warning(f"Observer failed to start span {name}: {e}")
            return lambda: None

        def safe_end() -> None:
            try:
                end()
            except Exception as e:
                logger.warning(f"Observer failed to end span {name}: {e}")

        return safe_end

    def log(self, level: str, message: str, fields: dict[str, Any] | None = None) -> None:
        try:
            self.inner.log(level, message, fields)
        except Exception as e:
            logger.warning(f"Observer failed to log: {e}")


def as_observer(observer: Observer | None) -> SafeObserver:
    """Wrap ``observer`` (or a default LoggingObserver) in a SafeObserver."""
    if isinstance(observer, SafeObserver):
        return observer
    return SafeObserver(observer or LoggingObserver())
