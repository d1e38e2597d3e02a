"""
HueSampler Metrics Collection
In-process counters, gauges and timings for session and sampling activity.
"""
import time
from collections import Counter, defaultdict, deque
from contextlib import contextmanager
from threading import Lock
from typing import Any, Deque, Dict, Iterator, List, Optional

# Most recent timings kept per operation
TIMING_WINDOW = 1000


class MetricsCollector:
    """
    Thread-safe in-process metrics.

    Counters only grow; gauges hold the last value set; timings keep a
    bounded window so a long-running service does not accumulate them.
    """

    def __init__(self, timing_window: int = TIMING_WINDOW):
        self._lock = Lock()
        self._timing_window = timing_window
        self._counters: Dict[str, int] = Counter()
        self._gauges: Dict[str, float] = {}
        self._timings: Dict[str, Deque[float]] = defaultdict(self._new_window)
        self._start_time = time.time()

    def _new_window(self) -> Deque[float]:
        return deque(maxlen=self._timing_window)

    # Counters

    def increment(self, name: str, amount: int = 1):
        with self._lock:
            self._counters[name] += amount

    def increment_session_created(self):
        self.increment("sessions_created_total")

    def increment_session_closed(self):
        self.increment("sessions_closed_total")

    def increment_sessions_expired(self, count: int):
        if count:
            self.increment("sessions_expired_total", count)

    def increment_sample_count(self, fallback_used: bool = False):
        with self._lock:
            self._counters["samples_total"] += 1
            if fallback_used:
                self._counters["sample_fallback_total"] += 1

    def increment_palette_tier(self, tier: str):
        """Count the extraction tier that produced a palette."""
        self.increment(f"palette_tier_total_{tier}")

    def increment_failure_count(self, error_code: str):
        self.increment(f"failed_total_{error_code}")

    # Gauges

    def set_gauge(self, name: str, value: float):
        with self._lock:
            self._gauges[name] = value

    # Timings

    def record_timing(self, operation: str, duration_ms: float):
        with self._lock:
            self._timings[f"{operation}_duration_ms"].append(duration_ms)

    @contextmanager
    def timed(self, operation: str) -> Iterator[None]:
        """Record the wall time of the block, in milliseconds, when it succeeds."""
        start = time.perf_counter()
        yield
        self.record_timing(operation, (time.perf_counter() - start) * 1000)

    # Reads

    def get_counters(self) -> Dict[str, int]:
        with self._lock:
            return dict(self._counters)

    def get_gauges(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._gauges)

    def get_timing_stats(self) -> Dict[str, Dict[str, float]]:
        """count/mean/min/max/p50/p95 per operation over the current window."""
        with self._lock:
            snapshot = {name: list(values) for name, values in self._timings.items() if values}

        return {
            name: {
                "count": len(values),
                "mean": sum(values) / len(values),
                "min": min(values),
                "max": max(values),
                "p50": self._percentile(values, 50),
                "p95": self._percentile(values, 95),
            }
            for name, values in snapshot.items()
        }

    def get_uptime_seconds(self) -> float:
        return time.time() - self._start_time

    def get_summary(self) -> Dict[str, Any]:
        return {
            "uptime_seconds": self.get_uptime_seconds(),
            "counters": self.get_counters(),
            "gauges": self.get_gauges(),
            "timing_stats": self.get_timing_stats(),
        }

    def reset(self):
        """Reset all metrics (for testing)."""
        with self._lock:
            self._counters.clear()
            self._gauges.clear()
            self._timings.clear()
            self._start_time = time.time()

    @staticmethod
    def _percentile(data: List[float], percentile: int) -> float:
        """Linear-interpolated percentile."""
        if not data:
            return 0.0

        ordered = sorted(data)
        k = (len(ordered) - 1) * percentile / 100
        f = int(k)
        c = k - f
        if f + 1 < len(ordered):
            return ordered[f] + c * (ordered[f + 1] - ordered[f])
        return ordered[f]


_metrics: Optional[MetricsCollector] = None


def get_metrics() -> MetricsCollector:
    """Get or create the process-wide collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def reset_metrics():
    """Reset global metrics (for testing)."""
    global _metrics
    if _metrics is not None:
        _metrics.reset()
