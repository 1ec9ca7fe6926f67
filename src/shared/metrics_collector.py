"""
In-process metrics for the Bookstore inventory service.

Counters and timers for cache and store activity, exposed through the
``/metrics`` endpoint as a JSON summary.
"""

import time
import threading
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Tuple, Union
from enum import Enum

from .logging_config import get_logger


class MetricType(str, Enum):
    """Types of metrics."""
    COUNTER = "counter"
    TIMER = "timer"


LabelKey = Tuple[Tuple[str, str], ...]


def _label_key(labels: Dict[str, Any]) -> LabelKey:
    return tuple(sorted((k, str(v)) for k, v in labels.items()))


def _label_str(key: LabelKey) -> str:
    return ",".join(f"{k}={v}" for k, v in key)


class Counter:
    """Counter metric that only increases, tracked per label set."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self._values: Dict[LabelKey, Union[int, float]] = {}
        self._lock = threading.Lock()

    def increment(self, amount: Union[int, float] = 1, **labels):
        """Increment the counter."""
        key = _label_key(labels)
        with self._lock:
            self._values[key] = self._values.get(key, 0) + amount

    def get_value(self, **labels) -> Union[int, float]:
        """Get the value for a label set, or the total when no labels are given."""
        with self._lock:
            if labels:
                return self._values.get(_label_key(labels), 0)
            return sum(self._values.values())

    def reset(self):
        with self._lock:
            self._values.clear()

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                'type': MetricType.COUNTER.value,
                'description': self.description,
                'total': sum(self._values.values()),
                'values': {_label_str(k) or 'total': v for k, v in self._values.items()},
            }


class Timer:
    """Timer metric for measuring durations."""

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.description = description
        self.count = 0
        self.total_seconds = 0.0
        self.min_seconds: Optional[float] = None
        self.max_seconds: Optional[float] = None
        self._lock = threading.Lock()

    def time(self):
        """Context manager for timing operations."""
        return TimerContext(self)

    def record(self, duration: float):
        """Record a duration."""
        with self._lock:
            self.count += 1
            self.total_seconds += duration
            self.min_seconds = duration if self.min_seconds is None else min(self.min_seconds, duration)
            self.max_seconds = duration if self.max_seconds is None else max(self.max_seconds, duration)

    def reset(self):
        with self._lock:
            self.count = 0
            self.total_seconds = 0.0
            self.min_seconds = None
            self.max_seconds = None

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            avg = self.total_seconds / self.count if self.count else 0.0
            return {
                'type': MetricType.TIMER.value,
                'description': self.description,
                'count': self.count,
                'avg_ms': round(avg * 1000, 3),
                'min_ms': round(self.min_seconds * 1000, 3) if self.min_seconds is not None else None,
                'max_ms': round(self.max_seconds * 1000, 3) if self.max_seconds is not None else None,
            }


class TimerContext:
    """Context manager for timing operations."""

    def __init__(self, timer: Timer):
        self.timer = timer
        self.start_time = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.start_time is not None:
            self.timer.record(time.perf_counter() - self.start_time)


class MetricsCollector:
    """Central metrics registry."""

    _instance: Optional['MetricsCollector'] = None
    _lock = threading.Lock()

    def __init__(self):
        self.logger = get_logger(__name__, 'metrics_collector')
        self.counters: Dict[str, Counter] = {}
        self.timers: Dict[str, Timer] = {}
        self.start_time = datetime.now(timezone.utc)

    @classmethod
    def get_instance(cls) -> 'MetricsCollector':
        """Get singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls()
        return cls._instance

    def get_counter(self, name: str, description: str = "") -> Counter:
        """Get or create a counter."""
        if name not in self.counters:
            self.counters[name] = Counter(name, description)
        return self.counters[name]

    def get_timer(self, name: str, description: str = "") -> Timer:
        """Get or create a timer."""
        if name not in self.timers:
            self.timers[name] = Timer(name, description)
        return self.timers[name]

    def reset(self) -> None:
        """Reset every registered metric to zero."""
        for counter in self.counters.values():
            counter.reset()
        for timer in self.timers.values():
            timer.reset()
        self.logger.debug("Metrics reset", operation="reset")

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Get summary of all metrics."""
        metrics: Dict[str, Any] = {}
        for name, counter in self.counters.items():
            metrics[name] = counter.to_dict()
        for name, timer in self.timers.items():
            metrics[name] = timer.to_dict()

        return {
            'collected_since': self.start_time.isoformat(),
            'total_metrics': len(metrics),
            'metrics': metrics,
        }


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector instance."""
    return MetricsCollector.get_instance()
