"""
Outcome aggregation for circuit breakers.

This module keeps lifetime call counters, a bounded reporting window of
recent outcomes and a separate latency ring used for the rolling average.
Lifetime totals are O(1) counters; everything else is bounded by the window
sizes, independent of call volume.
"""

import json
import logging
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Deque, Dict, Optional

from .window import BoundedHistory
from ..common.utils import format_timestamp, get_current_time, parse_timestamp
from ..errors import ConfigurationError
from ..types.common import CircuitState, OutcomeRecord

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE = 100
DEFAULT_LATENCY_WINDOW_SIZE = 100


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time view of a circuit breaker's metrics."""
    state: CircuitState
    total_calls: int
    success_count: int
    failure_count: int
    failure_rate: float
    average_latency: float
    last_transition_time: datetime
    next_probe_time: Optional[datetime] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary with a stable key set."""
        return {
            'name': self.name,
            'state': self.state.value,
            'total_calls': self.total_calls,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'failure_rate': self.failure_rate,
            'average_latency': self.average_latency,
            'last_transition_time': format_timestamp(self.last_transition_time),
            'next_probe_time': format_timestamp(self.next_probe_time),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetricsSnapshot":
        """Rebuild a snapshot from the output of to_dict."""
        return cls(
            state=CircuitState(data['state']),
            total_calls=int(data['total_calls']),
            success_count=int(data['success_count']),
            failure_count=int(data['failure_count']),
            failure_rate=float(data['failure_rate']),
            average_latency=float(data['average_latency']),
            last_transition_time=parse_timestamp(data['last_transition_time']),
            next_probe_time=parse_timestamp(data.get('next_probe_time')),
            name=data.get('name'),
        )


@dataclass(frozen=True)
class WindowStats:
    """Statistics computed purely from the bounded reporting window."""
    capacity: int
    current_count: int
    window_failure_rate: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            'capacity': self.capacity,
            'current_count': self.current_count,
            'window_failure_rate': self.window_failure_rate,
        }


class MetricsCollector:
    """Collects call outcomes for one circuit breaker."""

    def __init__(self,
                 window_size: int = DEFAULT_WINDOW_SIZE,
                 latency_window_size: int = DEFAULT_LATENCY_WINDOW_SIZE,
                 name: Optional[str] = None):
        """
        Initialize metrics collector.

        Args:
            window_size: Capacity of the reporting window
            latency_window_size: Number of recent latencies averaged
            name: Breaker name attached to snapshots
        """
        if isinstance(latency_window_size, bool) or not isinstance(latency_window_size, int) \
                or latency_window_size <= 0:
            raise ConfigurationError(
                f"latency_window_size must be a positive integer, got {latency_window_size!r}"
            )

        self.name = name
        self._window: BoundedHistory[OutcomeRecord] = BoundedHistory(window_size)
        self._latencies: Deque[float] = deque(maxlen=latency_window_size)
        self._total_calls = 0
        self._success_count = 0
        self._failure_count = 0
        self._lock = threading.Lock()

    def record_success(self, latency: float) -> None:
        """Record a successful call."""
        with self._lock:
            self._total_calls += 1
            self._success_count += 1
            self._latencies.append(latency)
            self._window.add(OutcomeRecord.success(get_current_time(), latency))

        logger.debug(f"Recorded success for '{self.name}' ({latency:.3f}s)")

    def record_failure(self, latency: float, counted: bool = True) -> None:
        """
        Record a failed call.

        Args:
            latency: Call duration in seconds
            counted: Whether the failure predicate counted the error
        """
        with self._lock:
            self._total_calls += 1
            self._failure_count += 1
            self._latencies.append(latency)
            self._window.add(OutcomeRecord.failure(get_current_time(), latency, counted))

        logger.debug(f"Recorded failure for '{self.name}' ({latency:.3f}s, counted={counted})")

    def snapshot(self,
                 current_state: CircuitState,
                 last_transition_time: datetime,
                 next_probe_time: Optional[datetime] = None) -> MetricsSnapshot:
        """Build a fresh metrics snapshot from the current counters."""
        with self._lock:
            total = self._total_calls
            successes = self._success_count
            failures = self._failure_count
            latencies = list(self._latencies)

        return MetricsSnapshot(
            state=current_state,
            total_calls=total,
            success_count=successes,
            failure_count=failures,
            failure_rate=failures / total if total else 0.0,
            average_latency=sum(latencies) / len(latencies) if latencies else 0.0,
            last_transition_time=last_transition_time,
            next_probe_time=next_probe_time,
            name=self.name,
        )

    def export_json(self,
                    current_state: CircuitState,
                    last_transition_time: datetime,
                    next_probe_time: Optional[datetime] = None) -> str:
        """Export the snapshot as JSON for external monitoring systems."""
        snapshot = self.snapshot(current_state, last_transition_time, next_probe_time)
        return json.dumps(
            {
                'timestamp': get_current_time().isoformat(),
                'circuit_breaker': snapshot.to_dict(),
            },
            indent=2,
        )

    def window_stats(self) -> WindowStats:
        """Statistics over the bounded reporting window."""
        records = self._window.all()
        failures = sum(1 for record in records if not record.succeeded)

        return WindowStats(
            capacity=self._window.capacity(),
            current_count=len(records),
            window_failure_rate=failures / len(records) if records else 0.0,
        )

    def reset(self) -> None:
        """Zero all lifetime counters and clear both windows."""
        with self._lock:
            self._total_calls = 0
            self._success_count = 0
            self._failure_count = 0
            self._latencies.clear()
            self._window.clear()
