"""
Failure evaluation: decides from recent outcomes whether to open a circuit.
"""

import logging
import threading
from typing import Optional

from ..common.utils import get_current_time
from ..metrics.window import BoundedHistory
from ..types.common import OutcomeRecord

logger = logging.getLogger(__name__)


class FailureEvaluator:
    """
    Tracks recent outcomes in a bounded window and applies the open rule.

    The circuit should open once the window holds at least
    ``minimum_sample_size`` outcomes and either the failure count reaches
    ``failure_count_threshold`` or the failure rate reaches
    ``failure_rate_threshold``.
    """

    def __init__(self,
                 failure_count_threshold: int,
                 failure_rate_threshold: float,
                 minimum_sample_size: int,
                 window_size: Optional[int] = None):
        self.failure_count_threshold = failure_count_threshold
        self.failure_rate_threshold = failure_rate_threshold
        self.minimum_sample_size = minimum_sample_size

        # Defaults to twice the minimum sample size
        self._window: BoundedHistory[OutcomeRecord] = BoundedHistory(
            window_size or minimum_sample_size * 2
        )
        self._consecutive_failures = 0
        self._lock = threading.Lock()

    def record_success(self, latency: float = 0.0) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._window.add(OutcomeRecord.success(get_current_time(), latency))

    def record_failure(self, latency: float = 0.0) -> None:
        with self._lock:
            self._consecutive_failures += 1
            self._window.add(OutcomeRecord.failure(get_current_time(), latency))

    def record_ignored(self, latency: float = 0.0) -> None:
        """Record an error that the failure predicate chose not to count."""
        with self._lock:
            self._window.add(OutcomeRecord.failure(get_current_time(), latency, counted=False))

    def should_open(self) -> bool:
        records = self._window.all()

        # Not enough evidence yet
        if len(records) < self.minimum_sample_size:
            return False

        failures = sum(1 for record in records if record.classified_as_failure)
        rate = failures / len(records)

        if failures >= self.failure_count_threshold or rate >= self.failure_rate_threshold:
            logger.debug(
                f"Open threshold reached: {failures} failures in {len(records)} calls "
                f"(rate {rate:.2f})"
            )
            return True
        return False

    def failure_rate(self) -> float:
        records = self._window.all()
        if not records:
            return 0.0
        return sum(1 for record in records if record.classified_as_failure) / len(records)

    def call_count(self) -> int:
        return self._window.size()

    def window_capacity(self) -> int:
        return self._window.capacity()

    def consecutive_failures(self) -> int:
        with self._lock:
            return self._consecutive_failures

    def reset(self) -> None:
        with self._lock:
            self._consecutive_failures = 0
            self._window.clear()
