"""
Common value types shared across the bulwark packages.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


class CircuitState(Enum):
    """Circuit breaker states."""
    CLOSED = "closed"        # Normal operation, calls allowed
    OPEN = "open"            # Failure mode, calls denied
    HALF_OPEN = "half_open"  # Probing recovery, a single trial call allowed


@dataclass(frozen=True)
class OutcomeRecord:
    """
    Outcome of one protected call.

    ``succeeded`` reports whether the operation returned normally, while
    ``classified_as_failure`` reports whether the outcome counts against the
    dependency when deciding to open the circuit. The two differ only for
    exceptions the failure predicate chose not to count.
    """
    timestamp: datetime
    succeeded: bool
    latency: float = 0.0
    classified_as_failure: bool = False

    @classmethod
    def success(cls, timestamp: datetime, latency: float = 0.0) -> "OutcomeRecord":
        return cls(timestamp=timestamp, succeeded=True, latency=latency)

    @classmethod
    def failure(cls, timestamp: datetime, latency: float = 0.0,
                counted: bool = True) -> "OutcomeRecord":
        return cls(
            timestamp=timestamp,
            succeeded=False,
            latency=latency,
            classified_as_failure=counted,
        )
