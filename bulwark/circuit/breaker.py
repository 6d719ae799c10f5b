"""
Circuit breaker implementation for protecting callers from failing or slow
dependencies.
"""

import asyncio
import dataclasses
import functools
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional

from .failure import FailureEvaluator
from .state import StateMachine, StateTransition
from ..common.utils import get_current_time
from ..errors import CircuitOpenError, ConfigurationError, OperationTimeoutError
from ..metrics.collector import (
    DEFAULT_LATENCY_WINDOW_SIZE,
    DEFAULT_WINDOW_SIZE,
    MetricsCollector,
    MetricsSnapshot,
    WindowStats,
)
from ..resilience.timeout import Operation, Timeout, TimeoutConfig
from ..types.common import CircuitState

logger = logging.getLogger(__name__)


def _is_positive_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def _is_positive_duration(value: Any) -> bool:
    return isinstance(value, timedelta) and value > timedelta(0)


@dataclass(frozen=True)
class CircuitBreakerOptions:
    """Circuit breaker configuration options."""
    name: str = "default"
    failure_count_threshold: int = 5
    failure_rate_threshold: float = 0.5
    operation_timeout: timedelta = field(default_factory=lambda: timedelta(seconds=3))
    open_to_probe_delay: timedelta = field(default_factory=lambda: timedelta(seconds=60))
    minimum_sample_size: int = 10
    metrics_window_size: int = DEFAULT_WINDOW_SIZE
    latency_window_size: int = DEFAULT_LATENCY_WINDOW_SIZE
    evaluation_window_size: Optional[int] = None
    half_open_max_probes: int = 1
    cancel_on_timeout: bool = False
    failure_predicate: Optional[Callable[[BaseException], bool]] = None
    on_state_change: Optional[Callable[[StateTransition], None]] = None

    def __post_init__(self):
        errors = self.validate()
        if errors:
            raise ConfigurationError(
                f"Invalid circuit breaker options for '{self.name}': {'; '.join(errors)}",
                errors=errors
            )

    def validate(self) -> List[str]:
        """Return every constraint violation, empty when valid."""
        errors = []

        if not _is_positive_int(self.failure_count_threshold):
            errors.append("failure_count_threshold must be a positive integer")

        rate = self.failure_rate_threshold
        if isinstance(rate, bool) or not isinstance(rate, (int, float)) or not 0 <= rate <= 1:
            errors.append("failure_rate_threshold must be between 0 and 1")

        if not _is_positive_duration(self.operation_timeout):
            errors.append("operation_timeout must be a positive timedelta")

        if not _is_positive_duration(self.open_to_probe_delay):
            errors.append("open_to_probe_delay must be a positive timedelta")

        if not _is_positive_int(self.minimum_sample_size):
            errors.append("minimum_sample_size must be a positive integer")

        if not _is_positive_int(self.metrics_window_size):
            errors.append("metrics_window_size must be a positive integer")

        if not _is_positive_int(self.latency_window_size):
            errors.append("latency_window_size must be a positive integer")

        if self.evaluation_window_size is not None and not _is_positive_int(self.evaluation_window_size):
            errors.append("evaluation_window_size must be a positive integer")

        if not _is_positive_int(self.half_open_max_probes):
            errors.append("half_open_max_probes must be a positive integer")

        if self.failure_predicate is not None and not callable(self.failure_predicate):
            errors.append("failure_predicate must be callable")

        if self.on_state_change is not None and not callable(self.on_state_change):
            errors.append("on_state_change must be callable")

        return errors


class CircuitBreaker:
    """
    Circuit breaker wrapping asynchronous operations.

    States:
    - CLOSED: Normal operation, all calls allowed
    - OPEN: Failure mode, calls denied until the probe delay has elapsed
    - HALF_OPEN: Probing recovery, a single trial call allowed

    Each call is checked for admission, raced against the operation timeout
    and its outcome recorded. Bookkeeping runs in its own task so it still
    completes when the caller abandons the call.
    """

    def __init__(self, options: Optional[CircuitBreakerOptions] = None):
        self._options = options or CircuitBreakerOptions()

        self._state_machine = StateMachine()
        self._evaluator = FailureEvaluator(
            failure_count_threshold=self._options.failure_count_threshold,
            failure_rate_threshold=self._options.failure_rate_threshold,
            minimum_sample_size=self._options.minimum_sample_size,
            window_size=self._options.evaluation_window_size,
        )
        self._collector = MetricsCollector(
            window_size=self._options.metrics_window_size,
            latency_window_size=self._options.latency_window_size,
            name=self._options.name,
        )
        self._timeout = Timeout(TimeoutConfig(
            timeout=self._options.operation_timeout,
            cancel_on_timeout=self._options.cancel_on_timeout,
            name=self._options.name,
        ))
        self._last_failure_time: Optional[datetime] = None
        self._probes_in_flight = 0
        self._lock = threading.RLock()

        logger.info(f"Circuit breaker '{self.name}' initialized")

    @property
    def name(self) -> str:
        """Get circuit breaker name."""
        return self._options.name

    @property
    def state(self) -> CircuitState:
        """Get current state."""
        return self._state_machine.state

    @property
    def last_failure_time(self) -> Optional[datetime]:
        with self._lock:
            return self._last_failure_time

    @property
    def consecutive_failures(self) -> int:
        return self._evaluator.consecutive_failures()

    def config(self) -> CircuitBreakerOptions:
        """Return a copy of the construction options."""
        return dataclasses.replace(self._options)

    async def execute(self, operation: Operation) -> Any:
        """
        Execute an operation with circuit breaker protection.

        Args:
            operation: Zero-argument callable returning an awaitable (or a value)

        Returns:
            The operation's result

        Raises:
            CircuitOpenError: If the circuit denies the call
            OperationTimeoutError: If the operation exceeds operation_timeout
            Exception: Whatever the operation itself raised
        """
        is_probe = self._admit()

        call = asyncio.ensure_future(self._run_protected(operation, is_probe))
        try:
            return await asyncio.shield(call)
        except asyncio.CancelledError:
            if not call.done():
                logger.debug(f"Caller abandoned call through '{self.name}', bookkeeping continues")
                call.add_done_callback(_consume_outcome)
            raise

    async def call(self, func: Callable, *args, **kwargs) -> Any:
        """Execute function with arguments under circuit breaker protection."""
        return await self.execute(functools.partial(func, *args, **kwargs))

    def metrics(self) -> MetricsSnapshot:
        """Get current metrics snapshot."""
        with self._lock:
            state, last_transition_time = self._state_machine.snapshot()
            return self._collector.snapshot(
                state, last_transition_time, self._next_probe_time(state)
            )

    def export_metrics(self) -> str:
        """Export current metrics as JSON with an export timestamp."""
        with self._lock:
            state, last_transition_time = self._state_machine.snapshot()
            return self._collector.export_json(
                state, last_transition_time, self._next_probe_time(state)
            )

    def window_stats(self) -> WindowStats:
        """Get reporting window statistics."""
        return self._collector.window_stats()

    def reset(self) -> None:
        """Reset circuit breaker to closed state and clear all history."""
        with self._lock:
            transition = self._state_machine.reset()
            self._evaluator.reset()
            self._collector.reset()
            self._last_failure_time = None
            self._probes_in_flight = 0

        logger.info(f"Circuit breaker '{self.name}' manually reset")
        if transition.from_state != transition.to_state:
            self._notify(transition)

    def get_transitions(self) -> List[StateTransition]:
        """Get state transition history."""
        return self._state_machine.get_transitions()

    def _admit(self) -> bool:
        """Decide whether a call may proceed; returns True for probe calls."""
        with self._lock:
            state = self._state_machine.state

            if state == CircuitState.CLOSED:
                return False

            if state == CircuitState.OPEN:
                retry_at = self._next_probe_time(state)
                if retry_at is not None and get_current_time() < retry_at:
                    logger.debug(f"Circuit breaker '{self.name}' denied call until {retry_at.isoformat()}")
                    raise CircuitOpenError(self.name, retry_at=retry_at)

                self._transition(CircuitState.HALF_OPEN, "Probe delay elapsed, attempting recovery")
                self._probes_in_flight = 1
                return True

            # HALF_OPEN: a probe is already being evaluated
            if self._probes_in_flight < self._options.half_open_max_probes:
                self._probes_in_flight += 1
                return True

            retry_at = get_current_time() + self._options.operation_timeout
            logger.debug(f"Circuit breaker '{self.name}' denied call while probe in flight")
            raise CircuitOpenError(self.name, retry_at=retry_at, state=CircuitState.HALF_OPEN)

    async def _run_protected(self, operation: Operation, is_probe: bool) -> Any:
        start_time = time.monotonic()

        try:
            result = await self._timeout.execute(operation)
        except OperationTimeoutError as e:
            self._on_failure(e, time.monotonic() - start_time, counted=True, is_probe=is_probe)
            raise
        except Exception as e:
            self._on_failure(e, time.monotonic() - start_time, counted=self._is_counted(e),
                             is_probe=is_probe)
            raise
        except BaseException:
            self._release_probe(is_probe)
            raise

        self._on_success(time.monotonic() - start_time, is_probe=is_probe)
        return result

    def _is_counted(self, error: Exception) -> bool:
        predicate = self._options.failure_predicate
        if predicate is None:
            return True
        try:
            return bool(predicate(error))
        except Exception as e:
            logger.error(f"Failure predicate of '{self.name}' raised {e!r}, counting {error!r} as a failure")
            return True

    def _on_success(self, latency: float, is_probe: bool) -> None:
        """Handle successful execution."""
        with self._lock:
            self._release_probe(is_probe)
            self._collector.record_success(latency)
            self._evaluator.record_success(latency)

            if self._state_machine.state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.CLOSED, "Probe succeeded, recovery complete")

    def _on_failure(self, error: Exception, latency: float, counted: bool, is_probe: bool) -> None:
        """Handle failed execution."""
        with self._lock:
            self._release_probe(is_probe)
            self._collector.record_failure(latency, counted=counted)

            if not counted:
                self._evaluator.record_ignored(latency)
                if self._state_machine.state == CircuitState.HALF_OPEN:
                    self._transition(CircuitState.CLOSED, "Probe reached a responsive dependency")
                logger.debug(f"Circuit breaker '{self.name}' ignored failure: {error!r}")
                return

            self._evaluator.record_failure(latency)
            self._last_failure_time = get_current_time()

            state = self._state_machine.state
            if state == CircuitState.HALF_OPEN:
                self._transition(CircuitState.OPEN, "Probe failed")
            elif self._evaluator.should_open():
                self._transition(
                    CircuitState.OPEN,
                    f"Failure threshold exceeded ({self._evaluator.consecutive_failures()} consecutive failures)"
                )

        logger.warning(f"Circuit breaker '{self.name}' recorded failure: {error!r} (time: {latency:.3f}s)")

    def _release_probe(self, is_probe: bool) -> None:
        if is_probe:
            with self._lock:
                self._probes_in_flight = max(0, self._probes_in_flight - 1)

    def _transition(self, target: CircuitState, reason: str) -> None:
        transition = self._state_machine.transition_to(target, reason)
        if transition is None:
            return

        if target == CircuitState.OPEN:
            self._probes_in_flight = 0
            logger.warning(f"Circuit breaker '{self.name}' opened: {reason}")
        elif target == CircuitState.HALF_OPEN:
            logger.info(f"Circuit breaker '{self.name}' half-opened: {reason}")
        else:
            self._evaluator.reset()
            logger.info(f"Circuit breaker '{self.name}' closed: {reason}")

        self._notify(transition)

    def _notify(self, transition: StateTransition) -> None:
        if self._options.on_state_change:
            try:
                self._options.on_state_change(transition)
            except Exception as e:
                logger.error(f"State change callback failed: {e}")

    def _next_probe_time(self, state: CircuitState) -> Optional[datetime]:
        if state != CircuitState.OPEN or self._last_failure_time is None:
            return None
        return self._last_failure_time + self._options.open_to_probe_delay


def _consume_outcome(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()


def circuit_breaker(options: Optional[CircuitBreakerOptions] = None):
    """Decorator for circuit breaker protection of coroutine functions."""
    breaker = CircuitBreaker(options)

    def decorator(func: Callable):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            return await breaker.call(func, *args, **kwargs)

        wrapper.breaker = breaker
        return wrapper

    return decorator
