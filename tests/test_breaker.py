"""
Tests for the circuit breaker call protocol.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from bulwark import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitOpenError,
    CircuitState,
    ConfigurationError,
    MetricsSnapshot,
    OperationTimeoutError,
    circuit_breaker,
)

BASE_TIME = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
CLOCK = "bulwark.circuit.breaker.get_current_time"


async def succeed():
    return "ok"


async def fail():
    raise RuntimeError("dependency down")


def make_breaker(**kwargs):
    params = dict(
        name="test",
        failure_count_threshold=3,
        failure_rate_threshold=1.0,
        minimum_sample_size=3,
        operation_timeout=timedelta(seconds=1),
        open_to_probe_delay=timedelta(seconds=60),
    )
    params.update(kwargs)
    return CircuitBreaker(CircuitBreakerOptions(**params))


async def trip(breaker, failures=3):
    for _ in range(failures):
        with pytest.raises(RuntimeError):
            await breaker.execute(fail)


class TestCircuitBreakerOptions:
    """Test construction-time validation."""

    def test_defaults(self):
        options = CircuitBreakerOptions()
        assert options.failure_count_threshold == 5
        assert options.failure_rate_threshold == 0.5
        assert options.operation_timeout == timedelta(seconds=3)
        assert options.open_to_probe_delay == timedelta(seconds=60)
        assert options.minimum_sample_size == 10
        assert options.half_open_max_probes == 1

    @pytest.mark.parametrize("field,value", [
        ("failure_count_threshold", 0),
        ("failure_count_threshold", True),
        ("failure_rate_threshold", 1.5),
        ("failure_rate_threshold", -0.1),
        ("operation_timeout", timedelta(0)),
        ("operation_timeout", 3),
        ("open_to_probe_delay", timedelta(seconds=-1)),
        ("minimum_sample_size", 0),
        ("metrics_window_size", 0),
        ("evaluation_window_size", -2),
        ("half_open_max_probes", 0),
        ("on_state_change", "not callable"),
    ])
    def test_invalid_option(self, field, value):
        """Test each constraint violation is fatal at construction."""
        with pytest.raises(ConfigurationError):
            CircuitBreakerOptions(**{field: value})

    def test_all_errors_reported(self):
        """Test every violation is listed in one error."""
        with pytest.raises(ConfigurationError) as exc_info:
            CircuitBreakerOptions(failure_count_threshold=0, minimum_sample_size=-1)

        assert len(exc_info.value.errors) == 2
        assert isinstance(exc_info.value, ValueError)

    def test_config_returns_copy(self):
        breaker = make_breaker()
        config = breaker.config()

        assert config == breaker.config()
        assert config is not breaker.config()
        assert config.failure_count_threshold == 3


class TestCircuitBreakerCalls:
    """Test calls passing through a closed circuit."""

    @pytest.mark.asyncio
    async def test_success(self):
        breaker = make_breaker()

        result = await breaker.execute(succeed)

        assert result == "ok"
        assert breaker.state == CircuitState.CLOSED
        metrics = breaker.metrics()
        assert metrics.total_calls == 1
        assert metrics.success_count == 1

    @pytest.mark.asyncio
    async def test_failure_passes_through_unchanged(self):
        """Test the operation's own exception reaches the caller."""
        breaker = make_breaker()
        error = KeyError("missing")

        async def raise_error():
            raise error

        with pytest.raises(KeyError) as exc_info:
            await breaker.execute(raise_error)

        assert exc_info.value is error
        assert breaker.metrics().failure_count == 1
        assert breaker.last_failure_time is not None

    @pytest.mark.asyncio
    async def test_sync_operation(self):
        """Test a plain callable returning a value is accepted."""
        breaker = make_breaker()
        assert await breaker.execute(lambda: 42) == 42

    @pytest.mark.asyncio
    async def test_call_binds_arguments(self):
        breaker = make_breaker()

        async def add(a, b, scale=1):
            return (a + b) * scale

        assert await breaker.call(add, 1, 2, scale=10) == 30

    @pytest.mark.asyncio
    async def test_decorator(self):
        @circuit_breaker(CircuitBreakerOptions(name="decorated"))
        async def multiply(a, b):
            return a * b

        assert await multiply(3, 4) == 12
        assert multiply.__name__ == "multiply"
        assert multiply.breaker.name == "decorated"
        assert multiply.breaker.metrics().total_calls == 1


class TestOpeningRule:
    """Test when the circuit opens."""

    @pytest.mark.asyncio
    async def test_minimum_sample_guard(self):
        """Test the circuit stays closed until enough outcomes are recorded."""
        breaker = make_breaker(failure_count_threshold=1, failure_rate_threshold=0.0,
                               minimum_sample_size=5)

        await trip(breaker, failures=4)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, failures=1)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_count_threshold(self):
        """Test the k-th failure opens the circuit and the (k-1)-th does not."""
        breaker = make_breaker()

        await breaker.execute(succeed)
        await trip(breaker, failures=2)
        assert breaker.state == CircuitState.CLOSED

        await trip(breaker, failures=1)
        assert breaker.state == CircuitState.OPEN
        assert breaker.consecutive_failures == 3

    @pytest.mark.asyncio
    async def test_rate_threshold(self):
        breaker = make_breaker(failure_count_threshold=100, failure_rate_threshold=0.5,
                               minimum_sample_size=2)

        await breaker.execute(succeed)
        await trip(breaker, failures=1)

        assert breaker.state == CircuitState.OPEN


class TestOpenAndProbe:
    """Test denial while open and recovery probes."""

    @pytest.mark.asyncio
    async def test_denied_before_delay(self):
        """Test calls before the probe delay never invoke the operation."""
        breaker = make_breaker()
        invoked = []

        async def tracked():
            invoked.append(1)
            return "ok"

        with patch(CLOCK) as mock_now:
            mock_now.return_value = BASE_TIME
            await trip(breaker)

            mock_now.return_value = BASE_TIME + timedelta(seconds=59)
            with pytest.raises(CircuitOpenError) as exc_info:
                await breaker.execute(tracked)

        assert invoked == []
        assert exc_info.value.retry_at == BASE_TIME + timedelta(seconds=60)
        assert exc_info.value.state == CircuitState.OPEN
        assert breaker.state == CircuitState.OPEN
        assert breaker.metrics().total_calls == 3

    @pytest.mark.asyncio
    async def test_next_probe_time_only_when_open(self):
        breaker = make_breaker()
        assert breaker.metrics().next_probe_time is None

        with patch(CLOCK, return_value=BASE_TIME):
            await trip(breaker)

        assert breaker.metrics().next_probe_time == BASE_TIME + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_probe_success_closes(self):
        """Test a probe after the delay runs once and closes the circuit."""
        transitions = []
        breaker = make_breaker(on_state_change=transitions.append)
        invoked = []

        async def tracked():
            invoked.append(breaker.state)
            return "recovered"

        with patch(CLOCK) as mock_now:
            mock_now.return_value = BASE_TIME
            await trip(breaker)

            mock_now.return_value = BASE_TIME + timedelta(seconds=60)
            result = await breaker.execute(tracked)

        assert result == "recovered"
        assert invoked == [CircuitState.HALF_OPEN]
        assert breaker.state == CircuitState.CLOSED
        assert [(t.from_state, t.to_state) for t in transitions] == [
            (CircuitState.CLOSED, CircuitState.OPEN),
            (CircuitState.OPEN, CircuitState.HALF_OPEN),
            (CircuitState.HALF_OPEN, CircuitState.CLOSED),
        ]

    @pytest.mark.asyncio
    async def test_probe_failure_reopens(self):
        """Test a failed probe reopens and moves the last failure time."""
        breaker = make_breaker()
        probe_time = BASE_TIME + timedelta(seconds=61)

        with patch(CLOCK) as mock_now:
            mock_now.return_value = BASE_TIME
            await trip(breaker)

            mock_now.return_value = probe_time
            with pytest.raises(RuntimeError):
                await breaker.execute(fail)

            assert breaker.state == CircuitState.OPEN
            assert breaker.last_failure_time == probe_time

            with pytest.raises(CircuitOpenError) as exc_info:
                await breaker.execute(succeed)

        assert exc_info.value.retry_at == probe_time + timedelta(seconds=60)

    @pytest.mark.asyncio
    async def test_single_probe_in_flight(self):
        """Test callers arriving during a probe are denied."""
        breaker = make_breaker()
        release = asyncio.Event()

        async def slow_probe():
            await release.wait()
            return "probe"

        with patch(CLOCK) as mock_now:
            mock_now.return_value = BASE_TIME
            await trip(breaker)

            mock_now.return_value = BASE_TIME + timedelta(seconds=60)
            probe = asyncio.ensure_future(breaker.execute(slow_probe))
            await asyncio.sleep(0)
            assert breaker.state == CircuitState.HALF_OPEN

            with pytest.raises(CircuitOpenError) as exc_info:
                await breaker.execute(succeed)

            release.set()
            assert await probe == "probe"

        assert exc_info.value.state == CircuitState.HALF_OPEN
        assert breaker.state == CircuitState.CLOSED

    @pytest.mark.asyncio
    async def test_concrete_recovery_scenario(self):
        """Test three failures open, +50ms is denied, +150ms recovers."""
        breaker = make_breaker(open_to_probe_delay=timedelta(milliseconds=100))

        await trip(breaker)
        assert breaker.state == CircuitState.OPEN

        await asyncio.sleep(0.05)
        with pytest.raises(CircuitOpenError):
            await breaker.execute(succeed)

        await asyncio.sleep(0.1)
        assert await breaker.execute(succeed) == "ok"

        assert breaker.state == CircuitState.CLOSED
        assert breaker.metrics().total_calls == 4

    @pytest.mark.asyncio
    async def test_recovery_clears_failure_history(self):
        """Test one failure after a successful recovery keeps the circuit closed."""
        breaker = make_breaker()

        with patch(CLOCK) as mock_now:
            mock_now.return_value = BASE_TIME
            await trip(breaker)

            mock_now.return_value = BASE_TIME + timedelta(seconds=60)
            await breaker.execute(succeed)
            assert breaker.state == CircuitState.CLOSED

            await trip(breaker, failures=1)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.consecutive_failures == 1
        metrics = breaker.metrics()
        assert metrics.failure_count == 4
        assert metrics.total_calls == 5


class TestTimeouts:
    """Test the timeout race inside the breaker."""

    @pytest.mark.asyncio
    async def test_timeout_counts_once(self):
        """Test a slow operation is one timeout failure even after it finishes."""
        breaker = make_breaker(operation_timeout=timedelta(milliseconds=50))
        finished = []

        async def slow():
            await asyncio.sleep(0.2)
            finished.append(True)
            return "late"

        with pytest.raises(OperationTimeoutError) as exc_info:
            await breaker.execute(slow)
        assert exc_info.value.after == timedelta(milliseconds=50)
        assert breaker.metrics().failure_count == 1

        await asyncio.sleep(0.3)

        assert finished == [True]
        metrics = breaker.metrics()
        assert metrics.failure_count == 1
        assert metrics.success_count == 0
        assert metrics.total_calls == 1

    @pytest.mark.asyncio
    async def test_timeouts_open_circuit(self):
        breaker = make_breaker(operation_timeout=timedelta(milliseconds=20), cancel_on_timeout=True)

        async def hang():
            await asyncio.sleep(10)

        for _ in range(3):
            with pytest.raises(OperationTimeoutError):
                await breaker.execute(hang)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_caller_cancellation_still_records(self):
        """Test bookkeeping completes after the caller abandons the call."""
        breaker = make_breaker(operation_timeout=timedelta(milliseconds=50))

        async def slow():
            await asyncio.sleep(0.2)

        task = asyncio.ensure_future(breaker.execute(slow))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.25)

        assert breaker.metrics().failure_count == 1


class TestFailurePredicate:
    """Test errors the failure predicate does not count."""

    @pytest.mark.asyncio
    async def test_ignored_errors_do_not_open(self):
        breaker = make_breaker(
            failure_count_threshold=1,
            minimum_sample_size=1,
            failure_predicate=lambda e: not isinstance(e, ValueError),
        )

        async def bad_input():
            raise ValueError("bad input")

        for _ in range(3):
            with pytest.raises(ValueError):
                await breaker.execute(bad_input)

        assert breaker.state == CircuitState.CLOSED
        assert breaker.last_failure_time is None
        assert breaker.consecutive_failures == 0
        assert breaker.metrics().failure_count == 3

        with pytest.raises(RuntimeError):
            await breaker.execute(fail)
        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_predicate_errors_count_as_failures(self):
        """Test a raising predicate neither masks the error nor strands the breaker."""
        def broken_predicate(error):
            raise AttributeError("classifier bug")

        breaker = make_breaker(failure_predicate=broken_predicate)
        probe_time = BASE_TIME + timedelta(seconds=60)

        with patch(CLOCK) as mock_now:
            mock_now.return_value = BASE_TIME
            await trip(breaker)
            assert breaker.state == CircuitState.OPEN

            mock_now.return_value = probe_time
            with pytest.raises(RuntimeError, match="dependency down"):
                await breaker.execute(fail)

            assert breaker.state == CircuitState.OPEN
            assert breaker.last_failure_time == probe_time
            assert breaker.metrics().total_calls == 4

            mock_now.return_value = probe_time + timedelta(seconds=60)
            assert await breaker.execute(succeed) == "ok"

        assert breaker.state == CircuitState.CLOSED


class TestResetAndExport:
    """Test reset and the metrics export."""

    @pytest.mark.asyncio
    async def test_reset_from_open(self):
        breaker = make_breaker()
        await trip(breaker)

        breaker.reset()

        assert breaker.state == CircuitState.CLOSED
        assert breaker.metrics().total_calls == 0
        assert breaker.last_failure_time is None
        assert breaker.window_stats().current_count == 0
        assert await breaker.execute(succeed) == "ok"

    @pytest.mark.asyncio
    async def test_reset_is_idempotent(self):
        breaker = make_breaker()
        await trip(breaker)

        breaker.reset()
        once = breaker.metrics()
        breaker.reset()
        twice = breaker.metrics()

        assert (once.state, once.total_calls, once.failure_count) == \
            (twice.state, twice.total_calls, twice.failure_count)
        assert breaker.consecutive_failures == 0

    def test_reset_notifies_only_on_change(self):
        transitions = []
        breaker = make_breaker(on_state_change=transitions.append)

        breaker.reset()

        assert transitions == []

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self):
        def broken_callback(transition):
            raise RuntimeError("callback failed")

        breaker = make_breaker(on_state_change=broken_callback)
        await trip(breaker)

        assert breaker.state == CircuitState.OPEN

    @pytest.mark.asyncio
    async def test_export_round_trip(self):
        """Test a parsed export matches metrics taken without intervening calls."""
        breaker = make_breaker()
        await breaker.execute(succeed)
        await trip(breaker)

        exported = json.loads(breaker.export_metrics())
        metrics = breaker.metrics()
        parsed = MetricsSnapshot.from_dict(exported["circuit_breaker"])

        assert "timestamp" in exported
        assert parsed.name == "test"
        assert (parsed.state, parsed.total_calls, parsed.success_count, parsed.failure_count) == \
            (metrics.state, metrics.total_calls, metrics.success_count, metrics.failure_count)
        assert parsed.next_probe_time == metrics.next_probe_time

    @pytest.mark.asyncio
    async def test_window_stats(self):
        breaker = make_breaker(metrics_window_size=2, failure_count_threshold=10)
        await trip(breaker, failures=2)
        await breaker.execute(succeed)

        stats = breaker.window_stats()
        assert stats.capacity == 2
        assert stats.current_count == 2
        assert stats.window_failure_rate == 0.5
