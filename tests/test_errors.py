"""
Tests for the structured error types.
"""

from datetime import datetime, timedelta, timezone

from bulwark.errors import (
    BulwarkError,
    CircuitOpenError,
    ConfigurationError,
    ErrorCode,
    ErrorSeverity,
    InvalidTransitionError,
    OperationTimeoutError,
)
from bulwark.types import CircuitState


class TestErrors:
    """Test error payloads and hierarchy."""

    def test_circuit_open_error(self):
        retry_at = datetime(2025, 1, 1, 12, 1, tzinfo=timezone.utc)
        error = CircuitOpenError("payments", retry_at=retry_at)

        assert isinstance(error, BulwarkError)
        assert error.code == ErrorCode.CIRCUIT_OPEN
        assert error.state == CircuitState.OPEN
        assert "payments" in str(error)
        assert error.to_dict()["metadata"]["retry_at"] == retry_at.isoformat()

    def test_operation_timeout_error(self):
        error = OperationTimeoutError(timedelta(milliseconds=500), circuit_name="search")

        assert isinstance(error, TimeoutError)
        assert error.after == timedelta(milliseconds=500)
        assert error.to_dict() == {
            "error": "operation_timeout",
            "error_description": "Operation protected by 'search' timed out after 0.5s",
            "error_severity": "high",
            "metadata": {"after_seconds": 0.5, "circuit_name": "search"},
        }

    def test_configuration_error(self):
        error = ConfigurationError("invalid options", errors=["a", "b"])

        assert isinstance(error, ValueError)
        assert error.errors == ["a", "b"]
        assert error.severity == ErrorSeverity.CRITICAL

    def test_invalid_transition_error(self):
        error = InvalidTransitionError(CircuitState.CLOSED, CircuitState.HALF_OPEN)

        assert isinstance(error, RuntimeError)
        assert str(error) == "Invalid state transition from closed to half_open"

    def test_cause(self):
        cause = ValueError("root")
        error = BulwarkError(ErrorCode.INVALID_CONFIGURATION, "wrapped", cause=cause)
        assert error.to_dict()["caused_by"] == "root"
