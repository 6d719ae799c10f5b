# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Structured error handling for bulwark.

Every error raised by the library itself derives from BulwarkError. The
operation's own exceptions are never wrapped: they reach the caller unchanged.
"""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from ..types.common import CircuitState


class ErrorCode(Enum):
    """Structured error codes for bulwark."""

    # Construction errors
    INVALID_CONFIGURATION = "invalid_configuration"

    # Call admission errors
    CIRCUIT_OPEN = "circuit_open"

    # Call execution errors
    OPERATION_TIMEOUT = "operation_timeout"

    # Internal invariant violations
    INVALID_TRANSITION = "invalid_transition"


class ErrorSeverity(Enum):
    """Error severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class BulwarkError(Exception):
    """
    Base exception class for all bulwark errors.

    Provides structured error information with an error code, a severity
    level and free-form metadata describing the breaker involved.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        metadata: Optional[Dict[str, Any]] = None,
        cause: Optional[BaseException] = None
    ):
        self.code = code
        self.message = message
        self.severity = severity
        self.metadata = metadata or {}
        self.cause = cause

        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary representation."""
        result = {
            "error": self.code.value,
            "error_description": self.message,
            "error_severity": self.severity.value,
        }

        if self.metadata:
            result["metadata"] = dict(self.metadata)

        if self.cause:
            result["caused_by"] = str(self.cause)

        return result


class ConfigurationError(BulwarkError, ValueError):
    """Invalid breaker configuration, raised once at construction time."""

    def __init__(self, message: str, errors: Optional[List[str]] = None, **kwargs):
        self.errors = list(errors) if errors else [message]
        super().__init__(
            code=ErrorCode.INVALID_CONFIGURATION,
            message=message,
            severity=ErrorSeverity.CRITICAL,
            metadata={"errors": self.errors},
            **kwargs
        )


class CircuitOpenError(BulwarkError):
    """Call denied without invoking the operation."""

    def __init__(
        self,
        circuit_name: str,
        retry_at: Optional[datetime] = None,
        state: CircuitState = CircuitState.OPEN,
        message: Optional[str] = None
    ):
        self.circuit_name = circuit_name
        self.retry_at = retry_at
        self.state = state

        if message is None:
            message = f"Circuit breaker '{circuit_name}' is {state.value}"
            if retry_at is not None:
                message += f", retry after {retry_at.isoformat()}"

        super().__init__(
            code=ErrorCode.CIRCUIT_OPEN,
            message=message,
            severity=ErrorSeverity.HIGH,
            metadata={
                "circuit_name": circuit_name,
                "state": state.value,
                "retry_at": retry_at.isoformat() if retry_at else None,
            },
        )


class OperationTimeoutError(BulwarkError, TimeoutError):
    """Operation exceeded its timeout; counted as a failure."""

    def __init__(self, after: timedelta, circuit_name: Optional[str] = None):
        self.after = after
        self.circuit_name = circuit_name

        seconds = after.total_seconds()
        if circuit_name:
            message = f"Operation protected by '{circuit_name}' timed out after {seconds}s"
        else:
            message = f"Operation timed out after {seconds}s"

        metadata = {"after_seconds": seconds}
        if circuit_name:
            metadata["circuit_name"] = circuit_name

        super().__init__(
            code=ErrorCode.OPERATION_TIMEOUT,
            message=message,
            severity=ErrorSeverity.HIGH,
            metadata=metadata,
        )


class InvalidTransitionError(BulwarkError, RuntimeError):
    """Illegal state change requested from the state machine."""

    def __init__(self, from_state: CircuitState, to_state: CircuitState):
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            code=ErrorCode.INVALID_TRANSITION,
            message=f"Invalid state transition from {from_state.value} to {to_state.value}",
            severity=ErrorSeverity.CRITICAL,
            metadata={"from_state": from_state.value, "to_state": to_state.value},
        )


__all__ = [
    'ErrorCode',
    'ErrorSeverity',
    'BulwarkError',
    'ConfigurationError',
    'CircuitOpenError',
    'OperationTimeoutError',
    'InvalidTransitionError',
]
