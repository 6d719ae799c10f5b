"""
Bulwark Python Package

Circuit breaker for protecting asyncio callers from failing or slow dependencies.
"""

__version__ = "0.1.0"
__author__ = "Bulwark Contributors"

from .circuit import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    CircuitState,
    StateTransition,
    circuit_breaker,
)
from .errors import (
    BulwarkError,
    ConfigurationError,
    CircuitOpenError,
    OperationTimeoutError,
    InvalidTransitionError,
)
from .errors.classifier import ErrorClassifier, ErrorClassification, ErrorType
from .metrics import MetricsSnapshot, WindowStats

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerOptions",
    "CircuitBreakerRegistry",
    "CircuitState",
    "StateTransition",
    "circuit_breaker",
    "BulwarkError",
    "ConfigurationError",
    "CircuitOpenError",
    "OperationTimeoutError",
    "InvalidTransitionError",
    "ErrorClassifier",
    "ErrorClassification",
    "ErrorType",
    "MetricsSnapshot",
    "WindowStats",
]
