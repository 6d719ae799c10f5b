# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package circuit provides the circuit breaker decision engine.

This package implements the circuit breaker pattern to protect callers from
failing or slow dependencies:
- Circuit state management (closed, open, half-open) with validated transitions
- Failure evaluation over a bounded window (count or rate, minimum sample guard)
- Timeout-raced call execution with automatic recovery probes
- Named breaker registry
"""

from .state import (
    StateMachine,
    StateTransition,
    VALID_TRANSITIONS,
)

from .failure import FailureEvaluator

from .breaker import (
    CircuitBreaker,
    CircuitBreakerOptions,
    circuit_breaker,
)

from .registry import CircuitBreakerRegistry

from ..types.common import CircuitState

__all__ = [
    # Core circuit breaker
    'CircuitBreaker',
    'CircuitBreakerOptions',
    'CircuitBreakerRegistry',

    # State management
    'CircuitState',
    'StateMachine',
    'StateTransition',
    'VALID_TRANSITIONS',

    # Failure evaluation
    'FailureEvaluator',

    # Decorators
    'circuit_breaker',
]
