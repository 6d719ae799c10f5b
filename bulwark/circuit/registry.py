"""Circuit breaker registry for managing named circuit breaker instances.

Provides get-or-create access so each protected dependency is guarded by a
single breaker, plus bulk reset and snapshot helpers for monitoring.
"""

import dataclasses
import logging
import threading
from typing import Any, Dict, List, Optional

from .breaker import CircuitBreaker, CircuitBreakerOptions

logger = logging.getLogger(__name__)


class CircuitBreakerRegistry:
    """Process-local registry of circuit breakers keyed by name.

    Usage:
        registry = CircuitBreakerRegistry()
        payments = registry.get_or_create("payments", CircuitBreakerOptions(...))
        result = await payments.execute(lambda: client.charge(order))
    """

    def __init__(self, default_options: Optional[CircuitBreakerOptions] = None) -> None:
        """Initialize the registry.

        Args:
            default_options: Template for breakers created without explicit
                options. Its name is replaced by the requested name.
        """
        self._default_options = default_options or CircuitBreakerOptions()
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get_or_create(
        self,
        name: str,
        options: Optional[CircuitBreakerOptions] = None,
    ) -> CircuitBreaker:
        """Get the breaker registered under name, creating it if missing.

        Options are only used on creation; an existing breaker keeps its own.
        """
        with self._lock:
            breaker = self._breakers.get(name)
            if breaker is None:
                template = options or self._default_options
                breaker = CircuitBreaker(dataclasses.replace(template, name=name))
                self._breakers[name] = breaker
                logger.debug(f"Registered circuit breaker '{name}'")
            return breaker

    def get(self, name: str) -> Optional[CircuitBreaker]:
        with self._lock:
            return self._breakers.get(name)

    def remove(self, name: str) -> bool:
        """Remove a breaker; returns False when it was not registered."""
        with self._lock:
            return self._breakers.pop(name, None) is not None

    def names(self) -> List[str]:
        with self._lock:
            return sorted(self._breakers)

    def all(self) -> List[CircuitBreaker]:
        with self._lock:
            return [self._breakers[name] for name in sorted(self._breakers)]

    def reset_all(self) -> None:
        """Reset every registered breaker."""
        for breaker in self.all():
            breaker.reset()
        logger.info("All circuit breakers reset")

    def snapshot_all(self) -> Dict[str, Dict[str, Any]]:
        """Return a serializable metrics snapshot for every breaker."""
        return {breaker.name: breaker.metrics().to_dict() for breaker in self.all()}

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name in self._breakers

    def __len__(self) -> int:
        with self._lock:
            return len(self._breakers)
