"""
Circuit state management with validated transitions.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Tuple

from ..common.utils import get_current_time
from ..errors import InvalidTransitionError
from ..types.common import CircuitState

logger = logging.getLogger(__name__)

VALID_TRANSITIONS: Dict[CircuitState, FrozenSet[CircuitState]] = {
    CircuitState.CLOSED: frozenset({CircuitState.OPEN}),
    CircuitState.OPEN: frozenset({CircuitState.HALF_OPEN}),
    CircuitState.HALF_OPEN: frozenset({CircuitState.CLOSED, CircuitState.OPEN}),
}

MAX_TRANSITION_HISTORY = 100


@dataclass(frozen=True)
class StateTransition:
    """Circuit breaker state transition."""
    from_state: CircuitState
    to_state: CircuitState
    timestamp: datetime
    reason: str = ""


class StateMachine:
    """
    Owns the single circuit state of a breaker.

    State and transition timestamp always change together under one lock,
    so readers never observe a state without its matching timestamp.
    """

    def __init__(self):
        self._state = CircuitState.CLOSED
        self._last_transition_time = get_current_time()
        self._transitions: List[StateTransition] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    @property
    def last_transition_time(self) -> datetime:
        with self._lock:
            return self._last_transition_time

    def snapshot(self) -> Tuple[CircuitState, datetime]:
        """Return the state together with its transition timestamp."""
        with self._lock:
            return self._state, self._last_transition_time

    def can_transition(self, target: CircuitState) -> bool:
        with self._lock:
            return target == self._state or target in VALID_TRANSITIONS[self._state]

    def transition_to(self, target: CircuitState, reason: str = "") -> Optional[StateTransition]:
        """
        Move to ``target``.

        Returns:
            The recorded transition, or None when already in ``target``

        Raises:
            InvalidTransitionError: If ``target`` is not a legal successor
        """
        with self._lock:
            current = self._state
            if target == current:
                return None

            if target not in VALID_TRANSITIONS[current]:
                raise InvalidTransitionError(current, target)

            now = get_current_time()
            self._state = target
            self._last_transition_time = now

            transition = StateTransition(
                from_state=current,
                to_state=target,
                timestamp=now,
                reason=reason,
            )
            self._record_transition(transition)

        logger.debug(f"State changed {current.value} -> {target.value}: {reason}")
        return transition

    def reset(self) -> StateTransition:
        """Force the state to closed, bypassing transition validation."""
        with self._lock:
            previous = self._state
            now = get_current_time()
            self._state = CircuitState.CLOSED
            self._last_transition_time = now

            transition = StateTransition(
                from_state=previous,
                to_state=CircuitState.CLOSED,
                timestamp=now,
                reason="Manual reset",
            )
            self._record_transition(transition)
            return transition

    def get_transitions(self) -> List[StateTransition]:
        """Get state transition history, oldest first."""
        with self._lock:
            return self._transitions.copy()

    def _record_transition(self, transition: StateTransition) -> None:
        self._transitions.append(transition)

        # Keep only recent transitions
        if len(self._transitions) > MAX_TRANSITION_HISTORY:
            self._transitions = self._transitions[-(MAX_TRANSITION_HISTORY // 2):]
