"""
Timeout enforcement for protected operations.

The operation and a timer run as two independent tasks; whichever finishes
first decides the outcome. When the timer wins, the operation task is either
cancelled or left to finish on its own, and its late outcome is consumed
without being reported anywhere.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from ..errors import OperationTimeoutError

logger = logging.getLogger(__name__)

Operation = Callable[[], Union[Awaitable[Any], Any]]


@dataclass
class TimeoutConfig:
    """Timeout configuration."""
    timeout: timedelta
    cancel_on_timeout: bool = False
    on_timeout: Optional[Callable[[float], None]] = None
    name: Optional[str] = None


async def invoke(operation: Operation) -> Any:
    """Call a zero-argument operation, awaiting its result when needed."""
    result = operation()
    if inspect.isawaitable(result):
        result = await result
    return result


def _discard_outcome(task: asyncio.Task) -> None:
    if task.cancelled():
        return

    error = task.exception()
    if error is not None:
        logger.debug(f"Discarded late failure of timed-out operation: {error!r}")
    else:
        logger.debug("Discarded late result of timed-out operation")


class Timeout:
    """Races an operation against a timer."""

    def __init__(self, config: TimeoutConfig):
        self.config = config

    async def execute(self, operation: Operation) -> Any:
        """
        Execute operation with timeout.

        Raises:
            OperationTimeoutError: If the timer fires before the operation ends
        """
        timeout_seconds = self.config.timeout.total_seconds()

        operation_task = asyncio.ensure_future(invoke(operation))
        timer_task = asyncio.ensure_future(asyncio.sleep(timeout_seconds))

        try:
            done, _ = await asyncio.wait(
                {operation_task, timer_task},
                return_when=asyncio.FIRST_COMPLETED
            )
        except asyncio.CancelledError:
            operation_task.cancel()
            timer_task.cancel()
            raise

        if operation_task in done:
            timer_task.cancel()
            return operation_task.result()

        if self.config.cancel_on_timeout:
            operation_task.cancel()
        operation_task.add_done_callback(_discard_outcome)

        if self.config.on_timeout:
            self.config.on_timeout(timeout_seconds)

        raise OperationTimeoutError(self.config.timeout, circuit_name=self.config.name)
