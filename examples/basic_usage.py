"""
Basic circuit breaker usage example.

This example demonstrates the fundamental breaker operations:
- Protecting a flaky coroutine
- Opening the circuit after repeated failures
- Fast failure while open
- Recovery through a probe call
"""

import asyncio
import logging
import random
from datetime import timedelta

from bulwark import (
    CircuitBreaker,
    CircuitBreakerOptions,
    CircuitOpenError,
    OperationTimeoutError,
)


class FlakyInventoryService:
    """Simulated dependency that can be switched between healthy and failing."""

    def __init__(self):
        self.healthy = True

    async def fetch_stock(self, sku: str) -> int:
        await asyncio.sleep(0.01)
        if not self.healthy:
            raise ConnectionError(f"inventory backend refused request for {sku}")
        return random.randint(0, 100)


async def basic_example():
    """Demonstrate basic circuit breaker usage"""
    print("Basic Circuit Breaker Example")
    print("=" * 30)

    # 1. Create the breaker
    breaker = CircuitBreaker(CircuitBreakerOptions(
        name="inventory",
        failure_count_threshold=3,
        minimum_sample_size=3,
        operation_timeout=timedelta(milliseconds=200),
        open_to_probe_delay=timedelta(milliseconds=500),
        on_state_change=lambda t: print(f"  state: {t.from_state.value} -> {t.to_state.value} ({t.reason})"),
    ))
    service = FlakyInventoryService()
    print(f"✓ Created breaker '{breaker.name}' in state {breaker.state.value}")

    # 2. Healthy calls pass through
    stock = await breaker.call(service.fetch_stock, "sku-1")
    print(f"✓ Stock for sku-1: {stock}")

    # 3. Failures open the circuit
    service.healthy = False
    for attempt in range(3):
        try:
            await breaker.call(service.fetch_stock, "sku-2")
        except ConnectionError as e:
            print(f"✗ Attempt {attempt + 1} failed: {e}")

    # 4. Open circuit fails fast without calling the service
    try:
        await breaker.call(service.fetch_stock, "sku-2")
    except CircuitOpenError as e:
        print(f"✓ Call denied, retry at {e.retry_at.isoformat()}")

    # 5. Slow calls time out
    async def slow_lookup():
        await asyncio.sleep(1)

    timeout_breaker = CircuitBreaker(CircuitBreakerOptions(
        name="slow-lookup",
        operation_timeout=timedelta(milliseconds=50),
        cancel_on_timeout=True,
    ))
    try:
        await timeout_breaker.execute(slow_lookup)
    except OperationTimeoutError as e:
        print(f"✓ Timed out after {e.after.total_seconds()}s")

    # 6. After the probe delay a single probe closes the circuit
    service.healthy = True
    await asyncio.sleep(0.6)
    stock = await breaker.call(service.fetch_stock, "sku-2")
    print(f"✓ Probe succeeded, stock for sku-2: {stock}, state {breaker.state.value}")

    metrics = breaker.metrics()
    print(f"✓ Calls: {metrics.total_calls} (failures: {metrics.failure_count}, "
          f"rate: {metrics.failure_rate:.2f})")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(basic_example())
