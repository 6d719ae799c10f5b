"""
Circuit breaker monitoring example.

This example demonstrates:
- Managing several breakers through a registry
- JSON metrics export and window statistics
- Prometheus text output and the HTTP exporter
"""

import asyncio
import json
import logging
from datetime import timedelta

from bulwark import CircuitBreakerOptions, CircuitBreakerRegistry
from bulwark.errors.classifier import ErrorClassifier
from bulwark.metrics import PrometheusExporter


class UpstreamError(Exception):
    def __init__(self, status: int):
        super().__init__(f"upstream responded {status}")
        self.status = status


async def call_upstream(status: int) -> str:
    await asyncio.sleep(0.005)
    if status >= 400:
        raise UpstreamError(status)
    return "ok"


async def monitoring_example():
    """Demonstrate metrics export"""
    print("Circuit Breaker Monitoring Example")
    print("=" * 35)

    registry = CircuitBreakerRegistry(CircuitBreakerOptions(
        failure_count_threshold=3,
        minimum_sample_size=5,
        open_to_probe_delay=timedelta(seconds=30),
        failure_predicate=ErrorClassifier.triggers_open,
    ))

    payments = registry.get_or_create("payments")
    search = registry.get_or_create("search")

    # Client errors are not held against the dependency
    for status in (200, 404, 400, 200, 200):
        try:
            await search.call(call_upstream, status)
        except UpstreamError:
            pass

    for status in (200, 503, 503, 502, 503):
        try:
            await payments.call(call_upstream, status)
        except UpstreamError:
            pass

    for breaker in registry.all():
        print(f"\n{breaker.name}: {breaker.state.value}")
        print(json.dumps(breaker.window_stats().to_dict()))
        print(breaker.export_metrics())

    exporter = PrometheusExporter(registry, port=9464, host="127.0.0.1")
    print("\nPrometheus output:")
    print(exporter.export_prometheus_metrics())

    await exporter.start()
    try:
        print("✓ Exporter serving http://127.0.0.1:9464/metrics, /health and /breakers")
        await asyncio.sleep(1)
    finally:
        await exporter.stop()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(monitoring_example())
