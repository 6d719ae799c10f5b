"""
Prometheus exporter and HTTP server for circuit breaker metrics.

This module exposes every breaker of a registry as Prometheus metrics and
serves them, together with the JSON exports, over an aiohttp application.
"""

import json
import logging
from typing import TYPE_CHECKING, Iterator, Optional

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.registry import Collector

from ..common.utils import get_current_time
from ..types.common import CircuitState

if TYPE_CHECKING:
    from ..circuit.registry import CircuitBreakerRegistry

logger = logging.getLogger(__name__)


class BreakerCollector(Collector):
    """Custom Prometheus collector reading breaker snapshots at scrape time."""

    def __init__(self, breakers: "CircuitBreakerRegistry", namespace: str = "bulwark"):
        self.breakers = breakers
        self.namespace = namespace

    def collect(self) -> Iterator:
        ns = self.namespace

        state = GaugeMetricFamily(
            f'{ns}_circuit_state',
            'Current circuit state (1 for the active state)',
            labels=['name', 'state']
        )
        calls = CounterMetricFamily(
            f'{ns}_calls',
            'Total number of protected calls by outcome',
            labels=['name', 'outcome']
        )
        failure_rate = GaugeMetricFamily(
            f'{ns}_failure_rate',
            'Lifetime failure rate (0-1)',
            labels=['name']
        )
        latency = GaugeMetricFamily(
            f'{ns}_average_latency_seconds',
            'Average latency over the most recent calls in seconds',
            labels=['name']
        )
        window_failure_rate = GaugeMetricFamily(
            f'{ns}_window_failure_rate',
            'Failure rate over the bounded reporting window (0-1)',
            labels=['name']
        )
        consecutive = GaugeMetricFamily(
            f'{ns}_consecutive_failures',
            'Current streak of consecutive counted failures',
            labels=['name']
        )

        for breaker in self.breakers.all():
            snapshot = breaker.metrics()
            name = breaker.name

            for candidate in CircuitState:
                state.add_metric([name, candidate.value], 1.0 if candidate == snapshot.state else 0.0)

            calls.add_metric([name, 'success'], snapshot.success_count)
            calls.add_metric([name, 'failure'], snapshot.failure_count)
            failure_rate.add_metric([name], snapshot.failure_rate)
            latency.add_metric([name], snapshot.average_latency)
            window_failure_rate.add_metric([name], breaker.window_stats().window_failure_rate)
            consecutive.add_metric([name], breaker.consecutive_failures)

        yield state
        yield calls
        yield failure_rate
        yield latency
        yield window_failure_rate
        yield consecutive


class PrometheusExporter:
    """Prometheus metrics exporter with HTTP server."""

    def __init__(self,
                 breakers: "CircuitBreakerRegistry",
                 port: int = 9090,
                 host: str = "0.0.0.0",
                 path: str = "/metrics",
                 namespace: str = "bulwark"):
        """
        Initialize Prometheus exporter.

        Args:
            breakers: Registry whose breakers are exported
            port: HTTP server port
            host: HTTP server host
            path: Metrics endpoint path
            namespace: Prefix of every exported metric name
        """
        self.breakers = breakers
        self.port = port
        self.host = host
        self.path = path
        self.registry = CollectorRegistry()
        self.registry.register(BreakerCollector(breakers, namespace))
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None
        self._running = False

    def export_prometheus_metrics(self) -> str:
        """Export metrics in Prometheus text format."""
        return generate_latest(self.registry).decode('utf-8')

    def create_app(self) -> web.Application:
        """Create the aiohttp application serving the exporter endpoints."""
        app = web.Application()
        app.router.add_get(self.path, self._metrics_handler)
        app.router.add_get("/health", self._health_handler)
        app.router.add_get("/breakers", self._breakers_handler)
        return app

    async def start(self) -> None:
        """Start the Prometheus HTTP server."""
        if self._running:
            logger.warning("Prometheus exporter already running")
            return

        try:
            self._runner = web.AppRunner(self.create_app())
            await self._runner.setup()

            self._site = web.TCPSite(self._runner, self.host, self.port)
            await self._site.start()

            self._running = True
            logger.info(f"Prometheus exporter started on {self.host}:{self.port}{self.path}")

        except Exception as e:
            logger.error(f"Failed to start Prometheus exporter: {e}")
            await self._cleanup()
            raise

    async def stop(self) -> None:
        """Stop the Prometheus HTTP server."""
        if not self._running:
            return

        await self._cleanup()
        self._running = False
        logger.info("Prometheus exporter stopped")

    def is_running(self) -> bool:
        return self._running

    async def _cleanup(self) -> None:
        if self._site:
            await self._site.stop()
            self._site = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def _metrics_handler(self, request: web.Request) -> web.Response:
        # CONTENT_TYPE_LATEST carries a charset, which aiohttp wants separately
        content_type, _, _ = CONTENT_TYPE_LATEST.partition(';')
        return web.Response(
            text=self.export_prometheus_metrics(),
            content_type=content_type,
            headers={'Cache-Control': 'no-cache'}
        )

    async def _health_handler(self, request: web.Request) -> web.Response:
        snapshots = self.breakers.snapshot_all()
        open_circuits = sorted(
            name for name, snapshot in snapshots.items()
            if snapshot['state'] != CircuitState.CLOSED.value
        )

        return web.json_response({
            "status": "degraded" if open_circuits else "healthy",
            "timestamp": get_current_time().isoformat(),
            "breakers": len(snapshots),
            "open_circuits": open_circuits,
        })

    async def _breakers_handler(self, request: web.Request) -> web.Response:
        exports = [json.loads(breaker.export_metrics()) for breaker in self.breakers.all()]
        return web.json_response({
            "timestamp": get_current_time().isoformat(),
            "breakers": exports,
        })
