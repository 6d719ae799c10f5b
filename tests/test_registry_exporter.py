"""
Tests for the breaker registry and the Prometheus exporter.
"""

from datetime import timedelta

import pytest
from aiohttp import test_utils

from bulwark import CircuitBreakerOptions, CircuitBreakerRegistry, CircuitState
from bulwark.metrics import PrometheusExporter


async def fail():
    raise RuntimeError("down")


async def succeed():
    return "ok"


@pytest.fixture
def registry():
    return CircuitBreakerRegistry(CircuitBreakerOptions(
        failure_count_threshold=1,
        minimum_sample_size=1,
        open_to_probe_delay=timedelta(seconds=60),
    ))


class TestCircuitBreakerRegistry:
    """Test named breaker management."""

    def test_get_or_create(self, registry):
        breaker = registry.get_or_create("payments")

        assert registry.get_or_create("payments") is breaker
        assert breaker.name == "payments"
        assert breaker.config().failure_count_threshold == 1
        assert "payments" in registry
        assert len(registry) == 1

    def test_explicit_options(self, registry):
        breaker = registry.get_or_create("search", CircuitBreakerOptions(failure_count_threshold=9))
        assert breaker.name == "search"
        assert breaker.config().failure_count_threshold == 9

        again = registry.get_or_create("search", CircuitBreakerOptions(failure_count_threshold=2))
        assert again.config().failure_count_threshold == 9

    def test_names_and_remove(self, registry):
        registry.get_or_create("b")
        registry.get_or_create("a")

        assert registry.names() == ["a", "b"]
        assert [b.name for b in registry.all()] == ["a", "b"]
        assert registry.remove("a") is True
        assert registry.remove("a") is False
        assert registry.get("a") is None

    @pytest.mark.asyncio
    async def test_reset_all(self, registry):
        breaker = registry.get_or_create("payments")
        with pytest.raises(RuntimeError):
            await breaker.execute(fail)
        assert breaker.state == CircuitState.OPEN

        registry.reset_all()

        assert breaker.state == CircuitState.CLOSED
        assert registry.snapshot_all()["payments"]["total_calls"] == 0


class TestPrometheusExporter:
    """Test the Prometheus text output and HTTP endpoints."""

    @pytest.mark.asyncio
    async def test_metrics_text(self, registry):
        breaker = registry.get_or_create("payments")
        await breaker.execute(succeed)
        with pytest.raises(RuntimeError):
            await breaker.execute(fail)

        text = PrometheusExporter(registry).export_prometheus_metrics()

        assert 'bulwark_circuit_state{name="payments",state="open"} 1.0' in text
        assert 'bulwark_circuit_state{name="payments",state="closed"} 0.0' in text
        assert 'bulwark_calls_total{name="payments",outcome="success"} 1.0' in text
        assert 'bulwark_calls_total{name="payments",outcome="failure"} 1.0' in text
        assert 'bulwark_failure_rate{name="payments"} 0.5' in text
        assert 'bulwark_consecutive_failures{name="payments"} 1.0' in text

    def test_custom_namespace(self, registry):
        registry.get_or_create("payments")
        text = PrometheusExporter(registry, namespace="shop").export_prometheus_metrics()
        assert 'shop_circuit_state{name="payments",state="closed"} 1.0' in text

    @pytest.mark.asyncio
    async def test_endpoints(self, registry):
        """Test /metrics, /health and /breakers."""
        registry.get_or_create("search")
        payments = registry.get_or_create("payments")
        exporter = PrometheusExporter(registry)

        async with test_utils.TestClient(test_utils.TestServer(exporter.create_app())) as client:
            resp = await client.get("/health")
            assert resp.status == 200
            health = await resp.json()
            assert health["status"] == "healthy"
            assert health["breakers"] == 2

            with pytest.raises(RuntimeError):
                await payments.execute(fail)

            resp = await client.get("/health")
            health = await resp.json()
            assert health["status"] == "degraded"
            assert health["open_circuits"] == ["payments"]

            resp = await client.get("/metrics")
            assert resp.status == 200
            assert resp.content_type == "text/plain"
            assert "bulwark_circuit_state" in await resp.text()

            resp = await client.get("/breakers")
            body = await resp.json()
            assert [b["circuit_breaker"]["name"] for b in body["breakers"]] == ["payments", "search"]
            assert body["breakers"][0]["circuit_breaker"]["state"] == "open"

    @pytest.mark.asyncio
    async def test_start_stop(self, registry):
        exporter = PrometheusExporter(registry, port=0, host="127.0.0.1")

        await exporter.start()
        assert exporter.is_running()

        await exporter.stop()
        assert not exporter.is_running()
