# Copyright (c) 2025 Gimel Foundation and the persons identified as the document authors.
# All rights reserved. This file is subject to the Gimel Foundation's Legal Provisions Relating to GiFo Documents.
# See http://GimelFoundation.com or https://github.com/Gimel-Foundation for details.
# Code Components extracted from GiFo-RfC 0111 must include this license text and are provided without warranty.

"""
Package metrics provides outcome aggregation and export for circuit breakers.

- Bounded, insertion-ordered outcome history
- Lifetime counters, rolling latency average and window statistics
- JSON export for monitoring systems
- Prometheus collector and aiohttp exporter
"""

from .window import BoundedHistory

from .collector import (
    MetricsCollector,
    MetricsSnapshot,
    WindowStats,
    DEFAULT_WINDOW_SIZE,
    DEFAULT_LATENCY_WINDOW_SIZE,
)

from .exporter import (
    BreakerCollector,
    PrometheusExporter,
)

__all__ = [
    # Outcome history
    'BoundedHistory',

    # Aggregation
    'MetricsCollector',
    'MetricsSnapshot',
    'WindowStats',
    'DEFAULT_WINDOW_SIZE',
    'DEFAULT_LATENCY_WINDOW_SIZE',

    # Prometheus export
    'BreakerCollector',
    'PrometheusExporter',
]
