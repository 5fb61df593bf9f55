"""
Prometheus metrics for monitoring.

Covers REST latency and WebSocket stream health.
"""

from typing import Optional
import logging

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    REGISTRY,
    start_http_server,
)

logger = logging.getLogger(__name__)


class Metrics:
    """
    Prometheus metrics collector.

    Tracks:
    - API request count and latency
    - WebSocket messages per channel
    - Stream decode errors
    - Reconnections
    - Active stream subscriptions
    """

    def __init__(
        self,
        enabled: bool = True,
        port: int = 9090,
        registry: Optional[CollectorRegistry] = None,
        start_server: bool = True
    ):
        """
        Initialize metrics.

        Args:
            enabled: Enable metrics collection
            port: Metrics HTTP server port
            registry: Collector registry (defaults to the global one)
            start_server: Expose metrics over HTTP on `port`
        """
        self.enabled = enabled

        if not self.enabled:
            return

        registry = registry if registry is not None else REGISTRY

        # API metrics
        self.api_requests = Counter(
            'pacifica_api_requests_total',
            'Total API requests',
            ['method', 'endpoint', 'status'],
            registry=registry
        )

        self.api_latency = Histogram(
            'pacifica_api_latency_seconds',
            'API request latency',
            ['method', 'endpoint'],
            registry=registry
        )

        # Stream metrics
        self.ws_messages = Counter(
            'pacifica_ws_messages_total',
            'WebSocket messages received',
            ['channel'],
            registry=registry
        )

        self.ws_decode_errors = Counter(
            'pacifica_ws_decode_errors_total',
            'WebSocket messages dropped as undecodable',
            ['channel'],
            registry=registry
        )

        self.ws_reconnects = Counter(
            'pacifica_ws_reconnects_total',
            'Successful WebSocket reconnections',
            registry=registry
        )

        self.active_streams = Gauge(
            'pacifica_ws_active_streams',
            'Upstream stream subscriptions currently active',
            registry=registry
        )

        if start_server:
            try:
                start_http_server(port, registry=registry)
                logger.info(f"Metrics server started on port {port}")
            except OSError as e:
                logger.error(f"Failed to start metrics server: {e}")

    def track_api_request(self, method: str, endpoint: str, status: str) -> None:
        """Record API request."""
        if self.enabled:
            self.api_requests.labels(method=method, endpoint=endpoint, status=status).inc()

    def track_api_latency(self, method: str, endpoint: str, duration: float) -> None:
        """Record API latency."""
        if self.enabled:
            self.api_latency.labels(method=method, endpoint=endpoint).observe(duration)

    def track_ws_message(self, channel: str) -> None:
        """Record inbound stream message."""
        if self.enabled:
            self.ws_messages.labels(channel=channel).inc()

    def track_decode_error(self, channel: str) -> None:
        """Record dropped stream message."""
        if self.enabled:
            self.ws_decode_errors.labels(channel=channel).inc()

    def track_reconnect(self) -> None:
        """Record successful reconnection."""
        if self.enabled:
            self.ws_reconnects.inc()

    def set_active_streams(self, count: int) -> None:
        """Set number of active upstream subscriptions."""
        if self.enabled:
            self.active_streams.set(count)


# Global metrics instance
_metrics: Optional[Metrics] = None


def get_metrics(enabled: bool = True, port: int = 9090) -> Metrics:
    """Get or create metrics instance."""
    global _metrics
    if _metrics is None:
        _metrics = Metrics(enabled=enabled, port=port)
    return _metrics
