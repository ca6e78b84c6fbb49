"""
Prometheus metrics collection and HTTP exposition.

Defines module-level metric objects shared by all services.
[BaseService][feedbrotr.core.base_service.BaseService] records session
counts and failure streaks; the timeline pipeline adds its own counters
(events received, dropped, buffered; profiles cached; verifications)
through ``inc_counter()`` / ``set_gauge()``.

Architecture:
    SERVICE_INFO:                   Static metadata set once at startup.
    SERVICE_GAUGE:                  Point-in-time values (buffer size, open subscriptions).
    SERVICE_COUNTER:                Cumulative totals.
    DIRECTORY_LOOKUP_SECONDS:       Histogram of NIP-05 directory latency.
"""

from __future__ import annotations

from aiohttp import web
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    Counter,
    Gauge,
    Histogram,
    Info,
    generate_latest,
)
from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class MetricsConfig(BaseModel):
    """Configuration for the Prometheus metrics endpoint.

    The endpoint is only started when ``enabled`` is True.
    """

    enabled: bool = Field(default=False, description="Enable metrics collection")
    port: int = Field(default=8000, ge=1024, le=65535, description="Metrics HTTP port")
    host: str = Field(default="127.0.0.1", description="Metrics HTTP bind address")
    path: str = Field(default="/metrics", description="Metrics endpoint path")


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

SERVICE_INFO = Info(
    "feedbrotr_service",
    "Service information and metadata",
)

SERVICE_GAUGE = Gauge(
    "feedbrotr_service_gauge",
    "Service gauge values (point-in-time state)",
    ["service", "name"],
)

SERVICE_COUNTER = Counter(
    "feedbrotr_service_counter",
    "Service counter values (cumulative totals)",
    ["service", "name"],
)

DIRECTORY_LOOKUP_SECONDS = Histogram(
    "feedbrotr_directory_lookup_seconds",
    "Duration of NIP-05 directory lookups in seconds",
    buckets=(0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)


# ---------------------------------------------------------------------------
# HTTP Server
# ---------------------------------------------------------------------------


class MetricsServer:
    """Async HTTP server exposing a Prometheus-compatible endpoint.

    Example:
        server = MetricsServer(MetricsConfig(enabled=True, port=8001))
        await server.start()
        # ... service runs ...
        await server.stop()
    """

    def __init__(self, config: MetricsConfig) -> None:
        self._config = config
        self._runner: web.AppRunner | None = None

    async def start(self) -> None:
        """Start listening for scrape requests (no-op when disabled).

        Raises:
            OSError: If the port is already in use or binding fails.
        """
        if not self._config.enabled:
            return

        app = web.Application()
        app.router.add_get(self._config.path, self._handle_metrics)

        self._runner = web.AppRunner(app, access_log=None)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._config.host, self._config.port)
        await site.start()

    async def stop(self) -> None:
        """Stop the HTTP server. Idempotent."""
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _handle_metrics(_request: web.Request) -> web.Response:
        return web.Response(
            body=generate_latest(),
            headers={"Content-Type": CONTENT_TYPE_LATEST},
        )


async def start_metrics_server(config: MetricsConfig | None = None) -> MetricsServer:
    """Create and start a metrics server.

    Returns:
        A running MetricsServer. Call ``stop()`` during shutdown.
    """
    server = MetricsServer(config or MetricsConfig())
    await server.start()
    return server
