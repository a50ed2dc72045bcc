# ABOUTME: HTTP server for exposing metrics and health endpoints
# ABOUTME: Provides /healthz, /metrics, and /status endpoints via aiohttp
from dataclasses import dataclass
from typing import Optional
from aiohttp import web

from prometheus_client import CollectorRegistry, generate_latest

from switchbot_exporter.config import AppConfig
from switchbot_exporter.metrics import SnapshotStore, create_registry


@dataclass
class StatusTracker:
    """Tracks scanner state and metadata for /status and /healthz endpoints."""
    service_uuid: str
    scanning: bool = False
    last_update_timestamp: int = 0
    readings_decoded: int = 0
    error: Optional[str] = None

    def scan_started(self) -> None:
        self.scanning = True
        self.error = None

    def scan_failed(self, message: str) -> None:
        self.scanning = False
        self.error = message

    def reading_published(self, timestamp: int) -> None:
        """Record a successfully decoded and published reading."""
        self.last_update_timestamp = timestamp
        self.readings_decoded += 1


# AppKey for type-safe access to config, store, and status
CONFIG_KEY = web.AppKey('config', AppConfig)
STORE_KEY = web.AppKey('store', SnapshotStore)
REGISTRY_KEY = web.AppKey('registry', CollectorRegistry)
STATUS_KEY = web.AppKey('status', StatusTracker)


async def healthz_handler(request: web.Request) -> web.Response:
    """
    Health check endpoint.

    Returns:
        200 OK with "ok" body, or 503 if the scan loop has failed
    """
    status = request.app[STATUS_KEY]
    if status.error is not None:
        return web.Response(text=f"scanner failed: {status.error}", status=503)
    return web.Response(text="ok", status=200)


async def metrics_handler(request: web.Request) -> web.Response:
    """
    Prometheus metrics endpoint.

    Returns:
        200 OK with Prometheus metrics in text format, or 503 if no
        reading has been decoded yet
    """
    if request.app[STORE_KEY].current_snapshot() is None:
        return web.Response(text="no sensor data available yet", status=503)

    metrics_output = generate_latest(request.app[REGISTRY_KEY])
    return web.Response(
        body=metrics_output,
        content_type='text/plain',
        charset='utf-8'
    )


async def status_handler(request: web.Request) -> web.Response:
    """
    Status endpoint returning scanner metadata.

    Returns:
        200 OK with JSON containing scanner status
    """
    status = request.app[STATUS_KEY]

    status_data = {
        "service_uuid": status.service_uuid,
        "scanning": status.scanning,
        "last_update_timestamp": status.last_update_timestamp,
        "readings_decoded": status.readings_decoded,
        "error": status.error
    }

    return web.json_response(status_data)


def create_app(
    config: AppConfig,
    store: Optional[SnapshotStore] = None,
    status_tracker: Optional[StatusTracker] = None
) -> web.Application:
    """
    Create and configure aiohttp application.

    Args:
        config: Application configuration
        store: SnapshotStore read by /metrics (a fresh empty store if None)
        status_tracker: Optional StatusTracker for /status and /healthz

    Returns:
        Configured aiohttp Application instance
    """
    app = web.Application()

    if store is None:
        store = SnapshotStore()
    if status_tracker is None:
        status_tracker = StatusTracker(service_uuid=config.service_uuid)

    app[CONFIG_KEY] = config
    app[STORE_KEY] = store
    app[REGISTRY_KEY] = create_registry(store)
    app[STATUS_KEY] = status_tracker

    app.router.add_get('/healthz', healthz_handler)
    app.router.add_get('/metrics', metrics_handler)
    app.router.add_get('/status', status_handler)

    return app
