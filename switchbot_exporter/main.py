# ABOUTME: Main entry point for SwitchBot TH Prometheus exporter
# ABOUTME: Wires together advertisement source, parser, snapshot store, and HTTP server
import argparse
import asyncio
import logging
from typing import Optional
from aiohttp import web

from switchbot_exporter.comfort import derive_metrics
from switchbot_exporter.config import load_config
from switchbot_exporter.exporter import (
    STATUS_KEY,
    STORE_KEY,
    CONFIG_KEY,
    StatusTracker,
    create_app,
)
from switchbot_exporter.logger import get_logger
from switchbot_exporter.metrics import Snapshot, SnapshotStore
from switchbot_exporter.parser import (
    PAYLOAD_LENGTH,
    SWITCHBOT_SERVICE_UUID,
    parse_switchbot_th,
)
from switchbot_exporter.scanner import AdvertisementEvent, AdvertisementSource, get_source

SOURCE_KEY = web.AppKey('source', AdvertisementSource)
LOGGER_KEY = web.AppKey('logger', logging.Logger)
SCAN_TASK_KEY = web.AppKey('scan_task', asyncio.Task)


def handle_advertisement(
    event: AdvertisementEvent,
    store: SnapshotStore,
    service_uuid: str = SWITCHBOT_SERVICE_UUID
) -> Optional[Snapshot]:
    """
    Decode one advertisement and publish it if it comes from a SwitchBot TH.

    Advertisements without service data, without an entry for service_uuid,
    or with a payload that is not exactly 6 bytes are other devices or
    malformed frames. They are dropped without touching the store.

    Args:
        event: Advertisement delivered by the source
        store: SnapshotStore to publish into
        service_uuid: Lower-case service UUID carrying the sensor payload

    Returns:
        The published Snapshot, or None if the event was discarded
    """
    if not event.service_data:
        return None

    payload = event.service_data.get(service_uuid)
    if payload is None or len(payload) != PAYLOAD_LENGTH:
        return None

    reading = parse_switchbot_th(payload)
    return store.publish(reading, derive_metrics(reading))


async def scan_loop(
    source: AdvertisementSource,
    store: SnapshotStore,
    logger,
    service_uuid: str = SWITCHBOT_SERVICE_UUID,
    status_tracker: Optional[StatusTracker] = None
):
    """
    Background task that scans continuously and publishes every SwitchBot TH reading.

    Scanning starts when the source is entered and stops when it is exited,
    including on cancellation. There is no retry: a failure to start scanning
    or the end of the advertisement stream ends the loop with an error.

    Args:
        source: AdvertisementSource (MockAdvertisementSource or BleakAdvertisementSource)
        store: SnapshotStore receiving decoded readings
        logger: Logger instance
        service_uuid: Service UUID to decode
        status_tracker: Optional StatusTracker updated on start and per reading

    Raises:
        RuntimeError: If scanning cannot start or the advertisement stream ends
    """
    async with source:
        logger.info("Start scanning for SwitchBot TH")
        if status_tracker is not None:
            status_tracker.scan_started()

        async for event in source.events():
            snapshot = handle_advertisement(event, store, service_uuid)
            if snapshot is None:
                continue

            logger.debug(f"Reading from {event.address}: {snapshot.reading} {snapshot.derived}")
            if status_tracker is not None:
                status_tracker.reading_published(int(snapshot.timestamp))

    raise RuntimeError("Advertisement stream ended")


def _scan_task_done(task: asyncio.Task, status_tracker: StatusTracker, logger) -> None:
    """Record a scan loop that ended with an error."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Scan loop stopped: {exc}", exc_info=exc)
        status_tracker.scan_failed(str(exc))


async def start_background_tasks(app: web.Application):
    """
    Startup handler that launches the background scan loop.

    Args:
        app: aiohttp Application instance
    """
    config = app[CONFIG_KEY]
    status_tracker = app[STATUS_KEY]
    logger = app[LOGGER_KEY]

    task = asyncio.create_task(
        scan_loop(app[SOURCE_KEY], app[STORE_KEY], logger, config.service_uuid, status_tracker)
    )
    task.add_done_callback(lambda t: _scan_task_done(t, status_tracker, logger))
    app[SCAN_TASK_KEY] = task


async def cleanup_background_tasks(app: web.Application):
    """
    Cleanup handler that cancels the background scan loop.

    Cancelling unwinds through the source, which stops the BLE scan.

    Args:
        app: aiohttp Application instance
    """
    task = app[SCAN_TASK_KEY]
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass  # Expected when cancelling the task
    except Exception:
        pass  # Already logged by _scan_task_done
    app[LOGGER_KEY].info("Stopped scanning")


def main():
    """
    Main entry point. Parses CLI arguments, loads config, and starts the server.
    """
    parser = argparse.ArgumentParser(
        description='SwitchBot TH Prometheus Exporter'
    )
    parser.add_argument(
        '--config',
        type=str,
        required=True,
        help='Path to config YAML file'
    )
    parser.add_argument(
        '--mock-scanner',
        action='store_true',
        help='Use MockAdvertisementSource instead of a real BLE adapter (for testing)'
    )

    args = parser.parse_args()

    config = load_config(args.config)

    logger = get_logger(config)
    logger.info("Starting SwitchBot TH Prometheus Exporter")
    logger.info(f"Config loaded from {args.config}")

    source = get_source(use_mock=args.mock_scanner, adapter=config.adapter)
    if args.mock_scanner:
        logger.info("Using MockAdvertisementSource (no real BLE hardware)")
    else:
        logger.info(f"Using BleakScanner on adapter {config.adapter or 'default'}")

    store = SnapshotStore()
    status_tracker = StatusTracker(service_uuid=config.service_uuid)

    app = create_app(config, store, status_tracker)
    app[SOURCE_KEY] = source
    app[LOGGER_KEY] = logger

    app.on_startup.append(start_background_tasks)
    app.on_cleanup.append(cleanup_background_tasks)

    logger.info(f"Starting HTTP server on port {config.listen_port}")
    web.run_app(app, host='0.0.0.0', port=config.listen_port)


if __name__ == '__main__':
    main()
