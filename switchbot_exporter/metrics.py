# ABOUTME: Latest-reading store and Prometheus collector for SwitchBot TH data
# ABOUTME: Holds one snapshot swapped atomically on publish and exposes it as gauges
import threading
import time
from dataclasses import dataclass
from typing import Iterator, Optional

from prometheus_client import CollectorRegistry
from prometheus_client.core import GaugeMetricFamily, Metric
from prometheus_client.registry import Collector

from switchbot_exporter.comfort import DerivedMetrics
from switchbot_exporter.parser import SensorReading


@dataclass(frozen=True)
class Snapshot:
    """Most recent reading together with its derived metrics."""
    reading: SensorReading
    derived: DerivedMetrics
    timestamp: float


class SnapshotStore:
    """
    Single-slot holder of the latest published snapshot.

    The scan loop publishes, HTTP handlers read. Both sides take the lock only
    for the reference swap, so a reader sees either the previous snapshot or
    the new one, never a mix.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._snapshot: Optional[Snapshot] = None

    def publish(self, reading: SensorReading, derived: DerivedMetrics) -> Snapshot:
        """
        Replace the current snapshot.

        Args:
            reading: Decoded sensor reading
            derived: Metrics derived from the reading

        Returns:
            The snapshot that was stored
        """
        snapshot = Snapshot(reading=reading, derived=derived, timestamp=time.time())
        with self._lock:
            self._snapshot = snapshot
        return snapshot

    def current_snapshot(self) -> Optional[Snapshot]:
        """Return the latest snapshot, or None if nothing was published yet."""
        with self._lock:
            return self._snapshot


class SnapshotCollector(Collector):
    """Prometheus collector rendering the store's snapshot at scrape time."""

    def __init__(self, store: SnapshotStore):
        self.store = store

    def collect(self) -> Iterator[Metric]:
        snapshot = self.store.current_snapshot()
        if snapshot is None:
            return

        reading = snapshot.reading
        derived = snapshot.derived

        yield GaugeMetricFamily(
            'switchbot_battery_percent',
            'Battery level in percent',
            value=reading.battery
        )
        yield GaugeMetricFamily(
            'switchbot_temperature_celsius',
            'Temperature reading in Celsius',
            value=reading.temperature
        )
        yield GaugeMetricFamily(
            'switchbot_humidity_percent',
            'Relative humidity reading in percent',
            value=reading.humidity
        )
        yield GaugeMetricFamily(
            'switchbot_vapor_pressure_deficit_kpa',
            'Vapor pressure deficit in kPa',
            value=derived.vapor_pressure_deficit
        )
        yield GaugeMetricFamily(
            'switchbot_discomfort_index',
            'Temperature-humidity discomfort index',
            value=derived.discomfort_index
        )
        yield GaugeMetricFamily(
            'switchbot_last_update_timestamp_seconds',
            'Unix timestamp of last sensor update',
            value=snapshot.timestamp
        )


def create_registry(store: SnapshotStore) -> CollectorRegistry:
    """
    Build a registry exposing only the snapshot gauges of the given store.

    Args:
        store: SnapshotStore read on every scrape

    Returns:
        CollectorRegistry with a SnapshotCollector registered
    """
    registry = CollectorRegistry()
    registry.register(SnapshotCollector(store))
    return registry
