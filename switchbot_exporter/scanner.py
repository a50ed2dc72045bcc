# ABOUTME: BLE advertisement source abstraction for continuous passive scanning
# ABOUTME: Provides Protocol interface, bleak-backed source, and MockAdvertisementSource for testing
from dataclasses import dataclass, field
from typing import AsyncIterator, Optional, Protocol
import asyncio
from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData


@dataclass
class AdvertisementEvent:
    """A single BLE advertisement as delivered by the transport."""
    address: str
    service_data: dict[str, bytes] = field(default_factory=dict)  # UUID -> payload
    rssi: Optional[int] = None


def to_event(device: BLEDevice, advertisement_data: AdvertisementData) -> AdvertisementEvent:
    """
    Convert a bleak advertisement into an AdvertisementEvent.

    Service UUID keys are normalised to lower case.
    """
    service_data = {
        str(uuid).lower(): bytes(data)
        for uuid, data in (advertisement_data.service_data or {}).items()
    }
    return AdvertisementEvent(
        address=device.address,
        service_data=service_data,
        rssi=advertisement_data.rssi
    )


class AdvertisementSource(Protocol):
    """
    Protocol for BLE advertisement sources.

    Entering the source starts scanning, exiting it stops scanning.
    events() yields advertisements until the transport stops.
    """

    async def __aenter__(self) -> "AdvertisementSource":
        ...

    async def __aexit__(self, exc_type, exc, tb) -> None:
        ...

    def events(self) -> AsyncIterator[AdvertisementEvent]:
        ...


class BleakAdvertisementSource:
    """
    Real advertisement source using bleak.

    Runs one long-lived BleakScanner and streams every advertisement it reports.
    """

    def __init__(self, adapter: Optional[str] = None):
        """
        Initialize the advertisement source.

        Args:
            adapter: Optional adapter name (e.g. 'hci0'), platform default if None
        """
        self.adapter = adapter
        self._scanner: Optional[BleakScanner] = None

    async def __aenter__(self) -> "BleakAdvertisementSource":
        """
        Start scanning.

        Raises:
            RuntimeError: If BLE adapter is unavailable or scanning cannot start
        """
        kwargs = {}
        if self.adapter:
            kwargs['adapter'] = self.adapter

        try:
            scanner = BleakScanner(**kwargs)
            await scanner.start()
        except Exception as e:
            raise RuntimeError(f"BLE scan failed: {e}") from e

        self._scanner = scanner
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        """Stop scanning."""
        if self._scanner is not None:
            scanner = self._scanner
            self._scanner = None
            await scanner.stop()

    async def events(self) -> AsyncIterator[AdvertisementEvent]:
        """
        Yield advertisements as they arrive.

        Raises:
            RuntimeError: If called before the source was entered
        """
        if self._scanner is None:
            raise RuntimeError("Scanner not started")

        async for device, advertisement_data in self._scanner.advertisement_data():
            yield to_event(device, advertisement_data)


class MockAdvertisementSource:
    """
    Mock advertisement source for testing without hardware.

    Yields preconfigured events once. The stream then ends, or stays idle
    forever when hold_open is set.
    """

    def __init__(
        self,
        events: Optional[list[AdvertisementEvent]] = None,
        hold_open: bool = False
    ):
        """
        Initialize mock source with test data.

        Args:
            events: AdvertisementEvents to yield in order
            hold_open: If True, keep the stream open after the last event
        """
        self.data = events or []
        self.hold_open = hold_open
        self.started = False
        self.stopped = False

    async def __aenter__(self) -> "MockAdvertisementSource":
        self.started = True
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.stopped = True

    async def events(self) -> AsyncIterator[AdvertisementEvent]:
        for event in self.data:
            # Simulate async arrival
            await asyncio.sleep(0)
            yield event

        if self.hold_open:
            await asyncio.Event().wait()


def get_source(
    use_mock: bool = False,
    events: Optional[list[AdvertisementEvent]] = None,
    adapter: Optional[str] = None
) -> AdvertisementSource:
    """
    Factory function to get appropriate advertisement source implementation.

    Args:
        use_mock: If True, return MockAdvertisementSource; otherwise BleakAdvertisementSource
        events: Test data for MockAdvertisementSource (only used when use_mock=True)
        adapter: Adapter name for BleakAdvertisementSource

    Returns:
        Source instance implementing AdvertisementSource protocol
    """
    if use_mock:
        return MockAdvertisementSource(events, hold_open=True)
    else:
        return BleakAdvertisementSource(adapter=adapter)
