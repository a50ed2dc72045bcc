"""
Tests for the advertisement filter and the scan loop that ties together
the advertisement source, parser, derived metrics, and snapshot store.
"""
import asyncio
import logging
from unittest.mock import MagicMock
import pytest
from pytest import approx

from switchbot_exporter.exporter import StatusTracker
from switchbot_exporter.main import handle_advertisement, scan_loop
from switchbot_exporter.metrics import SnapshotStore
from switchbot_exporter.parser import SWITCHBOT_SERVICE_UUID
from switchbot_exporter.scanner import AdvertisementEvent, MockAdvertisementSource

SENSOR_MAC = "D4:12:34:56:78:9A"
# Battery 50%, 24.3°C, humidity 40%
VALID_PAYLOAD = bytes([0x69, 0x00, 0x32, 0x03, 0x98, 0x28])


def _switchbot_event(payload: bytes = VALID_PAYLOAD) -> AdvertisementEvent:
    return AdvertisementEvent(SENSOR_MAC, {SWITCHBOT_SERVICE_UUID: payload}, rssi=-60)


@pytest.fixture
def mock_logger():
    """Create a mock logger."""
    return MagicMock(spec=logging.Logger)


@pytest.fixture
def store():
    return SnapshotStore()


@pytest.fixture
def status_tracker():
    return StatusTracker(service_uuid=SWITCHBOT_SERVICE_UUID)


def test_handle_advertisement_publishes_valid_payload(store):
    snapshot = handle_advertisement(_switchbot_event(), store)

    assert snapshot is not None
    assert store.current_snapshot() is snapshot
    assert snapshot.reading.battery == 50
    assert snapshot.reading.temperature == approx(24.3)
    assert snapshot.reading.humidity == 40
    assert snapshot.derived.vapor_pressure_deficit > 0


def test_handle_advertisement_ignores_event_without_service_data(store):
    event = AdvertisementEvent("AA:BB:CC:DD:EE:FF", {})

    assert handle_advertisement(event, store) is None
    assert store.current_snapshot() is None


def test_handle_advertisement_ignores_other_service_uuid(store):
    event = AdvertisementEvent(
        "A4:C1:38:11:22:33",
        {"0000181a-0000-1000-8000-00805f9b34fb": VALID_PAYLOAD}
    )

    assert handle_advertisement(event, store) is None
    assert store.current_snapshot() is None


@pytest.mark.parametrize("length", [0, 1, 5, 7, 13])
def test_handle_advertisement_ignores_wrong_length(store, length):
    assert handle_advertisement(_switchbot_event(bytes(length)), store) is None
    assert store.current_snapshot() is None


def test_handle_advertisement_discard_keeps_previous_snapshot(store):
    """Test that noise after a valid reading leaves the published snapshot alone."""
    first = handle_advertisement(_switchbot_event(), store)

    handle_advertisement(_switchbot_event(bytes(7)), store)
    handle_advertisement(AdvertisementEvent("AA:BB:CC:DD:EE:FF", {"other": bytes(6)}), store)

    assert store.current_snapshot() is first


def test_handle_advertisement_custom_service_uuid(store):
    custom_uuid = "0000aaaa-0000-1000-8000-00805f9b34fb"
    event = AdvertisementEvent(SENSOR_MAC, {custom_uuid: VALID_PAYLOAD})

    assert handle_advertisement(event, store) is None
    assert handle_advertisement(event, store, custom_uuid) is not None


@pytest.mark.asyncio
async def test_scan_loop_publishes_and_raises_when_stream_ends(store, mock_logger):
    """Test that the loop decodes events and reports the end of the stream as an error."""
    source = MockAdvertisementSource([_switchbot_event()])

    with pytest.raises(RuntimeError, match="Advertisement stream ended"):
        await scan_loop(source, store, mock_logger)

    assert store.current_snapshot().reading.temperature == approx(24.3)
    assert source.started is True
    assert source.stopped is True


@pytest.mark.asyncio
async def test_scan_loop_logs_scan_start(store, mock_logger):
    source = MockAdvertisementSource()

    with pytest.raises(RuntimeError):
        await scan_loop(source, store, mock_logger)

    mock_logger.info.assert_any_call("Start scanning for SwitchBot TH")


@pytest.mark.asyncio
async def test_scan_loop_keeps_last_valid_reading(store, mock_logger):
    """Test that the last valid reading wins and noise does not overwrite it."""
    events = [
        _switchbot_event(bytes([0, 0, 0x64, 0x00, 0x94, 0x32])),  # 20.0°C
        AdvertisementEvent("AA:BB:CC:DD:EE:FF", {}),
        _switchbot_event(bytes([0, 0, 0x63, 0x05, 0x85, 0x3C])),  # 5.5°C
        _switchbot_event(bytes([0, 0, 0x63, 0x05, 0x85])),        # truncated
        AdvertisementEvent("A4:C1:38:11:22:33", {"0000181a-0000-1000-8000-00805f9b34fb": bytes(6)}),
    ]
    source = MockAdvertisementSource(events)

    with pytest.raises(RuntimeError):
        await scan_loop(source, store, mock_logger)

    snapshot = store.current_snapshot()
    assert snapshot.reading.temperature == approx(5.5)
    assert snapshot.reading.battery == 99
    assert snapshot.reading.humidity == 60


@pytest.mark.asyncio
async def test_scan_loop_ignores_only_noise(store, mock_logger):
    events = [
        AdvertisementEvent("AA:BB:CC:DD:EE:FF", {}),
        _switchbot_event(bytes(4)),
    ]

    with pytest.raises(RuntimeError):
        await scan_loop(MockAdvertisementSource(events), store, mock_logger)

    assert store.current_snapshot() is None
    mock_logger.error.assert_not_called()
    mock_logger.warning.assert_not_called()


@pytest.mark.asyncio
async def test_scan_loop_updates_status_tracker(store, mock_logger, status_tracker):
    source = MockAdvertisementSource([_switchbot_event(), _switchbot_event()], hold_open=True)

    task = asyncio.create_task(
        scan_loop(source, store, mock_logger, status_tracker=status_tracker)
    )
    await asyncio.sleep(0.05)

    assert status_tracker.scanning is True
    assert status_tracker.readings_decoded == 2
    assert status_tracker.last_update_timestamp == int(store.current_snapshot().timestamp)

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task


@pytest.mark.asyncio
async def test_scan_loop_cancel_stops_scanning(store, mock_logger):
    """Test that cancelling the loop exits the source, stopping the scan."""
    source = MockAdvertisementSource([_switchbot_event()], hold_open=True)

    task = asyncio.create_task(scan_loop(source, store, mock_logger))
    await asyncio.sleep(0.05)

    assert source.started is True
    assert source.stopped is False
    assert store.current_snapshot() is not None

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert source.stopped is True


@pytest.mark.asyncio
async def test_scan_loop_propagates_start_failure(store, mock_logger):
    """Test that a transport start failure ends the loop without retrying."""
    class FailingSource(MockAdvertisementSource):
        attempts = 0

        async def __aenter__(self):
            FailingSource.attempts += 1
            raise RuntimeError("BLE scan failed: No Bluetooth adapters found")

    with pytest.raises(RuntimeError, match="No Bluetooth adapters found"):
        await scan_loop(FailingSource(), store, mock_logger)

    assert FailingSource.attempts == 1
    assert store.current_snapshot() is None
