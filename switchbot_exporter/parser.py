# ABOUTME: SwitchBot TH service data parser for BLE advertisements
# ABOUTME: Decodes battery, temperature, and humidity from the 6-byte SwitchBot payload
from dataclasses import dataclass

SWITCHBOT_SERVICE_UUID = "0000fd3d-0000-1000-8000-00805f9b34fb"
PAYLOAD_LENGTH = 6


@dataclass(frozen=True)
class SensorReading:
    """Measurements decoded from a single SwitchBot TH advertisement."""
    battery: int
    temperature: float
    humidity: int


def parse_switchbot_th(payload: bytes) -> SensorReading:
    """
    Parse SwitchBot TH (Meter) service data.

    Layout of the 6-byte payload:
        byte 2: bit 0-6 battery percent
        byte 3: bit 0-3 temperature tenths of a degree
        byte 4: bit 0-6 temperature whole degrees, bit 7 set when above freezing
        byte 5: bit 0-6 relative humidity percent

    Values are passed through as reported by the device, without clamping.

    Args:
        payload: Raw service data bytes for the SwitchBot service UUID

    Returns:
        SensorReading with battery, temperature, and humidity

    Raises:
        ValueError: If payload is not exactly 6 bytes long
    """
    if len(payload) != PAYLOAD_LENGTH:
        raise ValueError(
            f"SwitchBot TH payload must be {PAYLOAD_LENGTH} bytes, got {len(payload)}"
        )

    battery = payload[2] & 0x7F

    # Temperature: tenths in low nibble of byte 3, integer part in byte 4
    temperature = (payload[3] & 0x0F) * 0.1 + (payload[4] & 0x7F)
    if not payload[4] & 0x80:
        temperature = -temperature

    humidity = payload[5] & 0x7F

    return SensorReading(
        battery=battery,
        temperature=temperature,
        humidity=humidity
    )
