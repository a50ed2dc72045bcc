# ABOUTME: Console monitor for troubleshooting SwitchBot TH advertisements
# ABOUTME: Prints every SwitchBot service data frame with its decoded reading and derived metrics
import argparse
import asyncio
import json
from datetime import datetime
from typing import Optional
from dataclasses import dataclass, asdict

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from switchbot_exporter.comfort import derive_metrics
from switchbot_exporter.parser import PAYLOAD_LENGTH, SWITCHBOT_SERVICE_UUID, parse_switchbot_th
from switchbot_exporter.scanner import to_event


@dataclass
class Advertisement:
    """Single SwitchBot service data capture."""
    timestamp: str
    address: str
    rssi: int
    payload_hex: str
    parse_result: dict  # success flag plus reading or error


def decode_payload(payload: bytes) -> dict:
    """
    Decode a service data payload for display.

    Returns:
        Dictionary with "success" and either "reading" or "error"
    """
    if len(payload) != PAYLOAD_LENGTH:
        return {
            "success": False,
            "error": f"expected {PAYLOAD_LENGTH} bytes, got {len(payload)}"
        }

    reading = parse_switchbot_th(payload)
    derived = derive_metrics(reading)
    return {
        "success": True,
        "reading": {
            "battery": reading.battery,
            "temperature": round(reading.temperature, 1),
            "humidity": reading.humidity,
            "vapor_pressure_deficit": round(derived.vapor_pressure_deficit, 3),
            "discomfort_index": round(derived.discomfort_index, 2)
        }
    }


class DiagnosticScanner:
    """
    BLE scanner for diagnostic purposes.

    Captures every advertisement carrying the SwitchBot service UUID,
    optionally restricted to one MAC address.
    """

    def __init__(
        self,
        target_mac: Optional[str] = None,
        service_uuid: str = SWITCHBOT_SERVICE_UUID,
        quiet: bool = False
    ):
        """
        Initialize diagnostic scanner.

        Args:
            target_mac: MAC address to monitor (case-insensitive), all devices if None
            service_uuid: Service UUID carrying the sensor payload
            quiet: If True, suppress console output
        """
        self.target_mac = target_mac.upper() if target_mac else None
        self.service_uuid = service_uuid.lower()
        self.quiet = quiet
        self.advertisements: list[Advertisement] = []

    def _detection_callback(self, device: BLEDevice, advertisement_data: AdvertisementData):
        """
        Callback invoked for each BLE advertisement.

        Args:
            device: BLE device information
            advertisement_data: Advertisement data including service data and RSSI
        """
        if self.target_mac and device.address.upper() != self.target_mac:
            return

        event = to_event(device, advertisement_data)
        payload = event.service_data.get(self.service_uuid)
        if payload is None:
            return

        ad = Advertisement(
            timestamp=datetime.now().isoformat(timespec='milliseconds'),
            address=event.address,
            rssi=event.rssi or 0,
            payload_hex=payload.hex(),
            parse_result=decode_payload(payload)
        )
        self.advertisements.append(ad)

        if not self.quiet:
            self._display_advertisement(ad)

    def _display_advertisement(self, ad: Advertisement):
        print(f"{ad.timestamp} {ad.address} RSSI: {ad.rssi} dBm Service data: {ad.payload_hex}")

        if ad.parse_result["success"]:
            r = ad.parse_result["reading"]
            print(
                f"{ad.timestamp} Battery: {r['battery']}%, "
                f"Temperature: {r['temperature']}°C, Humidity: {r['humidity']}%, "
                f"VPD: {r['vapor_pressure_deficit']} kPa, DI: {r['discomfort_index']}"
            )
        else:
            print(f"    Skipped: {ad.parse_result['error']}")

    async def scan(self, duration: Optional[int] = None):
        """
        Start scanning for advertisements.

        Args:
            duration: Optional duration in seconds. If None, scan until interrupted.
        """
        if not self.quiet:
            print(f"Monitoring service UUID: {self.service_uuid}")
            if self.target_mac:
                print(f"Monitoring MAC: {self.target_mac}")
            print(f"Duration: {duration} seconds" if duration else "Duration: Continuous (Ctrl+C to stop)")
            print("=" * 60)

        scanner = BleakScanner(detection_callback=self._detection_callback)
        await scanner.start()
        try:
            if duration:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()
        finally:
            await scanner.stop()

    def get_statistics(self) -> dict:
        """
        Calculate statistics from collected advertisements.

        Returns:
            Dictionary containing statistics
        """
        total = len(self.advertisements)
        if total == 0:
            return {
                "total_advertisements": 0,
                "decoded": 0,
                "skipped": 0,
                "average_rssi": 0.0,
                "devices_seen": []
            }

        decoded = sum(1 for ad in self.advertisements if ad.parse_result["success"])
        average_rssi = sum(ad.rssi for ad in self.advertisements) / total

        return {
            "total_advertisements": total,
            "decoded": decoded,
            "skipped": total - decoded,
            "average_rssi": round(average_rssi, 1),
            "devices_seen": sorted({ad.address for ad in self.advertisements})
        }

    def save_json(self, filename: Optional[str] = None) -> str:
        """
        Save captured advertisements to JSON file.

        Args:
            filename: Optional filename. If None, auto-generate with timestamp.

        Returns:
            Path to saved file
        """
        if filename is None:
            # switchbot_diagnostics_20251103_142315.json
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"switchbot_diagnostics_{timestamp}.json"

        data = {
            "service_uuid": self.service_uuid,
            "mac_address": self.target_mac,
            "advertisements": [asdict(ad) for ad in self.advertisements],
            "statistics": self.get_statistics()
        }

        with open(filename, 'w') as f:
            json.dump(data, f, indent=2)

        return filename


def main():
    """Main entry point for diagnostic tool."""
    parser = argparse.ArgumentParser(
        description='SwitchBot TH Diagnostic Tool - Print decoded SwitchBot advertisements',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Monitor every SwitchBot TH in range for 30 seconds
  switchbot-diagnostics --duration 30

  # One device, quiet, results to JSON
  switchbot-diagnostics D4:12:34:56:78:9A --json debug.json --quiet
        """
    )
    parser.add_argument(
        'mac_address',
        nargs='?',
        help='MAC address of the sensor to monitor (default: all SwitchBot TH devices)'
    )
    parser.add_argument(
        '--duration',
        type=int,
        metavar='SECONDS',
        help='Scan duration in seconds (default: continuous until Ctrl+C)'
    )
    parser.add_argument(
        '--json',
        nargs='?',
        const='',
        metavar='FILENAME',
        help='Save results to JSON file (auto-generates filename if not provided)'
    )
    parser.add_argument(
        '--quiet',
        action='store_true',
        help='Suppress console output (useful with --json)'
    )

    args = parser.parse_args()

    scanner = DiagnosticScanner(args.mac_address, quiet=args.quiet)

    try:
        asyncio.run(scanner.scan(duration=args.duration))
    except KeyboardInterrupt:
        pass

    if not args.quiet:
        stats = scanner.get_statistics()
        print("\n" + "=" * 60)
        print(f"Total advertisements: {stats['total_advertisements']}")
        print(f"Decoded: {stats['decoded']}")
        print(f"Skipped: {stats['skipped']}")
        print(f"Average RSSI: {stats['average_rssi']} dBm")
        for address in stats['devices_seen']:
            print(f"  - {address}")

    if args.json is not None:
        saved_path = scanner.save_json(args.json or None)
        print(f"\nResults saved to: {saved_path}")


if __name__ == '__main__':
    main()
