# ABOUTME: Derived comfort metrics computed from temperature and relative humidity
# ABOUTME: Vapor pressure deficit (Tetens formula) and discomfort index
from dataclasses import dataclass

from switchbot_exporter.parser import SensorReading


@dataclass(frozen=True)
class DerivedMetrics:
    """Metrics derived from a SensorReading."""
    vapor_pressure_deficit: float  # kPa
    discomfort_index: float


def saturation_vapor_pressure(temperature: float) -> float:
    """Saturation vapor pressure in hPa (Tetens formula)."""
    return 6.1078 * 10 ** (7.5 * temperature / (237.3 + temperature))


def vapor_pressure_deficit(temperature: float, humidity: float) -> float:
    """
    Vapor pressure deficit in kPa.

    Args:
        temperature: Air temperature in Celsius
        humidity: Relative humidity in percent

    Returns:
        Difference between saturation and actual vapor pressure in kPa
    """
    return saturation_vapor_pressure(temperature) * (1 - humidity / 100) * 0.1


def discomfort_index(temperature: float, humidity: float) -> float:
    """Temperature-humidity discomfort index."""
    return 0.81 * temperature + 0.01 * humidity * (0.99 * temperature - 14.3) + 46.3


def derive_metrics(reading: SensorReading) -> DerivedMetrics:
    """Compute all derived metrics for a decoded reading."""
    return DerivedMetrics(
        vapor_pressure_deficit=vapor_pressure_deficit(reading.temperature, reading.humidity),
        discomfort_index=discomfort_index(reading.temperature, reading.humidity)
    )
