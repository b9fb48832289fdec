"""Physical measurement limits shared by range correction and anomaly detection."""

from dataclasses import dataclass


@dataclass(frozen=True)
class PhysicalLimits:
    """Plausible operating range of a temperature/humidity sensor."""
    temperature_min: float = -40.0
    temperature_max: float = 85.0
    humidity_min: float = 0.0
    humidity_max: float = 100.0

    def temperature_in_range(self, value: float) -> bool:
        return self.temperature_min <= value <= self.temperature_max

    def humidity_in_range(self, value: float) -> bool:
        return self.humidity_min <= value <= self.humidity_max


DEFAULT_LIMITS = PhysicalLimits()
