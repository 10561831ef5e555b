from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Optional

from ..core.timeutil import epoch_seconds
from ..domain.models import DeviceType, SensorReading, SimulationParams


BATTERY_MIN_V = 3.0
BATTERY_MAX_V = 3.6
DOOR_OPEN_PROBABILITY = 0.3


@dataclass(frozen=True)
class ReadingBounds:
    min_temp: float = -20.0
    max_temp: float = 40.0
    min_humidity: float = 20.0
    max_humidity: float = 90.0

    @classmethod
    def for_device(cls, params: SimulationParams) -> "ReadingBounds":
        # A device's min/max apply to whichever quantity it measures
        return cls(
            min_temp=params.min_value if params.min_value is not None else -5.0,
            max_temp=params.max_value if params.max_value is not None else 10.0,
            min_humidity=params.min_value if params.min_value is not None else 40.0,
            max_humidity=params.max_value if params.max_value is not None else 80.0,
        )


def generate_random_reading(
    device_type: DeviceType | str,
    bounds: Optional[ReadingBounds] = None,
    rng: Optional[random.Random] = None,
) -> SensorReading:
    b = bounds or ReadingBounds()
    r = rng or random

    # Battery is in volts and can exceed what the 8-bit payload field carries
    battery = BATTERY_MIN_V + r.random() * (BATTERY_MAX_V - BATTERY_MIN_V)
    timestamp = epoch_seconds()

    match DeviceType(device_type):
        case DeviceType.TEMPERATURE:
            temp = b.min_temp + r.random() * (b.max_temp - b.min_temp)
            return SensorReading(temperature=temp, battery=battery, timestamp=timestamp)
        case DeviceType.HUMIDITY:
            hum = b.min_humidity + r.random() * (b.max_humidity - b.min_humidity)
            return SensorReading(humidity=hum, battery=battery, timestamp=timestamp)
        case DeviceType.DOOR:
            door_open = r.random() < DOOR_OPEN_PROBABILITY
            return SensorReading(door_open=door_open, battery=battery, timestamp=timestamp)
