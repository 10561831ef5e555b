from __future__ import annotations
import json
import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional


class DeviceType(str, Enum):
    TEMPERATURE = "temperature"
    HUMIDITY = "humidity"
    DOOR = "door"


class DeviceStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class EmulatorStatus(str, Enum):
    STOPPED = "stopped"
    RUNNING = "running"
    ERROR = "error"


@dataclass(frozen=True)
class SensorReading:
    temperature: Optional[float] = None  # °C
    humidity: Optional[float] = None     # %
    battery: Optional[float] = None      # V
    door_open: Optional[bool] = None
    timestamp: Optional[int] = None      # Unix seconds

    def to_dict(self) -> dict[str, Any]:
        """Present fields only; absent ones are omitted rather than null."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not None}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SensorReading":
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known and v is not None})

    def is_empty(self) -> bool:
        return not self.to_dict()


@dataclass(frozen=True)
class SimulationParams:
    interval: Optional[float] = None  # seconds between uplinks
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    unit: Optional[str] = None

    @classmethod
    def parse(cls, raw: str | Mapping[str, Any] | None) -> "SimulationParams":
        # Devices store their params as a JSON string; a broken one means defaults
        if raw is None:
            return cls()
        if isinstance(raw, str):
            try:
                raw = json.loads(raw or "{}")
            except ValueError:
                return cls()
        if not isinstance(raw, Mapping):
            return cls()
        unit = raw.get("unit")
        return cls(
            interval=_positive(_as_float(raw.get("interval"))),
            min_value=_as_float(raw.get("min_value")),
            max_value=_as_float(raw.get("max_value")),
            unit=str(unit) if unit is not None else None,
        )


def _as_float(value: Any) -> Optional[float]:
    """Finite float or None; values that don't cast are dropped."""
    if value is None or isinstance(value, bool):
        return None
    try:
        f = float(value)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None


def _positive(value: Optional[float]) -> Optional[float]:
    return value if value is not None and value > 0 else None


@dataclass(frozen=True)
class Device:
    id: str
    name: str
    dev_eui: str
    device_type: DeviceType
    status: DeviceStatus = DeviceStatus.INACTIVE
    simulation_params: SimulationParams = field(default_factory=SimulationParams)

    @property
    def is_active(self) -> bool:
        return self.status is DeviceStatus.ACTIVE

    def with_status(self, status: DeviceStatus) -> "Device":
        return replace(self, status=status)


@dataclass(frozen=True)
class UplinkOptions:
    f_port: int = 1
    f_cnt: int = 1
    rssi: float = -60
    snr: float = 9.5
    frequency: str = "868.1"
    spreading_factor: int = 7
    bandwidth: int = 125000


@dataclass(frozen=True)
class DispatchResult:
    success: bool
    message: str = ""


@dataclass(frozen=True)
class EmulationLog:
    id: str
    timestamp: datetime
    device_id: str
    device_name: str
    device_type: str
    reading: SensorReading
    success: bool
    message: str


@dataclass(frozen=True)
class EmulatorNotice:
    title: str
    description: str
    variant: str = "default"  # "default" | "destructive"


NO_ACTIVE_DEVICES = "No active devices"
