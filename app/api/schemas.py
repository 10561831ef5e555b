from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Literal, List, Union

from ..domain.models import (
    Device,
    DeviceStatus,
    DeviceType,
    SensorReading,
    SimulationParams,
    UplinkOptions,
)


class SimulationParamsIn(BaseModel):
    interval: Optional[float] = Field(default=None, gt=0)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    unit: Optional[str] = None


class DeviceIn(BaseModel):
    id: str
    name: str
    dev_eui: str
    device_type: Literal["temperature", "humidity", "door"]
    status: Literal["active", "inactive", "error"] = "inactive"
    # The device store keeps these as a JSON string
    simulation_params: Union[SimulationParamsIn, str, None] = None

    def to_device(self) -> Device:
        raw = self.simulation_params
        if isinstance(raw, SimulationParamsIn):
            raw = raw.model_dump(exclude_none=True)
        return Device(
            id=self.id,
            name=self.name,
            dev_eui=self.dev_eui,
            device_type=DeviceType(self.device_type),
            status=DeviceStatus(self.status),
            simulation_params=SimulationParams.parse(raw),
        )


class DeviceListRequest(BaseModel):
    devices: List[DeviceIn]


class ReadingIn(BaseModel):
    temperature: Optional[float] = None
    humidity: Optional[float] = None
    battery: Optional[float] = None
    door_open: Optional[bool] = None
    timestamp: Optional[int] = None

    def to_reading(self) -> SensorReading:
        return SensorReading(**self.model_dump())


class DecodeRequest(BaseModel):
    payload: str


class TTNConfigIn(BaseModel):
    appId: str = ""
    apiKey: str = ""
    webhookUrl: Optional[str] = None
    region: str = ""


class UplinkOptionsIn(BaseModel):
    fPort: Optional[int] = None
    fCnt: Optional[int] = None
    rssi: Optional[float] = None
    snr: Optional[float] = None
    frequency: Optional[str] = None
    spreadingFactor: Optional[int] = None
    bandwidth: Optional[int] = None

    def to_options(self) -> UplinkOptions:
        given = {
            "f_port": self.fPort,
            "f_cnt": self.fCnt,
            "rssi": self.rssi,
            "snr": self.snr,
            "frequency": self.frequency,
            "spreading_factor": self.spreadingFactor,
            "bandwidth": self.bandwidth,
        }
        return UplinkOptions(**{k: v for k, v in given.items() if v is not None})


class FormatUplinkRequest(BaseModel):
    device_id: str
    dev_eui: str
    app_id: str
    reading: ReadingIn
    options: UplinkOptionsIn = Field(default_factory=UplinkOptionsIn)
