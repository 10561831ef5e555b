from __future__ import annotations
import logging
from typing import Callable, Iterable, Optional

from ..domain.models import Device

logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class DeviceRegistry:
    """In-memory view of the devices the emulator may drive.

    The authoritative device store lives elsewhere; callers push its current
    contents here and listeners hear about every change.
    """

    def __init__(self, devices: Iterable[Device] = ()) -> None:
        self._devices: dict[str, Device] = {d.id: d for d in devices}
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _changed(self) -> None:
        for listener in list(self._listeners):
            listener()

    def all(self) -> list[Device]:
        return list(self._devices.values())

    def active(self) -> list[Device]:
        return [d for d in self._devices.values() if d.is_active]

    def get(self, device_id: str) -> Optional[Device]:
        return self._devices.get(device_id)

    def replace(self, devices: Iterable[Device]) -> None:
        self._devices = {d.id: d for d in devices}
        logger.info("Device list replaced (%d devices, %d active)", len(self._devices), len(self.active()))
        self._changed()

    def upsert(self, device: Device) -> None:
        self._devices[device.id] = device
        self._changed()

    def remove(self, device_id: str) -> bool:
        if self._devices.pop(device_id, None) is None:
            return False
        self._changed()
        return True
