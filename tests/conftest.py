import asyncio
import os
from typing import Any

# Keep test runs from writing a log file next to the repo
os.environ.setdefault("LOG_PATH", "")

import pytest

from app.domain.models import Device, DeviceStatus, DeviceType, DispatchResult, SimulationParams
from app.services.device_registry import DeviceRegistry


class FakeDispatcher:
    """Records every dispatch; devices listed in ``failing`` raise."""

    def __init__(self, failing: set[str] | None = None, delay: float = 0.0) -> None:
        self.calls: list[tuple[str, dict[str, Any]]] = []
        self.failing = failing or set()
        self.delay = delay
        self.closed = False

    async def dispatch(self, device_id: str, payload: dict[str, Any]) -> DispatchResult:
        self.calls.append((device_id, payload))
        if self.delay:
            await asyncio.sleep(self.delay)
        if device_id in self.failing:
            raise RuntimeError(f"gateway unreachable for {device_id}")
        return DispatchResult(success=True, message="ok")

    async def aclose(self) -> None:
        self.closed = True

    def count(self, device_id: str) -> int:
        return sum(1 for d, _ in self.calls if d == device_id)


def make_device(
    device_id: str,
    device_type: DeviceType = DeviceType.TEMPERATURE,
    status: DeviceStatus = DeviceStatus.ACTIVE,
    interval: float | None = 3600,
) -> Device:
    return Device(
        id=device_id,
        name=f"{device_id}-name",
        dev_eui="0004A30B001A2B3C",
        device_type=device_type,
        status=status,
        simulation_params=SimulationParams(interval=interval),
    )


@pytest.fixture
def dispatcher() -> FakeDispatcher:
    return FakeDispatcher()


@pytest.fixture
def registry() -> DeviceRegistry:
    return DeviceRegistry()
