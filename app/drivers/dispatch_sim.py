from __future__ import annotations
import logging
import random
from collections import deque
from dataclasses import replace
from typing import Any, Callable, Optional

from ..domain.interfaces import DispatchError
from ..domain.models import Device, DispatchResult, SensorReading, UplinkOptions
from ..ttn.uplink import format_uplink

logger = logging.getLogger(__name__)


class SimulatedDispatcher:
    """Formats uplinks locally instead of sending them anywhere.

    Handy for development and demos: the last ``history`` envelopes are kept
    for inspection and a failure rate can be injected to exercise error paths.
    """

    def __init__(
        self,
        device_lookup: Callable[[str], Optional[Device]],
        app_id: str = "simulated-app",
        history: int = 50,
        failure_rate: float = 0.0,
        base_options: Optional[UplinkOptions] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._lookup = device_lookup
        self._app_id = app_id
        self._failure_rate = failure_rate
        self._options = base_options or UplinkOptions()
        self._rng = rng or random.Random()
        self.uplinks: deque[dict[str, Any]] = deque(maxlen=history)

    async def dispatch(self, device_id: str, payload: dict[str, Any]) -> DispatchResult:
        device = self._lookup(device_id)
        if device is None:
            raise DispatchError(f"Device not found: {device_id}")

        if self._failure_rate > 0.0 and self._rng.random() < self._failure_rate:
            raise DispatchError("Simulated uplink failure")

        reading = SensorReading.from_dict(payload)
        f_cnt = int(payload.get("f_cnt", self._options.f_cnt))
        uplink = format_uplink(
            device.name,
            device.dev_eui,
            self._app_id,
            reading,
            replace(self._options, f_cnt=f_cnt),
        )
        self.uplinks.append(uplink)
        logger.info(
            "SIM uplink device=%s f_cnt=%s frm_payload=%s",
            device.name, f_cnt, uplink["uplink_message"]["frm_payload"],
        )
        return DispatchResult(success=True, message="Uplink simulated locally")

    async def aclose(self) -> None:
        return None
