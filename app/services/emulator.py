from __future__ import annotations
import asyncio
import logging
import random
import uuid
from collections import deque
from typing import Callable, Optional

from ..core.timeutil import now_utc
from ..domain.interfaces import Dispatcher
from ..domain.models import (
    NO_ACTIVE_DEVICES,
    Device,
    DispatchResult,
    EmulationLog,
    EmulatorNotice,
    EmulatorStatus,
    SensorReading,
)
from ..sensors.random_reading import ReadingBounds, generate_random_reading
from .device_registry import DeviceRegistry


logger = logging.getLogger(__name__)

Listener = Callable[[str], None]


class EmulatorService:
    """Continuous uplink emulation for every active device.

    Each running device owns one timer task that sleeps for the device's
    interval and then sends a reading. Timers are keyed by device id and
    created or cancelled only through ``start_emulation``, ``stop_emulation``
    and ``reconcile``; the latter runs on every registry change.

    Sends run as their own tasks so cancelling a timer never aborts an uplink
    already handed to the dispatcher; its outcome is still recorded.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        dispatcher: Dispatcher,
        default_interval_s: float = 30.0,
        max_logs: int = 100,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._registry = registry
        self._dispatcher = dispatcher
        self._default_interval_s = default_interval_s
        self._rng = rng

        self._timers: dict[str, asyncio.Task] = {}
        self._inflight: set[asyncio.Task] = set()
        self._frame_counters: dict[str, int] = {}

        self._logs: deque[EmulationLog] = deque(maxlen=max_logs)
        self._readings_count = 0
        self._last_error: Optional[str] = None
        self._running = False
        self._error = False
        self._closed = False

        self._listeners: list[Listener] = []
        self._unsubscribe = registry.subscribe(self.reconcile)

    # --- Observable state ---

    @property
    def status(self) -> EmulatorStatus:
        if self._error:
            return EmulatorStatus.ERROR
        return EmulatorStatus.RUNNING if self._running else EmulatorStatus.STOPPED

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def readings_count(self) -> int:
        return self._readings_count

    @property
    def logs(self) -> tuple[EmulationLog, ...]:
        return tuple(self._logs)

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def active_device_count(self) -> int:
        return len(self._registry.active())

    @property
    def running_device_ids(self) -> frozenset[str]:
        return frozenset(self._timers)

    def frame_counter(self, device_id: str) -> int:
        return self._frame_counters.get(device_id, 0)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Emulator listener failed on event=%s", event)

    # --- Operations ---

    async def send_single_reading(self) -> EmulatorNotice:
        active = self._registry.active()
        if not active:
            return _no_active_devices("Please add and activate devices before sending readings.")

        results = await asyncio.gather(*(self._spawn_send(d) for d in active))

        ok = sum(1 for r in results if r)
        failed = len(results) - ok
        if failed:
            return EmulatorNotice(
                "Readings sent",
                f"{ok} succeeded, {failed} failed",
                "destructive" if failed == len(results) else "default",
            )
        return EmulatorNotice("Readings sent", f"Successfully sent {ok} reading(s)")

    async def start_emulation(self) -> EmulatorNotice:
        active = self._registry.active()
        if not active:
            return _no_active_devices("Please add and activate devices before starting emulation.")
        if self._closed:
            raise RuntimeError("Emulator has been closed")

        self._cancel_timers()
        self._running = True
        self._error = False
        self._last_error = None
        logger.info("Emulation started for %d device(s)", len(active))
        self._notify("status")

        sends = []
        for device in active:
            self._start_timer(device)
            sends.append(self._spawn_send(device))
        await asyncio.gather(*sends)

        return EmulatorNotice("Emulation started", f"Emulating {len(active)} device(s)")

    def stop_emulation(self) -> EmulatorNotice:
        self._cancel_timers()
        self._running = False
        self._error = False
        logger.info("Emulation stopped (readings sent: %d)", self._readings_count)
        self._notify("status")
        return EmulatorNotice("Emulation stopped", f"Total readings sent: {self._readings_count}")

    def reset_emulation(self) -> None:
        self._readings_count = 0
        self._logs.clear()
        self._last_error = None
        self._error = False
        self._frame_counters.clear()
        self._notify("reset")

    def reconcile(self) -> list[asyncio.Task]:
        """Align running timers with the registry's active devices.

        Returns the send tasks started for newly active devices. Devices that
        stay active keep their timer as is.
        """
        if not self._running:
            return []

        active = {d.id: d for d in self._registry.active()}

        removed = [device_id for device_id in self._timers if device_id not in active]
        for device_id in removed:
            self._timers.pop(device_id).cancel()
            logger.info("Stopped emulating device=%s", device_id)

        added = [d for device_id, d in active.items() if device_id not in self._timers]
        sends = []
        for device in added:
            self._start_timer(device)
            sends.append(self._spawn_send(device))
            logger.info("Started emulating device=%s", device.id)

        if removed or added:
            self._notify("devices")
        return sends

    async def sync_devices(self) -> None:
        sends = self.reconcile()
        if sends:
            await asyncio.gather(*sends)

    async def wait_idle(self) -> None:
        """Wait for every uplink currently in flight."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    async def close(self) -> None:
        self._closed = True
        self._unsubscribe()
        timers = list(self._timers.values())
        self._cancel_timers()
        self._running = False
        await asyncio.gather(*timers, return_exceptions=True)
        await self.wait_idle()
        logger.info("Emulator closed")

    # --- Internals ---

    def _interval_for(self, device: Device) -> float:
        interval = device.simulation_params.interval
        try:
            seconds = float(interval) if interval is not None else 0.0
        except (TypeError, ValueError):
            seconds = 0.0
        # Non-positive or unusable intervals fall back to the default
        return seconds if seconds > 0 else self._default_interval_s

    def _start_timer(self, device: Device) -> None:
        interval = self._interval_for(device)
        self._timers[device.id] = asyncio.create_task(
            self._run_timer(device, interval), name=f"emulate:{device.id}"
        )
        logger.debug("Timer for device=%s every %.1fs", device.id, interval)

    def _cancel_timers(self) -> None:
        for task in self._timers.values():
            task.cancel()
        self._timers.clear()

    async def _run_timer(self, device: Device, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                current = self._registry.get(device.id) or device
                # Shielded: cancelling the timer must not abort this uplink
                await asyncio.shield(self._spawn_send(current))
            except Exception:
                logger.exception("Emulation tick failed for device=%s", device.id)

    def _spawn_send(self, device: Device) -> asyncio.Task:
        task = asyncio.create_task(self._send_reading(device), name=f"uplink:{device.id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    def _generate(self, device: Device) -> SensorReading:
        bounds = ReadingBounds.for_device(device.simulation_params)
        return generate_random_reading(device.device_type, bounds, rng=self._rng)

    async def _send_reading(self, device: Device) -> bool:
        reading = SensorReading()
        f_cnt = self._frame_counters.get(device.id, 0)

        error: Optional[str] = None
        try:
            reading = self._generate(device)
            f_cnt += 1
            self._frame_counters[device.id] = f_cnt
            result = await self._dispatcher.dispatch(device.id, {**reading.to_dict(), "f_cnt": f_cnt})
            message = result.message or ("Reading sent successfully" if result.success else "Uplink failed")
            if not result.success:
                error = message
        except Exception as e:
            logger.exception("Uplink failed for device=%s f_cnt=%s", device.id, f_cnt)
            error = str(e) or type(e).__name__
            result = DispatchResult(success=False)
            message = f"Error: {error}"

        self._readings_count += 1
        if error is not None:
            # Sticky until start, stop or reset
            self._last_error = error
            self._error = True
            logger.warning("Uplink failed device=%s f_cnt=%s: %s", device.id, f_cnt, error)

        self._logs.appendleft(
            EmulationLog(
                id=str(uuid.uuid4()),
                timestamp=now_utc(),
                device_id=device.id,
                device_name=device.name,
                device_type=device.device_type.value,
                reading=reading,
                success=result.success,
                message=message,
            )
        )
        self._notify("reading")
        return result.success


def _no_active_devices(description: str) -> EmulatorNotice:
    logger.info("%s: %s", NO_ACTIVE_DEVICES, description)
    return EmulatorNotice(NO_ACTIVE_DEVICES, description, "destructive")
