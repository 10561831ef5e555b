import asyncio
from dataclasses import replace

import pytest

from app.domain.models import DeviceStatus, DeviceType, EmulatorStatus, NO_ACTIVE_DEVICES, SimulationParams
from app.services.emulator import EmulatorService

from conftest import FakeDispatcher, make_device


@pytest.fixture
async def emulator(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher, default_interval_s=3600, max_logs=100)
    yield svc
    await svc.close()


async def test_send_single_reading_isolates_failures(registry):
    dispatcher = FakeDispatcher(failing={"bad"})
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("good"), make_device("bad")])

    notice = await svc.send_single_reading()

    assert svc.readings_count == 2
    by_device = {log.device_id: log for log in svc.logs}
    assert by_device["good"].success is True
    assert by_device["bad"].success is False
    assert by_device["bad"].message == "Error: gateway unreachable for bad"
    assert svc.last_error == "gateway unreachable for bad"
    assert notice.description == "1 succeeded, 1 failed"
    assert notice.variant == "default"
    await svc.close()


async def test_send_single_reading_payload_carries_frame_counter(emulator, registry, dispatcher):
    registry.replace([make_device("a", DeviceType.DOOR)])

    await emulator.send_single_reading()
    await emulator.send_single_reading()

    payloads = [p for _, p in dispatcher.calls]
    assert [p["f_cnt"] for p in payloads] == [1, 2]
    assert isinstance(payloads[0]["door_open"], bool)
    assert "battery" in payloads[0] and "timestamp" in payloads[0]
    assert "temperature" not in payloads[0]
    assert emulator.frame_counter("a") == 2


async def test_frame_counter_advances_on_failure(registry):
    dispatcher = FakeDispatcher(failing={"a"})
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("a")])

    await svc.send_single_reading()
    await svc.send_single_reading()

    assert [p["f_cnt"] for _, p in dispatcher.calls] == [1, 2]
    assert svc.readings_count == 2
    await svc.close()


async def test_failed_result_without_exception_sets_last_error(registry):
    class Rejecting(FakeDispatcher):
        async def dispatch(self, device_id, payload):
            from app.domain.models import DispatchResult
            self.calls.append((device_id, payload))
            return DispatchResult(success=False, message="TTN settings not configured")

    svc = EmulatorService(registry, Rejecting())
    registry.replace([make_device("a")])

    notice = await svc.send_single_reading()

    assert svc.logs[0].success is False
    assert svc.logs[0].message == "TTN settings not configured"
    assert svc.last_error == "TTN settings not configured"
    assert notice.variant == "destructive"
    await svc.close()


async def test_no_active_devices_guard(emulator, registry, dispatcher):
    registry.replace([make_device("a", status=DeviceStatus.INACTIVE)])

    send_notice = await emulator.send_single_reading()
    start_notice = await emulator.start_emulation()

    assert send_notice.title == NO_ACTIVE_DEVICES
    assert start_notice.title == NO_ACTIVE_DEVICES
    assert emulator.status is EmulatorStatus.STOPPED
    assert emulator.running_device_ids == frozenset()
    assert dispatcher.calls == []
    assert emulator.readings_count == 0


async def test_start_sends_immediately_and_tracks_timers(emulator, registry, dispatcher):
    registry.replace([make_device("a"), make_device("b"), make_device("c", status=DeviceStatus.INACTIVE)])

    notice = await emulator.start_emulation()

    assert notice.description == "Emulating 2 device(s)"
    assert emulator.status is EmulatorStatus.RUNNING
    assert emulator.running_device_ids == {"a", "b"}
    assert dispatcher.count("a") == 1
    assert dispatcher.count("b") == 1
    assert dispatcher.count("c") == 0
    assert emulator.active_device_count == 2


async def test_timers_fire_at_device_interval(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher, default_interval_s=3600)
    registry.replace([make_device("fast", interval=0.05), make_device("slow", interval=None)])

    await svc.start_emulation()
    await asyncio.sleep(0.28)
    await svc.wait_idle()

    assert dispatcher.count("fast") >= 4
    assert dispatcher.count("slow") == 1
    await svc.close()


async def test_stop_cancels_every_timer(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("a", interval=0.05)])

    await svc.start_emulation()
    notice = svc.stop_emulation()
    sent = len(dispatcher.calls)
    await asyncio.sleep(0.2)

    assert svc.status is EmulatorStatus.STOPPED
    assert svc.running_device_ids == frozenset()
    assert len(dispatcher.calls) == sent
    assert notice.description == f"Total readings sent: {svc.readings_count}"
    await svc.close()


async def test_adding_device_while_running_starts_only_that_device(emulator, registry, dispatcher):
    a = make_device("a")
    registry.replace([a])
    await emulator.start_emulation()
    timer_a = emulator._timers["a"]

    registry.upsert(make_device("b"))
    await emulator.wait_idle()

    assert dispatcher.count("a") == 1
    assert dispatcher.count("b") == 1
    assert emulator.running_device_ids == {"a", "b"}
    assert emulator._timers["a"] is timer_a
    assert not timer_a.done()


async def test_deactivating_device_cancels_its_timer(emulator, registry, dispatcher):
    registry.replace([make_device("a"), make_device("b")])
    await emulator.start_emulation()
    timer_b = emulator._timers["b"]

    registry.upsert(make_device("b", status=DeviceStatus.INACTIVE))
    await asyncio.sleep(0.01)

    assert emulator.running_device_ids == {"a"}
    assert timer_b.cancelled()

    registry.remove("a")
    await asyncio.sleep(0.01)
    assert emulator.running_device_ids == frozenset()
    assert len(dispatcher.calls) == 2


async def test_sync_devices_is_noop_when_stopped(emulator, registry, dispatcher):
    registry.replace([make_device("a")])
    await emulator.sync_devices()
    assert dispatcher.calls == []
    assert emulator.running_device_ids == frozenset()


async def test_sync_devices_does_not_duplicate(emulator, registry, dispatcher):
    registry.replace([make_device("a")])
    await emulator.start_emulation()

    await emulator.sync_devices()
    await emulator.sync_devices()

    assert dispatcher.count("a") == 1


async def test_log_buffer_is_bounded_newest_first(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher, max_logs=2)
    registry.replace([make_device("a")])

    for _ in range(3):
        await svc.send_single_reading()

    assert len(svc.logs) == 2
    assert svc.readings_count == 3
    f_cnts = [p["f_cnt"] for _, p in dispatcher.calls]
    assert f_cnts == [1, 2, 3]
    # newest first: the surviving entries are the 3rd and 2nd sends
    assert svc.logs[0].timestamp >= svc.logs[1].timestamp
    await svc.close()


async def test_reset_clears_counters_but_not_timers(emulator, registry, dispatcher):
    registry.replace([make_device("a")])
    await emulator.start_emulation()

    emulator.reset_emulation()

    assert emulator.readings_count == 0
    assert emulator.logs == ()
    assert emulator.last_error is None
    assert emulator.frame_counter("a") == 0
    assert emulator.status is EmulatorStatus.RUNNING
    assert emulator.running_device_ids == {"a"}

    await emulator.send_single_reading()
    assert dispatcher.calls[-1][1]["f_cnt"] == 1


async def test_in_flight_uplink_completes_after_stop(registry):
    dispatcher = FakeDispatcher(delay=0.1)
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("a", interval=0.02)])

    start = asyncio.create_task(svc.start_emulation())
    await asyncio.sleep(0.05)
    svc.stop_emulation()
    await start
    await svc.wait_idle()

    assert svc.readings_count == len(dispatcher.calls)
    assert all(log.success for log in svc.logs)
    await svc.close()


async def test_close_cancels_timers_and_unsubscribes(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("a", interval=0.02)])
    await svc.start_emulation()
    timer = svc._timers["a"]

    await svc.close()
    sent = len(dispatcher.calls)
    registry.upsert(make_device("b"))
    await asyncio.sleep(0.1)

    assert timer.done()
    assert len(dispatcher.calls) == sent
    assert svc.status is EmulatorStatus.STOPPED
    with pytest.raises(RuntimeError):
        await svc.start_emulation()


async def test_listeners_are_notified(emulator, registry):
    events = []
    unsubscribe = emulator.subscribe(events.append)
    registry.replace([make_device("a")])

    await emulator.start_emulation()
    emulator.stop_emulation()
    unsubscribe()
    emulator.reset_emulation()

    assert events == ["status", "reading", "status"]


async def test_error_status_is_advisory(registry):
    dispatcher = FakeDispatcher(failing={"a"})
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("a")])

    await svc.start_emulation()
    assert svc.status is EmulatorStatus.ERROR
    assert svc.is_running
    assert svc.running_device_ids == {"a"}

    dispatcher.failing.clear()
    registry.upsert(make_device("b"))
    await svc.send_single_reading()
    # Another device succeeding does not clear the flag
    assert svc.status is EmulatorStatus.ERROR
    assert svc.last_error == "gateway unreachable for a"

    svc.stop_emulation()
    assert svc.status is EmulatorStatus.STOPPED
    await svc.start_emulation()
    assert svc.status is EmulatorStatus.RUNNING
    assert svc.last_error is None
    await svc.close()


async def test_generation_failure_is_logged_not_raised(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher)
    broken = replace(make_device("broken"), simulation_params=SimulationParams(min_value="a", max_value="b"))
    registry.replace([broken, make_device("ok")])

    notice = await svc.send_single_reading()

    assert svc.readings_count == 2
    by_device = {log.device_id: log for log in svc.logs}
    assert by_device["broken"].success is False
    assert by_device["broken"].message.startswith("Error: ")
    assert by_device["broken"].reading.is_empty()
    assert by_device["ok"].success is True
    assert dispatcher.count("broken") == 0
    assert svc.frame_counter("broken") == 0
    assert notice.description == "1 succeeded, 1 failed"
    await svc.close()


async def test_start_with_broken_device_still_runs(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher)
    broken = replace(make_device("broken"), simulation_params=SimulationParams(interval=0.02, min_value="a", max_value="b"))
    registry.replace([broken])

    await svc.start_emulation()
    await asyncio.sleep(0.1)

    assert svc.status is EmulatorStatus.ERROR
    assert svc.readings_count >= 3
    assert not svc._timers["broken"].done()
    await svc.close()


async def test_timer_survives_failing_ticks(registry, dispatcher):
    svc = EmulatorService(registry, dispatcher)
    registry.replace([make_device("a", interval=0.02)])
    await svc.start_emulation()
    timer = svc._timers["a"]

    def exploding(device):
        raise RuntimeError("tick exploded")

    svc._spawn_send = exploding
    await asyncio.sleep(0.1)
    assert not timer.done()

    del svc._spawn_send
    sent = dispatcher.count("a")
    await asyncio.sleep(0.1)
    assert dispatcher.count("a") > sent
    await svc.close()


@pytest.mark.parametrize("interval", [-5, 0])
async def test_non_positive_interval_uses_default(registry, dispatcher, interval):
    svc = EmulatorService(registry, dispatcher, default_interval_s=3600)
    registry.replace([make_device("a", interval=interval)])

    await svc.start_emulation()
    await asyncio.sleep(0.05)
    await svc.wait_idle()

    assert dispatcher.count("a") == 1
    assert svc._interval_for(registry.get("a")) == 3600
    await svc.close()
