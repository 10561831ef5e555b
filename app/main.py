from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .core.config import settings
from .core.log import configure_logging

from .api.routes import router as api_router
import app.api.routes as routes_module

from .domain.interfaces import Dispatcher
from .domain.models import UplinkOptions
from .drivers.dispatch_api import ApiSimulateDispatcher
from .drivers.dispatch_sim import SimulatedDispatcher
from .drivers.dispatch_ttn import TTNWebhookDispatcher
from .services.device_registry import DeviceRegistry
from .services.emulator import EmulatorService
from .ttn.validation import TTNConfig


logger = logging.getLogger(__name__)


def uplink_defaults() -> UplinkOptions:
    return UplinkOptions(
        f_port=settings.uplink_f_port,
        rssi=settings.uplink_rssi,
        snr=settings.uplink_snr,
        frequency=settings.uplink_frequency,
        spreading_factor=settings.uplink_spreading_factor,
        bandwidth=settings.uplink_bandwidth,
    )


def build_dispatcher(registry: DeviceRegistry) -> Dispatcher:
    mode = settings.dispatch_mode.lower()

    if mode == "api":
        return ApiSimulateDispatcher(
            base_url=settings.api_base_url,
            auth_header=settings.api_auth_header,
            timeout=settings.dispatch_timeout_seconds,
            retries=settings.dispatch_retries,
        )

    if mode == "ttn":
        return TTNWebhookDispatcher(
            TTNConfig(
                app_id=settings.ttn_app_id,
                api_key=settings.ttn_api_key,
                region=settings.ttn_region,
                webhook_url=settings.ttn_webhook_url or None,
            ),
            device_lookup=registry.get,
            webhook_id=settings.ttn_webhook_id,
            base_options=uplink_defaults(),
            timeout=settings.dispatch_timeout_seconds,
            retries=settings.dispatch_retries,
        )

    # default to sim
    return SimulatedDispatcher(
        device_lookup=registry.get,
        app_id=settings.ttn_app_id or "simulated-app",
        history=settings.sim_history,
        failure_rate=settings.sim_failure_rate,
        base_options=uplink_defaults(),
    )


# --- Singletons ---
registry = DeviceRegistry()
emulator: EmulatorService | None = None
dispatcher: Dispatcher | None = None


def get_emulator() -> EmulatorService:
    assert emulator is not None
    return emulator


def get_registry() -> DeviceRegistry:
    return registry


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    logger.info("Starting %s (dispatch_mode=%s)", settings.app_name, settings.dispatch_mode)

    global emulator, dispatcher
    dispatcher = build_dispatcher(registry)
    emulator = EmulatorService(
        registry=registry,
        dispatcher=dispatcher,
        default_interval_s=settings.default_interval_seconds,
        max_logs=settings.max_logs,
    )
    if settings.autostart:
        notice = await emulator.start_emulation()
        logger.info("Autostart: %s - %s", notice.title, notice.description)

    try:
        yield
    finally:
        await emulator.close()
        await dispatcher.aclose()
        emulator = None
        dispatcher = None
        logger.info("Shutdown complete")


app = FastAPI(title=settings.app_name, lifespan=lifespan)

# Make the dependency functions in routes resolve to the real ones
app.dependency_overrides[routes_module.get_emulator] = get_emulator
app.dependency_overrides[routes_module.get_registry] = get_registry

app.include_router(api_router, prefix="/api")
