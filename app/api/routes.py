from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from ..codec.payload import decode_payload, encode_payload
from ..core.config import settings
from ..domain.models import EmulationLog, EmulatorNotice
from ..services.device_registry import DeviceRegistry
from ..services.emulator import EmulatorService
from ..ttn.uplink import (
    application_api_url,
    format_uplink,
    ttn_api_url,
    uplink_simulate_url,
)
from ..ttn.validation import TTNConfig, validate_dev_eui, validate_ttn_config
from .schemas import (
    DecodeRequest,
    DeviceIn,
    DeviceListRequest,
    FormatUplinkRequest,
    ReadingIn,
    TTNConfigIn,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# --- Dependency getters ---
# main.py points these at the real instances via app.dependency_overrides.
def get_emulator() -> EmulatorService:  # overridden in main
    raise HTTPException(status_code=503, detail="Emulator dependency not configured")

def get_registry() -> DeviceRegistry:  # overridden in main
    raise HTTPException(status_code=503, detail="Device registry dependency not configured")


def _notice(n: EmulatorNotice) -> dict:
    return {"title": n.title, "description": n.description, "variant": n.variant}


def _log_out(log: EmulationLog) -> dict:
    return {
        "id": log.id,
        "timestamp": log.timestamp.isoformat(),
        "device_id": log.device_id,
        "device_name": log.device_name,
        "device_type": log.device_type,
        "reading": log.reading.to_dict(),
        "success": log.success,
        "message": log.message,
    }


def _state(svc: EmulatorService) -> dict:
    return {
        "status": svc.status.value,
        "readings_count": svc.readings_count,
        "last_error": svc.last_error,
        "active_device_count": svc.active_device_count,
        "running_devices": sorted(svc.running_device_ids),
    }


# --- Emulator ---
@router.get("/emulator")
async def emulator_state(svc: EmulatorService = Depends(get_emulator)):
    return {"app": settings.app_name, **_state(svc)}


@router.post("/emulator/start")
async def emulator_start(svc: EmulatorService = Depends(get_emulator)):
    notice = await svc.start_emulation()
    return {"notice": _notice(notice), **_state(svc)}


@router.post("/emulator/stop")
async def emulator_stop(svc: EmulatorService = Depends(get_emulator)):
    notice = svc.stop_emulation()
    return {"notice": _notice(notice), **_state(svc)}


@router.post("/emulator/send")
async def emulator_send(svc: EmulatorService = Depends(get_emulator)):
    notice = await svc.send_single_reading()
    return {"notice": _notice(notice), **_state(svc)}


@router.post("/emulator/reset")
async def emulator_reset(svc: EmulatorService = Depends(get_emulator)):
    svc.reset_emulation()
    return {"ok": True, **_state(svc)}


@router.get("/emulator/logs")
async def emulator_logs(limit: int = 100, svc: EmulatorService = Depends(get_emulator)):
    logs = svc.logs[: max(0, limit)]
    return {"rows": [_log_out(log) for log in logs]}


# --- Devices ---
def _device_out(d) -> dict:
    return {
        "id": d.id,
        "name": d.name,
        "dev_eui": d.dev_eui,
        "device_type": d.device_type.value,
        "status": d.status.value,
        "simulation_params": {k: v for k, v in d.simulation_params.__dict__.items() if v is not None},
    }


def _checked(req: DeviceIn):
    if not validate_dev_eui(req.dev_eui):
        raise HTTPException(status_code=400, detail=f"Invalid DevEUI for device {req.id}: {req.dev_eui}")
    return req.to_device()


@router.get("/devices")
async def list_devices(registry: DeviceRegistry = Depends(get_registry)):
    return {"devices": [_device_out(d) for d in registry.all()]}


@router.put("/devices")
async def replace_devices(
    req: DeviceListRequest,
    registry: DeviceRegistry = Depends(get_registry),
    svc: EmulatorService = Depends(get_emulator),
):
    devices = [_checked(d) for d in req.devices]
    registry.replace(devices)
    await svc.wait_idle()
    return {"ok": True, "count": len(devices), **_state(svc)}


@router.put("/devices/{device_id}")
async def upsert_device(
    device_id: str,
    req: DeviceIn,
    registry: DeviceRegistry = Depends(get_registry),
    svc: EmulatorService = Depends(get_emulator),
):
    if req.id != device_id:
        raise HTTPException(status_code=400, detail="Device id in path and body differ")
    registry.upsert(_checked(req))
    await svc.wait_idle()
    return {"ok": True, **_state(svc)}


@router.delete("/devices/{device_id}")
async def delete_device(
    device_id: str,
    registry: DeviceRegistry = Depends(get_registry),
    svc: EmulatorService = Depends(get_emulator),
):
    if not registry.remove(device_id):
        raise HTTPException(status_code=404, detail=f"Device not found: {device_id}")
    return {"ok": True, **_state(svc)}


# --- Payload / TTN tools ---
@router.post("/payload/encode")
async def payload_encode(req: ReadingIn):
    return {"payload": encode_payload(req.to_reading())}


@router.post("/payload/decode")
async def payload_decode(req: DecodeRequest):
    return {"reading": decode_payload(req.payload).to_dict()}


@router.post("/ttn/validate")
async def ttn_validate(req: TTNConfigIn):
    result = validate_ttn_config(
        TTNConfig(app_id=req.appId, api_key=req.apiKey, region=req.region, webhook_url=req.webhookUrl)
    )
    return {"valid": result.valid, "errors": result.errors}


@router.get("/ttn/dev-eui/{dev_eui}")
async def ttn_dev_eui(dev_eui: str):
    return {"dev_eui": dev_eui, "valid": validate_dev_eui(dev_eui)}


@router.get("/ttn/urls")
async def ttn_urls(region: str, app_id: str):
    return {
        "api": ttn_api_url(region),
        "application": application_api_url(region, app_id),
        "uplink_simulate": uplink_simulate_url(region, app_id),
    }


@router.post("/uplink/format")
async def uplink_format(req: FormatUplinkRequest):
    return format_uplink(
        req.device_id,
        req.dev_eui,
        req.app_id,
        req.reading.to_reading(),
        req.options.to_options(),
    )
