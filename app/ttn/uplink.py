from __future__ import annotations
from typing import Any, Optional

from ..codec.payload import encode_payload
from ..core.timeutil import now_utc, iso_z, epoch_millis
from ..domain.models import SensorReading, UplinkOptions

SIMULATED_GATEWAY_ID = "simulated-gateway"
SIMULATED_GATEWAY_EUI = "AA555A0000000000"


def format_uplink(
    device_id: str,
    dev_eui: str,
    app_id: str,
    reading: SensorReading,
    options: Optional[UplinkOptions] = None,
) -> dict[str, Any]:
    """Build a TTN v3 uplink envelope for one simulated transmission.

    ``frm_payload`` carries the encoded bytes; ``decoded_payload`` repeats
    the reading as given so webhook consumers can inspect it without a
    payload formatter.
    """
    opts = options or UplinkOptions()
    now = now_utc()

    return {
        "end_device_ids": {
            "device_id": device_id,
            "dev_eui": dev_eui,
            "application_ids": {
                "application_id": app_id,
            },
        },
        "uplink_message": {
            "f_port": opts.f_port,
            "f_cnt": opts.f_cnt,
            "frm_payload": encode_payload(reading),
            "decoded_payload": reading.to_dict(),
            "rx_metadata": [
                {
                    "gateway_ids": {
                        "gateway_id": SIMULATED_GATEWAY_ID,
                        "eui": SIMULATED_GATEWAY_EUI,
                    },
                    "rssi": opts.rssi,
                    "snr": opts.snr,
                    "time": iso_z(now),
                    "timestamp": epoch_millis(now),
                }
            ],
            "settings": {
                "data_rate": {
                    "lora": {
                        "bandwidth": opts.bandwidth,
                        "spreading_factor": opts.spreading_factor,
                    },
                },
                "frequency": opts.frequency,
            },
            "received_at": iso_z(now),
        },
    }


# --- TTN v3 API URLs ---

def ttn_api_url(region: str) -> str:
    return f"https://{region}.cloud.thethings.network/api/v3"


def application_api_url(region: str, app_id: str) -> str:
    return f"{ttn_api_url(region)}/as/applications/{app_id}"


def uplink_simulate_url(region: str, app_id: str) -> str:
    return f"{application_api_url(region, app_id)}/webhooks/uplink/simulate"


def webhook_uplink_url(region: str, app_id: str, webhook_id: str, device_id: str) -> str:
    return f"{application_api_url(region, app_id)}/webhooks/{webhook_id}/devices/{device_id}/up"
