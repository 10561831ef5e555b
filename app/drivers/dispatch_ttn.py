from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Callable, Optional

import httpx

from ..domain.interfaces import DispatchError
from ..domain.models import Device, DispatchResult, SensorReading, UplinkOptions
from ..ttn.uplink import format_uplink, webhook_uplink_url
from ..ttn.validation import TTNConfig, validate_ttn_config

logger = logging.getLogger(__name__)


class TTNWebhookDispatcher:
    """Sends formatted uplinks straight to a TTN application webhook."""

    def __init__(
        self,
        config: TTNConfig,
        device_lookup: Callable[[str], Optional[Device]],
        webhook_id: str = "emulator",
        base_options: Optional[UplinkOptions] = None,
        timeout: float = 10.0,
        retries: int = 1,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        result = validate_ttn_config(config)
        if not result.valid:
            raise ValueError("; ".join(result.errors or []))

        self._config = config
        self._lookup = device_lookup
        self._webhook_id = webhook_id
        self._options = base_options or UplinkOptions()
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=retries),
        )

    async def dispatch(self, device_id: str, payload: dict[str, Any]) -> DispatchResult:
        device = self._lookup(device_id)
        if device is None:
            raise DispatchError(f"Device not found: {device_id}")

        f_cnt = int(payload.get("f_cnt", self._options.f_cnt))
        uplink = format_uplink(
            device.name,
            device.dev_eui,
            self._config.app_id,
            SensorReading.from_dict(payload),
            replace(self._options, f_cnt=f_cnt),
        )
        url = webhook_uplink_url(self._config.region, self._config.app_id, self._webhook_id, device.name)

        try:
            resp = await self._client.post(
                url,
                json=uplink,
                headers={"Authorization": f"Bearer {self._config.api_key}"},
            )
        except httpx.HTTPError as e:
            raise DispatchError(f"TTN request failed: {e}") from e

        if resp.is_error:
            logger.warning("TTN API error status=%s body=%s", resp.status_code, resp.text)
            return DispatchResult(
                success=False,
                message=f"Failed to send uplink to TTN (HTTP {resp.status_code}): {resp.text}",
            )

        logger.info("TTN uplink sent device=%s f_cnt=%s", device.name, f_cnt)
        return DispatchResult(success=True, message="Uplink sent to TTN successfully")

    async def aclose(self) -> None:
        await self._client.aclose()
