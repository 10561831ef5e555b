from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from ..domain.interfaces import DispatchError
from ..domain.models import DispatchResult

logger = logging.getLogger(__name__)


class ApiSimulateDispatcher:
    """Posts readings to the backend's per-device simulate endpoint.

    The backend formats and forwards the uplink; this side only carries the
    reading fields and the frame counter.
    """

    def __init__(
        self,
        base_url: str,
        auth_header: str = "",
        timeout: float = 10.0,
        retries: int = 1,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Content-Type": "application/json"}
        if auth_header:
            headers["Authorization"] = auth_header
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=httpx.AsyncHTTPTransport(retries=retries),
        )

    async def dispatch(self, device_id: str, payload: dict[str, Any]) -> DispatchResult:
        try:
            resp = await self._client.post(f"/api/ttn/simulate/{device_id}", json=payload)
        except httpx.HTTPError as e:
            raise DispatchError(f"Simulate request failed: {e}") from e

        if resp.is_error:
            raise DispatchError(_error_message(resp))

        data = resp.json()
        return DispatchResult(
            success=bool(data.get("success", False)),
            message=data.get("message") or data.get("error") or "",
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return resp.reason_phrase or f"HTTP {resp.status_code}"
    if isinstance(data, dict):
        return data.get("message") or data.get("error") or "API request failed"
    return "API request failed"
