from __future__ import annotations
from typing import Any, Protocol, runtime_checkable
from .models import DispatchResult


class DispatchError(RuntimeError):
    """Raised by a transport when an uplink could not be delivered."""


@runtime_checkable
class Dispatcher(Protocol):
    async def dispatch(self, device_id: str, payload: dict[str, Any]) -> DispatchResult:
        ...

    async def aclose(self) -> None:
        ...
