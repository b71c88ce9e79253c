"""
HTTP client for a page bridge relay.

The relay (typically a browser extension's native host) exposes the active tab over a tiny JSON API:

- **GET  /origins**                      - ``[{"key", "url", "is_top_level"}, ...]``
- **GET  /origins/{key}/tools**          - ``{"tools": [...], "url": "..."}``
- **POST /origins/{key}/execute**        - ``{"name": ..., "inputArgs": "<json>"}`` ->
  ``{"success": bool, "result": ..., "error": ...}``
"""

import logging
from typing import (
    Any,
    Dict,
    List,
    cast,
)

import httpx
from pydantic import ValidationError

from pagepilot.bridge.base import (
    BridgeError,
    Origin,
    OriginBridge,
    OriginListing,
)
from pagepilot.config import settings

logger = logging.getLogger(__name__)


class HttpBridge(OriginBridge):
    """:class:`OriginBridge` backed by an ``httpx.AsyncClient``."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        top_origin_key: str = "0",
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.top_origin_key = top_origin_key
        self._client = client or httpx.AsyncClient(
            base_url=base_url or settings.BRIDGE_URL,
            timeout=timeout if timeout is not None else settings.BRIDGE_TIMEOUT,
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            resp = await self._client.request(method, path, **kwargs)
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPError as exc:
            logger.debug("Bridge request %s %s failed: %s", method, path, exc)
            raise BridgeError(f"Bridge request failed: {exc}") from exc
        except ValueError as exc:
            raise BridgeError(f"Bridge returned invalid JSON for {path}") from exc

    async def list_origins(self) -> List[Origin]:
        payload = await self._request("GET", "/origins")
        try:
            return [Origin.model_validate(item) for item in payload]
        except (TypeError, ValidationError) as exc:
            raise BridgeError(f"Malformed origin list: {exc}") from exc

    async def list_tools(self, origin_key: str) -> OriginListing:
        payload = await self._request("GET", f"/origins/{origin_key}/tools")
        try:
            return OriginListing.model_validate(payload)
        except ValidationError as exc:
            raise BridgeError(f"Malformed tool list from origin '{origin_key}': {exc}") from exc

    async def execute_tool(self, origin_key: str, name: str, input_args: str) -> Dict[str, Any]:
        payload = await self._request(
            "POST",
            f"/origins/{origin_key}/execute",
            json={"name": name, "inputArgs": input_args},
        )
        if not isinstance(payload, dict):
            raise BridgeError(f"Malformed execution reply from origin '{origin_key}'")
        return cast(Dict[str, Any], payload)

    async def aclose(self) -> None:
        await self._client.aclose()
