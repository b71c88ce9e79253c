"""Discovers the tools currently exposed by the page and its frames."""

import asyncio
import json
import logging
from typing import (
    Any,
    Dict,
    List,
    Mapping,
)

from pagepilot.bridge.base import (
    BridgeError,
    Origin,
    OriginBridge,
)
from pagepilot.core.schema import Tool

logger = logging.getLogger(__name__)


def _normalize_schema(raw: Any) -> Dict[str, Any]:
    # Pages may report the schema as a JSON string.
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            return {"type": "object", "properties": {}}
    if isinstance(raw, Mapping) and raw:
        return dict(raw)
    return {"type": "object", "properties": {}}


def _to_tool(descriptor: Mapping[str, Any], origin: Origin, url: str) -> Tool | None:
    name = descriptor.get("name")
    if not isinstance(name, str) or not name:
        return None
    return Tool(
        name=name,
        description=str(descriptor.get("description") or ""),
        input_schema=_normalize_schema(
            descriptor.get("inputSchema", descriptor.get("input_schema"))
        ),
        origin_key=origin.key,
        origin_url=url or origin.url,
        is_trusted_origin=origin.is_top_level,
    )


class CapabilityDirectory:
    """
    Snapshot the tool surface of a page.

    With ``include_embedded`` off only the top document is queried.  Otherwise every origin the
    bridge enumerates is queried concurrently; an origin that fails contributes no tools.
    """

    def __init__(self, bridge: OriginBridge, include_embedded: bool = False) -> None:
        self.bridge = bridge
        self.include_embedded = include_embedded

    async def discover(self) -> List[Tool]:
        """Return the current tools, deduplicated by ``(name, origin_key)``."""
        top = Origin(key=self.bridge.top_origin_key, is_top_level=True)
        if not self.include_embedded:
            return self._merge([await self._query(top)])

        try:
            origins = await self.bridge.list_origins()
        except BridgeError as exc:
            logger.info("Frame enumeration failed (%s); falling back to the top frame", exc)
            return self._merge([await self._query(top)])

        batches = await asyncio.gather(*(self._query(origin) for origin in origins))
        return self._merge(batches)

    async def _query(self, origin: Origin) -> List[Tool]:
        try:
            listing = await self.bridge.list_tools(origin.key)
        except BridgeError as exc:
            logger.debug("Origin %s contributed no tools: %s", origin.key, exc)
            return []
        tools = []
        for descriptor in listing.tools:
            tool = _to_tool(descriptor, origin, listing.url)
            if tool is not None:
                tools.append(tool)
        return tools

    @staticmethod
    def _merge(batches: List[List[Tool]]) -> List[Tool]:
        seen: set[tuple[str, str]] = set()
        merged: List[Tool] = []
        for batch in batches:
            for tool in batch:
                key = (tool.name, tool.origin_key)
                if key in seen:
                    continue
                seen.add(key)
                merged.append(tool)
        logger.debug("Discovered %d tools across %d origins", len(merged), len(batches))
        return merged
