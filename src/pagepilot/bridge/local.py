"""In-process page bridge: frames backed by :class:`~pagepilot.tools.ToolRegistry` instances."""

import inspect
import json
import logging
from typing import (
    Any,
    Dict,
    List,
)

from pagepilot.bridge.base import (
    BridgeError,
    Origin,
    OriginBridge,
    OriginListing,
)
from pagepilot.tools import ToolRegistry

logger = logging.getLogger(__name__)


class ToolExecutionError(RuntimeError):
    """Raised when a requested tool cannot run or fails."""


class LocalFrame:
    """One document of a :class:`LocalPage`."""

    def __init__(self, key: str, url: str, is_top_level: bool = False) -> None:
        self.key = key
        self.url = url
        self.is_top_level = is_top_level
        self.tools = ToolRegistry()
        # A frame without a bridge (no content script, no tool API) refuses every request.
        self.reachable = True


class LocalPage(OriginBridge):
    """
    A page living in this process.

    Useful for embedding the agent next to Python-defined tools and for exercising the loop
    without a browser::

        page = LocalPage("https://shop.example")

        @page.top.tools.register_tool("add-to-cart")
        def add_to_cart(product_id: str) -> str:
            ...
    """

    def __init__(self, url: str = "about:blank") -> None:
        self._frames: Dict[str, LocalFrame] = {}
        self._next_key = 0
        self.top = self.add_frame(url, is_top_level=True)
        self.top_origin_key = self.top.key
        self.fail_enumeration = False

    def add_frame(self, url: str, is_top_level: bool = False) -> LocalFrame:
        """Attach a new document and return it."""
        frame = LocalFrame(str(self._next_key), url, is_top_level=is_top_level)
        self._next_key += 1
        self._frames[frame.key] = frame
        return frame

    def remove_frame(self, key: str) -> None:
        if key == self.top_origin_key:
            raise ValueError("The top-level document cannot be removed.")
        self._frames.pop(key, None)

    def _frame(self, origin_key: str) -> LocalFrame:
        frame = self._frames.get(origin_key)
        if frame is None or not frame.reachable:
            raise BridgeError(f"Origin '{origin_key}' is not reachable.")
        return frame

    async def list_origins(self) -> List[Origin]:
        if self.fail_enumeration:
            raise BridgeError("Frame enumeration is not available for this page.")
        return [
            Origin(key=f.key, url=f.url, is_top_level=f.is_top_level)
            for f in self._frames.values()
        ]

    async def list_tools(self, origin_key: str) -> OriginListing:
        frame = self._frame(origin_key)
        return OriginListing(
            tools=[dict(schema) for schema in frame.tools.get_tool_schemas()], url=frame.url
        )

    async def execute_tool(self, origin_key: str, name: str, input_args: str) -> Dict[str, Any]:
        frame = self._frame(origin_key)
        try:
            result = await self._invoke(frame, name, input_args)
        except ToolExecutionError as exc:
            return {"success": False, "error": str(exc)}
        return {"success": True, "result": result}

    async def _invoke(self, frame: LocalFrame, name: str, input_args: str) -> Any:
        tool_fn = frame.tools.get(name)
        if tool_fn is None:
            raise ToolExecutionError(f"Tool '{name}' is not registered.")

        try:
            args = json.loads(input_args) if input_args else {}
        except ValueError as exc:
            raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
        if not isinstance(args, dict):
            raise ToolExecutionError(f"Invalid arguments for tool '{name}': expected an object")

        try:
            logger.debug("Executing tool '%s' in frame %s with args=%s", name, frame.key, args)
            result = tool_fn(**args)
            if inspect.isawaitable(result):
                result = await result
            return result
        except TypeError as exc:
            # Argument mismatch: give the caller a clean exception.
            logger.exception("Argument error while executing tool '%s'", name)
            raise ToolExecutionError(f"Invalid arguments for tool '{name}': {exc}") from exc
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error in tool '%s'", name)
            raise ToolExecutionError(str(exc)) from exc
