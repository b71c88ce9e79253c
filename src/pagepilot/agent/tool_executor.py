"""Routes tool calls to the origin that exposes them and normalizes the reply."""

import json
import logging
from typing import Any

from pagepilot.bridge.base import OriginBridge
from pagepilot.core.schema import ExecutionOutcome

logger = logging.getLogger(__name__)

EMBEDDED_EXECUTION_DISABLED = (
    "Iframe tool execution is disabled (allow_embedded_origins is off)."
)


def _render_result(result: Any) -> str:
    if isinstance(result, str):
        return result
    try:
        return json.dumps(result, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(result)


class ExecutionRouter:
    """Dispatch calls through a bridge under the embedded-origin policy."""

    def __init__(self, bridge: OriginBridge, allow_embedded_origins: bool = False) -> None:
        self.bridge = bridge
        self.allow_embedded_origins = allow_embedded_origins

    async def execute(
        self, name: str, raw_arguments: str, origin_key: str | None = None
    ) -> ExecutionOutcome:
        """
        Run *name* inside *origin_key* (default: the top document).

        Parameters
        ----------
        name:
            Tool name as exposed by the origin.
        raw_arguments:
            JSON-encoded arguments, passed verbatim to the origin.
        origin_key:
            Routing key from the tool's discovery record.

        Returns
        -------
        ExecutionOutcome
            ``ok=True`` with the textual output, or ``ok=False`` with a human-readable error.
            Nothing is raised.
        """
        target = origin_key if origin_key is not None else self.bridge.top_origin_key
        if target != self.bridge.top_origin_key and not self.allow_embedded_origins:
            logger.warning("Refused '%s' in embedded origin %s by policy", name, target)
            return ExecutionOutcome(ok=False, error=EMBEDDED_EXECUTION_DISABLED)

        try:
            reply = await self.bridge.execute_tool(target, name, raw_arguments)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Tool '%s' failed in origin %s: %s", name, target, exc)
            return ExecutionOutcome(ok=False, error=str(exc) or type(exc).__name__)

        if reply.get("success"):
            return ExecutionOutcome(ok=True, output=_render_result(reply.get("result")))
        error = reply.get("error") or "Unknown error"
        logger.warning("Tool '%s' reported an error: %s", name, error)
        return ExecutionOutcome(ok=False, error=str(error))
