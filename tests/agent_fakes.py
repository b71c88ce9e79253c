"""Scripted collaborators shared by the agent tests."""

import asyncio
import json
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Tuple,
)

from pagepilot.agent.planner_interface import (
    BasePlanner,
    PlannerError,
)
from pagepilot.bridge.local import LocalPage
from pagepilot.core.schema import (
    CompletionOutcome,
    ConversationState,
    Text,
    Tool,
    ToolCalls,
    ToolInvocationRequest,
)

HANG = object()
"""Script entry: the planner call never returns."""


def call(name: str, call_id: str | None = None, **arguments: Any) -> ToolInvocationRequest:
    return ToolInvocationRequest(
        call_id=call_id or f"call_{name}", name=name, raw_arguments=json.dumps(arguments)
    )


def calls(*requests: ToolInvocationRequest) -> ToolCalls:
    return ToolCalls(calls=list(requests))


def text(value: str) -> Text:
    return Text(text=value)


class ScriptedPlanner(BasePlanner):
    """Returns pre-baked outcomes in order and records every request."""

    def __init__(self, script: Sequence[Any]) -> None:
        self.script = list(script)
        self.requests: List[Dict[str, Any]] = []
        self.closed = False

    async def complete(
        self, instructions: str, tools: Sequence[Tool], state: ConversationState
    ) -> Tuple[CompletionOutcome, ConversationState]:
        self.requests.append(
            {
                "instructions": instructions,
                "tools": [t.name for t in tools],
                "surface": [t["name"] for t in self.tool_surface(tools)],
                "state": state,
            }
        )
        if not self.script:
            raise PlannerError("script exhausted")
        step = self.script.pop(0)
        if step is HANG:
            await asyncio.Event().wait()
        if isinstance(step, BaseException):
            raise step
        if callable(step):
            step = step()
        return step, state.advance(f"resp_{len(self.requests)}", [])

    async def aclose(self) -> None:
        self.closed = True


def shop_page(allow_tools: bool = True) -> LocalPage:
    """A page with a cart tool in the top document."""
    page = LocalPage("https://shop.example/product/1")
    page.cart = []  # type: ignore[attr-defined]
    if allow_tools:

        @page.top.tools.register_tool("add-to-cart")
        def add_to_cart(product_id: str, quantity: int = 1) -> str:
            """Add a product to the cart."""
            page.cart.append({"product_id": product_id, "quantity": quantity})  # type: ignore
            return f"Added {quantity} x {product_id}"

    return page


def recorder() -> Tuple[List[str], Callable]:
    """Event sink collecting event type names."""
    seen: List[str] = []

    def _sink(event: Any) -> None:
        seen.append(event.type.value)

    return seen, _sink
