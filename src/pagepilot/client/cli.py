"""Terminal host for PagePilot: runs the agent in-process and renders its events."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import threading
from typing import (
    Any,
    Awaitable,
    Callable,
    Sequence,
    Tuple,
)

from pagepilot.agent.agent_loop import AgentLoop
from pagepilot.agent.approval import NO_REPLY
from pagepilot.agent.capability_directory import CapabilityDirectory
from pagepilot.agent.planner_interface import BasePlanner
from pagepilot.agent.tool_executor import ExecutionRouter
from pagepilot.bridge.base import OriginBridge
from pagepilot.common import (
    AnsiColors,
    colored_print,
    truncate,
)
from pagepilot.config import AgentConfig
from pagepilot.core.schema import (
    AgentEvent,
    EventType,
    Tool,
)
from pagepilot.tools.tool_call_parser import encode_arguments

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Event rendering
# ---------------------------------------------------------------------------
def render_event(event: AgentEvent) -> None:
    """Print one event as a coloured log line."""
    data = event.data
    kind = event.type
    if kind is EventType.TOOLS_DISCOVERED:
        colored_print(f"── Step {event.iteration} ──", AnsiColors.BLUE)
        names = ", ".join(t["name"] for t in data.get("tools", [])) or "(none)"
        colored_print(f"Tools: {names}", AnsiColors.GREY)
    elif kind is EventType.LLM_REQUEST:
        colored_print(f"Thinking... ({data.get('message_count', 0)} input items)", AnsiColors.GREY)
    elif kind is EventType.TOOL_CALL_PENDING:
        args = json.dumps(data.get("args"), ensure_ascii=False)
        colored_print(f"→ {data['name']}({truncate(args)})", AnsiColors.YELLOW)
    elif kind is EventType.WAITING_APPROVAL:
        colored_print(f"⏸ Waiting for approval: {data['name']}", AnsiColors.YELLOW)
    elif kind is EventType.TOOL_EXECUTING:
        colored_print(f"Executing {data['name']}...", AnsiColors.GREY)
    elif kind is EventType.TOOL_RESULT:
        colored_print(f"← {truncate(str(data.get('result', '')), 500)}", AnsiColors.GREEN)
    elif kind is EventType.ASK_USER:
        colored_print(f"❓ {data['question']}", AnsiColors.YELLOW)
    elif kind is EventType.SKIPPED:
        colored_print(f"⊘ Skipped {data['name']}", AnsiColors.YELLOW)
    elif kind is EventType.COMPLETED:
        colored_print(f"✓ {data.get('reason', '')}", AnsiColors.GREEN)
    elif kind is EventType.ABORTED:
        colored_print(f"⏹ Aborted at step {event.iteration}", AnsiColors.RED)
    elif kind is EventType.ERROR:
        colored_print(f"✗ {data.get('error', '')}", AnsiColors.RED)


def format_tool(tool: Tool) -> str:
    """One-line description of a discovered tool."""
    label = "" if tool.is_trusted_origin else f" [iframe {tool.origin_url or tool.origin_key}]"
    return f"{tool.name}{label} @{tool.origin_key}: {tool.description}"


# ---------------------------------------------------------------------------
# Console collaborators
# ---------------------------------------------------------------------------
def get_user_message(prompt: str = "") -> Tuple[str, bool]:
    """
    Get a message from the user via standard input.

    Returns:
        Tuple of (user_input, success_flag)
        The success_flag is False if input couldn't be read (e.g., Ctrl+C)
    """
    try:
        user_input = input(prompt).strip()
        return user_input, True
    except (EOFError, KeyboardInterrupt):
        return "", False


def read_user_message(prompt: str = "") -> Awaitable[Tuple[str, bool]]:
    """
    Read one line on a daemon thread and deliver it through a future.

    A cancelled run must not wait for the user to press Enter: nothing joins the reader thread
    at interpreter or event-loop shutdown, and a line typed after the loop closed is dropped.
    """
    loop = asyncio.get_running_loop()
    future: asyncio.Future = loop.create_future()

    def _deliver(result: Tuple[str, bool]) -> None:
        if not future.done():
            future.set_result(result)

    def _worker() -> None:
        result = get_user_message(prompt)
        try:
            loop.call_soon_threadsafe(_deliver, result)
        except RuntimeError:
            logger.debug("Event loop closed; dropping console input %r", result[0])

    threading.Thread(target=_worker, name="pagepilot-stdin", daemon=True).start()
    return future


class ConsoleCollaborators:
    """Approval gate and user-reply source reading from the terminal."""

    def __init__(self, loop_ref: AgentLoop | None = None) -> None:
        self.agent: AgentLoop | None = loop_ref

    async def approve(self, tool_name: str, arguments: Any) -> bool:
        prompt = f"Run {tool_name}? [y]es / [n]o (skip) / [a]bort: "
        answer, ok = await read_user_message(prompt)
        answer = answer.lower()
        if not ok or answer.startswith("a"):
            if self.agent is not None:
                self.agent.cancel()
            return False
        return answer in {"", "y", "yes"}

    async def reply(self, question: str) -> str:  # pylint: disable=unused-argument
        answer, ok = await read_user_message("💬 ")
        if not ok and self.agent is not None:
            self.agent.cancel()
        return answer or NO_REPLY


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------
async def run_goal(
    goal: str,
    bridge: OriginBridge,
    planner: BasePlanner,
    config: AgentConfig,
    on_event: Callable[[AgentEvent], None] | None = None,
) -> AgentEvent:
    """Run the agent for *goal* with terminal approval / replies; Ctrl+C cancels."""
    console = ConsoleCollaborators()
    agent = AgentLoop(
        bridge,
        planner,
        config,
        approval=console.approve,
        user_reply=console.reply,
        on_event=on_event or render_event,
    )
    console.agent = agent

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, agent.cancel)
        installed = True
    except (NotImplementedError, RuntimeError):
        installed = False
    try:
        return await agent.run(goal)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)
        await planner.aclose()
        await bridge.aclose()


async def list_tools(bridge: OriginBridge, include_embedded: bool) -> Sequence[Tool]:
    """Discover and print the page's tools without involving the model."""
    try:
        tools = await CapabilityDirectory(bridge, include_embedded=include_embedded).discover()
    finally:
        await bridge.aclose()
    if not tools:
        colored_print("No tools detected.", AnsiColors.YELLOW)
    for tool in tools:
        colored_print(format_tool(tool), AnsiColors.GREEN)
    return tools


async def call_tool(
    bridge: OriginBridge,
    name: str,
    args: Any,
    origin_key: str | None = None,
    allow_embedded_origins: bool = False,
) -> bool:
    """Execute one tool manually through the execution router; return True on success."""
    router = ExecutionRouter(bridge, allow_embedded_origins=allow_embedded_origins)
    try:
        outcome = await router.execute(name, encode_arguments(args), origin_key)
    finally:
        await bridge.aclose()
    colored_print(outcome.as_text(), AnsiColors.GREEN if outcome.ok else AnsiColors.RED)
    return outcome.ok
