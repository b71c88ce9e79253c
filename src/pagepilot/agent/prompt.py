"""Instructions sent with every planner request."""

import json
from typing import Sequence

from pagepilot.core.schema import Tool

SYSTEM_PROMPT = """\
You are a browser automation agent. \
You interact with web pages by calling tools exposed by the page.

RULES:
1. Call exactly ONE tool per turn. After each call, the available tools may change \
(the page updates its state). You will receive the updated tool list.
2. When the goal is fully achieved, call the "complete" tool with a short summary.
3. If you need information the goal does not provide, call the "ask_user" tool.
4. Use the tool descriptions to understand what each tool does and what parameters it expects.
5. Always progress toward the user's goal. Do not repeat actions already completed."""

CONTINUE_PROMPT = "Continue."


def build_instructions(tools: Sequence[Tool], show_origins: bool = True) -> str:
    """Render the system prompt followed by the current tool list."""
    lines = []
    for tool in tools:
        label = f" [{tool.origin_label}]" if show_origins else ""
        schema = json.dumps(tool.input_schema, ensure_ascii=False)
        lines.append(f"- {tool.name}{label}: {tool.description}\n  inputSchema: {schema}")
    return SYSTEM_PROMPT + "\n\nCURRENTLY AVAILABLE TOOLS:\n" + "\n".join(lines)
