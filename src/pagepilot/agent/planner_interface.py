"""
Planner interface for PagePilot.

This module is the only place that *directly* calls an LLM.  Everything else (agent loop, bridges,
hosts) stays model-agnostic and talks to planners through :meth:`BasePlanner.complete`.

We support three back-ends out of the box:

1. **OpenAI** Responses API, chained with ``previous_response_id``.
2. **Azure OpenAI** Responses API (same wire format, deployment-scoped).
3. **Anthropic** Messages API; the planner keeps the transcript for each continuation handle.

Additional providers can be added by subclassing :class:`BasePlanner` and registering via
:func:`register_planner`.
"""

import json
import logging
import uuid
from abc import (
    ABC,
    abstractmethod,
)
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Sequence,
    Tuple,
    Type,
)

import anthropic
import openai

from pagepilot.config import settings
from pagepilot.core.schema import (
    CompletionOutcome,
    ConversationState,
    Empty,
    InputItem,
    Text,
    Tool,
    ToolCalls,
    ToolInvocationRequest,
    ToolInvocationResult,
)
from pagepilot.tools import (
    BUILTIN_TOOL_NAMES,
    BUILTIN_TOOLS,
    ToolSchema,
)

logger = logging.getLogger(__name__)


class PlannerError(RuntimeError):
    """Raised when the completion backend fails or returns no output."""


# ---------------------------------------------------------------------------
# Registry helpers
# ---------------------------------------------------------------------------
_PLANNER_REGISTRY: dict[str, Type["BasePlanner"]] = {}


def register_planner(name: str) -> Callable:
    """Decorator to register a planner class under *name*."""

    def wrapper(cls: Type["BasePlanner"]) -> Type["BasePlanner"]:
        _PLANNER_REGISTRY[name] = cls
        return cls

    return wrapper


def load_planner(name: str | None = None, **kwargs: Any) -> "BasePlanner":
    """
    Factory that returns an instantiated planner.

    Fallback order:
    1. *name* arg
    2. ``settings.PLANNER`` env option
    3. default: ``"openai"``
    """

    target = name or getattr(settings, "PLANNER", "openai")
    cls = _PLANNER_REGISTRY.get(target.lower())
    if cls is None:
        raise ValueError(f"Planner '{target}' is not registered.")
    return cls(**kwargs)


# ---------------------------------------------------------------------------
# Base class
# ---------------------------------------------------------------------------
class BasePlanner(ABC):
    """Abstract planner that turns instructions + tools + conversation state into an outcome."""

    @staticmethod
    def tool_surface(tools: Sequence[Tool]) -> List[ToolSchema]:
        """
        Page tools followed by the built-in control tools.

        Function names must be unique per request, so a name exposed by several origins is
        offered once (top-level origin first); page tools shadowing a built-in are dropped.
        """
        surface: List[ToolSchema] = []
        seen = set(BUILTIN_TOOL_NAMES)
        for tool in sorted(tools, key=lambda t: not t.is_trusted_origin):
            if tool.name in seen:
                continue
            seen.add(tool.name)
            surface.append(
                {
                    "name": tool.name,
                    "description": tool.description,
                    "inputSchema": tool.input_schema,
                }
            )
        return surface + BUILTIN_TOOLS

    @abstractmethod
    async def complete(
        self, instructions: str, tools: Sequence[Tool], state: ConversationState
    ) -> Tuple[CompletionOutcome, ConversationState]:
        """
        Submit one turn.

        Returns the outcome and the state that follows it: the new continuation handle with an
        empty input batch, which the caller fills before the next turn.  *state* itself is never
        modified.

        Raises
        ------
        PlannerError
            If the backend fails or produces no output.
        """

    async def aclose(self) -> None:
        """Release network resources."""


# ---------------------------------------------------------------------------
# Concrete planners
# ---------------------------------------------------------------------------
@register_planner("openai")
class OpenAIPlanner(BasePlanner):
    """OpenAI Responses API planner; history is kept server-side via ``previous_response_id``."""

    def __init__(self, client: openai.AsyncOpenAI | None = None, model: str | None = None) -> None:
        self._client = client or openai.AsyncOpenAI(api_key=settings.OPENAI_API_KEY)
        self.model = model or settings.OPENAI_MODEL

    @staticmethod
    def _function_tools(surface: Sequence[ToolSchema]) -> List[Dict[str, Any]]:
        return [
            {
                "type": "function",
                "name": tool["name"],
                "description": tool["description"] or "",
                "parameters": dict(tool["inputSchema"]) or {"type": "object", "properties": {}},
            }
            for tool in surface
        ]

    @staticmethod
    def _input_items(items: Sequence[InputItem]) -> List[Dict[str, Any]]:
        payload: List[Dict[str, Any]] = []
        for item in items:
            if isinstance(item, ToolInvocationResult):
                payload.append(
                    {
                        "type": "function_call_output",
                        "call_id": item.call_id,
                        "output": item.output_text,
                    }
                )
            else:
                payload.append({"role": "user", "content": item.content})
        return payload

    async def complete(
        self, instructions: str, tools: Sequence[Tool], state: ConversationState
    ) -> Tuple[CompletionOutcome, ConversationState]:
        params: Dict[str, Any] = {
            "model": self.model,
            "instructions": instructions,
            "input": self._input_items(state.pending_input),
            "tools": self._function_tools(self.tool_surface(tools)),
            "tool_choice": "auto",
        }
        if state.continuation_handle:
            params["previous_response_id"] = state.continuation_handle

        try:
            response = await self._client.responses.create(**params)
        except openai.OpenAIError as exc:
            logger.error("OpenAI planner error: %s", exc)
            raise PlannerError(f"Error calling OpenAI: {exc}") from exc

        return self._parse_response(response), state.advance(response.id, [])

    @staticmethod
    def _parse_response(response: Any) -> CompletionOutcome:
        output = getattr(response, "output", None) or []
        if not output:
            raise PlannerError("No response from the model")

        calls = [
            ToolInvocationRequest(
                call_id=item.call_id, name=item.name, raw_arguments=item.arguments or ""
            )
            for item in output
            if getattr(item, "type", None) == "function_call"
        ]
        if calls:
            logger.debug("Planner requested %d tool calls: %s", len(calls), [c.name for c in calls])
            return ToolCalls(calls=calls)

        text = getattr(response, "output_text", "") or ""
        return Text(text=text) if text.strip() else Empty()

    async def aclose(self) -> None:
        await self._client.close()


@register_planner("azure")
class AzureOpenAIPlanner(OpenAIPlanner):
    """Azure OpenAI Responses API planner; the deployment name is the model."""

    def __init__(
        self, client: openai.AsyncAzureOpenAI | None = None, model: str | None = None
    ) -> None:
        if client is None:
            if not (
                settings.AZURE_OPENAI_ENDPOINT
                and settings.AZURE_OPENAI_API_KEY
                and settings.AZURE_OPENAI_DEPLOYMENT
            ):
                raise PlannerError(
                    "Azure OpenAI not configured. Set endpoint, API key, and deployment name."
                )
            client = openai.AsyncAzureOpenAI(
                azure_endpoint=settings.AZURE_OPENAI_ENDPOINT,
                api_key=settings.AZURE_OPENAI_API_KEY,
                api_version=settings.AZURE_OPENAI_API_VERSION,
            )
        super().__init__(client=client, model=model or settings.AZURE_OPENAI_DEPLOYMENT)


@register_planner("anthropic")
class AnthropicPlanner(BasePlanner):
    """
    Anthropic Claude planner.

    The Messages API is stateless, so this planner plays the backend's part: it stores the
    transcript behind each continuation handle it hands out.
    """

    def __init__(
        self,
        client: anthropic.AsyncAnthropic | None = None,
        model: str | None = None,
        max_tokens: int = 4096,
    ) -> None:
        self._client = client or anthropic.AsyncAnthropic(api_key=settings.ANTHROPIC_API_KEY)
        self.model = model or settings.ANTHROPIC_MODEL
        self.max_tokens = max_tokens
        self._transcripts: Dict[str, List[Dict[str, Any]]] = {}

    @staticmethod
    def _content_blocks(items: Sequence[InputItem]) -> List[Dict[str, Any]]:
        blocks: List[Dict[str, Any]] = []
        for item in items:
            if isinstance(item, ToolInvocationResult):
                blocks.append(
                    {
                        "type": "tool_result",
                        "tool_use_id": item.call_id,
                        "content": item.output_text,
                    }
                )
            else:
                blocks.append({"type": "text", "text": item.content})
        return blocks

    async def complete(
        self, instructions: str, tools: Sequence[Tool], state: ConversationState
    ) -> Tuple[CompletionOutcome, ConversationState]:
        handle = state.continuation_handle
        if handle and handle not in self._transcripts:
            raise PlannerError(f"Unknown continuation handle '{handle}'")
        messages = list(self._transcripts.get(handle, [])) if handle else []
        messages.append({"role": "user", "content": self._content_blocks(state.pending_input)})

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=instructions,
                messages=messages,
                tools=[
                    {
                        "name": tool["name"],
                        "description": tool["description"],
                        "input_schema": dict(tool["inputSchema"]),
                    }
                    for tool in self.tool_surface(tools)
                ],
            )
        except anthropic.AnthropicError as exc:
            logger.error("Anthropic planner error: %s", exc)
            raise PlannerError(f"Error calling Anthropic: {exc}") from exc

        if not response.content:
            raise PlannerError("No response from the model")

        assistant_blocks: List[Dict[str, Any]] = []
        calls: List[ToolInvocationRequest] = []
        texts: List[str] = []
        for block in response.content:
            if block.type == "tool_use":
                assistant_blocks.append(
                    {"type": "tool_use", "id": block.id, "name": block.name, "input": block.input}
                )
                calls.append(
                    ToolInvocationRequest(
                        call_id=block.id, name=block.name, raw_arguments=json.dumps(block.input)
                    )
                )
            elif block.type == "text":
                assistant_blocks.append({"type": "text", "text": block.text})
                texts.append(block.text)

        new_handle = uuid.uuid4().hex
        if assistant_blocks:
            messages.append({"role": "assistant", "content": assistant_blocks})
        self._transcripts[new_handle] = messages
        if handle:
            self._transcripts.pop(handle, None)

        outcome: CompletionOutcome
        text = "\n".join(texts).strip()
        if calls:
            outcome = ToolCalls(calls=calls)
        elif text:
            outcome = Text(text=text)
        else:
            outcome = Empty()
        return outcome, state.advance(new_handle, [])

    async def aclose(self) -> None:
        await self._client.close()
