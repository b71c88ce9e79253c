"""Planner tests against in-memory stand-ins for the SDK clients."""

import asyncio
import copy
from types import SimpleNamespace

import pytest

from pagepilot.agent.planner_interface import (
    AnthropicPlanner,
    OpenAIPlanner,
    PlannerError,
    load_planner,
)
from pagepilot.core.schema import (
    ConversationState,
    Empty,
    Text,
    Tool,
    ToolCalls,
    ToolInvocationResult,
)

TOOLS = [
    Tool(name="search", description="Search", origin_key="1", is_trusted_origin=False),
    Tool(name="search", description="Search (top)", origin_key="0"),
    Tool(name="complete", description="page tool shadowing a built-in", origin_key="0"),
    Tool(name="checkout", description="Pay", origin_key="0"),
]


class FakeOpenAI:
    """Replays canned Responses API replies and records the request params."""

    def __init__(self, *responses):
        self.responses = SimpleNamespace(create=self._create)
        self._replies = list(responses)
        self.calls = []
        self.closed = False

    async def _create(self, **params):
        self.calls.append(params)
        return self._replies.pop(0)

    async def close(self):
        self.closed = True


def _function_call(call_id, name, arguments):
    return SimpleNamespace(type="function_call", call_id=call_id, name=name, arguments=arguments)


def _message():
    return SimpleNamespace(type="message")


# ---------------------------------------------------------------------------
# Tool surface
# ---------------------------------------------------------------------------
def test_tool_surface_prefers_top_frame_and_appends_builtins() -> None:
    surface = OpenAIPlanner.tool_surface(TOOLS)

    assert [t["name"] for t in surface] == ["search", "checkout", "complete", "ask_user"]
    assert surface[0]["description"] == "Search (top)"
    assert "summary" in surface[2]["inputSchema"]["properties"]


# ---------------------------------------------------------------------------
# OpenAI
# ---------------------------------------------------------------------------
def test_openai_tool_calls_and_handle_threading() -> None:
    client = FakeOpenAI(
        SimpleNamespace(
            id="resp_1",
            output=[_function_call("c1", "search", '{"query": "shoes"}')],
            output_text="",
        ),
        SimpleNamespace(id="resp_2", output=[_message()], output_text="Done."),
    )
    planner = OpenAIPlanner(client=client, model="test-model")
    state = ConversationState.start("find shoes")

    outcome, state = asyncio.run(planner.complete("be helpful", TOOLS, state))

    assert isinstance(outcome, ToolCalls)
    assert outcome.calls[0].call_id == "c1"
    assert outcome.calls[0].raw_arguments == '{"query": "shoes"}'
    assert state.continuation_handle == "resp_1"
    assert state.pending_input == []
    first = client.calls[0]
    assert "previous_response_id" not in first
    assert first["input"] == [{"role": "user", "content": "Goal: find shoes"}]
    assert first["tool_choice"] == "auto"
    assert first["tools"][0] == {
        "type": "function",
        "name": "search",
        "description": "Search (top)",
        "parameters": {"type": "object", "properties": {}},
    }

    state = state.with_input([ToolInvocationResult(call_id="c1", output_text="3 results")])
    outcome, state = asyncio.run(planner.complete("be helpful", TOOLS, state))

    assert outcome == Text(text="Done.")
    assert state.continuation_handle == "resp_2"
    second = client.calls[1]
    assert second["previous_response_id"] == "resp_1"
    assert second["input"] == [
        {"type": "function_call_output", "call_id": "c1", "output": "3 results"}
    ]


def test_openai_blank_text_is_empty() -> None:
    client = FakeOpenAI(SimpleNamespace(id="r", output=[_message()], output_text="  "))
    outcome, _ = asyncio.run(
        OpenAIPlanner(client=client, model="m").complete("", TOOLS, ConversationState.start("g"))
    )
    assert isinstance(outcome, Empty)


def test_openai_no_output_is_an_error() -> None:
    client = FakeOpenAI(SimpleNamespace(id="r", output=[], output_text=""))
    planner = OpenAIPlanner(client=client, model="m")

    with pytest.raises(PlannerError, match="No response"):
        asyncio.run(planner.complete("", TOOLS, ConversationState.start("g")))


def test_openai_close_releases_client() -> None:
    client = FakeOpenAI()
    asyncio.run(OpenAIPlanner(client=client, model="m").aclose())
    assert client.closed


# ---------------------------------------------------------------------------
# Anthropic
# ---------------------------------------------------------------------------
class FakeAnthropic:
    def __init__(self, *replies):
        self.messages = SimpleNamespace(create=self._create)
        self._replies = list(replies)
        self.calls = []

    async def _create(self, **params):
        self.calls.append(copy.deepcopy(params))
        return SimpleNamespace(content=self._replies.pop(0))

    async def close(self):
        pass


def test_anthropic_keeps_the_transcript_behind_the_handle() -> None:
    client = FakeAnthropic(
        [
            SimpleNamespace(type="text", text="Let me search."),
            SimpleNamespace(type="tool_use", id="tu_1", name="search", input={"query": "shoes"}),
        ],
        [SimpleNamespace(type="text", text="Found them.")],
    )
    planner = AnthropicPlanner(client=client, model="claude-test")

    outcome, state = asyncio.run(
        planner.complete("sys", TOOLS, ConversationState.start("find shoes"))
    )

    assert isinstance(outcome, ToolCalls)
    assert outcome.calls[0].raw_arguments == '{"query": "shoes"}'
    assert client.calls[0]["system"] == "sys"
    assert client.calls[0]["tools"][-1]["name"] == "ask_user"
    first_handle = state.continuation_handle

    state = state.with_input([ToolInvocationResult(call_id="tu_1", output_text="3 results")])
    outcome, state = asyncio.run(planner.complete("sys", TOOLS, state))

    assert outcome == Text(text="Found them.")
    messages = client.calls[1]["messages"]
    assert [m["role"] for m in messages] == ["user", "assistant", "user"]
    assert messages[2]["content"] == [
        {"type": "tool_result", "tool_use_id": "tu_1", "content": "3 results"}
    ]
    assert state.continuation_handle != first_handle


def test_anthropic_unknown_handle_is_an_error() -> None:
    planner = AnthropicPlanner(client=FakeAnthropic(), model="claude-test")
    state = ConversationState(continuation_handle="missing")

    with pytest.raises(PlannerError, match="Unknown continuation handle"):
        asyncio.run(planner.complete("sys", TOOLS, state))


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------
def test_load_planner_rejects_unknown_backends() -> None:
    with pytest.raises(ValueError, match="not registered"):
        load_planner("no-such-backend")


def test_load_planner_passes_arguments() -> None:
    client = FakeOpenAI()
    planner = load_planner("OpenAI", client=client, model="m")
    assert isinstance(planner, OpenAIPlanner)
    assert planner.model == "m"
