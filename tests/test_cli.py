"""Tests for the terminal collaborators."""

import asyncio
import threading
import time

import pytest
from agent_fakes import (
    ScriptedPlanner,
    shop_page,
)

from pagepilot.agent.agent_loop import AgentLoop
from pagepilot.agent.approval import (
    NO_REPLY,
    RunAborted,
    race_cancellation,
)
from pagepilot.client import cli


def _answers(monkeypatch, *replies):
    queue = list(replies)
    monkeypatch.setattr(cli, "get_user_message", lambda prompt="": queue.pop(0))


def _console():
    agent = AgentLoop(shop_page(), ScriptedPlanner([]))
    return cli.ConsoleCollaborators(agent), agent


@pytest.mark.parametrize(
    "reply, approved, cancelled",
    [
        (("", True), True, False),
        (("Yes", True), True, False),
        (("n", True), False, False),
        (("a", True), False, True),
        (("", False), False, True),
    ],
)
def test_approve_answers(monkeypatch, reply, approved, cancelled) -> None:
    _answers(monkeypatch, reply)

    async def scenario():
        console, agent = _console()
        return await console.approve("add-to-cart", {}), agent.signal.is_set()

    assert asyncio.run(scenario()) == (approved, cancelled)


def test_reply_defaults_to_no_reply(monkeypatch) -> None:
    _answers(monkeypatch, ("large", True), ("", False))

    async def scenario():
        console, agent = _console()
        first = await console.reply("Size?")
        assert not agent.signal.is_set()
        second = await console.reply("Size?")
        return first, second, agent.signal.is_set()

    assert asyncio.run(scenario()) == ("large", NO_REPLY, True)


def test_cancelled_prompt_does_not_wait_for_stdin(monkeypatch) -> None:
    """Ctrl+C while a prompt is open must let the event loop shut down at once."""
    released = threading.Event()

    def blocking_input(prompt=""):
        released.wait(timeout=10)
        return "y", True

    monkeypatch.setattr(cli, "get_user_message", blocking_input)

    async def scenario():
        console, agent = _console()
        asyncio.get_running_loop().call_later(0.05, agent.cancel)
        with pytest.raises(RunAborted):
            await race_cancellation(console.approve("add-to-cart", {}), agent.signal)

    started = time.monotonic()
    try:
        asyncio.run(scenario())
        elapsed = time.monotonic() - started
    finally:
        released.set()

    assert elapsed < 5
