"""
Human-in-the-loop collaborators and the cancellation race.

The agent loop receives two async callables from its host:

- an *approval gate* ``(tool_name, parsed_arguments) -> bool`` consulted before a page tool runs
  when auto-approve is off;
- a *user reply* source ``(question) -> str`` that answers ``ask_user`` calls.

Either may never resolve (the user walked away), so every wait is raced against the run's
cancellation signal.
"""

import asyncio
import inspect
from typing import (
    Any,
    Awaitable,
    Callable,
    TypeVar,
)

T = TypeVar("T")

ApprovalGate = Callable[[str, Any], Awaitable[bool]]
UserReplySource = Callable[[str], Awaitable[str]]

SKIPPED_BY_USER = "Tool call was skipped by the user."
NO_REPLY = "(no reply)"


class RunAborted(Exception):
    """The run's cancellation signal was observed at a suspension point."""


async def approve_all(tool_name: str, arguments: Any) -> bool:  # pylint: disable=unused-argument
    """Approval gate that approves everything."""
    return True


async def no_reply(question: str) -> str:  # pylint: disable=unused-argument
    """User-reply source for unattended runs."""
    return NO_REPLY


async def race_cancellation(awaitable: Awaitable[T], signal: asyncio.Event | None) -> T:
    """
    Await *awaitable* unless *signal* is set first.

    If the signal is set by the time either side resolves, the awaitable is cancelled (its
    result, if any, is discarded) and :class:`RunAborted` is raised.
    """
    if signal is None:
        return await awaitable
    if signal.is_set():
        if inspect.iscoroutine(awaitable):
            awaitable.close()
        raise RunAborted()

    task = asyncio.ensure_future(awaitable)
    waiter = asyncio.ensure_future(signal.wait())
    try:
        done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        raise
    finally:
        waiter.cancel()

    if task in done and not signal.is_set():
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise RunAborted()


async def sleep_ms(delay_ms: int, signal: asyncio.Event | None = None) -> None:
    """Cancellable pause."""
    if delay_ms > 0:
        await race_cancellation(asyncio.sleep(delay_ms / 1000), signal)
    elif signal is not None and signal.is_set():
        raise RunAborted()
