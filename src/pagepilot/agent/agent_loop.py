"""Main orchestration loop for PagePilot."""

from __future__ import annotations

import asyncio
import logging
from typing import (
    Any,
    Callable,
    List,
    Sequence,
)

from pagepilot.agent.approval import (
    SKIPPED_BY_USER,
    ApprovalGate,
    RunAborted,
    UserReplySource,
    approve_all,
    no_reply,
    race_cancellation,
    sleep_ms,
)
from pagepilot.agent.capability_directory import CapabilityDirectory
from pagepilot.agent.planner_interface import BasePlanner
from pagepilot.agent.prompt import (
    CONTINUE_PROMPT,
    build_instructions,
)
from pagepilot.agent.tool_executor import ExecutionRouter
from pagepilot.bridge.base import OriginBridge
from pagepilot.config import AgentConfig
from pagepilot.core.schema import (
    AgentEvent,
    ConversationState,
    Empty,
    EventType,
    Text,
    Tool,
    ToolInvocationRequest,
    ToolInvocationResult,
    UserMessage,
)
from pagepilot.tools import (
    ASK_USER_TOOL_NAME,
    COMPLETE_TOOL_NAME,
)
from pagepilot.tools.tool_call_parser import (
    parse_arguments,
    string_argument,
)

logger = logging.getLogger(__name__)

EventSink = Callable[[AgentEvent], None]

NO_TOOLS_REASON = "No tools available; end state reached."
MAX_ITERATIONS_REASON = "Max iterations reached."
SINGLE_TURN_REASON = "Single-turn mode: stopping after the first tool call."
DEFAULT_SUMMARY = "Goal achieved."
DEFAULT_QUESTION = "Please provide more information."


# ---------------------------------------------------------------------------
# Agent Loop
# ---------------------------------------------------------------------------
class AgentLoop:
    """
    Drive a page toward a goal, one turn at a time.

    Each turn discovers the page's tools, asks the planner what to do and dispatches the requested
    calls.  Every transition is reported to *on_event* as an :class:`AgentEvent`; the value
    returned by :meth:`run` is the terminal one (``completed``, ``aborted`` or ``error``).

    Cancellation is cooperative: set *signal* (or call :meth:`cancel`) and the run stops with an
    ``aborted`` event at the next check or pending suspension point.
    """

    def __init__(
        self,
        bridge: OriginBridge,
        planner: BasePlanner,
        config: AgentConfig | None = None,
        *,
        approval: ApprovalGate | None = None,
        user_reply: UserReplySource | None = None,
        on_event: EventSink | None = None,
        signal: asyncio.Event | None = None,
    ) -> None:
        self.config = config or AgentConfig()
        self.planner = planner
        self.directory = CapabilityDirectory(
            bridge, include_embedded=self.config.allow_embedded_origins
        )
        self.router = ExecutionRouter(
            bridge, allow_embedded_origins=self.config.allow_embedded_origins
        )
        self.approval = approval or approve_all
        self.user_reply = user_reply or no_reply
        self.on_event = on_event
        self.signal = signal or asyncio.Event()

        self.events: List[AgentEvent] = []
        self.state: ConversationState | None = None
        self.iteration = 0
        self.request_count = 0

    def cancel(self) -> None:
        """Request cancellation of the run."""
        self.signal.set()

    # -----------------------------------------------------------------------
    # Helpers
    # -----------------------------------------------------------------------
    def _emit(self, event_type: EventType, **data: Any) -> AgentEvent:
        event = AgentEvent(type=event_type, data={"iteration": self.iteration, **data})
        self.events.append(event)
        logger.debug("[%d] %s %s", self.iteration, event_type.value, data)
        if self.on_event is not None:
            self.on_event(event)
        return event

    def _check_cancelled(self) -> None:
        if self.signal.is_set():
            raise RunAborted()

    @staticmethod
    def _route(name: str, tools: Sequence[Tool]) -> str | None:
        matches = [t for t in tools if t.name == name]
        if not matches:
            return None  # unknown to discovery: let the top document answer
        trusted = [t for t in matches if t.is_trusted_origin]
        return (trusted or matches)[0].origin_key

    # -----------------------------------------------------------------------
    # Run
    # -----------------------------------------------------------------------
    async def run(self, goal: str) -> AgentEvent:
        """Pursue *goal* until a terminal event; return that event."""
        self.state = ConversationState.start(goal)
        max_iterations = self.config.max_iterations
        logger.info("Starting run (max_iterations=%d): %s", max_iterations, goal)

        try:
            for iteration in range(1, max_iterations + 1):
                self.iteration = iteration
                terminal = await self._turn()
                if terminal is not None:
                    return terminal
        except RunAborted:
            logger.info("Run aborted at iteration %d", self.iteration)
            return self._emit(EventType.ABORTED)

        return self._emit(EventType.COMPLETED, reason=MAX_ITERATIONS_REASON)

    async def _turn(self) -> AgentEvent | None:
        assert self.state is not None
        self._check_cancelled()

        # 1. Discover current tools
        tools = await race_cancellation(self.directory.discover(), self.signal)
        self._emit(EventType.TOOLS_DISCOVERED, tools=[t.model_dump() for t in tools])
        if not tools:
            return self._emit(EventType.COMPLETED, reason=NO_TOOLS_REASON)

        # 2. Ask the planner
        instructions = build_instructions(
            tools, show_origins=self.config.allow_embedded_origins
        )
        self._emit(EventType.LLM_REQUEST, message_count=len(self.state.pending_input))
        self._check_cancelled()
        self.request_count += 1
        try:
            outcome, next_state = await race_cancellation(
                self.planner.complete(instructions, tools, self.state), self.signal
            )
        except RunAborted:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            if self.signal.is_set():
                raise RunAborted() from exc
            logger.error("Planner failed at iteration %d: %s", self.iteration, exc)
            return self._emit(EventType.ERROR, error=str(exc) or type(exc).__name__)
        self._check_cancelled()

        # 3. Interpret the outcome
        if isinstance(outcome, Empty):
            logger.info("Planner returned an empty turn; continuing")
            self.state = next_state.with_input([UserMessage(content=CONTINUE_PROMPT)])
            return None

        if isinstance(outcome, Text):
            if self.config.text_ends_run:
                return self._emit(EventType.COMPLETED, reason=outcome.text)
            self._emit(EventType.TOOL_RESULT, name="assistant", result=outcome.text)
            self.state = next_state.with_input([UserMessage(content=CONTINUE_PROMPT)])
            return None

        # 4. Dispatch tool calls in the order the planner returned them
        results: List[ToolInvocationResult] = []
        for call in outcome.calls:
            terminal = await self._dispatch(call, tools, results)
            if terminal is not None:
                return terminal

        self.state = next_state.with_input(list(results))
        if self.config.single_turn:
            return self._emit(EventType.COMPLETED, reason=SINGLE_TURN_REASON)
        return None

    async def _dispatch(
        self,
        call: ToolInvocationRequest,
        tools: Sequence[Tool],
        results: List[ToolInvocationResult],
    ) -> AgentEvent | None:
        self._check_cancelled()
        args = parse_arguments(call.raw_arguments)

        if call.name == COMPLETE_TOOL_NAME:
            return self._emit(
                EventType.COMPLETED, reason=string_argument(args, "summary", DEFAULT_SUMMARY)
            )

        if call.name == ASK_USER_TOOL_NAME:
            question = string_argument(args, "question", DEFAULT_QUESTION)
            self._emit(EventType.ASK_USER, question=question)
            self._check_cancelled()
            reply = await race_cancellation(self.user_reply(question), self.signal)
            self._check_cancelled()
            self._emit(EventType.TOOL_RESULT, name=ASK_USER_TOOL_NAME, result=reply)
            results.append(ToolInvocationResult(call_id=call.call_id, output_text=reply))
            return None

        self._emit(
            EventType.TOOL_CALL_PENDING, name=call.name, args=args, call_id=call.call_id
        )

        if not self.config.auto_approve:
            self._emit(EventType.WAITING_APPROVAL, name=call.name, args=args)
            self._check_cancelled()
            approved = await race_cancellation(self.approval(call.name, args), self.signal)
            if not approved:
                self._emit(EventType.SKIPPED, name=call.name)
                results.append(
                    ToolInvocationResult(call_id=call.call_id, output_text=SKIPPED_BY_USER)
                )
                return None

        self._check_cancelled()
        self._emit(EventType.TOOL_EXECUTING, name=call.name)
        outcome = await self.router.execute(
            call.name, call.raw_arguments or "{}", self._route(call.name, tools)
        )
        result_text = outcome.as_text()
        self._emit(EventType.TOOL_RESULT, name=call.name, result=result_text)
        results.append(ToolInvocationResult(call_id=call.call_id, output_text=result_text))
        self._check_cancelled()

        # Wait for page to settle
        if outcome.ok:
            await sleep_ms(self.config.settle_delay_ms, self.signal)
        return None


async def run_agent(
    goal: str,
    bridge: OriginBridge,
    planner: BasePlanner,
    config: AgentConfig | None = None,
    **kwargs: Any,
) -> AgentEvent:
    """Convenience wrapper: build an :class:`AgentLoop` and run it once."""
    return await AgentLoop(bridge, planner, config, **kwargs).run(goal)
