"""
Background runs for the HTTP host.

Each run owns an :class:`AgentLoop` executing in an asyncio task.  Approval and ``ask_user`` waits
are parked as futures that the API resolves when the user answers.
"""

import asyncio
import logging
import uuid
from typing import (
    Any,
    Callable,
    Dict,
    List,
    Literal,
    Optional,
)

from pagepilot.agent.agent_loop import AgentLoop
from pagepilot.agent.approval import NO_REPLY
from pagepilot.agent.planner_interface import (
    BasePlanner,
    PlannerError,
    load_planner,
)
from pagepilot.bridge.base import OriginBridge
from pagepilot.bridge.http_bridge import HttpBridge
from pagepilot.config import (
    AgentConfig,
    settings,
)
from pagepilot.core.schema import AgentEvent
from pagepilot.memory.run_log import event_logger

logger = logging.getLogger(__name__)

Decision = Literal["approve", "skip", "abort"]


class PendingPrompt:
    """A question the run is blocked on."""

    def __init__(self, kind: Literal["approval", "reply"], details: Dict[str, Any]) -> None:
        self.kind = kind
        self.details = details
        self.future: asyncio.Future = asyncio.get_running_loop().create_future()

    def resolve(self, value: Any) -> None:
        if not self.future.done():
            self.future.set_result(value)


class Run:
    """One agent run and its host-side state."""

    def __init__(
        self,
        run_id: str,
        goal: str,
        bridge: OriginBridge,
        planner: BasePlanner,
        config: AgentConfig,
        on_event: Callable[[AgentEvent], None] | None = None,
    ) -> None:
        self.run_id = run_id
        self.goal = goal
        self.bridge = bridge
        self.planner = planner
        self.pending: Optional[PendingPrompt] = None
        self.loop = AgentLoop(
            bridge,
            planner,
            config,
            approval=self._wait_for_approval,
            user_reply=self._wait_for_reply,
            on_event=on_event,
        )
        self.task: asyncio.Task | None = None

    @property
    def events(self) -> List[AgentEvent]:
        return self.loop.events

    @property
    def status(self) -> str:
        if self.events and self.events[-1].is_terminal:
            return self.events[-1].type.value
        if self.pending is not None:
            return f"waiting_{self.pending.kind}"
        return "running"

    @property
    def finished(self) -> bool:
        return self.task is not None and self.task.done()

    def start(self) -> None:
        self.task = asyncio.create_task(self._main(), name=f"run-{self.run_id}")

    async def _main(self) -> AgentEvent:
        try:
            return await self.loop.run(self.goal)
        finally:
            await self.planner.aclose()
            await self.bridge.aclose()

    async def _park(self, kind: Literal["approval", "reply"], details: Dict[str, Any]) -> Any:
        self.pending = PendingPrompt(kind, details)
        try:
            return await self.pending.future
        finally:
            self.pending = None

    async def _wait_for_approval(self, tool_name: str, arguments: Any) -> bool:
        return bool(await self._park("approval", {"name": tool_name, "args": arguments}))

    async def _wait_for_reply(self, question: str) -> str:
        return str(await self._park("reply", {"question": question}))

    def decide(self, decision: Decision) -> None:
        """Answer a pending approval."""
        if self.pending is None or self.pending.kind != "approval":
            raise LookupError("Run is not waiting for approval.")
        if decision == "abort":
            self.cancel()
        self.pending.resolve(decision == "approve")

    def reply(self, text: str) -> None:
        """Answer a pending ``ask_user`` question."""
        if self.pending is None or self.pending.kind != "reply":
            raise LookupError("Run is not waiting for a reply.")
        self.pending.resolve(text.strip() or NO_REPLY)

    def cancel(self) -> None:
        self.loop.cancel()


def _default_bridge() -> OriginBridge:
    return HttpBridge()


def _default_planner() -> BasePlanner:
    if not settings.planner_configured():
        raise PlannerError(f"Planner '{settings.PLANNER}' is not configured.")
    return load_planner()


class RunManager:
    """In-memory registry of runs (could be moved to a database)."""

    def __init__(
        self,
        bridge_factory: Callable[[], OriginBridge] = _default_bridge,
        planner_factory: Callable[[], BasePlanner] = _default_planner,
        run_log: bool | None = None,
        keep_finished: int | None = None,
    ) -> None:
        self.bridge_factory = bridge_factory
        self.planner_factory = planner_factory
        self.run_log = settings.RUN_LOG_ENABLED if run_log is None else run_log
        self.keep_finished = settings.KEEP_FINISHED_RUNS if keep_finished is None else keep_finished
        self._runs: Dict[str, Run] = {}

    def start(self, goal: str, config: AgentConfig) -> Run:
        """Create a run and schedule it on the running event loop."""
        planner = self.planner_factory()
        run_id = str(uuid.uuid4())
        on_event = event_logger(run_id) if self.run_log else None
        run = Run(run_id, goal, self.bridge_factory(), planner, config, on_event=on_event)
        self._evict_finished()
        self._runs[run_id] = run
        run.start()
        logger.info("Started run %s: %s", run_id, goal)
        return run

    def _evict_finished(self) -> None:
        # Oldest first: dicts keep insertion order.
        finished = [run_id for run_id, run in self._runs.items() if run.finished]
        for run_id in finished[: max(len(finished) - self.keep_finished, 0)]:
            del self._runs[run_id]
            logger.debug("Evicted finished run %s", run_id)

    def get(self, run_id: str) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise KeyError(run_id)
        return run

    def list(self) -> List[Run]:
        return list(self._runs.values())

    async def shutdown(self) -> None:
        """Cancel every unfinished run and wait for it to stop."""
        tasks = []
        for run in self._runs.values():
            if run.task is not None and not run.task.done():
                run.cancel()
                tasks.append(run.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
