"""
Schema definitions for bridge <-> agent <-> planner messages.

These data models serve as the contract between the page bridge, the orchestration loop and the
planner LLM.  We keep them separate from runtime logic so they can be imported anywhere without
side-effects.
"""

from enum import Enum
from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
    Union,
)

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
)


class Tool(BaseModel):
    """A tool exposed by one origin, annotated for routing."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Tool name, unique within its origin")
    description: str = ""
    input_schema: Dict[str, Any] = Field(default_factory=dict)
    origin_key: str = Field(..., description="Opaque routing token for the owning origin")
    origin_url: str = ""
    is_trusted_origin: bool = Field(True, description="True for the top-level document")

    @property
    def origin_label(self) -> str:
        """Human readable origin, as shown to the model."""
        if self.is_trusted_origin:
            return "top frame"
        return f"iframe: {self.origin_url or 'unknown'}"


class ToolInvocationRequest(BaseModel):
    """A call that the planner wants the agent to execute."""

    model_config = ConfigDict(frozen=True)

    call_id: str
    name: str
    raw_arguments: str = ""


class ToolInvocationResult(BaseModel):
    """Model-facing output of one tool call."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["tool_result"] = "tool_result"
    call_id: str
    output_text: str


class UserMessage(BaseModel):
    """Plain user text submitted to the planner (the goal, or a continue prompt)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["user_message"] = "user_message"
    content: str


InputItem = Union[UserMessage, ToolInvocationResult]


class ConversationState(BaseModel):
    """Continuation handle plus the input batch for the next planner call."""

    model_config = ConfigDict(frozen=True)

    continuation_handle: Optional[str] = None
    pending_input: List[InputItem] = Field(default_factory=list)

    @classmethod
    def start(cls, goal: str) -> "ConversationState":
        """Initial state for a new run."""
        return cls(pending_input=[UserMessage(content=f"Goal: {goal}")])

    def advance(self, handle: Optional[str], pending_input: List[InputItem]) -> "ConversationState":
        """Return the state that follows a planner call."""
        return ConversationState(continuation_handle=handle, pending_input=list(pending_input))

    def with_input(self, pending_input: List[InputItem]) -> "ConversationState":
        """Same handle, new input batch."""
        return self.advance(self.continuation_handle, pending_input)


# ---------------------------------------------------------------------------
# Planner outcomes
# ---------------------------------------------------------------------------
class ToolCalls(BaseModel):
    """The planner asked for one or more tool invocations."""

    kind: Literal["tool_calls"] = "tool_calls"
    calls: List[ToolInvocationRequest]


class Text(BaseModel):
    """The planner answered with natural-language text."""

    kind: Literal["text"] = "text"
    text: str


class Empty(BaseModel):
    """The planner produced neither text nor tool calls."""

    kind: Literal["empty"] = "empty"


CompletionOutcome = Union[ToolCalls, Text, Empty]


class ExecutionOutcome(BaseModel):
    """Normalized result of routing one call to an origin."""

    ok: bool
    output: str = ""
    error: str = ""

    def as_text(self) -> str:
        """Render as model-facing tool output."""
        return self.output if self.ok else f"Error: {self.error}"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------
class EventType(str, Enum):
    """Every externally observable transition of a run."""

    TOOLS_DISCOVERED = "tools_discovered"
    LLM_REQUEST = "llm_request"
    TOOL_CALL_PENDING = "tool_call_pending"
    WAITING_APPROVAL = "waiting_approval"
    TOOL_EXECUTING = "tool_executing"
    TOOL_RESULT = "tool_result"
    ASK_USER = "ask_user"
    COMPLETED = "completed"
    SKIPPED = "skipped"
    ABORTED = "aborted"
    ERROR = "error"


TERMINAL_EVENTS = frozenset({EventType.COMPLETED, EventType.ABORTED, EventType.ERROR})


class AgentEvent(BaseModel):
    """One transition of the agent loop; ``data`` always carries ``iteration``."""

    model_config = ConfigDict(frozen=True)

    type: EventType
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def iteration(self) -> int:
        return int(self.data.get("iteration", 0))

    @property
    def is_terminal(self) -> bool:
        return self.type in TERMINAL_EVENTS
