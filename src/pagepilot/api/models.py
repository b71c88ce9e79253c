"""
Pydantic models for PagePilot API requests and responses.
This module defines the request and response schemas used by the PagePilot API.
"""

from typing import (
    Any,
    Dict,
    List,
    Literal,
    Optional,
)

from pydantic import (
    BaseModel,
    Field,
)

from pagepilot.core.schema import AgentEvent


# ---------------------------------------------------------------------------
# Pydantic request / response schema
# ---------------------------------------------------------------------------
class RunRequest(BaseModel):
    """Start a new run."""

    goal: str = Field(..., min_length=1, description="High-level goal for the agent")
    max_iterations: Optional[int] = Field(None, ge=1, description="Override MAX_ITERATIONS")
    auto_approve: Optional[bool] = Field(None, description="Override AUTO_APPROVE")
    allow_embedded_origins: Optional[bool] = Field(
        None, description="Override ALLOW_EMBEDDED_ORIGINS"
    )
    single_turn: bool = Field(False, description="Stop after the first batch of tool calls")


class PendingView(BaseModel):
    """What the run is waiting for."""

    kind: Literal["approval", "reply"]
    details: Dict[str, Any]


class RunResponse(BaseModel):
    """Snapshot of a run."""

    run_id: str
    goal: str
    status: str
    pending: Optional[PendingView] = None
    events: List[AgentEvent] = Field(default_factory=list)


class ApprovalRequest(BaseModel):
    """Answer to a pending approval."""

    decision: Literal["approve", "skip", "abort"]


class ReplyRequest(BaseModel):
    """Answer to a pending ``ask_user`` question."""

    reply: str = ""
