"""
HTTP host for PagePilot.

This module lets a front-end start agent runs and steer them.  It exposes the following endpoints:
- **GET  /health**                - liveness probe for health checks.
- **POST /runs**                  - start a run: {"goal": "...", ...}; returns immediately.
- **GET  /runs**                  - list runs.
- **GET  /runs/{id}**             - status, pending question and event stream of a run.
- **POST /runs/{id}/approval**    - answer a pending approval: approve / skip / abort.
- **POST /runs/{id}/reply**       - answer a pending ``ask_user`` question.
- **POST /runs/{id}/cancel**      - cancel a run.
"""

import logging
from contextlib import asynccontextmanager
from typing import (
    AsyncIterator,
    List,
)

from fastapi import (
    FastAPI,
    HTTPException,
)

from pagepilot.agent.planner_interface import PlannerError
from pagepilot.api.models import (
    ApprovalRequest,
    PendingView,
    ReplyRequest,
    RunRequest,
    RunResponse,
)
from pagepilot.api.runs import (
    Run,
    RunManager,
)
from pagepilot.common import (
    AnsiColors,
    colored_print,
)
from pagepilot.config import (
    AgentConfig,
    settings,
)

logger = logging.getLogger(__name__)

manager = RunManager()


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    yield
    await manager.shutdown()


app = FastAPI(
    title="PagePilot API",
    version="0.1.0",
    description="Autonomous agent runs over page-exposed tools",
    lifespan=lifespan,
)


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def _snapshot(run: Run) -> RunResponse:
    pending = None
    if run.pending is not None:
        pending = PendingView(kind=run.pending.kind, details=run.pending.details)
    return RunResponse(
        run_id=run.run_id,
        goal=run.goal,
        status=run.status,
        pending=pending,
        events=list(run.events),
    )


def _get_run(run_id: str) -> Run:
    try:
        return manager.get(run_id)
    except KeyError as exc:
        raise HTTPException(status_code=404, detail=f"Unknown run '{run_id}'") from exc


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/runs", response_model=RunResponse, summary="Start a run")
async def create_run(req: RunRequest) -> RunResponse:
    """Start an agent run in the background."""
    config = AgentConfig.from_settings(
        max_iterations=1 if req.single_turn else req.max_iterations,
        auto_approve=req.auto_approve,
        allow_embedded_origins=req.allow_embedded_origins,
        single_turn=req.single_turn,
    )
    try:
        run = manager.start(req.goal, config)
    except (PlannerError, ValueError) as exc:
        logger.warning("Cannot start run: %s", exc)
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _snapshot(run)


@app.get("/runs", response_model=List[RunResponse], summary="List runs")
async def list_runs() -> List[RunResponse]:
    """List every run known to this process."""
    return [_snapshot(run) for run in manager.list()]


@app.get("/runs/{run_id}", response_model=RunResponse, summary="Inspect a run")
async def get_run(run_id: str) -> RunResponse:
    return _snapshot(_get_run(run_id))


@app.post("/runs/{run_id}/approval", response_model=RunResponse, summary="Answer an approval")
async def answer_approval(run_id: str, req: ApprovalRequest) -> RunResponse:
    run = _get_run(run_id)
    try:
        run.decide(req.decision)
    except LookupError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _snapshot(run)


@app.post("/runs/{run_id}/reply", response_model=RunResponse, summary="Answer a question")
async def answer_question(run_id: str, req: ReplyRequest) -> RunResponse:
    run = _get_run(run_id)
    try:
        run.reply(req.reply)
    except LookupError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    return _snapshot(run)


@app.post("/runs/{run_id}/cancel", response_model=RunResponse, summary="Cancel a run")
async def cancel_run(run_id: str) -> RunResponse:
    run = _get_run(run_id)
    run.cancel()
    return _snapshot(run)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn an optional dependency at pkg-import time
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:  # Use the default from settings if not provided
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting PagePilot API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    if not settings.planner_configured():
        logger.warning("Planner '%s' is not configured; runs will be refused", settings.PLANNER)

    colored_print(f"PagePilot API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "pagepilot.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m pagepilot.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)
