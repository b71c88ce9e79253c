"""Tests for background runs and the HTTP host."""

import asyncio
import time

import pytest
from agent_fakes import (
    HANG,
    ScriptedPlanner,
    call,
    calls,
    shop_page,
)
from fastapi.testclient import TestClient

from pagepilot.agent.approval import NO_REPLY
from pagepilot.agent.planner_interface import PlannerError
from pagepilot.api import app as app_module
from pagepilot.api.runs import RunManager
from pagepilot.config import AgentConfig
from pagepilot.core.schema import (
    EventType,
    ToolInvocationResult,
)

CONFIG = AgentConfig(auto_approve=False, settle_delay_ms=0)


async def _until_pending(run, timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while run.pending is None:
        assert asyncio.get_running_loop().time() < deadline, "run never blocked"
        await asyncio.sleep(0.01)


def _manager(page, planner) -> RunManager:
    return RunManager(bridge_factory=lambda: page, planner_factory=lambda: planner, run_log=False)


# ---------------------------------------------------------------------------
# RunManager
# ---------------------------------------------------------------------------
def test_approval_round_trip() -> None:
    page = shop_page()
    planner = ScriptedPlanner(
        [calls(call("add-to-cart", product_id="p1")), calls(call("complete", summary="ok"))]
    )

    async def scenario():
        run = _manager(page, planner).start("buy p1", CONFIG)
        await _until_pending(run)
        assert run.status == "waiting_approval"
        assert run.pending.details == {"name": "add-to-cart", "args": {"product_id": "p1"}}
        run.decide("approve")
        return await run.task

    terminal = asyncio.run(scenario())

    assert terminal.data["reason"] == "ok"
    assert page.cart == [{"product_id": "p1", "quantity": 1}]
    assert planner.closed


def test_abort_decision_cancels_the_run() -> None:
    page = shop_page()
    planner = ScriptedPlanner([calls(call("add-to-cart", product_id="p1"))])

    async def scenario():
        run = _manager(page, planner).start("buy p1", CONFIG)
        await _until_pending(run)
        run.decide("abort")
        terminal = await run.task
        return run, terminal

    run, terminal = asyncio.run(scenario())

    assert terminal.type is EventType.ABORTED
    assert run.status == "aborted"
    assert page.cart == []


def test_reply_round_trip_and_misdirected_answers() -> None:
    planner = ScriptedPlanner(
        [calls(call("ask_user", call_id="q1", question="Colour?")), calls(call("complete"))]
    )

    async def scenario():
        run = _manager(shop_page(), planner).start("buy", CONFIG)
        await _until_pending(run)
        assert run.status == "waiting_reply"
        with pytest.raises(LookupError):
            run.decide("approve")
        run.reply("   ")
        await run.task
        with pytest.raises(LookupError):
            run.reply("late")

    asyncio.run(scenario())

    assert planner.requests[1]["state"].pending_input == [
        ToolInvocationResult(call_id="q1", output_text=NO_REPLY)
    ]


def test_shutdown_aborts_unfinished_runs() -> None:
    async def scenario():
        manager = _manager(shop_page(), ScriptedPlanner([HANG]))
        run = manager.start("wait forever", CONFIG)
        await asyncio.sleep(0.05)
        await manager.shutdown()
        return run

    run = asyncio.run(scenario())

    assert run.status == "aborted"
    assert run.task.result().type is EventType.ABORTED


def test_only_recent_finished_runs_are_kept() -> None:
    async def scenario():
        scripts = [[HANG]] + [[calls(call("complete"))] for _ in range(4)]
        manager = RunManager(
            bridge_factory=shop_page,
            planner_factory=lambda: ScriptedPlanner(scripts.pop(0)),
            run_log=False,
            keep_finished=2,
        )
        blocked = manager.start("never finishes", CONFIG)

        done = []
        for n in range(3):
            run = manager.start(f"goal {n}", CONFIG)
            await run.task
            done.append(run)
        latest = manager.start("goal 3", CONFIG)
        await latest.task

        kept = [run.goal for run in manager.list()]
        with pytest.raises(KeyError):
            manager.get(done[0].run_id)
        await manager.shutdown()
        return kept, blocked

    kept, blocked = asyncio.run(scenario())

    assert kept == ["never finishes", "goal 1", "goal 2", "goal 3"]
    assert blocked.status == "aborted"


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------
@pytest.fixture
def client(monkeypatch):
    manager = RunManager(
        bridge_factory=shop_page,
        planner_factory=lambda: ScriptedPlanner([calls(call("complete", summary="Done"))]),
        run_log=False,
    )
    monkeypatch.setattr(app_module, "manager", manager)
    with TestClient(app_module.app) as test_client:
        yield test_client


def test_health(client) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_unknown_run_is_404(client) -> None:
    assert client.get("/runs/nope").status_code == 404
    assert client.post("/runs/nope/cancel").status_code == 404


def test_run_lifecycle(client) -> None:
    resp = client.post("/runs", json={"goal": "buy p1"})
    assert resp.status_code == 200
    run_id = resp.json()["run_id"]

    deadline = time.monotonic() + 5
    body = client.get(f"/runs/{run_id}").json()
    while body["status"] == "running" and time.monotonic() < deadline:
        time.sleep(0.02)
        body = client.get(f"/runs/{run_id}").json()

    assert body["status"] == "completed"
    assert body["events"][-1]["data"]["reason"] == "Done"
    assert [r["run_id"] for r in client.get("/runs").json()] == [run_id]
    # Nothing to approve on a finished run.
    conflict = client.post(f"/runs/{run_id}/approval", json={"decision": "approve"})
    assert conflict.status_code == 409


def test_unconfigured_planner_is_400(client, monkeypatch) -> None:
    def refuse():
        raise PlannerError("Planner 'openai' is not configured.")

    monkeypatch.setattr(app_module.manager, "planner_factory", refuse)

    resp = client.post("/runs", json={"goal": "anything"})
    assert resp.status_code == 400
    assert "not configured" in resp.json()["detail"]
