"""Scenario registry, shared state and the test runner."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import scenarios  # noqa: E402
from models import EmbeddedPiece, FlowPlan, FlowStep, RunTestsParams, SegmentMetadata  # noqa: E402
from stores import SCENARIO_STATE  # noqa: E402


class RecordingSocket:
    def __init__(self):
        self.events: list[tuple[str, str, dict]] = []

    async def emit(self, event, data):
        self.events.append(("emit", event, data))

    async def broadcast(self, event, data):
        self.events.append(("broadcast", event, data))


class FakePlanner:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.prompts: list[str] = []

    def find_pieces(self, prompt):
        self.prompts.append(prompt)
        return [
            EmbeddedPiece(
                metadata=SegmentMetadata(piece_name="@activepieces/piece-slack", display_name="Slack"),
                content="Slack: team chat",
                embedding=[1.0],
            )
        ]

    def plan(self, prompt, pieces):
        if self.fail:
            raise RuntimeError("model unavailable")
        return FlowPlan(
            name="Notify",
            steps=[FlowStep(piece_name="@activepieces/piece-slack", name="send_channel_message")],
        )


def statuses() -> dict[str, str]:
    return {s.title: s.status for s in SCENARIO_STATE.scenarios}


def test_reset_state_lists_builtin_scenarios_stopped():
    scenarios.reset_state()

    titles = [s.title for s in SCENARIO_STATE.scenarios]
    assert "Email to Slack" in titles
    assert titles == [d.title for d in scenarios.list_scenarios()]
    assert set(statuses().values()) == {"stopped"}


def test_update_test_state_mutates_in_place_and_pushes_snapshot():
    scenarios.reset_state()
    state_obj = SCENARIO_STATE
    socket = RecordingSocket()

    asyncio.run(scenarios.update_test_state(socket, "Email to Slack", "running"))

    assert SCENARIO_STATE is state_obj
    assert statuses()["Email to Slack"] == "running"
    kind, event, payload = socket.events[-1]
    assert (kind, event) == ("broadcast", "response-get-state")
    pushed = {s["title"]: s["status"] for s in payload["scenarios"]}
    assert pushed["Email to Slack"] == "running"

    scenarios.reset_state()


def test_update_test_state_without_socket_and_unknown_title():
    scenarios.reset_state()
    before = statuses()

    asyncio.run(scenarios.update_test_state(None, "Not a scenario", "running"))

    assert statuses() == before


def test_add_result_without_socket_is_noop():
    from models import CopilotResult

    asyncio.run(scenarios.add_result(None, CopilotResult(type="scenario-started", scenario_title="x")))


def test_run_scenarios_streams_results_and_restores_status():
    scenarios.reset_state()
    socket = RecordingSocket()
    planner = FakePlanner()

    results = asyncio.run(
        scenarios.run_scenarios(planner, [RunTestsParams(title="Email to Slack")], socket)
    )

    assert [r.type for r in results] == [
        "scenario-started",
        "pieces-found",
        "plan-generated",
        "scenario-completed",
    ]
    # registered prompt is used when none is sent
    assert planner.prompts == [scenarios.get_scenario("Email to Slack").prompt]
    assert results[1].data["pieces"] == ["@activepieces/piece-slack"]
    assert results[2].data["plan"]["steps"][0]["name"] == "send_channel_message"

    state_events = [payload for kind, event, payload in socket.events if event == "response-get-state"]
    first = {s["title"]: s["status"] for s in state_events[0]["scenarios"]}
    last = {s["title"]: s["status"] for s in state_events[-1]["scenarios"]}
    assert first["Email to Slack"] == "running"
    assert last["Email to Slack"] == "stopped"
    assert statuses()["Email to Slack"] == "stopped"

    result_events = [event for kind, event, _ in socket.events if kind == "emit"]
    assert set(result_events) == {"update-results"}


def test_run_scenarios_reports_failure_and_stops():
    scenarios.reset_state()
    socket = RecordingSocket()

    results = asyncio.run(
        scenarios.run_scenarios(
            FakePlanner(fail=True),
            [RunTestsParams(title="Payments to Sheets", prompt="custom prompt")],
            socket,
        )
    )

    assert results[-1].type == "scenario-failed"
    assert "model unavailable" in results[-1].data["error"]
    assert statuses()["Payments to Sheets"] == "stopped"


def test_run_scenarios_unknown_title_without_prompt():
    scenarios.reset_state()

    results = asyncio.run(
        scenarios.run_scenarios(FakePlanner(), [RunTestsParams(title="Nope")], None)
    )

    assert len(results) == 1
    assert results[0].type == "scenario-failed"
    assert results[0].data["error"] == "unknown scenario"
