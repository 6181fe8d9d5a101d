"""Websocket routing for the copilot test runner."""

from __future__ import annotations

import os
import sys
import threading
from pathlib import Path

from fastapi.testclient import TestClient


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


os.environ.setdefault("OPENAI_API_KEY", "test-key")


import app  # noqa: E402
import scenarios  # noqa: E402
from models import EmbeddedPiece, FlowPlan, FlowStep, SegmentMetadata  # noqa: E402
from routes import copilot_ws  # noqa: E402


class FakePlanner:
    def find_pieces(self, prompt):
        return [
            EmbeddedPiece(
                metadata=SegmentMetadata(piece_name="@activepieces/piece-gmail", display_name="Gmail"),
                content="Gmail: email",
                embedding=[1.0],
            )
        ]

    def plan(self, prompt, pieces):
        return FlowPlan(name="Mail", steps=[FlowStep(piece_name="@activepieces/piece-gmail", kind="trigger")])


def test_get_state_returns_all_scenarios_stopped():
    scenarios.reset_state()
    client = TestClient(app.app)

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "get-state"})
        msg = ws.receive_json()

    assert msg["type"] == "response-get-state"
    titles = [s["title"] for s in msg["data"]["scenarios"]]
    assert "Email to Slack" in titles
    assert all(s["status"] == "stopped" for s in msg["data"]["scenarios"])


def test_run_tests_streams_state_and_results(monkeypatch):
    scenarios.reset_state()
    monkeypatch.setattr(copilot_ws, "planner_agent", FakePlanner())
    client = TestClient(app.app)

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "run-tests", "data": {"title": "Email to Slack"}})
        frames = [ws.receive_json() for _ in range(6)]

    types = [f["type"] for f in frames]
    assert types == [
        "response-get-state",
        "update-results",
        "update-results",
        "update-results",
        "update-results",
        "response-get-state",
    ]
    running = {s["title"]: s["status"] for s in frames[0]["data"]["scenarios"]}
    stopped = {s["title"]: s["status"] for s in frames[-1]["data"]["scenarios"]}
    assert running["Email to Slack"] == "running"
    assert stopped["Email to Slack"] == "stopped"

    results = [f["data"] for f in frames[1:5]]
    assert [r["type"] for r in results] == [
        "scenario-started",
        "pieces-found",
        "plan-generated",
        "scenario-completed",
    ]
    assert all(r["scenario_title"] == "Email to Slack" for r in results)
    assert results[1]["data"]["pieces"] == ["@activepieces/piece-gmail"]


def test_invalid_frames_get_error_and_keep_connection_open():
    scenarios.reset_state()
    client = TestClient(app.app)

    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "launch-rockets"})
        unknown = ws.receive_json()
        assert unknown["type"] == "error"
        assert unknown["data"]["event"] == "launch-rockets"

        ws.send_json({"type": "run-tests", "data": {"prompt": "missing title"}})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "get-state"})
        assert ws.receive_json()["type"] == "response-get-state"


class GatedPlanner(FakePlanner):
    def __init__(self):
        self.gate = threading.Event()

    def find_pieces(self, prompt):
        self.gate.wait(timeout=5)
        return super().find_pieces(prompt)


def test_get_state_is_answered_while_a_run_is_in_progress(monkeypatch):
    scenarios.reset_state()
    gated = GatedPlanner()
    monkeypatch.setattr(copilot_ws, "planner_agent", gated)
    client = TestClient(app.app)

    try:
        with client.websocket_connect("/ws") as ws:
            ws.send_json({"type": "run-tests", "data": {"title": "Email to Slack"}})
            assert ws.receive_json()["type"] == "response-get-state"
            assert ws.receive_json()["data"]["type"] == "scenario-started"

            # the planner is still blocked, yet the state request gets a reply
            ws.send_json({"type": "get-state"})
            mid = ws.receive_json()
            assert mid["type"] == "response-get-state"
            assert {s["title"]: s["status"] for s in mid["data"]["scenarios"]}["Email to Slack"] == "running"

            gated.gate.set()
            rest = [ws.receive_json() for _ in range(4)]
    finally:
        gated.gate.set()

    assert [f["data"]["type"] for f in rest[:3]] == ["pieces-found", "plan-generated", "scenario-completed"]
    final = {s["title"]: s["status"] for s in rest[3]["data"]["scenarios"]}
    assert final["Email to Slack"] == "stopped"
