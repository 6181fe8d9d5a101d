"""Run copilot scenarios and stream their state/results over a socket.

``socket`` is anything exposing two coroutines:
- ``emit(event, data)``: send to the client that started the run
- ``broadcast(event, data)``: send to every connected client

Passing ``None`` runs headless: state is still updated, nothing is pushed.
"""
from __future__ import annotations

from typing import Any, List, Optional, Sequence

import structlog
from fastapi.concurrency import run_in_threadpool

from models import CopilotResult, RunTestsParams, Scenario, ScenarioStatus, WebsocketEventTypes
from stores import SCENARIO_STATE

from .core import get_scenario, list_scenarios, load_builtin_scenarios

logger = structlog.get_logger("scenarios")


def reset_state() -> None:
    """Rebuild the shared state from the registry, everything stopped."""
    load_builtin_scenarios()
    SCENARIO_STATE.scenarios = [
        Scenario(title=d.title, prompt=d.prompt, status="stopped") for d in list_scenarios()
    ]


def state_payload() -> dict:
    return SCENARIO_STATE.model_dump()


async def update_test_state(socket: Optional[Any], scenario_title: str, status: ScenarioStatus) -> None:
    found = False
    for scenario in SCENARIO_STATE.scenarios:
        if scenario.title == scenario_title:
            scenario.status = status
            found = True
    if not found:
        logger.warning("scenario_state_unknown_title", title=scenario_title, status=status)

    if socket is not None:
        await socket.broadcast(WebsocketEventTypes.RESPONSE_GET_STATE, state_payload())


async def add_result(socket: Optional[Any], result: CopilotResult) -> None:
    if socket is not None:
        await socket.emit(WebsocketEventTypes.UPDATE_RESULTS, result.model_dump())


def _resolve_prompt(params: RunTestsParams) -> Optional[str]:
    if params.prompt and params.prompt.strip():
        return params.prompt
    definition = get_scenario(params.title)
    return definition.prompt if definition else None


async def run_scenarios(planner: Any, params_list: Sequence[RunTestsParams], socket: Optional[Any]) -> List[CopilotResult]:
    """Run each scenario in turn; returns the results that were pushed."""
    pushed: List[CopilotResult] = []

    async def push(result: CopilotResult) -> None:
        pushed.append(result)
        await add_result(socket, result)

    for params in params_list:
        title = params.title
        prompt = _resolve_prompt(params)
        if prompt is None:
            logger.warning("scenario_not_found", title=title)
            await push(CopilotResult(type="scenario-failed", scenario_title=title, data={"error": "unknown scenario"}))
            continue

        logger.info("scenario_started", title=title)
        await update_test_state(socket, title, "running")
        try:
            await push(CopilotResult(type="scenario-started", scenario_title=title, data={"prompt": prompt}))

            pieces = await run_in_threadpool(planner.find_pieces, prompt)
            await push(
                CopilotResult(
                    type="pieces-found",
                    scenario_title=title,
                    data={"pieces": [p.metadata.piece_name for p in pieces]},
                )
            )

            plan = await run_in_threadpool(planner.plan, prompt, pieces)
            await push(CopilotResult(type="plan-generated", scenario_title=title, data={"plan": plan.model_dump()}))
            await push(CopilotResult(type="scenario-completed", scenario_title=title, data={"steps": len(plan.steps)}))
            logger.info("scenario_completed", title=title, steps=len(plan.steps))
        except Exception as e:
            logger.error("scenario_failed", title=title, error=str(e), exc_info=True)
            await push(CopilotResult(type="scenario-failed", scenario_title=title, data={"error": str(e)}))
        finally:
            await update_test_state(socket, title, "stopped")

    return pushed
