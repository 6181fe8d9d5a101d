"""Scenario registry, built-in scenario loading and the test runner."""
from .core import (
    ScenarioDefinition,
    SCENARIOS,
    register_scenario,
    get_scenario,
    list_scenarios,
    load_builtin_scenarios,
)
from .runner import (
    reset_state,
    state_payload,
    update_test_state,
    add_result,
    run_scenarios,
)

load_builtin_scenarios()

__all__ = [
    "ScenarioDefinition",
    "SCENARIOS",
    "register_scenario",
    "get_scenario",
    "list_scenarios",
    "load_builtin_scenarios",
    "reset_state",
    "state_payload",
    "update_test_state",
    "add_result",
    "run_scenarios",
]
