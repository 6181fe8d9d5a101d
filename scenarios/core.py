"""Registry of built-in copilot test scenarios."""
from __future__ import annotations

from importlib import import_module
import pkgutil
from typing import Dict, Optional

from pydantic import BaseModel


class ScenarioDefinition(BaseModel):
    title: str
    prompt: str


SCENARIOS: Dict[str, ScenarioDefinition] = {}


def register_scenario(definition: ScenarioDefinition) -> None:
    SCENARIOS[definition.title] = definition


def get_scenario(title: str) -> Optional[ScenarioDefinition]:
    return SCENARIOS.get(title)


def list_scenarios() -> list[ScenarioDefinition]:
    return list(SCENARIOS.values())


_loaded_builtin_scenarios = False


def load_builtin_scenarios() -> None:
    global _loaded_builtin_scenarios
    if _loaded_builtin_scenarios:
        return

    package_name = f"{__package__}.definitions"
    package = import_module(package_name)

    # Sorted so the state lists scenarios in a stable order.
    modules = sorted(pkgutil.iter_modules(package.__path__), key=lambda m: m.name)  # type: ignore[attr-defined]
    for module_info in modules:
        if module_info.name.startswith("_"):
            continue
        import_module(f"{package_name}.{module_info.name}")

    _loaded_builtin_scenarios = True


__all__ = [
    "ScenarioDefinition",
    "SCENARIOS",
    "register_scenario",
    "get_scenario",
    "list_scenarios",
    "load_builtin_scenarios",
]
