"""Scheduled digest of open Taskade tasks."""
from scenarios.core import ScenarioDefinition, register_scenario


register_scenario(
    ScenarioDefinition(
        title="Weekly tasks digest",
        prompt=(
            "Every Monday at 9am, collect the open tasks from my Taskade project "
            "and email me a digest grouped by due date."
        ),
    )
)
