"""Forward incoming email to a Slack channel."""
from scenarios.core import ScenarioDefinition, register_scenario


register_scenario(
    ScenarioDefinition(
        title="Email to Slack",
        prompt=(
            "When I receive a new email in Gmail from my manager, "
            "post the subject and a short summary to the #inbox Slack channel."
        ),
    )
)
