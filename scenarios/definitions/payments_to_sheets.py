"""Log Stripe payments to a spreadsheet."""
from scenarios.core import ScenarioDefinition, register_scenario


register_scenario(
    ScenarioDefinition(
        title="Payments to Sheets",
        prompt=(
            "Every time a new payment succeeds in Stripe, append a row to my "
            "'Revenue' Google Sheet with the customer email, amount and currency."
        ),
    )
)
