# stores.py
# Centralize in-memory stores to avoid circular imports.

from models import CopilotState

# Shared by every socket connection; rebuilt by scenarios.reset_state() on start.
SCENARIO_STATE: CopilotState = CopilotState()
