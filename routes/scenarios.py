from fastapi import APIRouter

from models import ListAPIResponse, Scenario
from stores import SCENARIO_STATE

router = APIRouter(prefix="/api/scenarios", tags=["scenarios"])


@router.get("", response_model=ListAPIResponse[Scenario])
def list_scenario_state():
    """Current scenario titles, prompts and run status (same data as the socket snapshot)."""
    return {"ok": True, "items": SCENARIO_STATE.scenarios}
