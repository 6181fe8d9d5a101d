# /models.py
import time
from typing import Any, Dict, Generic, List, Literal, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


T = TypeVar("T")

ScenarioStatus = Literal["running", "stopped"]
SegmentKind = Literal["piece", "action", "trigger"]
ResultType = Literal[
    "scenario-started",
    "pieces-found",
    "plan-generated",
    "scenario-completed",
    "scenario-failed",
]


class CamelModel(BaseModel):
    # Wire/file payloads use camelCase keys; Python code uses snake_case.
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ----------------------------
# Scenario state
# ----------------------------

class Scenario(BaseModel):
    title: str
    prompt: str
    status: ScenarioStatus = "stopped"


class CopilotState(BaseModel):
    scenarios: List[Scenario] = Field(default_factory=list)


class RunTestsParams(BaseModel):
    title: str
    prompt: Optional[str] = None  # falls back to the registered scenario prompt


class CopilotResult(BaseModel):
    type: ResultType
    scenario_title: str
    data: Dict[str, Any] = Field(default_factory=dict)
    ts: float = Field(default_factory=lambda: time.time())


class WebsocketEventTypes:
    RUN_TESTS = "run-tests"
    GET_STATE = "get-state"
    RESPONSE_GET_STATE = "response-get-state"
    UPDATE_RESULTS = "update-results"
    ERROR = "error"


class SocketMessage(BaseModel):
    # Envelope for every frame exchanged on /ws
    type: str
    data: Optional[Any] = None


# ----------------------------
# Pieces embeddings
# ----------------------------

class SegmentMetadata(CamelModel):
    piece_name: str  # "@activepieces/piece-slack"
    display_name: str
    kind: SegmentKind = "piece"
    item_name: Optional[str] = None  # action/trigger name when kind != "piece"


class PieceSegment(CamelModel):
    metadata: SegmentMetadata
    content: str


class EmbeddedPiece(PieceSegment):
    embedding: List[float]


class RelevantPiece(BaseModel):
    piece_name: str
    display_name: str
    content: str
    similarity: float


# ----------------------------
# Planner output
# ----------------------------

class FlowStep(BaseModel):
    piece_name: str
    kind: Literal["action", "trigger"] = "action"
    name: str = ""
    description: str = ""

    @field_validator("kind", mode="before")
    @classmethod
    def _normalize_kind(cls, v):
        # models sometimes answer "Trigger" or " ACTION "
        return v.strip().lower() if isinstance(v, str) else v


class FlowPlan(BaseModel):
    name: str = ""
    description: str = ""
    steps: List[FlowStep] = Field(default_factory=list)


# ----------------------------
# Generic list envelope + Taskade piece response shapes
# ----------------------------

class ListAPIResponse(BaseModel, Generic[T]):
    ok: bool
    items: List[T]


class BaseResponse(BaseModel):
    id: str
    name: str


class WorkspaceResponse(BaseResponse):
    pass


class WorkspaceFolderResponse(BaseResponse):
    pass


class ProjectResponse(BaseResponse):
    pass


class CreateTaskParams(CamelModel):
    content_type: str  # "text/markdown" | "text/plain"
    content: str
    placement: str  # "beforebegin" | "afterbegin" | ...


class TaskResponse(CamelModel):
    id: str
    text: str
    parent_id: Optional[str] = None
    completed: bool = False


class TaskDateTime(BaseModel):
    date: str  # YYYY-MM-DD
    time: str  # HH:MM


class CreateTaskDateParams(BaseModel):
    start: TaskDateTime
    end: Optional[TaskDateTime] = None
