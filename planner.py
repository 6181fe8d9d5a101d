"""
Copilot planner agent: turns a natural-language automation request into a
flow plan (one trigger, then actions) built from the pieces that semantic
search considers relevant.

Hooks filled by app on import:
- call_openai_chat(messages, *, temperature, ...) -> str
"""

from __future__ import annotations

import json
import re
from typing import List, Optional, Sequence

import structlog
from pydantic import ValidationError

import pieces_search
from models import EmbeddedPiece, FlowPlan

logger = structlog.get_logger("planner")


# ---------- Injection hooks (filled by app on import) ----------
call_openai_chat = None  # type: ignore


PLANNER_SYSTEM = (
    "You are an automation planner. Build a flow that fulfils the user's request "
    "using ONLY the pieces listed. A flow starts with exactly one trigger followed by actions. "
    "Reply with JSON only, using this schema:\n"
    '{"name":"...","description":"...","steps":[{"piece_name":"<piece name>",'
    '"kind":"trigger|action","name":"<trigger or action name>","description":"..."}]}'
)


def _format_pieces_block(pieces: Sequence[EmbeddedPiece]) -> str:
    if not pieces:
        return "(no relevant piece found)"
    return "\n".join(f"- {p.metadata.piece_name}: {p.content}" for p in pieces)


def parse_plan_payload(raw: str) -> Optional[FlowPlan]:
    """Lenient JSON extraction: whole reply first, then the first {...} block."""
    if not raw:
        return None
    raw = raw.strip()
    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", raw, re.DOTALL)
        if not match:
            return None
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError:
            return None
    try:
        return FlowPlan.model_validate(data)
    except ValidationError:
        return None


class PlannerAgent:
    def __init__(self, max_pieces: int = 8, threshold: float = pieces_search.DEFAULT_THRESHOLD):
        self.max_pieces = max_pieces
        self.threshold = threshold

    def find_pieces(self, prompt: str) -> List[EmbeddedPiece]:
        pieces = pieces_search.find_relevant_pieces(prompt, threshold=self.threshold)
        return pieces[: self.max_pieces]

    def plan(self, prompt: str, pieces: Sequence[EmbeddedPiece]) -> FlowPlan:
        if call_openai_chat is None:
            raise RuntimeError("planner.call_openai_chat is not wired")

        messages = [
            {"role": "system", "content": PLANNER_SYSTEM},
            {
                "role": "user",
                "content": f"Available pieces:\n{_format_pieces_block(pieces)}\n\nRequest:\n{prompt.strip()}",
            },
        ]
        raw = call_openai_chat(messages, temperature=0.0, presence_penalty=0.0, frequency_penalty=0.0)
        plan = parse_plan_payload(raw)
        if plan is None:
            logger.warning("planner_unparseable_reply", preview=(raw or "")[:200])
            return FlowPlan(description="The planner reply could not be parsed.")

        # Drop steps that reference pieces we never offered.
        allowed = {p.metadata.piece_name for p in pieces}
        kept = [s for s in plan.steps if s.piece_name in allowed]
        if len(kept) != len(plan.steps):
            logger.info("planner_dropped_unknown_steps", dropped=len(plan.steps) - len(kept))
        plan.steps = kept
        return plan
