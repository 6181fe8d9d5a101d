import re
from typing import Dict, Optional

import numpy as np


def cosine_sim(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity with zero-safety."""
    denom = (np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)


def build_openai_headers(bearer: str) -> Dict[str, str]:
    """HTTP headers for OpenAI API."""
    return {
        "Authorization": f"Bearer {bearer}",
        "Content-Type": "application/json",
    }


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace so segments embed consistently."""
    return re.sub(r"\s+", " ", (text or "")).strip()
