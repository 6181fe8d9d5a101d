# app.py
# FastAPI backend for the flow copilot
# Goals:
# - Semantic search over pieces (connectors) backed by a flat embeddings file
# - Planner agent that drafts flows from the relevant pieces
# - Websocket channel streaming live test-run state to the browser
# - Clear, practical comments, minimal external deps

import os
import time
from typing import List, Dict, Optional
import requests
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel
import logging
import structlog

# --- Configure structlog + stdlib logging
logging.basicConfig(format="%(message)s",level=logging.INFO,)
structlog.configure(wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),processors=[structlog.processors.TimeStamper(fmt="iso"),structlog.processors.JSONRenderer(), ],)
logger = structlog.get_logger("app")
logger.warning("Starting flow copilot backend")

# Load environment variables before modules read their own knobs
from dotenv import load_dotenv

load_dotenv()

import pieces_search
import planner
from planner import PlannerAgent
from scenarios import reset_state
from utils import build_openai_headers

# ----------------------------
# Environment & settings
# ----------------------------

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
OPENAI_CHAT_MODEL = os.getenv("OPENAI_CHAT_MODEL", "gpt-4o")
OPENAI_EMB_MODEL = os.getenv("OPENAI_EMB_MODEL", "text-embedding-3-small")
FRONT_ORIGIN = os.getenv("FRONT_ORIGIN", "*")
COPILOT_PORT = int(os.getenv("COPILOT_PORT", "3002"))

if not OPENAI_API_KEY:
    # Fail fast to avoid ambiguous runtime errors
    raise RuntimeError("Missing OPENAI_API_KEY environment variable.")


# ----------------------------
# Config knobs (tunable)
# ----------------------------

class Settings(BaseModel):
    # Semantic search
    similarity_threshold: float = pieces_search.DEFAULT_THRESHOLD
    embedding_batch_size: int = pieces_search.EMBED_BATCH_SIZE
    top_matches_logged: int = pieces_search.TOP_MATCHES_LOGGED

    # Planner: how many relevant pieces are offered to the model
    planner_max_pieces: int = 8

    # Provider calls
    embed_retries: int = 2
    chat_retries: int = 2
    embed_timeout_s: int = 30
    chat_timeout_s: int = 60


settings = Settings()

# Embeddings cache to reduce network calls (scenario prompts repeat across runs)
_EMB_CACHE: Dict[str, List[float]] = {}


# ----------------------------
# Embeddings (batched)
# ----------------------------

def embed_many(texts: List[str], retries: Optional[int] = None, timeout_s: Optional[int] = None) -> List[List[float]]:
    retries = settings.embed_retries if retries is None else retries
    timeout_s = settings.embed_timeout_s if timeout_s is None else timeout_s

    missing = [t for t in dict.fromkeys(texts) if t not in _EMB_CACHE]
    if missing:
        url = f"{OPENAI_BASE_URL}/embeddings"
        payload = {"model": OPENAI_EMB_MODEL, "input": missing}
        headers = build_openai_headers(OPENAI_API_KEY)

        last_err = None
        vectors = None
        for i in range(retries + 1):
            try:
                r = requests.post(url, json=payload, headers=headers, timeout=timeout_s)
                if r.status_code == 200:
                    data = sorted(r.json()["data"], key=lambda d: d.get("index", 0))
                    vectors = [d["embedding"] for d in data]
                    if len(vectors) != len(missing) or not all(vectors):  # hard guard
                        raise HTTPException(status_code=502, detail="Empty embedding from provider")
                    break
                last_err = {"status": r.status_code, "body": r.text[:2000]}
            except requests.RequestException as e:
                last_err = {"exception": str(e)}
            time.sleep(0.8 * (2 ** i))

        if vectors is None:
            logger.error("OpenAI embeddings error after retries", last_err=last_err, model=OPENAI_EMB_MODEL)
            raise HTTPException(status_code=502, detail={"where": "embeddings", "last_err": last_err})
        for text, vec in zip(missing, vectors):
            _EMB_CACHE[text] = vec

    return [_EMB_CACHE[t] for t in texts]


# ----------------------------
# OpenAI call (robust)
# ----------------------------

def call_openai_chat(
    messages: List[Dict[str, str]],
    retries: Optional[int] = None,
    *,
    temperature: float = 0.2,
    presence_penalty: float = 0.0,
    frequency_penalty: float = 0.0,
) -> str:
    retries = settings.chat_retries if retries is None else retries
    url = f"{OPENAI_BASE_URL}/chat/completions"
    payload = {
        "model": OPENAI_CHAT_MODEL,
        "messages": messages,
        "temperature": temperature,
        "presence_penalty": presence_penalty,
        "frequency_penalty": frequency_penalty,
    }
    headers = build_openai_headers(OPENAI_API_KEY)

    last_err = None
    for i in range(retries + 1):
        try:
            r = requests.post(url, json=payload, headers=headers, timeout=settings.chat_timeout_s)
            if r.status_code == 200:
                data = r.json()
                return data["choices"][0]["message"]["content"]
            # keep a readable error body
            try:
                err_json = r.json()
            except ValueError:
                err_json = {"raw_text": r.text}
            last_err = {"status": r.status_code, "error": err_json}
        except requests.RequestException as e:
            last_err = {"exception": str(e)}
        time.sleep(0.8 * (2 ** i))

    logger.error(
        "OpenAI chat error after retries",
        last_err=last_err,
        model=OPENAI_CHAT_MODEL,
        base_url=OPENAI_BASE_URL,
    )
    raise HTTPException(
        status_code=502,
        detail={
            "where": "chat",
            "model": OPENAI_CHAT_MODEL,
            "base_url": OPENAI_BASE_URL,
            "last_err": last_err,
        },
    )


# ----------------------------
# Pieces search + planner integration
# ----------------------------

pieces_search.embed_many = embed_many
pieces_search.EMBED_BATCH_SIZE = settings.embedding_batch_size
pieces_search.TOP_MATCHES_LOGGED = settings.top_matches_logged
planner.call_openai_chat = call_openai_chat

planner_agent = PlannerAgent(
    max_pieces=settings.planner_max_pieces,
    threshold=settings.similarity_threshold,
)

# Scenario state lives for the process lifetime only
reset_state()

# ----------------------------
# FastAPI app
# ----------------------------
from routes.health import router as health_router
from routes.scenarios import router as scenarios_router
from routes.pieces import router as pieces_router
from routes.copilot_ws import router as copilot_ws_router
app = FastAPI(title="Flow Copilot — Backend")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in FRONT_ORIGIN.split(",") if o.strip()],
    allow_credentials=FRONT_ORIGIN != "*",
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(scenarios_router)
app.include_router(pieces_router)
app.include_router(copilot_ws_router)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=COPILOT_PORT)
