"""
Semantic piece retrieval
------------------------
Embeds every piece (and its actions/triggers) once, stores the vectors in a
flat JSON file, and ranks them against a free-text query.

Pipeline
- fetch_pieces: list pieces from the pieces API, then pull each piece's details
- process_pieces: one text segment per piece, action and trigger
- embed_pieces: batched calls to the embeddings provider
- save_embeddings / load_embeddings: JSON array of EmbeddedPiece (camelCase keys)

Query
- find_relevant_pieces(query, threshold): load everything, embed the query,
  cosine-rank, keep scores >= threshold, dedupe by piece name (first wins)

The provider call is injected by app.py (same pattern as the other hooks):
- embed_many(texts) -> List[List[float]]
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import requests
import structlog

from models import EmbeddedPiece, PieceSegment, SegmentMetadata
from utils import clean_text, cosine_sim

logger = structlog.get_logger("pieces_search")


# ---------- Injection hooks (filled by app on import) ----------
embed_many = None  # type: ignore


# ---------- Config knobs ----------

ROOT = Path(__file__).resolve().parent
PIECES_API_URL = os.getenv("PIECES_API_URL", "https://cloud.activepieces.com/api/v1")
EMBEDDINGS_PATH = Path(os.getenv("PIECES_EMBEDDINGS_PATH", str(ROOT / "data" / "pieces-embeddings.json")))

DEFAULT_THRESHOLD = 0.45
EMBED_BATCH_SIZE = 100
TOP_MATCHES_LOGGED = 5
HTTP_TIMEOUT_S = 30


# ---------- Fetch ----------

def _get_json(url: str) -> Any:
    r = requests.get(url, timeout=HTTP_TIMEOUT_S)
    r.raise_for_status()
    return r.json()


def fetch_pieces(base_url: Optional[str] = None) -> List[Dict[str, Any]]:
    """Return piece summaries enriched with their actions and triggers."""
    base = (base_url or PIECES_API_URL).rstrip("/")
    summaries = _get_json(f"{base}/pieces")
    if not isinstance(summaries, list):
        raise ValueError(f"Unexpected pieces listing payload: {type(summaries).__name__}")

    pieces: List[Dict[str, Any]] = []
    for summary in summaries:
        name = summary.get("name")
        if not name:
            continue
        try:
            detail = _get_json(f"{base}/pieces/{name}")
        except (requests.RequestException, ValueError) as e:
            # Keep the summary: the piece itself is still searchable.
            logger.warning("piece_detail_fetch_failed", piece=name, error=str(e))
            detail = {}
        pieces.append({**summary, **(detail or {})})
    return pieces


# ---------- Segmenting ----------

def _iter_items(raw: Any) -> Iterable[Dict[str, Any]]:
    # The API returns actions/triggers keyed by name; tolerate plain lists too.
    if isinstance(raw, dict):
        for key, item in raw.items():
            if isinstance(item, dict):
                yield {"name": key, **item}
    elif isinstance(raw, list):
        for item in raw:
            if isinstance(item, dict):
                yield item


def process_pieces(pieces: Sequence[Dict[str, Any]]) -> List[PieceSegment]:
    segments: List[PieceSegment] = []
    for piece in pieces:
        piece_name = piece.get("name")
        if not piece_name:
            continue
        display = clean_text(piece.get("displayName")) or piece_name

        description = clean_text(piece.get("description"))
        content = f"{display}: {description}" if description else display
        segments.append(
            PieceSegment(
                metadata=SegmentMetadata(piece_name=piece_name, display_name=display, kind="piece"),
                content=content,
            )
        )

        for kind, key in (("action", "actions"), ("trigger", "triggers")):
            for item in _iter_items(piece.get(key)):
                item_display = clean_text(item.get("displayName")) or clean_text(item.get("name"))
                item_desc = clean_text(item.get("description"))
                if not item_display and not item_desc:
                    continue
                text = f"{display} {kind} {item_display}"
                if item_desc:
                    text += f": {item_desc}"
                segments.append(
                    PieceSegment(
                        metadata=SegmentMetadata(
                            piece_name=piece_name,
                            display_name=display,
                            kind=kind,
                            item_name=item.get("name"),
                        ),
                        content=text,
                    )
                )
    return segments


# ---------- Embedding + storage ----------

def embed_pieces(segments: Sequence[PieceSegment], batch_size: Optional[int] = None) -> List[EmbeddedPiece]:
    if embed_many is None:
        raise RuntimeError("pieces_search.embed_many is not wired")
    batch_size = max(1, batch_size or EMBED_BATCH_SIZE)

    out: List[EmbeddedPiece] = []
    for start in range(0, len(segments), batch_size):
        batch = segments[start:start + batch_size]
        vectors = embed_many([s.content for s in batch])
        if len(vectors) != len(batch):
            raise ValueError(f"Provider returned {len(vectors)} embeddings for {len(batch)} inputs")
        for seg, vec in zip(batch, vectors):
            out.append(EmbeddedPiece(metadata=seg.metadata, content=seg.content, embedding=vec))
        logger.debug("embedded_batch", start=start, size=len(batch), total=len(segments))
    return out


def save_embeddings(pieces: Sequence[EmbeddedPiece], path: Optional[Path] = None) -> None:
    path = Path(path) if path is not None else EMBEDDINGS_PATH
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = [p.model_dump(by_alias=True) for p in pieces]
    path.write_text(json.dumps(payload), encoding="utf-8")
    logger.info("embeddings_saved", path=str(path), count=len(payload))


def load_embeddings(path: Optional[Path] = None) -> List[EmbeddedPiece]:
    """Read the whole file. Raises FileNotFoundError when nothing was generated yet."""
    path = Path(path) if path is not None else EMBEDDINGS_PATH
    raw = json.loads(path.read_text(encoding="utf-8"))
    return [EmbeddedPiece.model_validate(item) for item in raw]


def generate_pieces_embeddings(path: Optional[Path] = None) -> int:
    target = Path(path) if path is not None else EMBEDDINGS_PATH
    try:
        logger.debug("embedding_generation_started")

        pieces = fetch_pieces()
        logger.debug("pieces_fetched", count=len(pieces))

        segments = process_pieces(pieces)
        logger.debug("segments_created", count=len(segments))

        embedded = embed_pieces(segments)
        save_embeddings(embedded, target)

        logger.debug("embedding_generation_completed", count=len(embedded))
        return len(embedded)
    except Exception as e:
        logger.error("embedding_generation_failed", error=str(e), exc_info=True)
        raise


# ---------- Ranking ----------

def rank_pieces(query_vec: Sequence[float], pieces: Sequence[EmbeddedPiece]) -> List[Tuple[EmbeddedPiece, float]]:
    """Score every piece against the query, best first. Ties keep file order.

    Zero, non-finite or mismatched vectors score 0.0.
    """
    q = np.asarray(query_vec, dtype=np.float64).reshape(-1)
    q_ok = q.size > 0 and bool(np.all(np.isfinite(q)))
    scored: List[Tuple[EmbeddedPiece, float]] = []
    for piece in pieces:
        v = np.asarray(piece.embedding, dtype=np.float64).reshape(-1)
        sim = 0.0
        if q_ok and v.shape == q.shape and np.all(np.isfinite(v)):
            sim = cosine_sim(q, v)
            if not np.isfinite(sim):
                sim = 0.0
        scored.append((piece, sim))
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored


def select_relevant(
    ranked: Sequence[Tuple[EmbeddedPiece, float]], threshold: float = DEFAULT_THRESHOLD
) -> List[Tuple[EmbeddedPiece, float]]:
    """Keep scores >= threshold; first occurrence of each piece name wins."""
    seen: set[str] = set()
    out: List[Tuple[EmbeddedPiece, float]] = []
    for piece, sim in ranked:
        if sim < threshold:
            continue
        name = piece.metadata.piece_name
        if name in seen:
            continue
        seen.add(name)
        out.append((piece, sim))
    return out


def find_relevant_pieces_scored(
    query: str, threshold: float = DEFAULT_THRESHOLD, path: Optional[Path] = None
) -> List[Tuple[EmbeddedPiece, float]]:
    if embed_many is None:
        raise RuntimeError("pieces_search.embed_many is not wired")
    target = Path(path) if path is not None else EMBEDDINGS_PATH
    try:
        embedded = load_embeddings(target)
        logger.debug("embeddings_loaded", count=len(embedded))

        [query_vec] = embed_many([query])
        ranked = rank_pieces(query_vec, embedded)

        for piece, sim in ranked[:TOP_MATCHES_LOGGED]:
            logger.debug(
                "top_match",
                piece=piece.metadata.piece_name,
                similarity=round(sim, 3),
                content=piece.content,
            )

        relevant = select_relevant(ranked, threshold)
        logger.debug(
            "relevant_pieces",
            count=len(relevant),
            threshold=threshold,
            pieces=[p.metadata.piece_name for p, _ in relevant],
        )
        return relevant
    except FileNotFoundError:
        logger.warning("embeddings_file_missing", path=str(target))
        raise
    except Exception as e:
        logger.error("find_relevant_pieces_failed", error=str(e), exc_info=True)
        raise


def find_relevant_pieces(
    query: str, threshold: float = DEFAULT_THRESHOLD, path: Optional[Path] = None
) -> List[EmbeddedPiece]:
    return [piece for piece, _ in find_relevant_pieces_scored(query, threshold, path)]
