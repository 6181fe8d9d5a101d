from typing import Optional

import requests
from fastapi import APIRouter, HTTPException, Query

import pieces_search
from app import logger, settings
from models import ListAPIResponse, RelevantPiece

router = APIRouter(prefix="/api/pieces", tags=["pieces"])


@router.get("/search", response_model=ListAPIResponse[RelevantPiece])
def search_pieces(
    query: str,
    threshold: Optional[float] = Query(default=None, ge=-1.0, le=1.0),
):
    """Pieces relevant to ``query``, best first, one entry per piece."""
    if not query.strip():
        raise HTTPException(status_code=400, detail="query must not be empty")
    threshold = settings.similarity_threshold if threshold is None else threshold

    try:
        scored = pieces_search.find_relevant_pieces_scored(query, threshold=threshold)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="pieces embeddings not generated")

    items = [
        RelevantPiece(
            piece_name=piece.metadata.piece_name,
            display_name=piece.metadata.display_name,
            content=piece.content,
            similarity=sim,
        )
        for piece, sim in scored
    ]
    logger.info("pieces_search", query_len=len(query), threshold=threshold, count=len(items))
    return {"ok": True, "items": items}


@router.post("/embeddings")
def regenerate_embeddings():
    """Fetch every piece, embed it and overwrite the embeddings file."""
    try:
        count = pieces_search.generate_pieces_embeddings()
    except requests.RequestException as e:
        raise HTTPException(status_code=502, detail={"where": "pieces_api", "last_err": str(e)})
    except ValueError as e:
        # malformed listing or provider reply that does not match the segments
        raise HTTPException(status_code=502, detail={"where": "pieces_payload", "last_err": str(e)})
    return {"ok": True, "count": count, "path": str(pieces_search.EMBEDDINGS_PATH)}
