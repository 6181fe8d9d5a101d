"""One-shot generation of the pieces embeddings file.

Usage: python generate_embeddings.py [--output data/pieces-embeddings.json] [--pieces-api URL]
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path

import app  # noqa: F401  wires the embeddings provider into pieces_search
import pieces_search


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Embed every piece and write the embeddings file.")
    parser.add_argument("--output", type=Path, default=pieces_search.EMBEDDINGS_PATH, help="target JSON file")
    parser.add_argument("--pieces-api", default=None, help="override PIECES_API_URL")
    args = parser.parse_args(argv)

    if args.pieces_api:
        pieces_search.PIECES_API_URL = args.pieces_api

    count = pieces_search.generate_pieces_embeddings(args.output)
    print(f"Wrote {count} embedded segments to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
