#!/usr/bin/env python3
"""Embed candidate profiles into the Qdrant similarity index.

Usage:
    python scripts/backfill_index.py
    python scripts/backfill_index.py --limit 1000
    python scripts/backfill_index.py --candidate 2002
    python scripts/backfill_index.py --delete 2002

Requires:
    - QDRANT_URL and QDRANT_API_KEY
    - OPENROUTER_API_KEY (mock embeddings otherwise; only useful for local testing)
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
load_dotenv()

from candidate_matching.jobs import select_embed_fn  # noqa: E402
from candidate_matching.matching.backfill import IndexBackfill  # noqa: E402
from candidate_matching.resources import (  # noqa: E402
    MockEmbeddingResource,
    OpenRouterResource,
    ProfileStoreResource,
    QdrantResource,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger("backfill_index")


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync candidate profiles into Qdrant")
    parser.add_argument("--limit", type=int, default=300)
    parser.add_argument("--candidate", type=int, metavar="CANDIDATE_ID", default=None)
    parser.add_argument("--delete", type=int, metavar="CANDIDATE_ID", default=None)
    args = parser.parse_args()

    qdrant = QdrantResource()
    if not qdrant.enabled:
        log.error("QDRANT_URL / QDRANT_API_KEY not set; nothing to do")
        sys.exit(1)

    openrouter = OpenRouterResource()
    openrouter.set_context(run_id="local", op_name="index_backfill_script")
    backfill = IndexBackfill(
        qdrant, ProfileStoreResource(), select_embed_fn(openrouter, MockEmbeddingResource())
    )

    if args.delete is not None:
        asyncio.run(backfill.delete_candidate(args.delete))
        log.info(f"Deleted candidate {args.delete} from {qdrant.candidate_collection}")
        return

    if args.candidate is not None:
        upserted = asyncio.run(backfill.upsert_candidate(args.candidate))
        log.info(f"Candidate {args.candidate} upserted: {upserted}")
        return

    synced = asyncio.run(backfill.sync(limit=args.limit))
    log.info(f"Synced {synced} candidates into {qdrant.candidate_collection}")


if __name__ == "__main__":
    main()
