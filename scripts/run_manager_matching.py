#!/usr/bin/env python3
"""Run matching for one manager's job (or one candidate) outside Dagster and print results.

Usage:
    python scripts/run_manager_matching.py 1001
    python scripts/run_manager_matching.py --candidate 2002

Uses OpenRouter for embeddings, decisions and explanations when OPENROUTER_API_KEY
is set; otherwise mock embeddings and the deterministic fallbacks. The similarity
index is used only when QDRANT_URL and QDRANT_API_KEY are set.

Requires:
    - candidate_profiles and job_profiles populated in PostgreSQL
    - alembic upgrade head
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
load_dotenv()

from candidate_matching.jobs import build_matching_engine  # noqa: E402
from candidate_matching.matching.engine import (  # noqa: E402
    MatchingSettings,
    format_manager_message,
)
from candidate_matching.matching.types import MatchingRunResult  # noqa: E402
from candidate_matching.resources import (  # noqa: E402
    MatchStoreResource,
    MockEmbeddingResource,
    OpenRouterResource,
    ProfileStoreResource,
    QdrantResource,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
log = logging.getLogger("manager_matching")


def print_result(result: MatchingRunResult) -> None:
    print("\n" + "=" * 80)
    if result.manager_user_id is not None:
        print(f"  MATCHING RUN FOR MANAGER {result.manager_user_id}")
    else:
        print("  CANDIDATE MATCHING RUN")
    print("=" * 80)
    if result.aborted_reason:
        print(f"  Aborted: {result.aborted_reason}")
        print("=" * 80 + "\n")
        return

    print(
        f"  considered={result.candidates_considered} recorded={result.records_created} "
        f"skipped={result.candidates_skipped}"
    )
    print("-" * 80)
    for match in result.matches:
        print(
            f"  {match.id}  manager={match.manager_user_id}  candidate={match.candidate_user_id}"
            f"  score={match.score}  status={match.status.value}"
        )
        for key, value in match.breakdown.items():
            print(f"      {key:<24} {value}")
    print("-" * 80)
    print(format_manager_message(result.matches))
    print("=" * 80 + "\n")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("user_id", type=int, help="Manager user id (or candidate with --candidate)")
    parser.add_argument("--candidate", action="store_true", help="Treat user_id as a candidate")
    parser.add_argument("--top-k", type=int, default=3)
    args = parser.parse_args()

    openrouter = OpenRouterResource()
    openrouter.set_context(run_id="local", op_name="manager_matching_script")
    engine = build_matching_engine(
        openrouter,
        MockEmbeddingResource(),
        QdrantResource(),
        ProfileStoreResource(),
        MatchStoreResource(),
        MatchingSettings(top_k=args.top_k),
    )

    if args.candidate:
        result = asyncio.run(engine.run_for_candidate(args.user_id))
    else:
        result = asyncio.run(engine.run_for_manager(args.user_id))
    print_result(result)

    costs = openrouter.get_run_costs()
    if costs.api_calls:
        log.info(f"LLM: {costs.api_calls} calls, ${costs.total_cost_usd:.4f}")


if __name__ == "__main__":
    main()
