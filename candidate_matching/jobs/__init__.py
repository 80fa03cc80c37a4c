"""Dagster jobs for the candidate matching pipeline.

OPS JOBS:
- manager_matching_job: Match one manager's active job against the candidate pool
- candidate_matching_job: Match one candidate against every active job
- active_managers_matching_job: Re-run matching for every active job (scheduled)
- index_backfill_job: Embed candidate profiles into the similarity index

USAGE:
1. Run index_backfill_job once after loading profiles (optional; the shortlist
   falls back to pgvector and in-memory ranking when the index is empty)
2. Launch manager_matching_job with run config {"manager_user_id": ...}
"""

import asyncio
from functools import partial

from dagster import (
    Backoff,
    Config,
    Jitter,
    OpExecutionContext,
    RetryPolicy,
    ScheduleDefinition,
    job,
    op,
)

from candidate_matching.llm import embed_query, explain_match, refine_decision
from candidate_matching.matching.backfill import IndexBackfill
from candidate_matching.matching.engine import (
    MatchingEngine,
    MatchingSettings,
    format_manager_message,
)
from candidate_matching.matching.history import MatchHistory
from candidate_matching.matching.shortlist import EmbedFn, build_default_resolver
from candidate_matching.matching.types import MatchingRunResult
from candidate_matching.resources import (
    MatchStoreResource,
    MockEmbeddingResource,
    OpenRouterResource,
    ProfileStoreResource,
    QdrantResource,
)

MATCHING_RESOURCE_KEYS = {"openrouter", "embeddings", "qdrant", "profile_store", "match_store"}

# Retry policy for API calls (rate limits, transient errors).
# Retries reuse the Dagster run id, so match records are not duplicated.
openrouter_retry_policy = RetryPolicy(
    max_retries=3,
    delay=1,
    backoff=Backoff.EXPONENTIAL,
    jitter=Jitter.PLUS_MINUS,
)


class ManagerMatchingConfig(Config):
    """Run config for manager_matching_job."""

    manager_user_id: int
    top_k: int = 3
    shortlist_size: int = 50


class CandidateMatchingConfig(Config):
    """Run config for candidate_matching_job."""

    candidate_user_id: int
    top_k: int = 3


class IndexBackfillConfig(Config):
    limit: int = 300


def select_embed_fn(
    openrouter: OpenRouterResource, embeddings: MockEmbeddingResource
) -> EmbedFn:
    """OpenRouter embeddings when a key is configured, deterministic mock vectors otherwise."""
    if openrouter.api_key:
        return partial(embed_query, openrouter)
    return embeddings.embed


def build_matching_engine(
    openrouter: OpenRouterResource,
    embeddings: MockEmbeddingResource,
    qdrant: QdrantResource,
    profile_store: ProfileStoreResource,
    match_store: MatchStoreResource,
    settings: MatchingSettings | None = None,
) -> MatchingEngine:
    """Wire a MatchingEngine. Without an OpenRouter key, decisions and
    explanations use the deterministic fallbacks."""
    embed = select_embed_fn(openrouter, embeddings)
    backfill = IndexBackfill(qdrant, profile_store, embed)

    def resolver_factory(history: MatchHistory):
        return build_default_resolver(
            qdrant,
            profile_store,
            embed,
            backfill=backfill,
            history_ids=history.known_candidate_ids,
        )

    llm_enabled = bool(openrouter.api_key)
    return MatchingEngine(
        profile_store=profile_store,
        match_store=match_store,
        resolver_factory=resolver_factory,
        explainer=partial(explain_match, openrouter) if llm_enabled else None,
        refiner=partial(refine_decision, openrouter) if llm_enabled else None,
        settings=settings,
    )


def build_engine(
    context: OpExecutionContext, op_name: str, settings: MatchingSettings | None = None
) -> MatchingEngine:
    resources = context.resources
    resources.openrouter.set_context(run_id=context.run_id, op_name=op_name)
    if not resources.openrouter.api_key:
        context.log.warning("OPENROUTER_API_KEY not set; using mock embeddings and fallbacks")
    return build_matching_engine(
        resources.openrouter,
        resources.embeddings,
        resources.qdrant,
        resources.profile_store,
        resources.match_store,
        settings,
    )


def _log_run(context: OpExecutionContext, result: MatchingRunResult) -> dict:
    costs = context.resources.openrouter.get_run_costs()
    if costs.api_calls:
        context.add_output_metadata(costs.to_metadata())
    if result.aborted_reason:
        context.log.info(f"Run aborted: {result.aborted_reason}")
    context.log.info(
        f"Considered {result.candidates_considered} candidates, recorded "
        f"{result.records_created}, skipped {result.candidates_skipped}, "
        f"delivered {len(result.matches)}"
    )
    return {
        "manager_user_id": result.manager_user_id,
        "aborted_reason": result.aborted_reason,
        "candidates_considered": result.candidates_considered,
        "candidates_skipped": result.candidates_skipped,
        "records_created": result.records_created,
        "match_ids": [m.id for m in result.matches],
    }


# =============================================================================
# MATCHING
# =============================================================================


@op(
    required_resource_keys=MATCHING_RESOURCE_KEYS,
    tags={"dagster/concurrency_key": "openrouter_api"},
    retry_policy=openrouter_retry_policy,
    description="Shortlist, filter, score and record matches for one manager's job",
)
def run_manager_matching(context: OpExecutionContext, config: ManagerMatchingConfig) -> dict:
    settings = MatchingSettings(top_k=config.top_k, shortlist_size=config.shortlist_size)
    engine = build_engine(context, "manager_matching", settings)
    result = asyncio.run(engine.run_for_manager(config.manager_user_id, run_id=context.run_id))
    if not result.aborted_reason:
        message = format_manager_message(result.matches, settings.manager_visible_threshold)
        context.log.info(message)
    return _log_run(context, result)


@op(
    required_resource_keys=MATCHING_RESOURCE_KEYS,
    tags={"dagster/concurrency_key": "openrouter_api"},
    retry_policy=openrouter_retry_policy,
    description="Match one candidate against every active job",
)
def run_candidate_matching(context: OpExecutionContext, config: CandidateMatchingConfig) -> dict:
    engine = build_engine(context, "candidate_matching", MatchingSettings(top_k=config.top_k))
    result = asyncio.run(
        engine.run_for_candidate(config.candidate_user_id, run_id=context.run_id)
    )
    for match in result.matches:
        context.log.info(
            f"Job of manager {match.manager_user_id} | score {match.score} | match {match.id}"
        )
    return _log_run(context, result)


async def _run_managers(
    engine: MatchingEngine, manager_ids: list[int], run_id: str
) -> list[MatchingRunResult]:
    # Sequential: each run must see the records written by the previous one.
    return [await engine.run_for_manager(m, run_id=run_id) for m in manager_ids]


@op(
    required_resource_keys=MATCHING_RESOURCE_KEYS,
    tags={"dagster/concurrency_key": "openrouter_api"},
    description="Re-run matching for every manager with an active job",
)
def run_active_managers_matching(context: OpExecutionContext) -> dict:
    engine = build_engine(context, "active_managers_matching")
    manager_ids = context.resources.profile_store.list_active_manager_ids()
    context.log.info(f"Matching {len(manager_ids)} active jobs")

    delivered = 0
    aborted = 0
    for result in asyncio.run(_run_managers(engine, manager_ids, context.run_id)):
        delivered += len(result.matches)
        if result.aborted_reason:
            aborted += 1
            context.log.info(f"Manager {result.manager_user_id}: {result.aborted_reason}")

    context.log.info(f"Delivered {delivered} matches across {len(manager_ids)} jobs")
    return {"managers": len(manager_ids), "aborted": aborted, "delivered": delivered}


@job(description="Match one manager's active job against the candidate pool")
def manager_matching_job():
    run_manager_matching()


@job(description="Match one candidate against every active job")
def candidate_matching_job():
    run_candidate_matching()


@job(description="Re-run matching for every active job")
def active_managers_matching_job():
    run_active_managers_matching()


# =============================================================================
# SIMILARITY INDEX
# =============================================================================


@op(
    required_resource_keys={"openrouter", "embeddings", "qdrant", "profile_store"},
    tags={"dagster/concurrency_key": "openrouter_api"},
    description="Embed candidate profiles and upsert them into the similarity index",
)
def backfill_candidate_index(context: OpExecutionContext, config: IndexBackfillConfig) -> dict:
    qdrant = context.resources.qdrant
    if not qdrant.enabled:
        context.log.warning("QDRANT_URL not set; nothing to backfill")
        return {"synced": 0}

    context.resources.openrouter.set_context(run_id=context.run_id, op_name="index_backfill")
    embed = select_embed_fn(context.resources.openrouter, context.resources.embeddings)
    backfill = IndexBackfill(qdrant, context.resources.profile_store, embed)
    synced = asyncio.run(backfill.sync(limit=config.limit))
    context.log.info(f"Synced {synced} candidates into {qdrant.candidate_collection}")
    return {"synced": synced}


@job(description="Embed candidate profiles into the similarity index")
def index_backfill_job():
    backfill_candidate_index()


# =============================================================================
# SCHEDULES
# =============================================================================

active_managers_matching_schedule = ScheduleDefinition(
    name="active_managers_matching_hourly",
    cron_schedule="0 * * * *",
    job=active_managers_matching_job,
    description="Re-run matching for every active job at the top of each hour",
)


# Export all jobs
__all__ = [
    "manager_matching_job",
    "candidate_matching_job",
    "active_managers_matching_job",
    "index_backfill_job",
    "active_managers_matching_schedule",
    "build_engine",
    "build_matching_engine",
    "select_embed_fn",
]
