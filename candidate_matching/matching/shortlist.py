"""Candidate shortlist resolution.

The job is turned into one embedding-ready text and embedded once. Tiers are
tried strictly in order until one yields ids:

1. SimilarityIndexStrategy: Qdrant search, with one bounded index sync and retry
   when the index comes back empty.
2. RelationalVectorStrategy: pgvector search over candidate profiles.
3. BruteForceStrategy: embed up to FALLBACK_DB_LIMIT candidates on the fly and
   rank by cosine similarity in memory.
4. KnownCandidatesStrategy: unranked ids from the profile store, then from
   match history. Needs no vector, so it also answers when embedding fails.

A failing tier is logged and skipped; resolve() never raises for provider or
storage errors.
"""

import asyncio
import logging
import math
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from candidate_matching.errors import DataError, ProviderError
from candidate_matching.matching.types import (
    CandidateMatchSource,
    JobProfile,
    JobTechnicalSummary,
    TechnicalResumeAnalysis,
)

if TYPE_CHECKING:
    from candidate_matching.matching.backfill import IndexBackfill
    from candidate_matching.resources.profile_store import ProfileStoreResource
    from candidate_matching.resources.qdrant import QdrantResource

logger = logging.getLogger(__name__)

EmbedFn = Callable[[str], Awaitable[list[float]]]

DEFAULT_SHORTLIST_SIZE = 50
FALLBACK_DB_LIMIT = 200
INDEX_SYNC_LIMIT = 300
MAX_EMBEDDING_TEXT_CHARS = 4000
DEFAULT_CALL_TIMEOUT_SECONDS = 20.0
EMBED_FAN_OUT = 8

# Errors that make a tier contribute nothing instead of failing the run.
TIER_ERRORS = (ProviderError, DataError, SQLAlchemyError, TimeoutError)


def _join_parts(parts: Iterable[str | None]) -> str:
    text = " | ".join(p.strip() for p in parts if p and p.strip())
    return text[:MAX_EMBEDDING_TEXT_CHARS]


def build_job_text(job: JobProfile, summary: JobTechnicalSummary | None = None) -> str:
    """Embedding text for a job: summary headline first, then profile signals."""
    parts: list[str | None] = []
    if summary is not None:
        parts += [
            summary.headline,
            summary.product_context,
            ", ".join(summary.core_tech),
            ", ".join(summary.key_requirements),
        ]
    parts += [
        job.role_title,
        job.product_context.what_the_product_does,
        ", ".join(job.work_scope.current_tasks),
        ", ".join(job.work_scope.current_challenges),
        ", ".join(r.technology for r in job.technology_map.core),
        job.domain_requirements.primary_domain,
        job.ownership_expectation.decision_authority_required,
    ]
    return _join_parts(parts)


def build_candidate_text(source: CandidateMatchSource) -> str:
    """Embedding text for a candidate; same shape for index sync and brute force."""
    parts: list[str | None] = []
    if source.technical_summary is not None:
        summary = source.technical_summary
        parts += [summary.headline, summary.technical_depth_summary]
    parts.append(source.searchable_text)
    analysis = source.resume_analysis
    if isinstance(analysis, TechnicalResumeAnalysis):
        buckets = analysis.skill_depth_classification
        parts += [
            analysis.primary_direction,
            analysis.seniority_estimate,
            ", ".join(buckets.deep_experience),
            ", ".join(buckets.working_experience),
            ", ".join(d.domain for d in analysis.domain_expertise),
            ", ".join(analysis.impact_indicators),
        ]
    return _join_parts(parts)


def cosine_similarity(a: list[float], b: list[float]) -> float:
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def normalize_ids(ids: Iterable[int], limit: int) -> list[int]:
    """Drop non-positive ids and duplicates (keeping first occurrence), cap at limit."""
    seen: dict[int, None] = {}
    for candidate_id in ids:
        if isinstance(candidate_id, int) and candidate_id > 0 and candidate_id not in seen:
            seen[candidate_id] = None
            if len(seen) >= limit:
                break
    return list(seen)


@dataclass(frozen=True)
class ShortlistQuery:
    job_text: str
    vector: list[float] | None
    limit: int = DEFAULT_SHORTLIST_SIZE


class ShortlistStrategy:
    """One retrieval tier."""

    name = "strategy"
    requires_vector = True

    async def shortlist(self, query: ShortlistQuery) -> list[int]:
        raise NotImplementedError


class SimilarityIndexStrategy(ShortlistStrategy):
    name = "similarity_index"

    def __init__(
        self,
        index: "QdrantResource",
        backfill: "IndexBackfill | None" = None,
        timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        sync_limit: int = INDEX_SYNC_LIMIT,
    ):
        self.index = index
        self.backfill = backfill
        self.timeout = timeout
        self.sync_limit = sync_limit

    async def _search(self, query: ShortlistQuery) -> list[int]:
        return await asyncio.wait_for(
            self.index.search(query.vector, query.limit), timeout=self.timeout
        )

    async def shortlist(self, query: ShortlistQuery) -> list[int]:
        if not self.index.enabled:
            return []
        ids = await self._search(query)
        if ids or self.backfill is None:
            return ids

        synced = await self.backfill.sync(limit=self.sync_limit)
        logger.info("Index was empty for shortlist; synced %s candidates and retrying", synced)
        if not synced:
            return []
        return await self._search(query)


class RelationalVectorStrategy(ShortlistStrategy):
    name = "relational_vector"

    def __init__(
        self, store: "ProfileStoreResource", timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS
    ):
        self.store = store
        self.timeout = timeout

    async def shortlist(self, query: ShortlistQuery) -> list[int]:
        rows = await asyncio.wait_for(
            asyncio.to_thread(self.store.search_by_embedding, query.vector, query.limit),
            timeout=self.timeout,
        )
        return [row.candidate_user_id for row in rows]


class BruteForceStrategy(ShortlistStrategy):
    name = "brute_force"

    def __init__(
        self,
        store: "ProfileStoreResource",
        embed: EmbedFn,
        fallback_limit: int = FALLBACK_DB_LIMIT,
        timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        fan_out: int = EMBED_FAN_OUT,
    ):
        self.store = store
        self.embed = embed
        self.fallback_limit = fallback_limit
        self.timeout = timeout
        self.fan_out = fan_out

    async def shortlist(self, query: ShortlistQuery) -> list[int]:
        sources = await asyncio.to_thread(
            self.store.list_candidate_match_sources, self.fallback_limit
        )
        semaphore = asyncio.Semaphore(self.fan_out)

        async def similarity(source: CandidateMatchSource) -> tuple[int, float] | None:
            text = build_candidate_text(source)
            if not text:
                return None
            async with semaphore:
                try:
                    vector = await asyncio.wait_for(self.embed(text), timeout=self.timeout)
                except (ProviderError, TimeoutError) as e:
                    logger.warning(
                        "Brute-force embedding failed for candidate %s: %s",
                        source.candidate_user_id,
                        e,
                    )
                    return None
            return source.candidate_user_id, cosine_similarity(query.vector, vector)

        scored = [
            item
            for item in await asyncio.gather(*(similarity(s) for s in sources))
            if item is not None
        ]
        scored.sort(key=lambda item: item[1], reverse=True)
        return [candidate_id for candidate_id, _ in scored]


class KnownCandidatesStrategy(ShortlistStrategy):
    """Last resort: any known candidate ids, unranked."""

    name = "known_candidates"
    requires_vector = False

    def __init__(
        self,
        store: "ProfileStoreResource",
        history_ids: Callable[[], list[int]] | None = None,
    ):
        self.store = store
        self.history_ids = history_ids

    async def shortlist(self, query: ShortlistQuery) -> list[int]:
        ids: list[int] = []
        try:
            ids = await asyncio.to_thread(self.store.list_candidate_ids, query.limit)
        except SQLAlchemyError as e:
            logger.warning("Profile store unavailable for known candidates: %s", e)
        if not ids and self.history_ids is not None:
            ids = self.history_ids()
        return ids


class ShortlistResolver:
    """Runs the tiers in order and returns the first non-empty, normalized result."""

    def __init__(
        self,
        strategies: list[ShortlistStrategy],
        embed: EmbedFn,
        timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
    ):
        self.strategies = strategies
        self.embed = embed
        self.timeout = timeout

    async def _embed_job(self, job_text: str) -> list[float] | None:
        if not job_text:
            return None
        try:
            vector = await asyncio.wait_for(self.embed(job_text), timeout=self.timeout)
        except (ProviderError, TimeoutError) as e:
            logger.warning("Job embedding failed, only unranked tiers will run: %s", e)
            return None
        return vector or None

    async def resolve(
        self,
        job: JobProfile,
        summary: JobTechnicalSummary | None = None,
        limit: int = DEFAULT_SHORTLIST_SIZE,
    ) -> list[int]:
        job_text = build_job_text(job, summary)
        vector = await self._embed_job(job_text)
        query = ShortlistQuery(job_text=job_text, vector=vector, limit=limit)

        for strategy in self.strategies:
            if strategy.requires_vector and query.vector is None:
                continue
            try:
                ids = normalize_ids(await strategy.shortlist(query), limit)
            except TIER_ERRORS as e:
                logger.warning("Shortlist tier %s failed, falling through: %s", strategy.name, e)
                continue
            if ids:
                logger.info("Shortlist tier %s returned %s candidates", strategy.name, len(ids))
                return ids
            logger.info("Shortlist tier %s returned nothing", strategy.name)

        logger.warning("All shortlist tiers returned nothing")
        return []


def build_default_resolver(
    index: "QdrantResource",
    store: "ProfileStoreResource",
    embed: EmbedFn,
    backfill: "IndexBackfill | None" = None,
    history_ids: Callable[[], list[int]] | None = None,
    timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
) -> ShortlistResolver:
    return ShortlistResolver(
        strategies=[
            SimilarityIndexStrategy(index, backfill, timeout=timeout),
            RelationalVectorStrategy(store, timeout=timeout),
            BruteForceStrategy(store, embed, timeout=timeout),
            KnownCandidatesStrategy(store, history_ids),
        ],
        embed=embed,
        timeout=timeout,
    )
