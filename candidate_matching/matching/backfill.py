"""Keeps the candidate similarity index in step with the profile store."""

import asyncio
import logging
from typing import TYPE_CHECKING

from candidate_matching.errors import ProviderError
from candidate_matching.matching.shortlist import (
    DEFAULT_CALL_TIMEOUT_SECONDS,
    EMBED_FAN_OUT,
    INDEX_SYNC_LIMIT,
    EmbedFn,
    build_candidate_text,
)
from candidate_matching.matching.types import CandidateMatchSource, TechnicalResumeAnalysis

if TYPE_CHECKING:
    from candidate_matching.resources.profile_store import ProfileStoreResource
    from candidate_matching.resources.qdrant import QdrantResource

logger = logging.getLogger(__name__)

PAYLOAD_TEXT_CHARS = 400


def index_payload(source: CandidateMatchSource) -> dict:
    payload = {"searchable_text": source.searchable_text[:PAYLOAD_TEXT_CHARS]}
    if isinstance(source.resume_analysis, TechnicalResumeAnalysis):
        payload["seniority"] = source.resume_analysis.seniority_estimate
        payload["primary_direction"] = source.resume_analysis.primary_direction
    return payload


class IndexBackfill:
    def __init__(
        self,
        index: "QdrantResource",
        store: "ProfileStoreResource",
        embed: EmbedFn,
        timeout: float = DEFAULT_CALL_TIMEOUT_SECONDS,
        fan_out: int = EMBED_FAN_OUT,
    ):
        self.index = index
        self.store = store
        self.embed = embed
        self.timeout = timeout
        self.fan_out = fan_out

    async def _upsert_source(self, source: CandidateMatchSource) -> bool:
        text = build_candidate_text(source)
        if not text:
            return False
        try:
            vector = await asyncio.wait_for(self.embed(text), timeout=self.timeout)
            await asyncio.wait_for(
                self.index.upsert(source.candidate_user_id, vector, index_payload(source)),
                timeout=self.timeout,
            )
        except (ProviderError, TimeoutError) as e:
            logger.warning("Index upsert failed for candidate %s: %s", source.candidate_user_id, e)
            return False
        return True

    async def sync(self, limit: int = INDEX_SYNC_LIMIT) -> int:
        """Re-embed and upsert up to `limit` candidates. Returns how many were upserted."""
        if not self.index.enabled:
            return 0
        sources = await asyncio.to_thread(self.store.list_candidate_match_sources, limit)
        semaphore = asyncio.Semaphore(self.fan_out)

        async def upsert(source: CandidateMatchSource) -> bool:
            async with semaphore:
                return await self._upsert_source(source)

        results = await asyncio.gather(*(upsert(s) for s in sources))
        upserted = sum(results)
        logger.info("Index sync upserted %s of %s candidates", upserted, len(sources))
        return upserted

    async def upsert_candidate(self, candidate_user_id: int) -> bool:
        """Refresh one candidate's vector after a profile update."""
        if not self.index.enabled:
            return False
        source = await asyncio.to_thread(self.store.get_candidate_match_source, candidate_user_id)
        if source is None:
            logger.warning("Candidate %s has no profile to index", candidate_user_id)
            return False
        return await self._upsert_source(source)

    async def delete_candidate(self, candidate_user_id: int) -> None:
        """Remove a candidate's vector, e.g. on data deletion."""
        await asyncio.wait_for(self.index.delete(candidate_user_id), timeout=self.timeout)
        logger.info("Deleted index vector for candidate %s", candidate_user_id)
