"""Tests for tiered shortlist resolution."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from factories import backend_job, job_summary, match_source, strong_candidate
from sqlalchemy.exc import OperationalError

from candidate_matching.errors import ProviderError
from candidate_matching.llm import embed_query
from candidate_matching.matching.shortlist import (
    BruteForceStrategy,
    KnownCandidatesStrategy,
    RelationalVectorStrategy,
    ShortlistResolver,
    SimilarityIndexStrategy,
    build_candidate_text,
    build_default_resolver,
    build_job_text,
    cosine_similarity,
    normalize_ids,
)
from candidate_matching.matching.types import NonTechnicalResumeAnalysis, SimilarCandidate
from candidate_matching.resources import OpenRouterResource, QdrantResource

JOB_VECTOR = [1.0, 0.0]
CANDIDATE_VECTORS = {
    "close": [0.9, 0.1],
    "middle": [0.5, 0.5],
    "far": [0.0, 1.0],
}


async def fake_embed(text: str) -> list[float]:
    if text.startswith("Senior Go Engineer"):
        return JOB_VECTOR
    for marker, vector in CANDIDATE_VECTORS.items():
        if text.startswith(marker):
            return vector
    raise ProviderError(f"no vector for {text[:20]!r}")


@pytest.fixture
def disabled_index() -> QdrantResource:
    return QdrantResource(url="", api_key="")


@pytest.fixture
def empty_store():
    store = MagicMock()
    store.search_by_embedding.return_value = []
    store.list_candidate_ids.return_value = []
    store.list_candidate_match_sources.return_value = []
    return store


class TestHelpers:
    """Tests for the shortlist helpers."""

    def test_normalize_ids_dedups_and_limits(self):
        """Test that ids are deduplicated, positive and capped in order."""
        assert normalize_ids([7, 3, 7, -1, 0, 9, 3, 11], limit=3) == [7, 3, 9]

    def test_cosine_similarity(self):
        """Test cosine similarity, including zero and mismatched vectors."""
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 2.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0
        assert cosine_similarity([0.0, 0.0], [1.0, 0.0]) == 0.0

    def test_job_text_leads_with_summary_headline(self):
        """Test that the job text starts with the summary headline."""
        text = build_job_text(backend_job(), job_summary("Payments backend lead"))

        assert text.startswith("Payments backend lead")
        assert "Senior Go Engineer" in text

    def test_job_text_is_bounded(self):
        """Test that the job text is truncated to 4000 characters."""
        job = backend_job(role_title="x" * 5000)

        assert build_job_text(job).startswith("x")
        assert len(build_job_text(job)) == 4000

    def test_candidate_text_skips_non_technical_analysis(self):
        """Test that non-technical analyses add nothing to the candidate text."""
        source = match_source(
            5, analysis=NonTechnicalResumeAnalysis(), searchable_text="Sales manager"
        )

        assert build_candidate_text(source) == "Sales manager"

    def test_candidate_text_includes_technical_signals(self):
        """Test that technical signals are included in the candidate text."""
        source = match_source(5, analysis=strong_candidate(), headline="Go backend engineer")

        text = build_candidate_text(source)

        assert text.startswith("Go backend engineer")
        assert "Kubernetes" in text
        assert "fintech" in text


class TestShortlistResolver:
    """Tests for tier ordering and fall-through."""

    def test_brute_force_when_index_disabled_and_vector_search_empty(
        self, disabled_index, empty_store
    ):
        """Falls through to in-memory cosine ranking and returns ids best-first."""
        empty_store.list_candidate_match_sources.return_value = [
            match_source(3, searchable_text="far"),
            match_source(1, searchable_text="close"),
            match_source(4, searchable_text="unembeddable"),
            match_source(2, searchable_text="middle"),
            match_source(1, searchable_text="close"),
        ]
        resolver = build_default_resolver(disabled_index, empty_store, fake_embed)

        ids = asyncio.run(resolver.resolve(backend_job(), limit=10))

        assert ids == [1, 2, 3]
        empty_store.search_by_embedding.assert_called_once()
        empty_store.list_candidate_match_sources.assert_called_once_with(200)
        empty_store.list_candidate_ids.assert_not_called()

    def test_relational_vector_results_win_over_brute_force(self, disabled_index, empty_store):
        """Test that relational vector hits stop resolution before brute force."""
        empty_store.search_by_embedding.return_value = [
            SimilarCandidate(candidate_user_id=8, similarity=0.9),
            SimilarCandidate(candidate_user_id=6, similarity=0.8),
        ]
        resolver = build_default_resolver(disabled_index, empty_store, fake_embed)

        assert asyncio.run(resolver.resolve(backend_job())) == [8, 6]
        empty_store.list_candidate_match_sources.assert_not_called()

    def test_embedding_failure_uses_known_candidates(self, disabled_index, empty_store):
        """Test that a failed job embedding skips to unranked known candidates."""
        empty_store.list_candidate_ids.return_value = [5, 5, 3]
        embed = AsyncMock(side_effect=ProviderError("embeddings down"))
        resolver = build_default_resolver(disabled_index, empty_store, embed)

        assert asyncio.run(resolver.resolve(backend_job())) == [5, 3]
        empty_store.search_by_embedding.assert_not_called()

    def test_history_ids_when_store_has_no_candidates(self, disabled_index, empty_store):
        """Test that match history supplies ids when the store has none."""
        embed = AsyncMock(side_effect=ProviderError("embeddings down"))
        resolver = build_default_resolver(
            disabled_index, empty_store, embed, history_ids=lambda: [42, 17]
        )

        assert asyncio.run(resolver.resolve(backend_job())) == [42, 17]

    def test_non_json_embedding_response_uses_known_candidates(self, disabled_index, empty_store):
        """A 2xx gateway page from the embedding provider falls through to unranked ids."""
        openrouter = OpenRouterResource(api_key="test-key")
        openrouter._transport = httpx.MockTransport(
            lambda request: httpx.Response(200, text="<html>gateway</html>")
        )
        empty_store.list_candidate_ids.return_value = [7]
        resolver = build_default_resolver(
            disabled_index, empty_store, lambda text: embed_query(openrouter, text)
        )

        assert asyncio.run(resolver.resolve(backend_job())) == [7]
        empty_store.search_by_embedding.assert_not_called()

    def test_failing_tier_falls_through(self, disabled_index, empty_store):
        """Test that a database error in one tier falls through to the next."""
        empty_store.search_by_embedding.side_effect = OperationalError("SELECT", {}, None)
        empty_store.list_candidate_match_sources.return_value = [
            match_source(9, searchable_text="close")
        ]
        resolver = build_default_resolver(disabled_index, empty_store, fake_embed)

        assert asyncio.run(resolver.resolve(backend_job())) == [9]

    def test_all_tiers_empty(self, disabled_index, empty_store):
        """Test that all tiers returning nothing gives an empty shortlist."""
        resolver = build_default_resolver(disabled_index, empty_store, fake_embed)

        assert asyncio.run(resolver.resolve(backend_job())) == []

    def test_result_is_capped_at_limit(self, empty_store):
        """Test that the result is capped at the requested limit."""
        empty_store.list_candidate_ids.return_value = list(range(1, 100))
        resolver = ShortlistResolver([KnownCandidatesStrategy(empty_store)], embed=fake_embed)

        assert asyncio.run(resolver.resolve(backend_job(), limit=5)) == [1, 2, 3, 4, 5]


class TestSimilarityIndexStrategy:
    """Tests for the similarity index tier."""

    def test_disabled_index_contributes_nothing(self, disabled_index):
        """Test that a disabled index returns nothing."""
        strategy = SimilarityIndexStrategy(disabled_index)
        resolver = ShortlistResolver([strategy], embed=fake_embed)

        assert asyncio.run(resolver.resolve(backend_job())) == []

    def test_empty_index_is_synced_once_and_retried(self):
        """Test that an empty index is synced once and searched again."""
        index = MagicMock(enabled=True)
        index.search = AsyncMock(side_effect=[[], [11, 12]])
        backfill = MagicMock()
        backfill.sync = AsyncMock(return_value=2)
        resolver = ShortlistResolver(
            [SimilarityIndexStrategy(index, backfill, sync_limit=300)], embed=fake_embed
        )

        assert asyncio.run(resolver.resolve(backend_job())) == [11, 12]
        backfill.sync.assert_awaited_once_with(limit=300)
        assert index.search.await_count == 2

    def test_nothing_synced_skips_retry(self):
        """Test that no retry happens when the sync upserts nothing."""
        index = MagicMock(enabled=True)
        index.search = AsyncMock(return_value=[])
        backfill = MagicMock()
        backfill.sync = AsyncMock(return_value=0)
        resolver = ShortlistResolver([SimilarityIndexStrategy(index, backfill)], embed=fake_embed)

        assert asyncio.run(resolver.resolve(backend_job())) == []
        assert index.search.await_count == 1

    def test_index_error_falls_through_to_next_tier(self, empty_store):
        """Test that an index error falls through to the next tier."""
        index = MagicMock(enabled=True)
        index.search = AsyncMock(side_effect=ProviderError("Qdrant search failed"))
        empty_store.search_by_embedding.return_value = [
            SimilarCandidate(candidate_user_id=4, similarity=0.7)
        ]
        resolver = ShortlistResolver(
            [SimilarityIndexStrategy(index), RelationalVectorStrategy(empty_store)],
            embed=fake_embed,
        )

        assert asyncio.run(resolver.resolve(backend_job())) == [4]


class TestBruteForceStrategy:
    """Tests for in-memory cosine ranking."""

    def test_skips_candidates_whose_embedding_fails(self, empty_store):
        """Test that candidates that fail to embed are left out."""
        empty_store.list_candidate_match_sources.return_value = [
            match_source(1, searchable_text="broken"),
            match_source(2, searchable_text="middle"),
        ]
        resolver = ShortlistResolver(
            [BruteForceStrategy(empty_store, fake_embed, fallback_limit=50)], embed=fake_embed
        )

        assert asyncio.run(resolver.resolve(backend_job())) == [2]
        empty_store.list_candidate_match_sources.assert_called_once_with(50)
