"""Tests for Dagster resources and the LLM operations built on them."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from factories import backend_job, job_summary, match_source, strong_candidate

from candidate_matching.errors import ProviderError, ValidationError
from candidate_matching.llm import embed_query, explain_match, refine_decision
from candidate_matching.matching.backfill import IndexBackfill
from candidate_matching.matching.decision import DecisionInput
from candidate_matching.matching.scoring import score_match
from candidate_matching.resources import (
    MockEmbeddingResource,
    OpenRouterResource,
    QdrantResource,
)
from candidate_matching.sensors.run_failure_sensor import _classify_failure, _matching_subject


def openrouter_with(handler) -> OpenRouterResource:
    resource = OpenRouterResource(api_key="test-key")
    resource._transport = httpx.MockTransport(handler)
    return resource


def completion(content: str, cost: float = 0.0004) -> dict:
    return {
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 120, "completion_tokens": 40, "cost": cost},
    }


class TestMockEmbeddingResource:
    """Tests for the MockEmbeddingResource."""

    def test_embed_returns_correct_dimensions(self):
        """Test that embeddings have the configured dimensions."""
        resource = MockEmbeddingResource(dimensions=1536)
        result = resource.embed_sync("Test text")

        assert len(result) == 1536
        assert all(isinstance(x, float) for x in result)

    def test_embed_is_normalized(self):
        """Test that embeddings are unit normalized."""
        resource = MockEmbeddingResource(dimensions=256)
        result = resource.embed_sync("Test text")

        magnitude = sum(x * x for x in result) ** 0.5
        assert abs(magnitude - 1.0) < 0.0001

    def test_embed_is_deterministic(self):
        """Test that same input produces same output."""
        resource = MockEmbeddingResource(dimensions=64)

        assert resource.embed_sync("Same text") == resource.embed_sync("Same text")
        assert resource.embed_sync("Same text") != resource.embed_sync("Other text")

    def test_async_embed_matches_sync(self):
        """Test that the async and sync paths return the same vector."""
        resource = MockEmbeddingResource(dimensions=32)

        assert asyncio.run(resource.embed("Go engineer")) == resource.embed_sync("Go engineer")


class TestQdrantResource:
    """A Qdrant resource without a URL is a no-op."""

    def test_disabled_without_url(self):
        """Test that every call is a no-op without a URL."""
        resource = QdrantResource(url="", api_key="")

        assert resource.enabled is False
        assert asyncio.run(resource.search([0.1, 0.2], 10)) == []
        assert asyncio.run(resource.count()) is None
        asyncio.run(resource.upsert(5, [0.1, 0.2]))
        asyncio.run(resource.delete(5))

    def test_collection_state_is_per_instance(self):
        """Test that collection readiness is not shared between instances."""
        first = QdrantResource(url="", api_key="")
        second = QdrantResource(url="", api_key="")

        first.state.mark_ready(1536)

        assert first.state.is_ready_for(1536)
        assert not first.state.is_ready_for(768)
        assert not second.state.ready


class TestOpenRouterResource:
    """Tests for the OpenRouter HTTP client."""

    def test_complete_tracks_costs(self):
        """Test that a completion is authenticated and its cost accumulated."""
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=completion("{}"))

        resource = openrouter_with(handler)
        asyncio.run(
            resource.complete([{"role": "user", "content": "hi"}], operation="matching_decision")
        )

        costs = resource.get_run_costs()
        assert costs.api_calls == 1
        assert costs.total_tokens == 160
        assert costs.to_metadata()["llm/costs_by_operation"] == {"matching_decision": 0.0004}
        assert requests[0].url.path.endswith("/chat/completions")
        assert requests[0].headers["Authorization"] == "Bearer test-key"

    def test_http_error_raises_provider_error(self):
        """Test that a non-2xx status raises ProviderError."""
        resource = openrouter_with(lambda request: httpx.Response(503, json={"error": "down"}))

        with pytest.raises(ProviderError, match="HTTP 503"):
            asyncio.run(resource.complete([{"role": "user", "content": "hi"}]))

    def test_embed_query_returns_first_vector(self):
        """Test that embed_query returns the first embedding."""

        def handler(request: httpx.Request) -> httpx.Response:
            body = json.loads(request.content)
            assert body["input"] == ["Go engineer"]
            return httpx.Response(
                200,
                json={
                    "data": [{"index": 0, "embedding": [0.5, 0.25]}],
                    "usage": {"prompt_tokens": 3, "cost": 0.00001},
                },
            )

        resource = openrouter_with(handler)

        assert asyncio.run(embed_query(resource, "Go engineer")) == [0.5, 0.25]

    def test_embed_query_empty_vector(self):
        """Test that an empty embedding response raises ProviderError."""
        resource = openrouter_with(
            lambda request: httpx.Response(200, json={"data": [], "usage": {}})
        )

        with pytest.raises(ProviderError):
            asyncio.run(embed_query(resource, "Go engineer"))

    def test_non_json_body_raises_provider_error(self):
        """A 2xx response that is not JSON is a provider failure, not a decode crash."""
        resource = openrouter_with(
            lambda request: httpx.Response(200, text="<html>gateway</html>")
        )

        with pytest.raises(ProviderError, match="non-JSON"):
            asyncio.run(resource.complete([{"role": "user", "content": "hi"}]))
        with pytest.raises(ProviderError):
            asyncio.run(embed_query(resource, "Go engineer"))

    @pytest.mark.parametrize(
        "body",
        [
            [0.1, 0.2],
            {"data": {"embedding": [0.1]}, "usage": {}},
            {"data": ["oops"], "usage": {}},
            {"data": [{"index": 0, "embedding": ["x", "y"]}], "usage": {}},
        ],
    )
    def test_malformed_embedding_payload_raises_provider_error(self, body):
        """Unexpected embedding payload shapes surface as ProviderError."""
        resource = openrouter_with(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ProviderError):
            asyncio.run(embed_query(resource, "Go engineer"))


class TestLLMOperations:
    """Tests for the LLM operations over a mocked transport."""

    def test_refine_decision_parses_completion(self):
        """Test that a completion is parsed into a MatchingDecision."""
        content = json.dumps(
            {
                "notify_candidate": True,
                "notify_manager": False,
                "priority": "high",
                "message_length": "standard",
                "cooldown_hours_candidate": 12,
                "cooldown_hours_manager": 6,
                "reason": "Strong fit.",
            }
        )
        resource = openrouter_with(lambda request: httpx.Response(200, json=completion(content)))
        score = score_match(backend_job(), strong_candidate())
        decision_input = DecisionInput(
            manager_user_id=1,
            candidate_user_id=2,
            match_score=score.total_score,
            breakdown=score.breakdown,
            hard_filter_failed=False,
            job_active=True,
        )

        decision = asyncio.run(refine_decision(resource, decision_input))

        assert decision.notify_candidate is True
        assert decision.reason == "Strong fit."

    def test_explain_match_rejects_incomplete_output(self):
        """Test that an explanation missing a message raises ValidationError."""
        content = json.dumps({"message_for_candidate": "Hi", "message_for_manager": ""})
        resource = openrouter_with(lambda request: httpx.Response(200, json=completion(content)))
        score = score_match(backend_job(), strong_candidate())

        with pytest.raises(ValidationError):
            asyncio.run(explain_match(resource, score, job_summary(), None))


class TestIndexBackfill:
    """Tests for syncing candidate vectors into the similarity index."""

    def test_sync_upserts_embeddable_candidates(self):
        """Test that sync upserts what embeds and skips what fails."""
        index = MagicMock(enabled=True)
        index.upsert = AsyncMock()
        store = MagicMock()
        store.list_candidate_match_sources.return_value = [
            match_source(1, strong_candidate(), headline="Go engineer"),
            match_source(2, searchable_text="Python engineer"),
        ]
        embed = AsyncMock(side_effect=[[0.1, 0.2], ProviderError("embeddings down")])

        upserted = asyncio.run(IndexBackfill(index, store, embed, fan_out=1).sync(limit=10))

        assert upserted == 1
        store.list_candidate_match_sources.assert_called_once_with(10)
        candidate_user_id, vector, payload = index.upsert.await_args.args
        assert (candidate_user_id, vector) == (1, [0.1, 0.2])
        assert payload["seniority"] == "senior"

    def test_upsert_single_candidate(self):
        """Test refreshing one candidate, and a missing candidate."""
        index = MagicMock(enabled=True)
        index.upsert = AsyncMock()
        store = MagicMock()
        store.get_candidate_match_source.side_effect = lambda candidate_user_id: (
            match_source(7, searchable_text="Go engineer") if candidate_user_id == 7 else None
        )
        backfill = IndexBackfill(index, store, AsyncMock(return_value=[0.3, 0.4]))

        assert asyncio.run(backfill.upsert_candidate(7)) is True
        assert asyncio.run(backfill.upsert_candidate(8)) is False
        index.upsert.assert_awaited_once()

    def test_delete_candidate(self):
        """Test that a candidate's vector is deleted from the index."""
        index = MagicMock(enabled=True)
        index.delete = AsyncMock()
        backfill = IndexBackfill(index, MagicMock(), AsyncMock())

        asyncio.run(backfill.delete_candidate(7))

        index.delete.assert_awaited_once_with(7)

    def test_disabled_index_skips_sync(self):
        """Test that a disabled index never reads the store."""
        store = MagicMock()
        backfill = IndexBackfill(QdrantResource(url="", api_key=""), store, AsyncMock())

        assert asyncio.run(backfill.sync()) == 0
        store.list_candidate_match_sources.assert_not_called()


class TestRunFailureClassification:
    """Tests for tagging failed runs."""

    def test_known_failures(self):
        """Test that an error string maps to every matching failure tag."""
        assert _classify_failure("httpx: OpenRouter /chat/completions failed: HTTP 429") == [
            "OPENROUTER_API_ERROR",
            "RATE_LIMIT",
        ]
        assert _classify_failure("StatusConflictError: Match x is no longer pending") == [
            "STATUS_CONFLICT"
        ]

    def test_unknown_failure(self):
        """Test that an unrecognized error has no tags."""
        assert _classify_failure("KeyError: 'foo'") == []

    def test_matching_subject_from_run_config(self):
        """Test reading the manager or candidate id from the op config."""
        manager_config = {"ops": {"run_manager_matching": {"config": {"manager_user_id": 1001}}}}
        candidate_config = {
            "ops": {"run_candidate_matching": {"config": {"candidate_user_id": 2002}}}
        }

        assert _matching_subject(manager_config) == "manager:1001"
        assert _matching_subject(candidate_config) == "candidate:2002"
        assert _matching_subject({"ops": {"backfill_candidate_index": {"config": {}}}}) is None
        assert _matching_subject({}) is None
