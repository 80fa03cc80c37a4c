"""Dagster resources for the candidate matching pipeline."""

from candidate_matching.resources.embeddings import MockEmbeddingResource
from candidate_matching.resources.match_store import MatchStoreResource
from candidate_matching.resources.openrouter import OpenRouterResource
from candidate_matching.resources.profile_store import ProfileStoreResource
from candidate_matching.resources.qdrant import QdrantResource

__all__ = [
    "MatchStoreResource",
    "MockEmbeddingResource",
    "OpenRouterResource",
    "ProfileStoreResource",
    "QdrantResource",
]
