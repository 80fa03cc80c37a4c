"""Mock embedding resource for development and testing.

This resource simulates embedding generation without making API calls.
It returns deterministic unit vectors derived from a hash of the input text.
"""

import hashlib
import random

from dagster import ConfigurableResource
from pydantic import Field

from candidate_matching.resources.openrouter import MAX_EMBEDDING_INPUT_CHARS


class MockEmbeddingResource(ConfigurableResource):
    """Mock embedding provider that generates deterministic random vectors.

    Drop-in for the embedding callable of the matching pipeline when no
    OpenRouter key is configured (local runs and tests). The same input always
    produces the same output.
    """

    model_version: str = Field(
        default="mock-embedding-v1",
        description="Version identifier for the mock embedding model",
    )
    dimensions: int = Field(
        default=1536,
        description="Vector dimensions (1536 matches openai/text-embedding-3-small)",
    )

    def embed_sync(self, text: str) -> list[float]:
        """Generate an embedding vector for the given text."""
        text_hash = hashlib.sha256(text[:MAX_EMBEDDING_INPUT_CHARS].encode()).hexdigest()
        rng = random.Random(int(text_hash[:8], 16))

        vector = [rng.gauss(0, 1) for _ in range(self.dimensions)]

        # Normalize to unit length (standard for cosine similarity)
        magnitude = sum(x * x for x in vector) ** 0.5
        return [x / magnitude for x in vector]

    async def embed(self, text: str) -> list[float]:
        return self.embed_sync(text)
