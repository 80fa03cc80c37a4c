"""Text embedding operation using OpenRouter's embeddings API.

Generates the dense vectors used by the shortlist resolver and the index backfill.

Reference: https://openrouter.ai/docs/api/reference/embeddings
"""

from typing import TYPE_CHECKING, Any

from candidate_matching.errors import ProviderError

if TYPE_CHECKING:
    from candidate_matching.resources.openrouter import OpenRouterResource

# Version tracking for embedding changes
PROMPT_VERSION = "1.0.0"


class EmbedTextResult:
    """Result of text embedding with usage stats for Dagster metadata."""

    def __init__(
        self,
        embeddings: list[list[float]],
        usage: dict[str, Any],
        model: str,
    ):
        self.embeddings = embeddings
        self.usage = usage
        self.model = model

    @property
    def cost_usd(self) -> float:
        return float(self.usage.get("cost", 0))

    @property
    def dimensions(self) -> int:
        """Return the dimensionality of the embeddings."""
        if self.embeddings:
            return len(self.embeddings[0])
        return 0


async def embed_text(
    openrouter: "OpenRouterResource",
    texts: list[str],
    model: str | None = None,
) -> EmbedTextResult:
    """Generate embeddings for one or more texts using OpenRouter.

    Args:
        openrouter: OpenRouterResource instance for API calls
        texts: List of texts to embed (batch processing supported)
        model: Embedding model to use (defaults to the resource's embedding model)

    Returns:
        EmbedTextResult with embeddings, usage stats, and model for metadata

    Raises:
        ProviderError: The response has no usable `data` list.
    """
    model = model or openrouter.embedding_model

    response = await openrouter.embed(input=texts, model=model, operation="embed_text")

    items = response.get("data") or []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        raise ProviderError("Embedding response has a malformed data payload")
    try:
        data = sorted(items, key=lambda item: int(item.get("index", 0)))
        embeddings = [[float(x) for x in item.get("embedding") or []] for item in data]
    except (TypeError, ValueError) as e:
        raise ProviderError(f"Embedding response has a malformed vector: {e}") from e
    usage = response.get("usage") or {}
    return EmbedTextResult(embeddings=embeddings, usage=usage, model=model)


async def embed_query(openrouter: "OpenRouterResource", text: str) -> list[float]:
    """Embed a single text, raising ProviderError when no vector comes back."""
    result = await embed_text(openrouter, [text])
    if not result.embeddings or not result.embeddings[0]:
        raise ProviderError("Embedding provider returned an empty vector")
    return result.embeddings[0]
