"""Qdrant similarity index resource for candidate vectors.

Points are keyed by the candidate's user id; the id is also stored in the
payload under `candidate_user_id`. Every call is a no-op (returning nothing)
when the resource is not configured.
"""

import os
from dataclasses import dataclass
from typing import Any

import httpx
from dagster import ConfigurableResource, get_dagster_logger
from pydantic import Field, PrivateAttr
from qdrant_client import AsyncQdrantClient, models
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse

from candidate_matching.errors import ProviderError

PAYLOAD_ID_KEY = "candidate_user_id"
MAX_SEARCH_LIMIT = 200

_QDRANT_ERRORS = (UnexpectedResponse, ResponseHandlingException, httpx.HTTPError)


@dataclass
class CollectionState:
    """Per-instance readiness cache for the candidate collection."""

    ready: bool = False
    vector_size: int | None = None

    def is_ready_for(self, vector_size: int) -> bool:
        return self.ready and self.vector_size == vector_size

    def mark_ready(self, vector_size: int) -> None:
        self.ready = True
        self.vector_size = vector_size

    def reset(self) -> None:
        self.ready = False
        self.vector_size = None


def _existing_vector_size(info: Any) -> int:
    vectors = info.config.params.vectors
    if isinstance(vectors, dict):
        # Named vectors; the candidate collection uses a single unnamed vector.
        return 0
    return int(getattr(vectors, "size", 0) or 0)


class QdrantResource(ConfigurableResource):
    """Candidate vector index backed by Qdrant."""

    url: str = Field(
        default_factory=lambda: os.getenv("QDRANT_URL", ""),
        description="Qdrant base URL; empty disables the index",
    )
    api_key: str = Field(
        default_factory=lambda: os.getenv("QDRANT_API_KEY", ""),
        description="Qdrant API key",
    )
    candidate_collection: str = Field(
        default_factory=lambda: os.getenv("QDRANT_CANDIDATE_COLLECTION", "candidates"),
        description="Collection holding one point per candidate",
    )
    timeout_seconds: int = Field(default=20, description="HTTP timeout for Qdrant calls")

    _state: CollectionState = PrivateAttr(default_factory=CollectionState)
    _client: AsyncQdrantClient | None = PrivateAttr(default=None)

    @property
    def enabled(self) -> bool:
        return bool(self.url and self.api_key and self.candidate_collection.strip())

    @property
    def state(self) -> CollectionState:
        return self._state

    def _get_client(self) -> AsyncQdrantClient:
        if self._client is None:
            self._client = AsyncQdrantClient(
                url=self.url.rstrip("/"),
                api_key=self.api_key,
                timeout=self.timeout_seconds,
            )
        return self._client

    async def ensure_collection(self, vector_size: int) -> None:
        """Create the collection, or recreate it if its vector size differs."""
        if not self.enabled or self._state.is_ready_for(vector_size):
            return

        logger = get_dagster_logger()
        client = self._get_client()
        collection = self.candidate_collection
        try:
            if await client.collection_exists(collection):
                info = await client.get_collection(collection)
                existing_size = _existing_vector_size(info)
                if existing_size in (0, vector_size):
                    self._state.mark_ready(existing_size or vector_size)
                    return
                logger.warning(
                    f"Qdrant collection {collection} has vector size {existing_size}, "
                    f"expected {vector_size}; recreating"
                )
                await client.delete_collection(collection)

            await client.create_collection(
                collection_name=collection,
                vectors_config=models.VectorParams(
                    size=vector_size, distance=models.Distance.COSINE
                ),
            )
        except _QDRANT_ERRORS as e:
            self._state.reset()
            raise ProviderError(f"Qdrant ensure_collection failed: {e}") from e

        self._state.mark_ready(vector_size)
        logger.info(f"Qdrant collection {collection} is ready (size={vector_size})")

    async def upsert(
        self,
        candidate_user_id: int,
        vector: list[float],
        payload: dict[str, Any] | None = None,
    ) -> None:
        if not self.enabled or candidate_user_id <= 0 or not vector:
            return
        await self.ensure_collection(len(vector))
        point = models.PointStruct(
            id=candidate_user_id,
            vector=vector,
            payload={PAYLOAD_ID_KEY: candidate_user_id, **(payload or {})},
        )
        try:
            await self._get_client().upsert(
                collection_name=self.candidate_collection, points=[point], wait=True
            )
        except _QDRANT_ERRORS as e:
            raise ProviderError(f"Qdrant upsert failed for {candidate_user_id}: {e}") from e

    async def delete(self, candidate_user_id: int) -> None:
        if not self.enabled or candidate_user_id <= 0:
            return
        try:
            await self._get_client().delete(
                collection_name=self.candidate_collection,
                points_selector=models.PointIdsList(points=[candidate_user_id]),
                wait=True,
            )
        except _QDRANT_ERRORS as e:
            raise ProviderError(f"Qdrant delete failed for {candidate_user_id}: {e}") from e

    async def search(self, vector: list[float], limit: int) -> list[int]:
        """Nearest candidate ids, best first, deduplicated."""
        if not self.enabled or not vector:
            return []
        await self.ensure_collection(len(vector))
        try:
            response = await self._get_client().query_points(
                collection_name=self.candidate_collection,
                query=vector,
                limit=max(1, min(limit, MAX_SEARCH_LIMIT)),
                with_payload=True,
                with_vectors=False,
            )
        except _QDRANT_ERRORS as e:
            raise ProviderError(f"Qdrant search failed: {e}") from e

        ids: list[int] = []
        for point in response.points:
            payload_id = (point.payload or {}).get(PAYLOAD_ID_KEY)
            candidate_id = payload_id if isinstance(payload_id, int) else point.id
            if isinstance(candidate_id, int) and candidate_id > 0:
                ids.append(candidate_id)
        return list(dict.fromkeys(ids))

    async def count(self) -> int | None:
        """Number of points in the candidate collection, or None when unavailable."""
        if not self.enabled:
            return None
        try:
            result = await self._get_client().count(
                collection_name=self.candidate_collection, exact=True
            )
        except _QDRANT_ERRORS as e:
            get_dagster_logger().warning(f"Qdrant count failed: {e}")
            return None
        return result.count
