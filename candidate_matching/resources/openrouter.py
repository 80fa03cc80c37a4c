"""OpenRouter LLM and embedding resource with per-run cost tracking.

This resource is a thin HTTP client for the OpenRouter API. It handles:
- Authentication
- Request formatting
- Cost tracking (logged and accumulated per run)

LLM operations (prompts and parsing) are in candidate_matching.llm.operations.
"""

import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

import httpx
from dagster import ConfigurableResource, get_dagster_logger
from pydantic import Field, PrivateAttr

from candidate_matching.errors import ProviderError

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
MAX_EMBEDDING_INPUT_CHARS = 6000


@dataclass
class LLMContext:
    """Context for attributing LLM costs to a run and operation."""

    run_id: str = ""
    op_name: str = ""
    code_version: str = ""


@dataclass
class RunCostAccumulator:
    """Accumulates LLM costs across all calls in a run."""

    total_cost_usd: Decimal = Decimal("0")
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    api_calls: int = 0
    costs_by_operation: dict[str, Decimal] = field(default_factory=dict)

    def add(self, operation: str, cost_usd: Decimal, input_tokens: int, output_tokens: int):
        """Record a cost."""
        self.total_cost_usd += cost_usd
        self.total_input_tokens += input_tokens
        self.total_output_tokens += output_tokens
        self.api_calls += 1
        self.costs_by_operation[operation] = (
            self.costs_by_operation.get(operation, Decimal("0")) + cost_usd
        )

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    def to_metadata(self) -> dict:
        """Return as Dagster metadata dict."""
        return {
            "llm/total_cost_usd": float(self.total_cost_usd),
            "llm/total_tokens": self.total_tokens,
            "llm/api_calls": self.api_calls,
            "llm/costs_by_operation": {k: float(v) for k, v in self.costs_by_operation.items()},
        }


class OpenRouterResource(ConfigurableResource):
    """OpenRouter resource for completions and embeddings.

    Example usage in an op:
        from candidate_matching.llm import embed_query

        openrouter.set_context(run_id=context.run_id, op_name="manager_matching")
        vector = asyncio.run(embed_query(openrouter, job_text))
    """

    api_key: str = Field(
        default_factory=lambda: os.getenv("OPENROUTER_API_KEY", ""),
        description="OpenRouter API key",
    )
    default_model: str = Field(
        default="openai/gpt-4o-mini",
        description="Default model to use for completions",
    )
    embedding_model: str = Field(
        default_factory=lambda: os.getenv("EMBEDDING_MODEL", "openai/text-embedding-3-small"),
        description="Model used for candidate and job embeddings",
    )
    base_url: str = Field(default=OPENROUTER_BASE_URL, description="OpenRouter API base URL")
    app_name: str = Field(
        default="Candidate Matching Pipeline",
        description="Application name for OpenRouter analytics",
    )
    timeout_seconds: float = Field(default=120.0, description="HTTP timeout per request")

    # Internal state (not configurable, uses Pydantic PrivateAttr)
    _context: LLMContext = PrivateAttr(default_factory=LLMContext)
    _run_costs: RunCostAccumulator = PrivateAttr(default_factory=RunCostAccumulator)
    _transport: httpx.AsyncBaseTransport | None = PrivateAttr(default=None)

    def set_context(self, run_id: str, op_name: str, code_version: str = "") -> None:
        """Set context for cost tracking. Call this at the start of each op."""
        self._context = LLMContext(run_id=run_id, op_name=op_name, code_version=code_version)

    def get_run_costs(self) -> RunCostAccumulator:
        """Get accumulated costs for the current run."""
        return self._run_costs

    def reset_run_costs(self) -> None:
        """Reset the run cost accumulator. Call at start of a new run."""
        self._run_costs = RunCostAccumulator()

    def _track_cost(
        self,
        operation: str,
        model: str,
        input_tokens: int,
        output_tokens: int,
        cost_usd: Decimal,
    ) -> None:
        self._run_costs.add(operation, cost_usd, input_tokens, output_tokens)
        logger = get_dagster_logger()
        logger.info(
            f"LLM Cost: {operation} | {model} | "
            f"{input_tokens}+{output_tokens} tokens | ${cost_usd:.6f}"
        )

    async def _post(self, path: str, request_body: dict[str, Any]) -> dict[str, Any]:
        async with httpx.AsyncClient(transport=self._transport) as client:
            try:
                response = await client.post(
                    f"{self.base_url}{path}",
                    headers={
                        "Authorization": f"Bearer {self.api_key}",
                        "Content-Type": "application/json",
                        "X-Title": self.app_name,
                    },
                    json=request_body,
                    timeout=self.timeout_seconds,
                )
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                raise ProviderError(
                    f"OpenRouter {path} failed: HTTP {e.response.status_code}"
                ) from e
            except httpx.HTTPError as e:
                raise ProviderError(f"OpenRouter {path} request error: {e}") from e
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(f"OpenRouter {path} returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise ProviderError(f"OpenRouter {path} returned {type(data).__name__}, not an object")
        return data

    async def complete(
        self,
        messages: list[dict[str, str]],
        model: str | None = None,
        operation: str = "completion",
        response_format: dict[str, str] | None = None,
        temperature: float = 0.0,
        max_tokens: int | None = None,
    ) -> dict[str, Any]:
        """Make an async completion request and track costs.

        Args:
            messages: List of message dicts with 'role' and 'content'
            model: Model to use (defaults to default_model)
            operation: Operation type for cost tracking
            response_format: Response format (e.g., {"type": "json_object"})
            temperature: Sampling temperature (0.0 = deterministic)
            max_tokens: Maximum tokens in response

        Returns:
            Full API response dict including usage information
        """
        model = model or self.default_model

        request_body: dict[str, Any] = {
            "model": model,
            "messages": messages,
            "temperature": temperature,
        }
        if response_format:
            request_body["response_format"] = response_format
        if max_tokens:
            request_body["max_tokens"] = max_tokens

        data = await self._post("/chat/completions", request_body)

        usage = data.get("usage") or {}
        self._track_cost(
            operation,
            model,
            usage.get("prompt_tokens", 0),
            usage.get("completion_tokens", 0),
            Decimal(str(usage.get("cost", 0))),
        )
        return data

    async def embed(
        self,
        input: str | list[str],
        model: str | None = None,
        operation: str = "embed",
    ) -> dict[str, Any]:
        """Generate embeddings using OpenRouter's embeddings API.

        Texts longer than the provider limit are truncated.

        Returns:
            Full API response dict including embeddings and usage
        """
        if isinstance(input, str):
            input = [input]
        model = model or self.embedding_model

        request_body: dict[str, Any] = {
            "model": model,
            "input": [text[:MAX_EMBEDDING_INPUT_CHARS] for text in input],
        }
        data = await self._post("/embeddings", request_body)

        usage = data.get("usage") or {}
        self._track_cost(
            operation,
            model,
            usage.get("prompt_tokens", usage.get("total_tokens", 0)),
            0,  # Embeddings don't have output tokens
            Decimal(str(usage.get("cost", 0))),
        )
        return data
