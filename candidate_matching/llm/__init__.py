"""LLM operations for the candidate matching pipeline.

Each operation module exports:
- PROMPT_VERSION: String version to track prompt changes
- The operation function that uses OpenRouterResource
"""

from candidate_matching.llm.operations.embed_text import (
    PROMPT_VERSION as EMBED_PROMPT_VERSION,
)
from candidate_matching.llm.operations.embed_text import (
    EmbedTextResult,
    embed_query,
    embed_text,
)
from candidate_matching.llm.operations.matching_decision import (
    PROMPT_VERSION as DECISION_PROMPT_VERSION,
)
from candidate_matching.llm.operations.matching_decision import (
    refine_decision,
)
from candidate_matching.llm.operations.matching_explanation import (
    PROMPT_VERSION as EXPLANATION_PROMPT_VERSION,
)
from candidate_matching.llm.operations.matching_explanation import (
    MatchingExplanation,
    explain_match,
)

__all__ = [
    # Embeddings
    "EMBED_PROMPT_VERSION",
    "EmbedTextResult",
    "embed_text",
    "embed_query",
    # Notification decision refinement
    "DECISION_PROMPT_VERSION",
    "refine_decision",
    # Match explanations
    "EXPLANATION_PROMPT_VERSION",
    "MatchingExplanation",
    "explain_match",
]
