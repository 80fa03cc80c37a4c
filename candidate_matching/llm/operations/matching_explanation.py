"""Matching explanation LLM operation.

Turns a deterministic match (score, breakdown, reasons) plus both technical
summaries into short messages for each side. It never changes the score;
when generation fails the caller uses fallback_explanation().

Bump PROMPT_VERSION when changing the prompt.
"""

import json
from dataclasses import asdict, dataclass
from typing import TYPE_CHECKING

from candidate_matching.errors import ValidationError
from candidate_matching.llm.parsing import extract_json_object, response_text, text_field
from candidate_matching.matching.types import (
    CandidateTechnicalSummary,
    JobTechnicalSummary,
    MatchScore,
)

if TYPE_CHECKING:
    from candidate_matching.resources.openrouter import OpenRouterResource

PROMPT_VERSION = "1.0.0"

DEFAULT_MODEL = "openai/gpt-4o-mini"

SYSTEM_PROMPT = """You explain a precomputed deterministic match result.

You do NOT compute or adjust the numeric score.
You do NOT invent missing information. Use only the provided fields.

Generate short, factual explanations for both sides, using the breakdown and
reasons as evidence. Mention the top 3 strengths and 1 to 2 gaps or risks.
Keep wording concise, concrete and neutral.

Return JSON with:
{
  "message_for_candidate": "include job headline, top 3 matches, 1 to 2 gaps, and an apply or reject call to action",
  "message_for_manager": "include candidate headline, top 3 matches, 1 to 2 risks, and an approve or reject call to action",
  "one_suggested_live_question": "one targeted question for a real call"
}"""

FALLBACK_QUESTION = "Can you describe one recent project that best reflects this role requirements?"


@dataclass(frozen=True)
class MatchingExplanation:
    message_for_candidate: str
    message_for_manager: str
    one_suggested_live_question: str

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_json(cls, text: str | None) -> "MatchingExplanation | None":
        if not text:
            return None
        try:
            return parse_explanation(text)
        except ValidationError:
            return None


def parse_explanation(raw: str) -> MatchingExplanation:
    parsed = extract_json_object(raw)
    explanation = MatchingExplanation(
        message_for_candidate=text_field(parsed, "message_for_candidate"),
        message_for_manager=text_field(parsed, "message_for_manager"),
        one_suggested_live_question=text_field(parsed, "one_suggested_live_question"),
    )
    if not all(asdict(explanation).values()):
        raise ValidationError("Explanation output is missing required fields")
    return explanation


def fallback_explanation(
    job_summary: JobTechnicalSummary | None,
    candidate_summary: CandidateTechnicalSummary | None,
) -> MatchingExplanation:
    job_headline = job_summary.headline.strip() if job_summary else ""
    candidate_headline = candidate_summary.headline.strip() if candidate_summary else ""
    return MatchingExplanation(
        message_for_candidate=(
            f"This role matches your profile for {job_headline or 'this role'}. "
            "Review details and Apply or Reject."
        ),
        message_for_manager=(
            f"{candidate_headline or 'candidate profile'} aligns on key requirements. "
            "Review and choose Want to talk or Skip."
        ),
        one_suggested_live_question=FALLBACK_QUESTION,
    )


async def explain_match(
    openrouter: "OpenRouterResource",
    score: MatchScore,
    job_summary: JobTechnicalSummary | None,
    candidate_summary: CandidateTechnicalSummary | None,
) -> MatchingExplanation:
    """Generate explanations for one match.

    Raises:
        ProviderError: the completion request failed.
        ValidationError: the response was malformed.
    """
    payload = {
        "job_technical_summary": job_summary.model_dump() if job_summary else None,
        "candidate_technical_summary": (
            candidate_summary.model_dump() if candidate_summary else None
        ),
        "deterministic_score": score.total_score,
        "breakdown": score.breakdown.to_dict(),
        "reasons": score.reasons.to_dict(),
    }
    response = await openrouter.complete(
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(payload, indent=2)},
        ],
        model=DEFAULT_MODEL,
        operation="matching_explanation",
        response_format={"type": "json_object"},
        temperature=0.0,
        max_tokens=700,
    )
    return parse_explanation(response_text(response))
