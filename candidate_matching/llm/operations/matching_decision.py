"""Matching notification decision refinement.

Asks an LLM to adjust the deterministic notification decision using softer
signals (interview confidence, risk flags). The output is validated here and
clamped to the deterministic ceiling by candidate_matching.matching.decision.

Bump PROMPT_VERSION when changing the prompt.
"""

import json
import math
from typing import TYPE_CHECKING, Any

from candidate_matching.errors import InvariantViolation, ValidationError
from candidate_matching.llm.parsing import extract_json_object, response_text, text_field
from candidate_matching.matching.types import MatchingDecision
from candidate_matching.models.enums import DecisionPriorityEnum, MessageLengthEnum

if TYPE_CHECKING:
    from candidate_matching.matching.decision import DecisionInput
    from candidate_matching.resources.openrouter import OpenRouterResource

PROMPT_VERSION = "1.0.0"

DEFAULT_MODEL = "openai/gpt-4o-mini"

SYSTEM_PROMPT = """You are a matching notification decision engine.

You decide notification policy for a precomputed deterministic match.
You do NOT change the score. You do NOT compute ranking.
You only decide whether to notify the candidate and the manager, with cooldown guidance.

Rules:
- Never notify if the job is closed, paused, or inactive.
- Never notify if hard_filter_failed is true.
- Do not notify the candidate if candidate_previously_rejected_same_job is true.
- Do not notify the manager if manager_previously_skipped_same_candidate is true.
- If score is 70 to 79, notify the candidate only.
- If score is 80 or higher, notify the candidate now. Manager notification waits for the candidate to apply.
- If unresolved high risk flags exist, lower priority.
- If candidate_interview_confidence is low, lower priority and prefer a short message.
- If cooldown status is active for a side, keep notify false for that side.

Return JSON with:
{
  "notify_candidate": true|false,
  "notify_manager": true|false,
  "priority": "low" | "normal" | "high",
  "message_length": "short" | "standard",
  "cooldown_hours_candidate": <non-negative number>,
  "cooldown_hours_manager": <non-negative number>,
  "reason": "short explanation"
}"""


def _cooldown_hours(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{key} must be a number") from e
    if not math.isfinite(number) or number < 0:
        raise ValidationError(f"{key} must be a non-negative number")
    return round(number)


def parse_decision(raw: str) -> MatchingDecision:
    """Validate an LLM decision payload. Raises ValidationError when malformed."""
    parsed = extract_json_object(raw)

    for key in ("notify_candidate", "notify_manager"):
        if not isinstance(parsed.get(key), bool):
            raise ValidationError(f"Decision output missing boolean {key}")

    priority = text_field(parsed, "priority").lower()
    if priority not in {p.value for p in DecisionPriorityEnum}:
        raise ValidationError(f"Decision output has invalid priority: {priority!r}")

    message_length = text_field(parsed, "message_length").lower()
    if message_length not in {m.value for m in MessageLengthEnum}:
        raise ValidationError(f"Decision output has invalid message_length: {message_length!r}")

    reason = text_field(parsed, "reason")
    if not reason:
        raise ValidationError("Decision output missing reason")

    try:
        return MatchingDecision(
            notify_candidate=parsed["notify_candidate"],
            notify_manager=parsed["notify_manager"],
            priority=DecisionPriorityEnum(priority),
            message_length=MessageLengthEnum(message_length),
            cooldown_hours_candidate=_cooldown_hours(
                parsed.get("cooldown_hours_candidate"), "cooldown_hours_candidate"
            ),
            cooldown_hours_manager=_cooldown_hours(
                parsed.get("cooldown_hours_manager"), "cooldown_hours_manager"
            ),
            reason=reason,
        )
    except InvariantViolation as e:
        raise ValidationError(str(e)) from e


async def refine_decision(
    openrouter: "OpenRouterResource",
    decision_input: "DecisionInput",
) -> MatchingDecision:
    """Ask the LLM for a decision on one pair.

    Raises:
        ProviderError: the completion request failed.
        ValidationError: the response could not be parsed into a decision.
    """
    response = await openrouter.complete(
        messages=[
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": json.dumps(decision_input.to_prompt_payload(), indent=2)},
        ],
        model=DEFAULT_MODEL,
        operation="matching_decision",
        response_format={"type": "json_object"},
        temperature=0.0,
        max_tokens=320,
    )
    return parse_decision(response_text(response))
