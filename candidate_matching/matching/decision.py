"""Notification decision policy.

fallback_decision() is the deterministic policy and also the ceiling for any
refinement: a refined decision may lower priority, shorten the message or drop
a notification, but it can never notify a side the deterministic rules keep
silent. notify_manager is always False here; the manager is only notified
from decide_on_candidate_applied().
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace

from candidate_matching.errors import ProviderError, ValidationError
from candidate_matching.matching.types import MatchBreakdown, MatchingDecision
from candidate_matching.models.enums import DecisionPriorityEnum, MessageLengthEnum

logger = logging.getLogger(__name__)

NOTIFY_CANDIDATE_THRESHOLD = 70
HIGH_PRIORITY_THRESHOLD = 85
STANDARD_MESSAGE_THRESHOLD = 80

DEFAULT_CANDIDATE_COOLDOWN_HOURS = 12
DEFAULT_MANAGER_COOLDOWN_HOURS = 6
SUPPRESSED_COOLDOWN_HOURS = 24
REFINEMENT_TIMEOUT_SECONDS = 20.0

SUPPRESSED_REASON = "Suppressed by deterministic fallback constraints."
THRESHOLD_REASON = "Fallback decision applied from score thresholds."
COOLDOWN_REASON = "Candidate notification cooldown is active."
NOT_DELIVERED_REASON = "Not among the matches delivered in this run."


@dataclass(frozen=True)
class DecisionInput:
    """Everything the policy may look at for one (job, candidate) pair.

    Activity recency is carried for refinement prompts but always None:
    the deterministic rules do not use it.
    """

    manager_user_id: int
    candidate_user_id: int
    match_score: int
    breakdown: MatchBreakdown
    hard_filter_failed: bool
    job_active: bool
    candidate_risk_flags: tuple[str, ...] = field(default_factory=tuple)
    candidate_interview_confidence: str = "medium"
    candidate_activity_recency_hours: float | None = None
    manager_activity_recency_hours: float | None = None
    candidate_cooldown_active: bool = False
    manager_cooldown_active: bool = False
    candidate_rejected_same_job: bool = False
    manager_skipped_same_candidate: bool = False

    @property
    def suppressed(self) -> bool:
        return (
            self.hard_filter_failed
            or not self.job_active
            or self.candidate_rejected_same_job
            or self.manager_skipped_same_candidate
        )

    def to_prompt_payload(self) -> dict:
        return {
            "match_score": self.match_score,
            "breakdown": self.breakdown.to_dict(),
            "hard_filter_failed": self.hard_filter_failed,
            "candidate_unresolved_risk_flags": list(self.candidate_risk_flags),
            "candidate_interview_confidence": self.candidate_interview_confidence,
            "job_active_status": self.job_active,
            "candidate_activity_recency_hours": self.candidate_activity_recency_hours,
            "manager_activity_recency_hours": self.manager_activity_recency_hours,
            "candidate_cooldown_status": self.candidate_cooldown_active,
            "manager_cooldown_status": self.manager_cooldown_active,
            "candidate_previously_rejected_same_job": self.candidate_rejected_same_job,
            "manager_previously_skipped_same_candidate": self.manager_skipped_same_candidate,
        }


DecisionRefiner = Callable[[DecisionInput], Awaitable[MatchingDecision]]


def fallback_decision(decision_input: DecisionInput) -> MatchingDecision:
    if decision_input.suppressed:
        return MatchingDecision(
            notify_candidate=False,
            notify_manager=False,
            priority=DecisionPriorityEnum.LOW,
            message_length=MessageLengthEnum.SHORT,
            cooldown_hours_candidate=SUPPRESSED_COOLDOWN_HOURS,
            cooldown_hours_manager=SUPPRESSED_COOLDOWN_HOURS,
            reason=SUPPRESSED_REASON,
        )

    score = decision_input.match_score
    notify = score >= NOTIFY_CANDIDATE_THRESHOLD and not decision_input.candidate_cooldown_active
    reason = THRESHOLD_REASON
    if score >= NOTIFY_CANDIDATE_THRESHOLD and decision_input.candidate_cooldown_active:
        reason = COOLDOWN_REASON

    return MatchingDecision(
        notify_candidate=notify,
        notify_manager=False,
        priority=(
            DecisionPriorityEnum.HIGH
            if score >= HIGH_PRIORITY_THRESHOLD
            else DecisionPriorityEnum.NORMAL
        ),
        message_length=(
            MessageLengthEnum.STANDARD
            if score >= STANDARD_MESSAGE_THRESHOLD
            else MessageLengthEnum.SHORT
        ),
        cooldown_hours_candidate=DEFAULT_CANDIDATE_COOLDOWN_HOURS,
        cooldown_hours_manager=DEFAULT_MANAGER_COOLDOWN_HOURS,
        reason=reason,
    )


def clamp_to_ceiling(refined: MatchingDecision, ceiling: MatchingDecision) -> MatchingDecision:
    """A refined decision may only turn notifications off, never on."""
    return replace(
        refined,
        notify_candidate=refined.notify_candidate and ceiling.notify_candidate,
        notify_manager=False,
    )


def withhold_notification(decision: MatchingDecision) -> MatchingDecision:
    """Decision as recorded for a match that was evaluated but not delivered."""
    if not decision.notify_candidate:
        return decision
    return replace(decision, notify_candidate=False, reason=NOT_DELIVERED_REASON)


async def decide(
    decision_input: DecisionInput,
    refiner: DecisionRefiner | None = None,
    timeout: float = REFINEMENT_TIMEOUT_SECONDS,
) -> MatchingDecision:
    """Decide notification for one pair, optionally refined by an external step.

    Refinement failures and timeouts fall back to the deterministic decision.
    """
    ceiling = fallback_decision(decision_input)
    if refiner is None or decision_input.suppressed:
        return ceiling

    try:
        refined = await asyncio.wait_for(refiner(decision_input), timeout=timeout)
    except (ValidationError, ProviderError, TimeoutError) as e:
        logger.warning(
            "Decision refinement failed for manager=%s candidate=%s, using fallback: %s",
            decision_input.manager_user_id,
            decision_input.candidate_user_id,
            e,
        )
        return ceiling

    return clamp_to_ceiling(refined, ceiling)


def decide_on_candidate_applied(
    match_score: int,
    job_active: bool,
    manager_skipped_same_candidate: bool,
    manager_cooldown_active: bool,
) -> MatchingDecision:
    """Decision for the manager side once a candidate has applied.

    This is the only path on which notify_manager can be True.
    """
    if not job_active or manager_skipped_same_candidate:
        return MatchingDecision(
            notify_candidate=False,
            notify_manager=False,
            priority=DecisionPriorityEnum.LOW,
            message_length=MessageLengthEnum.SHORT,
            cooldown_hours_candidate=SUPPRESSED_COOLDOWN_HOURS,
            cooldown_hours_manager=SUPPRESSED_COOLDOWN_HOURS,
            reason=SUPPRESSED_REASON,
        )
    return MatchingDecision(
        notify_candidate=False,
        notify_manager=not manager_cooldown_active,
        priority=(
            DecisionPriorityEnum.HIGH
            if match_score >= HIGH_PRIORITY_THRESHOLD
            else DecisionPriorityEnum.NORMAL
        ),
        message_length=(
            MessageLengthEnum.STANDARD
            if match_score >= STANDARD_MESSAGE_THRESHOLD
            else MessageLengthEnum.SHORT
        ),
        cooldown_hours_candidate=DEFAULT_CANDIDATE_COOLDOWN_HOURS,
        cooldown_hours_manager=DEFAULT_MANAGER_COOLDOWN_HOURS,
        reason=(
            "Manager notification cooldown is active."
            if manager_cooldown_active
            else "Candidate applied; manager notified."
        ),
    )
