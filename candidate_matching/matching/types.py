"""Data contracts for the matching pipeline.

Inputs produced by the intake pipelines (job profile, resume analysis, technical
summaries, mandatory fields) are pydantic models parsed from stored JSON.
Results computed here (MatchScore, MatchingDecision) are frozen dataclasses that
check their own invariants on construction.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from candidate_matching.errors import InvariantViolation
from candidate_matching.models.enums import (
    CandidateWorkModeEnum,
    CurrencyEnum,
    DecisionPriorityEnum,
    JobWorkFormatEnum,
    MatchStatusEnum,
    MessageLengthEnum,
    PayPeriodEnum,
)

Depth = Literal["basic", "working", "strong", "expert"]
TriState = Literal["yes", "no", "unknown"]
DomainDepthRequired = Literal["none", "helpful", "important", "critical", "unknown"]
AuthorityRequired = Literal["executor", "contributor", "owner", "technical_lead", "unknown"]


# ═══════════════════════════════════════════════════════════════════
# JOB SIDE
# ═══════════════════════════════════════════════════════════════════


class ProductContext(BaseModel):
    product_type: str = "unknown"
    company_stage: str = "unknown"
    what_the_product_does: str | None = None
    users_or_customers: str | None = None


class WorkScope(BaseModel):
    current_tasks: list[str] = Field(default_factory=list)
    current_challenges: list[str] = Field(default_factory=list)
    deliverables_or_outcomes: list[str] = Field(default_factory=list)


class TechnologyRequirement(BaseModel):
    technology: str
    required_depth: Depth = "working"
    mandatory: bool = False


class TechnologyMap(BaseModel):
    core: list[TechnologyRequirement] = Field(default_factory=list)
    secondary: list[TechnologyRequirement] = Field(default_factory=list)
    discarded_or_noise: list[str] = Field(default_factory=list)


class ArchitectureAndScale(BaseModel):
    architecture_style: Literal[
        "microservices", "monolith", "event_driven", "mixed", "unknown"
    ] = "unknown"
    distributed_systems: TriState = "unknown"
    high_load: TriState = "unknown"
    scale_clues: list[str] = Field(default_factory=list)


class DomainRequirements(BaseModel):
    primary_domain: str | None = None
    domain_depth_required: DomainDepthRequired = "unknown"
    regulatory_or_constraints: str | None = None


class OwnershipExpectation(BaseModel):
    decision_authority_required: AuthorityRequired = "unknown"
    production_responsibility: TriState = "unknown"


class JobProfile(BaseModel):
    """Normalized job requirements. Immutable for the duration of a matching run."""

    model_config = {"frozen": True}

    role_title: str | None = None
    product_context: ProductContext = Field(default_factory=ProductContext)
    work_scope: WorkScope = Field(default_factory=WorkScope)
    technology_map: TechnologyMap = Field(default_factory=TechnologyMap)
    architecture_and_scale: ArchitectureAndScale = Field(default_factory=ArchitectureAndScale)
    domain_requirements: DomainRequirements = Field(default_factory=DomainRequirements)
    ownership_expectation: OwnershipExpectation = Field(default_factory=OwnershipExpectation)
    non_negotiables: list[str] = Field(default_factory=list)
    flexible_requirements: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)


class JobTechnicalSummary(BaseModel):
    headline: str = ""
    product_context: str = ""
    current_tasks: list[str] = Field(default_factory=list)
    current_challenges: list[str] = Field(default_factory=list)
    core_tech: list[str] = Field(default_factory=list)
    key_requirements: list[str] = Field(default_factory=list)
    domain_need: DomainDepthRequired = "unknown"
    ownership_expectation: AuthorityRequired = "unknown"
    notes_for_matching: str = ""


class JobMandatoryFields(BaseModel):
    work_format: JobWorkFormatEnum | None = None
    remote_countries: list[str] = Field(default_factory=list)
    remote_worldwide: bool = False
    budget_min: float | None = None
    budget_max: float | None = None
    budget_currency: CurrencyEnum | None = None
    budget_period: PayPeriodEnum | None = None
    profile_complete: bool = False


# ═══════════════════════════════════════════════════════════════════
# CANDIDATE SIDE
# ═══════════════════════════════════════════════════════════════════


class SkillDepthClassification(BaseModel):
    deep_experience: list[str] = Field(default_factory=list)
    working_experience: list[str] = Field(default_factory=list)
    mentioned_only: list[str] = Field(default_factory=list)


class CoreTechnology(BaseModel):
    name: str
    years_estimated: float | None = None
    confidence: float = 0.0
    evidence: str = ""


class DomainExpertise(BaseModel):
    domain: str
    years_estimated: float | None = None
    depth_level: Literal["low", "medium", "high"] = "low"
    confidence: float = 0.0
    evidence: str = ""


class ArchitectureSignals(BaseModel):
    microservices: bool = False
    monolith: bool = False
    event_driven: bool = False
    distributed_systems: bool = False
    cloud_native: bool = False
    high_load: bool = False
    not_clear: bool = False


class OwnershipSignals(BaseModel):
    architecture_design: bool = False
    led_projects: bool = False
    mentorship: bool = False
    production_responsibility: bool = False
    scalability_responsibility: bool = False
    incident_handling: bool = False


class TechnicalResumeAnalysis(BaseModel):
    """Resume analysis of a technical candidate; the only usable match source."""

    is_technical: Literal[True] = True
    primary_direction: str = "unknown"
    seniority_estimate: str = "unknown"
    total_experience_years_estimate: float | None = None
    decision_authority_level: Literal[
        "executor", "contributor", "owner", "tech_lead", "unclear"
    ] = "unclear"
    hands_on_level: Literal["high", "medium", "low", "unclear"] = "unclear"
    skill_depth_classification: SkillDepthClassification = Field(
        default_factory=SkillDepthClassification
    )
    core_technologies: list[CoreTechnology] = Field(default_factory=list)
    domain_expertise: list[DomainExpertise] = Field(default_factory=list)
    system_complexity_level: Literal["low", "medium", "high", "unclear"] = "unclear"
    architecture_signals: ArchitectureSignals = Field(default_factory=ArchitectureSignals)
    ownership_signals: OwnershipSignals = Field(default_factory=OwnershipSignals)
    impact_indicators: list[str] = Field(default_factory=list)
    technical_risk_flags: list[str] = Field(default_factory=list)
    interview_focus_recommendations: list[str] = Field(default_factory=list)


class NonTechnicalResumeAnalysis(BaseModel):
    is_technical: Literal[False] = False
    reason: str = "Non-technical profile"


ResumeAnalysis = TechnicalResumeAnalysis | NonTechnicalResumeAnalysis


def parse_resume_analysis(raw: dict[str, Any] | None) -> ResumeAnalysis | None:
    """Parse a stored resume analysis payload into its tagged variant.

    Anything not explicitly flagged ``is_technical: true`` is non-technical.
    """
    if not raw:
        return None
    if raw.get("is_technical") is True:
        return TechnicalResumeAnalysis.model_validate(raw)
    return NonTechnicalResumeAnalysis(reason=str(raw.get("reason") or "Non-technical profile"))


class CandidateTechnicalSummary(BaseModel):
    headline: str = ""
    technical_depth_summary: str = ""
    architecture_and_scale: str = ""
    domain_expertise: str = ""
    ownership_and_authority: str = ""
    strength_highlights: list[str] = Field(default_factory=list)
    risk_flags: list[str] = Field(default_factory=list)
    interview_confidence_level: Literal["low", "medium", "high"] = "medium"
    overall_assessment: str = ""


class CandidateMandatoryFields(BaseModel):
    country: str | None = None
    city: str | None = None
    work_mode: CandidateWorkModeEnum | None = None
    salary_amount: float | None = None
    salary_currency: CurrencyEnum | None = None
    salary_period: PayPeriodEnum | None = None
    profile_complete: bool = False


@dataclass(frozen=True)
class CandidateMatchSource:
    """Everything the scorer reads about one candidate."""

    candidate_user_id: int
    searchable_text: str
    resume_analysis: ResumeAnalysis | None
    technical_summary: CandidateTechnicalSummary | None


@dataclass(frozen=True)
class SimilarCandidate:
    candidate_user_id: int
    similarity: float


# ═══════════════════════════════════════════════════════════════════
# RESULTS
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class MatchBreakdown:
    core_tech_depth: float
    domain_alignment: float
    ownership_alignment: float
    architecture_scale_alignment: float
    challenge_alignment: float

    def total(self) -> float:
        return (
            self.core_tech_depth
            + self.domain_alignment
            + self.ownership_alignment
            + self.architecture_scale_alignment
            + self.challenge_alignment
        )

    def to_dict(self) -> dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class MatchReasons:
    top_matches: tuple[str, ...] = ()
    top_gaps: tuple[str, ...] = ()
    risks: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, list[str]]:
        return {
            "top_matches": list(self.top_matches),
            "top_gaps": list(self.top_gaps),
            "risks": list(self.risks),
        }


def clamp_score(value: float) -> int:
    """Round half up (84.5 -> 85) and clamp to [0, 100]."""
    return max(0, min(100, math.floor(value + 0.5)))


@dataclass(frozen=True)
class MatchScore:
    """Result of scoring one (job, candidate) pair. Never mutated after creation."""

    total_score: int
    pass_hard_filters: bool
    hard_filter_failures: tuple[str, ...]
    breakdown: MatchBreakdown
    reasons: MatchReasons

    def __post_init__(self):
        if not 0 <= self.total_score <= 100:
            raise InvariantViolation(f"total_score out of range: {self.total_score}")
        expected = clamp_score(self.breakdown.total())
        if self.total_score != expected:
            raise InvariantViolation(
                f"total_score {self.total_score} != clamped breakdown sum {expected}"
            )
        if self.pass_hard_filters == bool(self.hard_filter_failures):
            raise InvariantViolation("pass_hard_filters disagrees with hard_filter_failures")


@dataclass(frozen=True)
class MatchingDecision:
    notify_candidate: bool
    notify_manager: bool
    priority: DecisionPriorityEnum
    message_length: MessageLengthEnum
    cooldown_hours_candidate: int
    cooldown_hours_manager: int
    reason: str

    def __post_init__(self):
        for name in ("cooldown_hours_candidate", "cooldown_hours_manager"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise InvariantViolation(f"{name} must be a non-negative integer, got {value!r}")
        if not self.reason.strip():
            raise InvariantViolation("decision reason must not be empty")

    def to_dict(self) -> dict[str, Any]:
        return {
            "notify_candidate": self.notify_candidate,
            "notify_manager": self.notify_manager,
            "priority": self.priority.value,
            "message_length": self.message_length.value,
            "cooldown_hours_candidate": self.cooldown_hours_candidate,
            "cooldown_hours_manager": self.cooldown_hours_manager,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MatchingDecision":
        return cls(
            notify_candidate=bool(data.get("notify_candidate")),
            notify_manager=bool(data.get("notify_manager")),
            priority=DecisionPriorityEnum(data.get("priority", "low")),
            message_length=MessageLengthEnum(data.get("message_length", "short")),
            cooldown_hours_candidate=int(data.get("cooldown_hours_candidate", 0)),
            cooldown_hours_manager=int(data.get("cooldown_hours_manager", 0)),
            reason=str(data.get("reason") or "stored decision"),
        )


@dataclass(frozen=True)
class CandidateMatch:
    """A scored, decided candidate for one job run. Input to the match record store."""

    candidate_user_id: int
    score: MatchScore
    decision: MatchingDecision
    candidate_summary: str = ""
    explanation: str = ""


@dataclass(frozen=True)
class MatchRecord:
    """Persisted (manager, candidate) pairing. Status is the only mutable part."""

    id: str
    run_id: str
    manager_user_id: int
    candidate_user_id: int
    job_id: str | None
    candidate_id: str | None
    job_summary: str
    candidate_summary: str
    score: int
    breakdown: dict[str, float]
    reasons: dict[str, list[str]]
    decision: MatchingDecision
    explanation: str | None
    status: MatchStatusEnum
    created_at: datetime
    updated_at: datetime
    last_actor_id: int | None = None


@dataclass
class MatchingRunResult:
    """Delivered matches of one orchestrator run plus its bookkeeping."""

    manager_user_id: int | None
    matches: list[MatchRecord] = field(default_factory=list)
    records_created: int = 0
    candidates_considered: int = 0
    candidates_skipped: int = 0
    aborted_reason: str | None = None
