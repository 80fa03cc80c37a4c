"""Deterministic (job, candidate) scoring.

score_match() is a pure function: the same inputs always produce the same
breakdown, hard-filter verdict and reasons. Hard filters are evaluated
independently of the numeric score and are never overridden by it.

Component caps (sum to 100):
    core tech depth 35, domain alignment 20, ownership alignment 15,
    architecture/scale alignment 15, challenge alignment 15.
"""

import re

from candidate_matching.matching.types import (
    JobProfile,
    MatchBreakdown,
    MatchReasons,
    MatchScore,
    TechnicalResumeAnalysis,
    clamp_score,
)

CORE_TECH_CAP = 35.0
DOMAIN_CAP = 20.0
OWNERSHIP_CAP = 15.0
ARCHITECTURE_CAP = 15.0
CHALLENGE_CAP = 15.0

CORE_TECH_NEUTRAL = 18.0
CHALLENGE_NEUTRAL = 8.0
TECH_RATIO_NEUTRAL = 0.4
MANDATORY_WEIGHT = 1.5
NON_MANDATORY_WEIGHT = 1.0
CONFIDENT_CORE_TECH = 0.75
MAX_REASONS = 5

DEPTH_RANK = {"none": 0, "basic": 1, "working": 2, "strong": 3, "expert": 4}

AUTHORITY_RANK = {
    "executor": 1,
    "contributor": 2,
    "owner": 3,
    "technical_lead": 4,
    "tech_lead": 4,
}
DEFAULT_AUTHORITY_RANK = 2
OWNERSHIP_BY_DISTANCE = (12.0, 9.0, 5.0, 2.0)

COMPLEXITY_BONUS = {"high": 3.0, "medium": 2.0, "low": 1.0}
HANDS_ON_BONUS = {"high": 2.0, "medium": 1.0}

_NON_TOKEN = re.compile(r"[^a-z0-9+#.]")
_WHITESPACE = re.compile(r"\s+")

MISSING_TECH_FAILURE = "Missing mandatory core technology: {}"
CRITICAL_DOMAIN_FAILURE = "Critical domain depth requirement is not met."
AUTHORITY_FAILURE = "Decision authority mismatch for technical lead expectation."
PRODUCTION_FAILURE = "Production responsibility is required by job but not validated for candidate."


def normalize_tech_name(name: str) -> str:
    """Lowercase, fold punctuation to spaces, collapse whitespace."""
    folded = _NON_TOKEN.sub(" ", name.lower())
    return _WHITESPACE.sub(" ", folded).strip()


def tokenize(text: str) -> set[str]:
    return {token for token in _NON_TOKEN.sub(" ", text.lower()).split() if len(token) >= 3}


def _round2(value: float) -> float:
    return round(value, 2)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


# ═══════════════════════════════════════════════════════════════════
# CANDIDATE SIGNAL RESOLUTION
# ═══════════════════════════════════════════════════════════════════


def resolve_candidate_depth(candidate: TechnicalResumeAnalysis, technology: str) -> str:
    """Resolve the candidate's depth for one technology.

    Skill-depth buckets win: deep -> expert, working -> strong, mentioned -> basic.
    Otherwise the raw core technology list is used with a confidence threshold.
    """
    target = normalize_tech_name(technology)
    if not target:
        return "none"
    buckets = candidate.skill_depth_classification
    if target in {normalize_tech_name(t) for t in buckets.deep_experience}:
        return "expert"
    if target in {normalize_tech_name(t) for t in buckets.working_experience}:
        return "strong"
    if target in {normalize_tech_name(t) for t in buckets.mentioned_only}:
        return "basic"
    for tech in candidate.core_technologies:
        if normalize_tech_name(tech.name) == target:
            return "working" if tech.confidence >= CONFIDENT_CORE_TECH else "basic"
    return "none"


def _domain_matches(candidate_domain: str, required_domain: str | None) -> bool:
    required = normalize_tech_name(required_domain or "")
    if not required:
        return True
    candidate = normalize_tech_name(candidate_domain)
    if not candidate:
        return False
    return candidate in required or required in candidate


def _best_domain_depth(candidate: TechnicalResumeAnalysis, required_domain: str | None) -> str:
    """Highest depth among matching domain entries, or "none"."""
    best = "none"
    order = {"none": 0, "low": 1, "medium": 2, "high": 3}
    for entry in candidate.domain_expertise:
        if not _domain_matches(entry.domain, required_domain):
            continue
        if order[entry.depth_level] > order[best]:
            best = entry.depth_level
    return best


# ═══════════════════════════════════════════════════════════════════
# HARD FILTERS
# ═══════════════════════════════════════════════════════════════════


def evaluate_hard_filters(job: JobProfile, candidate: TechnicalResumeAnalysis) -> list[str]:
    """Return every hard-filter failure, in a stable order."""
    failures: list[str] = []

    for requirement in job.technology_map.core:
        if not requirement.mandatory:
            continue
        if DEPTH_RANK[resolve_candidate_depth(candidate, requirement.technology)] == 0:
            failures.append(MISSING_TECH_FAILURE.format(requirement.technology))

    domain = job.domain_requirements
    if domain.domain_depth_required == "critical":
        if _best_domain_depth(candidate, domain.primary_domain) not in ("medium", "high"):
            failures.append(CRITICAL_DOMAIN_FAILURE)

    ownership = job.ownership_expectation
    if (
        ownership.decision_authority_required == "technical_lead"
        and candidate.decision_authority_level == "executor"
    ):
        failures.append(AUTHORITY_FAILURE)

    if (
        ownership.production_responsibility == "yes"
        and not candidate.ownership_signals.production_responsibility
    ):
        failures.append(PRODUCTION_FAILURE)

    return failures


# ═══════════════════════════════════════════════════════════════════
# SOFT COMPONENTS
# ═══════════════════════════════════════════════════════════════════


def score_core_tech_depth(job: JobProfile, candidate: TechnicalResumeAnalysis) -> float:
    requirements = [r for r in job.technology_map.core if normalize_tech_name(r.technology)]
    if not requirements:
        return CORE_TECH_NEUTRAL

    weighted_credit = 0.0
    total_weight = 0.0
    for requirement in requirements:
        weight = MANDATORY_WEIGHT if requirement.mandatory else NON_MANDATORY_WEIGHT
        required_rank = DEPTH_RANK[requirement.required_depth]
        candidate_rank = DEPTH_RANK[resolve_candidate_depth(candidate, requirement.technology)]
        if candidate_rank >= required_rank:
            credit = 1.0
        elif candidate_rank == required_rank - 1:
            credit = 0.5
        else:
            credit = 0.0
        weighted_credit += credit * weight
        total_weight += weight

    return _round2(CORE_TECH_CAP * weighted_credit / total_weight)


def score_domain_alignment(job: JobProfile, candidate: TechnicalResumeAnalysis) -> float:
    domain = job.domain_requirements
    required = domain.domain_depth_required
    best = _best_domain_depth(candidate, domain.primary_domain)

    if required == "helpful":
        return 14.0 if best != "none" else 8.0
    if required == "important":
        if best in ("medium", "high"):
            return 18.0
        return 12.0 if best == "low" else 5.0
    if required == "critical":
        return {"high": 20.0, "medium": 16.0, "low": 8.0}.get(best, 0.0)
    # "none" and "unknown"
    return 10.0


def score_ownership_alignment(job: JobProfile, candidate: TechnicalResumeAnalysis) -> float:
    ownership = job.ownership_expectation
    required_rank = AUTHORITY_RANK.get(
        ownership.decision_authority_required, DEFAULT_AUTHORITY_RANK
    )
    candidate_rank = AUTHORITY_RANK.get(candidate.decision_authority_level, DEFAULT_AUTHORITY_RANK)
    distance = abs(required_rank - candidate_rank)

    points = OWNERSHIP_BY_DISTANCE[min(distance, len(OWNERSHIP_BY_DISTANCE) - 1)]
    points += HANDS_ON_BONUS.get(candidate.hands_on_level, 0.0)
    if ownership.production_responsibility == "yes":
        points += 2.0 if candidate.ownership_signals.production_responsibility else -3.0

    return _round2(_clamp(points, 0.0, OWNERSHIP_CAP))


def _style_matches(style: str, candidate: TechnicalResumeAnalysis) -> bool:
    signals = candidate.architecture_signals
    if style == "microservices":
        return signals.microservices
    if style == "monolith":
        return signals.monolith
    if style == "event_driven":
        return signals.event_driven
    if style == "mixed":
        return signals.distributed_systems
    return False


def _tri_state_points(required: str, candidate_has: bool) -> float:
    if required == "yes":
        return 3.0 if candidate_has else 0.0
    if required == "unknown":
        return 1.0
    return 2.0


def score_architecture_alignment(job: JobProfile, candidate: TechnicalResumeAnalysis) -> float:
    arch = job.architecture_and_scale
    signals = candidate.architecture_signals

    if arch.architecture_style == "unknown":
        points = 4.0
    elif _style_matches(arch.architecture_style, candidate):
        points = 6.0
    else:
        points = 2.0

    points += _tri_state_points(arch.distributed_systems, signals.distributed_systems)
    points += _tri_state_points(arch.high_load, signals.high_load)
    points += COMPLEXITY_BONUS.get(candidate.system_complexity_level, 0.0)

    return _round2(_clamp(points, 0.0, ARCHITECTURE_CAP))


def _candidate_tech_names(candidate: TechnicalResumeAnalysis) -> set[str]:
    buckets = candidate.skill_depth_classification
    names = [*buckets.deep_experience, *buckets.working_experience, *buckets.mentioned_only]
    return {n for n in (normalize_tech_name(name) for name in names) if n}


def score_challenge_alignment(job: JobProfile, candidate: TechnicalResumeAnalysis) -> float:
    scope = job.work_scope
    job_tokens = tokenize(
        " ".join(
            [*scope.current_challenges, *scope.current_tasks, *scope.deliverables_or_outcomes]
        )
    )
    if not job_tokens:
        return CHALLENGE_NEUTRAL

    candidate_tokens = tokenize(
        " ".join(
            [
                *candidate.impact_indicators,
                *candidate.interview_focus_recommendations,
                *(tech.name for tech in candidate.core_technologies),
            ]
        )
    )
    overlap_ratio = len(job_tokens & candidate_tokens) / len(job_tokens)

    job_core = {
        n for n in (normalize_tech_name(r.technology) for r in job.technology_map.core) if n
    }
    if job_core:
        tech_ratio = len(job_core & _candidate_tech_names(candidate)) / len(job_core)
    else:
        tech_ratio = TECH_RATIO_NEUTRAL

    return _round2(_clamp(overlap_ratio * 10 + tech_ratio * 5, 0.0, CHALLENGE_CAP))


# ═══════════════════════════════════════════════════════════════════
# REASONS
# ═══════════════════════════════════════════════════════════════════


def _dedupe(items: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for item in items:
        text = item.strip()
        if text and text not in seen:
            seen.add(text)
            result.append(text)
    return result


def build_reasons(
    job: JobProfile,
    candidate: TechnicalResumeAnalysis,
    hard_filter_failures: list[str],
) -> MatchReasons:
    """Human-inspectable reasons. Built independently of the numeric score."""
    top_matches: list[str] = []
    top_gaps: list[str] = []

    core = job.technology_map.core
    overlapping = [
        r.technology
        for r in core
        if DEPTH_RANK[resolve_candidate_depth(candidate, r.technology)] > 0
    ]
    if overlapping:
        top_matches.append(f"Core tech overlap: {', '.join(overlapping[:3])}.")
    if candidate.ownership_signals.production_responsibility:
        top_matches.append("Production responsibility signal is present.")
    domains = _dedupe([entry.domain for entry in candidate.domain_expertise])
    if domains:
        top_matches.append(f"Domain exposure: {', '.join(domains[:2])}.")

    missing = [
        r.technology
        for r in core
        if r.mandatory and DEPTH_RANK[resolve_candidate_depth(candidate, r.technology)] == 0
    ]
    if missing:
        top_gaps.append(f"Missing mandatory technologies: {', '.join(missing)}.")
    if candidate.hands_on_level in ("low", "unclear"):
        top_gaps.append("Hands-on depth is unclear for required scope.")

    risks = _dedupe([*hard_filter_failures, *candidate.technical_risk_flags[:3]])

    return MatchReasons(
        top_matches=tuple(top_matches[:MAX_REASONS]),
        top_gaps=tuple(top_gaps[:MAX_REASONS]),
        risks=tuple(risks[:MAX_REASONS]),
    )


def score_match(job: JobProfile, candidate: TechnicalResumeAnalysis) -> MatchScore:
    """Score one candidate against one job."""
    failures = evaluate_hard_filters(job, candidate)
    breakdown = MatchBreakdown(
        core_tech_depth=score_core_tech_depth(job, candidate),
        domain_alignment=score_domain_alignment(job, candidate),
        ownership_alignment=score_ownership_alignment(job, candidate),
        architecture_scale_alignment=score_architecture_alignment(job, candidate),
        challenge_alignment=score_challenge_alignment(job, candidate),
    )
    return MatchScore(
        total_score=clamp_score(breakdown.total()),
        pass_hard_filters=not failures,
        hard_filter_failures=tuple(failures),
        breakdown=breakdown,
        reasons=build_reasons(job, candidate, failures),
    )
