"""Mandatory-field pre-filter.

Cheap structural compatibility checks run before scoring: work mode, location
and salary band. These are cost-saving filters only; a candidate that passes
here can still fail the scorer's hard filters.
"""

import re
from dataclasses import dataclass, field

from candidate_matching.matching.types import CandidateMandatoryFields, JobMandatoryFields
from candidate_matching.models.enums import (
    CandidateWorkModeEnum,
    CurrencyEnum,
    JobWorkFormatEnum,
    PayPeriodEnum,
)


@dataclass(frozen=True)
class FilterVerdict:
    passed: bool
    reasons: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_reasons(cls, reasons: list[str]) -> "FilterVerdict":
        return cls(passed=not reasons, reasons=tuple(reasons))


# ═══════════════════════════════════════════════════════════════════
# BUDGET PARSING
# ═══════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ParsedBudget:
    min: float | None
    max: float | None
    currency: CurrencyEnum | None
    period: PayPeriodEnum | None

    @property
    def is_valid(self) -> bool:
        return self.max is not None and self.currency is not None and self.period is not None


_AMOUNT = re.compile(r"(\d+(?:[.,]\d+)?)(\s*k\b)?", re.IGNORECASE)
_US_HINTS = ("usa", "united states", "american")


def _extract_amounts(text: str) -> list[float]:
    amounts: list[float] = []
    for match in _AMOUNT.finditer(text):
        numeric = float(match.group(1).replace(",", "."))
        if numeric <= 0:
            continue
        amounts.append(round(numeric * 1000) if match.group(2) else round(numeric))
        if len(amounts) >= 2:
            break
    return amounts


def _parse_currency(text: str) -> CurrencyEnum | None:
    if re.search(r"\busd\b", text) or "$" in text:
        return CurrencyEnum.USD
    if re.search(r"\beur\b", text) or "€" in text:
        return CurrencyEnum.EUR
    if re.search(r"\bils\b", text) or "₪" in text:
        return CurrencyEnum.ILS
    if re.search(r"\bgbp\b", text) or "£" in text:
        return CurrencyEnum.GBP
    if any(hint in text for hint in _US_HINTS):
        return CurrencyEnum.USD
    return None


def _parse_period(text: str) -> PayPeriodEnum | None:
    if re.search(r"\bper\s+month\b|\bmonthly\b|/\s*month\b|\bmonth\b", text):
        return PayPeriodEnum.MONTH
    if re.search(r"\bper\s+year\b|\byearly\b|\bannually\b|/\s*year\b|\byear\b", text):
        return PayPeriodEnum.YEAR
    return None


def parse_budget(text: str) -> ParsedBudget:
    """Parse a free-text budget like "up to 8k USD per month"."""
    normalized = text.strip().lower()
    amounts = _extract_amounts(normalized)
    if not amounts:
        return ParsedBudget(min=None, max=None, currency=None, period=None)
    return ParsedBudget(
        min=min(amounts),
        max=max(amounts),
        currency=_parse_currency(normalized),
        period=_parse_period(normalized),
    )


# ═══════════════════════════════════════════════════════════════════
# STRUCTURED FIELDS
# ═══════════════════════════════════════════════════════════════════


def _same_country(left: str, right: str) -> bool:
    a = left.strip().lower()
    b = right.strip().lower()
    return bool(a) and bool(b) and (a == b or a in b or b in a)


def _salary_exceeds(
    candidate: CandidateMandatoryFields,
    ceiling: float | None,
    currency: CurrencyEnum | None,
    period: PayPeriodEnum | None,
) -> bool:
    """Only comparable when currency and period agree; otherwise never exceeds."""
    if ceiling is None or candidate.salary_amount is None:
        return False
    if currency is None or currency != candidate.salary_currency:
        return False
    if period is None or period != candidate.salary_period:
        return False
    return candidate.salary_amount > ceiling


def check_job_mandatory_fields(
    candidate: CandidateMandatoryFields, job: JobMandatoryFields
) -> FilterVerdict:
    reasons: list[str] = []

    if (
        job.work_format in (JobWorkFormatEnum.ONSITE, JobWorkFormatEnum.HYBRID)
        and candidate.work_mode == CandidateWorkModeEnum.REMOTE
    ):
        reasons.append(f"Job is {job.work_format.value} but candidate wants remote only.")

    if (
        job.work_format == JobWorkFormatEnum.REMOTE
        and not job.remote_worldwide
        and job.remote_countries
    ):
        country = candidate.country or ""
        if not any(_same_country(country, allowed) for allowed in job.remote_countries):
            reasons.append(
                f"Candidate country {country or 'unknown'} is not in allowed countries: "
                f"{', '.join(job.remote_countries)}."
            )

    ceiling = job.budget_max if job.budget_max is not None else job.budget_min
    if _salary_exceeds(candidate, ceiling, job.budget_currency, job.budget_period):
        reasons.append(
            f"Candidate salary {candidate.salary_amount:g} exceeds budget ceiling {ceiling:g}."
        )

    return FilterVerdict.from_reasons(reasons)


# ═══════════════════════════════════════════════════════════════════
# FREE-TEXT CONSTRAINTS
# ═══════════════════════════════════════════════════════════════════

_REMOTE_ONLY = re.compile(r"\b(?:remote[\s-]only|fully[\s-]remote|100% remote)\b")
_ONSITE = re.compile(
    r"\b(?:onsite|on-site|on site|in[\s-]office|office[\s-]based|from (?:the|our) office)\b"
)
_ONSITE_OPTIONAL = re.compile(
    r"\b(?:optional|remote[\s-]first|remote[\s-]friendly|not required|if you prefer)\b"
)
_BASED_IN = re.compile(r"\b(?:based|located|living|reside) in ([a-z][a-z .'-]*)")
_X_ONLY = re.compile(r"\b([A-Z][a-zA-Z]+(?: [A-Z][a-zA-Z]+)?) only\b")
_NOT_LOCATIONS = {"remote", "onsite", "hybrid", "office", "english", "full", "senior", "contract"}
_ALTERNATIVES = re.compile(r"\s+(?:or|and)\s+|/")


def _location_alternatives(constraint: str) -> list[str]:
    """Country/location names a constraint restricts candidates to, if any."""
    locations: list[str] = []
    based = _BASED_IN.search(constraint.lower())
    if based:
        phrase = based.group(1).strip(" .'-")
        locations.extend(p.strip() for p in _ALTERNATIVES.split(phrase) if p.strip())
    for match in _X_ONLY.finditer(constraint):
        name = match.group(1)
        if name.split()[0].lower() not in _NOT_LOCATIONS:
            locations.append(name)
    return locations


def check_constraint_text(
    candidate: CandidateMandatoryFields, job_constraints: list[str]
) -> FilterVerdict:
    """Keyword scan of the job's free-text constraints against structured fields."""
    reasons: list[str] = []

    for constraint in job_constraints:
        text = constraint.strip().lower()
        if not text:
            continue

        remote_only = bool(_REMOTE_ONLY.search(text))
        if remote_only and candidate.work_mode == CandidateWorkModeEnum.ONSITE:
            reasons.append(f"Constraint '{constraint}' conflicts with onsite-only candidate.")
        elif (
            not remote_only
            and _ONSITE.search(text)
            and not _ONSITE_OPTIONAL.search(text)
            and candidate.work_mode == CandidateWorkModeEnum.REMOTE
        ):
            reasons.append(f"Constraint '{constraint}' conflicts with remote-only candidate.")

        budget = parse_budget(text)
        if budget.is_valid and _salary_exceeds(
            candidate, budget.max, budget.currency, budget.period
        ):
            reasons.append(f"Constraint '{constraint}' budget is below candidate salary.")

        locations = _location_alternatives(constraint)
        if locations and candidate.country:
            if not any(_same_country(candidate.country, loc) for loc in locations):
                reasons.append(
                    f"Constraint '{constraint}' excludes candidate country {candidate.country}."
                )

    return FilterVerdict.from_reasons(reasons)


def passes_mandatory_filter(
    candidate: CandidateMandatoryFields,
    job: JobMandatoryFields,
    job_constraints: list[str] | None = None,
) -> FilterVerdict:
    """Job-side structured check, then the free-text constraint scan."""
    structured = check_job_mandatory_fields(candidate, job)
    if not structured.passed:
        return structured
    return check_constraint_text(candidate, job_constraints or [])
