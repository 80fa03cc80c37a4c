"""Matching orchestrator.

A manager run: job profile -> shortlist -> mandatory-field filter -> score ->
decide -> record. Match history is read once per run and every candidate is
decided against that snapshot. Per-candidate work runs concurrently under a
fixed fan-out; one candidate failing never aborts the run.

A candidate run repeats the manager pipeline for every active manager and
keeps the delivered matches that mention the candidate.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError

from candidate_matching.errors import DataError, ProviderError, ValidationError
from candidate_matching.llm.operations.matching_explanation import (
    MatchingExplanation,
    fallback_explanation,
)
from candidate_matching.matching.decision import (
    DecisionInput,
    DecisionRefiner,
    decide,
    withhold_notification,
)
from candidate_matching.matching.history import MatchHistory
from candidate_matching.matching.mandatory_filter import passes_mandatory_filter
from candidate_matching.matching.scoring import score_match
from candidate_matching.matching.shortlist import ShortlistResolver
from candidate_matching.matching.types import (
    CandidateMatch,
    CandidateMatchSource,
    CandidateTechnicalSummary,
    JobMandatoryFields,
    JobProfile,
    JobTechnicalSummary,
    MatchingRunResult,
    MatchRecord,
    MatchScore,
    TechnicalResumeAnalysis,
)
from candidate_matching.resources.match_store import MatchStoreResource
from candidate_matching.resources.profile_store import ProfileStoreResource

logger = logging.getLogger(__name__)

JOB_SUMMARY_CHARS = 1200
CANDIDATE_SUMMARY_CHARS = 500
EXPLANATION_TIMEOUT_SECONDS = 20.0

# Per-candidate errors that skip the candidate instead of failing the run.
CANDIDATE_ERRORS = (DataError, ProviderError, SQLAlchemyError, TimeoutError)

Explainer = Callable[
    [MatchScore, JobTechnicalSummary | None, CandidateTechnicalSummary | None],
    Awaitable[MatchingExplanation],
]
ResolverFactory = Callable[[MatchHistory], ShortlistResolver]


@dataclass(frozen=True)
class MatchingSettings:
    shortlist_size: int = 50
    max_scored: int = 200
    top_k: int = 3
    notify_threshold: int = 70
    manager_visible_threshold: int = 75
    fan_out: int = 8


def build_job_summary(summary: JobTechnicalSummary | None, job: JobProfile) -> str:
    if summary is not None:
        parts = [
            summary.headline,
            summary.product_context,
            ", ".join(summary.core_tech),
            ", ".join(summary.key_requirements),
            summary.notes_for_matching,
        ]
    else:
        parts = [
            job.role_title or "",
            job.product_context.what_the_product_does or "",
            ", ".join(r.technology for r in job.technology_map.core),
            ", ".join(job.work_scope.current_tasks),
        ]
    return " | ".join(p for p in parts if p)[:JOB_SUMMARY_CHARS]


def build_candidate_summary(source: CandidateMatchSource) -> str:
    summary = source.technical_summary
    if summary is not None:
        parts = [
            summary.headline,
            summary.technical_depth_summary,
            summary.ownership_and_authority,
        ]
        return " | ".join(p for p in parts if p)[:CANDIDATE_SUMMARY_CHARS]
    return source.searchable_text[:CANDIDATE_SUMMARY_CHARS]


def format_manager_message(
    matches: list[MatchRecord], visible_threshold: int = MatchingSettings.manager_visible_threshold
) -> str:
    """Manager-facing text for delivered matches at or above the visibility threshold."""
    visible = [m for m in matches if m.score >= visible_threshold]
    if not visible:
        return "No suitable candidates found yet."

    lines = ["Top matching candidates:", ""]
    for index, match in enumerate(visible, start=1):
        lines.append(f"{index}) Candidate #{match.candidate_user_id} | score {match.score}")
        explanation = MatchingExplanation.from_json(match.explanation)
        if explanation is not None:
            lines.append(f"   {explanation.message_for_manager}")
    return "\n".join(lines)


@dataclass(frozen=True)
class _JobContext:
    manager_user_id: int
    job: JobProfile
    technical_summary: JobTechnicalSummary | None
    mandatory_fields: JobMandatoryFields
    job_summary: str


@dataclass(frozen=True)
class _Evaluated:
    match: CandidateMatch
    source: CandidateMatchSource


class MatchingEngine:
    def __init__(
        self,
        profile_store: ProfileStoreResource,
        match_store: MatchStoreResource,
        resolver_factory: ResolverFactory,
        explainer: Explainer | None = None,
        refiner: DecisionRefiner | None = None,
        settings: MatchingSettings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self.profile_store = profile_store
        self.match_store = match_store
        self.resolver_factory = resolver_factory
        self.explainer = explainer
        self.refiner = refiner
        self.settings = settings or MatchingSettings()
        self.clock = clock or (lambda: datetime.now(UTC))

    async def load_history(self) -> MatchHistory:
        return MatchHistory(await asyncio.to_thread(self.match_store.list_all))

    async def _load_job(self, manager_user_id: int) -> tuple[_JobContext | None, str | None]:
        """Job context for a run, or the reason the run is aborted."""
        store = self.profile_store
        try:
            job = await asyncio.to_thread(store.get_job_profile, manager_user_id)
            if job is None:
                return None, "job profile not found"
            mandatory = await asyncio.to_thread(store.get_job_mandatory_fields, manager_user_id)
            if mandatory is None or not mandatory.profile_complete:
                return None, "job mandatory fields incomplete"
            status = await asyncio.to_thread(store.get_manager_job_status, manager_user_id)
            if status != "active":
                return None, "job is not active"
            summary = await asyncio.to_thread(store.get_job_technical_summary, manager_user_id)
        except DataError as e:
            return None, f"job data error: {e}"

        job_summary = build_job_summary(summary, job)
        if not job_summary:
            return None, "job summary is empty"
        return (
            _JobContext(
                manager_user_id=manager_user_id,
                job=job,
                technical_summary=summary,
                mandatory_fields=mandatory,
                job_summary=job_summary,
            ),
            None,
        )

    async def _evaluate_candidate(
        self,
        context: _JobContext,
        candidate_user_id: int,
        history: MatchHistory,
        now: datetime,
    ) -> _Evaluated | None:
        store = self.profile_store
        candidate_fields = await asyncio.to_thread(
            store.get_candidate_mandatory_fields, candidate_user_id
        )
        if candidate_fields is None or not candidate_fields.profile_complete:
            logger.debug("Candidate %s mandatory fields incomplete", candidate_user_id)
            return None

        verdict = passes_mandatory_filter(
            candidate_fields, context.mandatory_fields, list(context.job.constraints)
        )
        if not verdict.passed:
            logger.debug(
                "Candidate %s filtered out: %s", candidate_user_id, "; ".join(verdict.reasons)
            )
            return None

        source = await asyncio.to_thread(store.get_candidate_match_source, candidate_user_id)
        if source is None:
            return None
        analysis = source.resume_analysis
        if not isinstance(analysis, TechnicalResumeAnalysis):
            # Missing or non-technical analysis: no match source.
            return None

        score = score_match(context.job, analysis)
        if not score.pass_hard_filters:
            return None

        manager_user_id = context.manager_user_id
        technical_summary = source.technical_summary
        confidence = technical_summary.interview_confidence_level if technical_summary else "medium"
        if score.total_score >= 85 and confidence == "low":
            logger.warning(
                "Match %s:%s scores %s but interview confidence is low",
                manager_user_id,
                candidate_user_id,
                score.total_score,
            )

        decision = await decide(
            DecisionInput(
                manager_user_id=manager_user_id,
                candidate_user_id=candidate_user_id,
                match_score=score.total_score,
                breakdown=score.breakdown,
                hard_filter_failed=not score.pass_hard_filters,
                job_active=True,
                candidate_risk_flags=tuple(
                    technical_summary.risk_flags if technical_summary else ()
                ),
                candidate_interview_confidence=confidence,
                candidate_cooldown_active=history.candidate_in_cooldown(candidate_user_id, now),
                manager_cooldown_active=history.manager_in_cooldown(manager_user_id, now),
                candidate_rejected_same_job=history.candidate_rejected_job(
                    candidate_user_id, manager_user_id
                ),
                manager_skipped_same_candidate=history.manager_skipped_candidate(
                    manager_user_id, candidate_user_id
                ),
            ),
            self.refiner,
        )
        return _Evaluated(
            match=CandidateMatch(
                candidate_user_id=candidate_user_id,
                score=score,
                decision=decision,
                candidate_summary=build_candidate_summary(source),
            ),
            source=source,
        )

    async def _explain(self, context: _JobContext, evaluated: _Evaluated) -> CandidateMatch:
        candidate_summary = evaluated.source.technical_summary
        explanation = None
        if self.explainer is not None:
            try:
                explanation = await asyncio.wait_for(
                    self.explainer(
                        evaluated.match.score, context.technical_summary, candidate_summary
                    ),
                    timeout=EXPLANATION_TIMEOUT_SECONDS,
                )
            except (ProviderError, ValidationError, TimeoutError) as e:
                logger.warning(
                    "Explanation failed for candidate %s, using fallback: %s",
                    evaluated.match.candidate_user_id,
                    e,
                )
        if explanation is None:
            explanation = fallback_explanation(context.technical_summary, candidate_summary)
        return replace(evaluated.match, explanation=explanation.to_json())

    async def run_for_manager(
        self,
        manager_user_id: int,
        run_id: str | None = None,
        history: MatchHistory | None = None,
        deliver_to: int | None = None,
    ) -> MatchingRunResult:
        """Match one manager's job against the shortlist.

        With deliver_to set, only that candidate's match can be delivered; every
        other evaluated candidate is recorded with its notification withheld.
        """
        run_id = run_id or uuid4().hex
        result = MatchingRunResult(manager_user_id=manager_user_id)

        context, aborted = await self._load_job(manager_user_id)
        if context is None:
            logger.info("Matching run for manager %s aborted: %s", manager_user_id, aborted)
            result.aborted_reason = aborted
            return result

        if history is None:
            history = await self.load_history()
        now = self.clock()

        resolver = self.resolver_factory(history)
        shortlist = await resolver.resolve(
            context.job, context.technical_summary, limit=self.settings.shortlist_size
        )
        shortlist = shortlist[: self.settings.max_scored]
        result.candidates_considered = len(shortlist)

        semaphore = asyncio.Semaphore(self.settings.fan_out)

        async def evaluate(candidate_user_id: int) -> _Evaluated | None:
            async with semaphore:
                try:
                    return await self._evaluate_candidate(
                        context, candidate_user_id, history, now
                    )
                except CANDIDATE_ERRORS as e:
                    logger.warning(
                        "Skipping candidate %s for manager %s: %s",
                        candidate_user_id,
                        manager_user_id,
                        e,
                    )
                    result.candidates_skipped += 1
                    return None

        evaluated = [e for e in await asyncio.gather(*(evaluate(c) for c in shortlist)) if e]
        evaluated.sort(key=lambda e: (-e.match.score.total_score, e.match.candidate_user_id))

        delivered = [
            e
            for e in evaluated
            if e.match.score.total_score >= self.settings.notify_threshold
            and e.match.decision.notify_candidate
        ][: self.settings.top_k]
        if deliver_to is not None:
            delivered = [e for e in delivered if e.match.candidate_user_id == deliver_to]
        delivered_ids = [e.match.candidate_user_id for e in delivered]

        explained = {
            m.candidate_user_id: m
            for m in await asyncio.gather(*(self._explain(context, e) for e in delivered))
        }
        # Only delivered matches keep notify_candidate; cooldowns key on it.
        to_record = [
            explained.get(e.match.candidate_user_id)
            or replace(e.match, decision=withhold_notification(e.match.decision))
            for e in evaluated
        ]

        records = await asyncio.to_thread(
            self.match_store.create_for_job,
            manager_user_id,
            context.job_summary,
            to_record,
            run_id,
            str(manager_user_id),
        )
        result.records_created = len(records)
        by_candidate = {r.candidate_user_id: r for r in records}
        result.matches = [by_candidate[c] for c in delivered_ids if c in by_candidate]

        logger.info(
            "Manager %s run %s: shortlisted=%s recorded=%s delivered=%s skipped=%s",
            manager_user_id,
            run_id,
            len(shortlist),
            len(records),
            len(result.matches),
            result.candidates_skipped,
        )
        return result

    async def run_for_candidate(
        self, candidate_user_id: int, run_id: str | None = None
    ) -> MatchingRunResult:
        run_id = run_id or uuid4().hex
        result = MatchingRunResult(manager_user_id=None)
        manager_ids = await asyncio.to_thread(self.profile_store.list_active_manager_ids)
        history = await self.load_history()

        mentions: list[MatchRecord] = []
        for manager_user_id in manager_ids:
            manager_result = await self.run_for_manager(
                manager_user_id, run_id, history, deliver_to=candidate_user_id
            )
            result.records_created += manager_result.records_created
            result.candidates_considered += manager_result.candidates_considered
            result.candidates_skipped += manager_result.candidates_skipped
            mentions.extend(
                m for m in manager_result.matches if m.candidate_user_id == candidate_user_id
            )

        mentions.sort(key=lambda m: (-m.score, m.manager_user_id))
        result.matches = mentions[: self.settings.top_k]
        logger.info(
            "Candidate %s run %s: %s matches across %s active jobs",
            candidate_user_id,
            run_id,
            len(result.matches),
            len(manager_ids),
        )
        return result
