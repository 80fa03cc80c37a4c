"""Tests for the matching orchestrator against the match store on SQLite."""

import asyncio
from unittest.mock import AsyncMock

import pytest
from factories import (
    backend_job,
    candidate_fields,
    job_summary,
    match_source,
    remote_job_fields,
    strong_candidate,
    weak_candidate,
)

from candidate_matching.errors import DataError, ProviderError
from candidate_matching.llm.operations.matching_explanation import MatchingExplanation
from candidate_matching.matching import engine as engine_module
from candidate_matching.matching.decision import COOLDOWN_REASON, NOT_DELIVERED_REASON
from candidate_matching.matching.engine import (
    MatchingEngine,
    MatchingSettings,
    format_manager_message,
)
from candidate_matching.matching.shortlist import KnownCandidatesStrategy, ShortlistResolver
from candidate_matching.matching.types import (
    JobProfile,
    NonTechnicalResumeAnalysis,
    OwnershipSignals,
)


class FakeProfileStore:
    """In-memory stand-in for ProfileStoreResource."""

    def __init__(self):
        self.jobs = {}
        self.job_fields = {}
        self.job_status = {}
        self.job_summaries = {}
        self.sources = {}
        self.candidate_fields = {}
        self.broken_candidates = set()

    def add_job(self, manager_user_id, job=None, fields=None, status="active", summary=None):
        self.jobs[manager_user_id] = job or backend_job()
        self.job_fields[manager_user_id] = fields or remote_job_fields()
        self.job_status[manager_user_id] = status
        self.job_summaries[manager_user_id] = summary

    def add_candidate(self, candidate_user_id, analysis=None, fields=None, headline="Go engineer"):
        self.sources[candidate_user_id] = match_source(
            candidate_user_id, analysis or strong_candidate(), headline=headline
        )
        self.candidate_fields[candidate_user_id] = fields or candidate_fields()

    def list_candidate_ids(self, limit):
        return sorted(set(self.sources) | set(self.candidate_fields))[:limit]

    def get_candidate_match_source(self, candidate_user_id):
        return self.sources.get(candidate_user_id)

    def get_candidate_mandatory_fields(self, candidate_user_id):
        if candidate_user_id in self.broken_candidates:
            raise DataError(f"candidate {candidate_user_id} mandatory fields are malformed")
        return self.candidate_fields.get(candidate_user_id)

    def get_job_profile(self, manager_user_id):
        return self.jobs.get(manager_user_id)

    def get_job_technical_summary(self, manager_user_id):
        return self.job_summaries.get(manager_user_id)

    def get_job_mandatory_fields(self, manager_user_id):
        return self.job_fields.get(manager_user_id)

    def get_manager_job_status(self, manager_user_id):
        return self.job_status.get(manager_user_id, "closed")

    def list_active_manager_ids(self):
        return sorted(m for m, status in self.job_status.items() if status == "active")


async def constant_embed(text):
    return [1.0, 0.0]


@pytest.fixture
def profiles() -> FakeProfileStore:
    store = FakeProfileStore()
    store.add_job(1, summary=job_summary())
    return store


def make_engine(profiles, match_store, **kwargs) -> MatchingEngine:
    return MatchingEngine(
        profiles,
        match_store,
        lambda history: ShortlistResolver(
            [KnownCandidatesStrategy(profiles, history.known_candidate_ids)],
            embed=constant_embed,
        ),
        **kwargs,
    )


class TestRunForManager:
    """Tests for one manager's matching run."""

    def test_delivers_notified_matches_above_threshold(self, profiles, match_store):
        """Test that only notified matches at or above the threshold are delivered."""
        profiles.add_candidate(10)
        profiles.add_candidate(11, weak_candidate())
        engine = make_engine(profiles, match_store)

        result = asyncio.run(engine.run_for_manager(1, run_id="run-1"))

        assert result.aborted_reason is None
        assert result.candidates_considered == 2
        assert result.records_created == 2
        assert [m.candidate_user_id for m in result.matches] == [10]
        assert result.matches[0].score == 92
        explanation = MatchingExplanation.from_json(result.matches[0].explanation)
        assert "Senior Go engineer for payments" in explanation.message_for_candidate

    def test_second_run_within_cooldown_does_not_renotify(self, profiles, match_store):
        """Test that a rerun inside the candidate cooldown records but does not notify."""
        profiles.add_candidate(10)
        engine = make_engine(profiles, match_store)

        first = asyncio.run(engine.run_for_manager(1, run_id="run-1"))
        second = asyncio.run(engine.run_for_manager(1, run_id="run-2"))

        assert [m.candidate_user_id for m in first.matches] == [10]
        assert second.matches == []
        [rerun] = [r for r in match_store.list_all() if r.run_id == "run-2"]
        assert rerun.decision.notify_candidate is False
        assert rerun.decision.reason == COOLDOWN_REASON

    def test_filtered_candidates_are_not_recorded(self, profiles, match_store):
        """Test that incomplete, filtered and non-technical candidates leave no record."""
        profiles.add_job(
            1, fields=remote_job_fields(remote_worldwide=False, remote_countries=["Poland"])
        )
        profiles.add_candidate(10)
        profiles.add_candidate(12, strong_candidate(ownership_signals=OwnershipSignals()))
        profiles.add_candidate(13, fields=candidate_fields(country="Germany"))
        profiles.add_candidate(14, NonTechnicalResumeAnalysis())
        profiles.add_candidate(15, fields=candidate_fields(profile_complete=False))
        profiles.candidate_fields[16] = candidate_fields()
        engine = make_engine(profiles, match_store)

        result = asyncio.run(engine.run_for_manager(1))

        assert result.candidates_considered == 6
        assert [r.candidate_user_id for r in match_store.list_all()] == [10]

    def test_candidate_errors_skip_only_that_candidate(self, profiles, match_store):
        """Test that a data error skips one candidate and the run continues."""
        profiles.add_candidate(10)
        profiles.add_candidate(11)
        profiles.broken_candidates.add(11)
        engine = make_engine(profiles, match_store)

        result = asyncio.run(engine.run_for_manager(1))

        assert result.candidates_skipped == 1
        assert [m.candidate_user_id for m in result.matches] == [10]

    def test_top_k_by_score_then_id(self, profiles, match_store):
        """Test that ties on score are broken by candidate id."""
        for candidate_user_id in (14, 12, 13, 11):
            profiles.add_candidate(candidate_user_id)
        engine = make_engine(profiles, match_store, settings=MatchingSettings(top_k=2))

        result = asyncio.run(engine.run_for_manager(1))

        assert [m.candidate_user_id for m in result.matches] == [11, 12]
        assert result.records_created == 4

    def test_top_k_overflow_is_not_put_in_cooldown(self, profiles, match_store):
        """A candidate cut by top-K was never contacted and stays deliverable elsewhere."""
        profiles.add_job(2, summary=job_summary())
        for candidate_user_id in (11, 12, 13, 14):
            profiles.add_candidate(candidate_user_id)
        engine = make_engine(profiles, match_store, settings=MatchingSettings(top_k=3))

        first = asyncio.run(engine.run_for_manager(1, run_id="run-1"))
        second = asyncio.run(engine.run_for_manager(2, run_id="run-2"))

        assert [m.candidate_user_id for m in first.matches] == [11, 12, 13]
        [overflow] = [
            r for r in match_store.list_all() if r.run_id == "run-1" and r.candidate_user_id == 14
        ]
        assert overflow.decision.notify_candidate is False
        assert overflow.decision.reason == NOT_DELIVERED_REASON
        assert [m.candidate_user_id for m in second.matches] == [14]

    def test_explainer_failure_uses_fallback_text(self, profiles, match_store):
        """Test that a provider error from the explainer uses the fallback text."""
        profiles.add_candidate(10)
        explainer = AsyncMock(side_effect=ProviderError("OpenRouter /chat/completions 500"))
        engine = make_engine(profiles, match_store, explainer=explainer)

        result = asyncio.run(engine.run_for_manager(1))

        explanation = MatchingExplanation.from_json(result.matches[0].explanation)
        assert explanation.message_for_manager.startswith("Go engineer aligns")
        explainer.assert_awaited_once()

    def test_slow_explainer_uses_fallback_text(self, profiles, match_store, monkeypatch):
        """An explainer that times out still delivers the match with fallback text."""

        async def slow_explainer(score, job_summary, candidate_summary):
            await asyncio.sleep(1)

        monkeypatch.setattr(engine_module, "EXPLANATION_TIMEOUT_SECONDS", 0.01)
        profiles.add_candidate(10)
        engine = make_engine(profiles, match_store, explainer=slow_explainer)

        result = asyncio.run(engine.run_for_manager(1))

        explanation = MatchingExplanation.from_json(result.matches[0].explanation)
        assert explanation.message_for_manager.startswith("Go engineer aligns")

    def test_refiner_timeout_keeps_candidate(self, profiles, match_store):
        """A timed-out refinement falls back to the deterministic decision."""
        profiles.add_candidate(10)
        refiner = AsyncMock(side_effect=TimeoutError())
        engine = make_engine(profiles, match_store, refiner=refiner)

        result = asyncio.run(engine.run_for_manager(1))

        assert result.candidates_skipped == 0
        assert [m.candidate_user_id for m in result.matches] == [10]
        refiner.assert_awaited_once()

    def test_explainer_output_is_stored(self, profiles, match_store):
        """Test that a generated explanation is stored on the delivered record."""
        profiles.add_candidate(10)
        explanation = MatchingExplanation(
            message_for_candidate="Payments team needs your Go depth.",
            message_for_manager="Owned Go payment services in production.",
            one_suggested_live_question="How did you scale settlement?",
        )
        engine = make_engine(profiles, match_store, explainer=AsyncMock(return_value=explanation))

        result = asyncio.run(engine.run_for_manager(1))

        assert MatchingExplanation.from_json(result.matches[0].explanation) == explanation

    def test_empty_shortlist(self, profiles, match_store):
        """Test that an empty shortlist records nothing."""
        engine = make_engine(profiles, match_store)

        result = asyncio.run(engine.run_for_manager(1))

        assert result.matches == []
        assert result.records_created == 0


class TestAbortedRuns:
    """Runs that stop before shortlisting."""

    def test_missing_job(self, profiles, match_store):
        """Test that a manager without a job profile aborts."""
        result = asyncio.run(make_engine(profiles, match_store).run_for_manager(99))

        assert result.aborted_reason == "job profile not found"

    def test_incomplete_job_fields(self, profiles, match_store):
        """Test that incomplete job mandatory fields abort."""
        profiles.add_job(1, fields=remote_job_fields(profile_complete=False))

        result = asyncio.run(make_engine(profiles, match_store).run_for_manager(1))

        assert result.aborted_reason == "job mandatory fields incomplete"

    def test_inactive_job(self, profiles, match_store):
        """Test that an inactive job aborts without records."""
        profiles.add_job(1, status="paused")
        profiles.add_candidate(10)

        result = asyncio.run(make_engine(profiles, match_store).run_for_manager(1))

        assert result.aborted_reason == "job is not active"
        assert match_store.list_all() == []

    def test_empty_job_summary(self, profiles, match_store):
        """Test that a job with no summary text aborts."""
        profiles.add_job(1, job=JobProfile())

        result = asyncio.run(make_engine(profiles, match_store).run_for_manager(1))

        assert result.aborted_reason == "job summary is empty"


class TestRunForCandidate:
    """Tests for matching one candidate against every active job."""

    def test_collects_matches_across_active_jobs(self, profiles, match_store):
        """Test that matches from every active job are collected, best first."""
        profiles.add_job(2)
        profiles.add_job(3, status="closed")
        profiles.add_candidate(10)
        profiles.add_candidate(11)
        engine = make_engine(profiles, match_store)

        result = asyncio.run(engine.run_for_candidate(10, run_id="run-1"))

        assert [(m.manager_user_id, m.candidate_user_id) for m in result.matches] == [
            (1, 10),
            (2, 10),
        ]
        assert result.records_created == 4

    def test_other_candidates_are_not_put_in_cooldown(self, profiles, match_store):
        """Only the candidate the run is for counts as notified."""
        profiles.add_job(2)
        profiles.add_candidate(10)
        profiles.add_candidate(11)
        engine = make_engine(profiles, match_store)

        asyncio.run(engine.run_for_candidate(10, run_id="run-1"))
        followup = asyncio.run(engine.run_for_manager(1, run_id="run-2"))

        notified = {
            r.candidate_user_id
            for r in match_store.list_all()
            if r.run_id == "run-1" and r.decision.notify_candidate
        }
        assert notified == {10}
        assert [m.candidate_user_id for m in followup.matches] == [11]


class TestFormatManagerMessage:
    """Tests for the manager-facing match list."""

    def test_lists_visible_matches(self, profiles, match_store):
        """Test that visible matches are numbered with score and explanation."""
        profiles.add_candidate(10)
        result = asyncio.run(make_engine(profiles, match_store).run_for_manager(1))

        message = format_manager_message(result.matches)

        assert message.startswith("Top matching candidates:")
        assert "1) Candidate #10 | score 92" in message
        assert "Go engineer aligns on key requirements." in message

    def test_nothing_above_visibility_threshold(self, profiles, match_store):
        """Test the placeholder text when nothing clears the threshold."""
        profiles.add_candidate(10)
        result = asyncio.run(make_engine(profiles, match_store).run_for_manager(1))

        assert format_manager_message(result.matches, 95) == "No suitable candidates found yet."
