"""Tests for candidate and manager decisions on match records."""

from unittest.mock import MagicMock

import pytest
from factories import candidate_match

from candidate_matching.errors import DecisionNotAllowedError
from candidate_matching.matching.decision import SUPPRESSED_REASON
from candidate_matching.matching.decisions import MatchDecisionService
from candidate_matching.models.enums import MatchStatusEnum

MANAGER = 1


@pytest.fixture
def profile_store():
    store = MagicMock()
    store.get_manager_job_status.return_value = "active"
    return store


@pytest.fixture
def service(match_store, profile_store) -> MatchDecisionService:
    return MatchDecisionService(match_store, profile_store)


@pytest.fixture
def records(match_store):
    return match_store.create_for_job(
        MANAGER, "job", [candidate_match(10), candidate_match(11)], run_id="run-1"
    )


class TestCandidateDecisions:
    """Tests for candidate apply and reject submissions."""

    def test_apply_notifies_manager(self, service, records):
        """Test that applying moves the match forward and notifies the manager."""
        updated, decision = service.candidate_apply(records[0].id, 10)

        assert updated.status == MatchStatusEnum.CANDIDATE_APPLIED
        assert updated.last_actor_id == 10
        assert decision.notify_manager is True
        assert decision.notify_candidate is False

    def test_second_applicant_hits_manager_cooldown(self, service, records):
        """Test that a second applicant within the manager cooldown is not announced."""
        service.candidate_apply(records[0].id, 10)

        _, decision = service.candidate_apply(records[1].id, 11)

        assert decision.notify_manager is False
        assert "cooldown" in decision.reason

    def test_apply_after_manager_skipped_candidate_is_suppressed(
        self, service, match_store, records
    ):
        """Test that applying to a manager who skipped the candidate notifies nobody."""
        service.candidate_apply(records[0].id, 10)
        service.manager_reject(records[0].id, MANAGER)
        [rerun] = match_store.create_for_job(MANAGER, "job", [candidate_match(10)], run_id="run-2")

        _, decision = service.candidate_apply(rerun.id, 10)

        assert decision.notify_manager is False
        assert decision.reason == SUPPRESSED_REASON

    def test_reject(self, service, records):
        """Test that a candidate rejection closes the match."""
        rejected = service.candidate_reject(records[0].id, 10)

        assert rejected.status == MatchStatusEnum.CANDIDATE_REJECTED

    def test_other_candidate_cannot_act(self, service, records):
        """Test that only the matched candidate may decide."""
        with pytest.raises(DecisionNotAllowedError, match="not available for you"):
            service.candidate_apply(records[0].id, 11)

    def test_cannot_decide_twice(self, service, records):
        """Test that a second candidate decision is refused."""
        service.candidate_apply(records[0].id, 10)

        with pytest.raises(DecisionNotAllowedError, match="already decided"):
            service.candidate_reject(records[0].id, 10)

    def test_closed_match(self, service, records):
        """Test that a closed match accepts no decisions."""
        service.candidate_reject(records[0].id, 10)

        with pytest.raises(DecisionNotAllowedError, match="already closed"):
            service.candidate_apply(records[0].id, 10)

    def test_unknown_match(self, service):
        """Test that an unknown match id is refused."""
        with pytest.raises(DecisionNotAllowedError, match="Match not found"):
            service.candidate_apply("missing", 10)

    def test_inactive_job_blocks_apply(self, service, profile_store, match_store, records):
        """Test that applying to an inactive job is refused."""
        profile_store.get_manager_job_status.return_value = "paused"

        with pytest.raises(DecisionNotAllowedError, match="no longer active"):
            service.candidate_apply(records[0].id, 10)
        assert match_store.get_by_id(records[0].id).status == MatchStatusEnum.PENDING


class TestManagerDecisions:
    """Tests for manager accept, reject and contact sharing."""

    def test_accept_then_share_contact(self, service, records):
        """Test the full accept then contact-shared flow."""
        service.candidate_apply(records[0].id, 10)

        accepted = service.manager_accept(records[0].id, MANAGER)
        shared = service.mark_contact_shared(records[0].id, MANAGER)

        assert accepted.status == MatchStatusEnum.MANAGER_ACCEPTED
        assert shared.status == MatchStatusEnum.CONTACT_SHARED

    def test_manager_cannot_act_before_candidate_applies(self, service, records):
        """Test that the manager cannot decide on a match nobody applied to."""
        with pytest.raises(DecisionNotAllowedError, match="has not applied"):
            service.manager_accept(records[0].id, MANAGER)

    def test_other_manager_cannot_act(self, service, records):
        """Test that only the job's manager may decide."""
        service.candidate_apply(records[0].id, 10)

        with pytest.raises(DecisionNotAllowedError, match="not available for you"):
            service.manager_reject(records[0].id, 99)

    def test_accept_requires_active_job(self, service, profile_store, records):
        """Test that accepting is refused once the job is inactive."""
        service.candidate_apply(records[0].id, 10)
        profile_store.get_manager_job_status.return_value = "closed"

        with pytest.raises(DecisionNotAllowedError, match="no longer active"):
            service.manager_accept(records[0].id, MANAGER)

    def test_reject_closes_match(self, service, records):
        """Test that a manager rejection closes the match."""
        service.candidate_apply(records[0].id, 10)
        service.manager_reject(records[0].id, MANAGER)

        with pytest.raises(DecisionNotAllowedError, match="already closed"):
            service.manager_accept(records[0].id, MANAGER)

    def test_contact_shared_requires_acceptance(self, service, records):
        """Test that contact can only be shared after acceptance."""
        service.candidate_apply(records[0].id, 10)

        with pytest.raises(DecisionNotAllowedError, match="has not accepted"):
            service.mark_contact_shared(records[0].id, MANAGER)
