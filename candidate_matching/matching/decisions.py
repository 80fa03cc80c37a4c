"""Recording candidate and manager decisions on match records.

Every write is a compare-and-swap status update in the match store, so two
concurrent decisions on the same record cannot both succeed.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from candidate_matching.errors import DecisionNotAllowedError
from candidate_matching.matching.decision import decide_on_candidate_applied
from candidate_matching.matching.history import MatchHistory
from candidate_matching.matching.types import MatchingDecision, MatchRecord
from candidate_matching.models.enums import MatchStatusEnum
from candidate_matching.resources.match_store import MatchStoreResource
from candidate_matching.resources.profile_store import ProfileStoreResource

logger = logging.getLogger(__name__)


class MatchDecisionService:
    def __init__(
        self,
        match_store: MatchStoreResource,
        profile_store: ProfileStoreResource,
        clock: Callable[[], datetime] | None = None,
    ):
        self.match_store = match_store
        self.profile_store = profile_store
        self.clock = clock or (lambda: datetime.now(UTC))

    def _require_match(self, match_id: str) -> MatchRecord:
        record = self.match_store.get_by_id(match_id)
        if record is None:
            raise DecisionNotAllowedError("Match not found.")
        if record.status.is_terminal:
            raise DecisionNotAllowedError("This match is already closed.")
        return record

    def _require_for_candidate(self, match_id: str, candidate_user_id: int) -> MatchRecord:
        record = self._require_match(match_id)
        if record.candidate_user_id != candidate_user_id:
            raise DecisionNotAllowedError("This action is not available for you.")
        if record.status != MatchStatusEnum.PENDING:
            raise DecisionNotAllowedError("You have already decided on this match.")
        return record

    def _require_for_manager(self, match_id: str, manager_user_id: int) -> MatchRecord:
        record = self._require_match(match_id)
        if record.manager_user_id != manager_user_id:
            raise DecisionNotAllowedError("This action is not available for you.")
        if record.status != MatchStatusEnum.CANDIDATE_APPLIED:
            raise DecisionNotAllowedError("Candidate has not applied for this match.")
        return record

    def _job_active(self, manager_user_id: int) -> bool:
        return self.profile_store.get_manager_job_status(manager_user_id) == "active"

    def _ensure_job_active(self, record: MatchRecord) -> None:
        if not self._job_active(record.manager_user_id):
            raise DecisionNotAllowedError("This job is no longer active.")

    def candidate_apply(
        self, match_id: str, candidate_user_id: int
    ) -> tuple[MatchRecord, MatchingDecision]:
        """Candidate applies; returns the updated record and the manager-side decision."""
        record = self._require_for_candidate(match_id, candidate_user_id)
        self._ensure_job_active(record)

        history = MatchHistory(r for r in self.match_store.list_all() if r.id != record.id)
        updated = self.match_store.update_status(
            match_id,
            MatchStatusEnum.CANDIDATE_APPLIED,
            candidate_user_id,
            expected_status=MatchStatusEnum.PENDING,
        )
        decision = decide_on_candidate_applied(
            match_score=updated.score,
            job_active=True,
            manager_skipped_same_candidate=history.manager_skipped_candidate(
                updated.manager_user_id, updated.candidate_user_id
            ),
            manager_cooldown_active=history.manager_in_cooldown(
                updated.manager_user_id, self.clock()
            ),
        )
        logger.info(
            "Candidate %s applied to match %s; notify manager=%s",
            candidate_user_id,
            match_id,
            decision.notify_manager,
        )
        return updated, decision

    def candidate_reject(self, match_id: str, candidate_user_id: int) -> MatchRecord:
        self._require_for_candidate(match_id, candidate_user_id)
        return self.match_store.update_status(
            match_id,
            MatchStatusEnum.CANDIDATE_REJECTED,
            candidate_user_id,
            expected_status=MatchStatusEnum.PENDING,
        )

    def manager_accept(self, match_id: str, manager_user_id: int) -> MatchRecord:
        record = self._require_for_manager(match_id, manager_user_id)
        self._ensure_job_active(record)
        return self.match_store.update_status(
            match_id,
            MatchStatusEnum.MANAGER_ACCEPTED,
            manager_user_id,
            expected_status=MatchStatusEnum.CANDIDATE_APPLIED,
        )

    def manager_reject(self, match_id: str, manager_user_id: int) -> MatchRecord:
        self._require_for_manager(match_id, manager_user_id)
        return self.match_store.update_status(
            match_id,
            MatchStatusEnum.MANAGER_REJECTED,
            manager_user_id,
            expected_status=MatchStatusEnum.CANDIDATE_APPLIED,
        )

    def mark_contact_shared(self, match_id: str, actor_id: int) -> MatchRecord:
        """Record that contact details were exchanged after the manager accepted."""
        record = self._require_match(match_id)
        if record.status != MatchStatusEnum.MANAGER_ACCEPTED:
            raise DecisionNotAllowedError("Manager has not accepted this match.")
        return self.match_store.update_status(
            match_id,
            MatchStatusEnum.CONTACT_SHARED,
            actor_id,
            expected_status=MatchStatusEnum.MANAGER_ACCEPTED,
        )
