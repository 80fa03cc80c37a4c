"""Cooldown and rejection facts derived from one snapshot of match history.

The orchestrator loads history once per run and builds a MatchHistory from it,
so every candidate in the run is decided against the same snapshot.
"""

from collections.abc import Iterable
from datetime import UTC, datetime, timedelta

from candidate_matching.matching.types import MatchRecord
from candidate_matching.models.enums import MatchStatusEnum

# Statuses at which the manager has been told about the candidate.
MANAGER_NOTIFIED_STATUSES = frozenset(
    {
        MatchStatusEnum.CANDIDATE_APPLIED,
        MatchStatusEnum.MANAGER_ACCEPTED,
        MatchStatusEnum.MANAGER_REJECTED,
        MatchStatusEnum.CONTACT_SHARED,
    }
)


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


class MatchHistory:
    """Read-only view over match records taken at the start of a run."""

    def __init__(self, records: Iterable[MatchRecord]):
        self._records = list(records)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> list[MatchRecord]:
        return list(self._records)

    def candidate_in_cooldown(self, candidate_user_id: int, now: datetime) -> bool:
        """True if the candidate was notified about any match within that match's cooldown."""
        for record in self._records:
            if record.candidate_user_id != candidate_user_id:
                continue
            if not record.decision.notify_candidate:
                continue
            window = timedelta(hours=record.decision.cooldown_hours_candidate)
            if now - as_utc(record.created_at) < window:
                return True
        return False

    def manager_in_cooldown(self, manager_user_id: int, now: datetime) -> bool:
        """True if the manager was shown an applicant within that match's manager cooldown."""
        for record in self._records:
            if record.manager_user_id != manager_user_id:
                continue
            if record.status not in MANAGER_NOTIFIED_STATUSES:
                continue
            window = timedelta(hours=record.decision.cooldown_hours_manager)
            if now - as_utc(record.updated_at) < window:
                return True
        return False

    def candidate_rejected_job(self, candidate_user_id: int, manager_user_id: int) -> bool:
        return self._pair_has_status(
            candidate_user_id, manager_user_id, MatchStatusEnum.CANDIDATE_REJECTED
        )

    def manager_skipped_candidate(self, manager_user_id: int, candidate_user_id: int) -> bool:
        return self._pair_has_status(
            candidate_user_id, manager_user_id, MatchStatusEnum.MANAGER_REJECTED
        )

    def _pair_has_status(
        self, candidate_user_id: int, manager_user_id: int, status: MatchStatusEnum
    ) -> bool:
        return any(
            r.candidate_user_id == candidate_user_id
            and r.manager_user_id == manager_user_id
            and r.status == status
            for r in self._records
        )

    def known_candidate_ids(self) -> list[int]:
        """Candidate ids seen in history, most recent first, without duplicates."""
        ordered = sorted(self._records, key=lambda r: as_utc(r.created_at), reverse=True)
        return list(dict.fromkeys(r.candidate_user_id for r in ordered))
