"""Match record store: append-once rows plus compare-and-swap status updates.

Score, breakdown, reasons and decision are written once when a record is
created. Afterwards only the status moves, forward along
MATCH_STATUS_TRANSITIONS, and only through update_status().
"""

from datetime import UTC, datetime
from uuid import UUID

from dagster import ConfigurableResource, get_dagster_logger
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from candidate_matching.db import get_session
from candidate_matching.errors import DecisionNotAllowedError, StatusConflictError
from candidate_matching.matching.types import CandidateMatch, MatchingDecision, MatchRecord
from candidate_matching.models.enums import MatchStatusEnum, can_transition
from candidate_matching.models.matches import Match


def to_record(row: Match) -> MatchRecord:
    return MatchRecord(
        id=str(row.id),
        run_id=row.run_id,
        manager_user_id=row.manager_user_id,
        candidate_user_id=row.candidate_user_id,
        job_id=row.job_id,
        candidate_id=row.candidate_id,
        job_summary=row.job_summary,
        candidate_summary=row.candidate_summary,
        score=row.score,
        breakdown=dict(row.breakdown),
        reasons={k: list(v) for k, v in row.reasons.items()},
        decision=MatchingDecision.from_dict(row.decision),
        explanation=row.explanation,
        status=row.status,
        created_at=row.created_at,
        updated_at=row.updated_at,
        last_actor_id=row.last_actor_id,
    )


class MatchStoreResource(ConfigurableResource):
    """Persists match records and serializes status changes per record."""

    @staticmethod
    def _get_session() -> Session:
        return get_session()

    def create_for_job(
        self,
        manager_user_id: int,
        job_summary: str,
        candidate_matches: list[CandidateMatch],
        run_id: str,
        job_id: str | None = None,
    ) -> list[MatchRecord]:
        """Insert one record per candidate for this run.

        Candidates already recorded for (run_id, manager) are not inserted again;
        their existing records are returned instead.
        """
        now = datetime.now(UTC)
        session = self._get_session()

        existing = {
            row.candidate_user_id: row
            for row in session.scalars(
                select(Match).where(
                    Match.run_id == run_id, Match.manager_user_id == manager_user_id
                )
            ).all()
        }

        rows: list[Match] = []
        for candidate_match in candidate_matches:
            candidate_user_id = candidate_match.candidate_user_id
            if candidate_user_id in existing:
                rows.append(existing[candidate_user_id])
                continue
            score = candidate_match.score
            row = Match(
                run_id=run_id,
                manager_user_id=manager_user_id,
                candidate_user_id=candidate_user_id,
                job_id=job_id,
                candidate_id=str(candidate_user_id),
                job_summary=job_summary,
                candidate_summary=candidate_match.candidate_summary,
                score=score.total_score,
                breakdown=score.breakdown.to_dict(),
                reasons=score.reasons.to_dict(),
                decision=candidate_match.decision.to_dict(),
                explanation=candidate_match.explanation or None,
                status=MatchStatusEnum.PENDING,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            existing[candidate_user_id] = row
            rows.append(row)

        session.commit()
        records = [to_record(row) for row in rows]
        session.close()

        get_dagster_logger().info(
            f"Recorded {len(records)} matches for manager {manager_user_id} (run {run_id})"
        )
        return records

    def list_all(self) -> list[MatchRecord]:
        session = self._get_session()
        rows = session.scalars(select(Match).order_by(Match.created_at)).all()
        records = [to_record(row) for row in rows]
        session.close()
        return records

    def get_by_id(self, match_id: str) -> MatchRecord | None:
        try:
            key = UUID(match_id)
        except ValueError:
            return None
        session = self._get_session()
        row = session.get(Match, key)
        record = to_record(row) if row is not None else None
        session.close()
        return record

    def update_status(
        self,
        match_id: str,
        status: MatchStatusEnum,
        actor_id: int,
        expected_status: MatchStatusEnum | None = None,
    ) -> MatchRecord:
        """Move a record to `status` if it is still in the status it was read in.

        Raises:
            DecisionNotAllowedError: unknown record, or the transition is not allowed.
            StatusConflictError: another writer changed the status first.
        """
        current = self.get_by_id(match_id)
        if current is None:
            raise DecisionNotAllowedError(f"Match {match_id} not found")

        expected = expected_status or current.status
        if not can_transition(expected, status):
            raise DecisionNotAllowedError(
                f"Match {match_id} cannot move from {expected.value} to {status.value}"
            )

        session = self._get_session()
        result = session.execute(
            update(Match)
            .where(Match.id == UUID(match_id), Match.status == expected)
            .values(status=status, last_actor_id=actor_id, updated_at=datetime.now(UTC))
        )
        updated_rows = result.rowcount
        session.commit()
        session.close()

        if updated_rows == 0:
            raise StatusConflictError(
                f"Match {match_id} is no longer {expected.value}; refusing {status.value}"
            )

        updated = self.get_by_id(match_id)
        get_dagster_logger().info(
            f"Match {match_id}: {expected.value} -> {status.value} by {actor_id}"
        )
        return updated
