"""Relational profile store: candidate and job profiles in PostgreSQL.

Profiles are written by the intake pipelines. This resource only reads them
and parses the stored JSON documents into the matching contracts.
"""

from typing import Any

import pydantic
from dagster import ConfigurableResource, get_dagster_logger
from sqlalchemy import select
from sqlalchemy.orm import Session

from candidate_matching.db import get_session
from candidate_matching.errors import DataError
from candidate_matching.matching.types import (
    CandidateMandatoryFields,
    CandidateMatchSource,
    CandidateTechnicalSummary,
    JobMandatoryFields,
    JobProfile,
    JobTechnicalSummary,
    SimilarCandidate,
    parse_resume_analysis,
)
from candidate_matching.models.enums import JobStatusEnum
from candidate_matching.models.profiles import CandidateProfile, JobProfileRecord


def _parse(model: type[pydantic.BaseModel], raw: dict[str, Any] | None, what: str):
    if not raw:
        return None
    try:
        return model.model_validate(raw)
    except pydantic.ValidationError as e:
        raise DataError(f"Stored {what} is malformed: {e}") from e


def _to_match_source(row: CandidateProfile) -> CandidateMatchSource:
    try:
        analysis = parse_resume_analysis(row.resume_analysis)
    except pydantic.ValidationError as e:
        raise DataError(f"Stored resume analysis for {row.user_id} is malformed: {e}") from e
    return CandidateMatchSource(
        candidate_user_id=row.user_id,
        searchable_text=row.searchable_text or "",
        resume_analysis=analysis,
        technical_summary=_parse(
            CandidateTechnicalSummary, row.technical_summary, "candidate technical summary"
        ),
    )


class ProfileStoreResource(ConfigurableResource):
    """Reads candidate and job profiles for the matching pipeline."""

    @staticmethod
    def _get_session() -> Session:
        return get_session()

    # ═══════════════════════════════════════════════════════════════════
    # CANDIDATES
    # ═══════════════════════════════════════════════════════════════════

    def list_candidate_ids(self, limit: int) -> list[int]:
        """Most recently updated candidate ids that have a resume analysis."""
        session = self._get_session()
        ids = session.scalars(
            select(CandidateProfile.user_id)
            .where(CandidateProfile.resume_analysis.is_not(None))
            .order_by(CandidateProfile.updated_at.desc())
            .limit(limit)
        ).all()
        session.close()
        return list(ids)

    def get_candidate_match_source(self, candidate_user_id: int) -> CandidateMatchSource | None:
        session = self._get_session()
        row = session.get(CandidateProfile, candidate_user_id)
        session.close()
        if row is None:
            return None
        return _to_match_source(row)

    def list_candidate_match_sources(self, limit: int) -> list[CandidateMatchSource]:
        """Match sources for up to `limit` candidates; malformed rows are skipped."""
        session = self._get_session()
        rows = session.scalars(
            select(CandidateProfile)
            .where(CandidateProfile.resume_analysis.is_not(None))
            .order_by(CandidateProfile.updated_at.desc())
            .limit(limit)
        ).all()
        session.close()

        sources = []
        for row in rows:
            try:
                sources.append(_to_match_source(row))
            except DataError as e:
                get_dagster_logger().warning(f"Skipping candidate {row.user_id}: {e}")
        return sources

    def search_by_embedding(self, vector: list[float], top_k: int) -> list[SimilarCandidate]:
        """Candidates nearest to `vector` by cosine similarity, best first."""
        session = self._get_session()
        distance = CandidateProfile.embedding.cosine_distance(vector)
        rows = session.execute(
            select(CandidateProfile.user_id, (1 - distance).label("similarity"))
            .where(CandidateProfile.embedding.is_not(None))
            .order_by(distance)
            .limit(top_k)
        ).all()
        session.close()
        return [
            SimilarCandidate(candidate_user_id=user_id, similarity=float(similarity))
            for user_id, similarity in rows
        ]

    def get_candidate_mandatory_fields(
        self, candidate_user_id: int
    ) -> CandidateMandatoryFields | None:
        session = self._get_session()
        row = session.get(CandidateProfile, candidate_user_id)
        session.close()
        if row is None:
            return None
        return CandidateMandatoryFields(
            country=row.country,
            city=row.city,
            work_mode=row.work_mode,
            salary_amount=row.salary_amount,
            salary_currency=row.salary_currency,
            salary_period=row.salary_period,
            profile_complete=row.profile_complete,
        )

    # ═══════════════════════════════════════════════════════════════════
    # JOBS
    # ═══════════════════════════════════════════════════════════════════

    def _get_job(self, manager_user_id: int) -> JobProfileRecord | None:
        session = self._get_session()
        row = session.get(JobProfileRecord, manager_user_id)
        session.close()
        return row

    def get_job_profile(self, manager_user_id: int) -> JobProfile | None:
        row = self._get_job(manager_user_id)
        if row is None:
            return None
        return _parse(JobProfile, row.job_profile, "job profile")

    def get_job_technical_summary(self, manager_user_id: int) -> JobTechnicalSummary | None:
        row = self._get_job(manager_user_id)
        if row is None:
            return None
        return _parse(JobTechnicalSummary, row.technical_summary, "job technical summary")

    def get_job_summary(self, manager_user_id: int) -> str:
        row = self._get_job(manager_user_id)
        return row.job_summary if row is not None else ""

    def get_job_mandatory_fields(self, manager_user_id: int) -> JobMandatoryFields | None:
        row = self._get_job(manager_user_id)
        if row is None:
            return None
        return JobMandatoryFields(
            work_format=row.work_format,
            remote_countries=list(row.remote_countries or []),
            remote_worldwide=row.remote_worldwide,
            budget_min=row.budget_min,
            budget_max=row.budget_max,
            budget_currency=row.budget_currency,
            budget_period=row.budget_period,
            profile_complete=row.profile_complete,
        )

    def get_manager_job_status(self, manager_user_id: int) -> str:
        """Return "active" or "inactive"."""
        row = self._get_job(manager_user_id)
        if row is not None and row.status == JobStatusEnum.ACTIVE:
            return "active"
        return "inactive"

    def list_active_manager_ids(self) -> list[int]:
        session = self._get_session()
        ids = session.scalars(
            select(JobProfileRecord.manager_user_id)
            .where(JobProfileRecord.status == JobStatusEnum.ACTIVE)
            .order_by(JobProfileRecord.updated_at.desc())
        ).all()
        session.close()
        return list(ids)
