"""Candidate and job profile models.

Profiles are written by the intake pipelines; the matching pipeline only reads
them. Structured analysis payloads are stored as JSON documents and parsed into
the contracts in candidate_matching.matching.types on load.
"""

from datetime import datetime

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    Enum,
    Float,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from candidate_matching.models.base import Base
from candidate_matching.models.enums import (
    CandidateWorkModeEnum,
    CurrencyEnum,
    JobStatusEnum,
    JobWorkFormatEnum,
    PayPeriodEnum,
)

EMBEDDING_DIMENSIONS = 1536


class CandidateProfile(Base):
    """Candidate profile with resume analysis and mandatory fields.

    Keyed by the candidate's user id in the conversational product.
    """

    __tablename__ = "candidate_profiles"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)

    # ═══════════════════════════════════════════════════════════════════
    # ANALYSIS
    # ═══════════════════════════════════════════════════════════════════
    searchable_text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    resume_analysis: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    technical_summary: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    embedding: Mapped[list[float] | None] = mapped_column(
        Vector(EMBEDDING_DIMENSIONS), nullable=True
    )  # openai/text-embedding-3-small dimensions

    # ═══════════════════════════════════════════════════════════════════
    # MANDATORY FIELDS
    # ═══════════════════════════════════════════════════════════════════
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    work_mode: Mapped[CandidateWorkModeEnum | None] = mapped_column(
        Enum(CandidateWorkModeEnum, name="candidate_work_mode_enum"), nullable=True
    )
    salary_amount: Mapped[float | None] = mapped_column(Float, nullable=True)
    salary_currency: Mapped[CurrencyEnum | None] = mapped_column(
        Enum(CurrencyEnum, name="currency_enum"), nullable=True
    )
    salary_period: Mapped[PayPeriodEnum | None] = mapped_column(
        Enum(PayPeriodEnum, name="pay_period_enum"), nullable=True
    )
    profile_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class JobProfileRecord(Base):
    """A manager's job: normalized profile, technical summary, mandatory fields, status.

    One active job per manager; keyed by the manager's user id.
    """

    __tablename__ = "job_profiles"

    manager_user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    status: Mapped[JobStatusEnum] = mapped_column(
        Enum(JobStatusEnum, name="job_status_enum"), nullable=False, default=JobStatusEnum.DRAFT
    )

    job_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    job_profile: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    technical_summary: Mapped[dict | None] = mapped_column(JSONB, nullable=True)

    # ═══════════════════════════════════════════════════════════════════
    # MANDATORY FIELDS
    # ═══════════════════════════════════════════════════════════════════
    work_format: Mapped[JobWorkFormatEnum | None] = mapped_column(
        Enum(JobWorkFormatEnum, name="job_work_format_enum"), nullable=True
    )
    remote_countries: Mapped[list[str] | None] = mapped_column(ARRAY(Text), nullable=True)
    remote_worldwide: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    budget_min: Mapped[float | None] = mapped_column(Float, nullable=True)
    budget_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    budget_currency: Mapped[CurrencyEnum | None] = mapped_column(
        Enum(CurrencyEnum, name="currency_enum"), nullable=True
    )
    budget_period: Mapped[PayPeriodEnum | None] = mapped_column(
        Enum(PayPeriodEnum, name="pay_period_enum"), nullable=True
    )
    profile_complete: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
