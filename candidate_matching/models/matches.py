"""Match record model."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from candidate_matching.models.base import Base
from candidate_matching.models.enums import MatchStatusEnum

JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Match(Base):
    """One (manager, candidate) pairing produced by one matching run.

    Score, breakdown, reasons and decision are written once at creation.
    Only `status`, `updated_at` and `last_actor_id` change afterwards.
    """

    __tablename__ = "matches"
    __table_args__ = (
        CheckConstraint("score >= 0 AND score <= 100", name="ck_match_score_range"),
        Index("ix_matches_manager_candidate", "manager_user_id", "candidate_user_id"),
        UniqueConstraint(
            "run_id", "manager_user_id", "candidate_user_id", name="uq_matches_run_pair"
        ),
    )

    id: Mapped[UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    run_id: Mapped[str] = mapped_column(String(64), nullable=False)

    manager_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    candidate_user_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    job_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    candidate_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # ═══════════════════════════════════════════════════════════════════
    # MATCH SCORING
    # ═══════════════════════════════════════════════════════════════════
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    breakdown: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    reasons: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    decision: Mapped[dict] = mapped_column(JSONDocument, nullable=False)

    # ═══════════════════════════════════════════════════════════════════
    # SUMMARIES
    # ═══════════════════════════════════════════════════════════════════
    job_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    candidate_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    explanation: Mapped[str | None] = mapped_column(Text, nullable=True)

    # ═══════════════════════════════════════════════════════════════════
    # STATUS & WORKFLOW
    # ═══════════════════════════════════════════════════════════════════
    status: Mapped[MatchStatusEnum] = mapped_column(
        Enum(MatchStatusEnum, name="match_status_enum"),
        nullable=False,
        default=MatchStatusEnum.PENDING,
    )
    last_actor_id: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
