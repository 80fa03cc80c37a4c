"""Create candidate_profiles, job_profiles and matches.

Revision ID: 20261019_matching_tables
Revises:
Create Date: 2026-10-19

Profiles are read by the matching pipeline; matches hold one row per
(run, manager, candidate) with the frozen score, reasons and decision.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from pgvector.sqlalchemy import Vector
from sqlalchemy.dialects import postgresql

revision: str = "20261019_matching_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

ENUMS = {
    "job_status_enum": ("DRAFT", "ACTIVE", "PAUSED", "CLOSED"),
    "candidate_work_mode_enum": ("REMOTE", "HYBRID", "ONSITE", "FLEXIBLE"),
    "job_work_format_enum": ("REMOTE", "HYBRID", "ONSITE"),
    "currency_enum": ("USD", "EUR", "ILS", "GBP", "OTHER"),
    "pay_period_enum": ("MONTH", "YEAR"),
    "match_status_enum": (
        "PENDING",
        "CANDIDATE_APPLIED",
        "CANDIDATE_REJECTED",
        "MANAGER_ACCEPTED",
        "MANAGER_REJECTED",
        "CONTACT_SHARED",
    ),
}


def _enum(name: str) -> postgresql.ENUM:
    return postgresql.ENUM(*ENUMS[name], name=name, create_type=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS vector")
    bind = op.get_bind()
    for name, values in ENUMS.items():
        sa.Enum(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "candidate_profiles",
        sa.Column("user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("searchable_text", sa.Text(), nullable=False, server_default=""),
        sa.Column("resume_analysis", postgresql.JSONB(), nullable=True),
        sa.Column("technical_summary", postgresql.JSONB(), nullable=True),
        sa.Column("embedding", Vector(1536), nullable=True),
        sa.Column("country", sa.String(100), nullable=True),
        sa.Column("city", sa.String(100), nullable=True),
        sa.Column("work_mode", _enum("candidate_work_mode_enum"), nullable=True),
        sa.Column("salary_amount", sa.Float(), nullable=True),
        sa.Column("salary_currency", _enum("currency_enum"), nullable=True),
        sa.Column("salary_period", _enum("pay_period_enum"), nullable=True),
        sa.Column("profile_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "job_profiles",
        sa.Column("manager_user_id", sa.BigInteger(), primary_key=True, autoincrement=False),
        sa.Column("status", _enum("job_status_enum"), nullable=False, server_default="DRAFT"),
        sa.Column("job_summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("job_profile", postgresql.JSONB(), nullable=True),
        sa.Column("technical_summary", postgresql.JSONB(), nullable=True),
        sa.Column("work_format", _enum("job_work_format_enum"), nullable=True),
        sa.Column("remote_countries", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("remote_worldwide", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("budget_min", sa.Float(), nullable=True),
        sa.Column("budget_max", sa.Float(), nullable=True),
        sa.Column("budget_currency", _enum("currency_enum"), nullable=True),
        sa.Column("budget_period", _enum("pay_period_enum"), nullable=True),
        sa.Column("profile_complete", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("idx_job_profiles_status", "job_profiles", ["status"])

    op.create_table(
        "matches",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("run_id", sa.String(64), nullable=False),
        sa.Column("manager_user_id", sa.BigInteger(), nullable=False),
        sa.Column("candidate_user_id", sa.BigInteger(), nullable=False),
        sa.Column("job_id", sa.String(64), nullable=True),
        sa.Column("candidate_id", sa.String(64), nullable=True),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("breakdown", postgresql.JSONB(), nullable=False),
        sa.Column("reasons", postgresql.JSONB(), nullable=False),
        sa.Column("decision", postgresql.JSONB(), nullable=False),
        sa.Column("job_summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("candidate_summary", sa.Text(), nullable=False, server_default=""),
        sa.Column("explanation", sa.Text(), nullable=True),
        sa.Column("status", _enum("match_status_enum"), nullable=False, server_default="PENDING"),
        sa.Column("last_actor_id", sa.BigInteger(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("score >= 0 AND score <= 100", name="ck_match_score_range"),
        sa.UniqueConstraint(
            "run_id", "manager_user_id", "candidate_user_id", name="uq_matches_run_pair"
        ),
    )
    op.create_index(
        "ix_matches_manager_candidate", "matches", ["manager_user_id", "candidate_user_id"]
    )


def downgrade() -> None:
    op.drop_index("ix_matches_manager_candidate", table_name="matches")
    op.drop_table("matches")
    op.drop_index("idx_job_profiles_status", table_name="job_profiles")
    op.drop_table("job_profiles")
    op.drop_table("candidate_profiles")

    bind = op.get_bind()
    for name in reversed(list(ENUMS)):
        sa.Enum(name=name).drop(bind, checkfirst=True)
