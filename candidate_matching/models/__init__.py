"""SQLAlchemy models for the candidate matching database."""

from candidate_matching.models.base import Base
from candidate_matching.models.enums import (
    CandidateWorkModeEnum,
    CurrencyEnum,
    DecisionPriorityEnum,
    JobStatusEnum,
    JobWorkFormatEnum,
    MatchStatusEnum,
    MessageLengthEnum,
    PayPeriodEnum,
)
from candidate_matching.models.profiles import CandidateProfile, JobProfileRecord
from candidate_matching.models.matches import Match

__all__ = [
    # Base
    "Base",
    # Enums
    "CandidateWorkModeEnum",
    "CurrencyEnum",
    "DecisionPriorityEnum",
    "JobStatusEnum",
    "JobWorkFormatEnum",
    "MatchStatusEnum",
    "MessageLengthEnum",
    "PayPeriodEnum",
    # Profiles
    "CandidateProfile",
    "JobProfileRecord",
    # Matches
    "Match",
]
