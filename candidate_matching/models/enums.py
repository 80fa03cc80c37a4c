"""Database enums for the candidate matching schema."""

import enum


class JobStatusEnum(str, enum.Enum):
    """Manager job posting status. Anything other than ACTIVE counts as inactive."""

    DRAFT = "draft"
    ACTIVE = "active"
    PAUSED = "paused"
    CLOSED = "closed"


class CandidateWorkModeEnum(str, enum.Enum):
    """Work mode a candidate accepts."""

    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"
    FLEXIBLE = "flexible"


class JobWorkFormatEnum(str, enum.Enum):
    """Work format a job offers."""

    REMOTE = "remote"
    HYBRID = "hybrid"
    ONSITE = "onsite"


class CurrencyEnum(str, enum.Enum):
    """Salary and budget currencies."""

    USD = "USD"
    EUR = "EUR"
    ILS = "ILS"
    GBP = "GBP"
    OTHER = "other"


class PayPeriodEnum(str, enum.Enum):
    """Salary and budget period."""

    MONTH = "month"
    YEAR = "year"


class MatchStatusEnum(str, enum.Enum):
    """Lifecycle of a match record.

    PENDING -> CANDIDATE_APPLIED -> MANAGER_ACCEPTED -> CONTACT_SHARED
    PENDING -> CANDIDATE_REJECTED (terminal)
    CANDIDATE_APPLIED -> MANAGER_REJECTED (terminal)
    """

    PENDING = "pending"
    CANDIDATE_APPLIED = "candidate_applied"
    CANDIDATE_REJECTED = "candidate_rejected"
    MANAGER_ACCEPTED = "manager_accepted"
    MANAGER_REJECTED = "manager_rejected"
    CONTACT_SHARED = "contact_shared"

    @property
    def is_terminal(self) -> bool:
        return not MATCH_STATUS_TRANSITIONS[self]


MATCH_STATUS_TRANSITIONS: dict[MatchStatusEnum, frozenset[MatchStatusEnum]] = {
    MatchStatusEnum.PENDING: frozenset(
        {MatchStatusEnum.CANDIDATE_APPLIED, MatchStatusEnum.CANDIDATE_REJECTED}
    ),
    MatchStatusEnum.CANDIDATE_APPLIED: frozenset(
        {MatchStatusEnum.MANAGER_ACCEPTED, MatchStatusEnum.MANAGER_REJECTED}
    ),
    MatchStatusEnum.MANAGER_ACCEPTED: frozenset({MatchStatusEnum.CONTACT_SHARED}),
    MatchStatusEnum.CANDIDATE_REJECTED: frozenset(),
    MatchStatusEnum.MANAGER_REJECTED: frozenset(),
    MatchStatusEnum.CONTACT_SHARED: frozenset(),
}


def can_transition(current: MatchStatusEnum, target: MatchStatusEnum) -> bool:
    """Return True if a record in `current` may move to `target`."""
    return target in MATCH_STATUS_TRANSITIONS[current]


class DecisionPriorityEnum(str, enum.Enum):
    """Notification priority."""

    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class MessageLengthEnum(str, enum.Enum):
    """Length of the notification message."""

    SHORT = "short"
    STANDARD = "standard"
