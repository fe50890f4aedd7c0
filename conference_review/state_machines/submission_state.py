"""
Submission State Machine
Transition table and pure predicates for the submission lifecycle.

Nothing here touches the database; the lifecycle service consults these
rules before every compare-and-set status write.
"""
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Union

from conference_review.orm.submission import SubmissionStatus


class Decision(str, Enum):
    """Admin decision on a submission under review."""
    ACCEPT = "accept"
    REJECT = "reject"
    REVISE = "revise"


# Valid transitions: {current_status: {allowed_next_statuses}}
ALLOWED_TRANSITIONS: Dict[SubmissionStatus, FrozenSet[SubmissionStatus]] = {
    SubmissionStatus.DRAFT: frozenset({SubmissionStatus.SUBMITTED}),
    SubmissionStatus.SUBMITTED: frozenset({SubmissionStatus.UNDER_REVIEW}),
    SubmissionStatus.UNDER_REVIEW: frozenset({
        SubmissionStatus.ACCEPTED,
        SubmissionStatus.REJECTED,
        SubmissionStatus.REVISION_REQUESTED,
    }),
    SubmissionStatus.REVISION_REQUESTED: frozenset({SubmissionStatus.SUBMITTED}),
    SubmissionStatus.ACCEPTED: frozenset(),
    SubmissionStatus.REJECTED: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[SubmissionStatus] = frozenset({
    SubmissionStatus.ACCEPTED,
    SubmissionStatus.REJECTED,
})

# Statuses in which the author may still edit or delete
AUTHOR_EDITABLE_STATUSES: FrozenSet[SubmissionStatus] = frozenset({
    SubmissionStatus.DRAFT,
    SubmissionStatus.SUBMITTED,
})

# Statuses in which reviewers may be assigned
ASSIGNABLE_STATUSES: FrozenSet[SubmissionStatus] = frozenset({
    SubmissionStatus.SUBMITTED,
    SubmissionStatus.UNDER_REVIEW,
    SubmissionStatus.REVISION_REQUESTED,
})

DECISION_TARGETS: Dict[Decision, SubmissionStatus] = {
    Decision.ACCEPT: SubmissionStatus.ACCEPTED,
    Decision.REJECT: SubmissionStatus.REJECTED,
    Decision.REVISE: SubmissionStatus.REVISION_REQUESTED,
}

StatusLike = Union[SubmissionStatus, str]


def normalize_status(value: Optional[StatusLike]) -> Optional[SubmissionStatus]:
    """Coerce a raw value into a SubmissionStatus, or None if unknown."""
    if value is None:
        return None
    if isinstance(value, SubmissionStatus):
        return value
    try:
        return SubmissionStatus(str(value).strip().lower())
    except ValueError:
        return None


def normalize_decision(value: Union[Decision, str, None]) -> Optional[Decision]:
    if value is None:
        return None
    if isinstance(value, Decision):
        return value
    try:
        return Decision(str(value).strip().lower())
    except ValueError:
        return None


def allowed_next(current: StatusLike) -> FrozenSet[SubmissionStatus]:
    status = normalize_status(current)
    if status is None:
        return frozenset()
    return ALLOWED_TRANSITIONS.get(status, frozenset())


def can_transition(from_status: StatusLike, to_status: StatusLike) -> bool:
    """True only for the edges listed in ALLOWED_TRANSITIONS."""
    target = normalize_status(to_status)
    if target is None:
        return False
    return target in allowed_next(from_status)


def is_terminal(status: StatusLike) -> bool:
    return normalize_status(status) in TERMINAL_STATUSES


def is_author_editable(status: StatusLike) -> bool:
    return normalize_status(status) in AUTHOR_EDITABLE_STATUSES


def decision_target(decision: Decision) -> SubmissionStatus:
    return DECISION_TARGETS[decision]


def allowed_values(current: StatusLike) -> List[str]:
    """Sorted allowed next status values, for error details."""
    return sorted(s.value for s in allowed_next(current))
