"""
Lifecycle Service

Concurrency-safe, audited submission lifecycle.

Every status write is a compare-and-set:
    UPDATE submissions SET status=:to WHERE id=:id AND status=:expected
Zero affected rows means another request changed the submission first,
and the caller gets InvalidTransitionError instead of a silent overwrite.
Each applied action leaves one SubmissionStatusLog row in the same
transaction.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conference_review.errors import (
    ConflictError, ErrorCode, ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
)
from conference_review.orm.assignment import ReviewAssignment
from conference_review.orm.review import Review, ReviewRecommendation
from conference_review.orm.submission import Submission, SubmissionStatus, SubmissionStatusLog
from conference_review.rbac import (
    Actor, is_admin, is_owner, is_reviewer, require_admin, require_owner
)
from conference_review.services.notification_service import DecisionNotifier, get_decision_notifier
from conference_review.services.review_service import compute_overall_score
from conference_review.state_machines.submission_state import (
    AUTHOR_EDITABLE_STATUSES, Decision, allowed_values, can_transition,
    decision_target, is_author_editable, normalize_decision, normalize_status
)

logger = logging.getLogger(__name__)

# Columns an author may set on create / update
EDITABLE_FIELDS = (
    "title",
    "abstract",
    "keywords",
    "corresponding_author",
    "co_authors",
    "pdf_url",
    "pdf_filename",
    "pdf_size",
)

REQUIRED_TEXT_FIELDS = ("title", "abstract", "corresponding_author")


class DeletionKind(str, Enum):
    AUTHOR_DELETE = "author_delete"
    HARD_DELETE = "hard_delete"


@dataclass(frozen=True)
class AggregateOutcome:
    """Derived committee view of a submission; never stored."""
    mean_score: Optional[float]
    accept_count: int
    reject_count: int
    completed_review_count: int
    total_assigned_count: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ================= VALIDATION =================

def normalize_keywords(value) -> List[str]:
    """Accept a list or a comma-separated string; return trimmed non-empty keywords."""
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(",")
    return [str(k).strip() for k in value if str(k).strip()]


def validate_for_submission(fields: Mapping[str, Any]) -> None:
    """
    Raise ValidationError unless the paper is complete enough to submit:
    title, abstract, keywords, corresponding author and a PDF reference.
    """
    missing = [name for name in REQUIRED_TEXT_FIELDS if not (fields.get(name) or "").strip()]
    if not normalize_keywords(fields.get("keywords")):
        missing.append("keywords")
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            code=ErrorCode.MISSING_FIELD,
            details={"missing": missing}
        )

    if not fields.get("pdf_url") or not fields.get("pdf_filename"):
        raise ValidationError(
            "A PDF file is required before submitting",
            code=ErrorCode.MISSING_PDF,
            details={"missing": ["pdf"]}
        )


def _fields_of(submission: Submission) -> Dict[str, Any]:
    return {name: getattr(submission, name) for name in EDITABLE_FIELDS}


# ================= READS =================

async def get_submission(db: AsyncSession, submission_id: int) -> Submission:
    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)
    return submission


async def get_submission_for_actor(db: AsyncSession, submission_id: int, actor: Actor) -> Submission:
    """Owner, admin, or a reviewer assigned to this submission."""
    submission = await get_submission(db, submission_id)
    if is_owner(actor, submission) or is_admin(actor):
        return submission

    if is_reviewer(actor):
        assigned = await db.scalar(
            select(ReviewAssignment.id).where(
                ReviewAssignment.submission_id == submission_id,
                ReviewAssignment.reviewer_id == actor.id
            )
        )
        if assigned is not None:
            return submission

    raise ForbiddenError("You cannot view this submission", code=ErrorCode.FORBIDDEN)


async def list_submissions(
    db: AsyncSession,
    event_id: Optional[int] = None,
    owner_id: Optional[int] = None,
    status: Optional[SubmissionStatus] = None,
    reviewer_id: Optional[int] = None
) -> List[Submission]:
    """
    Filter submissions. With both `owner_id` and `reviewer_id` a row matches
    when it is owned by the one or assigned to the other.
    """
    query = select(Submission)
    if event_id is not None:
        query = query.where(Submission.event_id == event_id)

    assigned = None
    if reviewer_id is not None:
        assigned = Submission.id.in_(
            select(ReviewAssignment.submission_id).where(ReviewAssignment.reviewer_id == reviewer_id)
        )
    if owner_id is not None and assigned is not None:
        query = query.where(or_(Submission.owner_id == owner_id, assigned))
    elif owner_id is not None:
        query = query.where(Submission.owner_id == owner_id)
    elif assigned is not None:
        query = query.where(assigned)

    if status is not None:
        target = normalize_status(status)
        if target is None:
            raise ValidationError(f"Unknown status: {status}")
        query = query.where(Submission.status == target)

    result = await db.execute(query.order_by(Submission.created_at.desc(), Submission.id.desc()))
    return list(result.scalars().all())


async def list_visible_submissions(
    db: AsyncSession,
    actor: Actor,
    event_id: Optional[int] = None,
    status: Optional[SubmissionStatus] = None
) -> List[Submission]:
    """Admins see everything, reviewers their own plus assigned papers, authors their own."""
    if is_admin(actor):
        return await list_submissions(db, event_id=event_id, status=status)
    reviewer_id = actor.id if is_reviewer(actor) else None
    return await list_submissions(
        db, event_id=event_id, owner_id=actor.id, status=status, reviewer_id=reviewer_id
    )


async def count_by_status(db: AsyncSession, event_id: int) -> Dict[str, int]:
    """Per-status submission counts for one event; every status is present."""
    result = await db.execute(
        select(Submission.status, func.count(Submission.id))
        .where(Submission.event_id == event_id)
        .group_by(Submission.status)
    )
    counts = {s.value: 0 for s in SubmissionStatus}
    for status, count in result.all():
        counts[normalize_status(status).value] = count
    return counts


async def get_status_history(db: AsyncSession, submission_id: int) -> List[SubmissionStatusLog]:
    result = await db.execute(
        select(SubmissionStatusLog)
        .where(SubmissionStatusLog.submission_id == submission_id)
        .order_by(SubmissionStatusLog.created_at.desc(), SubmissionStatusLog.id.desc())
    )
    return list(result.scalars().all())


# ================= TRANSITION CORE =================

async def _log_transition(
    db: AsyncSession,
    submission_id: int,
    action: str,
    from_status: Optional[SubmissionStatus],
    to_status: Optional[SubmissionStatus],
    actor_id: Optional[int],
    comments: Optional[str] = None
) -> None:
    db.add(SubmissionStatusLog(
        submission_id=submission_id,
        action=action,
        from_status=from_status.value if from_status else None,
        to_status=to_status.value if to_status else None,
        actor_id=actor_id,
        comments=comments,
        created_at=datetime.utcnow()
    ))


def _blocked(submission: Submission, target: SubmissionStatus, action: str) -> InvalidTransitionError:
    current = normalize_status(submission.status)
    logger.warning(
        f"[TRANSITION BLOCKED] submission={submission.id} action={action} "
        f"{current.value if current else None} -> {target.value}"
    )
    return InvalidTransitionError(
        f"Cannot {action.replace('_', ' ')}: submission is {current.value if current else 'unknown'}",
        from_status=current.value if current else None,
        to_status=target.value,
        allowed=allowed_values(current)
    )


async def _compare_and_set_status(
    db: AsyncSession,
    submission: Submission,
    expected: SubmissionStatus,
    target: SubmissionStatus,
    actor: Actor,
    action: str,
    comments: Optional[str] = None,
    **values
) -> Submission:
    """
    Move `submission` from `expected` to `target` atomically, audit it and
    commit. Raises InvalidTransitionError if the edge is not in the table
    or if the row no longer holds `expected`.
    """
    if not can_transition(expected, target):
        raise InvalidTransitionError(
            f"Transition {expected.value} -> {target.value} is not allowed",
            from_status=expected.value,
            to_status=target.value,
            allowed=allowed_values(expected)
        )

    submission_id = submission.id
    now = datetime.utcnow()
    result = await db.execute(
        update(Submission)
        .where(Submission.id == submission_id, Submission.status == expected)
        .values(status=target, updated_at=now, **values)
        .execution_options(synchronize_session=False)
    )

    if result.rowcount == 0:
        await db.rollback()
        current = await db.scalar(select(Submission.status).where(Submission.id == submission_id))
        if current is None:
            raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)
        current = normalize_status(current)
        logger.warning(
            f"[TRANSITION CONFLICT] submission={submission_id} expected={expected.value} "
            f"actual={current.value} target={target.value}"
        )
        raise InvalidTransitionError(
            f"Submission changed concurrently: expected {expected.value}, found {current.value}",
            from_status=current.value,
            to_status=target.value,
            allowed=allowed_values(current),
            code=ErrorCode.CONCURRENT_MODIFICATION
        )

    await _log_transition(db, submission_id, action, expected, target, actor.id, comments)
    await db.commit()
    await db.refresh(submission)

    logger.info(
        f"[TRANSITION SUCCESS] submission={submission_id} {expected.value} -> {target.value} "
        f"action={action} by={actor.id}"
    )
    return submission


async def _send_receipt(db: AsyncSession, submission: Submission, notifier: Optional[DecisionNotifier]) -> None:
    await (notifier or get_decision_notifier()).notify_submission_received(db, submission)


def _duplicate_submission(owner_id: int, event_id: int, existing_id: Optional[int] = None) -> ConflictError:
    details = {"owner_id": owner_id, "event_id": event_id}
    if existing_id is not None:
        details["submission_id"] = existing_id
    return ConflictError(
        "You already have a submission for this event",
        code=ErrorCode.DUPLICATE_SUBMISSION,
        details=details
    )


# ================= AUTHOR OPERATIONS =================

async def create_submission(
    db: AsyncSession,
    actor: Actor,
    data: Mapping[str, Any],
    submit: bool = False,
    notifier: Optional[DecisionNotifier] = None
) -> Submission:
    """Create a draft owned by `actor`, or submit it straight away."""
    if data.get("event_id") is None:
        raise ValidationError("event_id is required", code=ErrorCode.MISSING_FIELD, details={"missing": ["event_id"]})

    fields = {name: data.get(name) for name in EDITABLE_FIELDS}
    fields["keywords"] = normalize_keywords(fields["keywords"])
    for name in REQUIRED_TEXT_FIELDS:
        fields[name] = (fields[name] or "").strip()

    if submit:
        validate_for_submission(fields)

    event_id = int(data["event_id"])
    existing = await db.scalar(
        select(Submission.id).where(Submission.owner_id == actor.id, Submission.event_id == event_id)
    )
    if existing is not None:
        raise _duplicate_submission(actor.id, event_id, existing)

    now = datetime.utcnow()
    status = SubmissionStatus.SUBMITTED if submit else SubmissionStatus.DRAFT
    submission = Submission(
        event_id=event_id,
        owner_id=actor.id,
        status=status,
        submitted_at=now if submit else None,
        created_at=now,
        updated_at=now,
        **fields
    )
    db.add(submission)
    try:
        await db.flush()
    except IntegrityError:
        # Lost a race against the same author's other create
        await db.rollback()
        raise _duplicate_submission(actor.id, event_id)

    await _log_transition(db, submission.id, "create", None, status, actor.id)
    await db.commit()
    await db.refresh(submission)

    logger.info(f"[SUBMISSION CREATED] submission={submission.id} event={submission.event_id} status={status.value} by={actor.id}")

    if submit:
        await _send_receipt(db, submission, notifier)
    return submission


async def update_submission(
    db: AsyncSession,
    submission_id: int,
    actor: Actor,
    changes: Mapping[str, Any]
) -> Submission:
    """
    Author edit while draft or submitted. A submitted paper must still be
    submittable after the edit.
    """
    submission = await get_submission(db, submission_id)
    require_owner(actor, submission)

    current = normalize_status(submission.status)
    if not is_author_editable(current):
        logger.warning(f"[UPDATE BLOCKED] submission={submission_id} status={current.value}")
        raise InvalidTransitionError(
            f"Submission can no longer be edited (status: {current.value})",
            from_status=current.value
        )

    values = {name: changes[name] for name in EDITABLE_FIELDS if changes.get(name) is not None}
    if "keywords" in values:
        values["keywords"] = normalize_keywords(values["keywords"])
    if not values:
        return submission

    if current == SubmissionStatus.SUBMITTED:
        validate_for_submission({**_fields_of(submission), **values})

    result = await db.execute(
        update(Submission)
        .where(Submission.id == submission_id, Submission.status == current)
        .values(updated_at=datetime.utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError(
            "Submission changed concurrently; reload and retry",
            from_status=current.value,
            code=ErrorCode.CONCURRENT_MODIFICATION
        )

    await _log_transition(
        db, submission_id, "update", current, current, actor.id,
        comments=", ".join(sorted(values))
    )
    await db.commit()
    await db.refresh(submission)
    return submission


async def submit(
    db: AsyncSession,
    submission_id: int,
    actor: Actor,
    notifier: Optional[DecisionNotifier] = None
) -> Submission:
    """draft -> submitted (owner only)."""
    submission = await get_submission(db, submission_id)
    require_owner(actor, submission)

    if normalize_status(submission.status) != SubmissionStatus.DRAFT:
        raise _blocked(submission, SubmissionStatus.SUBMITTED, "submit")

    validate_for_submission(_fields_of(submission))

    submission = await _compare_and_set_status(
        db, submission, SubmissionStatus.DRAFT, SubmissionStatus.SUBMITTED,
        actor, "submit", submitted_at=datetime.utcnow()
    )
    await _send_receipt(db, submission, notifier)
    return submission


async def resubmit(
    db: AsyncSession,
    submission_id: int,
    actor: Actor,
    notifier: Optional[DecisionNotifier] = None
) -> Submission:
    """
    revision_requested -> submitted (owner only).

    Reviews and assignments from the previous round stay attached.
    """
    submission = await get_submission(db, submission_id)
    require_owner(actor, submission)

    if normalize_status(submission.status) != SubmissionStatus.REVISION_REQUESTED:
        raise _blocked(submission, SubmissionStatus.SUBMITTED, "resubmit")

    validate_for_submission(_fields_of(submission))

    submission = await _compare_and_set_status(
        db, submission, SubmissionStatus.REVISION_REQUESTED, SubmissionStatus.SUBMITTED,
        actor, "resubmit", submitted_at=datetime.utcnow()
    )
    await _send_receipt(db, submission, notifier)
    return submission


# ================= ADMIN OPERATIONS =================

async def admin_start_review(db: AsyncSession, submission_id: int, actor: Actor) -> Submission:
    """submitted -> under_review."""
    require_admin(actor, "start a review round")
    submission = await get_submission(db, submission_id)

    if normalize_status(submission.status) != SubmissionStatus.SUBMITTED:
        raise _blocked(submission, SubmissionStatus.UNDER_REVIEW, "start_review")

    return await _compare_and_set_status(
        db, submission, SubmissionStatus.SUBMITTED, SubmissionStatus.UNDER_REVIEW,
        actor, "start_review"
    )


async def admin_decide(
    db: AsyncSession,
    submission_id: int,
    actor: Actor,
    decision,
    comments: Optional[str] = None,
    notifier: Optional[DecisionNotifier] = None
) -> Submission:
    """
    under_review -> accepted | rejected | revision_requested.

    Accept and reject notify the owner after the status is committed.
    If that fails, NotificationFailedError is raised with the persisted
    submission attached; the decision stands.
    """
    require_admin(actor, "decide on a submission")

    parsed = normalize_decision(decision)
    if parsed is None:
        raise ValidationError(
            f"Unknown decision: {decision!r}",
            details={"allowed": [d.value for d in Decision]}
        )

    submission = await get_submission(db, submission_id)
    target = decision_target(parsed)

    if normalize_status(submission.status) != SubmissionStatus.UNDER_REVIEW:
        raise _blocked(submission, target, "decide")

    submission = await _compare_and_set_status(
        db, submission, SubmissionStatus.UNDER_REVIEW, target,
        actor, "decide", comments=comments
    )

    if parsed in (Decision.ACCEPT, Decision.REJECT):
        await (notifier or get_decision_notifier()).notify_decision(db, submission, parsed, comments)

    return submission


async def compute_aggregate(db: AsyncSession, submission_id: int) -> AggregateOutcome:
    """Mean overall score and accept/reject tally over completed reviews."""
    await get_submission(db, submission_id)

    result = await db.execute(
        select(Review).where(Review.submission_id == submission_id, Review.is_completed.is_(True))
    )
    completed = list(result.scalars().all())

    total_assigned = await db.scalar(
        select(func.count(ReviewAssignment.id)).where(ReviewAssignment.submission_id == submission_id)
    )

    overall_scores = [
        score for score in (compute_overall_score(r.scores()) for r in completed)
        if score is not None
    ]
    mean_score = sum(overall_scores) / len(overall_scores) if overall_scores else None

    return AggregateOutcome(
        mean_score=mean_score,
        accept_count=sum(1 for r in completed if r.recommendation == ReviewRecommendation.ACCEPT),
        reject_count=sum(1 for r in completed if r.recommendation == ReviewRecommendation.REJECT),
        completed_review_count=len(completed),
        total_assigned_count=total_assigned or 0,
    )


# ================= DELETION =================

async def _delete_children(db: AsyncSession, submission_id: int) -> None:
    await db.execute(delete(Review).where(Review.submission_id == submission_id))
    await db.execute(delete(ReviewAssignment).where(ReviewAssignment.submission_id == submission_id))


async def delete_submission(db: AsyncSession, submission_id: int, actor: Actor) -> DeletionKind:
    """
    Owner: only while draft or submitted.
    Admin: hard delete in any status, logged at WARNING and audited.
    Assignments and reviews are removed with the submission.
    """
    submission = await get_submission(db, submission_id)
    current = normalize_status(submission.status)
    owner = is_owner(actor, submission)

    if owner and is_author_editable(current):
        await _delete_children(db, submission_id)
        result = await db.execute(
            delete(Submission)
            .where(Submission.id == submission_id, Submission.status.in_(AUTHOR_EDITABLE_STATUSES))
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            await db.rollback()
            raise InvalidTransitionError(
                "Submission changed concurrently and can no longer be deleted",
                from_status=current.value,
                code=ErrorCode.CONCURRENT_MODIFICATION
            )
        await _log_transition(db, submission_id, "delete", current, None, actor.id)
        await db.commit()
        db.expunge(submission)
        logger.info(f"[SUBMISSION DELETED] submission={submission_id} by owner={actor.id}")
        return DeletionKind.AUTHOR_DELETE

    if is_admin(actor):
        await _delete_children(db, submission_id)
        await db.execute(
            delete(Submission)
            .where(Submission.id == submission_id)
            .execution_options(synchronize_session=False)
        )
        await _log_transition(db, submission_id, "hard_delete", current, None, actor.id)
        await db.commit()
        db.expunge(submission)
        logger.warning(
            f"[HARD DELETE] submission={submission_id} status={current.value} by admin={actor.id}"
        )
        return DeletionKind.HARD_DELETE

    if owner:
        logger.warning(f"[DELETE BLOCKED] submission={submission_id} status={current.value}")
        raise InvalidTransitionError(
            f"Submission can no longer be deleted (status: {current.value})",
            from_status=current.value
        )

    raise ForbiddenError("You cannot delete this submission", code=ErrorCode.OWNERSHIP_VIOLATION)
