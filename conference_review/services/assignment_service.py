"""
Assignment Service

Reviewer assignment registry.

An assignment's status is never set by callers: it mirrors the pair's
Review through mirror_review_state(), which the review service calls
inside the same transaction as every review write.
"""
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conference_review.errors import (
    ConflictError, ErrorCode, InvalidTransitionError, NotFoundError, ValidationError
)
from conference_review.orm.assignment import AssignmentStatus, ReviewAssignment
from conference_review.orm.review import Review
from conference_review.orm.submission import Submission
from conference_review.orm.user import User
from conference_review.rbac import Actor, Role, require_admin
from conference_review.services.notification_service import DecisionNotifier, get_decision_notifier
from conference_review.state_machines.submission_state import ASSIGNABLE_STATUSES, normalize_status

logger = logging.getLogger(__name__)


def derive_assignment_status(review: Optional[Review]) -> AssignmentStatus:
    if review is None:
        return AssignmentStatus.PENDING
    if review.is_completed:
        return AssignmentStatus.COMPLETED
    return AssignmentStatus.IN_PROGRESS


async def mirror_review_state(
    db: AsyncSession,
    assignment: ReviewAssignment,
    review: Optional[Review]
) -> AssignmentStatus:
    """Sync assignment.status with the review; the caller commits."""
    status = derive_assignment_status(review)
    if assignment.status != status:
        logger.debug(
            f"[ASSIGNMENT MIRROR] assignment={assignment.id} {assignment.status} -> {status.value}"
        )
        assignment.status = status
    await db.flush()
    return status


async def find_assignment(
    db: AsyncSession,
    submission_id: int,
    reviewer_id: int
) -> Optional[ReviewAssignment]:
    result = await db.execute(
        select(ReviewAssignment).where(
            ReviewAssignment.submission_id == submission_id,
            ReviewAssignment.reviewer_id == reviewer_id
        )
    )
    return result.scalar_one_or_none()


async def get_assignment(db: AsyncSession, assignment_id: int) -> ReviewAssignment:
    assignment = await db.get(ReviewAssignment, assignment_id)
    if assignment is None:
        raise NotFoundError("Assignment", assignment_id, code=ErrorCode.ASSIGNMENT_NOT_FOUND)
    return assignment


async def list_assignments_for_submission(db: AsyncSession, submission_id: int) -> List[ReviewAssignment]:
    result = await db.execute(
        select(ReviewAssignment)
        .where(ReviewAssignment.submission_id == submission_id)
        .order_by(ReviewAssignment.assigned_at, ReviewAssignment.id)
    )
    return list(result.scalars().all())


async def list_assignments_for_reviewer(db: AsyncSession, reviewer_id: int) -> List[ReviewAssignment]:
    """Reviewer dashboard: soonest due first, undated last."""
    result = await db.execute(
        select(ReviewAssignment)
        .where(ReviewAssignment.reviewer_id == reviewer_id)
        .order_by(
            ReviewAssignment.due_date.is_(None),
            ReviewAssignment.due_date,
            ReviewAssignment.assigned_at,
            ReviewAssignment.id
        )
    )
    return list(result.scalars().all())


async def assign_reviewer(
    db: AsyncSession,
    submission_id: int,
    reviewer_id: int,
    actor: Actor,
    due_date: Optional[datetime] = None,
    notifier: Optional[DecisionNotifier] = None
) -> ReviewAssignment:
    """
    Create a pending assignment.

    Raises:
        ForbiddenError: actor is not an admin
        NotFoundError: submission does not exist
        ValidationError: reviewer unknown or lacks the reviewer role
        InvalidTransitionError: submission is draft or already decided
        ConflictError: pair already assigned
    """
    require_admin(actor, "assign reviewers")

    submission = await db.get(Submission, submission_id)
    if submission is None:
        raise NotFoundError("Submission", submission_id, code=ErrorCode.SUBMISSION_NOT_FOUND)

    reviewer = await db.get(User, reviewer_id)
    if reviewer is None or not reviewer.has_role(Role.REVIEWER):
        raise ValidationError(
            f"User {reviewer_id} is not a reviewer",
            code=ErrorCode.ROLE_REQUIRED,
            details={"reviewer_id": reviewer_id, "required_role": Role.REVIEWER.value}
        )

    current = normalize_status(submission.status)
    if current not in ASSIGNABLE_STATUSES:
        logger.warning(f"[ASSIGN BLOCKED] submission={submission_id} status={current.value}")
        raise InvalidTransitionError(
            f"Reviewers cannot be assigned while the submission is {current.value}",
            from_status=current.value,
            allowed=sorted(s.value for s in ASSIGNABLE_STATUSES)
        )

    if await find_assignment(db, submission_id, reviewer_id) is not None:
        raise ConflictError(
            "Reviewer is already assigned to this submission",
            details={"submission_id": submission_id, "reviewer_id": reviewer_id}
        )

    assignment = ReviewAssignment(
        submission_id=submission_id,
        reviewer_id=reviewer_id,
        assigned_by=actor.id,
        assigned_at=datetime.utcnow(),
        due_date=due_date,
        status=AssignmentStatus.PENDING
    )
    db.add(assignment)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race against the same assignment
        await db.rollback()
        raise ConflictError(
            "Reviewer is already assigned to this submission",
            details={"submission_id": submission_id, "reviewer_id": reviewer_id}
        )

    await db.refresh(assignment)
    logger.info(
        f"[REVIEWER ASSIGNED] submission={submission_id} reviewer={reviewer_id} "
        f"assignment={assignment.id} by={actor.id}"
    )

    await (notifier or get_decision_notifier()).notify_reviewer_assignment(db, assignment, submission)
    return assignment


async def remove_assignment(db: AsyncSession, assignment_id: int, actor: Actor) -> None:
    """
    Unassign a reviewer along with their draft review.
    Completed assignments stay; delete the review first.
    """
    require_admin(actor, "remove assignments")
    assignment = await get_assignment(db, assignment_id)

    submission_id = assignment.submission_id
    reviewer_id = assignment.reviewer_id

    if assignment.status == AssignmentStatus.COMPLETED:
        raise InvalidTransitionError(
            "Completed assignments cannot be removed; delete the review first",
            from_status=AssignmentStatus.COMPLETED.value
        )

    await db.execute(
        delete(Review).where(
            Review.submission_id == submission_id,
            Review.reviewer_id == reviewer_id,
            Review.is_completed.is_(False)
        )
    )
    result = await db.execute(
        delete(ReviewAssignment)
        .where(
            ReviewAssignment.id == assignment_id,
            ReviewAssignment.status != AssignmentStatus.COMPLETED
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        await db.rollback()
        raise InvalidTransitionError(
            "Review was completed concurrently; assignment kept",
            from_status=AssignmentStatus.COMPLETED.value,
            code=ErrorCode.CONCURRENT_MODIFICATION
        )

    await db.commit()
    db.expunge(assignment)
    logger.info(
        f"[ASSIGNMENT REMOVED] assignment={assignment_id} submission={submission_id} "
        f"reviewer={reviewer_id} by={actor.id}"
    )
