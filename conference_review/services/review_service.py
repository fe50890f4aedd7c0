"""
Review Service

Per-reviewer evaluation records.

- Only an assigned reviewer may write a review for a submission
- Supplied fields overwrite, omitted (None) fields keep the stored value
- Once is_completed is set the review is read-only (LockedError)
- The assignment mirror is written in the same transaction as the review
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conference_review.errors import (
    ErrorCode, ForbiddenError, LockedError, NotFoundError, ValidationError
)
from conference_review.orm.assignment import ReviewAssignment
from conference_review.orm.review import (
    MAX_SCORE, MIN_SCORE, SCORE_FIELDS, TEXT_FIELDS, Review, ReviewRecommendation
)
from conference_review.rbac import Actor, require_admin
from conference_review.services.assignment_service import find_assignment, mirror_review_state

logger = logging.getLogger(__name__)


def compute_overall_score(scores: Union[Mapping[str, Optional[int]], Iterable[Optional[int]]]) -> Optional[float]:
    """Arithmetic mean of the scores that are set; None if none are."""
    values = scores.values() if isinstance(scores, Mapping) else scores
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _validate_score(field: str, value: Any) -> int:
    # bool is an int subclass; True must not pass as a score of 1
    if isinstance(value, bool) or not isinstance(value, int) or not MIN_SCORE <= value <= MAX_SCORE:
        raise ValidationError(
            f"{field} must be an integer between {MIN_SCORE} and {MAX_SCORE}",
            code=ErrorCode.SCORE_OUT_OF_RANGE,
            details={"field": field, "min": MIN_SCORE, "max": MAX_SCORE}
        )
    return value


def _parse_recommendation(value: Any) -> ReviewRecommendation:
    try:
        return ReviewRecommendation(str(getattr(value, "value", value)).strip().lower())
    except ValueError:
        raise ValidationError(
            "recommendation must be 'accept' or 'reject'",
            details={"field": "recommendation", "allowed": [r.value for r in ReviewRecommendation]}
        )


def validate_review_payload(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Return only the supplied review fields, validated. Unknown keys are ignored."""
    changes: Dict[str, Any] = {}
    for field in SCORE_FIELDS:
        if payload.get(field) is not None:
            changes[field] = _validate_score(field, payload[field])
    for field in TEXT_FIELDS:
        if payload.get(field) is not None:
            changes[field] = str(payload[field])
    if payload.get("recommendation") is not None:
        changes["recommendation"] = _parse_recommendation(payload["recommendation"])
    return changes


async def _require_assignment(db: AsyncSession, submission_id: int, reviewer_id: int) -> ReviewAssignment:
    assignment = await find_assignment(db, submission_id, reviewer_id)
    if assignment is None:
        logger.warning(f"[REVIEW BLOCKED] reviewer={reviewer_id} not assigned to submission={submission_id}")
        raise ForbiddenError(
            "You are not assigned to review this submission",
            code=ErrorCode.NOT_ASSIGNED
        )
    return assignment


async def _load_review(db: AsyncSession, submission_id: int, reviewer_id: int) -> Optional[Review]:
    result = await db.execute(
        select(Review).where(
            Review.submission_id == submission_id,
            Review.reviewer_id == reviewer_id
        )
    )
    return result.scalar_one_or_none()


async def submit_review(
    db: AsyncSession,
    submission_id: int,
    reviewer_id: int,
    payload: Mapping[str, Any],
    is_completed: bool = False,
    _retry_on_conflict: bool = True
) -> Review:
    """
    Create or update the reviewer's review, optionally completing it.

    Raises:
        ForbiddenError: reviewer is not assigned
        LockedError: review was already completed
        ValidationError: bad score / recommendation, or completing
            without a recommendation
    """
    assignment = await _require_assignment(db, submission_id, reviewer_id)
    existing = await _load_review(db, submission_id, reviewer_id)

    if existing is not None and existing.is_completed:
        raise LockedError(
            "Review is already completed and can no longer be edited",
            details={"review_id": existing.id}
        )

    changes = validate_review_payload(payload)

    def merged(field):
        if field in changes:
            return changes[field]
        return getattr(existing, field) if existing is not None else None

    if is_completed and merged("recommendation") is None:
        raise ValidationError(
            "A recommendation is required to complete the review",
            code=ErrorCode.MISSING_FIELD,
            details={"missing": ["recommendation"]}
        )

    overall = compute_overall_score({field: merged(field) for field in SCORE_FIELDS})
    now = datetime.utcnow()

    if existing is None:
        review = Review(
            submission_id=submission_id,
            reviewer_id=reviewer_id,
            overall_score=overall,
            is_completed=bool(is_completed),
            created_at=now,
            updated_at=now,
            **changes
        )
        db.add(review)
        try:
            await db.flush()
        except IntegrityError:
            # Another request inserted this pair first; apply ours as an update
            await db.rollback()
            if not _retry_on_conflict:
                raise
            logger.info(f"[REVIEW UPSERT RETRY] submission={submission_id} reviewer={reviewer_id}")
            return await submit_review(
                db, submission_id, reviewer_id, payload, is_completed,
                _retry_on_conflict=False
            )
    else:
        result = await db.execute(
            update(Review)
            .where(Review.id == existing.id, Review.is_completed.is_(False))
            .values(overall_score=overall, is_completed=bool(is_completed), updated_at=now, **changes)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            review_id = existing.id
            await db.rollback()
            raise LockedError(
                "Review was completed concurrently and can no longer be edited",
                details={"review_id": review_id}
            )
        review = existing
        await db.refresh(review)

    await mirror_review_state(db, assignment, review)
    await db.commit()
    await db.refresh(review)

    logger.info(
        f"[REVIEW SAVED] review={review.id} submission={submission_id} reviewer={reviewer_id} "
        f"completed={review.is_completed} overall={review.overall_score}"
    )
    return review


async def get_review_for_reviewer(db: AsyncSession, submission_id: int, reviewer_id: int) -> Optional[Review]:
    await _require_assignment(db, submission_id, reviewer_id)
    return await _load_review(db, submission_id, reviewer_id)


async def list_reviews_for_submission(db: AsyncSession, submission_id: int, actor: Actor) -> Tuple[List[Review], Any]:
    """Committee view: every review on the submission plus the aggregate outcome."""
    # Import here to avoid circular imports
    from conference_review.services.lifecycle_service import compute_aggregate

    require_admin(actor, "view all reviews")
    aggregate = await compute_aggregate(db, submission_id)

    result = await db.execute(
        select(Review)
        .where(Review.submission_id == submission_id)
        .order_by(Review.created_at, Review.id)
    )
    return list(result.scalars().all()), aggregate


async def delete_review(db: AsyncSession, review_id: int, actor: Actor) -> None:
    """Admin removal; the assignment falls back to pending."""
    require_admin(actor, "delete reviews")

    review = await db.get(Review, review_id)
    if review is None:
        raise NotFoundError("Review", review_id, code=ErrorCode.REVIEW_NOT_FOUND)

    submission_id, reviewer_id = review.submission_id, review.reviewer_id
    assignment = await find_assignment(db, submission_id, reviewer_id)
    await db.delete(review)
    await db.flush()
    if assignment is not None:
        await mirror_review_state(db, assignment, None)
    await db.commit()

    logger.warning(
        f"[REVIEW DELETED] review={review_id} submission={submission_id} "
        f"reviewer={reviewer_id} by admin={actor.id}"
    )
