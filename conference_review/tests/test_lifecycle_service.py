"""
Lifecycle service tests: create, submit, start review, decide, resubmit,
edit, delete and the audit trail.
"""
import pytest
from sqlalchemy import select

from conference_review.errors import (
    ConflictError, ErrorCode, ForbiddenError, InvalidTransitionError, NotFoundError, ValidationError
)
from conference_review.orm import Review, ReviewAssignment, Submission, SubmissionStatus
from conference_review.rbac import Actor
from conference_review.services import assignment_service, lifecycle_service, review_service
from conference_review.services.lifecycle_service import DeletionKind, normalize_keywords
from conference_review.tests.conftest import VALID_SUBMISSION, actor_for


async def _status_of(db, submission_id):
    return await db.scalar(select(Submission.status).where(Submission.id == submission_id))


class TestCreate:

    @pytest.mark.asyncio
    async def test_create_defaults_to_draft_owned_by_actor(self, db_session, author_actor, sender):
        submission = await lifecycle_service.create_submission(db_session, author_actor, dict(VALID_SUBMISSION))
        assert submission.status == SubmissionStatus.DRAFT
        assert submission.owner_id == author_actor.id
        assert submission.submitted_at is None
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_create_and_submit_sends_receipt(self, db_session, author_actor, sender):
        submission = await lifecycle_service.create_submission(
            db_session, author_actor, dict(VALID_SUBMISSION), submit=True
        )
        assert submission.status == SubmissionStatus.SUBMITTED
        assert submission.submitted_at is not None
        assert sender.templates() == ["submission_received.html"]

    @pytest.mark.asyncio
    async def test_create_incomplete_with_submit_fails(self, db_session, author_actor):
        data = dict(VALID_SUBMISSION, abstract="   ")
        with pytest.raises(ValidationError) as exc:
            await lifecycle_service.create_submission(db_session, author_actor, data, submit=True)
        assert exc.value.details == {"missing": ["abstract"]}

    @pytest.mark.asyncio
    async def test_create_requires_event(self, db_session, author_actor):
        data = dict(VALID_SUBMISSION)
        del data["event_id"]
        with pytest.raises(ValidationError):
            await lifecycle_service.create_submission(db_session, author_actor, data)

    @pytest.mark.asyncio
    async def test_keywords_from_comma_string(self, db_session, author_actor):
        data = dict(VALID_SUBMISSION, keywords=" nlp, ,attention ,")
        submission = await lifecycle_service.create_submission(db_session, author_actor, data)
        assert submission.keywords == ["nlp", "attention"]

    def test_normalize_keywords(self):
        assert normalize_keywords(None) == []
        assert normalize_keywords(["a ", "", " b"]) == ["a", "b"]
        assert normalize_keywords("x,y") == ["x", "y"]

    @pytest.mark.asyncio
    async def test_one_submission_per_event(self, db_session, draft, author_actor):
        with pytest.raises(ConflictError) as exc:
            await lifecycle_service.create_submission(db_session, author_actor, dict(VALID_SUBMISSION))
        assert exc.value.code == ErrorCode.DUPLICATE_SUBMISSION
        assert exc.value.details["submission_id"] == draft.id

        listed = await lifecycle_service.list_submissions(db_session, owner_id=author_actor.id)
        assert [s.id for s in listed] == [draft.id]

    @pytest.mark.asyncio
    async def test_other_event_or_other_author_allowed(self, db_session, draft, author_actor, other_author):
        second = await lifecycle_service.create_submission(
            db_session, author_actor, dict(VALID_SUBMISSION, event_id=2)
        )
        third = await lifecycle_service.create_submission(
            db_session, actor_for(other_author), dict(VALID_SUBMISSION)
        )
        assert len({draft.id, second.id, third.id}) == 3

    @pytest.mark.asyncio
    async def test_create_again_after_delete(self, db_session, draft, author_actor):
        await lifecycle_service.delete_submission(db_session, draft.id, author_actor)
        again = await lifecycle_service.create_submission(db_session, author_actor, dict(VALID_SUBMISSION))
        assert again.status == SubmissionStatus.DRAFT


class TestSubmit:

    @pytest.mark.asyncio
    async def test_submit_sets_status_and_timestamp(self, db_session, draft, author_actor, sender):
        submission = await lifecycle_service.submit(db_session, draft.id, author_actor)
        assert submission.status == SubmissionStatus.SUBMITTED
        assert submission.submitted_at is not None
        assert await _status_of(db_session, draft.id) == SubmissionStatus.SUBMITTED
        assert sender.templates() == ["submission_received.html"]

    @pytest.mark.asyncio
    async def test_submit_twice_fails_and_leaves_status(self, db_session, submitted, author_actor):
        with pytest.raises(InvalidTransitionError) as exc:
            await lifecycle_service.submit(db_session, submitted.id, author_actor)
        assert exc.value.from_status == "submitted"
        assert await _status_of(db_session, submitted.id) == SubmissionStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_submit_by_non_owner_forbidden(self, db_session, draft, other_author):
        with pytest.raises(ForbiddenError) as exc:
            await lifecycle_service.submit(db_session, draft.id, actor_for(other_author))
        assert exc.value.code == ErrorCode.OWNERSHIP_VIOLATION

    @pytest.mark.asyncio
    async def test_submit_without_pdf_fails(self, db_session, author_actor):
        data = dict(VALID_SUBMISSION, pdf_url=None)
        submission = await lifecycle_service.create_submission(db_session, author_actor, data)
        with pytest.raises(ValidationError) as exc:
            await lifecycle_service.submit(db_session, submission.id, author_actor)
        assert exc.value.code == ErrorCode.MISSING_PDF
        assert await _status_of(db_session, submission.id) == SubmissionStatus.DRAFT

    @pytest.mark.asyncio
    async def test_submit_without_keywords_fails(self, db_session, author_actor):
        data = dict(VALID_SUBMISSION, keywords=[])
        submission = await lifecycle_service.create_submission(db_session, author_actor, data)
        with pytest.raises(ValidationError) as exc:
            await lifecycle_service.submit(db_session, submission.id, author_actor)
        assert exc.value.details == {"missing": ["keywords"]}

    @pytest.mark.asyncio
    async def test_submit_unknown_submission(self, db_session, author_actor):
        with pytest.raises(NotFoundError):
            await lifecycle_service.submit(db_session, 9999, author_actor)


class TestAdminTransitions:

    @pytest.mark.asyncio
    async def test_start_review_requires_admin(self, db_session, submitted, author_actor):
        with pytest.raises(ForbiddenError):
            await lifecycle_service.admin_start_review(db_session, submitted.id, author_actor)

    @pytest.mark.asyncio
    async def test_start_review_from_draft_blocked(self, db_session, draft, admin_actor):
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.admin_start_review(db_session, draft.id, admin_actor)

    @pytest.mark.asyncio
    async def test_start_review_without_reviews(self, db_session, submitted, admin_actor):
        submission = await lifecycle_service.admin_start_review(db_session, submitted.id, admin_actor)
        assert submission.status == SubmissionStatus.UNDER_REVIEW

    @pytest.mark.asyncio
    async def test_decide_requires_under_review(self, db_session, submitted, admin_actor):
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.admin_decide(db_session, submitted.id, admin_actor, "accept")
        assert await _status_of(db_session, submitted.id) == SubmissionStatus.SUBMITTED

    @pytest.mark.asyncio
    async def test_decide_rejects_unknown_decision(self, db_session, under_review, admin_actor):
        with pytest.raises(ValidationError):
            await lifecycle_service.admin_decide(db_session, under_review.id, admin_actor, "maybe")

    @pytest.mark.asyncio
    async def test_decide_by_reviewer_forbidden(self, db_session, under_review, reviewer_actor):
        with pytest.raises(ForbiddenError):
            await lifecycle_service.admin_decide(db_session, under_review.id, reviewer_actor, "accept")

    @pytest.mark.asyncio
    async def test_reject_is_terminal(self, db_session, under_review, admin_actor, author_actor):
        submission = await lifecycle_service.admin_decide(db_session, under_review.id, admin_actor, "reject")
        assert submission.status == SubmissionStatus.REJECTED
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.resubmit(db_session, submission.id, author_actor)
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.admin_decide(db_session, submission.id, admin_actor, "accept")


class TestRevisionCycle:

    @pytest.mark.asyncio
    async def test_revise_then_resubmit_keeps_reviews(
        self, db_session, submitted, admin_actor, author_actor, reviewer, sender
    ):
        await assignment_service.assign_reviewer(db_session, submitted.id, reviewer.id, admin_actor)
        await review_service.submit_review(
            db_session, submitted.id, reviewer.id,
            {"originality_score": 3, "recommendation": "reject"}, is_completed=True
        )
        await lifecycle_service.admin_start_review(db_session, submitted.id, admin_actor)
        sender.sent.clear()

        revised = await lifecycle_service.admin_decide(
            db_session, submitted.id, admin_actor, "revise", comments="Please extend the evaluation"
        )
        assert revised.status == SubmissionStatus.REVISION_REQUESTED
        assert sender.sent == []

        resubmitted = await lifecycle_service.resubmit(db_session, submitted.id, author_actor)
        assert resubmitted.status == SubmissionStatus.SUBMITTED
        assert sender.templates() == ["submission_received.html"]

        reviews = (await db_session.execute(select(Review))).scalars().all()
        assignments = (await db_session.execute(select(ReviewAssignment))).scalars().all()
        assert len(reviews) == 1 and reviews[0].is_completed
        assert len(assignments) == 1

    @pytest.mark.asyncio
    async def test_resubmit_requires_revision_requested(self, db_session, submitted, author_actor):
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.resubmit(db_session, submitted.id, author_actor)


class TestUpdate:

    @pytest.mark.asyncio
    async def test_owner_edits_draft(self, db_session, draft, author_actor):
        updated = await lifecycle_service.update_submission(
            db_session, draft.id, author_actor, {"title": "A Better Title", "keywords": "a, b"}
        )
        assert updated.title == "A Better Title"
        assert updated.keywords == ["a", "b"]

    @pytest.mark.asyncio
    async def test_submitted_edit_must_stay_complete(self, db_session, submitted, author_actor):
        with pytest.raises(ValidationError):
            await lifecycle_service.update_submission(db_session, submitted.id, author_actor, {"title": " "})

    @pytest.mark.asyncio
    async def test_edit_under_review_blocked(self, db_session, under_review, author_actor):
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.update_submission(db_session, under_review.id, author_actor, {"title": "New"})

    @pytest.mark.asyncio
    async def test_edit_by_other_forbidden(self, db_session, draft, other_author):
        with pytest.raises(ForbiddenError):
            await lifecycle_service.update_submission(db_session, draft.id, actor_for(other_author), {"title": "x"})


class TestDelete:

    @pytest.mark.asyncio
    async def test_owner_deletes_draft(self, db_session, draft, author_actor):
        kind = await lifecycle_service.delete_submission(db_session, draft.id, author_actor)
        assert kind is DeletionKind.AUTHOR_DELETE
        assert await db_session.get(Submission, draft.id) is None

    @pytest.mark.asyncio
    async def test_owner_cannot_delete_accepted(self, db_session, under_review, admin_actor, author_actor):
        await lifecycle_service.admin_decide(db_session, under_review.id, admin_actor, "accept")
        with pytest.raises(InvalidTransitionError):
            await lifecycle_service.delete_submission(db_session, under_review.id, author_actor)
        assert await _status_of(db_session, under_review.id) == SubmissionStatus.ACCEPTED

    @pytest.mark.asyncio
    async def test_admin_hard_deletes_accepted(
        self, db_session, submitted, admin_actor, reviewer, caplog
    ):
        await assignment_service.assign_reviewer(db_session, submitted.id, reviewer.id, admin_actor)
        await review_service.submit_review(
            db_session, submitted.id, reviewer.id, {"recommendation": "accept"}, is_completed=True
        )
        await lifecycle_service.admin_start_review(db_session, submitted.id, admin_actor)
        await lifecycle_service.admin_decide(db_session, submitted.id, admin_actor, "accept")

        kind = await lifecycle_service.delete_submission(db_session, submitted.id, admin_actor)

        assert kind is DeletionKind.HARD_DELETE
        assert await _status_of(db_session, submitted.id) is None
        assert (await db_session.execute(select(Review))).scalars().all() == []
        assert (await db_session.execute(select(ReviewAssignment))).scalars().all() == []
        assert any("[HARD DELETE]" in r.message for r in caplog.records)

        history = await lifecycle_service.get_status_history(db_session, submitted.id)
        assert history[0].action == "hard_delete"

    @pytest.mark.asyncio
    async def test_stranger_cannot_delete(self, db_session, draft, other_author):
        with pytest.raises(ForbiddenError):
            await lifecycle_service.delete_submission(db_session, draft.id, actor_for(other_author))


class TestReadsAndAudit:

    @pytest.mark.asyncio
    async def test_history_newest_first(self, db_session, under_review):
        history = await lifecycle_service.get_status_history(db_session, under_review.id)
        assert [h.action for h in history] == ["start_review", "submit", "create"]
        assert history[0].from_status == "submitted"
        assert history[0].to_status == "under_review"

    @pytest.mark.asyncio
    async def test_count_by_status(self, db_session, submitted, other_author):
        await lifecycle_service.create_submission(db_session, actor_for(other_author), dict(VALID_SUBMISSION))
        counts = await lifecycle_service.count_by_status(db_session, VALID_SUBMISSION["event_id"])
        assert counts["draft"] == 1
        assert counts["submitted"] == 1
        assert counts["accepted"] == 0

    @pytest.mark.asyncio
    async def test_list_filters(self, db_session, submitted, other_author):
        other = actor_for(other_author)
        await lifecycle_service.create_submission(db_session, other, dict(VALID_SUBMISSION, event_id=2))

        assert [s.id for s in await lifecycle_service.list_submissions(db_session, status="submitted")] == [submitted.id]
        assert len(await lifecycle_service.list_submissions(db_session, event_id=2)) == 1
        assert len(await lifecycle_service.list_submissions(db_session, owner_id=other.id)) == 1
        with pytest.raises(ValidationError):
            await lifecycle_service.list_submissions(db_session, status="lost")

    @pytest.mark.asyncio
    async def test_visibility(self, db_session, submitted, admin_actor, reviewer, second_reviewer, other_author):
        await assignment_service.assign_reviewer(db_session, submitted.id, reviewer.id, admin_actor)

        assert await lifecycle_service.get_submission_for_actor(db_session, submitted.id, actor_for(reviewer))
        assert await lifecycle_service.get_submission_for_actor(db_session, submitted.id, admin_actor)
        with pytest.raises(ForbiddenError):
            await lifecycle_service.get_submission_for_actor(db_session, submitted.id, actor_for(second_reviewer))
        with pytest.raises(ForbiddenError):
            await lifecycle_service.get_submission_for_actor(db_session, submitted.id, actor_for(other_author))
        with pytest.raises(ForbiddenError):
            await lifecycle_service.get_submission_for_actor(db_session, submitted.id, Actor.of(999))

    @pytest.mark.asyncio
    async def test_list_visible_submissions(
        self, db_session, submitted, admin_actor, reviewer, second_reviewer, other_author
    ):
        await assignment_service.assign_reviewer(db_session, submitted.id, reviewer.id, admin_actor)
        own = await lifecycle_service.create_submission(
            db_session, actor_for(reviewer), dict(VALID_SUBMISSION, event_id=2)
        )
        grace = await lifecycle_service.create_submission(db_session, actor_for(other_author), dict(VALID_SUBMISSION))

        async def visible(actor, **filters):
            return {s.id for s in await lifecycle_service.list_visible_submissions(db_session, actor, **filters)}

        assert await visible(actor_for(reviewer)) == {submitted.id, own.id}
        assert await visible(actor_for(reviewer), event_id=1) == {submitted.id}
        assert await visible(actor_for(reviewer), status="draft") == {own.id}
        assert await visible(actor_for(second_reviewer)) == set()
        assert await visible(actor_for(other_author)) == {grace.id}
        assert await visible(admin_actor) == {submitted.id, own.id, grace.id}
