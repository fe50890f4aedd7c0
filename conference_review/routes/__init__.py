"""
conference_review/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from conference_review.routes import reviews, submissions

router = APIRouter()

router.include_router(submissions.router)
router.include_router(submissions.assignments_router)
router.include_router(reviews.router)
