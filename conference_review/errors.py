"""
conference_review/errors.py
Centralized error kinds for the review lifecycle core

ERROR RESPONSE STRUCTURE:
{
    "success": false,
    "error": "ErrorType",
    "message": "Human-readable description",
    "code": "UNIQUE_ERROR_CODE",
    "details": {} (optional)
}

HTTP STATUS CODE DISCIPLINE:
- 400: Malformed or missing input (ValidationError)
- 401: Missing or invalid bearer token (UnauthorizedError, HTTP layer only)
- 403: Missing role or ownership (ForbiddenError)
- 404: Unknown submission / assignment / review (NotFoundError)
- 409: Illegal status change or lost compare-and-set (InvalidTransitionError),
       duplicate reviewer assignment or second submission to an event (ConflictError)
- 423: Completed review edited again (LockedError)
- 502: Decision persisted but the mail provider failed (NotificationFailedError)
- 500: Storage outages and other unexpected failures (never raised here)
"""

import logging
from typing import Optional, Dict, Any, List
from fastapi import status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ErrorCode:
    """Unique error codes for machine-readable error handling"""

    VALIDATION_ERROR = "VALIDATION_ERROR"
    MISSING_FIELD = "MISSING_FIELD"
    SCORE_OUT_OF_RANGE = "SCORE_OUT_OF_RANGE"
    MISSING_PDF = "MISSING_PDF"
    ROLE_REQUIRED = "ROLE_REQUIRED"

    AUTH_REQUIRED = "AUTH_REQUIRED"
    AUTH_INVALID = "AUTH_INVALID"

    FORBIDDEN = "FORBIDDEN"
    OWNERSHIP_VIOLATION = "OWNERSHIP_VIOLATION"
    NOT_ASSIGNED = "NOT_ASSIGNED"

    NOT_FOUND = "NOT_FOUND"
    SUBMISSION_NOT_FOUND = "SUBMISSION_NOT_FOUND"
    ASSIGNMENT_NOT_FOUND = "ASSIGNMENT_NOT_FOUND"
    REVIEW_NOT_FOUND = "REVIEW_NOT_FOUND"

    STATE_TRANSITION_INVALID = "STATE_TRANSITION_INVALID"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    ALREADY_ASSIGNED = "ALREADY_ASSIGNED"
    DUPLICATE_SUBMISSION = "DUPLICATE_SUBMISSION"
    REVIEW_LOCKED = "REVIEW_LOCKED"

    NOTIFICATION_FAILED = "NOTIFICATION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ErrorResponse(BaseModel):
    """Standard error response model"""
    success: bool = False
    error: str
    message: str
    code: str
    details: Optional[Dict[str, Any]] = None


class APIError(Exception):
    """Base exception with consistent structure"""

    def __init__(
        self,
        status_code: int,
        error: str,
        message: str,
        code: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.status_code = status_code
        self.error = error
        self.message = message
        self.code = code
        self.details = details
        super().__init__(message)

    def to_response(self) -> JSONResponse:
        """Convert to FastAPI JSONResponse"""
        return JSONResponse(status_code=self.status_code, content=self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary"""
        result = {
            "success": False,
            "error": self.error,
            "message": self.message,
            "code": self.code
        }
        if self.details:
            result["details"] = self.details
        return result


class ValidationError(APIError):
    """400 - Malformed or missing required input"""
    def __init__(self, message: str, code: str = ErrorCode.VALIDATION_ERROR, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            error="Validation Error",
            message=message,
            code=code,
            details=details
        )


class UnauthorizedError(APIError):
    """401 - Missing or invalid bearer token"""
    def __init__(self, message: str = "Invalid or expired token", code: str = ErrorCode.AUTH_INVALID):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            error="Unauthorized",
            message=message,
            code=code
        )


class ForbiddenError(APIError):
    """403 - Actor lacks the required role or ownership"""
    def __init__(self, message: str, code: str = ErrorCode.FORBIDDEN, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            error="Forbidden",
            message=message,
            code=code,
            details=details
        )


class NotFoundError(APIError):
    """404 - Resource does not exist"""
    def __init__(self, resource: str, identifier: Any = None, code: str = ErrorCode.NOT_FOUND):
        message = f"{resource} not found"
        if identifier is not None:
            message = f"{resource} with id '{identifier}' not found"
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            error="Not Found",
            message=message,
            code=code,
            details={"resource": resource, "id": identifier}
        )


class InvalidTransitionError(APIError):
    """409 - Status change not legal from the current state"""
    def __init__(
        self,
        message: str,
        from_status: Optional[str] = None,
        to_status: Optional[str] = None,
        allowed: Optional[List[str]] = None,
        code: str = ErrorCode.STATE_TRANSITION_INVALID
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.allowed = allowed or []
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Invalid Transition",
            message=message,
            code=code,
            details={"from": from_status, "to": to_status, "allowed": self.allowed}
        )


class ConflictError(APIError):
    """409 - Duplicate resource"""
    def __init__(self, message: str, code: str = ErrorCode.ALREADY_ASSIGNED, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            error="Conflict",
            message=message,
            code=code,
            details=details
        )


class LockedError(APIError):
    """423 - Completed review is read-only"""
    def __init__(self, message: str, details: Optional[Dict] = None):
        super().__init__(
            status_code=status.HTTP_423_LOCKED,
            error="Locked",
            message=message,
            code=ErrorCode.REVIEW_LOCKED,
            details=details
        )


class NotificationFailedError(APIError):
    """
    502 - The decision is persisted but the notifier failed.

    Carries the already-committed submission so callers can keep going
    and offer a re-send.
    """
    def __init__(self, message: str, submission: Any = None, decision: Optional[str] = None):
        self.submission = submission
        self.decision = decision
        submission_id = getattr(submission, "id", None)
        status_value = getattr(getattr(submission, "status", None), "value", None)
        super().__init__(
            status_code=status.HTTP_502_BAD_GATEWAY,
            error="Notification Failed",
            message=message,
            code=ErrorCode.NOTIFICATION_FAILED,
            details={
                "submission_id": submission_id,
                "decision": decision,
                "status": status_value,
                "persisted": True
            }
        )


def get_error_summary() -> Dict[str, Any]:
    """Return summary of error handling system for documentation"""
    return {
        "service": "conference-review-errors",
        "status_codes": {
            "400": "Validation error",
            "401": "Missing or invalid token",
            "403": "Forbidden (role / ownership)",
            "404": "Resource does not exist",
            "409": "Invalid transition or duplicate assignment",
            "423": "Review locked",
            "502": "Decision saved, notification failed",
            "500": "Internal error"
        },
        "error_codes": [
            attr for attr in dir(ErrorCode)
            if not attr.startswith('_')
        ]
    }
