"""
errors.py

Domain error taxonomy for the StudyHive backend.
Every error carries an HTTP status, a human readable message and an optional
list of field errors; main.py turns them into the JSON envelope.
"""
from typing import List, Optional

from fastapi import HTTPException, status


class ApiError(HTTPException):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[dict]] = None):
        self.message = message or self.default_message
        self.errors = errors or []
        super().__init__(status_code=type(self).status_code, detail=self.message)


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class InvalidAssignment(ValidationFailed):
    default_message = "One or more assigned users are not part of this group"


class NotReviewable(ValidationFailed):
    default_message = "Submission is not in a reviewable state"


class TokenExpiredOrInvalid(ValidationFailed):
    default_message = "Token is invalid or expired"


class Unauthenticated(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized request"


class InvalidToken(Unauthenticated):
    default_message = "Invalid refresh token"


class TokenReuseDetected(Unauthenticated):
    default_message = "Refresh token expired or reused"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have permission to perform this action"


class DeadlinePassed(Forbidden):
    default_message = "Assignment submission deadline has passed"


class NotFound(ApiError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class Conflict(ApiError):
    status_code = status.HTTP_409_CONFLICT
    default_message = "Resource already exists"


class AlreadySubmitted(Conflict):
    default_message = "Assignment already submitted"


class RateLimited(ApiError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_message = "Too many requests. Please try again later."


class Unexpected(ApiError):
    pass


class StorageUnavailable(Unexpected):
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "File storage is currently unavailable"
