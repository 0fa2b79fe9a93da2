"""
Error taxonomy shared by the election core.

Each error carries the HTTP status the transport layer maps it to and a short
machine-readable code. The core never retries and never swallows these.
"""
from __future__ import annotations


class CivicError(Exception):
    status_code = 400
    code = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(CivicError):
    """Malformed or missing input; the caller can fix it and retry."""

    status_code = 400
    code = "validation_error"


class AuthorizationError(CivicError):
    """The acting role is not allowed to perform the operation at all."""

    status_code = 403
    code = "authorization_error"


class ForbiddenError(CivicError):
    """Role is sufficient but a business rule blocks this actor (ownership, eligibility)."""

    status_code = 403
    code = "forbidden"


class StateConflictError(CivicError):
    """Operation is invalid for the current lifecycle state or timing window."""

    status_code = 409
    code = "state_conflict"


class ConflictError(CivicError):
    """Uniqueness violation (duplicate vote, duplicate candidacy)."""

    status_code = 409
    code = "conflict"


class NotFoundError(CivicError):
    status_code = 404
    code = "not_found"
