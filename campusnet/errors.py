"""Typed failures raised by the campusnet services.

Authorization refusals and idempotent no-ops (already liked, request already
exists, already a member) are not errors: the services return ``False`` for
those so callers can show a message without exception handling.
"""


class CampusError(Exception):
    """Base class for every failure a service reports to its caller."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CampusError):
    """Content or media constraints were violated."""


class UploadError(ValidationError):
    """An upload was empty, too large or of an unsupported type."""


class NotFoundError(CampusError):
    """A referenced id does not resolve to a row."""


class ConflictError(CampusError):
    """A uniqueness rule was violated."""


class AuthorizationError(CampusError):
    """The requester may not perform the action."""


class SelfActionError(CampusError):
    """A user tried to act on themselves or their own content."""


class SelfReportError(SelfActionError):
    pass
