"""
Domain errors shared by services, the chat session and the HTTP layer.

Services raise these instead of HTTPException so the same code can run
outside a request (the live chat session); main.py maps them to responses.
"""

from typing import Any, Optional


class StudyBuddyError(Exception):
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(StudyBuddyError):
    """Rejected input; raised before any network call."""
    status_code = 400


class NotFoundError(StudyBuddyError):
    status_code = 404


class UnauthorizedError(StudyBuddyError):
    """Action requires a membership (or session) the user does not hold."""
    status_code = 403


class PersistenceError(StudyBuddyError):
    """A store read or write failed."""
    status_code = 500


class JoinError(PersistenceError):
    pass


class MembershipError(PersistenceError):
    """Group was created but the creator's membership row was not."""

    def __init__(self, message: str, group: Optional[Any] = None):
        super().__init__(message)
        self.group = group


class GenerationError(StudyBuddyError):
    """The generator call failed or returned unusable content."""
    status_code = 502
