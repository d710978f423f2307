"""Typed failures raised by the progression services.

All of these are expected conditions. Routes translate them into HTTP
responses through the handlers registered in ``mastermore.main``.
"""
from typing import Any, Optional


class ProgressionError(Exception):
    """Base class for learner-facing progression failures."""

    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotEnrolled(ProgressionError):
    """The user never joined the course the operation targets."""

    status_code = 403

    def __init__(self, course_id: Any):
        super().__init__("Not enrolled in this course")
        self.course_id = course_id


class AccessDenied(ProgressionError):
    """The targeted module, lesson, exam or project is still locked."""

    status_code = 403


class DuplicateSubmission(ProgressionError):
    """A single-attempt item was submitted again.

    ``existing`` holds the submission that was recorded first so callers can
    answer with it instead of an error.
    """

    status_code = 409

    def __init__(self, detail: str = "Already submitted", existing: Optional[Any] = None):
        super().__init__(detail)
        self.existing = existing


class StructuralNotFound(ProgressionError):
    """A referenced course node does not exist or belongs to another parent."""

    status_code = 404
