"""Exceptions raised by the research contribution services.

Each carries the HTTP status the JSON blueprint answers with.
"""


class WorkflowError(Exception):
    status_code = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class InvalidTransition(WorkflowError):
    """Actor or current status does not allow the requested action."""


class PermissionDenied(InvalidTransition):
    status_code = 403


class WorkflowValidationError(WorkflowError):
    """Missing comments, malformed payload and the like."""


class ContributionNotFound(WorkflowError):
    status_code = 404


class ConcurrencyConflict(WorkflowError):
    """Another request changed the contribution first."""

    status_code = 409


class PolicyNotFound(WorkflowError):
    status_code = 404


class PolicyOverlapError(WorkflowError):
    """Effective date range collides with another policy of the same type."""
