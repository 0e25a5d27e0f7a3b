"""
Domain errors for the travel planner.

Components raise these; only the HTTP layer in main.py turns them into
status codes and the ``{"error": ...}`` envelope.
"""


class TravelPlannerError(Exception):
    """Base class for every error the planner raises on purpose."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InputValidationError(TravelPlannerError):
    status_code = 400


class ConflictError(TravelPlannerError):
    """Duplicate username or email on registration."""

    status_code = 400


class UnauthorizedError(TravelPlannerError):
    status_code = 401


class ForbiddenError(TravelPlannerError):
    status_code = 403


class NotFoundError(TravelPlannerError):
    status_code = 404


class UpstreamUnavailable(TravelPlannerError):
    """An external service errored or timed out.

    Never reaches the HTTP layer: each component replaces it with its default.
    """

    status_code = 502


class ContentEmpty(UpstreamUnavailable):
    """The chat model answered but the reply carried no text."""


class RequestAbandoned(TravelPlannerError):
    """The client went away before its trip was ready.

    Upstream calls not yet issued for the request are skipped.
    """

    status_code = 499
