"""Domain errors raised by the services.

Each error carries the HTTP status code the API reports for it, so the
services stay free of FastAPI imports while controllers and the
exception handler in `learnhub.main` can translate them uniformly.
"""


class DomainError(Exception):
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class NotFoundError(DomainError):
    """A referenced entity does not exist at validation time."""
    status_code = 404


class ConflictError(DomainError):
    """A uniqueness rule (title per scope, email) would be violated."""
    status_code = 409


class ForbiddenError(DomainError):
    """The actor is not the owner derived from the stored parent chain."""
    status_code = 403


class BadRequestError(DomainError):
    """Structural validation of nested data failed."""
    status_code = 400
