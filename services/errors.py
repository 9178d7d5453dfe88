from typing import Any, Optional


class ServiceError(Exception):
    """Base for errors surfaced to callers as ``{success: false, error}`` JSON."""

    status_code = 500

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None,
                 status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details
        if status_code is not None:
            self.status_code = status_code


class ValidationFailed(ServiceError):
    status_code = 400


class AuthError(ServiceError):
    status_code = 401


class Forbidden(ServiceError):
    status_code = 403


class NotFound(ServiceError):
    status_code = 404


class Conflict(ServiceError):
    status_code = 409


class RateLimited(ServiceError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: int, limit: int, reset_at: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after
        self.limit = limit
        self.reset_at = reset_at


class BackendError(ServiceError):
    """The backend API answered with a non-2xx status or could not be reached."""

    status_code = 502
