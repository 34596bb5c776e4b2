from __future__ import annotations


class AppError(Exception):
    """Base error rendered as ``{"error": message}`` with ``status_code``."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = 400
    default_message = "Invalid request"


class AuthError(AppError):
    status_code = 401
    default_message = "Unauthorized"


class IntegrityError(AppError):
    """Signed payload did not match its signature."""

    status_code = 401
    default_message = "Invalid signature"


class ForbiddenError(AppError):
    status_code = 403
    default_message = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class StoreError(AppError):
    status_code = 500
    default_message = "Database error"

    @classmethod
    def from_exception(cls, exc: Exception) -> StoreError:
        # The driver's message only; the wrapper adds SQL text and a docs link.
        orig = getattr(exc, "orig", None)
        return cls(str(orig) if orig is not None else str(exc))


class UpstreamError(AppError):
    status_code = 502
    default_message = "Upstream service unavailable"
