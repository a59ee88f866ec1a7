"""Domain errors and their HTTP mapping.

Learn: Services raise these instead of HTTPException so they stay
usable outside a request (CLI, background worker). A single exception
handler in main.py turns them into JSON responses:

    {"detail": "...", **extra}

Auth failures are split three ways so clients can tell "log in again"
(401) from "refresh and retry" (401 + expired) from "go away" (403).
"""

from typing import Any, Optional


class QurekaError(Exception):
    """Base class for all errors surfaced to API callers."""

    status_code: int = 500
    default_detail: str = "Internal server error"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        self.detail = detail or self.default_detail
        self.extra = extra
        super().__init__(self.detail)

    def to_body(self) -> dict[str, Any]:
        return {"detail": self.detail, **self.extra}


class ValidationError(QurekaError):
    status_code = 400
    default_detail = "Invalid request"


# ─── Auth ────────────────────────────────────────────────


class AuthError(QurekaError):
    status_code = 401
    default_detail = "Authentication failed"


class MissingTokenError(AuthError):
    default_detail = "Authentication token required"


class TokenExpiredError(AuthError):
    default_detail = "Token has expired"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        super().__init__(detail, expired=True, **extra)


class InvalidTokenError(AuthError):
    status_code = 403
    default_detail = "Invalid token"


class InvalidCredentialsError(AuthError):
    default_detail = "Invalid username or password"


# ─── Conflicts ───────────────────────────────────────────


class ConflictError(QurekaError):
    status_code = 409
    default_detail = "Already registered"


class RegistrationInProgressError(ConflictError):
    """Another registration for the same username is in flight.

    Transient: a retry after the lock window is expected to succeed.
    """

    status_code = 429
    default_detail = "Registration is already in progress. Please retry shortly."


class NotFoundError(QurekaError):
    status_code = 404
    default_detail = "Not found"


# ─── Infrastructure ──────────────────────────────────────


class PersistenceError(QurekaError):
    status_code = 500
    default_detail = "Storage operation failed"


class SessionPersistenceError(PersistenceError):
    """Credentials were valid but the refresh token could not be stored."""

    default_detail = "Login succeeded, but the session could not be saved"

    def __init__(self, detail: Optional[str] = None, **extra: Any):
        super().__init__(detail, authenticated=True, **extra)


class SigningError(QurekaError):
    status_code = 500
    default_detail = "Token signing is not configured"
