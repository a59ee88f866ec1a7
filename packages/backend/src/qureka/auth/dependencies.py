"""Auth gate and FastAPI auth dependencies.

Learn: These are used as Depends() in route handlers to extract and
validate the current user from the request. The gate is stateless: it
checks the access token's signature and expiry and never touches the
refresh token table.

It reports three different failures so the client knows what to do:
- no token at all         -> 401                 (log in)
- signature ok, expired   -> 401 {expired: true} (call /auth/refresh-token)
- anything else           -> 403                 (don't retry)

The access token is read from the Authorization header, then the
access_token cookie. A token in the JSON body is not accepted here; only
the refresh-token lookup (refresh and logout) reads the body.
"""

from typing import Optional

import structlog
from fastapi import Depends, Request

from qureka.auth.cookies import ACCESS_COOKIE
from qureka.auth.jwt import IdentityClaims, TokenCodec, get_token_codec
from qureka.errors import AuthError, MissingTokenError

logger = structlog.get_logger()


class AuthGate:
    """Request-time access token check."""

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def authorize(self, token: Optional[str]) -> IdentityClaims:
        """Return the identity in `token` or raise an AuthError subclass."""
        if not token:
            raise MissingTokenError()
        claims = self.codec.verify(token, "access")
        logger.debug(
            "auth.token_verified",
            user_id=claims.subject_id,
            remember_me=bool(claims.remember_me),
        )
        return claims


def bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("Authorization")
    if authorization and authorization.startswith("Bearer "):
        return authorization[7:] or None
    return None


def extract_token(
    request: Request, cookie_name: str, body_value: Optional[str] = None
) -> Optional[str]:
    """Find a token in the Authorization header, the JSON body, or a cookie.

    Checked in that order; the first one present wins.
    """
    return bearer_token(request) or body_value or request.cookies.get(cookie_name)


def get_auth_gate(codec: TokenCodec = Depends(get_token_codec)) -> AuthGate:
    return AuthGate(codec)


async def get_current_user(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
) -> IdentityClaims:
    """Resolve the caller's identity (required — raises on failure).

    Learn: This is the "hard" auth dependency. Protected routers add it
    at include_router level in api/__init__.py.
    """
    token = bearer_token(request) or request.cookies.get(ACCESS_COOKIE)
    try:
        return gate.authorize(token)
    except AuthError as e:
        logger.debug("auth.rejected", path=request.url.path, reason=type(e).__name__)
        raise


async def get_current_user_optional(
    request: Request,
    gate: AuthGate = Depends(get_auth_gate),
) -> Optional[IdentityClaims]:
    """Resolve the caller's identity if possible, else None.

    Learn: This is the "soft" auth dependency used by logout — a stale
    or broken access token must not stop a user from logging out.
    """
    try:
        return gate.authorize(bearer_token(request))
    except AuthError:
        return None
