"""JWT token creation and verification.

Learn: JWT (JSON Web Token) provides stateless authentication.
- Access token: short-lived (60min), used for API calls
- Refresh token: long-lived (7 or 30 days), exchanged for new access tokens

Both kinds carry the same identity claims. They differ only in the
secret that signs them and how long they live, so an access token can
never be replayed as a refresh token (the signature won't verify).
"""

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Literal, Optional

import jwt

from qureka.config import Settings, settings
from qureka.errors import InvalidTokenError, SigningError, TokenExpiredError

TokenKind = Literal["access", "refresh"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class IdentityClaims:
    """The identity bundle signed into every token."""

    subject_id: int
    username: str
    display_name: str
    remember_me: Optional[bool] = None

    def to_payload(self) -> dict:
        payload = {
            "sub": str(self.subject_id),
            "username": self.username,
            "name": self.display_name,
        }
        if self.remember_me is not None:
            payload["remember_me"] = self.remember_me
        return payload

    @classmethod
    def from_payload(cls, payload: dict) -> "IdentityClaims":
        try:
            return cls(
                subject_id=int(payload["sub"]),
                username=payload["username"],
                display_name=payload["name"],
                remember_me=payload.get("remember_me"),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidTokenError(f"Invalid token: missing claim {e}")


class TokenCodec:
    """Signs and verifies access/refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta = timedelta(hours=1),
        refresh_ttl: timedelta = timedelta(days=7),
        algorithm: str = "HS256",
        clock: Callable[[], datetime] = utcnow,
    ):
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.algorithm = algorithm
        self.clock = clock

    @classmethod
    def from_settings(cls, config: Settings) -> "TokenCodec":
        return cls(
            access_secret=config.access_token_secret,
            refresh_secret=config.refresh_token_secret,
            access_ttl=timedelta(minutes=config.access_token_expire_minutes),
            refresh_ttl=timedelta(days=config.refresh_token_expire_days),
            algorithm=config.jwt_algorithm,
        )

    def issue_access(self, claims: IdentityClaims) -> str:
        """Create a signed access token."""
        return self._sign(claims, self._secret("access"), self.access_ttl)

    def issue_refresh(
        self, claims: IdentityClaims, ttl: Optional[timedelta] = None
    ) -> str:
        """Create a signed refresh token. `ttl` overrides the default lifetime."""
        return self._sign(claims, self._secret("refresh"), ttl or self.refresh_ttl)

    def verify(self, token: str, kind: TokenKind = "access") -> IdentityClaims:
        """Verify and decode a token of the given kind.

        Raises TokenExpiredError when the signature is good but the token
        is past its exp, InvalidTokenError for anything else.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Token has expired")
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError(f"Invalid token: {e}")
        return IdentityClaims.from_payload(payload)

    def _secret(self, kind: TokenKind) -> str:
        secret = self.access_secret if kind == "access" else self.refresh_secret
        if not secret:
            raise SigningError(f"No {kind} token secret configured")
        return secret

    def _sign(self, claims: IdentityClaims, secret: str, ttl: timedelta) -> str:
        now = self.clock()
        payload = {
            **claims.to_payload(),
            "iat": now,
            "exp": now + ttl,
            # Two logins in the same second must still yield distinct tokens
            "jti": secrets.token_hex(16),
        }
        return jwt.encode(payload, secret, algorithm=self.algorithm)


# Singleton built from env settings
token_codec = TokenCodec.from_settings(settings)


def get_token_codec() -> TokenCodec:
    """FastAPI dependency — overridable in tests."""
    return token_codec
