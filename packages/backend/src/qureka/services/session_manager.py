"""Session manager — login, refresh, logout.

Learn: A user's session moves through three transitions:

    anonymous --login--> authenticated --refresh--> authenticated
                              |
                              +--logout--> anonymous

login()   checks credentials, issues an access + refresh token pair and
          stores the refresh token's hash (replacing any older one, so a
          second device's login signs the first one out).
refresh() trades a valid, still-stored refresh token for a new access
          token. The refresh token itself is NOT rotated.
logout()  deletes the stored refresh token. It never fails from the
          caller's point of view; cookies are always cleared.

The stored expires_at wins over the token's own exp: a row that has
expired is deleted and the refresh rejected even if the JWT would still
verify.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from qureka.auth.cookies import (
    CookiePlan,
    access_cookie,
    clear_session_cookies,
    session_cookie_plan,
)
from qureka.auth.jwt import IdentityClaims, TokenCodec
from qureka.config import Settings, settings
from qureka.db.models import User, utcnow
from qureka.errors import (
    AuthError,
    InvalidCredentialsError,
    InvalidTokenError,
    NotFoundError,
    PersistenceError,
    SessionPersistenceError,
    TokenExpiredError,
    ValidationError,
)
from qureka.services.credential_store import CredentialStore
from qureka.services.refresh_token_store import RefreshTokenStore

logger = structlog.get_logger()


@dataclass
class LoginResult:
    access_token: str
    refresh_token: str
    user: User
    remember_me: bool
    cookies: CookiePlan


@dataclass
class RefreshResult:
    access_token: str
    user: User
    cookies: CookiePlan


@dataclass
class LogoutResult:
    revoked: bool
    cookies: CookiePlan


class SessionManager:
    """Orchestrates the token lifecycle for one request."""

    def __init__(
        self,
        db: AsyncSession,
        codec: TokenCodec,
        config: Settings = settings,
    ):
        self.db = db
        self.codec = codec
        self.config = config
        self.users = CredentialStore(db)
        self.tokens = RefreshTokenStore(db)

    def refresh_ttl(self, remember_me: bool) -> timedelta:
        days = (
            self.config.remember_me_expire_days
            if remember_me
            else self.config.refresh_token_expire_days
        )
        return timedelta(days=days)

    # ─── Login ──────────────────────────────────────────

    async def login(
        self, username: str, password: str, remember_me: bool = False
    ) -> LoginResult:
        if not username or not password:
            raise ValidationError("Username and password are both required")

        user = await self.users.authenticate(username, password)
        if user is None:
            logger.debug("session.login_rejected", username=username)
            raise InvalidCredentialsError()

        claims = IdentityClaims(
            subject_id=user.id,
            username=user.username,
            display_name=user.name,
            remember_me=remember_me,
        )
        refresh_ttl = self.refresh_ttl(remember_me)
        access_token = self.codec.issue_access(claims)
        refresh_token = self.codec.issue_refresh(claims, ttl=refresh_ttl)

        try:
            await self.tokens.save(user.id, refresh_token, utcnow() + refresh_ttl)
        except PersistenceError as e:
            logger.error("session.persist_failed", user_id=user.id, error=str(e))
            raise SessionPersistenceError() from e

        logger.info("session.login_succeeded", user_id=user.id, remember_me=remember_me)

        return LoginResult(
            access_token=access_token,
            refresh_token=refresh_token,
            user=user,
            remember_me=remember_me,
            cookies=session_cookie_plan(
                access_token,
                refresh_token,
                remember_me,
                access_max_age=int(self.codec.access_ttl.total_seconds()),
                refresh_max_age=int(refresh_ttl.total_seconds()),
            ),
        )

    # ─── Refresh ────────────────────────────────────────

    async def refresh(self, token: Optional[str]) -> RefreshResult:
        if not token:
            raise ValidationError("Refresh token not provided")

        try:
            claims = self.codec.verify(token, "refresh")
        except TokenExpiredError:
            logger.debug("session.refresh_rejected", reason="expired")
            raise
        except InvalidTokenError as e:
            logger.debug("session.refresh_rejected", reason="invalid")
            raise AuthError("Invalid or expired refresh token") from e

        row = await self.tokens.find_by_plaintext(token)
        if row is None:
            logger.debug("session.refresh_rejected", reason="not_stored")
            raise AuthError("Invalid or expired refresh token")

        if row.is_expired():
            await self.tokens.delete_by_id(row.id)
            logger.debug("session.refresh_rejected", reason="stored_expiry")
            raise TokenExpiredError("Refresh token has expired")

        user = await self.users.find_by_id(claims.subject_id)
        if user is None:
            logger.warning("session.refresh_unknown_user", user_id=claims.subject_id)
            raise NotFoundError("User not found")

        access_token = self.codec.issue_access(
            IdentityClaims(
                subject_id=user.id,
                username=user.username,
                display_name=user.name,
                remember_me=claims.remember_me,
            )
        )
        logger.debug("session.refreshed", user_id=user.id)

        return RefreshResult(
            access_token=access_token,
            user=user,
            cookies=CookiePlan(
                set=[
                    access_cookie(
                        access_token, int(self.codec.access_ttl.total_seconds())
                    )
                ]
            ),
        )

    # ─── Logout ─────────────────────────────────────────

    async def logout(
        self, token: Optional[str] = None, user_id: Optional[int] = None
    ) -> LogoutResult:
        """Revoke the stored refresh token. Always succeeds.

        A presented refresh token is revoked by value and nothing else: a
        stale token from one device must not end another device's session.
        The authenticated user's id is used only when no refresh token came
        with the request (none at all, or the header carried the access
        token instead).
        """
        revoked = False
        try:
            if token and self._is_refresh_token(token):
                revoked = await self.tokens.delete_by_value(token)
            elif user_id:
                revoked = await self.tokens.delete_by_user(user_id)
        except PersistenceError as e:
            logger.warning("session.logout_revoke_failed", user_id=user_id, error=str(e))

        logger.info("session.logged_out", user_id=user_id, revoked=revoked)
        return LogoutResult(revoked=revoked, cookies=clear_session_cookies())

    def _is_refresh_token(self, token: str) -> bool:
        """True if `token` is signed with the refresh secret, expired or not."""
        try:
            self.codec.verify(token, "refresh")
        except TokenExpiredError:
            return True
        except InvalidTokenError:
            return False
        return True
