"""Auth API — token refresh, logout, verification.

Learn: Refresh and logout read the refresh token from (in order) the
Authorization header, the JSON body, or the refresh_token cookie, so
both browser clients (cookies) and API clients (headers/body) work.
- POST /auth/refresh-token → new access token
- POST /auth/logout        → revoke refresh token, clear cookies (always 200)
- GET  /auth/verify        → is my access token still good?
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from qureka.api.error_handling import error_response
from qureka.auth.cookies import REFRESH_COOKIE, apply_cookie_plan, clear_session_cookies
from qureka.auth.dependencies import (
    extract_token,
    get_current_user,
    get_current_user_optional,
)
from qureka.auth.jwt import IdentityClaims, TokenCodec, get_token_codec
from qureka.db.engine import get_db
from qureka.errors import AuthError, NotFoundError
from qureka.schemas.auth import (
    RefreshRequest,
    RefreshResponse,
    VerifiedUser,
    VerifyResponse,
)
from qureka.schemas.user import UserRead
from qureka.services.session_manager import SessionManager

router = APIRouter(prefix="/auth")


def _sessions(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> SessionManager:
    return SessionManager(db, codec)


# ─── Refresh ────────────────────────────────────────────


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    sessions: SessionManager = Depends(_sessions),
):
    """Exchange a refresh token for a new access token."""
    token = extract_token(request, REFRESH_COOKIE, body.refresh_token if body else None)
    try:
        result = await sessions.refresh(token)
    except (AuthError, NotFoundError) as e:
        # Dead session, make the browser forget it
        return error_response(e, cookies=clear_session_cookies())

    apply_cookie_plan(response, result.cookies)
    return RefreshResponse(
        access_token=result.access_token,
        user=UserRead.model_validate(result.user),
    )


# ─── Logout ─────────────────────────────────────────────


@router.post("/logout")
async def logout(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    identity: Optional[IdentityClaims] = Depends(get_current_user_optional),
    sessions: SessionManager = Depends(_sessions),
):
    """Revoke the session. Succeeds even if there is nothing to revoke."""
    token = extract_token(request, REFRESH_COOKIE, body.refresh_token if body else None)
    result = await sessions.logout(
        token=token,
        user_id=identity.subject_id if identity else None,
    )
    apply_cookie_plan(response, result.cookies)
    return {}


# ─── Verify ─────────────────────────────────────────────


@router.get("/verify", response_model=VerifyResponse)
async def verify(identity: IdentityClaims = Depends(get_current_user)):
    return VerifyResponse(
        user=VerifiedUser(
            id=identity.subject_id,
            username=identity.username,
            name=identity.display_name,
            remember_me=bool(identity.remember_me),
        )
    )
