"""Users API — registration, username check, login.

Learn: Routes handle HTTP concerns (bodies, cookies, status codes);
AccountService and SessionManager hold the logic.
- POST /users/register        → create an account (registration-locked)
- POST /users/check-username  → is this username free?
- POST /users/login           → username/password → tokens + cookies
- GET  /users/me              → current user's profile (auth required)
"""

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from qureka.auth.cookies import apply_cookie_plan
from qureka.auth.dependencies import get_current_user
from qureka.auth.jwt import IdentityClaims, TokenCodec, get_token_codec
from qureka.auth.locks import RegistrationLock, get_registration_lock
from qureka.db.engine import get_db
from qureka.errors import ConflictError, NotFoundError
from qureka.schemas.auth import LoginRequest, LoginResponse
from qureka.schemas.user import RegisterRequest, UserRead, UsernameCheck
from qureka.services.account_service import AccountService
from qureka.services.credential_store import CredentialStore
from qureka.services.session_manager import SessionManager

router = APIRouter(prefix="/users")


def _accounts(
    db: AsyncSession = Depends(get_db),
    lock: RegistrationLock = Depends(get_registration_lock),
) -> AccountService:
    return AccountService(db, lock)


def _sessions(
    db: AsyncSession = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
) -> SessionManager:
    return SessionManager(db, codec)


# ─── Register ────────────────────────────────────────────


@router.post("/register", response_model=UserRead, status_code=201)
async def register(body: RegisterRequest, svc: AccountService = Depends(_accounts)):
    """Create a new account."""
    return await svc.register(
        username=body.username,
        password=body.password,
        name=body.name,
        age=body.age,
        gender=body.gender,
        phone=body.phone,
        email=body.email,
    )


@router.post("/check-username")
async def check_username(body: UsernameCheck, svc: AccountService = Depends(_accounts)):
    if not await svc.is_username_available(body.username):
        raise ConflictError("Username already in use")
    return {"available": True}


# ─── Login ───────────────────────────────────────────────


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest,
    response: Response,
    sessions: SessionManager = Depends(_sessions),
):
    """Login with username and password → tokens in body and cookies."""
    result = await sessions.login(body.username, body.password, body.remember_me)
    apply_cookie_plan(response, result.cookies)
    return LoginResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        user=UserRead.model_validate(result.user),
        remember_me=result.remember_me,
    )


# ─── Current user ────────────────────────────────────────


@router.get("/me", response_model=UserRead)
async def get_me(
    identity: IdentityClaims = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user = await CredentialStore(db).find_by_id(identity.subject_id)
    if user is None:
        raise NotFoundError("User not found")
    return user
