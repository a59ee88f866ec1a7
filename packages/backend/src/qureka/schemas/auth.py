"""Pydantic schemas for login, refresh, and logout."""

from typing import Optional

from pydantic import BaseModel

from qureka.schemas.user import UserRead


class LoginRequest(BaseModel):
    username: str = ""
    password: str = ""
    remember_me: bool = False


class LoginResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    user: UserRead
    remember_me: bool


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class RefreshResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserRead


class VerifiedUser(BaseModel):
    id: int
    username: str
    name: str
    remember_me: bool = False


class VerifyResponse(BaseModel):
    user: VerifiedUser
