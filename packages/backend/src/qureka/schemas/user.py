"""Pydantic schemas for accounts.

Learn: Field constraints (min_length, ge) run before the handler, so
malformed bodies come back as 422 without touching the database.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    username: str = Field(min_length=1, max_length=50)
    password: str = Field(min_length=1)
    name: str = Field(min_length=1, max_length=100)
    age: int = Field(ge=1, le=150)
    gender: str = Field(min_length=1, max_length=20)
    phone: str = Field(min_length=1, max_length=30)
    email: Optional[str] = None


class UsernameCheck(BaseModel):
    username: str = ""


class UserRead(BaseModel):
    id: int
    username: str
    name: str
    email: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
