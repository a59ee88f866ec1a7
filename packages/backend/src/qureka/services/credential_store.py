"""Credential store — user lookup, creation, and password checks.

Learn: The session layer only needs three things from here: resolve a
user by username or id, and check a password. Password hashing runs
in a worker thread (bcrypt is slow on purpose).
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qureka.auth.password import hash_password_async, verify_password_async
from qureka.db.models import User
from qureka.errors import ConflictError, PersistenceError


class CredentialStore:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def find_by_username(self, username: str) -> Optional[User]:
        try:
            result = await self.db.execute(
                select(User).where(User.username == username)
            )
        except SQLAlchemyError as e:
            raise PersistenceError("Could not look up user") from e
        return result.scalars().first()

    async def find_by_id(self, user_id: int) -> Optional[User]:
        try:
            return await self.db.get(User, user_id)
        except SQLAlchemyError as e:
            raise PersistenceError("Could not look up user") from e

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """Return the user if the password matches, else None."""
        user = await self.find_by_username(username)
        if user is None:
            return None
        if not await verify_password_async(password, user.password_hash):
            return None
        return user

    async def create(
        self,
        username: str,
        password: str,
        name: str,
        age: int,
        gender: str,
        phone: str,
        email: Optional[str] = None,
    ) -> User:
        user = User(
            username=username,
            password_hash=await hash_password_async(password),
            name=name,
            age=age,
            gender=gender,
            phone=phone,
            email=email or None,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(_duplicate_detail(str(e.orig))) from e
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Could not create user") from e
        return user


def _duplicate_detail(message: str) -> str:
    """Name the duplicated field from a unique-violation message."""
    message = message.lower()
    if "phone" in message:
        return "Phone number already registered"
    if "email" in message:
        return "Email already registered"
    if "username" in message:
        return "Username already registered"
    return "Already registered"
