"""Account service — sign-up guarded by the registration lock.

Learn: The lock is taken before the uniqueness check and released in a
finally block, so every exit path (success, duplicate, DB error) frees
it. If the handler dies mid-flight the lock's own timeout frees it.
"""

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from qureka.auth.locks import RegistrationLock
from qureka.db.models import User
from qureka.errors import ConflictError, RegistrationInProgressError, ValidationError
from qureka.services.credential_store import CredentialStore

logger = structlog.get_logger()


class AccountService:
    """Business logic for account registration."""

    def __init__(self, db: AsyncSession, lock: RegistrationLock):
        self.db = db
        self.lock = lock
        self.users = CredentialStore(db)

    async def is_username_available(self, username: str) -> bool:
        if not username:
            raise ValidationError("Username is required")
        return await self.users.find_by_username(username) is None

    async def register(
        self,
        username: str,
        password: str,
        name: str,
        age: int,
        gender: str,
        phone: str,
        email: Optional[str] = None,
    ) -> User:
        if not all([username, password, name, age, gender, phone]):
            raise ValidationError(
                "Missing required fields: username, password, name, age, gender and phone"
            )

        hold = self.lock.acquire(username)
        if hold is None:
            logger.warning("registration.blocked_in_flight", username=username)
            raise RegistrationInProgressError()

        try:
            if await self.users.find_by_username(username) is not None:
                raise ConflictError("Username already registered")

            user = await self.users.create(
                username=username,
                password=password,
                name=name,
                age=age,
                gender=gender,
                phone=phone,
                email=email,
            )
        finally:
            self.lock.release(username, hold)

        logger.info("registration.completed", user_id=user.id, username=username)
        return user
