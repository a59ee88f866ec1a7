"""Refresh token store — one hashed refresh token per user.

Learn: The raw refresh token is never stored. Each row holds a bcrypt
hash, and bcrypt salts every hash differently, so there is no way to
look a token up by value with an index. find_by_plaintext() therefore
loads every row and compares one by one. That is fine for a small user
base and is the known scaling limit of this design.

save() replaces rather than appends: the old row for the user is deleted
and the new one inserted in the same transaction. refresh_tokens.user_id
is unique, so two logins racing each other end with one winner and one
PersistenceError instead of two live rows.
"""

from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from qureka.auth.password import hash_token_async, verify_token_hash_async
from qureka.db.models import RefreshToken, as_utc, utcnow
from qureka.errors import PersistenceError, ValidationError

logger = structlog.get_logger()


class RefreshTokenStore:
    """Persistence for hashed refresh tokens."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def save(
        self, user_id: int, token: str, expires_at: datetime
    ) -> RefreshToken:
        """Store `token` as the user's only refresh token."""
        if not user_id:
            raise ValidationError("User id is required")
        if not token:
            raise ValidationError("Token value is required")
        if not expires_at:
            raise ValidationError("Expiry time is required")

        token_hash = await hash_token_async(token)
        row = RefreshToken(
            user_id=user_id,
            token_hash=token_hash,
            expires_at=as_utc(expires_at),
        )
        try:
            await self.db.execute(
                delete(RefreshToken).where(RefreshToken.user_id == user_id)
            )
            self.db.add(row)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error("refresh_token.save_failed", user_id=user_id, error=str(e))
            raise PersistenceError("Could not save refresh token") from e

        logger.debug("refresh_token.saved", user_id=user_id, token_id=row.id)
        return row

    async def find_by_plaintext(self, token: str) -> Optional[RefreshToken]:
        """Return the row whose hash matches `token`, or None."""
        if not token:
            return None
        try:
            result = await self.db.execute(select(RefreshToken))
            rows = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read refresh tokens") from e

        for row in rows:
            if await verify_token_hash_async(token, row.token_hash):
                return row
        return None

    async def delete_by_user(self, user_id: int) -> bool:
        """Delete the refresh token for a user. Returns True if a row went away."""
        if not user_id:
            raise ValidationError("User id is required")
        return await self._delete(RefreshToken.user_id == user_id) > 0

    async def delete_by_id(self, token_id: int) -> bool:
        return await self._delete(RefreshToken.id == token_id) > 0

    async def delete_by_value(self, token: str) -> bool:
        """Delete the row matching `token`. Returns False if nothing matched."""
        row = await self.find_by_plaintext(token)
        if row is None:
            return False
        return await self.delete_by_id(row.id)

    async def delete_expired(self) -> int:
        """Delete every row past its expiry. Returns the number removed."""
        try:
            result = await self.db.execute(
                select(RefreshToken.id).where(RefreshToken.expires_at < utcnow())
            )
            expired_ids = list(result.scalars().all())
        except SQLAlchemyError as e:
            raise PersistenceError("Could not read refresh tokens") from e
        if not expired_ids:
            return 0

        # Delete by id so in-session rows (naive datetimes on SQLite) are
        # matched on the key, never compared against an aware cutoff
        removed = await self._delete(RefreshToken.id.in_(expired_ids))
        if removed:
            logger.info("refresh_token.expired_purged", count=removed)
        return removed

    async def _delete(self, condition) -> int:
        try:
            result = await self.db.execute(delete(RefreshToken).where(condition))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise PersistenceError("Could not delete refresh token") from e
        return result.rowcount or 0
