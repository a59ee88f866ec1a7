"""Password and refresh-token hashing.

Learn: Uses bcrypt for salted one-way hashing. bcrypt automatically
handles salting and is deliberately slow, so every call here is meant
to run off the event loop (see the async wrappers at the bottom).

bcrypt only looks at the first 72 bytes of its input. Passwords are
truncated to that limit. Refresh tokens are JWTs whose first 72 bytes
are the same for every token of a given user, so they are SHA-256
digested first and the hex digest is what bcrypt sees.
"""

import asyncio
import hashlib

import bcrypt

from qureka.config import settings


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hash a password with bcrypt."""
    pw_bytes = password.encode("utf-8")[:72]
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(pw_bytes, salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its bcrypt hash."""
    try:
        pw_bytes = password.encode("utf-8")[:72]
        return bcrypt.checkpw(pw_bytes, password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def _token_digest(token: str) -> bytes:
    return hashlib.sha256(token.encode("utf-8")).hexdigest().encode("ascii")


def hash_token(token: str, rounds: int | None = None) -> str:
    """Salted hash of a refresh token for storage."""
    salt = bcrypt.gensalt(rounds=rounds or settings.bcrypt_rounds)
    return bcrypt.hashpw(_token_digest(token), salt).decode("utf-8")


def verify_token_hash(token: str, token_hash: str) -> bool:
    """Constant-time check of a refresh token against a stored hash."""
    try:
        return bcrypt.checkpw(_token_digest(token), token_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# ─── Async wrappers ──────────────────────────────────────


async def hash_password_async(password: str) -> str:
    return await asyncio.to_thread(hash_password, password)


async def verify_password_async(password: str, password_hash: str) -> bool:
    return await asyncio.to_thread(verify_password, password, password_hash)


async def hash_token_async(token: str) -> str:
    return await asyncio.to_thread(hash_token, token)


async def verify_token_hash_async(token: str, token_hash: str) -> bool:
    return await asyncio.to_thread(verify_token_hash, token, token_hash)
