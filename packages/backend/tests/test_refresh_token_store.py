"""Refresh token store tests — hashing, one-row-per-user, deletes."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from qureka.db.models import RefreshToken, utcnow
from qureka.errors import PersistenceError, ValidationError
from qureka.services.refresh_token_store import RefreshTokenStore


def _future(days: int = 7):
    return utcnow() + timedelta(days=days)


async def _count(db) -> int:
    result = await db.execute(select(func.count()).select_from(RefreshToken))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_save_stores_hash_not_plaintext(db_session, make_user):
    user = await make_user()
    store = RefreshTokenStore(db_session)

    row = await store.save(user.id, "token-a", _future())

    assert row.id is not None
    assert row.token_hash != "token-a"
    assert row.token_hash.startswith("$2")


@pytest.mark.asyncio
async def test_save_replaces_previous_token(db_session, make_user):
    user = await make_user()
    store = RefreshTokenStore(db_session)

    await store.save(user.id, "token-a", _future())
    await store.save(user.id, "token-b", _future())

    assert await store.find_by_plaintext("token-a") is None
    found = await store.find_by_plaintext("token-b")
    assert found is not None and found.user_id == user.id
    assert await _count(db_session) == 1


@pytest.mark.asyncio
async def test_tokens_of_different_users_coexist(db_session, make_user):
    alice = await make_user("alice")
    bob = await make_user("bob")
    store = RefreshTokenStore(db_session)

    await store.save(alice.id, "alice-token", _future())
    await store.save(bob.id, "bob-token", _future())

    assert (await store.find_by_plaintext("alice-token")).user_id == alice.id
    assert (await store.find_by_plaintext("bob-token")).user_id == bob.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "user_id,token,expires",
    [
        (None, "token", _future()),
        (1, "", _future()),
        (1, "token", None),
    ],
)
async def test_save_requires_all_inputs(db_session, user_id, token, expires):
    with pytest.raises(ValidationError):
        await RefreshTokenStore(db_session).save(user_id, token, expires)


@pytest.mark.asyncio
async def test_find_unknown_or_empty(db_session):
    store = RefreshTokenStore(db_session)
    assert await store.find_by_plaintext("never-issued") is None
    assert await store.find_by_plaintext("") is None


@pytest.mark.asyncio
async def test_delete_by_value(db_session, make_user):
    user = await make_user()
    store = RefreshTokenStore(db_session)
    await store.save(user.id, "token-a", _future())

    assert await store.delete_by_value("token-a") is True
    assert await store.delete_by_value("token-a") is False
    assert await _count(db_session) == 0


@pytest.mark.asyncio
async def test_delete_by_user_is_idempotent(db_session, make_user):
    user = await make_user()
    store = RefreshTokenStore(db_session)
    await store.save(user.id, "token-a", _future())

    assert await store.delete_by_user(user.id) is True
    assert await store.delete_by_user(user.id) is False


@pytest.mark.asyncio
async def test_delete_expired_counts_only_expired(db_session, make_user):
    store = RefreshTokenStore(db_session)
    stale_1 = await make_user()
    stale_2 = await make_user()
    live = await make_user()
    await store.save(stale_1.id, "stale-1", utcnow() - timedelta(minutes=1))
    await store.save(stale_2.id, "stale-2", utcnow() - timedelta(days=1))
    await store.save(live.id, "live", _future())

    assert await store.delete_expired() == 2
    assert await store.delete_expired() == 0
    assert await store.find_by_plaintext("live") is not None


@pytest.mark.asyncio
async def test_save_failure_raises_persistence_error(db_session, make_user, monkeypatch):
    user = await make_user()

    async def broken_execute(*args, **kwargs):
        raise SQLAlchemyError("database is down")

    monkeypatch.setattr(db_session, "execute", broken_execute)

    with pytest.raises(PersistenceError):
        await RefreshTokenStore(db_session).save(user.id, "token-a", _future())
