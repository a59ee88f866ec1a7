"""Registration lock — per-username mutual exclusion with auto-expiry.

Learn: Two sign-up requests for the same username can both pass the
"is this username free?" check before either one inserts. This lock
closes that window inside one process:

    hold = lock.acquire(username)
    if hold is None:
        -> 429, try again shortly
    try:
        check uniqueness, insert user
    finally:
        lock.release(username, hold)

acquire() never awaits, so on a single event loop no other request can
slip in between the membership test and the insert into the map.

Every entry auto-releases after `timeout` seconds (via loop.call_later)
so a crashed or disconnected handler cannot wedge a username forever.
sweep() is the backstop for entries whose timer was never scheduled.

acquire() hands back a hold token and release(key, hold) only frees the
entry that token belongs to. A handler that outlived its timeout cannot
free the hold a later request has since taken.

This only serializes requests within ONE process. Across instances the
database unique constraint on users.username is the real guarantee.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from qureka.config import settings

logger = structlog.get_logger()


@dataclass
class LockEntry:
    key: str
    hold: str
    acquired_at: float
    timer: Optional[asyncio.TimerHandle] = None


class RegistrationLock:
    """In-memory keyed lock with a bounded hold time."""

    def __init__(
        self,
        timeout: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.timeout = timeout
        self.clock = clock
        self._entries: dict[str, LockEntry] = {}

    def acquire(self, key: str) -> Optional[str]:
        """Try to take the lock for `key`.

        Returns a hold token to pass to release(), or None if already held.
        """
        entry = self._entries.get(key)
        if entry is not None:
            if self.clock() - entry.acquired_at <= self.timeout:
                return None
            # Stale entry whose timer never fired
            self.release(key)

        hold = uuid.uuid4().hex
        self._entries[key] = LockEntry(
            key=key,
            hold=hold,
            acquired_at=self.clock(),
            timer=self._schedule_release(key, hold),
        )
        return hold

    def release(self, key: str, hold: Optional[str] = None) -> bool:
        """Release the lock for `key`. Safe to call when not held.

        With `hold`, only the entry taken with that token is released.
        Without it the entry is released whoever holds it. Returns True if
        an entry went away.
        """
        entry = self._entries.get(key)
        if entry is None:
            return False
        if hold is not None and entry.hold != hold:
            logger.debug("registration_lock.release_skipped", key=key)
            return False
        del self._entries[key]
        if entry.timer is not None:
            entry.timer.cancel()
        return True

    def sweep(self) -> int:
        """Release every entry older than the timeout. Returns how many."""
        now = self.clock()
        stale = [
            key
            for key, entry in self._entries.items()
            if now - entry.acquired_at > self.timeout
        ]
        for key in stale:
            self.release(key)
        if stale:
            logger.info("registration_lock.swept", released=len(stale))
        return len(stale)

    def held(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def _schedule_release(self, key: str, hold: str) -> Optional[asyncio.TimerHandle]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop (sync caller): sweep() and the staleness check cover it
            return None
        return loop.call_later(self.timeout, self._expire, key, hold)

    def _expire(self, key: str, hold: str) -> None:
        entry = self._entries.get(key)
        if entry is not None and entry.hold == hold:
            logger.warning("registration_lock.auto_released", key=key)
            del self._entries[key]


# Process-wide instance used by the registration route
registration_lock = RegistrationLock(timeout=settings.registration_lock_timeout)


def get_registration_lock() -> RegistrationLock:
    """FastAPI dependency — swap for a distributed lock when scaling out."""
    return registration_lock
