"""Maintenance worker — periodic lock sweep and expired-token purge.

Learn: Runs as a long-lived task in the FastAPI lifespan. Two jobs on
independent intervals:
- registration lock sweep (every 30s): frees lock entries whose
  auto-release timer never fired
- refresh token purge (hourly): deletes rows past expires_at, whether or
  not anyone ever presents them again

Each purge gets its own DB session. Failures are logged and the loop
keeps going.

Usage:
    worker = MaintenanceWorker(registration_lock)
    asyncio.create_task(worker.run_loop())
"""

import asyncio
import time

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from qureka.auth.locks import RegistrationLock
from qureka.db.engine import async_session_factory
from qureka.services.refresh_token_store import RefreshTokenStore

logger = structlog.get_logger()


async def purge_expired_tokens(
    session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
) -> int:
    """Delete expired refresh tokens in a fresh session. Returns count."""
    async with session_factory() as db:
        return await RefreshTokenStore(db).delete_expired()


class MaintenanceWorker:
    """Background worker for lock and token housekeeping."""

    def __init__(
        self,
        lock: RegistrationLock,
        lock_sweep_interval: float = 30.0,
        token_purge_interval: float = 3600.0,
        session_factory: async_sessionmaker[AsyncSession] = async_session_factory,
    ):
        self.lock = lock
        self.lock_sweep_interval = lock_sweep_interval
        self.token_purge_interval = token_purge_interval
        self.session_factory = session_factory
        self.poll_interval = min(lock_sweep_interval, token_purge_interval)
        self._running = False
        self._last_sweep = 0.0
        self._last_purge = 0.0

    async def run_loop(self) -> None:
        """Main worker loop — run whichever job is due, then sleep."""
        self._running = True
        logger.info(
            "maintenance.started",
            lock_sweep_interval=self.lock_sweep_interval,
            token_purge_interval=self.token_purge_interval,
        )
        self._last_sweep = self._last_purge = time.monotonic()

        while self._running:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("maintenance.error")

    async def tick(self, now: float | None = None) -> None:
        """Run the jobs whose interval has elapsed."""
        now = time.monotonic() if now is None else now

        if now - self._last_sweep >= self.lock_sweep_interval:
            self._last_sweep = now
            self.lock.sweep()

        if now - self._last_purge >= self.token_purge_interval:
            self._last_purge = now
            removed = await purge_expired_tokens(self.session_factory)
            logger.info("maintenance.tokens_purged", removed=removed)

    def stop(self) -> None:
        """Signal the worker to stop."""
        self._running = False
        logger.info("maintenance.stopping")
