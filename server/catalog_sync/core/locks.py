"""Cross-process mutual exclusion for catalog sync runs."""

import logging
from typing import Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

logger = logging.getLogger(__name__)


class DistributedLock(Protocol):
    """
    Named lock shared by every deployed instance.

    ``try_acquire`` never waits: it answers immediately whether the caller now
    holds the lock. ``release`` must be safe to call on every exit path.
    """

    async def try_acquire(self, key: str) -> bool:
        ...

    async def release(self, key: str) -> None:
        ...


class PostgresAdvisoryLock:
    """
    Session-level PostgreSQL advisory lock.

    Advisory locks belong to the database session that took them, so the
    connection used for ``pg_try_advisory_lock`` is checked out of the pool
    and held until ``release`` unlocks and returns it.
    """

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self._connections: dict[str, AsyncConnection] = {}

    async def try_acquire(self, key: str) -> bool:
        if key in self._connections:
            return False

        conn = await self.engine.connect()
        try:
            result = await conn.execute(
                text("SELECT pg_try_advisory_lock(hashtext(:key))"), {"key": key}
            )
            acquired = bool(result.scalar())
            # Leave no transaction open on the held connection
            await conn.commit()
        except Exception as e:
            await conn.close()
            logger.warning(
                "Failed to acquire advisory lock",
                extra={"lock_key": key, "error": str(e)}
            )
            return False

        if not acquired:
            await conn.close()
            return False

        self._connections[key] = conn
        return True

    async def release(self, key: str) -> None:
        conn = self._connections.pop(key, None)
        if conn is None:
            return
        try:
            await conn.execute(text("SELECT pg_advisory_unlock(hashtext(:key))"), {"key": key})
            await conn.commit()
        except Exception as e:
            logger.warning(
                "Failed to release advisory lock",
                extra={"lock_key": key, "error": str(e)}
            )
        finally:
            # Closing the session releases any advisory lock it still holds
            await conn.close()


class InProcessLock:
    """
    Keyed lock for single-process deployments (SQLite, local development).

    Held keys are tracked on the class so every instance in the process
    agrees on ownership. Check-and-set happens without an await, which makes
    it atomic on the event loop.
    """

    _held: set[str] = set()

    async def try_acquire(self, key: str) -> bool:
        if key in self._held:
            return False
        self._held.add(key)
        return True

    async def release(self, key: str) -> None:
        self._held.discard(key)


def build_distributed_lock(engine: AsyncEngine) -> DistributedLock:
    """Pick the lock backend matching the engine's dialect."""
    if engine.dialect.name == "postgresql":
        return PostgresAdvisoryLock(engine)
    logger.info(
        "Advisory locks unavailable for dialect, using in-process sync lock",
        extra={"dialect": engine.dialect.name}
    )
    return InProcessLock()
