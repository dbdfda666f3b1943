"""Shared asyncpg pool for the template, performance and project stores.

Repositories are handed a *pool factory* (``get_pool`` unless a test swaps
it) and await it per query, so they can be built before Postgres is up.
The pool they get back retries a query when its connection was dropped
underneath it, which hosted Postgres does to idle connections.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import asyncpg

from finbuild.config import settings

logger = logging.getLogger(__name__)

_DROPPED_CONNECTION = (
    asyncpg.ConnectionDoesNotExistError,
    asyncpg.InterfaceError,
    ConnectionResetError,
)
_ATTEMPTS = 4
_CONNECT_TIMEOUT = 20


def _backoff(attempt: int) -> float:
    return min(0.5 * (2 ** attempt), 5.0)


class ResilientPool:
    """``asyncpg.Pool`` with the query shorthands retried on a dropped connection.

    Anything other than fetch/fetchrow/fetchval/execute falls through to the
    real pool untouched.
    """

    __slots__ = ("_pool",)

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def fetch(self, query: str, *args: Any) -> list:
        return await self._run("fetch", query, args)

    async def fetchrow(self, query: str, *args: Any):
        return await self._run("fetchrow", query, args)

    async def fetchval(self, query: str, *args: Any):
        return await self._run("fetchval", query, args)

    async def execute(self, query: str, *args: Any) -> str:
        return await self._run("execute", query, args)

    async def _run(self, method: str, query: str, args: tuple):
        call = getattr(self._pool, method)
        attempt = 0
        while True:
            try:
                return await call(query, *args)
            except _DROPPED_CONNECTION as exc:
                attempt += 1
                if attempt >= _ATTEMPTS:
                    logger.error("Giving up on %s after %d attempts: %s", method, attempt, exc)
                    _state.forget()
                    raise
                delay = _backoff(attempt - 1)
                logger.warning(
                    "Connection dropped during %s (attempt %d/%d): %s, retrying in %.1fs",
                    method, attempt, _ATTEMPTS, exc, delay,
                )
                await asyncio.sleep(delay)

    def __getattr__(self, name: str):
        return getattr(self._pool, name)


PoolFactory = Callable[[], Awaitable[ResilientPool]]


@dataclass
class _PoolState:
    raw: asyncpg.Pool | None = None
    loop: asyncio.AbstractEventLoop | None = None
    wrapped: ResilientPool | None = None

    def forget(self) -> None:
        self.raw = None
        self.loop = None
        self.wrapped = None


_state = _PoolState()


async def get_pool() -> ResilientPool:
    """Return the process-wide pool, creating it on first use.

    A pool created on a different event loop (a previous test, a restarted
    server) is terminated and replaced.
    """
    loop = asyncio.get_running_loop()
    if _state.raw is not None and _state.loop is not loop:
        _state.raw.terminate()
        _state.forget()
    if _state.wrapped is None:
        raw = await asyncio.wait_for(
            asyncpg.create_pool(
                dsn=settings.DATABASE_URL,
                min_size=settings.DB_POOL_MIN_SIZE,
                max_size=settings.DB_POOL_MAX_SIZE,
                command_timeout=30,
                server_settings={"statement_timeout": "15000"},
            ),
            timeout=_CONNECT_TIMEOUT,
        )
        _state.raw, _state.loop, _state.wrapped = raw, loop, ResilientPool(raw)
        logger.info(
            "Database pool ready (min=%d, max=%d)",
            settings.DB_POOL_MIN_SIZE, settings.DB_POOL_MAX_SIZE,
        )
    return _state.wrapped


async def close_pool() -> None:
    """Close the pool at shutdown.  A no-op when it was never opened."""
    if _state.raw is not None:
        await _state.raw.close()
        _state.forget()
