"""Prompt component repository -- the prompt_components table."""

import asyncpg

from finbuild.errors import ComponentExistsError
from finbuild.repos.db import PoolFactory, get_pool

_COLUMNS = "id, name, content, category, description, created_at, updated_at"


class PromptComponentRepo:
    """asyncpg-backed storage for named prompt fragments."""

    def __init__(self, pool_factory: PoolFactory = get_pool) -> None:
        self._get_pool = pool_factory

    async def insert(self, name: str, content: str, category: str, description: str = "") -> dict:
        """Raises :class:`ComponentExistsError` when ``name`` is taken."""
        pool = await self._get_pool()
        try:
            row = await pool.fetchrow(
                f"""
                INSERT INTO prompt_components (name, content, category, description)
                VALUES ($1, $2, $3, $4)
                RETURNING {_COLUMNS}
                """,
                name,
                content,
                category,
                description,
            )
        except asyncpg.UniqueViolationError as exc:
            raise ComponentExistsError(name) from exc
        return dict(row)

    async def list(self, *, category: str | None = None) -> list[dict]:
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM prompt_components
            WHERE ($1::text IS NULL OR category = $1)
            ORDER BY name
            """,
            category,
        )
        return [dict(r) for r in rows]
