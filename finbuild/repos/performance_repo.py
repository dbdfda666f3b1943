"""Performance repository -- append-only writes and reads for prompt_performance."""

from datetime import datetime
from uuid import UUID

from finbuild.repos.db import PoolFactory, get_pool

_COLUMNS = (
    "id, template_id, conversation_id, input_tokens, output_tokens, total_tokens, "
    "latency_ms, success, error_details, created_at"
)


class PerformanceRepo:
    """asyncpg-backed telemetry storage.  There is no update or delete."""

    def __init__(self, pool_factory: PoolFactory = get_pool) -> None:
        self._get_pool = pool_factory

    async def insert(
        self,
        template_id: UUID,
        conversation_id: str,
        input_tokens: int,
        output_tokens: int,
        total_tokens: int,
        latency_ms: float,
        success: bool,
        error_details: str | None = None,
    ) -> dict:
        pool = await self._get_pool()
        row = await pool.fetchrow(
            f"""
            INSERT INTO prompt_performance
                (template_id, conversation_id, input_tokens, output_tokens,
                 total_tokens, latency_ms, success, error_details)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
            RETURNING {_COLUMNS}
            """,
            template_id,
            conversation_id,
            input_tokens,
            output_tokens,
            total_tokens,
            latency_ms,
            success,
            error_details,
        )
        return dict(row)

    async def fetch_recent(
        self,
        *,
        template_id: UUID | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> list[dict]:
        """Newest records first, optionally filtered by template and time range."""
        pool = await self._get_pool()
        rows = await pool.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM prompt_performance
            WHERE ($1::uuid IS NULL OR template_id = $1)
              AND ($2::timestamptz IS NULL OR created_at >= $2)
              AND ($3::timestamptz IS NULL OR created_at <= $3)
            ORDER BY created_at DESC
            LIMIT $4
            """,
            template_id,
            start,
            end,
            limit,
        )
        return [dict(r) for r in rows]
