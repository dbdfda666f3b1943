"""Performance recorder -- telemetry for every template invocation.

Recording must never break a conversation: ``record`` logs and swallows
any storage failure, and ``submit`` runs it as a background task so the
reply is not held up by the telemetry write.
"""

import asyncio
import logging
from datetime import datetime
from uuid import UUID

from finbuild.repos.performance_repo import PerformanceRepo
from finbuild.services.prompt.models import PerformanceRecord, PerformanceStats, TokenUsage

logger = logging.getLogger(__name__)


class PerformanceRecorder:
    """Append-only writer and reader of :class:`PerformanceRecord` rows."""

    def __init__(self, repo: PerformanceRepo) -> None:
        self._repo = repo
        self._pending: set[asyncio.Task] = set()

    async def record(
        self,
        template_id: UUID | None,
        conversation_id: str | None,
        usage: TokenUsage | dict | None,
        latency_ms: float = 0.0,
        success: bool = True,
        error_details: str | None = None,
    ) -> PerformanceRecord | None:
        """Persist one record.  Returns None instead of raising."""
        if not template_id or not conversation_id:
            logger.warning(
                "Skipping performance record: template_id=%s conversation_id=%s",
                template_id, conversation_id,
            )
            return None

        usage = _coerce_usage(usage)
        try:
            row = await self._repo.insert(
                template_id=template_id,
                conversation_id=conversation_id,
                input_tokens=usage.input,
                output_tokens=usage.output,
                total_tokens=usage.total,
                latency_ms=float(latency_ms or 0.0),
                success=success,
                error_details=error_details,
            )
        except Exception:
            logger.exception(
                "Failed to record performance for template %s (conversation %s)",
                template_id, conversation_id,
            )
            return None
        return PerformanceRecord.from_row(row)

    def submit(
        self,
        template_id: UUID | None,
        conversation_id: str | None,
        usage: TokenUsage | dict | None,
        latency_ms: float = 0.0,
        success: bool = True,
        error_details: str | None = None,
    ) -> asyncio.Task:
        """Schedule ``record`` without waiting for it."""
        task = asyncio.create_task(
            self.record(template_id, conversation_id, usage, latency_ms, success, error_details)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every submitted record to finish."""
        if self._pending:
            await asyncio.gather(*list(self._pending))

    async def get_stats(
        self,
        template_id: UUID | None = None,
        *,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 100,
    ) -> PerformanceStats:
        """Averages over the newest *limit* records matching the filters.

        ``success_rate`` is a percentage.
        """
        rows = await self._repo.fetch_recent(
            template_id=template_id, start=start, end=end, limit=limit,
        )
        records = [PerformanceRecord.from_row(r) for r in rows]
        count = len(records)
        if not count:
            return PerformanceStats()
        return PerformanceStats(
            record_count=count,
            average_latency_ms=sum(r.latency_ms for r in records) / count,
            average_input_tokens=sum(r.token_usage.input for r in records) / count,
            average_output_tokens=sum(r.token_usage.output for r in records) / count,
            success_rate=sum(1 for r in records if r.success) / count * 100,
            records=records,
        )


def _coerce_usage(usage: TokenUsage | dict | None) -> TokenUsage:
    if isinstance(usage, TokenUsage):
        return usage
    if not isinstance(usage, dict):
        return TokenUsage()
    return TokenUsage.of(usage.get("input", 0), usage.get("output", 0), usage.get("total"))
