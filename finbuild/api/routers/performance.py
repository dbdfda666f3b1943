"""Performance router -- aggregate telemetry for template invocations."""

from datetime import datetime
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from finbuild.api.deps import get_current_user_id, get_engine
from finbuild.config import settings
from finbuild.errors import BadRequestError
from finbuild.services.engine import Engine

router = APIRouter(prefix="/performance", tags=["performance"])


@router.get("/stats")
async def performance_stats(
    template_id: UUID | None = Query(None),
    start: datetime | None = Query(None),
    end: datetime | None = Query(None),
    limit: int | None = Query(None, ge=1, le=1000),
    include_records: bool = Query(False),
    _user: UUID = Depends(get_current_user_id),
    engine: Engine = Depends(get_engine),
) -> dict:
    """Averages over the newest records; ``success_rate`` is a percentage."""
    if start and end and start > end:
        raise BadRequestError("start must not be after end")
    stats = await engine.recorder.get_stats(
        template_id,
        start=start,
        end=end,
        limit=limit or settings.PERFORMANCE_STATS_LIMIT,
    )
    result = stats.to_dict()
    if not include_records:
        result.pop("records")
    return result
