# api/v1/timeline.py
from __future__ import annotations
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1.deps import get_timeline_service, get_today
from api.v1.schemas import TimelineResponse, WeeklyStatsRow
from core.models.slot import ProgressSummary
from core.weekly_stats import weekly_stats_records
from services.db import get_session
from services.timeline_service import SubscriptionView, TimelineService

router = APIRouter()


async def _view(
    subscription_id: str,
    db: AsyncSession,
    svc: TimelineService,
    today: date,
    lookahead_days: int | None = None,
) -> SubscriptionView:
    view = await svc.view(db, subscription_id, today, lookahead_days)
    if view is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return view


@router.get(
    "/{subscription_id}/timeline",
    response_model=TimelineResponse,
    status_code=status.HTTP_200_OK,
    summary="Dated meal slots grouped by day and week, with progress",
)
async def get_timeline(
    subscription_id: str,
    lookahead_days: int | None = Query(None, alias="lookaheadDays", ge=0, le=366),
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
    today: date = Depends(get_today),
) -> TimelineResponse:
    """
    Past and current slots are always included; future ones up to
    `today + lookaheadDays` (all of them when omitted).  Progress is
    computed over the whole subscription either way.
    """
    view = await _view(subscription_id, db, svc, today, lookahead_days)
    tl = view.timeline
    return TimelineResponse(
        subscription_id=subscription_id,
        provenance=view.schedule.provenance,
        timeline=tl.slots,
        days=tl.days,
        weeks=tl.weeks,
        progress=tl.progress,
    )


@router.get(
    "/{subscription_id}/progress",
    response_model=ProgressSummary,
    summary="Completed / in-progress / remaining meals and the current phase",
)
async def get_progress(
    subscription_id: str,
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
    today: date = Depends(get_today),
) -> ProgressSummary:
    view = await _view(subscription_id, db, svc, today)
    return view.timeline.progress


@router.get(
    "/{subscription_id}/stats/weekly",
    response_model=list[WeeklyStatsRow],
    summary="Per-week meal counts by status",
)
async def get_weekly_stats(
    subscription_id: str,
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
    today: date = Depends(get_today),
) -> list[WeeklyStatsRow]:
    view = await _view(subscription_id, db, svc, today)
    return [WeeklyStatsRow(**row) for row in weekly_stats_records(view.schedule.slots)]
