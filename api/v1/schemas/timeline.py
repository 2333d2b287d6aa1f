from __future__ import annotations

from core.models.base import CamelModel
from core.models.slot import DayGroup, MealSlot, ProgressSummary, Provenance, WeekGroup


class TimelineResponse(CamelModel):
    subscription_id: str
    provenance: Provenance
    timeline: list[MealSlot]
    days: list[DayGroup]
    weeks: list[WeekGroup]
    progress: ProgressSummary


class WeeklyStatsRow(CamelModel):
    week_number: int
    scheduled: int = 0
    chef_assigned: int = 0
    preparing: int = 0
    ready: int = 0
    out_for_delivery: int = 0
    delivered: int = 0
    cancelled: int = 0
    skipped: int = 0
    total: int = 0
    completed: int = 0
    completion_pct: float = 0.0
