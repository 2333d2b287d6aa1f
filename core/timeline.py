"""
core/timeline.py
────────────────────────────────────────────────────────────────────────
Timeline aggregator: day groups, week groups and the progress rollup.

Everything here is derived from the per-slot state and nothing is stored,
so the rollups can never drift from the slots they describe.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable

from core.models.slot import DayGroup, DayType, MealSlot, Phase, ProgressSummary, WeekGroup
from core.schedule import meal_time_rank
from core.status import TERMINAL, SlotStatus


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def is_completed(slot: MealSlot) -> bool:
    return slot.status == SlotStatus.delivered or (
        slot.status == SlotStatus.ready and slot.day_type == DayType.past
    )


def is_in_progress(slot: MealSlot) -> bool:
    return slot.day_type == DayType.current and slot.status not in TERMINAL


# ─────────────────────────────── groups ──────────────────────────── #
def _day_type(slots: list[MealSlot]) -> DayType:
    kinds = {s.day_type for s in slots}
    if DayType.current in kinds:
        return DayType.current
    if kinds == {DayType.past}:
        return DayType.past
    return DayType.future


def group_by_day(slots: Iterable[MealSlot]) -> list[DayGroup]:
    grouped: dict[tuple[int, int], list[MealSlot]] = {}
    for s in slots:
        grouped.setdefault((s.week_number, s.day_of_week), []).append(s)

    days = []
    for (week, dow), members in sorted(grouped.items()):
        members.sort(key=lambda s: meal_time_rank(s.meal_time))
        first = members[0]
        days.append(
            DayGroup(
                week_number=week,
                day_of_week=dow,
                day_name=first.day_name,
                scheduled_date=first.scheduled_date,
                meal_slots=members,
                all_ready=all(s.status == SlotStatus.ready for s in members),
                day_type=_day_type(members),
            )
        )
    return days


def group_by_week(days: Iterable[DayGroup]) -> list[WeekGroup]:
    weeks: dict[int, WeekGroup] = {}
    for day in days:
        wk = weeks.setdefault(day.week_number, WeekGroup(week_number=day.week_number))
        wk.days.append(day)
        wk.total_meals += len(day.meal_slots)
        wk.completed_meals += sum(1 for s in day.meal_slots if is_completed(s))
    return [weeks[k] for k in sorted(weeks)]


# ─────────────────────────────── progress ────────────────────────── #
def summarize_progress(slots: Iterable[MealSlot]) -> ProgressSummary:
    total = completed = in_progress = 0
    for s in slots:
        total += 1
        if is_completed(s):
            completed += 1
        elif is_in_progress(s):
            in_progress += 1

    pct = _round_half_up(100 * completed / total) if total else 0
    if total and completed == total:
        phase = Phase.completed
    elif in_progress > 0:
        phase = Phase.in_progress
    else:
        phase = Phase.active

    return ProgressSummary(
        total_steps=total,
        completed_steps=completed,
        in_progress_steps=in_progress,
        remaining_steps=total - completed - in_progress,
        progress_percentage=pct,
        current_phase=phase,
    )


def within_lookahead(slots: Iterable[MealSlot], today: date, lookahead_days: int | None) -> list[MealSlot]:
    """Keep past/current slots and future ones up to `today + lookahead_days`."""
    if lookahead_days is None:
        return list(slots)
    horizon = today + timedelta(days=lookahead_days)
    return [s for s in slots if s.scheduled_date is None or s.scheduled_date <= horizon]


@dataclass
class Timeline:
    slots: list[MealSlot]
    days: list[DayGroup] = field(default_factory=list)
    weeks: list[WeekGroup] = field(default_factory=list)
    progress: ProgressSummary = field(default_factory=ProgressSummary)


def build_timeline(
    slots: Iterable[MealSlot],
    today: date | None = None,
    lookahead_days: int | None = None,
) -> Timeline:
    """
    Day/week groups for the published window, progress over *all* slots.
    """
    slots = list(slots)
    progress = summarize_progress(slots)
    if today is not None:
        slots = within_lookahead(slots, today, lookahead_days)
    days = group_by_day(slots)
    return Timeline(slots=slots, days=days, weeks=group_by_week(days), progress=progress)
