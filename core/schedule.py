"""
core/schedule.py
────────────────────────────────────────────────────────────────────────
Schedule projector: subscription + plan content + "today" → dated slots.

Content source, first one that yields anything wins:

1. the meal-plan snapshot taken at activation,
2. the live meal-plan assignments,
3. a synthetic one-slot-per-day generator (placeholder data, flagged).

Dates are `origin + 7*(week-1) + (day-1)`; the origin is the start date, or
the creation day when no start date was recorded.  Plans shorter than the
subscription repeat from week 1, the published week number keeps counting.

The projector never raises on missing data; it degrades instead.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Mapping

from core.models.slot import DayType, MealSlot, Provenance
from core.models.subscription import DAY_NAMES, MealPlanSnapshot, MealSlotDefinition, Subscription
from core.status import SlotStatus
from core.sync import normalize_raw

_LOG = logging.getLogger(__name__)

MEAL_TIME_ORDER = {"breakfast": 1, "lunch": 2, "dinner": 3}


def meal_time_rank(meal_time: str | None) -> int:
    return MEAL_TIME_ORDER.get((meal_time or "").lower(), 999)


@dataclass(frozen=True)
class SlotState:
    """What is persisted per slot key."""

    status: SlotStatus
    delivery_status: str | None = None
    order_id: str | None = None
    notes: str | None = None


@dataclass
class Schedule:
    subscription_id: str
    provenance: Provenance
    slots: list[MealSlot] = field(default_factory=list)
    excluded_days: int = 0

    @property
    def is_authoritative(self) -> bool:
        return self.provenance != Provenance.synthetic


# ─────────────────────────────── dates ───────────────────────────── #
def scheduled_date_for(origin: date, week_number: int, day_of_week: int) -> date:
    return origin + timedelta(days=7 * (week_number - 1) + (day_of_week - 1))


def classify_day(scheduled: date | None, today: date, delivery_status: str | None) -> DayType:
    # a delivered meal is past whatever the clock says
    if (delivery_status or "").strip().lower() == "delivered":
        return DayType.past
    if scheduled is None:
        return DayType.future
    if scheduled == today:
        return DayType.current
    if scheduled < today:
        return DayType.past
    return DayType.future


# ─────────────────────────────── sources ─────────────────────────── #
def synthetic_definitions(sub: Subscription, meal_time: str = "lunch") -> list[MealSlotDefinition]:
    meal_time = (sub.selected_meal_types or [meal_time])[0] or meal_time
    out = []
    for i in range(sub.duration_days):
        out.append(
            MealSlotDefinition(
                week_number=i // 7 + 1,
                day_of_week=i % 7 + 1,
                meal_time=meal_time,
                custom_title=f"{meal_time.title()} - Day {i + 1}",
                custom_description="Menu to be announced",
            )
        )
    return out


def resolve_definitions(
    sub: Subscription,
    snapshot: MealPlanSnapshot | None = None,
    default_meal_time: str = "lunch",
) -> tuple[list[MealSlotDefinition], Provenance]:
    snapshot = snapshot or sub.meal_plan_snapshot
    if snapshot is not None and snapshot.meal_schedule:
        return list(snapshot.meal_schedule), Provenance.snapshot
    if sub.live_plan:
        _LOG.info("subscription %s has no snapshot – using live plan", sub.id)
        return list(sub.live_plan), Provenance.live_plan
    _LOG.warning("subscription %s has no plan content – generating placeholders", sub.id)
    return synthetic_definitions(sub, default_meal_time), Provenance.synthetic


# ─────────────────────────────── projection ──────────────────────── #
def _materialize(
    sub: Subscription,
    d: MealSlotDefinition,
    week_number: int,
    first_cycle: bool,
    today: date,
    state: SlotState | None,
    provenance: Provenance,
) -> MealSlot:
    when = scheduled_date_for(sub.origin_date, week_number, d.day_of_week)
    first_meal = d.meals[0] if d.meals else None

    raw_delivery = state.delivery_status if state and state.delivery_status else None
    if raw_delivery is None and first_cycle:
        raw_delivery = d.delivery_status

    if state is not None:
        status = state.status
    elif raw_delivery:
        status = normalize_raw(raw_delivery)
    else:
        status = SlotStatus.scheduled

    names = ", ".join(m.name for m in d.meals if m.name)
    return MealSlot(
        subscription_id=sub.id,
        week_number=week_number,
        day_of_week=d.day_of_week,
        day_name=d.day_name or DAY_NAMES[when.weekday()],
        meal_time=d.meal_time,
        meal_title=d.custom_title or names or None,
        description=d.custom_description or (first_meal.description if first_meal else None),
        image_url=d.image_url or (first_meal.image if first_meal else None),
        meals=d.meals,
        scheduled_date=when,
        status=status,
        delivery_status=raw_delivery,
        order_id=state.order_id if state else None,
        notes=state.notes if state else None,
        day_type=classify_day(when, today, raw_delivery),
        provenance=provenance,
    )


def _is_valid(slot: MealSlot) -> bool:
    return any((v or "").strip() for v in (slot.meal_title, slot.image_url, slot.description, slot.meal_time))


def project_schedule(
    sub: Subscription,
    today: date,
    statuses: Mapping[tuple[date, str], SlotState] | None = None,
    *,
    snapshot: MealPlanSnapshot | None = None,
    definitions: tuple[list[MealSlotDefinition], Provenance] | None = None,
    default_meal_time: str = "lunch",
) -> Schedule:
    """
    Materialize every slot of `sub`, ordered by date then meal time.

    `statuses` maps (date, mealTime) to the persisted state of that slot.
    `definitions` lets a caller pass content it already resolved (cached).
    """
    statuses = statuses or {}
    defs, provenance = definitions or resolve_definitions(sub, snapshot, default_meal_time)

    plan_weeks = max((d.week_number for d in defs), default=0)
    if plan_weeks == 0:
        return Schedule(sub.id, provenance)
    cycles = max(1, math.ceil(sub.duration_weeks / plan_weeks))

    slots: list[MealSlot] = []
    for cycle in range(cycles):
        for d in defs:
            week = cycle * plan_weeks + d.week_number
            if week > sub.duration_weeks:
                continue
            when = scheduled_date_for(sub.origin_date, week, d.day_of_week)
            state = statuses.get((when, d.meal_time))
            slots.append(_materialize(sub, d, week, cycle == 0, today, state, provenance))

    # drop days without a single materially valid slot
    valid_days = {(s.week_number, s.day_of_week) for s in slots if _is_valid(s)}
    all_days = {(s.week_number, s.day_of_week) for s in slots}
    kept = [s for s in slots if (s.week_number, s.day_of_week) in valid_days]
    kept.sort(key=lambda s: (s.scheduled_date, meal_time_rank(s.meal_time)))

    _LOG.debug(
        "projected %d slots for %s (%s, %d days excluded)",
        len(kept), sub.id, provenance.value, len(all_days - valid_days),
    )
    return Schedule(sub.id, provenance, kept, len(all_days - valid_days))
