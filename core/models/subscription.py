from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import ConfigDict, Field, model_validator

from core.models.base import CamelModel
from core.models.meal import MealItem

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


class SubscriptionStatus(str, Enum):
    active = "active"
    paused = "paused"
    cancelled = "cancelled"
    completed = "completed"


class MealSlotDefinition(CamelModel):
    """One (week, day, mealTime) entry of a meal plan."""

    week_number: int = Field(..., ge=1)
    day_of_week: int = Field(..., ge=1, le=7)
    day_name: str | None = None
    meal_time: str = ""                     # breakfast / lunch / dinner
    custom_title: str | None = None
    custom_description: str | None = None
    image_url: str | None = None
    delivery_status: str | None = None      # raw flag copied into the snapshot
    meals: list[MealItem] = Field(default_factory=list)


def _check_unique(schedule: list[MealSlotDefinition]) -> None:
    seen: set[tuple[int, int, str]] = set()
    for d in schedule:
        key = (d.week_number, d.day_of_week, d.meal_time.lower())
        if key in seen:
            raise ValueError(
                f"duplicate meal slot: week {key[0]}, day {key[1]}, {key[2] or '<no meal time>'}"
            )
        seen.add(key)


class MealPlanSnapshot(CamelModel):
    """Immutable copy of the plan content taken at activation time."""

    model_config = ConfigDict(frozen=True)

    meal_plan_id: str | None = None
    plan_name: str | None = None
    captured_at: datetime | None = None
    meal_schedule: list[MealSlotDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _unique_slots(self) -> "MealPlanSnapshot":
        _check_unique(self.meal_schedule)
        return self

    @property
    def plan_weeks(self) -> int:
        return max((d.week_number for d in self.meal_schedule), default=0)


class Subscription(CamelModel):
    id: str
    customer_id: str | None = None
    chef_id: str | None = None
    driver_id: str | None = None
    status: SubscriptionStatus = SubscriptionStatus.active
    start_date: date | None = None
    created_at: datetime
    duration_weeks: int = Field(1, ge=1)
    frequency: str = "daily"
    next_delivery_date: date | None = None
    meal_plan_id: str | None = None
    selected_meal_types: list[str] = Field(default_factory=lambda: ["lunch"])
    meal_plan_snapshot: MealPlanSnapshot | None = None
    live_plan: list[MealSlotDefinition] | None = None

    @model_validator(mode="after")
    def _unique_live_plan(self) -> "Subscription":
        if self.live_plan:
            _check_unique(self.live_plan)
        return self

    @property
    def duration_days(self) -> int:
        return 7 * self.duration_weeks

    @property
    def origin_date(self) -> date:
        """Day 1 of week 1; falls back to the creation day."""
        return self.start_date or self.created_at.date()
