from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import NamedTuple

from pydantic import Field, computed_field

from core.models.base import CamelModel
from core.models.meal import MealItem
from core.status import SlotStatus


class SlotKey(NamedTuple):
    """(subscriptionId, date, mealTime): the unit of mutation."""

    subscription_id: str
    date: dt.date
    meal_time: str


class DayType(str, Enum):
    past = "past"
    current = "current"
    future = "future"


class Provenance(str, Enum):
    snapshot = "snapshot"
    live_plan = "live_plan"
    synthetic = "synthetic"


class Phase(str, Enum):
    active = "Active"
    in_progress = "In Progress"
    completed = "Completed"


class MealSlot(CamelModel):
    subscription_id: str
    week_number: int
    day_of_week: int
    day_name: str
    meal_time: str
    meal_title: str | None = None
    description: str | None = None
    image_url: str | None = None
    meals: list[MealItem] = Field(default_factory=list)
    scheduled_date: dt.date | None = None
    status: SlotStatus = SlotStatus.scheduled
    delivery_status: str | None = None
    order_id: str | None = None
    notes: str | None = None
    day_type: DayType = DayType.future
    provenance: Provenance = Provenance.snapshot

    @computed_field  # type: ignore[misc]
    @property
    def date(self) -> str | None:
        return self.scheduled_date.isoformat() if self.scheduled_date else None

    @property
    def key(self) -> SlotKey | None:
        if self.scheduled_date is None:
            return None
        return SlotKey(self.subscription_id, self.scheduled_date, self.meal_time)

    @property
    def is_authoritative(self) -> bool:
        return self.provenance != Provenance.synthetic

    def signature(self) -> tuple:
        """Fields a background refresh is allowed to change."""
        return (self.status, self.delivery_status, self.day_type, self.order_id)


class DayGroup(CamelModel):
    week_number: int
    day_of_week: int
    day_name: str
    scheduled_date: dt.date | None = None
    meal_slots: list[MealSlot] = Field(default_factory=list)
    all_ready: bool = False
    day_type: DayType = DayType.future


class WeekGroup(CamelModel):
    week_number: int
    days: list[DayGroup] = Field(default_factory=list)
    total_meals: int = 0
    completed_meals: int = 0


class ProgressSummary(CamelModel):
    total_steps: int = 0
    completed_steps: int = 0
    in_progress_steps: int = 0
    remaining_steps: int = 0
    progress_percentage: int = 0
    current_phase: Phase = Phase.active
