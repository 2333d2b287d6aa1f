from __future__ import annotations
from datetime import date, datetime

from pydantic import Field

from core.models.base import CamelModel
from core.models.subscription import MealPlanSnapshot, MealSlotDefinition, Subscription, SubscriptionStatus


class SubscriptionCreate(CamelModel):
    id: str
    customer_id: str | None = None
    chef_id: str | None = None
    driver_id: str | None = None
    status: SubscriptionStatus = SubscriptionStatus.active
    start_date: date | None = None
    created_at: datetime | None = None          # defaults to "now"
    duration_weeks: int = Field(1, ge=1, le=104)
    frequency: str = "daily"
    next_delivery_date: date | None = None
    meal_plan_id: str | None = None
    selected_meal_types: list[str] = Field(default_factory=lambda: ["lunch"])
    meal_plan_snapshot: MealPlanSnapshot | None = None
    live_plan: list[MealSlotDefinition] | None = None


class SubscriptionOut(Subscription):
    """Same fields as the core model, serialised camelCase."""
    pass
