"""
services/timeline_service.py
────────────────────────────────────────────────────────────────────────
Glue between storage and the pure core: load a subscription and its slot
states, project, aggregate.  Plan content is cached per subscription
(snapshots are immutable); statuses are always read fresh.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from sqlalchemy.ext.asyncio import AsyncSession

from core.models.slot import MealSlot, Provenance
from core.models.subscription import MealSlotDefinition, Subscription
from core.schedule import Schedule, project_schedule, resolve_definitions
from core.status import SIDE_STATES, SlotStatus, has_reached
from core.timeline import Timeline, build_timeline
from services import slot_store
from services.cache import TTLCache

_LOG = logging.getLogger(__name__)

Definitions = tuple[list[MealSlotDefinition], Provenance]


@dataclass
class SubscriptionView:
    subscription: Subscription
    schedule: Schedule
    timeline: Timeline


class TimelineService:
    def __init__(self, cache: TTLCache[Definitions], default_meal_time: str = "lunch") -> None:
        self._cache = cache
        self._default_meal_time = default_meal_time

    def _definitions(self, sub: Subscription) -> Definitions:
        return self._cache.get_or_set(
            sub.id, lambda: resolve_definitions(sub, default_meal_time=self._default_meal_time)
        )

    def forget(self, subscription_id: str) -> None:
        self._cache.invalidate(subscription_id)

    async def schedule(
        self, db: AsyncSession, sub: Subscription, today: date, on: date | None = None
    ) -> Schedule:
        states = await slot_store.load_slot_states(db, sub.id, on)
        return project_schedule(
            sub,
            today,
            states,
            definitions=self._definitions(sub),
            default_meal_time=self._default_meal_time,
        )

    async def view(
        self,
        db: AsyncSession,
        subscription_id: str,
        today: date,
        lookahead_days: int | None = None,
    ) -> SubscriptionView | None:
        sub = await slot_store.get_subscription(db, subscription_id)
        if sub is None:
            return None
        schedule = await self.schedule(db, sub, today)
        return SubscriptionView(sub, schedule, build_timeline(schedule.slots, today, lookahead_days))

    async def slots_on(self, db: AsyncSession, sub: Subscription, on: date, today: date) -> list[MealSlot]:
        schedule = await self.schedule(db, sub, today, on)
        return [s for s in schedule.slots if s.scheduled_date == on]

    async def daily_workload_completed(
        self, db: AsyncSession, chef_id: str, on: date, today: date
    ) -> bool:
        """Every live meal the chef owns on `on` has reached `ready`."""
        pending = total = 0
        for sub in await slot_store.chef_subscriptions(db, chef_id):
            for slot in await self.slots_on(db, sub, on, today):
                if slot.status in SIDE_STATES:
                    continue
                total += 1
                if not has_reached(slot.status, SlotStatus.ready):
                    pending += 1
        _LOG.debug("chef %s on %s: %d/%d meals pending", chef_id, on, pending, total)
        return total > 0 and pending == 0
