"""
services/slot_store.py
────────────────────────────────────────────────────────────────────────
DAO helpers: subscription rows ⇄ core models, per-slot status reads and
monotonic status writes.

Writes never lock.  The UPDATE itself carries the ordering guard
(`status_rank < new rank`, or "not terminal" for cancel/skip), so two
writers racing on one slot key converge on the highest legal status and
the loser sees `RegressionError`.
"""
from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import RegressionError
from core.models.slot import SlotKey
from core.models.subscription import MealPlanSnapshot, MealSlotDefinition, Subscription, SubscriptionStatus
from core.schedule import SlotState
from core.status import SIDE_STATES, TERMINAL, SlotStatus, parse_status, rank
from services.db import SlotStatusHistory, SlotStatusRow, SubscriptionRow

_LOG = logging.getLogger(__name__)


# ───────────────────────── subscriptions ─────────────────────────────
def to_subscription(row: SubscriptionRow) -> Subscription:
    snapshot = (
        MealPlanSnapshot.model_validate(row.meal_plan_snapshot)
        if row.meal_plan_snapshot
        else None
    )
    live = (
        [MealSlotDefinition.model_validate(d) for d in row.live_plan]
        if row.live_plan
        else None
    )
    return Subscription(
        id=row.id,
        customer_id=row.customer_id,
        chef_id=row.chef_id,
        driver_id=row.driver_id,
        status=row.status,
        start_date=row.start_date,
        created_at=row.created_at,
        duration_weeks=row.duration_weeks,
        frequency=row.frequency,
        next_delivery_date=row.next_delivery_date,
        meal_plan_id=row.meal_plan_id,
        selected_meal_types=row.selected_meal_types or ["lunch"],
        meal_plan_snapshot=snapshot,
        live_plan=live,
    )


def to_row(sub: Subscription) -> SubscriptionRow:
    return SubscriptionRow(
        id=sub.id,
        customer_id=sub.customer_id,
        chef_id=sub.chef_id,
        driver_id=sub.driver_id,
        status=sub.status.value,
        start_date=sub.start_date,
        created_at=sub.created_at,
        duration_weeks=sub.duration_weeks,
        frequency=sub.frequency,
        next_delivery_date=sub.next_delivery_date,
        meal_plan_id=sub.meal_plan_id,
        selected_meal_types=sub.selected_meal_types,
        meal_plan_snapshot=(
            sub.meal_plan_snapshot.model_dump(mode="json", by_alias=True)
            if sub.meal_plan_snapshot
            else None
        ),
        live_plan=(
            [d.model_dump(mode="json", by_alias=True) for d in sub.live_plan]
            if sub.live_plan
            else None
        ),
    )


async def get_subscription(db: AsyncSession, subscription_id: str) -> Subscription | None:
    row = await db.get(SubscriptionRow, subscription_id)
    return to_subscription(row) if row else None


async def chef_subscriptions(db: AsyncSession, chef_id: str) -> list[Subscription]:
    rows = (
        await db.execute(
            select(SubscriptionRow)
            .where(SubscriptionRow.chef_id == chef_id)
            .where(SubscriptionRow.status == SubscriptionStatus.active.value)
        )
    ).scalars().all()
    return [to_subscription(r) for r in rows]


# ───────────────────────── slot state ────────────────────────────────
async def load_slot_states(
    db: AsyncSession,
    subscription_id: str,
    on: date | None = None,
) -> dict[tuple[date, str], SlotState]:
    q = select(SlotStatusRow).where(SlotStatusRow.subscription_id == subscription_id)
    if on is not None:
        q = q.where(SlotStatusRow.slot_date == on)
    rows = (await db.execute(q)).scalars().all()

    states: dict[tuple[date, str], SlotState] = {}
    for r in rows:
        states[(r.slot_date, r.meal_time)] = SlotState(
            status=parse_status(r.status),
            delivery_status=r.delivery_status,
            order_id=r.order_id,
            notes=r.notes,
        )
    return states


def _key_filter(key: SlotKey):
    return (
        SlotStatusRow.subscription_id == key.subscription_id,
        SlotStatusRow.slot_date == key.date,
        SlotStatusRow.meal_time == key.meal_time,
    )


async def save_slot_status(
    db: AsyncSession,
    key: SlotKey,
    previous: SlotStatus,
    new: SlotStatus,
    *,
    source: str,
    actor: str | None = None,
    notes: str | None = None,
    delivery_status: str | None = None,
    order_id: str | None = None,
    reset: bool = False,
) -> None:
    """
    Persist `new` for `key` (caller commits).

    `reset` marks a sanctioned backward move (failed delivery → scheduled);
    it is guarded on the previous status instead of the rank.
    """
    values: dict = {"status": new.value, "status_rank": rank(new), "updated_by": actor}
    if notes is not None:
        values["notes"] = notes
    if delivery_status is not None:
        values["delivery_status"] = delivery_status
    if order_id is not None:
        values["order_id"] = order_id

    stmt = update(SlotStatusRow).where(*_key_filter(key))
    if new == previous:
        pass
    elif reset:
        stmt = stmt.where(SlotStatusRow.status == previous.value)
    elif new in SIDE_STATES:
        stmt = stmt.where(SlotStatusRow.status.not_in([s.value for s in TERMINAL]))
    else:
        stmt = stmt.where(SlotStatusRow.status_rank < rank(new))

    res = await db.execute(stmt.values(**values))
    if res.rowcount == 0:
        existing = (await db.execute(select(SlotStatusRow).where(*_key_filter(key)))).scalar_one_or_none()
        if existing is not None:
            raise RegressionError(
                f"slot is already {existing.status}", slot_key=key
            )
        db.add(
            SlotStatusRow(
                subscription_id=key.subscription_id,
                slot_date=key.date,
                meal_time=key.meal_time,
                **values,
            )
        )
        try:
            await db.flush()
        except IntegrityError:
            # another writer inserted the key first
            await db.rollback()
            raise RegressionError("slot was updated concurrently", slot_key=key) from None

    if new != previous:
        db.add(
            SlotStatusHistory(
                subscription_id=key.subscription_id,
                slot_date=key.date,
                meal_time=key.meal_time,
                from_status=previous.value,
                to_status=new.value,
                source=source,
                actor=actor,
                notes=notes,
            )
        )
        _LOG.info("%s: %s -> %s (%s by %s)", key, previous.value, new.value, source, actor)


async def status_history(db: AsyncSession, key: SlotKey) -> list[SlotStatusHistory]:
    rows = await db.execute(
        select(SlotStatusHistory)
        .where(SlotStatusHistory.subscription_id == key.subscription_id)
        .where(SlotStatusHistory.slot_date == key.date)
        .where(SlotStatusHistory.meal_time == key.meal_time)
        .order_by(SlotStatusHistory.id)
    )
    return list(rows.scalars().all())
