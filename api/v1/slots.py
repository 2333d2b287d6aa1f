# api/v1/slots.py
"""
Write side of the timeline: single slot, whole day, upstream sync.

Legality is decided before anything touches the database; the store's
conditional UPDATE only catches what changed in between.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1.deps import ensure_party, error_detail, get_dispatcher, get_timeline_service, get_today
from api.v1.schemas import (
    DayStatusUpdateIn,
    DayStatusUpdateOut,
    SlotHistoryEntry,
    SlotOutcomeOut,
    SlotStatusUpdateIn,
    SlotStatusUpdateOut,
    SyncRequest,
    SyncResponse,
)
from api.v1.schemas.status import SyncRejection
from core.batch import Outcome, SlotOutcome, find_day, plan_day_update
from core.errors import (
    DayNotFoundError,
    ForbiddenTargetError,
    NoApplicableSlotsError,
    RegressionError,
    UnknownStatusError,
)
from core.models.slot import MealSlot, SlotKey
from core.models.subscription import Subscription
from core.status import DELIVERY_OWNED, SIDE_STATES, SlotStatus, ensure_actor_may_target, has_reached, parse_status
from core.sync import StatusSynchronizer, collect_upstream
from core.timeline import group_by_day
from services import slot_store
from services.auth import Actor, current_actor
from services.db import get_session
from services.dispatch import Dispatcher
from services.timeline_service import TimelineService

_LOG = logging.getLogger(__name__)

router = APIRouter()
_sync = StatusSynchronizer()

_SYNC_ROLES = ("chef", "driver", "admin", "system")


# ───────────────────────── helpers ──────────────────────────
async def _load(db: AsyncSession, subscription_id: str, actor: Actor) -> Subscription:
    sub = await slot_store.get_subscription(db, subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    ensure_party(actor, sub)
    return sub


def _target(raw: str, actor: Actor) -> SlotStatus:
    try:
        target = parse_status(raw)
        ensure_actor_may_target(actor.role, target)
    except UnknownStatusError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, error_detail(exc, "unknown_status"))
    except ForbiddenTargetError as exc:
        raise HTTPException(status.HTTP_403_FORBIDDEN, error_detail(exc, "forbidden_target"))
    return target


def _finishes_prep(previous: SlotStatus, new: SlotStatus) -> bool:
    """True when this move takes a pending meal off the chef's list."""
    was_pending = previous not in SIDE_STATES and not has_reached(previous, SlotStatus.ready)
    is_done = new in SIDE_STATES or has_reached(new, SlotStatus.ready)
    return was_pending and is_done


async def _workload_check(
    db: AsyncSession,
    svc: TimelineService,
    dispatcher: Dispatcher,
    sub: Subscription,
    on: date,
    today: date,
) -> bool | None:
    if not sub.chef_id:
        return None
    done = await svc.daily_workload_completed(db, sub.chef_id, on, today)
    if done:
        await dispatcher.daily_workload_completed(sub.chef_id, on)
    return done


# ───────────────────────── single slot ──────────────────────
@router.put(
    "/{subscription_id}/slots/{slot_date}/{meal_time}",
    response_model=SlotStatusUpdateOut,
    summary="Move one meal slot to a new status",
)
async def update_slot_status(
    subscription_id: str,
    slot_date: date,
    meal_time: str,
    body: SlotStatusUpdateIn,
    actor: Actor = Depends(current_actor),
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    today: date = Depends(get_today),
) -> SlotStatusUpdateOut:
    sub = await _load(db, subscription_id, actor)
    target = _target(body.status, actor)

    slots = await svc.slots_on(db, sub, slot_date, today)
    slot = next((s for s in slots if s.meal_time.lower() == meal_time.lower()), None)
    if slot is None:
        raise HTTPException(404, f"No {meal_time} scheduled on {slot_date.isoformat()}")

    key = slot.key
    try:
        new = _sync.apply_write(key, slot.status, target)
        await slot_store.save_slot_status(
            db, key, slot.status, new,
            source=actor.role,
            actor=actor.id,
            notes=body.notes,
            delivery_status=new.value if new in DELIVERY_OWNED else None,
        )
    except RegressionError as exc:
        raise HTTPException(status.HTTP_409_CONFLICT, error_detail(exc, "regression"))
    await db.commit()

    driver = None
    if new == SlotStatus.ready and slot.status != new and slot.order_id:
        driver = await dispatcher.request_driver_assignment(slot.order_id, sub.id, slot_date, slot.meal_time)

    workload = None
    if _finishes_prep(slot.status, new):
        workload = await _workload_check(db, svc, dispatcher, sub, slot_date, today)

    return SlotStatusUpdateOut(
        applied_status=new,
        daily_workload_completed=workload,
        driver_assignment=driver,
    )


@router.get(
    "/{subscription_id}/slots/{slot_date}/{meal_time}/history",
    response_model=list[SlotHistoryEntry],
    summary="Every accepted status change of one slot, oldest first",
)
async def slot_history(
    subscription_id: str,
    slot_date: date,
    meal_time: str,
    actor: Actor = Depends(current_actor),
    db: AsyncSession = Depends(get_session),
) -> list[SlotHistoryEntry]:
    await _load(db, subscription_id, actor)
    rows = await slot_store.status_history(db, SlotKey(subscription_id, slot_date, meal_time))
    return [SlotHistoryEntry.model_validate(r) for r in rows]


# ───────────────────────── whole day ────────────────────────
def _outcome_out(o: SlotOutcome) -> SlotOutcomeOut:
    return SlotOutcomeOut(
        meal_time=o.meal_time,
        outcome=o.outcome,
        previous_status=o.previous,
        status=o.status,
        reason=o.reason,
    )


@router.put(
    "/{subscription_id}/days/{slot_date}",
    response_model=DayStatusUpdateOut,
    summary="Move every meal of one day to a status",
)
async def update_day_status(
    subscription_id: str,
    slot_date: date,
    body: DayStatusUpdateIn,
    actor: Actor = Depends(current_actor),
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
    dispatcher: Dispatcher = Depends(get_dispatcher),
    today: date = Depends(get_today),
) -> DayStatusUpdateOut:
    sub = await _load(db, subscription_id, actor)
    target = _target(body.status, actor)

    slots = await svc.slots_on(db, sub, slot_date, today)
    try:
        day = find_day(group_by_day(slots), slot_date)
        result = plan_day_update(sub.id, day, target)
    except DayNotFoundError as exc:
        raise HTTPException(status.HTTP_404_NOT_FOUND, error_detail(exc, "day_not_found"))
    except NoApplicableSlotsError as exc:
        _LOG.info("day batch %s/%s -> %s is a no-op", sub.id, slot_date, target.value)
        return DayStatusUpdateOut(
            date=slot_date,
            per_slot_outcomes=[_outcome_out(o) for o in exc.outcomes],
            applied_count=0,
            noop=True,
            message=exc.user_message,
        )

    outcomes: list[SlotOutcome] = []
    for o in result.outcomes:
        if o.outcome != Outcome.applied:
            outcomes.append(o)
            continue
        try:
            await slot_store.save_slot_status(
                db, o.slot_key, o.previous, o.status,
                source=actor.role,
                actor=actor.id,
                delivery_status=o.status.value if o.status in DELIVERY_OWNED else None,
            )
            await db.commit()
            outcomes.append(o)
        except RegressionError as exc:
            # lost a race with another writer on this slot
            outcomes.append(SlotOutcome(o.slot_key, o.previous, Outcome.rejected, o.previous, exc.reason))
    result.outcomes = outcomes

    workload = None
    if any(_finishes_prep(o.previous, o.status) for o in result.applied):
        workload = await _workload_check(db, svc, dispatcher, sub, slot_date, today)

    return DayStatusUpdateOut(
        date=slot_date,
        per_slot_outcomes=[_outcome_out(o) for o in result.outcomes],
        applied_count=result.applied_count,
        noop=result.applied_count == 0,
        message=result.summary(),
        daily_workload_completed=workload,
    )


# ───────────────────────── upstream sync ────────────────────
@router.post(
    "/{subscription_id}/slots/sync",
    response_model=SyncResponse,
    summary="Ingest raw delegation / order / delivery statuses",
)
async def sync_upstream(
    subscription_id: str,
    body: SyncRequest,
    actor: Actor = Depends(current_actor),
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
    today: date = Depends(get_today),
) -> SyncResponse:
    if actor.role not in _SYNC_ROLES:
        raise HTTPException(status.HTTP_403_FORBIDDEN, f"role '{actor.role}' cannot push upstream statuses")
    sub = await _load(db, subscription_id, actor)

    by_date: dict[date, list] = defaultdict(list)
    for report in body.reports:
        by_date[report.date].append(report)

    changed = unchanged = 0
    rejected: list[SyncRejection] = []
    for on, reports in sorted(by_date.items()):
        slots: dict[str, MealSlot] = {
            s.meal_time.lower(): s for s in await svc.slots_on(db, sub, on, today)
        }
        for report in reports:
            slot = slots.get(report.meal_time.lower())
            if slot is None:
                rejected.append(SyncRejection(date=on, meal_time=report.meal_time, reason="no such slot"))
                continue

            upstream = collect_upstream(report.delegation_status, report.order_status, report.delivery_status)
            decision = _sync.reconcile(slot.key, slot.status, upstream)
            if decision.dropped_reason:
                # a refused report leaves the row untouched
                rejected.append(SyncRejection(date=on, meal_time=slot.meal_time, reason=decision.dropped_reason))
                continue

            new_order = report.order_id if report.order_id and report.order_id != slot.order_id else None
            new_delivery = (
                report.delivery_status
                if report.delivery_status and report.delivery_status != slot.delivery_status
                else None
            )
            if not (decision.changed or new_order or new_delivery):
                unchanged += 1
                continue

            try:
                await slot_store.save_slot_status(
                    db, slot.key, slot.status, decision.status,
                    source=decision.source.value if decision.source else actor.role,
                    actor=actor.id,
                    delivery_status=new_delivery,
                    order_id=new_order,
                    reset=decision.reset,
                )
                await db.commit()
                changed += 1
            except RegressionError as exc:
                rejected.append(SyncRejection(date=on, meal_time=slot.meal_time, reason=exc.reason))

    return SyncResponse(changed=changed, unchanged=unchanged, rejected=rejected)
