"""
core/batch.py
────────────────────────────────────────────────────────────────────────
Day-batch coordinator: one target status for every slot of a day.

Each slot is checked on its own:

    applied   – the move is legal and advances the slot
    skipped   – the slot already equals or exceeds the target (no-op)
    rejected  – the move is illegal (e.g. the slot was cancelled)

Nothing is committed here; the caller persists the `applied` outcomes.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Iterable

from core.errors import DayNotFoundError, NoApplicableSlotsError, RegressionError
from core.models.slot import DayGroup, SlotKey
from core.status import SlotStatus, attempt_transition, has_reached, parse_status

_LOG = logging.getLogger(__name__)


class Outcome(str, Enum):
    applied = "applied"
    skipped = "skipped"
    rejected = "rejected"


@dataclass(frozen=True)
class SlotOutcome:
    slot_key: SlotKey
    previous: SlotStatus
    outcome: Outcome
    status: SlotStatus          # status after the batch
    reason: str | None = None

    @property
    def meal_time(self) -> str:
        return self.slot_key.meal_time


@dataclass
class BatchResult:
    day: date
    target: SlotStatus
    outcomes: list[SlotOutcome] = field(default_factory=list)

    @property
    def applied(self) -> list[SlotOutcome]:
        return [o for o in self.outcomes if o.outcome == Outcome.applied]

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    def summary(self) -> str:
        """e.g. "Updated 2 of 3 meals; Dinner was already delivered"."""
        head = f"Updated {self.applied_count} of {len(self.outcomes)} meals"
        notes = []
        for o in self.outcomes:
            if o.outcome == Outcome.skipped:
                notes.append(f"{o.meal_time.title()} was already {o.previous.value.replace('_', ' ')}")
            elif o.outcome == Outcome.rejected:
                notes.append(f"{o.meal_time.title()} could not change ({o.reason})")
        return "; ".join([head, *notes])


def find_day(days: Iterable[DayGroup], when: date) -> DayGroup:
    for day in days:
        if day.scheduled_date == when:
            return day
    raise DayNotFoundError("no meals scheduled for this day", day=when)


def _outcome_for(key: SlotKey, current: SlotStatus, target: SlotStatus) -> SlotOutcome:
    if has_reached(current, target):
        return SlotOutcome(key, current, Outcome.skipped, current, f"already {current.value}")
    try:
        new = attempt_transition(key, current, target)
    except RegressionError as exc:
        return SlotOutcome(key, current, Outcome.rejected, current, exc.reason)
    return SlotOutcome(key, current, Outcome.applied, new)


def plan_day_update(subscription_id: str, day: DayGroup, target: SlotStatus | str) -> BatchResult:
    """
    Validate `target` against every slot of `day`.

    Raises `NoApplicableSlotsError` (carrying the outcomes) when no slot
    would change; `UnknownStatusError` for an unrecognised target.
    """
    tgt = parse_status(target)
    result = BatchResult(day=day.scheduled_date, target=tgt)

    for slot in day.meal_slots:
        key = SlotKey(subscription_id, day.scheduled_date, slot.meal_time)
        result.outcomes.append(_outcome_for(key, slot.status, tgt))

    _LOG.debug("day batch %s -> %s: %s", day.scheduled_date, tgt.value, result.summary())
    if result.applied_count == 0:
        raise NoApplicableSlotsError(
            "no meal on this day can move to " + tgt.value,
            day=day.scheduled_date,
            outcomes=result.outcomes,
        )
    return result
