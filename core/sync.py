"""
core/sync.py
────────────────────────────────────────────────────────────────────────
Status synchronizer.

Three upstream writers describe the same slot in their own words:

  • delegation  – the chef's order delegation ("In Progress", "Ready", …)
  • order       – order processing ("confirmed", "Out for Delivery", …)
  • delivery    – the driver app ("picked_up", "delivered", "failed", …)

They are modelled as one tagged value, `UpstreamStatus(source, raw)`, and
normalised through a single lookup table.  When several are present the
fixed precedence delegation > order > delivery decides.

`merge_timeline()` is the "silent update" used by background refreshes:
only slot records whose fulfillment signature changed are replaced.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Mapping

from core.errors import RegressionError
from core.models.slot import MealSlot, SlotKey
from core.status import SlotStatus, attempt_transition

_LOG = logging.getLogger(__name__)


class UpstreamSource(str, Enum):
    delegation = "delegation"
    order = "order"
    delivery = "delivery"


PRECEDENCE: tuple[UpstreamSource, ...] = (
    UpstreamSource.delegation,
    UpstreamSource.order,
    UpstreamSource.delivery,
)


@dataclass(frozen=True)
class UpstreamStatus:
    source: UpstreamSource
    raw: str


# ─────────────────────────── lookup table ────────────────────────────
_S = SlotStatus
_LOOKUP: dict[str, SlotStatus] = {
    # nothing happened yet
    "scheduled": _S.scheduled,
    "pending": _S.scheduled,
    "pending_assignment": _S.scheduled,
    "not_assigned": _S.scheduled,
    "unassigned": _S.scheduled,
    "rejected": _S.scheduled,           # chef declined, back to the pool
    # chef
    "chef_assigned": _S.chef_assigned,
    "assigned": _S.chef_assigned,
    "accepted": _S.chef_assigned,
    "confirmed": _S.chef_assigned,
    "preparing": _S.preparing,
    "preparing_food": _S.preparing,
    "in_progress": _S.preparing,
    "inprogress": _S.preparing,
    "cooking": _S.preparing,
    "ready": _S.ready,
    "food_ready": _S.ready,
    "ready_for_pickup": _S.ready,
    "quality_check": _S.ready,
    "completed": _S.ready,              # delegation "Completed" = chef is done
    # driver
    "out_for_delivery": _S.out_for_delivery,
    "outfordelivery": _S.out_for_delivery,
    "picked_up": _S.out_for_delivery,
    "in_transit": _S.out_for_delivery,
    "delivered": _S.delivered,
    "failed": _S.scheduled,             # explicit reset-for-retry
    "delivery_failed": _S.scheduled,
    # side states
    "cancelled": _S.cancelled,
    "canceled": _S.cancelled,
    "skipped": _S.skipped,
}
_RETRY_RESETS = frozenset({"failed", "delivery_failed"})


def _token(raw: str) -> str:
    return re.sub(r"[\s\-]+", "_", raw.strip().lower())


def normalize_raw(raw: str | None) -> SlotStatus:
    """Map one raw upstream value to its canonical status (unknown → scheduled)."""
    if raw is None or not str(raw).strip():
        return SlotStatus.scheduled
    status = _LOOKUP.get(_token(str(raw)))
    if status is None:
        _LOG.warning("unknown upstream status %r – treating as scheduled", raw)
        return SlotStatus.scheduled
    return status


def collect_upstream(
    delegation_status: str | None = None,
    order_status: str | None = None,
    delivery_status: str | None = None,
) -> list[UpstreamStatus]:
    """Build the tagged reports, highest precedence first; blanks are dropped."""
    values = {
        UpstreamSource.delegation: delegation_status,
        UpstreamSource.order: order_status,
        UpstreamSource.delivery: delivery_status,
    }
    return [
        UpstreamStatus(src, values[src].strip())
        for src in PRECEDENCE
        if values[src] and values[src].strip()
    ]


def _winner(reports: Iterable[UpstreamStatus]) -> UpstreamStatus | None:
    by_source = {r.source: r for r in reports}
    for src in PRECEDENCE:
        if src in by_source:
            return by_source[src]
    return None


def canonical_status(reports: Iterable[UpstreamStatus]) -> SlotStatus:
    top = _winner(reports)
    return normalize_raw(top.raw) if top else SlotStatus.scheduled


# ─────────────────────────── reconciliation ─────────────────────────
@dataclass(frozen=True)
class SyncDecision:
    slot_key: SlotKey
    previous: SlotStatus
    status: SlotStatus
    source: UpstreamSource | None = None
    reset: bool = False
    dropped_reason: str | None = None

    @property
    def changed(self) -> bool:
        return self.status != self.previous


class StatusSynchronizer:
    """The only place that decides a slot's canonical status."""

    def apply_write(self, slot_key: SlotKey, current: SlotStatus, target: SlotStatus | str) -> SlotStatus:
        """Client write path; errors propagate to the caller."""
        return attempt_transition(slot_key, current, target)

    def reconcile(
        self,
        slot_key: SlotKey,
        current: SlotStatus,
        reports: Iterable[UpstreamStatus],
    ) -> SyncDecision:
        top = _winner(list(reports))
        if top is None:
            return SyncDecision(slot_key, current, current)

        target = normalize_raw(top.raw)

        # a failed delivery attempt puts the slot back in the queue
        if _token(top.raw) in _RETRY_RESETS:
            if current == SlotStatus.out_for_delivery:
                _LOG.info("%s: delivery failed, reset for retry", slot_key)
                return SyncDecision(slot_key, current, SlotStatus.scheduled, top.source, reset=True)
            return SyncDecision(
                slot_key, current, current, top.source,
                dropped_reason=f"retry reset ignored while {current.value}",
            )

        try:
            new = attempt_transition(slot_key, current, target)
        except RegressionError as exc:
            _LOG.warning("%s: dropping %s report %r (%s)", slot_key, top.source.value, top.raw, exc.reason)
            return SyncDecision(slot_key, current, current, top.source, dropped_reason=exc.reason)
        return SyncDecision(slot_key, current, new, top.source)


# ─────────────────────────── differential merge ─────────────────────
@dataclass
class MergeResult:
    slots: dict[SlotKey, MealSlot]
    replaced: set[SlotKey] = field(default_factory=set)
    added: set[SlotKey] = field(default_factory=set)
    removed: set[SlotKey] = field(default_factory=set)

    @property
    def changed(self) -> bool:
        return bool(self.replaced or self.added or self.removed)


def merge_timeline(
    current: Mapping[SlotKey, MealSlot],
    incoming: Iterable[MealSlot],
) -> MergeResult:
    """
    Merge a fresh projection into the slots a client already holds.

    Unchanged records keep their identity (the very same object), so any
    state the caller hangs off them survives.  Slots without a scheduled
    date cannot be keyed and are ignored.
    """
    merged: dict[SlotKey, MealSlot] = {}
    result = MergeResult(slots=merged)

    for slot in incoming:
        key = slot.key
        if key is None:
            continue
        old = current.get(key)
        if old is None:
            merged[key] = slot
            result.added.add(key)
        elif old.signature() != slot.signature():
            merged[key] = slot
            result.replaced.add(key)
        else:
            merged[key] = old

    result.removed = set(current) - set(merged)
    _LOG.debug(
        "merge: %d replaced, %d added, %d removed",
        len(result.replaced), len(result.added), len(result.removed),
    )
    return result
