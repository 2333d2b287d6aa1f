"""
core/status.py
────────────────────────────────────────────────────────────────────────
Fulfillment state machine for a single meal slot.

Forward order (strict):

    scheduled → chef_assigned → preparing → ready → out_for_delivery → delivered

plus two absorbing side-states, `cancelled` and `skipped`, reachable from
any non-terminal state.  A move is legal iff the target sits strictly
later in the forward order, or the target is a side-state.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from core.errors import ForbiddenTargetError, RegressionError, UnknownStatusError

_LOG = logging.getLogger(__name__)


class SlotStatus(str, Enum):
    scheduled = "scheduled"
    chef_assigned = "chef_assigned"
    preparing = "preparing"
    ready = "ready"
    out_for_delivery = "out_for_delivery"
    delivered = "delivered"
    cancelled = "cancelled"
    skipped = "skipped"


FORWARD_ORDER: tuple[SlotStatus, ...] = (
    SlotStatus.scheduled,
    SlotStatus.chef_assigned,
    SlotStatus.preparing,
    SlotStatus.ready,
    SlotStatus.out_for_delivery,
    SlotStatus.delivered,
)
SIDE_STATES = frozenset({SlotStatus.cancelled, SlotStatus.skipped})
TERMINAL = frozenset({SlotStatus.delivered}) | SIDE_STATES

# produced by the delivery subsystem only
DELIVERY_OWNED = frozenset({SlotStatus.out_for_delivery, SlotStatus.delivered})

# persisted next to the status so the store can guard writes in SQL
SIDE_STATE_RANK = 100

_ROLE_TARGETS: dict[str, frozenset[SlotStatus]] = {
    "chef": frozenset(
        {
            SlotStatus.chef_assigned,
            SlotStatus.preparing,
            SlotStatus.ready,
            SlotStatus.cancelled,
            SlotStatus.skipped,
        }
    ),
    "customer": SIDE_STATES,
    "driver": DELIVERY_OWNED,
    "admin": frozenset(SlotStatus),
    "system": frozenset(SlotStatus),
}


# ─────────────────────────────── helpers ─────────────────────────── #
def parse_status(value: Any, slot_key: Any | None = None) -> SlotStatus:
    """Coerce a wire string into a `SlotStatus` or raise `UnknownStatusError`."""
    if isinstance(value, SlotStatus):
        return value
    try:
        return SlotStatus(str(value).strip().lower())
    except ValueError:
        raise UnknownStatusError(value, slot_key=slot_key) from None


def forward_index(status: SlotStatus) -> int:
    """Position in the forward order; side-states have none (-1)."""
    try:
        return FORWARD_ORDER.index(status)
    except ValueError:
        return -1


def rank(status: SlotStatus) -> int:
    """Monotone rank used for conditional writes."""
    return SIDE_STATE_RANK if status in SIDE_STATES else forward_index(status)


def has_reached(current: SlotStatus, target: SlotStatus) -> bool:
    """True when `current` already equals or exceeds `target` in forward order."""
    if current == target:
        return True
    if target in SIDE_STATES or current in SIDE_STATES:
        return False
    return forward_index(current) >= forward_index(target)


def is_legal(current: SlotStatus, target: SlotStatus) -> bool:
    if current in TERMINAL:
        return False
    if target in SIDE_STATES:
        return True
    return forward_index(target) > forward_index(current)


# ─────────────────────────────── API ─────────────────────────────── #
def attempt_transition(slot_key: Any, current: Any, target: Any) -> SlotStatus:
    """
    Validate `current → target` for `slot_key` and return the new status.

    Re-applying the current status is an idempotent no-op and returns it
    unchanged.  Raises `UnknownStatusError` for unrecognised values and
    `RegressionError` for backward moves or moves out of a terminal state.
    """
    cur = parse_status(current, slot_key)
    tgt = parse_status(target, slot_key)

    if cur == tgt:
        return cur
    if cur in TERMINAL:
        raise RegressionError(
            f"{cur.value} is final, cannot move to {tgt.value}", slot_key=slot_key
        )
    if not is_legal(cur, tgt):
        raise RegressionError(
            f"{tgt.value} comes before {cur.value}", slot_key=slot_key
        )

    _LOG.debug("transition %s: %s -> %s", slot_key, cur.value, tgt.value)
    return tgt


def ensure_actor_may_target(role: str, target: SlotStatus, slot_key: Any | None = None) -> None:
    allowed = _ROLE_TARGETS.get(role, frozenset())
    if target not in allowed:
        raise ForbiddenTargetError(
            f"role '{role}' cannot set status {target.value}", slot_key=slot_key
        )
