"""
core/sync.py – normalisation, precedence, reconcile, differential merge.
"""
import logging
from datetime import date

import pytest

from core.models.slot import DayType, SlotKey
from core.schedule import SlotState, project_schedule
from core.status import SlotStatus
from core.sync import (
    StatusSynchronizer,
    UpstreamSource,
    canonical_status,
    collect_upstream,
    merge_timeline,
    normalize_raw,
)

START = date(2024, 5, 6)
KEY = SlotKey("sub-1", START, "lunch")
sync = StatusSynchronizer()


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("Out for Delivery", SlotStatus.out_for_delivery),
        ("picked_up", SlotStatus.out_for_delivery),
        ("In Progress", SlotStatus.preparing),
        ("Completed", SlotStatus.ready),
        ("confirmed", SlotStatus.chef_assigned),
        ("DELIVERED", SlotStatus.delivered),
        ("canceled", SlotStatus.cancelled),
        ("", SlotStatus.scheduled),
        (None, SlotStatus.scheduled),
    ],
)
def test_normalize_raw(raw, expected):
    assert normalize_raw(raw) == expected


def test_unknown_value_is_logged_and_scheduled(caplog):
    with caplog.at_level(logging.WARNING, logger="core.sync"):
        assert normalize_raw("beamed_up") == SlotStatus.scheduled
    assert "beamed_up" in caplog.text


def test_delegation_beats_order_beats_delivery():
    reports = collect_upstream("Ready", "confirmed", "delivered")
    assert [r.source for r in reports] == list(UpstreamSource)
    assert canonical_status(reports) == SlotStatus.ready
    assert canonical_status(collect_upstream(None, "  ", "picked_up")) == SlotStatus.out_for_delivery
    assert canonical_status([]) == SlotStatus.scheduled


def test_reconcile_advances():
    d = sync.reconcile(KEY, SlotStatus.chef_assigned, collect_upstream(order_status="preparing"))
    assert d.changed and d.status == SlotStatus.preparing
    assert d.source == UpstreamSource.order


def test_reconcile_drops_regressions():
    d = sync.reconcile(KEY, SlotStatus.delivered, collect_upstream(delegation_status="In Progress"))
    assert not d.changed
    assert d.status == SlotStatus.delivered
    assert d.dropped_reason


def test_failed_delivery_resets_for_retry():
    d = sync.reconcile(KEY, SlotStatus.out_for_delivery, collect_upstream(delivery_status="failed"))
    assert d.reset and d.status == SlotStatus.scheduled

    d = sync.reconcile(KEY, SlotStatus.preparing, collect_upstream(delivery_status="failed"))
    assert not d.reset and d.status == SlotStatus.preparing
    assert d.dropped_reason


def test_reconcile_without_reports_keeps_status():
    d = sync.reconcile(KEY, SlotStatus.ready, [])
    assert d.status == SlotStatus.ready and not d.changed


# ─────────────────────────── merge ───────────────────────────
def test_merge_replaces_only_changed_slots(make_slot):
    a, b = make_slot("breakfast"), make_slot("lunch")
    current = {a.key: a, b.key: b}
    incoming = [make_slot("breakfast"), make_slot("lunch", SlotStatus.preparing)]

    result = merge_timeline(current, incoming)
    assert result.replaced == {b.key}
    assert result.slots[a.key] is a           # identity kept for unchanged slot
    assert result.slots[b.key].status == SlotStatus.preparing


def test_merge_tracks_added_and_removed(make_slot):
    a = make_slot("breakfast")
    result = merge_timeline({a.key: a}, [make_slot("dinner")])
    assert result.added == {SlotKey("sub-1", START, "dinner")}
    assert result.removed == {a.key}
    assert result.changed


def test_merge_ignores_undated_slots(make_slot):
    result = merge_timeline({}, [make_slot(on=None)])
    assert result.slots == {}


def test_day_type_change_counts_as_change(make_slot):
    a = make_slot()
    result = merge_timeline({a.key: a}, [make_slot(day_type=DayType.current)])
    assert result.replaced == {a.key}


def test_unchanged_upstream_gives_zero_replacements(make_sub):
    sub = make_sub([{"weekNumber": 1, "dayOfWeek": d, "mealTime": "lunch", "customTitle": "x"} for d in (1, 2, 3)])
    states = {}
    for on, raw in ((START, "delivered"), (date(2024, 5, 7), "In Progress")):
        d = sync.reconcile(SlotKey(sub.id, on, "lunch"), SlotStatus.scheduled, collect_upstream(raw))
        states[(on, "lunch")] = SlotState(d.status)

    first = project_schedule(sub, date(2024, 5, 7), states).slots
    held = {s.key: s for s in first}
    again = project_schedule(sub, date(2024, 5, 7), states).slots

    result = merge_timeline(held, again)
    assert not result.changed
    assert all(result.slots[k] is held[k] for k in held)
