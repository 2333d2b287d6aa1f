"""
core/timeline.py – day/week groups and the progress rollup.
"""
from datetime import date, timedelta

from core.models.slot import DayType, Phase
from core.status import SlotStatus
from core.sync import merge_timeline
from core.timeline import build_timeline, group_by_day, group_by_week, summarize_progress

START = date(2024, 5, 6)
S = SlotStatus


def test_day_groups_sorted_by_meal_time(make_slot):
    slots = [make_slot("dinner"), make_slot("breakfast"), make_slot("lunch", dow=2, on=START + timedelta(days=1))]
    days = group_by_day(slots)
    assert [d.day_of_week for d in days] == [1, 2]
    assert [s.meal_time for s in days[0].meal_slots] == ["breakfast", "dinner"]


def test_all_ready_and_day_type(make_slot):
    (day,) = group_by_day([make_slot("breakfast", S.ready, day_type=DayType.past),
                           make_slot("lunch", S.ready, day_type=DayType.current)])
    assert day.all_ready
    assert day.day_type == DayType.current

    (day,) = group_by_day([make_slot("breakfast", S.ready, day_type=DayType.past),
                           make_slot("lunch", S.preparing, day_type=DayType.past)])
    assert not day.all_ready
    assert day.day_type == DayType.past


def test_progress_counts(make_slot):
    slots = [
        make_slot("breakfast", S.delivered, day_type=DayType.past),
        make_slot("lunch", S.ready, day_type=DayType.past),         # counts as completed
        make_slot("dinner", S.ready, day_type=DayType.current),     # in progress
        make_slot("lunch", S.scheduled, dow=2, on=START + timedelta(days=1)),
    ]
    p = summarize_progress(slots)
    assert (p.total_steps, p.completed_steps, p.in_progress_steps, p.remaining_steps) == (4, 2, 1, 1)
    assert p.progress_percentage == 50
    assert p.current_phase == Phase.in_progress


def test_percentage_rounds_half_up(make_slot):
    slots = [make_slot(f"m{i}") for i in range(8)]
    slots[0] = make_slot("m0", S.delivered, day_type=DayType.past)
    assert summarize_progress(slots).progress_percentage == 13      # 12.5


def test_phases(make_slot):
    assert summarize_progress([]).current_phase == Phase.active
    assert summarize_progress([]).progress_percentage == 0
    assert summarize_progress([make_slot()]).current_phase == Phase.active
    done = [make_slot(status=S.delivered, day_type=DayType.past)]
    assert summarize_progress(done).current_phase == Phase.completed


def test_cancelled_today_is_not_in_progress(make_slot):
    p = summarize_progress([make_slot(status=S.cancelled, day_type=DayType.current)])
    assert p.in_progress_steps == 0
    assert p.remaining_steps == 1


def test_week_groups(make_slot):
    slots = [
        make_slot("lunch", S.delivered, day_type=DayType.past),
        make_slot("dinner"),
        make_slot("lunch", week=2, dow=1, on=START + timedelta(days=7)),
    ]
    weeks = group_by_week(group_by_day(slots))
    assert [(w.week_number, w.total_meals, w.completed_meals) for w in weeks] == [(1, 2, 1), (2, 1, 0)]


def test_lookahead_limits_groups_not_progress(make_slot):
    slots = [make_slot("lunch", dow=d, on=START + timedelta(days=d - 1)) for d in range(1, 8)]
    tl = build_timeline(slots, today=START, lookahead_days=2)
    assert [s.scheduled_date for s in tl.slots] == [START + timedelta(days=i) for i in range(3)]
    assert len(tl.days) == 3
    assert tl.progress.total_steps == 7


def test_progress_consistent_after_merge(make_slot):
    held = [make_slot(f"m{i}") for i in range(3)]
    current = {s.key: s for s in held}
    incoming = [make_slot("m0", S.delivered, day_type=DayType.past), make_slot("m1"), make_slot("m2")]
    merged = merge_timeline(current, incoming).slots.values()

    p = summarize_progress(merged)
    assert p.progress_percentage == round(100 * p.completed_steps / p.total_steps)
    assert p.completed_steps == 1
