"""
Shared fixtures.  The database URL must be pinned *before* `config` is
imported anywhere, so it is set at module import time.
"""
import os
import tempfile
from datetime import date, datetime
from pathlib import Path

_TMP = Path(tempfile.mkdtemp(prefix="meal-timeline-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TMP / 'test.db'}"
os.environ["JWT_SECRET"] = "test-secret-that-is-long-enough-for-hs256"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""
os.environ["DRIVER_ASSIGNMENT_URL"] = ""

import pytest  # noqa: E402

from core.models.slot import DayType, MealSlot, Provenance  # noqa: E402
from core.models.subscription import MealPlanSnapshot, Subscription  # noqa: E402
from core.status import SlotStatus  # noqa: E402

START = date(2024, 5, 6)            # a Monday
TODAY = date(2024, 5, 8)            # week 1, day 3


@pytest.fixture
def make_slot():
    def _make(
        meal_time: str = "lunch",
        status: SlotStatus = SlotStatus.scheduled,
        *,
        on: date | None = START,
        week: int = 1,
        dow: int = 1,
        day_type: DayType = DayType.future,
        sub_id: str = "sub-1",
        **extra,
    ) -> MealSlot:
        return MealSlot(
            subscription_id=sub_id,
            week_number=week,
            day_of_week=dow,
            day_name="Monday",
            meal_time=meal_time,
            meal_title=f"{meal_time} dish",
            scheduled_date=on,
            status=status,
            day_type=day_type,
            provenance=extra.pop("provenance", Provenance.snapshot),
            **extra,
        )

    return _make


@pytest.fixture
def make_sub():
    def _make(schedule: list[dict] | None = None, **fields) -> Subscription:
        data = {
            "id": "sub-1",
            "chef_id": "chef-1",
            "customer_id": "cust-1",
            "start_date": START,
            "created_at": datetime(2024, 5, 1, 9, 30),
            "duration_weeks": 1,
        }
        data.update(fields)
        if schedule is not None:
            data["meal_plan_snapshot"] = MealPlanSnapshot.model_validate({"mealSchedule": schedule})
        return Subscription.model_validate(data)

    return _make
