"""
Seed a demo subscription (with a frozen meal-plan snapshot) so the
timeline endpoints have something to show.

Usage
-----

    # 2-week plan, breakfast + lunch, starting today
    python -m scripts.seed_subscription demo-sub --chef-id chef-1 --customer-id cust-1

    # custom meal schedule (list of MealSlotDefinition dicts, camelCase)
    python -m scripts.seed_subscription demo-sub --file path/to/schedule.json
"""
from __future__ import annotations

import argparse
import asyncio
import json
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, List

from core.models.subscription import MealPlanSnapshot, Subscription
from services import slot_store
from services.db import SubscriptionRow, init_models, session_factory

# ────────────────────────────────────────────────────────────────────
_DISHES: dict[str, List[dict[str, Any]]] = {
    "breakfast": [
        {"name": "Masala Oats with Veggies", "nutrition": {"kcal": 380, "protein_g": 14}},
        {"name": "Moong Dal Chilla", "nutrition": {"kcal": 340, "protein_g": 18}},
    ],
    "lunch": [
        {"name": "Tandoori Chicken & Quinoa Khichdi", "nutrition": {"kcal": 510, "protein_g": 42}},
        {"name": "Palak Paneer with Brown-Rice Phulka", "nutrition": {"kcal": 560, "protein_g": 32}},
    ],
}


def _default_schedule(weeks: int, meal_times: list[str]) -> list[dict[str, Any]]:
    out = []
    for week in range(1, weeks + 1):
        for dow in range(1, 8):
            for mt in meal_times:
                dish = _DISHES.get(mt, _DISHES["lunch"])[(week + dow) % 2]
                out.append(
                    {
                        "weekNumber": week,
                        "dayOfWeek": dow,
                        "mealTime": mt,
                        "customTitle": dish["name"],
                        "meals": [dish],
                    }
                )
    return out


def _load_json(path: Path) -> list[dict[str, Any]]:
    data = json.loads(path.read_text())
    if not isinstance(data, list):
        raise ValueError("JSON file must contain a list of meal slot definitions")
    return data


async def _seed(sub: Subscription) -> None:
    await init_models()
    async_session = await session_factory()
    async with async_session() as db:
        if await db.get(SubscriptionRow, sub.id):
            raise SystemExit(f"subscription {sub.id} already exists")
        db.add(slot_store.to_row(sub))
        await db.commit()
    n = len(sub.meal_plan_snapshot.meal_schedule) if sub.meal_plan_snapshot else 0
    print(f"✓ inserted subscription {sub.id} ({sub.duration_weeks} weeks, {n} plan slots)")


def main() -> None:
    parser = argparse.ArgumentParser()
    parser.add_argument("subscription_id", help="id of the new subscription")
    parser.add_argument("--customer-id")
    parser.add_argument("--chef-id")
    parser.add_argument("--driver-id")
    parser.add_argument("--weeks", type=int, default=2)
    parser.add_argument("--start", type=date.fromisoformat, default=date.today())
    parser.add_argument("--meal-times", nargs="+", default=["breakfast", "lunch"])
    parser.add_argument(
        "--file",
        type=Path,
        help="optional JSON file with the meal schedule (overrides the demo plan)",
    )
    args = parser.parse_args()

    schedule = _load_json(args.file) if args.file else _default_schedule(args.weeks, args.meal_times)
    sub = Subscription(
        id=args.subscription_id,
        customer_id=args.customer_id,
        chef_id=args.chef_id,
        driver_id=args.driver_id,
        start_date=args.start,
        created_at=datetime.now(timezone.utc).replace(tzinfo=None),
        duration_weeks=args.weeks,
        selected_meal_types=args.meal_times,
        meal_plan_snapshot=MealPlanSnapshot.model_validate(
            {"planName": "Demo plan", "mealSchedule": schedule}
        ),
    )
    asyncio.run(_seed(sub))


if __name__ == "__main__":
    main()
