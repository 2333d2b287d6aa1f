# api/v1/deps.py
from __future__ import annotations
from datetime import date

from fastapi import HTTPException, Request, status

from core.errors import FulfillmentError
from core.models.subscription import Subscription
from services.auth import Actor
from services.dispatch import Dispatcher
from services.timeline_service import TimelineService


def get_today() -> date:
    """Overridable in tests."""
    return date.today()


def get_timeline_service(request: Request) -> TimelineService:
    return request.app.state.timeline_service


def get_dispatcher(request: Request) -> Dispatcher:
    return request.app.state.dispatcher


def ensure_party(actor: Actor, sub: Subscription) -> None:
    """Only the subscription's own customer / chef / driver (or staff) may write."""
    owner = {
        "customer": sub.customer_id,
        "chef": sub.chef_id,
        "driver": sub.driver_id,
    }
    if actor.role in owner and owner[actor.role] != actor.id:
        raise HTTPException(
            status.HTTP_403_FORBIDDEN,
            f"{actor.role} {actor.id} is not assigned to subscription {sub.id}",
        )


def error_detail(exc: FulfillmentError, code: str) -> dict[str, str | None]:
    key = exc.slot_key
    return {
        "code": code,
        "message": exc.user_message,
        "reason": exc.reason,
        "date": (key.date if key else exc.day).isoformat() if (key or exc.day) else None,
        "mealTime": key.meal_time if key else None,
    }
