from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1.deps import get_timeline_service
from api.v1.schemas import SubscriptionCreate, SubscriptionOut
from core.models.subscription import Subscription
from services import slot_store
from services.auth import Actor, current_actor
from services.db import SubscriptionRow, get_session
from services.timeline_service import TimelineService

router = APIRouter()


# ───────────────────────── create ──────────────────────────
@router.post(
    "",
    response_model=SubscriptionOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription(
    body: SubscriptionCreate,
    actor: Actor = Depends(current_actor),
    db: AsyncSession = Depends(get_session),
    svc: TimelineService = Depends(get_timeline_service),
) -> SubscriptionOut:
    if actor.role not in ("admin", "system"):
        raise HTTPException(status.HTTP_403_FORBIDDEN, "only staff can create subscriptions")
    if await db.get(SubscriptionRow, body.id):
        raise HTTPException(status_code=409, detail="Subscription already exists")

    data = body.model_dump(exclude_none=True)
    data.setdefault("created_at", datetime.now(timezone.utc).replace(tzinfo=None))
    sub = Subscription.model_validate(data)

    db.add(slot_store.to_row(sub))
    await db.commit()
    svc.forget(sub.id)
    return SubscriptionOut.model_validate(sub.model_dump())


# ───────────────────────── fetch one ────────────────────────
@router.get("/{subscription_id}", response_model=SubscriptionOut)
async def fetch_subscription(
    subscription_id: str,
    db: AsyncSession = Depends(get_session),
) -> SubscriptionOut:
    sub = await slot_store.get_subscription(db, subscription_id)
    if sub is None:
        raise HTTPException(status_code=404, detail="Subscription not found")
    return SubscriptionOut.model_validate(sub.model_dump())
