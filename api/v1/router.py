# api/v1/router.py
from fastapi import APIRouter

from . import slots, subscriptions, timeline

api_router = APIRouter()

api_router.include_router(subscriptions.router, prefix="/subscriptions", tags=["Subscriptions"])

# timeline reads and slot writes live *under* the subscription resource
api_router.include_router(timeline.router, prefix="/subscriptions", tags=["Timeline"])
api_router.include_router(slots.router, prefix="/subscriptions", tags=["Fulfillment"])
