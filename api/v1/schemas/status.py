from __future__ import annotations
import datetime as dt
from typing import Any

from pydantic import Field

from core.batch import Outcome
from core.models.base import CamelModel
from core.status import SlotStatus


class SlotStatusUpdateIn(CamelModel):
    status: str = Field(..., examples=["preparing", "ready"])
    notes: str | None = None


class SlotStatusUpdateOut(CamelModel):
    applied_status: SlotStatus
    daily_workload_completed: bool | None = None
    driver_assignment: dict[str, Any] | None = None


class DayStatusUpdateIn(CamelModel):
    status: str = Field(..., examples=["ready"])


class SlotOutcomeOut(CamelModel):
    meal_time: str
    outcome: Outcome
    previous_status: SlotStatus
    status: SlotStatus
    reason: str | None = None


class DayStatusUpdateOut(CamelModel):
    date: dt.date
    per_slot_outcomes: list[SlotOutcomeOut]
    applied_count: int
    noop: bool = False
    message: str
    daily_workload_completed: bool | None = None


class UpstreamReportIn(CamelModel):
    date: dt.date
    meal_time: str
    delegation_status: str | None = None
    order_status: str | None = None
    delivery_status: str | None = None
    order_id: str | None = None


class SyncRequest(CamelModel):
    reports: list[UpstreamReportIn]


class SyncRejection(CamelModel):
    date: dt.date
    meal_time: str
    reason: str


class SyncResponse(CamelModel):
    changed: int
    unchanged: int
    rejected: list[SyncRejection] = Field(default_factory=list)


class SlotHistoryEntry(CamelModel):
    from_status: SlotStatus
    to_status: SlotStatus
    source: str
    actor: str | None = None
    notes: str | None = None
    created_at: dt.datetime | None = None
