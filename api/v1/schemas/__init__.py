"""Re-export individual schema modules for easy imports."""

from .subscription import SubscriptionCreate, SubscriptionOut
from .timeline import TimelineResponse, WeeklyStatsRow
from .status import (
    DayStatusUpdateIn,
    DayStatusUpdateOut,
    SlotHistoryEntry,
    SlotOutcomeOut,
    SlotStatusUpdateIn,
    SlotStatusUpdateOut,
    SyncRequest,
    SyncResponse,
)

__all__ = [
    "SubscriptionCreate",
    "SubscriptionOut",
    "TimelineResponse",
    "WeeklyStatsRow",
    "DayStatusUpdateIn",
    "DayStatusUpdateOut",
    "SlotHistoryEntry",
    "SlotOutcomeOut",
    "SlotStatusUpdateIn",
    "SlotStatusUpdateOut",
    "SyncRequest",
    "SyncResponse",
]
