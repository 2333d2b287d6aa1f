"""
client/parse.py
────────────────────────────────────────────────────────────────────────
The one place a client looks at raw JSON.  Anything that is not the
documented timeline / write payload fails here, loudly, instead of being
searched for alternative shapes deeper down.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError

from api.v1.schemas import DayStatusUpdateOut, SlotStatusUpdateOut, TimelineResponse
from core.errors import MalformedResponseError


def _parse(model: type[BaseModel], data: Any, what: str) -> Any:
    if not isinstance(data, dict):
        raise MalformedResponseError(f"{what}: expected a JSON object, got {type(data).__name__}")
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(p) for p in first["loc"])
        raise MalformedResponseError(f"{what}: {loc}: {first['msg']}") from exc


def parse_timeline(data: Any) -> TimelineResponse:
    return _parse(TimelineResponse, data, "timeline response")


def parse_slot_update(data: Any) -> SlotStatusUpdateOut:
    return _parse(SlotStatusUpdateOut, data, "slot update response")


def parse_day_update(data: Any) -> DayStatusUpdateOut:
    return _parse(DayStatusUpdateOut, data, "day update response")
