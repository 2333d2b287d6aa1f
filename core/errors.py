"""
core/errors.py
────────────────────────────────────────────────────────────────────────
Error taxonomy shared by the server routes and the polling client.

Every error carries the slot key (or the day) it concerns and a short
`reason`, so user-visible messages always name *what* failed and *why*.
"""
from __future__ import annotations

from datetime import date
from typing import Any


class FulfillmentError(Exception):
    """Base class for everything the timeline core raises on purpose."""

    def __init__(
        self,
        reason: str,
        *,
        slot_key: Any | None = None,
        day: date | None = None,
    ) -> None:
        super().__init__(reason)
        self.reason = reason
        self.slot_key = slot_key
        self.day = day

    @property
    def where(self) -> str:
        if self.slot_key is not None:
            key = self.slot_key
            return f"{key.meal_time} on {key.date.isoformat()}"
        if self.day is not None:
            return self.day.isoformat()
        return "subscription"

    @property
    def user_message(self) -> str:
        return f"{self.where}: {self.reason}"


# ─────────────────────────── transitions ────────────────────────────
class TransitionError(FulfillmentError):
    """A status transition was refused by the state machine."""


class RegressionError(TransitionError):
    """Target status precedes the current one (or current is terminal)."""

    @property
    def user_message(self) -> str:
        return f"{self.where}: status already passed, cannot revert ({self.reason})"


class UnknownStatusError(TransitionError):
    def __init__(self, value: Any, **kw: Any) -> None:
        super().__init__(f"unknown status {value!r}", **kw)
        self.value = value


class ForbiddenTargetError(TransitionError):
    """The caller's role may not drive a slot to this status."""


# ─────────────────────────── scheduling ─────────────────────────────
class MissingScheduleDateError(FulfillmentError):
    """The slot has no resolvable delivery date; nothing was sent."""

    @property
    def user_message(self) -> str:
        return (
            f"{self.where}: this meal does not have a scheduled date yet "
            "(no request was sent to the server)"
        )


class DayNotFoundError(FulfillmentError):
    """No published day group exists for the requested date."""


class NoApplicableSlotsError(FulfillmentError):
    """A day batch found no slot that could legally move to the target."""

    def __init__(self, reason: str, *, outcomes: list | None = None, **kw: Any) -> None:
        super().__init__(reason, **kw)
        self.outcomes = outcomes or []


# ─────────────────────────── transport ──────────────────────────────
class NetworkError(FulfillmentError):
    """Transient transport failure; always recoverable."""


class MalformedResponseError(FulfillmentError):
    """A server payload did not match the timeline contract."""
