"""
client/timeline_client.py
────────────────────────────────────────────────────────────────────────
What the customer / chef / driver apps do against the timeline API:

* poll every ~30 s and merge silently (only changed slots are replaced,
  UI state hanging off the client is never touched);
* refreshes are ordered by when they were *issued* – an older response
  landing late is dropped;
* writes are pre-validated with the same state machine the server uses,
  applied optimistically, and rolled back to the last server-confirmed
  status if the server refuses or the network fails.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import date
from typing import Any, Callable

import httpx

from client.parse import parse_day_update, parse_slot_update, parse_timeline
from core.batch import BatchResult, find_day, plan_day_update
from core.errors import (
    DayNotFoundError,
    ForbiddenTargetError,
    MalformedResponseError,
    MissingScheduleDateError,
    NetworkError,
    RegressionError,
    TransitionError,
)
from core.models.slot import DayGroup, MealSlot, ProgressSummary, SlotKey
from core.status import SlotStatus, parse_status
from core.sync import MergeResult, StatusSynchronizer, merge_timeline
from core.timeline import Timeline, build_timeline, group_by_day

_LOG = logging.getLogger(__name__)

# the server never applied the write
_NOT_WRITTEN = (NetworkError, TransitionError, DayNotFoundError)


class TimelineClient:
    def __init__(
        self,
        base_url: str,
        subscription_id: str,
        token: str | None = None,
        *,
        lookahead_days: int | None = None,
        poll_interval: float = 30.0,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.subscription_id = subscription_id
        self.lookahead_days = lookahead_days
        self.poll_interval = poll_interval
        self._http = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)
        self._token = token
        self._sync = StatusSynchronizer()

        self.slots: dict[SlotKey, MealSlot] = {}
        self.undated: list[MealSlot] = []
        self.progress: ProgressSummary | None = None
        self.ui_state: dict[str, Any] = {}        # selection, scroll position, …

        self._confirmed: dict[SlotKey, SlotStatus] = {}
        self._pending: dict[SlotKey, SlotStatus] = {}
        self._issued = 0
        self._applied = 0

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "TimelineClient":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        await self.aclose()

    # ─────────────────────────── transport ──────────────────────────
    @property
    def _base(self) -> str:
        return f"/api/v1/subscriptions/{self.subscription_id}"

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self._token}"} if self._token else {}

    async def _send(self, method: str, url: str, **kw: Any) -> httpx.Response:
        try:
            return await self._http.request(method, url, headers=self._headers(), **kw)
        except httpx.TransportError as exc:
            raise NetworkError(f"{method} {url} failed: {exc!r}") from exc

    @staticmethod
    def _raise_for(r: httpx.Response, key: SlotKey | None = None, day: date | None = None) -> None:
        if r.status_code < 400:
            return
        try:
            body = r.json()
        except ValueError:
            body = None
        detail = body.get("detail") if isinstance(body, dict) else None
        reason = detail.get("reason") if isinstance(detail, dict) else str(detail or r.reason_phrase)
        where = {"slot_key": key, "day": day}

        if r.status_code == 409:
            raise RegressionError(reason, **where)
        if r.status_code == 403:
            raise ForbiddenTargetError(reason, **where)
        if r.status_code == 422:
            raise TransitionError(reason, **where)
        if r.status_code == 404:
            raise DayNotFoundError(reason, **where)
        raise NetworkError(f"server answered {r.status_code}: {reason}", **where)

    # ─────────────────────────── reads ──────────────────────────────
    async def refresh(self, silent: bool = True) -> MergeResult | None:
        """
        Fetch the timeline and merge it in.  Returns None when the refresh
        failed (silent mode) or was superseded by a newer one.
        """
        self._issued += 1
        seq = self._issued
        params = {"lookaheadDays": self.lookahead_days} if self.lookahead_days is not None else None
        try:
            r = await self._send("GET", f"{self._base}/timeline", params=params)
            self._raise_for(r)
            try:
                payload = parse_timeline(r.json())
            except ValueError as exc:
                raise MalformedResponseError(f"timeline response is not JSON: {exc}") from exc
        except (NetworkError, MalformedResponseError, TransitionError, DayNotFoundError) as exc:
            if silent:
                _LOG.warning("background refresh of %s failed: %s", self.subscription_id, exc)
                return None
            raise

        if seq < self._applied:
            _LOG.debug("refresh #%d superseded by #%d, dropped", seq, self._applied)
            return None
        self._applied = seq

        dated = [s for s in payload.timeline if s.key is not None]
        self.undated = [s for s in payload.timeline if s.key is None]
        result = merge_timeline(self.slots, dated)
        self.slots = result.slots
        self._confirmed = {k: s.status for k, s in result.slots.items()}
        self._pending.clear()       # authoritative data wins over optimistic state
        self.progress = payload.progress
        return result

    async def poll(
        self,
        stop: asyncio.Event | None = None,
        rounds: int | None = None,
        on_change: Callable[[MergeResult], None] | None = None,
    ) -> None:
        """
        Silent refresh loop until `stop` is set (or `rounds` ran).  `on_change`
        sees every applied refresh that replaced, added or removed a slot.
        """
        stop = stop or asyncio.Event()
        done = 0
        while not stop.is_set():
            result = await self.refresh(silent=True)
            if on_change is not None and result is not None and result.changed:
                on_change(result)
            done += 1
            if rounds is not None and done >= rounds:
                return
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    def timeline(self) -> Timeline:
        return build_timeline(self.slots.values())

    def days(self) -> list[DayGroup]:
        return group_by_day(self.slots.values())

    # ─────────────────────────── optimistic state ───────────────────
    def _set_local(self, key: SlotKey, status: SlotStatus) -> None:
        self.slots[key] = self.slots[key].model_copy(update={"status": status})

    def _rollback(self, key: SlotKey) -> None:
        # a refresh that landed meanwhile already put the truth in place
        if self._pending.pop(key, None) is None:
            return
        confirmed = self._confirmed.get(key)
        if confirmed is not None and key in self.slots:
            self._set_local(key, confirmed)

    def _confirm(self, key: SlotKey, status: SlotStatus) -> None:
        self._pending.pop(key, None)
        self._confirmed[key] = status
        if key in self.slots:
            self._set_local(key, status)

    # ─────────────────────────── writes ─────────────────────────────
    def _slot(self, scheduled_date: date | None, meal_time: str) -> MealSlot:
        if scheduled_date is None:
            raise MissingScheduleDateError("no scheduled date", slot_key=None)
        key = SlotKey(self.subscription_id, scheduled_date, meal_time)
        slot = self.slots.get(key)
        if slot is None:
            raise DayNotFoundError(f"no {meal_time} on this day", day=scheduled_date)
        return slot

    async def update_slot_status(
        self,
        scheduled_date: date | None,
        meal_time: str,
        target: SlotStatus | str,
        notes: str | None = None,
    ):
        slot = self._slot(scheduled_date, meal_time)
        key = slot.key
        new = self._sync.apply_write(key, slot.status, target)   # refuses regressions locally
        if new == slot.status:
            return None

        self._pending[key] = new
        self._set_local(key, new)
        try:
            r = await self._send(
                "PUT",
                f"{self._base}/slots/{key.date.isoformat()}/{key.meal_time}",
                json={"status": new.value, "notes": notes},
            )
            self._raise_for(r, key=key)
        except _NOT_WRITTEN:
            self._rollback(key)
            raise
        # the server has committed; a bad body leaves the optimistic value pending
        out = parse_slot_update(self._json(r))

        self._confirm(key, out.applied_status)
        return out

    async def update_day_status(self, scheduled_date: date | None, target: SlotStatus | str):
        if scheduled_date is None:
            raise MissingScheduleDateError("day has no scheduled date")
        day = find_day(self.days(), scheduled_date)
        plan: BatchResult = plan_day_update(self.subscription_id, day, parse_status(target))

        keys = [o.slot_key for o in plan.applied]
        for o in plan.applied:
            self._pending[o.slot_key] = o.status
            self._set_local(o.slot_key, o.status)
        try:
            r = await self._send(
                "PUT",
                f"{self._base}/days/{scheduled_date.isoformat()}",
                json={"status": plan.target.value},
            )
            self._raise_for(r, day=scheduled_date)
        except _NOT_WRITTEN:
            for key in keys:
                self._rollback(key)
            raise
        out = parse_day_update(self._json(r))

        for o in out.per_slot_outcomes:
            key = SlotKey(self.subscription_id, scheduled_date, o.meal_time)
            self._confirm(key, o.status)
        return out
