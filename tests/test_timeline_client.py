"""
client/timeline_client.py against an in-process fake server
(httpx.MockTransport), no network.
"""
import asyncio
import json
import logging
from datetime import date

import httpx
import pytest

from api.v1.schemas import TimelineResponse
from client.timeline_client import TimelineClient
from core.errors import (
    MalformedResponseError,
    MissingScheduleDateError,
    NetworkError,
    NoApplicableSlotsError,
    RegressionError,
)
from core.models.slot import DayType, Provenance, SlotKey
from core.status import SlotStatus
from core.timeline import build_timeline

START = date(2024, 5, 6)
S = SlotStatus
LUNCH = SlotKey("sub-1", START, "lunch")


def _payload(make_slot, statuses: dict) -> dict:
    slots = [make_slot(mt, st, day_type=DayType.current) for mt, st in statuses.items()]
    tl = build_timeline(slots)
    return TimelineResponse(
        subscription_id="sub-1",
        provenance=Provenance.snapshot,
        timeline=tl.slots,
        days=tl.days,
        weeks=tl.weeks,
        progress=tl.progress,
    ).model_dump(mode="json", by_alias=True)


class FakeServer:
    def __init__(self, payload):
        self.payload = payload
        self.status = 200
        self.requests: list[httpx.Request] = []
        self.on_put = lambda request: httpx.Response(500)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "GET":
            return httpx.Response(self.status, json=self.payload)
        return self.on_put(request)

    @property
    def puts(self):
        return [r for r in self.requests if r.method == "PUT"]


def _client(server, **kw) -> TimelineClient:
    return TimelineClient("http://timeline.test", "sub-1", "tok", transport=httpx.MockTransport(server), **kw)


# ─────────────────────────── reads ───────────────────────────
def test_refresh_loads_and_second_refresh_is_silent(make_slot):
    server = FakeServer(_payload(make_slot, {"breakfast": S.ready, "lunch": S.scheduled}))

    async def run():
        async with _client(server) as c:
            first = await c.refresh()
            held = dict(c.slots)
            c.ui_state["selected"] = LUNCH
            second = await c.refresh()
            return c, first, second, held

    c, first, second, held = asyncio.run(run())
    assert len(first.added) == 2
    assert not second.changed
    assert all(c.slots[k] is held[k] for k in held)
    assert c.ui_state == {"selected": LUNCH}
    assert server.requests[0].headers["Authorization"] == "Bearer tok"
    assert c.progress.total_steps == 2


def test_only_changed_slot_is_replaced(make_slot):
    server = FakeServer(_payload(make_slot, {"breakfast": S.ready, "lunch": S.scheduled}))

    async def run():
        async with _client(server) as c:
            await c.refresh()
            held = dict(c.slots)
            server.payload = _payload(make_slot, {"breakfast": S.ready, "lunch": S.preparing})
            result = await c.refresh()
            return c, held, result

    c, held, result = asyncio.run(run())
    assert result.replaced == {LUNCH}
    assert c.slots[LUNCH].status == S.preparing
    breakfast = SlotKey("sub-1", START, "breakfast")
    assert c.slots[breakfast] is held[breakfast]


def test_late_response_from_older_refresh_is_dropped(make_slot):
    old = _payload(make_slot, {"lunch": S.scheduled})
    new = _payload(make_slot, {"lunch": S.preparing})

    async def run():
        release = asyncio.Event()
        calls = []

        async def handler(request):
            calls.append(request)
            if len(calls) == 1:
                await release.wait()
                return httpx.Response(200, json=old)
            release.set()
            return httpx.Response(200, json=new)

        async with TimelineClient("http://t", "sub-1", transport=httpx.MockTransport(handler)) as c:
            slow = asyncio.create_task(c.refresh())
            while not calls:
                await asyncio.sleep(0)
            fast = await c.refresh()
            late = await slow
            return c, fast, late

    c, fast, late = asyncio.run(run())
    assert fast is not None
    assert late is None
    assert c.slots[LUNCH].status == S.preparing


def test_background_failure_is_only_logged(make_slot, caplog):
    server = FakeServer(_payload(make_slot, {"lunch": S.scheduled}))

    async def run():
        async with _client(server) as c:
            await c.refresh()
            server.status, server.payload = 503, {"detail": "maintenance"}
            with caplog.at_level(logging.WARNING, logger="client.timeline_client"):
                quiet = await c.refresh()
            with pytest.raises(NetworkError):
                await c.refresh(silent=False)
            return c, quiet

    c, quiet = asyncio.run(run())
    assert quiet is None
    assert c.slots[LUNCH].status == S.scheduled
    assert "refresh" in caplog.text


@pytest.mark.parametrize("body", [[1, 2], {"timeline": "nope"}])
def test_malformed_payload(body):
    server = FakeServer(body)

    async def run():
        async with _client(server) as c:
            with pytest.raises(MalformedResponseError):
                await c.refresh(silent=False)

    asyncio.run(run())


def test_poll_runs_rounds(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.scheduled}))

    async def run():
        async with _client(server, poll_interval=0) as c:
            await c.poll(rounds=2)

    asyncio.run(run())
    assert len(server.requests) == 2


def test_poll_reports_only_changing_refreshes(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.scheduled}))
    seen = []

    def on_change(result):
        seen.append(set(result.added) or set(result.replaced))
        server.payload = _payload(make_slot, {"lunch": S.preparing})

    async def run():
        async with _client(server, poll_interval=0) as c:
            await c.poll(rounds=3, on_change=on_change)

    asyncio.run(run())
    assert len(server.requests) == 3
    assert seen == [{LUNCH}, {LUNCH}]


# ─────────────────────────── writes ──────────────────────────
def test_optimistic_update_is_confirmed(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.chef_assigned}))
    seen = {}

    def on_put(request):
        seen["path"] = request.url.path
        seen["body"] = json.loads(request.content)
        seen["local"] = client.slots[LUNCH].status
        return httpx.Response(200, json={"appliedStatus": "preparing", "dailyWorkloadCompleted": False})

    server.on_put = on_put
    client = _client(server)

    async def run():
        async with client:
            await client.refresh()
            return await client.update_slot_status(START, "lunch", "preparing", notes="on the stove")

    out = asyncio.run(run())
    assert seen["path"] == "/api/v1/subscriptions/sub-1/slots/2024-05-06/lunch"
    assert seen["body"] == {"status": "preparing", "notes": "on the stove"}
    assert seen["local"] == S.preparing            # applied before the server answered
    assert out.applied_status == S.preparing
    assert client.slots[LUNCH].status == S.preparing


def test_network_failure_rolls_back(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.chef_assigned}))

    def on_put(request):
        raise httpx.ConnectError("connection refused", request=request)

    server.on_put = on_put

    async def run():
        async with _client(server) as c:
            await c.refresh()
            with pytest.raises(NetworkError):
                await c.update_slot_status(START, "lunch", "ready")
            return c

    c = asyncio.run(run())
    assert c.slots[LUNCH].status == S.chef_assigned


def test_server_rejection_rolls_back(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.preparing}))
    server.on_put = lambda r: httpx.Response(
        409, json={"detail": {"code": "regression", "reason": "slot is already delivered"}}
    )

    async def run():
        async with _client(server) as c:
            await c.refresh()
            with pytest.raises(RegressionError) as ei:
                await c.update_slot_status(START, "lunch", "ready")
            return c, ei.value

    c, err = asyncio.run(run())
    assert err.reason == "slot is already delivered"
    assert err.slot_key == LUNCH
    assert c.slots[LUNCH].status == S.preparing


def test_refused_locally_without_request(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.ready}))

    async def run():
        async with _client(server) as c:
            await c.refresh()
            with pytest.raises(RegressionError):
                await c.update_slot_status(START, "lunch", "preparing")
            with pytest.raises(MissingScheduleDateError) as ei:
                await c.update_slot_status(None, "lunch", "delivered")
            assert "no request was sent" in ei.value.user_message
            assert await c.update_slot_status(START, "lunch", "ready") is None

    asyncio.run(run())
    assert server.puts == []


def test_day_update(make_slot):
    server = FakeServer(
        _payload(make_slot, {"breakfast": S.preparing, "lunch": S.ready, "dinner": S.cancelled})
    )
    server.on_put = lambda r: httpx.Response(
        200,
        json={
            "date": "2024-05-06",
            "perSlotOutcomes": [
                {"mealTime": "breakfast", "outcome": "applied", "previousStatus": "preparing", "status": "ready"},
                {"mealTime": "lunch", "outcome": "skipped", "previousStatus": "ready", "status": "ready"},
                {"mealTime": "dinner", "outcome": "rejected", "previousStatus": "cancelled", "status": "cancelled"},
            ],
            "appliedCount": 1,
            "noop": False,
            "message": "Updated 1 of 3 meals",
        },
    )

    async def run():
        async with _client(server) as c:
            await c.refresh()
            out = await c.update_day_status(START, "ready")
            # everything that can be ready now is
            with pytest.raises(NoApplicableSlotsError):
                await c.update_day_status(START, "ready")
            return c, out

    c, out = asyncio.run(run())
    assert out.applied_count == 1
    assert len(server.puts) == 1
    assert server.puts[0].url.path == "/api/v1/subscriptions/sub-1/days/2024-05-06"
    assert c.slots[SlotKey("sub-1", START, "breakfast")].status == S.ready
    assert c.timeline().progress.total_steps == 3


def test_bad_body_after_committed_write_keeps_new_status(make_slot):
    server = FakeServer(_payload(make_slot, {"lunch": S.chef_assigned}))
    server.on_put = lambda r: httpx.Response(200, json={"unexpected": True})

    async def run():
        async with _client(server) as c:
            await c.refresh()
            with pytest.raises(MalformedResponseError):
                await c.update_slot_status(START, "lunch", "preparing")
            held = c.slots[LUNCH].status
            server.payload = _payload(make_slot, {"lunch": S.preparing})
            await c.refresh()
            return c, held

    c, held = asyncio.run(run())
    assert held == S.preparing
    assert c.slots[LUNCH].status == S.preparing
