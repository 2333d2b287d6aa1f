"""
services/dispatch.py
────────────────────────────────────────────────────────────────────────
Outbound calls to collaborators this service does not own:

* notification dispatcher – told when a chef's daily workload is done
* driver-assignment service – asked for a driver once a meal is ready

Both are optional (unset URL → no call) and best-effort: a failure is
logged and never fails the status write that triggered it.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Any

import httpx

from config import settings

_LOG = logging.getLogger(__name__)


class Dispatcher:
    def __init__(
        self,
        notification_url: str | None = None,
        driver_assignment_url: str | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._notification_url = notification_url
        self._driver_url = driver_assignment_url
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls) -> "Dispatcher":
        return cls(
            settings.notification_webhook_url,
            settings.driver_assignment_url,
            settings.http_timeout_seconds,
        )

    async def _post(self, url: str, payload: dict[str, Any]) -> dict[str, Any] | None:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as http:
            r = await http.post(url, json=payload)
            r.raise_for_status()
            return r.json() if r.content else None

    async def daily_workload_completed(self, chef_id: str, on: date) -> bool:
        if not self._notification_url:
            return False
        try:
            await self._post(
                self._notification_url,
                {"event": "daily_workload_completed", "chefId": chef_id, "date": on.isoformat()},
            )
        except httpx.HTTPError as exc:
            _LOG.warning("workload notification for chef %s failed: %s", chef_id, exc)
            return False
        return True

    async def request_driver_assignment(
        self, order_id: str, subscription_id: str, on: date, meal_time: str
    ) -> dict[str, Any] | None:
        if not self._driver_url:
            return None
        try:
            return await self._post(
                self._driver_url,
                {
                    "orderId": order_id,
                    "subscriptionId": subscription_id,
                    "date": on.isoformat(),
                    "mealTime": meal_time,
                },
            )
        except (httpx.HTTPError, ValueError) as exc:
            _LOG.warning("driver assignment for order %s failed: %s", order_id, exc)
            return None
