"""
`python -m workers.poll_timeline --subscription-id=sub-1 --token=...`

Headless stand-in for the customer / chef apps: keeps one subscription's
timeline fresh by polling, logging what each refresh changed.
"""
from __future__ import annotations

import argparse
import asyncio
import logging

from client.timeline_client import TimelineClient
from config import settings
from core.sync import MergeResult

_LOG = logging.getLogger(__name__)


async def _run(base_url: str, sub_id: str, token: str | None, lookahead: int | None, rounds: int | None) -> None:
    async with TimelineClient(
        base_url,
        sub_id,
        token,
        lookahead_days=lookahead,
        poll_interval=settings.poll_interval_seconds,
        timeout=settings.http_timeout_seconds,
    ) as client:
        # first load is loud: a wrong id or a dead server should stop us here
        await client.refresh(silent=False)
        _LOG.info("loaded %d slots, progress %s%%", len(client.slots), client.progress.progress_percentage)

        def _log_change(result: MergeResult) -> None:
            _LOG.info(
                "refresh: %d replaced, %d added, %d removed; progress %s%%",
                len(result.replaced), len(result.added), len(result.removed),
                client.progress.progress_percentage,
            )

        await asyncio.sleep(client.poll_interval)
        await client.poll(rounds=rounds, on_change=_log_change)


if __name__ == "__main__":
    logging.basicConfig(level=settings.log_level.upper())
    ap = argparse.ArgumentParser()
    ap.add_argument("--subscription-id", required=True)
    ap.add_argument("--base-url", default="http://localhost:8000")
    ap.add_argument("--token", default=None)
    ap.add_argument("--lookahead-days", type=int, default=None)
    ap.add_argument("--rounds", type=int, default=None, help="stop after N refreshes")
    args = ap.parse_args()
    asyncio.run(_run(args.base_url, args.subscription_id, args.token, args.lookahead_days, args.rounds))
