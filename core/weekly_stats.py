"""
core/weekly_stats.py
────────────────────────────────────────────────────────────────────────
Per-week status breakdown for dashboards (chef workload, admin monitor).

One row per week number, one column per canonical status, plus
`total`, `completed` and `completion_pct`.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable

import pandas as pd

from core.models.slot import MealSlot
from core.status import SlotStatus
from core.timeline import is_completed

_LOG = logging.getLogger(__name__)

STATUS_COLUMNS = [s.value for s in SlotStatus]
COLUMNS = ["week_number", *STATUS_COLUMNS, "total", "completed", "completion_pct"]


def weekly_stats(slots: Iterable[MealSlot]) -> pd.DataFrame:
    rows = [
        {
            "week_number": s.week_number,
            "status": s.status.value,
            "completed": int(is_completed(s)),
        }
        for s in slots
    ]
    if not rows:
        return pd.DataFrame(columns=COLUMNS)

    df = pd.DataFrame(rows)
    counts = (
        pd.crosstab(df["week_number"], df["status"])
        .reindex(columns=STATUS_COLUMNS, fill_value=0)
    )
    counts["total"] = counts[STATUS_COLUMNS].sum(axis=1)
    counts["completed"] = df.groupby("week_number")["completed"].sum()
    counts["completion_pct"] = (100 * counts["completed"] / counts["total"]).round(1)

    out = counts.reset_index()
    out.columns.name = None
    _LOG.debug("weekly stats over %d slots, %d weeks", len(rows), len(out))
    return out[COLUMNS]


def weekly_stats_records(slots: Iterable[MealSlot]) -> list[dict[str, Any]]:
    """JSON-friendly rows (numpy scalars converted to plain Python)."""
    df = weekly_stats(slots)
    records = []
    for rec in df.to_dict("records"):
        records.append(
            {
                k: (float(v) if k == "completion_pct" else int(v))
                for k, v in rec.items()
            }
        )
    return records
