"""
services/db.py
────────────────────────────────────────────────────────────────────────
* Async SQLAlchemy v2 setup
* Tables for subscriptions, per-slot status and the status history
* Session helper used by routers / workers / scripts
"""
from __future__ import annotations

from datetime import date, datetime
from typing import AsyncGenerator

from sqlalchemy import JSON, Date, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.ext.asyncio import (
    AsyncAttrs,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column
from sqlalchemy.pool import NullPool

from config import settings

# ───────── connection helper ────────────────────────────────────────
_ENGINE: AsyncEngine | None = None


def _create_engine(url: str) -> AsyncEngine:
    if url.startswith("sqlite"):
        # one connection per session, nothing bound to a stale event loop
        return create_async_engine(url, poolclass=NullPool)
    return create_async_engine(url, pool_pre_ping=True)


async def engine() -> AsyncEngine:
    global _ENGINE
    if _ENGINE is None:
        _ENGINE = _create_engine(settings.database_url)
    return _ENGINE


# ───────── declarative base ──────────────────────────────────────────
Base = declarative_base(cls=AsyncAttrs)


class SubscriptionRow(Base):
    __tablename__ = "subscriptions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    customer_id: Mapped[str | None] = mapped_column(String, index=True)
    chef_id: Mapped[str | None] = mapped_column(String, index=True)
    driver_id: Mapped[str | None] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, default="active")
    start_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    duration_weeks: Mapped[int] = mapped_column(Integer, default=1)
    frequency: Mapped[str] = mapped_column(String, default="daily")
    next_delivery_date: Mapped[date | None] = mapped_column(Date)
    meal_plan_id: Mapped[str | None] = mapped_column(String)
    selected_meal_types: Mapped[list] = mapped_column(JSON, default=list)
    meal_plan_snapshot: Mapped[dict | None] = mapped_column(JSON)   # {mealSchedule: [...]}
    live_plan: Mapped[list | None] = mapped_column(JSON)            # live assignments


class SlotStatusRow(Base):
    """Canonical status per slot key (subscription, date, meal time)."""

    __tablename__ = "meal_slot_status"
    __table_args__ = (
        UniqueConstraint("subscription_id", "slot_date", "meal_time", name="uq_slot_key"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    subscription_id: Mapped[str] = mapped_column(String, index=True)
    slot_date: Mapped[date] = mapped_column(Date, index=True)
    meal_time: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String)
    status_rank: Mapped[int] = mapped_column(Integer)
    delivery_status: Mapped[str | None] = mapped_column(String)
    order_id: Mapped[str | None] = mapped_column(String)
    notes: Mapped[str | None] = mapped_column(Text)
    updated_by: Mapped[str | None] = mapped_column(String)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )


class SlotStatusHistory(Base):
    __tablename__ = "slot_status_history"

    id: Mapped[int] = mapped_column(primary_key=True)
    subscription_id: Mapped[str] = mapped_column(String, index=True)
    slot_date: Mapped[date] = mapped_column(Date)
    meal_time: Mapped[str] = mapped_column(String)
    from_status: Mapped[str] = mapped_column(String)
    to_status: Mapped[str] = mapped_column(String)
    source: Mapped[str] = mapped_column(String)          # chef / driver / delegation / ...
    actor: Mapped[str | None] = mapped_column(String)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())


# ───────── schema / session helpers ──────────────────────────────────

async def init_models() -> None:
    eng = await engine()
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(await engine(), expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async_session = await session_factory()
    async with async_session() as session:
        yield session
