"""Tests for daily and total win caps."""

import asyncio
from datetime import datetime, timezone

import pytest

from core.constants import CapDecision, PromotionVariant
from database.models import Caps
from services.cap_tracker import calendar_day, resolve_timezone


def test_calendar_day_uses_promotion_timezone():
    late_utc = datetime(2026, 3, 10, 20, 30, tzinfo=timezone.utc)
    assert calendar_day(late_utc, "UTC") == "2026-03-10"
    assert calendar_day(late_utc, "Asia/Tokyo") == "2026-03-11"
    assert calendar_day(late_utc, "America/Los_Angeles") == "2026-03-10"

    early_utc = datetime(2026, 3, 10, 3, 0, tzinfo=timezone.utc)
    assert calendar_day(early_utc, "America/New_York") == "2026-03-09"


def test_unknown_timezone():
    with pytest.raises(ValueError):
        resolve_timezone("Mars/Olympus_Mons")


@pytest.mark.asyncio
async def test_daily_cap_sequential(engine, factory, clock):
    promotion = await factory.create(
        engine, PromotionVariant.INSTANT_WIN, factory.instant_win(), caps=Caps(max_wins_per_day=2)
    )
    tracker = engine.cap_tracker
    now = clock.now()

    assert await tracker.reserve(promotion, now) is CapDecision.GRANTED
    assert await tracker.reserve(promotion, now) is CapDecision.GRANTED
    assert await tracker.reserve(promotion, now) is CapDecision.DENIED
    assert await tracker.wins_today(promotion, now) == 2

    clock.advance(days=1)
    assert await tracker.reserve(promotion, clock.now()) is CapDecision.GRANTED
    assert await tracker.wins_total(promotion) == 3


@pytest.mark.asyncio
async def test_daily_cap_resets_at_local_midnight(engine, factory, clock):
    """A Tokyo promotion rolls over at 15:00 UTC."""
    promotion = await factory.create(
        engine,
        PromotionVariant.INSTANT_WIN,
        factory.instant_win(),
        caps=Caps(max_wins_per_day=1),
        timezone="Asia/Tokyo",
    )
    tracker = engine.cap_tracker

    clock.set(datetime(2026, 3, 10, 14, 0, tzinfo=timezone.utc))
    assert await tracker.reserve(promotion, clock.now()) is CapDecision.GRANTED
    clock.set(datetime(2026, 3, 10, 14, 59, tzinfo=timezone.utc))
    assert await tracker.reserve(promotion, clock.now()) is CapDecision.DENIED
    clock.set(datetime(2026, 3, 10, 15, 0, tzinfo=timezone.utc))
    assert await tracker.reserve(promotion, clock.now()) is CapDecision.GRANTED


@pytest.mark.asyncio
async def test_total_cap(engine, factory, clock):
    promotion = await factory.create(
        engine,
        PromotionVariant.WHEEL,
        factory.wheel(1.0),
        caps=Caps(max_wins_per_day=5, max_wins_total=3),
    )
    tracker = engine.cap_tracker

    decisions = []
    for _ in range(3):
        decisions.append(await tracker.reserve(promotion, clock.now()))
        decisions.append(await tracker.reserve(promotion, clock.now()))
        clock.advance(days=1)

    assert decisions.count(CapDecision.GRANTED) == 3
    assert await tracker.wins_total(promotion) == 3


@pytest.mark.asyncio
async def test_uncapped_promotion_still_counts(engine, factory, clock):
    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel(1.0))
    for _ in range(4):
        assert await engine.cap_tracker.reserve(promotion, clock.now()) is CapDecision.GRANTED
    assert await engine.cap_tracker.wins_today(promotion, clock.now()) == 4


@pytest.mark.asyncio
async def test_zero_cap_denies_everything(engine, factory, clock):
    promotion = await factory.create(
        engine, PromotionVariant.INSTANT_WIN, factory.instant_win(), caps=Caps(max_wins_per_day=0)
    )
    assert await engine.cap_tracker.reserve(promotion, clock.now()) is CapDecision.DENIED
    assert await engine.cap_tracker.wins_today(promotion, clock.now()) == 0


@pytest.mark.asyncio
async def test_concurrent_reservations_never_exceed_cap(engine, factory, clock):
    """Ten racing reservations against a cap of three grant exactly three."""
    promotion = await factory.create(
        engine, PromotionVariant.INSTANT_WIN, factory.instant_win(), caps=Caps(max_wins_per_day=3)
    )
    now = clock.now()

    decisions = await asyncio.gather(*(engine.cap_tracker.reserve(promotion, now) for _ in range(10)))

    assert decisions.count(CapDecision.GRANTED) == 3
    assert decisions.count(CapDecision.DENIED) == 7
    assert await engine.cap_tracker.wins_today(promotion, now) == 3
