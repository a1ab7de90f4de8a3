"""Tests for stats aggregation."""

from datetime import datetime, timedelta, timezone

import pytest

from conftest import NOW
from core.constants import ParticipationStatus, PromotionVariant
from core.exceptions import PromotionNotFoundError
from database.models import Caps, Outcome, ParticipationRecord, Reward
from services.stats_aggregator import (
    StatsSummary,
    StatsWindow,
    daily_breakdown,
    prize_breakdown,
    summarize,
)


def _record(
    factory,
    record_id,
    created_at,
    fingerprint="fp-a",
    prize_id=None,
    redeemed=False,
    order_value=None,
    duration=None,
    status=ParticipationStatus.COMPLETED,
):
    prize = factory.prize(prize_id) if prize_id else None
    return ParticipationRecord(
        id=record_id,
        promotion_id=1,
        fingerprint=fingerprint,
        attempt_ordinal=1,
        outcome=Outcome(variant=PromotionVariant.WHEEL, positive=prize is not None, prize=prize),
        prize=prize,
        status=status,
        fraud_score=0,
        fraud_flags=frozenset(),
        created_at=created_at,
        reward=Reward(awarded=prize is not None, redeemed=redeemed, order_value=order_value),
        session_duration=duration,
    )


def test_empty_summary_is_all_zero():
    summary = summarize([])
    assert summary == StatsSummary()
    assert summary.conversion_rate == 0.0
    assert summary.average_session_duration == 0.0


def test_summary_metrics(factory):
    records = [
        _record(factory, 1, NOW, "fp-a", "w0", redeemed=True, order_value=40.0, duration=20),
        _record(factory, 2, NOW, "fp-a", duration=40),
        _record(factory, 3, NOW, "fp-b", "w1"),
        _record(factory, 4, NOW, "fp-c", status=ParticipationStatus.DISQUALIFIED),
    ]
    summary = summarize(records)

    assert summary.total_participants == 4
    assert summary.unique_participants == 3
    assert summary.total_wins == 2
    assert summary.total_redemptions == 1
    assert summary.conversion_rate == 25.0
    assert summary.total_revenue == 40.0
    assert summary.average_session_duration == 30.0
    assert summary.disqualified == 1
    assert summary.to_dict()["total_wins"] == 2


def test_window_is_half_open(factory):
    start = NOW
    end = NOW + timedelta(days=1)
    records = [
        _record(factory, 1, start - timedelta(microseconds=1)),
        _record(factory, 2, start),
        _record(factory, 3, end - timedelta(seconds=1)),
        _record(factory, 4, end),
    ]
    summary = summarize(records, StatsWindow(start=start, end=end))
    assert summary.total_participants == 2


def test_window_rejects_inverted_bounds():
    with pytest.raises(ValueError):
        StatsWindow(start=NOW, end=NOW - timedelta(days=1))


def test_daily_breakdown_by_timezone(factory):
    records = [
        _record(factory, 1, datetime(2026, 3, 10, 10, 0, tzinfo=timezone.utc), prize_id="w0"),
        _record(factory, 2, datetime(2026, 3, 10, 16, 0, tzinfo=timezone.utc)),
        _record(factory, 3, datetime(2026, 3, 11, 1, 0, tzinfo=timezone.utc), redeemed=True, order_value=5.0),
    ]

    utc_days = daily_breakdown(records, "UTC")
    assert [(d.day, d.participants) for d in utc_days] == [("2026-03-10", 2), ("2026-03-11", 1)]

    tokyo_days = daily_breakdown(records, "Asia/Tokyo")
    assert [(d.day, d.participants) for d in tokyo_days] == [("2026-03-10", 1), ("2026-03-11", 2)]
    assert tokyo_days[0].wins == 1
    assert tokyo_days[1].redemptions == 1
    assert tokyo_days[1].revenue == 5.0


def test_prize_breakdown(factory):
    records = [
        _record(factory, 1, NOW, prize_id="w1", redeemed=True, order_value=12.5),
        _record(factory, 2, NOW, prize_id="w0"),
        _record(factory, 3, NOW, prize_id="w1"),
        _record(factory, 4, NOW),
    ]
    prizes = prize_breakdown(records)
    assert [(p.prize_id, p.awarded, p.redeemed) for p in prizes] == [("w1", 2, 1), ("w0", 1, 0)]
    assert prizes[0].revenue == 12.5


@pytest.mark.asyncio
async def test_stats_follow_submissions_and_redemptions(engine, factory):
    promotion = await factory.create(
        engine, PromotionVariant.INSTANT_WIN, factory.instant_win(1.0), caps=Caps(max_wins_per_day=1)
    )

    assert (await engine.get_stats(promotion.id)).total_participants == 0

    won = await engine.submit_participation(promotion.id, factory.attempt(email="a@example.com", session_duration=10))
    await engine.submit_participation(promotion.id, factory.attempt(email="b@example.com", session_duration=20))

    stats = await engine.get_stats(promotion.id)
    assert stats.total_participants == 2
    assert stats.unique_participants == 2
    assert stats.total_wins == 1
    assert stats.total_redemptions == 0
    assert stats.average_session_duration == 15.0

    await engine.redeem_reward(won.reward_code, order_value=80.0)
    stats = await engine.get_stats(promotion.id)
    assert stats.total_redemptions == 1
    assert stats.conversion_rate == 50.0
    assert stats.total_revenue == 80.0


@pytest.mark.asyncio
async def test_stats_window_on_stored_records(engine, factory, clock):
    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel(), window=factory.window(-1, 5))
    await engine.submit_participation(promotion.id, factory.attempt(email="a@example.com"))
    clock.advance(days=2)
    await engine.submit_participation(promotion.id, factory.attempt(email="b@example.com"))

    first_day = StatsWindow(start=NOW, end=NOW + timedelta(days=1))
    assert (await engine.get_stats(promotion.id, first_day)).total_participants == 1
    assert (await engine.get_stats(promotion.id)).total_participants == 2


@pytest.mark.asyncio
async def test_stats_for_unknown_promotion(engine):
    with pytest.raises(PromotionNotFoundError):
        await engine.get_stats(404)
