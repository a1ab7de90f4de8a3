"""Tests for the background lifecycle sweep."""

import asyncio

import pytest

from core.constants import PromotionVariant
from core.exceptions import CodeGenerationExhaustedError
from database.repositories import ParticipationRepository, PromotionRepository
from services.reward_ledger import make_code_generator


@pytest.mark.asyncio
async def test_sweep_updates_snapshots(engine, factory, clock):
    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel())

    report = await engine.sweep()
    assert report.promotions_checked == 1
    assert report.snapshots_updated == 1
    assert (await PromotionRepository.get(promotion.id)).status_snapshot == "active"

    assert (await engine.sweep()).snapshots_updated == 0

    clock.advance(days=2)
    assert (await engine.sweep()).snapshots_updated == 1
    assert (await PromotionRepository.get(promotion.id)).status_snapshot == "completed"


@pytest.mark.asyncio
async def test_sweep_reissues_missing_codes(make_engine, factory):
    engine = make_engine(generate_code=lambda: "COMPSAMECODE", code_generation_attempts=2)
    promotion = await factory.create(engine, PromotionVariant.INSTANT_WIN, factory.instant_win(1.0))
    await engine.submit_participation(promotion.id, factory.attempt(email="a@example.com"))
    with pytest.raises(CodeGenerationExhaustedError):
        await engine.submit_participation(promotion.id, factory.attempt(email="b@example.com"))

    failing = await engine.sweep()
    assert failing.codes_failed == 1
    assert failing.codes_reissued == 0

    engine.ledger.generate_code = make_code_generator("COMP", 10)
    report = await engine.sweep()
    assert report.codes_reissued == 1
    assert await ParticipationRepository.list_awarded_without_code() == []


@pytest.mark.asyncio
async def test_start_and_stop(engine):
    engine.sweeper.interval_seconds = 0.01
    await engine.sweeper.start()
    assert engine.sweeper.running
    await asyncio.sleep(0.05)
    await engine.sweeper.stop()
    assert not engine.sweeper.running
    assert engine.sweeper.sweep_task is None
