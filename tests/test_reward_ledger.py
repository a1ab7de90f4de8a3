"""Tests for reward code issuance and redemption."""

import asyncio
from datetime import timedelta

import pytest

from core.constants import PromotionVariant, RedemptionStatus
from core.exceptions import CodeGenerationExhaustedError, ParticipationNotFoundError, RewardError
from database.models import Caps
from database.repositories import ParticipationRepository
from services.reward_ledger import make_code_generator, normalize_code


def _scripted_codes(*codes):
    values = iter(codes)

    def generate():
        return next(values)

    return generate


async def _win(engine, factory, email="winner@example.com"):
    promotion = await factory.create(engine, PromotionVariant.INSTANT_WIN, factory.instant_win(1.0), caps=Caps())
    result = await engine.submit_participation(promotion.id, factory.attempt(email=email))
    assert result.awarded
    return promotion, result


def test_generated_codes_use_prefix_and_alphabet():
    generate = make_code_generator("SPRING", 8, "AB")
    codes = {generate() for _ in range(50)}
    for code in codes:
        assert code.startswith("SPRING")
        assert len(code) == 14
        assert set(code[6:]) <= {"A", "B"}
    assert len(codes) > 1


def test_normalize_code():
    assert normalize_code("  comp-abc ") == "COMP-ABC"
    assert normalize_code(None) == ""


@pytest.mark.asyncio
async def test_issue_is_idempotent(engine, factory):
    _, result = await _win(engine, factory)
    assert result.reward_code.startswith("COMP")

    again = await engine.ledger.issue(result.participation_id)
    assert again.code == result.reward_code
    assert again.expires_at == result.expires_at

    concurrent = await asyncio.gather(*(engine.ledger.issue(result.participation_id) for _ in range(5)))
    assert {code.code for code in concurrent} == {result.reward_code}


@pytest.mark.asyncio
async def test_issue_rejects_unknown_or_unawarded(engine, factory):
    with pytest.raises(ParticipationNotFoundError):
        await engine.ledger.issue(12345)

    promotion = await factory.create(engine, PromotionVariant.INSTANT_WIN, factory.instant_win(0.0))
    result = await engine.submit_participation(promotion.id, factory.attempt())
    assert not result.awarded
    with pytest.raises(RewardError):
        await engine.ledger.issue(result.participation_id)


@pytest.mark.asyncio
async def test_code_collision_retries_with_new_code(make_engine, factory):
    engine = make_engine(generate_code=_scripted_codes("COMPAAAA1111", "COMPAAAA1111", "COMPBBBB2222"))
    _, first = await _win(engine, factory, "first@example.com")
    second = await engine.submit_participation(first.promotion_id, factory.attempt(email="second@example.com"))

    assert first.reward_code == "COMPAAAA1111"
    assert second.reward_code == "COMPBBBB2222"


@pytest.mark.asyncio
async def test_code_generation_exhausted(make_engine, factory):
    engine = make_engine(
        generate_code=lambda: "COMPSAMECODE",
        code_generation_attempts=3,
    )
    _, first = await _win(engine, factory, "first@example.com")
    assert first.reward_code == "COMPSAMECODE"

    with pytest.raises(CodeGenerationExhaustedError) as excinfo:
        await engine.submit_participation(first.promotion_id, factory.attempt(email="second@example.com"))
    assert excinfo.value.attempts == 3

    orphans = await ParticipationRepository.list_awarded_without_code()
    assert len(orphans) == 1
    assert orphans[0].contact.email == "second@example.com"


@pytest.mark.asyncio
async def test_redeem_once(engine, factory):
    _, result = await _win(engine, factory)

    first = await engine.redeem_reward(result.reward_code, order_value=42.5)
    assert first.status is RedemptionStatus.OK
    assert first.ok

    second = await engine.redeem_reward(result.reward_code.lower(), order_value=99.0)
    assert second.status is RedemptionStatus.ALREADY_REDEEMED
    assert second.order_value == 42.5

    stored = await engine.ledger.get_code(result.participation_id)
    assert stored.redeemed
    assert stored.order_value == 42.5


@pytest.mark.asyncio
async def test_concurrent_redemptions_succeed_once(engine, factory):
    _, result = await _win(engine, factory)
    outcomes = await asyncio.gather(*(engine.redeem_reward(result.reward_code, 10.0 + i) for i in range(6)))
    statuses = [outcome.status for outcome in outcomes]
    assert statuses.count(RedemptionStatus.OK) == 1
    assert statuses.count(RedemptionStatus.ALREADY_REDEEMED) == 5


@pytest.mark.asyncio
async def test_redeem_unknown_and_expired(engine, factory, clock):
    assert (await engine.redeem_reward("COMPNOPE")).status is RedemptionStatus.NOT_FOUND
    assert (await engine.redeem_reward("   ")).status is RedemptionStatus.NOT_FOUND

    _, result = await _win(engine, factory)
    assert result.expires_at == clock.now() + timedelta(days=30)

    clock.advance(days=30)
    expired = await engine.redeem_reward(result.reward_code, 20.0)
    assert expired.status is RedemptionStatus.EXPIRED
    assert not (await engine.ledger.get_code(result.participation_id)).redeemed


@pytest.mark.asyncio
async def test_promotion_validity_overrides_default(engine, factory, clock):
    promotion = await factory.create(
        engine, PromotionVariant.INSTANT_WIN, factory.instant_win(1.0), reward_validity_days=7
    )
    result = await engine.submit_participation(promotion.id, factory.attempt())
    assert result.expires_at == clock.now() + timedelta(days=7)
