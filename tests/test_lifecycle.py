"""Tests for promotion status computation and operator transitions."""

from datetime import timedelta

import pytest

from conftest import NOW
from core.constants import OperatorAction, PromotionStatus, PromotionVariant
from core.exceptions import InvalidTransitionError, PromotionNotFoundError
from database.models import Promotion, Window
from services.audit_service import AuditService
from services.lifecycle import compute_status


def _promotion(factory, window: Window, paused: bool = False) -> Promotion:
    return Promotion(
        id=1,
        owner_id="owner",
        host_instance_id="instance",
        name="Spin",
        variant=PromotionVariant.WHEEL,
        rules=factory.wheel(),
        window=window,
        paused=paused,
    )


def test_status_follows_window(factory):
    """Active inside the window, completed at and after its end, draft before it."""
    promotion = _promotion(factory, Window(start=NOW - timedelta(days=1), end=NOW + timedelta(days=1)))

    assert compute_status(promotion, NOW) is PromotionStatus.ACTIVE
    assert compute_status(promotion, NOW + timedelta(days=2)) is PromotionStatus.COMPLETED
    assert compute_status(promotion, NOW + timedelta(days=1)) is PromotionStatus.COMPLETED
    assert compute_status(promotion, NOW - timedelta(days=2)) is PromotionStatus.DRAFT
    assert compute_status(promotion, NOW - timedelta(days=1)) is PromotionStatus.ACTIVE


def test_open_ended_window_stays_active(factory):
    promotion = _promotion(factory, Window(start=NOW - timedelta(days=1)))
    assert compute_status(promotion, NOW + timedelta(days=3650)) is PromotionStatus.ACTIVE


def test_pause_overrides_window(factory):
    """Paused regardless of where now falls."""
    window = Window(start=NOW - timedelta(days=1), end=NOW + timedelta(days=1))
    promotion = _promotion(factory, window, paused=True)

    for moment in (NOW - timedelta(days=5), NOW, NOW + timedelta(days=5)):
        assert compute_status(promotion, moment) is PromotionStatus.PAUSED


def test_status_is_pure(factory):
    promotion = _promotion(factory, Window(start=NOW - timedelta(days=1), end=NOW + timedelta(days=1)))
    results = {compute_status(promotion, NOW) for _ in range(10)}
    assert results == {PromotionStatus.ACTIVE}
    assert promotion.paused is False


@pytest.mark.asyncio
async def test_pause_and_resume(engine, factory):
    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel())

    paused = await engine.pause_promotion(promotion.id, "alice", reason="stock check")
    assert paused.paused is True
    assert await engine.get_promotion_status(promotion.id) is PromotionStatus.PAUSED

    with pytest.raises(InvalidTransitionError):
        await engine.pause_promotion(promotion.id, "alice")

    await engine.resume_promotion(promotion.id, "bob")
    assert await engine.get_promotion_status(promotion.id) is PromotionStatus.ACTIVE

    with pytest.raises(InvalidTransitionError):
        await engine.resume_promotion(promotion.id, "bob")

    logs = await AuditService.get_audit_logs(entity_type="promotion", entity_id=promotion.id)
    actions = [log["action_type"] for log in logs]
    assert OperatorAction.PAUSE in actions
    assert OperatorAction.RESUME in actions
    pause_log = next(log for log in logs if log["action_type"] == OperatorAction.PAUSE)
    assert pause_log["operator"] == "alice"
    assert pause_log["reason"] == "stock check"
    assert pause_log["new_value"] == {"status": "paused"}


@pytest.mark.asyncio
async def test_resume_after_window_closed_yields_completed(engine, factory, clock):
    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel())
    await engine.pause_promotion(promotion.id, "alice")

    clock.advance(days=3)
    assert await engine.get_promotion_status(promotion.id) is PromotionStatus.PAUSED
    await engine.resume_promotion(promotion.id, "alice")
    assert await engine.get_promotion_status(promotion.id) is PromotionStatus.COMPLETED


@pytest.mark.asyncio
async def test_cannot_pause_draft(engine, factory):
    promotion = await factory.create(
        engine, PromotionVariant.WHEEL, factory.wheel(), window=factory.window(1, 5)
    )
    with pytest.raises(InvalidTransitionError):
        await engine.pause_promotion(promotion.id, "alice")


@pytest.mark.asyncio
async def test_archive_rules(engine, factory, clock):
    """Completed promotions archive; active ones and entered drafts do not."""
    active = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel())
    with pytest.raises(InvalidTransitionError):
        await engine.archive_promotion(active.id, "alice")

    draft = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel(), window=factory.window(1, 5))
    archived = await engine.archive_promotion(draft.id, "alice", reason="duplicate")
    assert archived.archived

    with pytest.raises(InvalidTransitionError):
        await engine.archive_promotion(draft.id, "alice")

    await engine.submit_participation(active.id, factory.attempt())
    clock.advance(days=2)
    await engine.archive_promotion(active.id, "alice")
    stored = await engine.get_promotion(active.id)
    assert stored.archived_at == clock.now()

    listed = await engine.list_promotions(owner_id="owner-1")
    assert {p.id for p in listed}.isdisjoint({active.id, draft.id})
    everything = await engine.list_promotions(owner_id="owner-1", include_archived=True)
    assert {active.id, draft.id} <= {p.id for p in everything}


@pytest.mark.asyncio
async def test_archive_refused_for_draft_with_participations(engine, factory, clock):
    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel())
    await engine.submit_participation(promotion.id, factory.attempt())
    await engine.update_promotion(promotion.id, "alice", window=factory.window(1, 5))

    assert await engine.get_promotion_status(promotion.id) is PromotionStatus.DRAFT
    with pytest.raises(InvalidTransitionError) as excinfo:
        await engine.archive_promotion(promotion.id, "alice")
    assert "participations" in str(excinfo.value)


@pytest.mark.asyncio
async def test_unknown_promotion(engine):
    with pytest.raises(PromotionNotFoundError):
        await engine.pause_promotion(999, "alice")
