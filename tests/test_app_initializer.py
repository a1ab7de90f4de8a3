"""Tests for application start-up and shutdown."""

import pytest

from core.app_initializer import ApplicationInitializer
from core.constants import PromotionVariant
from services.cache import get_cache


@pytest.mark.asyncio
async def test_initialize_and_cleanup(config, factory):
    app = ApplicationInitializer(config)
    engine = await app.initialize()

    assert engine is app.engine
    assert engine.stats.cache is get_cache()

    promotion = await factory.create(engine, PromotionVariant.WHEEL, factory.wheel())
    assert (await engine.get_promotion(promotion.id)).name == "wheel promotion"

    await app.cleanup()
    assert not engine.sweeper.running
