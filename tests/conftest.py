"""Pytest configuration and fixtures."""

from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
import pytest_asyncio

from config import Config
from core.clock import FixedClock, ScriptedRandomSource, SystemRandomSource
from core.constants import PrizeType, PromotionVariant
from database import close_db_pool, init_db_pool, run_migrations
from database.models import (
    Caps,
    Contact,
    EntryRules,
    InstantWinRules,
    ParticipationAttempt,
    PhotoContestRules,
    Prize,
    QuizQuestion,
    QuizRules,
    WheelRules,
    Window,
)
from services.cache import MultiLevelCache
from services.engine import PromotionEngine

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


def make_config(tmp_path, **overrides) -> Config:
    config = Config(
        environment="test",
        debug=False,
        log_level="DEBUG",
        log_file=None,
        database_path=str(tmp_path / "promotions.sqlite"),
        db_pool_size=4,
        db_busy_timeout=5000,
        max_conflict_retries=3,
        conflict_backoff_ms=5,
        reward_code_prefix="COMP",
        reward_code_length=10,
        code_generation_attempts=5,
        reward_validity_days=30,
        default_timezone="UTC",
        fraud_review_threshold=50,
        fraud_block_threshold=80,
        ip_velocity_limit=5,
        sweep_interval_seconds=60.0,
        cache_ttl_hot=30,
        cache_ttl_warm=300,
        cache_ttl_cold=3600,
        export_folder=str(tmp_path / "exports"),
        prometheus_port=0,
    )
    return replace(config, **overrides)


class PromotionFactory:
    """Builders for rules, attempts and stored promotions."""

    def prize(self, prize_id: str = "p1", probability: float = 0.0, value: float = 10.0) -> Prize:
        return Prize(
            id=prize_id,
            name=f"Prize {prize_id}",
            prize_type=PrizeType.PERCENTAGE,
            value=value,
            probability=probability,
        )

    def wheel(self, *probabilities: float, segments: int = 8) -> WheelRules:
        probabilities = probabilities or (0.5, 0.25)
        return WheelRules(
            prizes=tuple(self.prize(f"w{i}", p) for i, p in enumerate(probabilities)),
            segments=segments,
        )

    def instant_win(self, probability: float = 1.0, prizes: int = 1) -> InstantWinRules:
        return InstantWinRules(
            prizes=tuple(self.prize(f"i{i}") for i in range(prizes)),
            win_probability=probability,
        )

    def quiz(self, questions: int = 4, passing_score: float = 75.0, max_attempts: int = 3) -> QuizRules:
        return QuizRules(
            questions=tuple(
                QuizQuestion(question=f"Question {i}?", options=("a", "b", "c"), correct_answer=i % 3)
                for i in range(questions)
            ),
            prize=self.prize("quiz"),
            passing_score=passing_score,
            max_attempts=max_attempts,
        )

    def photo_contest(
        self,
        submission_deadline: Optional[datetime] = None,
        voting_deadline: Optional[datetime] = None,
        voting_enabled: bool = True,
    ) -> PhotoContestRules:
        return PhotoContestRules(
            prize=self.prize("photo"),
            voting_enabled=voting_enabled,
            submission_deadline=submission_deadline,
            voting_deadline=voting_deadline,
        )

    def window(self, start_offset_days: float = -1, end_offset_days: Optional[float] = 1) -> Window:
        end = NOW + timedelta(days=end_offset_days) if end_offset_days is not None else None
        return Window(start=NOW + timedelta(days=start_offset_days), end=end)

    def attempt(self, email: Optional[str] = "player@example.com", **fields) -> ParticipationAttempt:
        contact_fields = {
            key: fields.pop(key)
            for key in ("phone", "first_name", "last_name", "customer_id")
            if key in fields
        }
        fields.setdefault("session_duration", 30.0)
        return ParticipationAttempt(contact=Contact(email=email, **contact_fields), **fields)

    async def create(
        self,
        engine: PromotionEngine,
        variant: PromotionVariant,
        rules,
        window: Optional[Window] = None,
        entry_rules: Optional[EntryRules] = None,
        caps: Optional[Caps] = None,
        **kwargs,
    ):
        return await engine.create_promotion(
            owner_id="owner-1",
            host_instance_id="instance-1",
            name=f"{variant.value} promotion",
            variant=variant,
            rules=rules,
            window=window or self.window(),
            entry_rules=entry_rules,
            caps=caps or Caps(),
            **kwargs,
        )


@pytest.fixture
def factory():
    return PromotionFactory()


@pytest.fixture
def clock():
    return FixedClock(NOW)


@pytest.fixture
def config(tmp_path):
    return make_config(tmp_path)


@pytest_asyncio.fixture
async def db(config):
    """File-backed test database with the schema applied."""
    pool = await init_db_pool(config.database_path, config.db_pool_size, config.db_busy_timeout)
    await run_migrations(pool)
    yield pool
    await close_db_pool()


@pytest.fixture
def make_engine(db, clock, config):
    """Build an engine on the test database with optional scripted draws or code generator."""

    def _make(draws=None, generate_code=None, cache=None, **config_overrides):
        random_source = ScriptedRandomSource(draws) if draws is not None else SystemRandomSource(seed=1234)
        return PromotionEngine(
            config=replace(config, **config_overrides),
            clock=clock,
            random_source=random_source,
            cache=cache,
            generate_code=generate_code,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine(cache=MultiLevelCache(hot_ttl=30, warm_ttl=300, cold_ttl=3600))
