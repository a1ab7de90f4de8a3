"""Public entry point of the promotion determination engine."""

from __future__ import annotations

from typing import Any, Callable, List, Optional, Union

from config import Config, load_config
from core.clock import Clock, RandomSource, SystemClock, SystemRandomSource
from core.constants import PromotionStatus, PromotionVariant
from core.logger import get_logger
from database.models import (
    Caps,
    Contact,
    EntryRules,
    ParticipationAttempt,
    ParticipationResult,
    Promotion,
    RedemptionResult,
    Rejection,
    Window,
)
from services.cache import MultiLevelCache
from services.cap_tracker import CapTracker
from services.eligibility import EligibilityGate
from services.fraud_detection_service import FraudDetectionService
from services.lifecycle import LifecycleService, compute_status
from services.lifecycle_sweep import LifecycleSweep, SweepReport
from services.outcome_engine import OutcomeEngine
from services.participation_service import ParticipationService
from services.photo_contest import PhotoContestService, TallyResult
from services.promotion_service import PromotionService, RulesInput
from services.reward_ledger import RewardLedger, make_code_generator
from services.stats_aggregator import StatsService, StatsSummary, StatsWindow
from services.stats_export import export_stats_xlsx
from utils.performance import EngineMetrics

logger = get_logger(__name__)


class PromotionEngine:
    """Wires the engine's services around one clock, one random source and the shared pool.

    The database pool must already be initialized (``database.init_db_pool``).
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        clock: Optional[Clock] = None,
        random_source: Optional[RandomSource] = None,
        cache: Optional[MultiLevelCache] = None,
        generate_code: Optional[Callable[[], str]] = None,
        metrics: Optional[EngineMetrics] = None,
    ) -> None:
        self.config = config or load_config()
        self.clock = clock or SystemClock()
        self.random_source = random_source or SystemRandomSource()
        self.metrics = metrics or EngineMetrics()
        retries = self.config.max_conflict_retries
        backoff = self.config.conflict_backoff_ms

        self.promotions = PromotionService(self.clock, self.config.default_timezone)
        self.lifecycle = LifecycleService(self.clock)
        self.cap_tracker = CapTracker(retries, backoff)
        self.ledger = RewardLedger(
            self.clock,
            generate_code=generate_code or make_code_generator(
                self.config.reward_code_prefix, self.config.reward_code_length
            ),
            generation_attempts=self.config.code_generation_attempts,
            validity_days=self.config.reward_validity_days,
            max_conflict_retries=retries,
            conflict_backoff_ms=backoff,
        )
        self.stats = StatsService(cache)
        self.fraud = FraudDetectionService(
            review_threshold=self.config.fraud_review_threshold,
            block_threshold=self.config.fraud_block_threshold,
            ip_velocity_limit=self.config.ip_velocity_limit,
        )
        self.participations = ParticipationService(
            self.clock,
            self.random_source,
            EligibilityGate(),
            OutcomeEngine(),
            self.cap_tracker,
            self.ledger,
            self.fraud,
            self.stats,
            metrics=self.metrics,
            max_conflict_retries=retries,
            conflict_backoff_ms=backoff,
        )
        self.photo_contests = PhotoContestService(self.clock, self.ledger, self.stats, retries, backoff)
        self.sweeper = LifecycleSweep(self.clock, self.ledger, self.config.sweep_interval_seconds)

    # Participation and rewards

    async def submit_participation(
        self,
        promotion_id: int,
        attempt: ParticipationAttempt,
    ) -> Union[ParticipationResult, Rejection]:
        return await self.participations.submit(promotion_id, attempt)

    async def redeem_reward(self, code: str, order_value: Optional[float] = None) -> RedemptionResult:
        result = await self.ledger.redeem(code, order_value)
        self.metrics.record_redemption(result.status.value)
        if result.ok:
            record = await self.ledger.lookup(result.code)
            if record is not None:
                self.stats.invalidate(record.promotion_id)
        return result

    # Status and stats

    async def get_promotion_status(self, promotion_id: int) -> PromotionStatus:
        promotion = await self.promotions.get_promotion(promotion_id)
        return compute_status(promotion, self.clock.now())

    async def get_stats(self, promotion_id: int, window: Optional[StatsWindow] = None) -> StatsSummary:
        return await self.stats.get_stats(promotion_id, window)

    async def export_stats(
        self,
        promotion_id: int,
        window: Optional[StatsWindow] = None,
        folder: Optional[str] = None,
    ) -> bytes:
        promotion = await self.promotions.get_promotion(promotion_id)
        breakdowns = await self.stats.get_breakdowns(promotion_id, promotion.timezone, window)
        return export_stats_xlsx(promotion, breakdowns, window, folder)

    # Operator actions

    async def pause_promotion(self, promotion_id: int, operator: str, reason: Optional[str] = None) -> Promotion:
        return await self.lifecycle.pause(promotion_id, operator, reason)

    async def resume_promotion(self, promotion_id: int, operator: str, reason: Optional[str] = None) -> Promotion:
        return await self.lifecycle.resume(promotion_id, operator, reason)

    async def archive_promotion(self, promotion_id: int, operator: str, reason: Optional[str] = None) -> Promotion:
        return await self.lifecycle.archive(promotion_id, operator, reason)

    # Administration

    async def create_promotion(
        self,
        owner_id: str,
        host_instance_id: str,
        name: str,
        variant: Union[PromotionVariant, str],
        rules: RulesInput,
        window: Window,
        entry_rules: Optional[EntryRules] = None,
        caps: Optional[Caps] = None,
        timezone: Optional[str] = None,
        description: str = "",
        reward_validity_days: Optional[int] = None,
        operator: Optional[str] = None,
    ) -> Promotion:
        return await self.promotions.create_promotion(
            owner_id,
            host_instance_id,
            name,
            variant,
            rules,
            window,
            entry_rules=entry_rules,
            caps=caps,
            timezone=timezone,
            description=description,
            reward_validity_days=reward_validity_days,
            operator=operator,
        )

    async def update_promotion(self, promotion_id: int, operator: str, **changes: Any) -> Promotion:
        promotion = await self.promotions.update_promotion(promotion_id, operator, **changes)
        self.stats.invalidate(promotion_id)
        return promotion

    async def get_promotion(self, promotion_id: int) -> Promotion:
        return await self.promotions.get_promotion(promotion_id)

    async def list_promotions(
        self,
        owner_id: Optional[str] = None,
        status: Optional[Union[PromotionStatus, str]] = None,
        include_archived: bool = False,
    ) -> List[Promotion]:
        return await self.promotions.list_promotions(owner_id, status, include_archived)

    # Photo contests

    async def cast_vote(
        self,
        participation_id: int,
        voter: Contact,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        return await self.photo_contests.cast_vote(participation_id, voter, ip_address, user_agent)

    async def tally_photo_contest(self, promotion_id: int, operator: str = "system") -> TallyResult:
        return await self.photo_contests.tally(promotion_id, operator)

    # Maintenance

    async def sweep(self) -> SweepReport:
        return await self.sweeper.run_once()
