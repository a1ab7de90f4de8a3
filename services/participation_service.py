"""Participation submission: the engine's hot path.

The entry re-count, the outcome, the cap reservation and the participation
row share one ``BEGIN IMMEDIATE`` transaction, so a participation is visible
only together with its final award decision. Reward codes are minted after
commit and are idempotent per participation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from core.clock import Clock, RandomSource
from core.constants import (
    CapDecision,
    ForcedOutcome,
    ParticipationStatus,
    PromotionStatus,
    RejectionReason,
)
from core.exceptions import PromotionNotFoundError
from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import Outcome, ParticipationAttempt, ParticipationResult, Promotion, Rejection
from database.repositories import ParticipationRepository, PromotionRepository
from services.cap_tracker import CapTracker
from services.eligibility import EligibilityGate, fingerprint_for
from services.fraud_detection_service import FraudDetectionService, FraudScore
from services.lifecycle import compute_status
from services.outcome_engine import OutcomeEngine
from services.reward_ledger import RewardLedger
from services.stats_aggregator import StatsService
from utils.performance import EngineMetrics

logger = get_logger(__name__)


@dataclass(frozen=True)
class _Committed:
    participation_id: int
    attempt_ordinal: int
    outcome: Outcome
    status: ParticipationStatus
    cap_denied: bool = False


class ParticipationService:
    def __init__(
        self,
        clock: Clock,
        random_source: RandomSource,
        gate: EligibilityGate,
        outcome_engine: OutcomeEngine,
        cap_tracker: CapTracker,
        ledger: RewardLedger,
        fraud: FraudDetectionService,
        stats: StatsService,
        metrics: Optional[EngineMetrics] = None,
        max_conflict_retries: int = 3,
        conflict_backoff_ms: int = 25,
    ) -> None:
        self.clock = clock
        self.random_source = random_source
        self.gate = gate
        self.outcome_engine = outcome_engine
        self.cap_tracker = cap_tracker
        self.ledger = ledger
        self.fraud = fraud
        self.stats = stats
        self.metrics = metrics or EngineMetrics()
        self.max_conflict_retries = max_conflict_retries
        self.conflict_backoff_ms = conflict_backoff_ms

    async def submit(
        self,
        promotion_id: int,
        attempt: ParticipationAttempt,
    ) -> Union[ParticipationResult, Rejection]:
        """Run one attempt to a recorded outcome or a rejection.

        Raises:
            PromotionNotFoundError: Unknown promotion id
            ConcurrencyConflictError: The write kept losing races after all retries
            PersistenceError: The write failed; nothing was recorded
            CodeGenerationExhaustedError: The win was recorded but no code could be minted
        """
        with self.metrics.track_submission():
            promotion = await PromotionRepository.get(promotion_id)
            if promotion is None:
                raise PromotionNotFoundError(promotion_id)

            now = self.clock.now()
            rejection = await self.gate.check(promotion, attempt, now)
            if rejection is not None:
                return self._rejected(promotion_id, rejection)

            fingerprint = fingerprint_for(attempt)
            fraud = await self.fraud.check_participation(promotion_id, attempt, now)
            draw = self.random_source.draw()

            async def _write() -> Union[_Committed, Rejection]:
                async with BaseRepository.immediate_transaction() as conn:
                    current = await PromotionRepository.get(promotion_id, conn)
                    if current is None or current.archived or compute_status(current, now) is not PromotionStatus.ACTIVE:
                        return Rejection(RejectionReason.PROMOTION_NOT_ACTIVE, "Promotion is no longer active")

                    existing = await ParticipationRepository.count_entries(promotion_id, fingerprint, conn)
                    if existing >= current.entry_rules.max_entries_per_user:
                        return Rejection(
                            RejectionReason.ENTRY_LIMIT_EXCEEDED,
                            f"Entry limit of {current.entry_rules.max_entries_per_user} reached",
                        )

                    outcome = self.outcome_engine.determine(current, attempt, draw, prior_attempts=existing)
                    status = ParticipationStatus.COMPLETED
                    cap_denied = False
                    if fraud.should_block:
                        outcome = outcome.forced_no_win(ForcedOutcome.DISQUALIFIED)
                        status = ParticipationStatus.DISQUALIFIED
                    elif outcome.positive:
                        decision = await self.cap_tracker.try_reserve(conn, current, now)
                        if decision is CapDecision.DENIED:
                            outcome = outcome.forced_no_win(ForcedOutcome.CAP_EXHAUSTED)
                            cap_denied = True

                    participation_id = await ParticipationRepository.insert_participation(
                        conn,
                        promotion_id,
                        fingerprint,
                        existing + 1,
                        attempt,
                        outcome,
                        status,
                        fraud.score,
                        fraud.flags,
                        now,
                    )
                    return _Committed(participation_id, existing + 1, outcome, status, cap_denied)

            committed = await BaseRepository.run_with_retries(
                _write,
                self.max_conflict_retries,
                self.conflict_backoff_ms,
                label=f"participation in promotion {promotion_id}",
                on_conflict=self.metrics.record_conflict_retry,
            )
            if isinstance(committed, Rejection):
                return self._rejected(promotion_id, committed)

            self.stats.invalidate(promotion_id)
            await self._after_commit(promotion, fingerprint, fraud, committed)
            return await self._result(promotion, committed, fraud)

    async def _after_commit(
        self,
        promotion: Promotion,
        fingerprint: str,
        fraud: FraudScore,
        committed: _Committed,
    ) -> None:
        outcome = committed.outcome
        if committed.cap_denied:
            self.metrics.record_cap_denial()
        if fraud.should_review:
            await self.fraud.log_suspicious_activity(
                promotion.id,
                fingerprint,
                "participation_blocked" if fraud.should_block else "participation_review",
                fraud.score,
                {"participation_id": committed.participation_id, "reasons": fraud.reasons},
                self.clock.now(),
            )
        result = "win" if outcome.positive else (committed.status.value if fraud.should_block else "no_win")
        self.metrics.record_participation(promotion.variant.value, result)
        logger.info(
            f"Participation {committed.participation_id} in promotion {promotion.id}: "
            f"{result}{f' ({outcome.forced_reason})' if outcome.forced_reason else ''}"
        )

    async def _result(
        self,
        promotion: Promotion,
        committed: _Committed,
        fraud: FraudScore,
    ) -> ParticipationResult:
        outcome = committed.outcome
        code = None
        expires_at = None
        if outcome.positive:
            reward = await self.ledger.issue(
                committed.participation_id,
                outcome.prize,
                promotion.reward_validity_days,
            )
            self.metrics.record_code_issued()
            code = reward.code
            expires_at = reward.expires_at

        return ParticipationResult(
            participation_id=committed.participation_id,
            promotion_id=promotion.id,
            attempt_ordinal=committed.attempt_ordinal,
            outcome=outcome,
            awarded=outcome.positive,
            status=committed.status,
            fraud_score=fraud.score,
            fraud_flags=fraud.flags,
            prize=outcome.prize,
            reward_code=code,
            expires_at=expires_at,
        )

    def _rejected(self, promotion_id: int, rejection: Rejection) -> Rejection:
        self.metrics.record_rejection(rejection.reason.value)
        logger.info(f"Participation in promotion {promotion_id} rejected: {rejection.reason.value}")
        return rejection
