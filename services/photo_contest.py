"""Photo contest voting and the deferred winner tally."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Tuple

from core.clock import Clock
from core.constants import OperatorAction, ParticipationStatus, PromotionVariant
from core.exceptions import ParticipationNotFoundError, PromotionNotFoundError, VotingError
from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import Contact, PhotoContestRules, Promotion, from_db_timestamp
from database.repositories import ParticipationRepository, PhotoContestRepository, PromotionRepository
from services.audit_service import AuditService
from services.lifecycle import ENTITY_PROMOTION
from services.reward_ledger import RewardLedger
from services.stats_aggregator import StatsService
from utils.validators import derive_fingerprint

logger = get_logger(__name__)


@dataclass(frozen=True)
class TallyResult:
    promotion_id: int
    winner_participation_id: Optional[int]
    winning_votes: int
    tallied_at: datetime
    reward_code: Optional[str] = None


def voting_closes_at(promotion: Promotion) -> Optional[datetime]:
    """Voting ends at the voting deadline, or at the window end when none is set."""
    rules: PhotoContestRules = promotion.rules
    return rules.voting_deadline or promotion.window.end


class PhotoContestService:
    def __init__(
        self,
        clock: Clock,
        ledger: RewardLedger,
        stats: StatsService,
        max_conflict_retries: int = 3,
        conflict_backoff_ms: int = 25,
    ) -> None:
        self.clock = clock
        self.ledger = ledger
        self.stats = stats
        self.max_conflict_retries = max_conflict_retries
        self.conflict_backoff_ms = conflict_backoff_ms

    @staticmethod
    async def _contest(promotion_id: int) -> Promotion:
        promotion = await PromotionRepository.get(promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        if promotion.variant is not PromotionVariant.PHOTO_CONTEST:
            raise VotingError(f"Promotion {promotion_id} is not a photo contest")
        return promotion

    async def cast_vote(
        self,
        participation_id: int,
        voter: Contact,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> int:
        """Record one vote for a submission; each voter votes once per contest.

        Raises:
            ParticipationNotFoundError: Unknown submission
            VotingError: Voting is closed, the voter is anonymous, votes for
                themselves, or already voted in this contest
        """
        participation = await ParticipationRepository.get(participation_id)
        if participation is None:
            raise ParticipationNotFoundError(participation_id)
        promotion = await self._contest(participation.promotion_id)
        rules: PhotoContestRules = promotion.rules

        now = self.clock.now()
        if not rules.voting_enabled:
            raise VotingError("Voting is disabled for this contest")
        if promotion.archived or promotion.paused:
            raise VotingError("Voting is closed for this contest")
        closes_at = voting_closes_at(promotion)
        if closes_at is not None and now >= closes_at:
            raise VotingError("The voting deadline has passed")
        if participation.status is not ParticipationStatus.COMPLETED:
            raise VotingError("This submission cannot receive votes")

        voter_fingerprint = derive_fingerprint(voter, ip_address, user_agent)
        if voter_fingerprint is None:
            raise VotingError("Voter cannot be identified")
        if voter_fingerprint == participation.fingerprint:
            raise VotingError("Participants cannot vote for their own submission")

        try:
            vote_id = await PhotoContestRepository.insert_vote(
                promotion.id, participation_id, voter_fingerprint, now
            )
        except sqlite3.IntegrityError as e:
            raise VotingError("This voter has already voted in this contest") from e
        logger.info(f"Vote recorded for submission {participation_id} in promotion {promotion.id}")
        return vote_id

    async def get_result(self, promotion_id: int) -> Optional[TallyResult]:
        row = await PhotoContestRepository.get_result(promotion_id)
        if row is None:
            return None
        code = None
        if row["winner_participation_id"] is not None:
            reward = await self.ledger.get_code(row["winner_participation_id"])
            code = reward.code if reward else None
        return TallyResult(
            promotion_id=promotion_id,
            winner_participation_id=row["winner_participation_id"],
            winning_votes=row["winning_votes"],
            tallied_at=from_db_timestamp(row["tallied_at"]),
            reward_code=code,
        )

    async def tally(self, promotion_id: int, operator: str = "system") -> TallyResult:
        """Pick the winner once voting has closed; repeated calls return the stored result.

        The most-voted submission wins; ties go to the earliest submission,
        then to the lowest id.
        """
        promotion = await self._contest(promotion_id)
        rules: PhotoContestRules = promotion.rules
        now = self.clock.now()
        deadline = voting_closes_at(promotion)
        if deadline is None or now < deadline:
            raise VotingError("Voting is still open for this contest")

        existing = await self.get_result(promotion_id)
        if existing is not None and (existing.winner_participation_id is None or existing.reward_code):
            return existing

        async def _write() -> Tuple[bool, Optional[int]]:
            async with BaseRepository.immediate_transaction() as conn:
                stored = await PhotoContestRepository.get_result(promotion_id, conn)
                if stored is not None:
                    return False, stored["winner_participation_id"]
                counts = await PhotoContestRepository.vote_counts(promotion_id, conn)
                ranked = sorted(
                    counts,
                    key=lambda row: (-row["votes"], row["submitted_at"], row["participation_id"]),
                )
                winner = ranked[0] if ranked else None
                winner_id = winner["participation_id"] if winner else None
                await PhotoContestRepository.insert_result(
                    conn, promotion_id, winner_id, winner["votes"] if winner else 0, now
                )
                if winner_id is not None:
                    await ParticipationRepository.mark_awarded(conn, winner_id, rules.prize)
                return True, winner_id

        created, winner_id = await BaseRepository.run_with_retries(
            _write,
            self.max_conflict_retries,
            self.conflict_backoff_ms,
            label=f"photo contest tally for promotion {promotion_id}",
        )
        # Every caller ensures the code; issue() is idempotent per participation.
        if winner_id is not None:
            await self.ledger.issue(winner_id, rules.prize, promotion.reward_validity_days)
        result = await self.get_result(promotion_id)
        if not created:
            return result

        self.stats.invalidate(promotion_id)
        await AuditService.log_action(
            operator,
            OperatorAction.TALLY,
            ENTITY_PROMOTION,
            now,
            entity_id=promotion_id,
            new_value={
                "winner_participation_id": result.winner_participation_id,
                "winning_votes": result.winning_votes,
            },
        )
        logger.info(
            f"Photo contest {promotion_id} tallied: winner {result.winner_participation_id} "
            f"with {result.winning_votes} votes"
        )
        return result
