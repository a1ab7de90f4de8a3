"""Reward code issuance and redemption."""

from __future__ import annotations

import secrets
import sqlite3
from datetime import timedelta
from typing import Callable, Optional

from core.clock import Clock
from core.constants import RedemptionStatus, RewardDefaults
from core.exceptions import CodeGenerationExhaustedError, ParticipationNotFoundError, RewardError
from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import Prize, RedemptionResult, RewardCode
from database.repositories import ParticipationRepository, RewardCodeRepository

logger = get_logger(__name__)


def make_code_generator(
    prefix: str = RewardDefaults.PREFIX,
    length: int = RewardDefaults.LENGTH,
    alphabet: str = RewardDefaults.ALPHABET,
) -> Callable[[], str]:
    """Codes are ``prefix`` plus ``length`` characters drawn with ``secrets``."""

    def generate() -> str:
        return prefix + "".join(secrets.choice(alphabet) for _ in range(length))

    return generate


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


class RewardLedger:
    """Issues at most one code per awarded participation and redeems it once."""

    def __init__(
        self,
        clock: Clock,
        generate_code: Optional[Callable[[], str]] = None,
        generation_attempts: int = RewardDefaults.GENERATION_ATTEMPTS,
        validity_days: int = RewardDefaults.VALIDITY_DAYS,
        max_conflict_retries: int = 3,
        conflict_backoff_ms: int = 25,
    ) -> None:
        self.clock = clock
        self.generate_code = generate_code or make_code_generator()
        self.generation_attempts = generation_attempts
        self.validity_days = validity_days
        self.max_conflict_retries = max_conflict_retries
        self.conflict_backoff_ms = conflict_backoff_ms

    async def issue(
        self,
        participation_id: int,
        prize: Optional[Prize] = None,
        validity_days: Optional[int] = None,
    ) -> RewardCode:
        """Return the participation's code, minting it on the first call.

        Raises:
            ParticipationNotFoundError: Unknown participation id
            RewardError: The participation was not awarded
            CodeGenerationExhaustedError: Every generated code collided
        """
        return await BaseRepository.run_with_retries(
            lambda: self._issue_once(participation_id, prize, validity_days),
            self.max_conflict_retries,
            self.conflict_backoff_ms,
            label=f"reward issuance for participation {participation_id}",
        )

    async def _issue_once(
        self,
        participation_id: int,
        prize: Optional[Prize],
        validity_days: Optional[int],
    ) -> RewardCode:
        existing = await RewardCodeRepository.get_by_participation(participation_id)
        if existing is not None:
            return existing

        participation = await ParticipationRepository.get(participation_id)
        if participation is None:
            raise ParticipationNotFoundError(participation_id)
        if not participation.awarded:
            raise RewardError(f"Participation {participation_id} was not awarded a prize")

        prize = prize or participation.prize
        issued_at = self.clock.now()
        expires_at = issued_at + timedelta(days=validity_days or self.validity_days)

        for attempt in range(1, self.generation_attempts + 1):
            code = self.generate_code()
            try:
                await RewardCodeRepository.insert_code(
                    code,
                    participation_id,
                    participation.promotion_id,
                    prize,
                    issued_at,
                    expires_at,
                )
            except sqlite3.IntegrityError:
                # A racing issuer may have won on participation_id rather than on the code.
                existing = await RewardCodeRepository.get_by_participation(participation_id)
                if existing is not None:
                    return existing
                logger.warning(f"Reward code collision on attempt {attempt} for participation {participation_id}")
                continue

            logger.info(f"Issued reward code for participation {participation_id}")
            return RewardCode(
                code=code,
                participation_id=participation_id,
                promotion_id=participation.promotion_id,
                prize=prize,
                issued_at=issued_at,
                expires_at=expires_at,
            )

        logger.critical(
            f"Reward code generation exhausted after {self.generation_attempts} attempts "
            f"for participation {participation_id}"
        )
        raise CodeGenerationExhaustedError(participation_id, self.generation_attempts)

    async def redeem(self, code: str, order_value: Optional[float] = None) -> RedemptionResult:
        """Flip ``redeemed`` once; later calls report why nothing changed."""
        normalized = normalize_code(code)
        if not normalized:
            return RedemptionResult(RedemptionStatus.NOT_FOUND, normalized)

        now = self.clock.now()
        if await RewardCodeRepository.mark_redeemed(normalized, order_value, now):
            logger.info(f"Reward code {normalized} redeemed")
            return RedemptionResult(RedemptionStatus.OK, normalized, order_value, now)

        record = await RewardCodeRepository.get_by_code(normalized)
        if record is None:
            return RedemptionResult(RedemptionStatus.NOT_FOUND, normalized)
        if record.redeemed:
            return RedemptionResult(
                RedemptionStatus.ALREADY_REDEEMED,
                normalized,
                record.order_value,
                record.redeemed_at,
            )
        return RedemptionResult(RedemptionStatus.EXPIRED, normalized)

    async def get_code(self, participation_id: int) -> Optional[RewardCode]:
        return await RewardCodeRepository.get_by_participation(participation_id)

    async def lookup(self, code: str) -> Optional[RewardCode]:
        return await RewardCodeRepository.get_by_code(normalize_code(code))
