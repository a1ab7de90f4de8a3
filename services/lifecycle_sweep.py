"""Periodic sweep: status snapshots for listings and recovery of missing reward codes."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional

from core.clock import Clock
from core.exceptions import ApplicationError
from core.logger import get_logger
from database.repositories import ParticipationRepository, PromotionRepository
from services.lifecycle import compute_status
from services.reward_ledger import RewardLedger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SweepReport:
    promotions_checked: int = 0
    snapshots_updated: int = 0
    codes_reissued: int = 0
    codes_failed: int = 0


class LifecycleSweep:
    """Background loop; the snapshot it writes is never read as the source of truth."""

    def __init__(self, clock: Clock, ledger: RewardLedger, interval_seconds: float = 60.0) -> None:
        self.clock = clock
        self.ledger = ledger
        self.interval_seconds = interval_seconds
        self.running = False
        self.sweep_task: Optional[asyncio.Task] = None

    async def run_once(self) -> SweepReport:
        now = self.clock.now()
        promotions = await PromotionRepository.list_promotions()
        updated = 0
        for promotion in promotions:
            status = compute_status(promotion, now)
            if await PromotionRepository.save_status_snapshot(promotion.id, status.value, now):
                updated += 1

        reissued = 0
        failed = 0
        promotions_by_id = {promotion.id: promotion for promotion in promotions}
        for participation in await ParticipationRepository.list_awarded_without_code():
            promotion = promotions_by_id.get(participation.promotion_id)
            validity = promotion.reward_validity_days if promotion else None
            try:
                await self.ledger.issue(participation.id, participation.prize, validity)
                reissued += 1
            except ApplicationError as e:
                failed += 1
                logger.error(f"Could not issue missing code for participation {participation.id}: {e}")

        report = SweepReport(len(promotions), updated, reissued, failed)
        if updated or reissued or failed:
            logger.info(f"Lifecycle sweep: {report}")
        return report

    async def sweep_loop(self) -> None:
        logger.info(f"Lifecycle sweep started (interval: {self.interval_seconds:.0f}s)")
        while self.running:
            try:
                await self.run_once()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.info("Lifecycle sweep cancelled")
                break
            except Exception as e:
                logger.error(f"Error in lifecycle sweep: {e}", exc_info=True)
                await asyncio.sleep(self.interval_seconds)

    async def start(self) -> None:
        if self.running:
            logger.warning("Lifecycle sweep is already running")
            return
        self.running = True
        self.sweep_task = asyncio.create_task(self.sweep_loop())

    async def stop(self) -> None:
        if not self.running:
            return
        self.running = False
        if self.sweep_task:
            self.sweep_task.cancel()
            try:
                await self.sweep_task
            except asyncio.CancelledError:
                pass
            self.sweep_task = None
        logger.info("Lifecycle sweep stopped")
