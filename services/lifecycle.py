"""Promotion lifecycle: computed status and operator transitions."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from core.clock import Clock, ensure_utc
from core.constants import OperatorAction, PromotionStatus
from core.exceptions import InvalidTransitionError, PromotionNotFoundError
from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import Promotion
from database.repositories import ParticipationRepository, PromotionRepository
from services.audit_service import AuditService

logger = get_logger(__name__)

ENTITY_PROMOTION = "promotion"


def compute_status(promotion: Promotion, now: datetime) -> PromotionStatus:
    """Status as a pure function of the pause flag, the window and ``now``."""
    if promotion.paused:
        return PromotionStatus.PAUSED
    now = ensure_utc(now)
    if now < promotion.window.start:
        return PromotionStatus.DRAFT
    if promotion.window.end is not None and now >= promotion.window.end:
        return PromotionStatus.COMPLETED
    return PromotionStatus.ACTIVE


class LifecycleService:
    """Guarded pause, resume and archive, each written to the audit log."""

    def __init__(self, clock: Clock) -> None:
        self.clock = clock

    async def _load(self, promotion_id: int) -> Promotion:
        promotion = await PromotionRepository.get(promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        return promotion

    async def pause(self, promotion_id: int, operator: str, reason: Optional[str] = None) -> Promotion:
        promotion = await self._load(promotion_id)
        now = self.clock.now()
        status = compute_status(promotion, now)
        if promotion.archived or status is not PromotionStatus.ACTIVE:
            raise InvalidTransitionError("pause", self._label(promotion, status))
        if not await PromotionRepository.set_paused(promotion_id, True, now):
            raise InvalidTransitionError("pause", PromotionStatus.PAUSED.value, "already paused")

        await AuditService.log_action(
            operator,
            OperatorAction.PAUSE,
            ENTITY_PROMOTION,
            now,
            entity_id=promotion_id,
            old_value={"status": status.value},
            new_value={"status": PromotionStatus.PAUSED.value},
            reason=reason,
        )
        logger.info(f"Promotion {promotion_id} paused by {operator}")
        return promotion.with_changes(paused=True, updated_at=now)

    async def resume(self, promotion_id: int, operator: str, reason: Optional[str] = None) -> Promotion:
        promotion = await self._load(promotion_id)
        now = self.clock.now()
        status = compute_status(promotion, now)
        if promotion.archived or status is not PromotionStatus.PAUSED:
            raise InvalidTransitionError("resume", self._label(promotion, status))
        if not await PromotionRepository.set_paused(promotion_id, False, now):
            raise InvalidTransitionError("resume", status.value, "not paused")

        resumed = promotion.with_changes(paused=False, updated_at=now)
        new_status = compute_status(resumed, now)
        await AuditService.log_action(
            operator,
            OperatorAction.RESUME,
            ENTITY_PROMOTION,
            now,
            entity_id=promotion_id,
            old_value={"status": status.value},
            new_value={"status": new_status.value},
            reason=reason,
        )
        logger.info(f"Promotion {promotion_id} resumed by {operator}, now {new_status.value}")
        return resumed

    async def archive(self, promotion_id: int, operator: str, reason: Optional[str] = None) -> Promotion:
        """Soft-delete a completed promotion, or a draft nobody has entered."""
        promotion = await self._load(promotion_id)
        now = self.clock.now()
        status = compute_status(promotion, now)
        if promotion.archived:
            raise InvalidTransitionError("archive", "archived", "already archived")
        if status not in (PromotionStatus.COMPLETED, PromotionStatus.DRAFT):
            raise InvalidTransitionError("archive", status.value)

        async with BaseRepository.immediate_transaction() as conn:
            if status is PromotionStatus.DRAFT:
                entries = await ParticipationRepository.count_for_promotion(promotion_id, conn)
                if entries:
                    raise InvalidTransitionError(
                        "archive", status.value, f"{entries} participations recorded"
                    )
            if not await PromotionRepository.set_archived(promotion_id, now, conn):
                raise InvalidTransitionError("archive", "archived", "already archived")

        await AuditService.log_action(
            operator,
            OperatorAction.ARCHIVE,
            ENTITY_PROMOTION,
            now,
            entity_id=promotion_id,
            old_value={"status": status.value},
            new_value={"archived_at": now.isoformat()},
            reason=reason,
        )
        logger.info(f"Promotion {promotion_id} archived by {operator}")
        return promotion.with_changes(archived_at=now, updated_at=now)

    @staticmethod
    def _label(promotion: Promotion, status: PromotionStatus) -> str:
        return "archived" if promotion.archived else status.value
