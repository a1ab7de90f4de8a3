"""Daily and total win ceilings backed by the ``cap_counters`` table.

Counters are keyed ``(promotion_id, scope)`` where scope is ``total`` or an
ISO date in the promotion's timezone. A reservation reads both counters,
decides, then bumps both with guarded updates inside the caller's write
transaction; a guard that matches no row means another writer slipped in and
the transaction is abandoned as a conflict.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import aiosqlite

from core.clock import ensure_utc
from core.constants import CapDecision, DatabaseDefaults
from core.exceptions import ConcurrencyConflictError
from core.logger import get_logger
from database.base_repository import BaseRepository
from database.models import Promotion
from database.repositories import CapCounterRepository

logger = get_logger(__name__)


def resolve_timezone(name: Optional[str]) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def calendar_day(now: datetime, timezone_name: Optional[str]) -> str:
    """ISO date of ``now`` as seen in ``timezone_name``."""
    return ensure_utc(now).astimezone(resolve_timezone(timezone_name)).date().isoformat()


def _exhausted(wins: int, cap: Optional[int]) -> bool:
    return cap is not None and wins >= cap


class CapTracker:
    def __init__(self, max_conflict_retries: int = 3, conflict_backoff_ms: int = 25) -> None:
        self.max_conflict_retries = max_conflict_retries
        self.conflict_backoff_ms = conflict_backoff_ms

    async def try_reserve(
        self,
        conn: aiosqlite.Connection,
        promotion: Promotion,
        now: datetime,
    ) -> CapDecision:
        """Reserve one win inside an open ``BEGIN IMMEDIATE`` transaction on ``conn``."""
        day = calendar_day(now, promotion.timezone)
        total_scope = DatabaseDefaults.TOTAL_SCOPE
        await CapCounterRepository.ensure(conn, promotion.id, (total_scope, day))

        daily_wins = await CapCounterRepository.read(promotion.id, day, conn)
        total_wins = await CapCounterRepository.read(promotion.id, total_scope, conn)
        caps = promotion.caps
        if _exhausted(daily_wins, caps.max_wins_per_day) or _exhausted(total_wins, caps.max_wins_total):
            logger.info(
                f"Cap reached for promotion {promotion.id} on {day}: "
                f"daily {daily_wins}/{caps.max_wins_per_day}, total {total_wins}/{caps.max_wins_total}"
            )
            return CapDecision.DENIED

        for scope, cap in ((day, caps.max_wins_per_day), (total_scope, caps.max_wins_total)):
            if not await CapCounterRepository.increment_below(conn, promotion.id, scope, cap, now):
                raise ConcurrencyConflictError(
                    f"Cap counter {promotion.id}/{scope} moved during reservation"
                )
        return CapDecision.GRANTED

    async def reserve(self, promotion: Promotion, now: datetime) -> CapDecision:
        """Reserve one win in a transaction of its own."""

        async def _attempt() -> CapDecision:
            async with BaseRepository.immediate_transaction() as conn:
                return await self.try_reserve(conn, promotion, now)

        return await BaseRepository.run_with_retries(
            _attempt,
            self.max_conflict_retries,
            self.conflict_backoff_ms,
            label=f"cap reservation for promotion {promotion.id}",
        )

    async def wins_today(self, promotion: Promotion, now: datetime) -> int:
        return await CapCounterRepository.read(promotion.id, calendar_day(now, promotion.timezone))

    async def wins_total(self, promotion: Promotion) -> int:
        return await CapCounterRepository.read(promotion.id, DatabaseDefaults.TOTAL_SCOPE)
