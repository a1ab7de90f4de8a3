"""Summary metrics folded from a promotion's participation records."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from core.clock import ensure_utc
from core.constants import CacheKeys, ParticipationStatus
from core.exceptions import PromotionNotFoundError
from database.models import ParticipationRecord
from database.repositories import ParticipationRepository, PromotionRepository
from services.cache import CacheLevel, MultiLevelCache
from services.cap_tracker import resolve_timezone


@dataclass(frozen=True)
class StatsWindow:
    """Half-open ``[start, end)`` filter on participation time."""
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.start is not None:
            object.__setattr__(self, "start", ensure_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_utc(self.end))
        if self.start and self.end and self.end < self.start:
            raise ValueError("Stats window end is before its start")

    def contains(self, moment: datetime) -> bool:
        if self.start is not None and moment < self.start:
            return False
        if self.end is not None and moment >= self.end:
            return False
        return True


@dataclass(frozen=True)
class StatsSummary:
    total_participants: int = 0
    unique_participants: int = 0
    total_wins: int = 0
    total_redemptions: int = 0
    conversion_rate: float = 0.0
    total_revenue: float = 0.0
    average_session_duration: float = 0.0
    disqualified: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyStats:
    day: str
    participants: int = 0
    wins: int = 0
    redemptions: int = 0
    revenue: float = 0.0


@dataclass(frozen=True)
class PrizeStats:
    prize_id: str
    prize_name: str
    awarded: int = 0
    redeemed: int = 0
    revenue: float = 0.0


def _filter(records: Iterable[ParticipationRecord], window: Optional[StatsWindow]) -> List[ParticipationRecord]:
    if window is None:
        return list(records)
    return [record for record in records if window.contains(record.created_at)]


def summarize(records: Iterable[ParticipationRecord], window: Optional[StatsWindow] = None) -> StatsSummary:
    selected = _filter(records, window)
    total = len(selected)
    if not total:
        return StatsSummary()

    redeemed = [record for record in selected if record.reward.redeemed]
    revenue = sum(record.reward.order_value or 0.0 for record in redeemed)
    durations = [record.session_duration for record in selected if record.session_duration is not None]

    return StatsSummary(
        total_participants=total,
        unique_participants=len({record.fingerprint for record in selected}),
        total_wins=sum(1 for record in selected if record.awarded),
        total_redemptions=len(redeemed),
        conversion_rate=round(len(redeemed) / total * 100, 2),
        total_revenue=round(revenue, 2),
        average_session_duration=round(sum(durations) / len(durations), 2) if durations else 0.0,
        disqualified=sum(1 for record in selected if record.status is ParticipationStatus.DISQUALIFIED),
    )


def daily_breakdown(
    records: Iterable[ParticipationRecord],
    timezone_name: Optional[str] = None,
    window: Optional[StatsWindow] = None,
) -> List[DailyStats]:
    """Per calendar day in ``timezone_name``, oldest first."""
    zone = resolve_timezone(timezone_name)
    buckets: "OrderedDict[str, Dict[str, float]]" = OrderedDict()
    for record in sorted(_filter(records, window), key=lambda r: r.created_at):
        day = record.created_at.astimezone(zone).date().isoformat()
        bucket = buckets.setdefault(day, {"participants": 0, "wins": 0, "redemptions": 0, "revenue": 0.0})
        bucket["participants"] += 1
        if record.awarded:
            bucket["wins"] += 1
        if record.reward.redeemed:
            bucket["redemptions"] += 1
            bucket["revenue"] += record.reward.order_value or 0.0

    return [
        DailyStats(
            day=day,
            participants=int(bucket["participants"]),
            wins=int(bucket["wins"]),
            redemptions=int(bucket["redemptions"]),
            revenue=round(bucket["revenue"], 2),
        )
        for day, bucket in buckets.items()
    ]


def prize_breakdown(
    records: Iterable[ParticipationRecord],
    window: Optional[StatsWindow] = None,
) -> List[PrizeStats]:
    """Awarded prizes, most awarded first."""
    by_prize: Dict[str, Dict[str, Any]] = {}
    for record in _filter(records, window):
        if not record.awarded or record.prize is None:
            continue
        entry = by_prize.setdefault(
            record.prize.id,
            {"name": record.prize.name, "awarded": 0, "redeemed": 0, "revenue": 0.0},
        )
        entry["awarded"] += 1
        if record.reward.redeemed:
            entry["redeemed"] += 1
            entry["revenue"] += record.reward.order_value or 0.0

    stats = [
        PrizeStats(
            prize_id=prize_id,
            prize_name=entry["name"],
            awarded=entry["awarded"],
            redeemed=entry["redeemed"],
            revenue=round(entry["revenue"], 2),
        )
        for prize_id, entry in by_prize.items()
    ]
    return sorted(stats, key=lambda s: (-s.awarded, s.prize_id))


class StatsService:
    """Loads participation records and caches the unwindowed summary."""

    def __init__(self, cache: Optional[MultiLevelCache] = None) -> None:
        self.cache = cache

    async def _records(self, promotion_id: int, window: Optional[StatsWindow]) -> List[ParticipationRecord]:
        if await PromotionRepository.get(promotion_id) is None:
            raise PromotionNotFoundError(promotion_id)
        if window is None:
            return await ParticipationRepository.list_for_promotion(promotion_id)
        return await ParticipationRepository.list_for_promotion(promotion_id, window.start, window.end)

    async def get_stats(self, promotion_id: int, window: Optional[StatsWindow] = None) -> StatsSummary:
        async def load() -> StatsSummary:
            return summarize(await self._records(promotion_id, window), window)

        if window is not None or self.cache is None:
            return await load()
        key = CacheKeys.STATS.format(promotion_id=promotion_id)
        return await self.cache.get_or_set(key, load, CacheLevel.HOT)

    async def get_breakdowns(
        self,
        promotion_id: int,
        timezone_name: Optional[str] = None,
        window: Optional[StatsWindow] = None,
    ) -> Dict[str, Any]:
        records = await self._records(promotion_id, window)
        return {
            "summary": summarize(records, window),
            "daily": daily_breakdown(records, timezone_name, window),
            "prizes": prize_breakdown(records, window),
        }

    def invalidate(self, promotion_id: int) -> None:
        if self.cache is not None:
            self.cache.invalidate(CacheKeys.STATS.format(promotion_id=promotion_id))
