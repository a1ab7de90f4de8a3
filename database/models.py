"""Domain records shared by the repositories and services.

Variant rules are a closed union of four dataclasses, one per promotion kind,
each carrying only the fields that kind uses.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, ClassVar, Dict, FrozenSet, Optional, Tuple, Type, Union

from core.clock import ensure_utc
from core.constants import (
    ParticipationStatus,
    PrizeType,
    PromotionVariant,
    RedemptionStatus,
    RejectionReason,
    VariantDefaults,
)


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Serialize to a fixed-width UTC ISO string so text comparison orders correctly."""
    if value is None:
        return None
    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_timestamp(value: Union[str, datetime, None]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value))


@dataclass(frozen=True, slots=True)
class Prize:
    id: str
    name: str
    prize_type: PrizeType = PrizeType.CUSTOM
    value: Optional[float] = None
    description: str = ""
    probability: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "prize_type": self.prize_type.value,
            "value": self.value,
            "description": self.description,
            "probability": self.probability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Prize":
        return cls(
            id=str(data["id"]),
            name=data.get("name", str(data["id"])),
            prize_type=PrizeType(data.get("prize_type", PrizeType.CUSTOM.value)),
            value=data.get("value"),
            description=data.get("description", ""),
            probability=float(data.get("probability", 0.0)),
        )


@dataclass(frozen=True, slots=True)
class WheelRules:
    variant: ClassVar[PromotionVariant] = PromotionVariant.WHEEL

    prizes: Tuple[Prize, ...]
    segments: int = VariantDefaults.WHEEL_SEGMENTS

    @property
    def total_probability(self) -> float:
        return sum(prize.probability for prize in self.prizes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prizes": [prize.to_dict() for prize in self.prizes],
            "segments": self.segments,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WheelRules":
        return cls(
            prizes=tuple(Prize.from_dict(p) for p in data.get("prizes", ())),
            segments=int(data.get("segments", VariantDefaults.WHEEL_SEGMENTS)),
        )


@dataclass(frozen=True, slots=True)
class QuizQuestion:
    question: str
    options: Tuple[str, ...]
    correct_answer: int
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "question": self.question,
            "options": list(self.options),
            "correct_answer": self.correct_answer,
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizQuestion":
        return cls(
            question=data["question"],
            options=tuple(data.get("options", ())),
            correct_answer=int(data["correct_answer"]),
            explanation=data.get("explanation", ""),
        )


@dataclass(frozen=True, slots=True)
class QuizRules:
    variant: ClassVar[PromotionVariant] = PromotionVariant.QUIZ

    questions: Tuple[QuizQuestion, ...]
    prize: Prize
    passing_score: float = VariantDefaults.QUIZ_PASSING_SCORE
    max_attempts: int = VariantDefaults.QUIZ_MAX_ATTEMPTS
    time_limit: Optional[int] = VariantDefaults.QUIZ_TIME_LIMIT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "questions": [q.to_dict() for q in self.questions],
            "prize": self.prize.to_dict(),
            "passing_score": self.passing_score,
            "max_attempts": self.max_attempts,
            "time_limit": self.time_limit,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QuizRules":
        return cls(
            questions=tuple(QuizQuestion.from_dict(q) for q in data.get("questions", ())),
            prize=Prize.from_dict(data["prize"]),
            passing_score=float(data.get("passing_score", VariantDefaults.QUIZ_PASSING_SCORE)),
            max_attempts=int(data.get("max_attempts", VariantDefaults.QUIZ_MAX_ATTEMPTS)),
            time_limit=data.get("time_limit", VariantDefaults.QUIZ_TIME_LIMIT),
        )


@dataclass(frozen=True, slots=True)
class InstantWinRules:
    variant: ClassVar[PromotionVariant] = PromotionVariant.INSTANT_WIN

    prizes: Tuple[Prize, ...]
    win_probability: float = VariantDefaults.INSTANT_WIN_PROBABILITY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prizes": [prize.to_dict() for prize in self.prizes],
            "win_probability": self.win_probability,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstantWinRules":
        return cls(
            prizes=tuple(Prize.from_dict(p) for p in data.get("prizes", ())),
            win_probability=float(data.get("win_probability", VariantDefaults.INSTANT_WIN_PROBABILITY)),
        )


@dataclass(frozen=True, slots=True)
class PhotoContestRules:
    variant: ClassVar[PromotionVariant] = PromotionVariant.PHOTO_CONTEST

    prize: Prize
    voting_enabled: bool = True
    submission_deadline: Optional[datetime] = None
    voting_deadline: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prize": self.prize.to_dict(),
            "voting_enabled": self.voting_enabled,
            "submission_deadline": to_db_timestamp(self.submission_deadline),
            "voting_deadline": to_db_timestamp(self.voting_deadline),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhotoContestRules":
        return cls(
            prize=Prize.from_dict(data["prize"]),
            voting_enabled=bool(data.get("voting_enabled", True)),
            submission_deadline=from_db_timestamp(data.get("submission_deadline")),
            voting_deadline=from_db_timestamp(data.get("voting_deadline")),
        )


VariantRules = Union[WheelRules, QuizRules, InstantWinRules, PhotoContestRules]

RULES_BY_VARIANT: Dict[PromotionVariant, Type] = {
    PromotionVariant.WHEEL: WheelRules,
    PromotionVariant.QUIZ: QuizRules,
    PromotionVariant.INSTANT_WIN: InstantWinRules,
    PromotionVariant.PHOTO_CONTEST: PhotoContestRules,
}


def rules_from_dict(variant: PromotionVariant, data: Dict[str, Any]) -> VariantRules:
    return RULES_BY_VARIANT[PromotionVariant(variant)].from_dict(data)


@dataclass(frozen=True, slots=True)
class EntryRules:
    max_entries_per_user: int = 1
    require_contact: bool = True
    minimum_age: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Caps:
    max_wins_per_day: Optional[int] = None
    max_wins_total: Optional[int] = None


@dataclass(frozen=True, slots=True)
class Window:
    start: datetime
    end: Optional[datetime] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        if self.end is not None:
            object.__setattr__(self, "end", ensure_utc(self.end))


@dataclass(frozen=True, slots=True)
class Promotion:
    id: int
    owner_id: str
    host_instance_id: str
    name: str
    variant: PromotionVariant
    rules: VariantRules
    window: Window
    entry_rules: EntryRules = field(default_factory=EntryRules)
    caps: Caps = field(default_factory=Caps)
    timezone: str = "UTC"
    description: str = ""
    paused: bool = False
    archived_at: Optional[datetime] = None
    reward_validity_days: Optional[int] = None
    status_snapshot: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def archived(self) -> bool:
        return self.archived_at is not None

    def with_changes(self, **changes: Any) -> "Promotion":
        return replace(self, **changes)


@dataclass(frozen=True, slots=True)
class Contact:
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    customer_id: Optional[str] = None

    @property
    def has_contact(self) -> bool:
        return bool((self.email or "").strip() or (self.phone or "").strip())

    @property
    def full_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)


@dataclass(frozen=True, slots=True)
class ParticipationAttempt:
    """What a participant sends for one try at a promotion."""
    contact: Contact = field(default_factory=Contact)
    declared_age: Optional[int] = None
    answers: Tuple[int, ...] = ()
    photo_url: Optional[str] = None
    caption: Optional[str] = None
    session_duration: Optional[float] = None
    device_type: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    referral_source: Optional[str] = None
    utm_source: Optional[str] = None
    utm_medium: Optional[str] = None
    utm_campaign: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Outcome:
    """Variant-specific result of one participation; immutable once recorded."""
    variant: PromotionVariant
    positive: bool
    prize: Optional[Prize] = None
    draw: Optional[float] = None
    segment_index: Optional[int] = None
    score: Optional[float] = None
    correct_answers: Optional[int] = None
    total_questions: Optional[int] = None
    submission: bool = False
    forced_reason: Optional[str] = None

    def forced_no_win(self, reason: str) -> "Outcome":
        if not self.positive:
            return self
        return replace(self, positive=False, prize=None, segment_index=None, forced_reason=reason)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "variant": self.variant.value,
            "positive": self.positive,
            "prize": self.prize.to_dict() if self.prize else None,
            "draw": self.draw,
            "segment_index": self.segment_index,
            "score": self.score,
            "correct_answers": self.correct_answers,
            "total_questions": self.total_questions,
            "submission": self.submission,
            "forced_reason": self.forced_reason,
        }

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Outcome":
        prize = data.get("prize")
        return cls(
            variant=PromotionVariant(data["variant"]),
            positive=bool(data["positive"]),
            prize=Prize.from_dict(prize) if prize else None,
            draw=data.get("draw"),
            segment_index=data.get("segment_index"),
            score=data.get("score"),
            correct_answers=data.get("correct_answers"),
            total_questions=data.get("total_questions"),
            submission=bool(data.get("submission", False)),
            forced_reason=data.get("forced_reason"),
        )


@dataclass(frozen=True, slots=True)
class Reward:
    awarded: bool = False
    code: Optional[str] = None
    redeemed: bool = False
    redeemed_at: Optional[datetime] = None
    order_value: Optional[float] = None
    expires_at: Optional[datetime] = None


@dataclass(frozen=True, slots=True)
class RewardCode:
    code: str
    participation_id: int
    promotion_id: int
    prize: Optional[Prize]
    issued_at: datetime
    expires_at: Optional[datetime]
    redeemed: bool = False
    redeemed_at: Optional[datetime] = None
    order_value: Optional[float] = None


@dataclass(frozen=True, slots=True)
class ParticipationRecord:
    id: int
    promotion_id: int
    fingerprint: str
    attempt_ordinal: int
    outcome: Outcome
    prize: Optional[Prize]
    status: ParticipationStatus
    fraud_score: int
    fraud_flags: FrozenSet[str]
    created_at: datetime
    reward: Reward = field(default_factory=Reward)
    contact: Contact = field(default_factory=Contact)
    session_duration: Optional[float] = None
    ip_address: Optional[str] = None
    photo_url: Optional[str] = None
    caption: Optional[str] = None

    @property
    def awarded(self) -> bool:
        return self.reward.awarded


@dataclass(frozen=True, slots=True)
class ParticipationResult:
    participation_id: int
    promotion_id: int
    attempt_ordinal: int
    outcome: Outcome
    awarded: bool
    status: ParticipationStatus
    fraud_score: int
    fraud_flags: FrozenSet[str]
    prize: Optional[Prize] = None
    reward_code: Optional[str] = None
    expires_at: Optional[datetime] = None

    accepted: ClassVar[bool] = True


@dataclass(frozen=True, slots=True)
class Rejection:
    reason: RejectionReason
    message: str = ""

    accepted: ClassVar[bool] = False


@dataclass(frozen=True, slots=True)
class RedemptionResult:
    status: RedemptionStatus
    code: str
    order_value: Optional[float] = None
    redeemed_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status is RedemptionStatus.OK
