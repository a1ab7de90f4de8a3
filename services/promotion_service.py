"""Promotion administration: creation with variant defaults, validation, updates."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from core.clock import Clock, ensure_utc
from core.constants import OperatorAction, PromotionStatus, PromotionVariant, VariantDefaults
from core.exceptions import InvalidTransitionError, PromotionNotFoundError, RuleValidationError
from core.logger import get_logger
from database.models import (
    RULES_BY_VARIANT,
    Caps,
    EntryRules,
    InstantWinRules,
    PhotoContestRules,
    Prize,
    Promotion,
    QuizRules,
    VariantRules,
    WheelRules,
    Window,
    rules_from_dict,
)
from database.repositories import PromotionRepository
from services.audit_service import AuditService
from services.cap_tracker import resolve_timezone
from services.lifecycle import ENTITY_PROMOTION, compute_status

logger = get_logger(__name__)

RulesInput = Union[VariantRules, Mapping[str, Any]]

UPDATABLE_FIELDS = frozenset({
    "name",
    "description",
    "rules",
    "window",
    "entry_rules",
    "caps",
    "timezone",
    "reward_validity_days",
})


def _prize_problems(prize: Optional[Prize], label: str) -> List[str]:
    if prize is None:
        return [f"{label}: a prize is required"]
    if not prize.id or not prize.name:
        return [f"{label}: prize needs an id and a name"]
    return []


def _wheel_problems(rules: WheelRules) -> List[str]:
    problems = []
    if not rules.prizes:
        problems.append("wheel: prize list is empty")
    for prize in rules.prizes:
        if not 0.0 <= prize.probability <= 1.0:
            problems.append(f"wheel: prize {prize.id} probability {prize.probability} is outside [0, 1]")
    total = rules.total_probability
    if rules.prizes and not 0.0 < total <= 1.0 + 1e-9:
        problems.append(f"wheel: probabilities sum to {total:.4f}, expected a value in (0, 1]")
    if not VariantDefaults.MIN_SEGMENTS <= rules.segments <= VariantDefaults.MAX_SEGMENTS:
        problems.append(
            f"wheel: segments must be between {VariantDefaults.MIN_SEGMENTS} and {VariantDefaults.MAX_SEGMENTS}"
        )
    elif rules.segments < len(rules.prizes):
        problems.append("wheel: fewer segments than prizes")
    return problems


def _quiz_problems(rules: QuizRules) -> List[str]:
    problems = []
    if not rules.questions:
        problems.append("quiz: at least one question is required")
    for index, question in enumerate(rules.questions, start=1):
        if not question.question.strip():
            problems.append(f"quiz: question {index} has no text")
        if len(question.options) < 2:
            problems.append(f"quiz: question {index} needs at least 2 options")
        elif not 0 <= question.correct_answer < len(question.options):
            problems.append(f"quiz: question {index} correct answer is not one of its options")
    if not 0.0 <= rules.passing_score <= 100.0:
        problems.append("quiz: passing score must be between 0 and 100")
    if rules.max_attempts < 1:
        problems.append("quiz: max attempts must be at least 1")
    if rules.time_limit is not None and rules.time_limit <= 0:
        problems.append("quiz: time limit must be positive")
    problems.extend(_prize_problems(rules.prize, "quiz"))
    return problems


def _instant_win_problems(rules: InstantWinRules) -> List[str]:
    problems = []
    if not 0.0 <= rules.win_probability <= 1.0:
        problems.append("instant win: win probability must be within [0, 1]")
    if not rules.prizes:
        problems.append("instant win: prize list is empty")
    return problems


def _photo_contest_problems(rules: PhotoContestRules) -> List[str]:
    problems = _prize_problems(rules.prize, "photo contest")
    if (
        rules.submission_deadline is not None
        and rules.voting_deadline is not None
        and rules.voting_deadline < rules.submission_deadline
    ):
        problems.append("photo contest: voting deadline is before the submission deadline")
    return problems


def validate_promotion(promotion: Promotion) -> List[str]:
    """Every reason the promotion cannot be saved; empty when it is valid."""
    problems: List[str] = []
    if not promotion.name or not promotion.name.strip():
        problems.append("name is required")
    if not promotion.owner_id:
        problems.append("owner id is required")

    expected = RULES_BY_VARIANT[promotion.variant]
    rules = promotion.rules
    if not isinstance(rules, expected):
        problems.append(f"rules of type {type(rules).__name__} do not match variant {promotion.variant.value}")
    elif isinstance(rules, WheelRules):
        problems.extend(_wheel_problems(rules))
    elif isinstance(rules, QuizRules):
        problems.extend(_quiz_problems(rules))
    elif isinstance(rules, InstantWinRules):
        problems.extend(_instant_win_problems(rules))
    elif isinstance(rules, PhotoContestRules):
        problems.extend(_photo_contest_problems(rules))

    entry = promotion.entry_rules
    if entry.max_entries_per_user < 1:
        problems.append("max entries per user must be at least 1")
    if entry.minimum_age is not None and entry.minimum_age < VariantDefaults.MINIMUM_AGE_FLOOR:
        problems.append(f"minimum age must be at least {VariantDefaults.MINIMUM_AGE_FLOOR}")

    for label, cap in (("daily", promotion.caps.max_wins_per_day), ("total", promotion.caps.max_wins_total)):
        if cap is not None and cap < 0:
            problems.append(f"{label} win cap must not be negative")

    window = promotion.window
    if window.end is not None and window.end <= window.start:
        problems.append("window end must be after its start")

    try:
        resolve_timezone(promotion.timezone)
    except ValueError:
        problems.append(f"unknown timezone {promotion.timezone!r}")

    if promotion.reward_validity_days is not None and promotion.reward_validity_days < 1:
        problems.append("reward validity must be at least 1 day")
    return problems


def _coerce_rules(variant: PromotionVariant, rules: RulesInput) -> VariantRules:
    if isinstance(rules, Mapping):
        try:
            return rules_from_dict(variant, dict(rules))
        except (KeyError, TypeError, ValueError) as e:
            raise RuleValidationError([f"{variant.value}: unreadable rules ({e})"]) from e
    return rules


def _default_caps(variant: PromotionVariant, caps: Optional[Caps]) -> Caps:
    if caps is not None:
        return caps
    if variant is PromotionVariant.INSTANT_WIN:
        return Caps(max_wins_per_day=VariantDefaults.INSTANT_WIN_MAX_WINS_PER_DAY)
    return Caps()


def _snapshot(promotion: Promotion) -> Dict[str, Any]:
    return {
        "name": promotion.name,
        "variant": promotion.variant.value,
        "rules": promotion.rules.to_dict(),
        "window": [promotion.window.start.isoformat(), promotion.window.end.isoformat() if promotion.window.end else None],
        "max_entries_per_user": promotion.entry_rules.max_entries_per_user,
        "caps": [promotion.caps.max_wins_per_day, promotion.caps.max_wins_total],
        "timezone": promotion.timezone,
    }


class PromotionService:
    def __init__(self, clock: Clock, default_timezone: str = "UTC") -> None:
        self.clock = clock
        self.default_timezone = default_timezone

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
        """Validate and store a new promotion; it starts in Draft until its window opens.

        Raises:
            RuleValidationError: With every problem found in the configuration
        """
        variant = PromotionVariant(variant)
        promotion = Promotion(
            id=0,
            owner_id=owner_id,
            host_instance_id=host_instance_id,
            name=name,
            description=description,
            variant=variant,
            rules=_coerce_rules(variant, rules),
            window=window,
            entry_rules=entry_rules or EntryRules(),
            caps=_default_caps(variant, caps),
            timezone=timezone or self.default_timezone,
            reward_validity_days=reward_validity_days,
        )
        problems = validate_promotion(promotion)
        if problems:
            raise RuleValidationError(problems)

        now = self.clock.now()
        promotion_id = await PromotionRepository.insert_promotion(promotion, now)
        created = promotion.with_changes(id=promotion_id, created_at=now, updated_at=now)
        await AuditService.log_action(
            operator or owner_id,
            OperatorAction.CREATE,
            ENTITY_PROMOTION,
            now,
            entity_id=promotion_id,
            new_value=_snapshot(created),
        )
        logger.info(f"Created {variant.value} promotion {promotion_id} for owner {owner_id}")
        return created

    async def update_promotion(self, promotion_id: int, operator: str, **changes: Any) -> Promotion:
        """Apply field changes; the variant is fixed at creation.

        Raises:
            PromotionNotFoundError: Unknown promotion
            RuleValidationError: Unknown fields, a variant change, or invalid values
            InvalidTransitionError: The promotion is archived
        """
        current = await self.get_promotion(promotion_id)
        if current.archived:
            raise InvalidTransitionError("update", "archived")
        if "variant" in changes:
            if PromotionVariant(changes.pop("variant")) is not current.variant:
                raise RuleValidationError(["variant cannot be changed after creation"])
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise RuleValidationError([f"field {name!r} cannot be updated" for name in sorted(unknown)])
        if "rules" in changes:
            changes["rules"] = _coerce_rules(current.variant, changes["rules"])
        if not changes:
            return current

        updated = current.with_changes(**changes)
        problems = validate_promotion(updated)
        if problems:
            raise RuleValidationError(problems)

        now = self.clock.now()
        if not await PromotionRepository.update_promotion(updated, now):
            if await PromotionRepository.get(promotion_id) is None:
                raise PromotionNotFoundError(promotion_id)
            raise InvalidTransitionError("update", "archived")
        await AuditService.log_action(
            operator,
            OperatorAction.UPDATE,
            ENTITY_PROMOTION,
            now,
            entity_id=promotion_id,
            old_value=_snapshot(current),
            new_value=_snapshot(updated),
        )
        logger.info(f"Promotion {promotion_id} updated by {operator}: {', '.join(sorted(changes))}")
        return await self.get_promotion(promotion_id)

    async def get_promotion(self, promotion_id: int) -> Promotion:
        promotion = await PromotionRepository.get(promotion_id)
        if promotion is None:
            raise PromotionNotFoundError(promotion_id)
        return promotion

    async def list_promotions(
        self,
        owner_id: Optional[str] = None,
        status: Optional[Union[PromotionStatus, str]] = None,
        include_archived: bool = False,
        now: Optional[datetime] = None,
    ) -> List[Promotion]:
        """Promotions newest first, optionally filtered by their computed status."""
        promotions = await PromotionRepository.list_promotions(owner_id, include_archived)
        if status is None:
            return promotions
        wanted = PromotionStatus(status)
        moment = ensure_utc(now) if now else self.clock.now()
        return [p for p in promotions if compute_status(p, moment) is wanted]
