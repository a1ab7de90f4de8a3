"""Eligibility checks run before any outcome is drawn.

The checks never write anything. The entry count they see is advisory; the
participation service repeats it inside its write transaction.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from core.clock import ensure_utc
from core.constants import PromotionStatus, RejectionReason
from database.models import ParticipationAttempt, PhotoContestRules, Promotion, QuizRules, Rejection
from database.repositories import ParticipationRepository
from services.lifecycle import compute_status
from utils.validators import derive_fingerprint, validate_email, validate_photo_url


def fingerprint_for(attempt: ParticipationAttempt) -> Optional[str]:
    return derive_fingerprint(attempt.contact, attempt.ip_address, attempt.user_agent)


def _structural_problem(promotion: Promotion, attempt: ParticipationAttempt, now: datetime) -> Optional[Rejection]:
    if attempt.contact.email and not validate_email(attempt.contact.email):
        return Rejection(RejectionReason.MALFORMED_ENTRY, "Email address is not valid")

    rules = promotion.rules
    if isinstance(rules, QuizRules):
        if len(attempt.answers) != len(rules.questions):
            return Rejection(
                RejectionReason.MALFORMED_ENTRY,
                f"Expected {len(rules.questions)} answers, got {len(attempt.answers)}",
            )
        for index, (answer, question) in enumerate(zip(attempt.answers, rules.questions)):
            if answer is None:
                return Rejection(RejectionReason.MALFORMED_ENTRY, f"Answer {index + 1} is missing")
            if isinstance(answer, bool) or not isinstance(answer, int):
                return Rejection(
                    RejectionReason.MALFORMED_ENTRY,
                    f"Answer {index + 1} must be an option index",
                )
            if not 0 <= answer < len(question.options):
                return Rejection(
                    RejectionReason.MALFORMED_ENTRY,
                    f"Answer {index + 1} does not match any option",
                )

    if isinstance(rules, PhotoContestRules):
        if not validate_photo_url(attempt.photo_url):
            return Rejection(RejectionReason.MALFORMED_ENTRY, "A photo URL is required")
        if rules.submission_deadline is not None and now >= rules.submission_deadline:
            return Rejection(RejectionReason.SUBMISSIONS_CLOSED, "Photo submissions are closed")

    return None


def evaluate_eligibility(
    promotion: Promotion,
    attempt: ParticipationAttempt,
    now: datetime,
    existing_entries: int,
) -> Optional[Rejection]:
    """Return the first rule the attempt breaks, or None when it may proceed.

    Checks run in a fixed order: status, contact, age, entry limit, then the
    variant's structural requirements.
    """
    now = ensure_utc(now)
    status = compute_status(promotion, now)
    if promotion.archived or status is not PromotionStatus.ACTIVE:
        label = "archived" if promotion.archived else status.value
        return Rejection(RejectionReason.PROMOTION_NOT_ACTIVE, f"Promotion is {label}")

    entry_rules = promotion.entry_rules
    if entry_rules.require_contact and not attempt.contact.has_contact:
        return Rejection(RejectionReason.MISSING_CONTACT, "An email address or phone number is required")

    if entry_rules.minimum_age is not None:
        if attempt.declared_age is None or attempt.declared_age < entry_rules.minimum_age:
            return Rejection(
                RejectionReason.AGE_RESTRICTED,
                f"Participants must be at least {entry_rules.minimum_age}",
            )

    if fingerprint_for(attempt) is None:
        return Rejection(RejectionReason.MALFORMED_ENTRY, "Participant cannot be identified")
    if existing_entries >= entry_rules.max_entries_per_user:
        return Rejection(
            RejectionReason.ENTRY_LIMIT_EXCEEDED,
            f"Entry limit of {entry_rules.max_entries_per_user} reached",
        )

    return _structural_problem(promotion, attempt, now)


class EligibilityGate:
    """Loads the participant's entry count and applies ``evaluate_eligibility``."""

    async def check(
        self,
        promotion: Promotion,
        attempt: ParticipationAttempt,
        now: datetime,
    ) -> Optional[Rejection]:
        fingerprint = fingerprint_for(attempt)
        existing = 0
        if fingerprint is not None:
            existing = await ParticipationRepository.count_entries(promotion.id, fingerprint)
        return evaluate_eligibility(promotion, attempt, now, existing)

