"""Per-variant outcome determination.

Every algorithm here is a pure function of the promotion rules, the attempt,
one uniform draw in ``[0, 1)`` and the participant's prior attempt count.
Caps and fraud blocks are applied afterwards by the caller through
``Outcome.forced_no_win``.
"""

from __future__ import annotations

from core.constants import PromotionVariant
from database.models import (
    InstantWinRules,
    Outcome,
    ParticipationAttempt,
    PhotoContestRules,
    Promotion,
    QuizRules,
    WheelRules,
)


def spin_wheel(rules: WheelRules, draw: float) -> Outcome:
    cumulative = 0.0
    for index, prize in enumerate(rules.prizes):
        cumulative += prize.probability
        if draw < cumulative:
            return Outcome(
                variant=PromotionVariant.WHEEL,
                positive=True,
                prize=prize,
                draw=draw,
                segment_index=index,
            )
    return Outcome(variant=PromotionVariant.WHEEL, positive=False, draw=draw)


def roll_instant_win(rules: InstantWinRules, draw: float) -> Outcome:
    """Win when the draw lands inside the win band; its position in the band picks the prize."""
    probability = rules.win_probability
    if not rules.prizes or draw >= probability:
        return Outcome(variant=PromotionVariant.INSTANT_WIN, positive=False, draw=draw)
    index = min(int(draw / probability * len(rules.prizes)), len(rules.prizes) - 1)
    return Outcome(
        variant=PromotionVariant.INSTANT_WIN,
        positive=True,
        prize=rules.prizes[index],
        draw=draw,
    )


def score_quiz(rules: QuizRules, answers, prior_attempts: int) -> Outcome:
    total = len(rules.questions)
    correct = sum(
        1 for answer, question in zip(answers, rules.questions)
        if answer == question.correct_answer
    )
    score = correct / total * 100 if total else 0.0
    passed = score >= rules.passing_score and prior_attempts < rules.max_attempts
    return Outcome(
        variant=PromotionVariant.QUIZ,
        positive=passed,
        prize=rules.prize if passed else None,
        score=round(score, 2),
        correct_answers=correct,
        total_questions=total,
    )


def record_submission(rules: PhotoContestRules) -> Outcome:
    return Outcome(variant=PromotionVariant.PHOTO_CONTEST, positive=False, submission=True)


class OutcomeEngine:
    """Dispatches to the algorithm of the promotion's variant."""

    def determine(
        self,
        promotion: Promotion,
        attempt: ParticipationAttempt,
        draw: float,
        prior_attempts: int = 0,
    ) -> Outcome:
        if not 0.0 <= draw < 1.0:
            raise ValueError(f"draw {draw} is outside [0, 1)")

        rules = promotion.rules
        if isinstance(rules, WheelRules):
            return spin_wheel(rules, draw)
        if isinstance(rules, InstantWinRules):
            return roll_instant_win(rules, draw)
        if isinstance(rules, QuizRules):
            return score_quiz(rules, attempt.answers, prior_attempts)
        if isinstance(rules, PhotoContestRules):
            return record_submission(rules)
        raise TypeError(f"Unsupported rules type: {type(rules).__name__}")
