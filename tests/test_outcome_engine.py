"""Tests for per-variant outcome determination."""

import random
from collections import Counter

import pytest

from conftest import NOW
from core.constants import PromotionVariant
from database.models import Promotion, Window
from services.outcome_engine import OutcomeEngine, roll_instant_win, score_quiz, spin_wheel


def _promotion(variant, rules) -> Promotion:
    return Promotion(
        id=1,
        owner_id="owner",
        host_instance_id="instance",
        name="Promo",
        variant=variant,
        rules=rules,
        window=Window(start=NOW),
    )


def test_wheel_segment_boundaries(factory):
    """Cumulative bands are half-open: a draw equal to a boundary belongs to the next band."""
    rules = factory.wheel(0.5, 0.25)

    assert spin_wheel(rules, 0.0).prize.id == "w0"
    assert spin_wheel(rules, 0.4999).prize.id == "w0"
    assert spin_wheel(rules, 0.5).prize.id == "w1"
    assert spin_wheel(rules, 0.7499).segment_index == 1

    miss = spin_wheel(rules, 0.75)
    assert not miss.positive
    assert miss.prize is None
    assert miss.draw == 0.75


def test_wheel_frequencies_converge(factory):
    """Over many seeded draws each prize lands near its configured probability."""
    rules = factory.wheel(0.1, 0.3, 0.2)
    rng = random.Random(42)
    draws = 20000
    counts = Counter()
    for _ in range(draws):
        outcome = spin_wheel(rules, rng.random())
        counts[outcome.prize.id if outcome.positive else None] += 1

    assert counts["w0"] / draws == pytest.approx(0.1, abs=0.015)
    assert counts["w1"] / draws == pytest.approx(0.3, abs=0.015)
    assert counts["w2"] / draws == pytest.approx(0.2, abs=0.015)
    assert counts[None] / draws == pytest.approx(0.4, abs=0.015)


def test_instant_win_band_and_prize_choice(factory):
    rules = factory.instant_win(probability=0.5, prizes=2)

    assert roll_instant_win(rules, 0.1).prize.id == "i0"
    assert roll_instant_win(rules, 0.3).prize.id == "i1"
    assert roll_instant_win(rules, 0.4999).prize.id == "i1"
    assert not roll_instant_win(rules, 0.5).positive
    assert not roll_instant_win(rules, 0.9).positive


def test_instant_win_certain_and_never(factory):
    assert roll_instant_win(factory.instant_win(probability=1.0), 0.9999).positive
    assert not roll_instant_win(factory.instant_win(probability=0.0), 0.0).positive


def test_quiz_scoring(factory):
    rules = factory.quiz(questions=4, passing_score=75)

    perfect = score_quiz(rules, (0, 1, 2, 0), prior_attempts=0)
    assert perfect.positive
    assert perfect.score == 100.0
    assert perfect.correct_answers == 4
    assert perfect.prize.id == "quiz"

    three = score_quiz(rules, (0, 1, 2, 1), prior_attempts=0)
    assert three.positive
    assert three.score == 75.0

    two = score_quiz(rules, (0, 1, 0, 1), prior_attempts=0)
    assert not two.positive
    assert two.score == 50.0
    assert two.prize is None


def test_quiz_score_rounding(factory):
    rules = factory.quiz(questions=3, passing_score=60)
    outcome = score_quiz(rules, (0, 1, 0), prior_attempts=0)
    assert outcome.score == 66.67
    assert outcome.positive


def test_quiz_attempts_beyond_limit_cannot_win(factory):
    rules = factory.quiz(max_attempts=2)
    assert score_quiz(rules, (0, 1, 2, 0), prior_attempts=1).positive
    outcome = score_quiz(rules, (0, 1, 2, 0), prior_attempts=2)
    assert not outcome.positive
    assert outcome.score == 100.0


def test_photo_submission_is_never_a_win(factory):
    engine = OutcomeEngine()
    promotion = _promotion(PromotionVariant.PHOTO_CONTEST, factory.photo_contest())
    outcome = engine.determine(promotion, factory.attempt(photo_url="https://cdn.example.com/a.jpg"), 0.1)
    assert outcome.submission
    assert not outcome.positive


def test_determine_dispatches_by_variant(factory):
    engine = OutcomeEngine()
    wheel = _promotion(PromotionVariant.WHEEL, factory.wheel(1.0))
    assert engine.determine(wheel, factory.attempt(), 0.3).variant is PromotionVariant.WHEEL

    quiz = _promotion(PromotionVariant.QUIZ, factory.quiz())
    outcome = engine.determine(quiz, factory.attempt(answers=(0, 1, 2, 0)), 0.3, prior_attempts=0)
    assert outcome.variant is PromotionVariant.QUIZ
    assert outcome.positive


@pytest.mark.parametrize("draw", [-0.1, 1.0, 1.5])
def test_draw_outside_unit_interval(factory, draw):
    promotion = _promotion(PromotionVariant.WHEEL, factory.wheel())
    with pytest.raises(ValueError):
        OutcomeEngine().determine(promotion, factory.attempt(), draw)


def test_forced_no_win_keeps_draw(factory):
    outcome = spin_wheel(factory.wheel(1.0), 0.2)
    forced = outcome.forced_no_win("cap_exhausted")
    assert not forced.positive
    assert forced.prize is None
    assert forced.draw == 0.2
    assert forced.forced_reason == "cap_exhausted"
