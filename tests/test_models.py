"""Tests for grading result invariants and context parsing."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from milestack_grading.models import (
    AssessmentResult,
    GradingContext,
    classify_feedback,
    round_half_up,
    weighted_final_score,
)

from conftest import make_result


def test_round_half_up_rounds_ties_away_from_zero() -> None:
    assert round_half_up(2.5) == 3
    assert round_half_up(80.5) == 81
    assert round_half_up(80.49) == 80


def test_weighted_final_score_uses_50_30_20_weights() -> None:
    assert weighted_final_score(85, 78, 72) == 80
    assert weighted_final_score(100, 85, 70) == 90


def test_reported_final_score_and_passed_are_recomputed() -> None:
    result = make_result(85, 78, 72, final_score=12, passed=False, feedback_type="good_progress")

    assert result.final_score == 80
    assert result.passed is True


def test_low_relevance_never_passes_and_is_a_context_mismatch() -> None:
    result = make_result(50, 100, 100, feedback_type="excellent")

    assert result.final_score == 75
    assert result.passed is False
    assert result.feedback_type == "context_mismatch"


def test_off_topic_label_survives_low_relevance() -> None:
    result = make_result(5, 5, 5, feedback_type="completely_off_topic")

    assert result.feedback_type == "completely_off_topic"
    assert result.passed is False


def test_provider_label_is_reclassified_when_it_contradicts_scores() -> None:
    assert make_result(95, 90, 90, feedback_type="needs_improvement").feedback_type == "excellent"
    assert make_result(95, 90, 90, feedback_type="completely_off_topic").feedback_type == "excellent"
    assert make_result(60, 40, 40, feedback_type="excellent").feedback_type == "needs_improvement"
    assert make_result(80, 70, 60, feedback_type="excellent").feedback_type == "good_progress"


def test_scores_are_clamped_into_range() -> None:
    result = make_result(150, -10, 100)

    assert result.context_relevance_score == 100
    assert result.understanding_depth_score == 0
    assert result.final_score == 70


def test_missing_feedback_type_is_classified() -> None:
    assert make_result(100, 85, 70).feedback_type == "excellent"
    assert make_result(80, 70, 60).feedback_type == "good_progress"
    assert make_result(60, 40, 40).feedback_type == "needs_improvement"
    assert classify_feedback(90, 30) == "context_mismatch"


def test_identified_concepts_are_deduplicated() -> None:
    result = make_result(90, 80, 70, concepts_identified=["Navigation", "navigation ", "state"])

    assert result.concepts_identified == ["Navigation", "state"]


def test_result_is_immutable() -> None:
    result = make_result(90, 80, 70)

    with pytest.raises(ValidationError):
        result.final_score = 10


def test_context_accepts_camel_case_and_blank_answer() -> None:
    context = GradingContext.model_validate(
        {
            "assignmentTitle": "Bank Accounts",
            "milestoneTitle": "Design classes",
            "competencyRequirement": "Model an account hierarchy.",
            "studentAnswer": None,
            "assignmentDomain": None,
        }
    )

    assert context.student_answer == ""
    assert context.assignment_domain == "general"
    assert context.attempt_number == 1
    assert context.latest_feedback is None


def test_context_rejects_non_positive_attempt_number() -> None:
    with pytest.raises(ValidationError):
        GradingContext(assignment_title="x", attempt_number=0)


def test_assessment_pass_requires_score_and_originality() -> None:
    assert AssessmentResult(score=80).is_passed is True
    assert AssessmentResult(score=79.9).is_passed is False
    assert AssessmentResult(score=95, plagiarism_detected=True).is_passed is False
    assert AssessmentResult(score=95, is_passed=False).is_passed is True
