"""Tests for grading prompt rendering and context validation."""

from __future__ import annotations

import pytest

from milestack_grading.errors import ContextValidationError
from milestack_grading.models import ConceptExplanationAssessment, GradingContext
from milestack_grading.prompts import (
    build_concept_explanation_prompt,
    build_grading_prompt,
    format_attempt_history,
    validate_context,
)

from conftest import make_result


def test_prompt_embeds_assignment_context(mobile_context: GradingContext) -> None:
    prompt = build_grading_prompt(mobile_context)

    assert 'Assignment Title: "SwiftUI Habit Tracker"' in prompt
    assert 'Assignment Domain: "mobile_development"' in prompt
    assert "Describe how the screens of your app connect and share state." in prompt
    assert 'Expected Key Concepts: ["navigation", "state management"]' in prompt
    assert mobile_context.student_answer in prompt
    assert "Attempt Number: 1" in prompt
    assert "first graded attempt" in prompt


def test_prompt_carries_instructions_calibration_and_schema(mobile_context: GradingContext) -> None:
    prompt = build_grading_prompt(mobile_context)

    for step in ("STEP 1", "STEP 2", "STEP 3", "STEP 4", "STEP 5"):
        assert step in prompt
    assert "EXAMPLE 1 - SwiftUI assignment:" in prompt
    assert "EXAMPLE 4 - C++ banking assignment:" in prompt
    assert '"context_relevance_score": 85,' in prompt
    assert "{{" not in prompt


def test_prompt_is_deterministic(mobile_context: GradingContext) -> None:
    assert build_grading_prompt(mobile_context) == build_grading_prompt(mobile_context)


def test_optional_context_is_rendered_only_when_present(mobile_context: GradingContext) -> None:
    assert "Difficulty Level" not in build_grading_prompt(mobile_context)

    context = mobile_context.model_copy(update={"difficulty_level": 4, "user_instructions": "Keep it short."})
    prompt = build_grading_prompt(context)

    assert "Difficulty Level: 4/10" in prompt
    assert "Student Instructions: Keep it short." in prompt


def test_attempt_history_lists_prior_feedback() -> None:
    previous = make_result(
        40,
        60,
        50,
        detailed_feedback={"suggestions": ["Mention navigation", "Explain @State"]},
    )

    history = format_attempt_history([previous])

    assert history == (
        f"Attempt 1: context_mismatch (final score {previous.final_score}). "
        "Suggestions given: Mention navigation; Explain @State"
    )


def test_validate_context_reports_every_missing_field() -> None:
    with pytest.raises(ContextValidationError) as excinfo:
        validate_context({"assignmentTitle": " ", "studentAnswer": "anything"})

    assert excinfo.value.problems == [
        "assignment_title is required",
        "milestone_title is required",
        "competency_requirement is required",
    ]


def test_validate_context_wraps_type_errors() -> None:
    with pytest.raises(ContextValidationError) as excinfo:
        validate_context(
            {
                "assignmentTitle": "A",
                "milestoneTitle": "M",
                "competencyRequirement": "Q",
                "attemptNumber": 0,
            }
        )
    assert excinfo.value.problems

    with pytest.raises(ContextValidationError):
        validate_context(42)  # type: ignore[arg-type]


def test_build_grading_prompt_rejects_incomplete_context() -> None:
    with pytest.raises(ContextValidationError):
        build_grading_prompt(GradingContext(assignment_title="Only a title"))


def test_concept_explanation_prompt_includes_source_text() -> None:
    assessment = ConceptExplanationAssessment(
        prompt="Explain binary search",
        student_response="It halves the range.",
        expected_concepts=["sorted array"],
    )

    prompt = build_concept_explanation_prompt(assessment, "Binary search works on sorted arrays.")

    assert 'Checkpoint prompt: "Explain binary search"' in prompt
    assert "Binary search works on sorted arrays." in prompt
    assert '["sorted array"]' in prompt
    assert "Not provided." in build_concept_explanation_prompt(assessment)
