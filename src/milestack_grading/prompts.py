from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional, Sequence, Union

from langchain_core.prompts import PromptTemplate
from pydantic import ValidationError

from .errors import ContextValidationError
from .models import ConceptExplanationAssessment, GradingContext, GradingResult


REQUIRED_CONTEXT_FIELDS = ("assignment_title", "milestone_title", "competency_requirement")


MILESTONE_GRADING_TEMPLATE = """You are an expert educational evaluator. Grade the student's milestone answer with precise context awareness and fair scoring.

ASSIGNMENT CONTEXT:
Assignment Title: "{assignment_title}"
Assignment Domain: "{assignment_domain}"
Milestone: "{milestone_title}"
Milestone Question: "{competency_requirement}"
Expected Key Concepts: {expected_concepts}
Attempt Number: {attempt_number}
{optional_context}
PREVIOUS ATTEMPTS:
{attempt_history}

STUDENT ANSWER TO EVALUATE:
"{student_answer}"

GRADING INSTRUCTIONS:

STEP 1 - CONTEXT RELEVANCE (0-100):
- Does the answer address the SAME domain and technology as the assignment?
- Same technology as the assignment: 70-100. Different technology: 0-40.
- An answer about an entirely unrelated subject is "completely_off_topic".

STEP 2 - UNDERSTANDING DEPTH (0-100):
- Only when context relevance >= 60: how well does the student understand what must be done?
- Practical ("I need to build...") and theoretical ("X works by...") answers are equally valid.
- Short, clear answers score as well as long ones.

STEP 3 - COMPLETENESS (0-100):
- Are the key requirements and expected concepts addressed?
- Do not penalise missing minor details when the core understanding is present.

STEP 4 - FINAL SCORE:
final_score = round(context_relevance * 0.5 + understanding_depth * 0.3 + completeness * 0.2)
passed = final_score >= 70 AND context_relevance >= 60

STEP 5 - FEEDBACK TYPE:
- "excellent": final_score >= 85
- "good_progress": final_score 70-84
- "needs_improvement": final_score below 70
- "context_mismatch": context_relevance below 60
- "completely_off_topic": the answer is about an unrelated subject

CALIBRATION EXAMPLES:
{calibration_examples}

RESPONSE FORMAT (JSON ONLY, NO MARKDOWN):
{{
  "context_relevance_score": 85,
  "understanding_depth_score": 78,
  "completeness_score": 72,
  "final_score": 80,
  "passed": true,
  "feedback_type": "good_progress",
  "concepts_identified": ["navigation", "state management"],
  "detailed_feedback": {{
    "context_feedback": "string",
    "understanding_feedback": "string",
    "completeness_feedback": "string",
    "suggestions": ["string"],
    "encouragement": "string"
  }},
  "improvement_suggestions": ["string"],
  "learning_indicators": {{
    "concept_grasp": "developing | solid | advanced",
    "application_skill": "beginner | intermediate | advanced",
    "critical_thinking": "basic | developing | strong"
  }},
  "next_steps": ["string"]
}}

Only list concepts_identified from the expected key concepts. Reference the actual assignment in your feedback and keep it encouraging.
"""


CONCEPT_EXPLANATION_TEMPLATE = """You are grading a student's explanation of an assignment checkpoint.

Checkpoint prompt: "{prompt}"
Difficulty: {difficulty}
Expected concepts: {expected_concepts}

Assignment source text (students must not copy it):
{assignment_content}

Student explanation:
"{student_response}"

Score from 0 to 100. The student passes at 80 or above when the explanation is in their own words.
Return JSON only:
{{
  "score": 0,
  "topic_relevance_score": 0,
  "comprehension_score": 0,
  "accuracy_score": 0,
  "originality_score": 0,
  "feedback": "string",
  "strengths": ["string"],
  "weaknesses": ["string"],
  "recommendations": ["string"]
}}
"""


# (domain, answer, context relevance, understanding depth, completeness, final score, passed)
CALIBRATION_EXAMPLES = (
    ("SwiftUI", "I need to create a mobile app using SwiftUI with navigation between screens", 90, 85, 75, 86, True),
    ("SwiftUI", "I will use React and JavaScript to build the user interface", 15, 0, 10, 10, False),
    ("C++ banking", "I need to create bank account classes with inheritance in C++", 95, 90, 85, 92, True),
    ("C++ banking", "I am going to write about my favourite cooking recipes", 5, 0, 0, 3, False),
)


milestone_prompt = PromptTemplate.from_template(MILESTONE_GRADING_TEMPLATE)
concept_explanation_prompt = PromptTemplate.from_template(CONCEPT_EXPLANATION_TEMPLATE)


def validate_context(context: Union[GradingContext, Mapping[str, Any]]) -> GradingContext:
    """Coerce ``context`` into a ``GradingContext`` or report every problem found."""
    if isinstance(context, GradingContext):
        model = context
    elif isinstance(context, Mapping):
        try:
            model = GradingContext.model_validate(dict(context))
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            ]
            raise ContextValidationError(problems) from exc
    else:
        raise ContextValidationError([f"expected a grading context, got {type(context).__name__}"])

    problems = [f"{name} is required" for name in REQUIRED_CONTEXT_FIELDS if not getattr(model, name).strip()]
    if problems:
        raise ContextValidationError(problems)
    return model


def format_calibration_examples() -> str:
    lines: List[str] = []
    for index, (domain, answer, relevance, depth, completeness, final, passed) in enumerate(
        CALIBRATION_EXAMPLES, 1
    ):
        lines.append(f"EXAMPLE {index} - {domain} assignment:")
        lines.append(f'Student Answer: "{answer}"')
        lines.append(
            f"Expected Scores: context_relevance={relevance}, understanding_depth={depth}, "
            f"completeness={completeness}, final_score={final}, passed={str(passed).lower()}"
        )
        lines.append("")
    return "\n".join(lines).rstrip()


def format_attempt_history(previous: Sequence[GradingResult]) -> str:
    if not previous:
        return "None. This is the student's first graded attempt."
    lines: List[str] = []
    for index, result in enumerate(previous, 1):
        suggestions = result.detailed_feedback.suggestions or result.improvement_suggestions
        line = f"Attempt {index}: {result.feedback_type} (final score {result.final_score})"
        if suggestions:
            line += ". Suggestions given: " + "; ".join(suggestions)
        lines.append(line)
    return "\n".join(lines)


def _optional_context(difficulty_level: Optional[int], user_instructions: Optional[str]) -> str:
    lines: List[str] = []
    if difficulty_level is not None:
        lines.append(f"Difficulty Level: {difficulty_level}/10")
    if user_instructions and user_instructions.strip():
        lines.append(f"Student Instructions: {user_instructions.strip()}")
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def build_grading_prompt(context: Union[GradingContext, Mapping[str, Any]]) -> str:
    """Render the milestone evaluation prompt. Pure string formatting."""
    ctx = validate_context(context)
    return milestone_prompt.format(
        assignment_title=ctx.assignment_title,
        assignment_domain=ctx.assignment_domain,
        milestone_title=ctx.milestone_title,
        competency_requirement=ctx.competency_requirement,
        expected_concepts=json.dumps(list(ctx.expected_concepts), ensure_ascii=False),
        attempt_number=ctx.attempt_number,
        optional_context=_optional_context(ctx.difficulty_level, ctx.user_instructions),
        attempt_history=format_attempt_history(ctx.previous_feedback),
        student_answer=ctx.student_answer,
        calibration_examples=format_calibration_examples(),
    )


def build_concept_explanation_prompt(
    assessment: ConceptExplanationAssessment,
    assignment_content: Optional[str] = None,
) -> str:
    return concept_explanation_prompt.format(
        prompt=assessment.prompt,
        difficulty=assessment.difficulty,
        expected_concepts=json.dumps(list(assessment.expected_concepts), ensure_ascii=False),
        assignment_content=(assignment_content or "Not provided.").strip(),
        student_response=assessment.student_response,
    )
