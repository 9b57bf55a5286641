from __future__ import annotations

import math
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


FeedbackType = Literal[
    "excellent",
    "good_progress",
    "needs_improvement",
    "context_mismatch",
    "completely_off_topic",
]
GradedBy = Literal["external_agent", "fallback_llm", "heuristic"]
ConceptGrasp = Literal["developing", "solid", "advanced"]
ApplicationSkill = Literal["beginner", "intermediate", "advanced"]
CriticalThinking = Literal["basic", "developing", "strong"]

PASSING_FINAL_SCORE = 70
PASSING_RELEVANCE_SCORE = 60
ASSESSMENT_PASSING_SCORE = 80

SCORE_FIELDS = ("context_relevance_score", "understanding_depth_score", "completeness_score")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def weighted_final_score(relevance: float, depth: float, completeness: float) -> int:
    """Weighted milestone score: relevance 50%, depth 30%, completeness 20%."""
    return round_half_up(relevance * 0.5 + depth * 0.3 + completeness * 0.2)


def is_passing(final_score: float, relevance: float) -> bool:
    return final_score >= PASSING_FINAL_SCORE and relevance >= PASSING_RELEVANCE_SCORE


def classify_feedback(final_score: float, relevance: float) -> FeedbackType:
    if relevance < PASSING_RELEVANCE_SCORE:
        return "context_mismatch"
    if final_score >= 85:
        return "excellent"
    if final_score >= PASSING_FINAL_SCORE:
        return "good_progress"
    return "needs_improvement"


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _clamp_score(value: Any) -> Any:
    if not _is_number(value):
        return value
    return min(100.0, max(0.0, float(value)))


# ── Grading results ─────────────────────────────────────────────────────


class DetailedFeedback(BaseModel):
    model_config = ConfigDict(frozen=True)

    context_feedback: str = ""
    understanding_feedback: str = ""
    completeness_feedback: str = ""
    suggestions: List[str] = Field(default_factory=list)
    encouragement: str = ""


class LearningIndicators(BaseModel):
    model_config = ConfigDict(frozen=True)

    concept_grasp: ConceptGrasp = "developing"
    application_skill: ApplicationSkill = "beginner"
    critical_thinking: CriticalThinking = "basic"


class GradingResult(BaseModel):
    """Canonical milestone grading outcome.

    ``final_score``, ``passed`` and ``feedback_type`` are always derived from the
    three dimension scores; a provider may only keep ``completely_off_topic``,
    and only while relevance is below the passing bar.
    """

    model_config = ConfigDict(frozen=True)

    context_relevance_score: float = Field(ge=0.0, le=100.0)
    understanding_depth_score: float = Field(ge=0.0, le=100.0)
    completeness_score: float = Field(ge=0.0, le=100.0)
    final_score: int = Field(ge=0, le=100)
    passed: bool
    feedback_type: FeedbackType
    concepts_identified: List[str] = Field(default_factory=list)
    detailed_feedback: DetailedFeedback = Field(default_factory=DetailedFeedback)
    improvement_suggestions: List[str] = Field(default_factory=list)
    next_steps: List[str] = Field(default_factory=list)
    learning_indicators: LearningIndicators = Field(default_factory=LearningIndicators)
    graded_by: GradedBy = "heuristic"

    @model_validator(mode="before")
    @classmethod
    def _derive_outcome(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in SCORE_FIELDS:
            if key in data:
                data[key] = _clamp_score(data[key])
        if not all(_is_number(data.get(key)) for key in SCORE_FIELDS):
            return data

        relevance = data["context_relevance_score"]
        final = weighted_final_score(
            relevance,
            data["understanding_depth_score"],
            data["completeness_score"],
        )
        data["final_score"] = final
        data["passed"] = is_passing(final, relevance)

        # Off-topic is the only label the score buckets cannot derive.
        off_topic = data.get("feedback_type") == "completely_off_topic"
        if not (off_topic and relevance < PASSING_RELEVANCE_SCORE):
            data["feedback_type"] = classify_feedback(final, relevance)
        return data

    @field_validator("concepts_identified")
    @classmethod
    def _dedupe_concepts(cls, value: List[str]) -> List[str]:
        seen = set()
        unique: List[str] = []
        for concept in value:
            key = concept.strip().lower()
            if key and key not in seen:
                seen.add(key)
                unique.append(concept.strip())
        return unique


# ── Grading input ───────────────────────────────────────────────────────


class GradingContext(BaseModel):
    """Everything a grader needs to score one milestone attempt."""

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    assignment_title: str = ""
    assignment_domain: str = "general"
    milestone_title: str = ""
    competency_requirement: str = ""
    expected_concepts: List[str] = Field(default_factory=list)
    student_answer: str = ""
    attempt_number: int = Field(default=1, ge=1)
    previous_feedback: List[GradingResult] = Field(default_factory=list)
    user_instructions: Optional[str] = None
    difficulty_level: Optional[int] = Field(default=None, ge=1, le=10)
    user_id: Optional[str] = None

    @field_validator("student_answer", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("assignment_domain", mode="before")
    @classmethod
    def _default_domain(cls, value: Any) -> Any:
        return "general" if value is None or value == "" else value

    @field_validator("expected_concepts", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @property
    def latest_feedback(self) -> Optional[GradingResult]:
        return self.previous_feedback[-1] if self.previous_feedback else None


# ── Competency assessments ──────────────────────────────────────────────


class AssessmentResult(BaseModel):
    """Checkpoint assessment outcome; passes at 80 without plagiarism."""

    model_config = ConfigDict(frozen=True)

    score: float = Field(ge=0.0, le=100.0)
    topic_relevance_score: Optional[float] = None
    comprehension_score: float = 0.0
    accuracy_score: float = 0.0
    originality_score: float = 100.0
    plagiarism_detected: bool = False
    plagiarism_score: float = 0.0
    feedback: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)
    is_passed: bool = False
    detailed_analysis: Dict[str, Any] = Field(default_factory=dict)
    graded_by: GradedBy = "heuristic"

    @model_validator(mode="before")
    @classmethod
    def _derive_pass(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        if "score" in data:
            data["score"] = _clamp_score(data["score"])
        score = data.get("score")
        if _is_number(score):
            data["is_passed"] = score >= ASSESSMENT_PASSING_SCORE and not data.get("plagiarism_detected", False)
        return data


class ConceptExplanationReply(BaseModel):
    """Shape an LLM must return when grading a concept explanation."""

    model_config = ConfigDict(frozen=True)

    score: float
    topic_relevance_score: Optional[float] = None
    comprehension_score: Optional[float] = None
    accuracy_score: Optional[float] = None
    originality_score: Optional[float] = None
    feedback: str = ""
    strengths: List[str] = Field(default_factory=list)
    weaknesses: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @field_validator(
        "score",
        "topic_relevance_score",
        "comprehension_score",
        "accuracy_score",
        "originality_score",
        mode="before",
    )
    @classmethod
    def _numeric_score(cls, value: Any) -> Any:
        if value is None:
            return value
        if not _is_number(value):
            raise ValueError("must be a number")
        return _clamp_score(value)

    @field_validator("feedback", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> Any:
        return "" if value is None else value

    @field_validator("strengths", "weaknesses", "recommendations", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class _AssessmentInput(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ConceptExplanationAssessment(_AssessmentInput):
    type: Literal["concept-explanation"] = "concept-explanation"
    prompt: str = ""
    student_response: str = ""
    expected_concepts: List[str] = Field(default_factory=list)
    difficulty: Literal["beginner", "intermediate", "advanced", "expert"] = "beginner"

    @field_validator("student_response", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> Any:
        return "" if value is None else value


class SkillAssessmentQuestion(_AssessmentInput):
    id: str
    type: Literal["multiple-choice", "code-completion", "practical-implementation"]
    question: str = ""
    options: List[str] = Field(default_factory=list)
    correct_answer: Union[str, List[str]] = ""
    explanation: str = ""
    points: int = Field(default=10, ge=0)


class SkillAssessment(_AssessmentInput):
    type: Literal["skill-assessment"] = "skill-assessment"
    questions: List[SkillAssessmentQuestion] = Field(default_factory=list)
    student_responses: Dict[str, Any] = Field(default_factory=dict)
    time_limit: int = 30


class CodeReviewIssue(_AssessmentInput):
    line: int = 0
    type: Literal["error", "warning", "improvement"] = "improvement"
    description: str = ""
    severity: Literal["low", "medium", "high"] = "medium"


class CodeReviewAssessment(_AssessmentInput):
    type: Literal["code-review"] = "code-review"
    code_snippet: str = ""
    issues: List[CodeReviewIssue] = Field(default_factory=list)
    student_analysis: str = ""
    expected_issues: List[str] = Field(default_factory=list)

    @field_validator("student_analysis", mode="before")
    @classmethod
    def _none_to_blank(cls, value: Any) -> Any:
        return "" if value is None else value
