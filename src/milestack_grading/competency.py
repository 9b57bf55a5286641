"""Checkpoint competency assessments (concept explanation, skill, code review).

These produce ``AssessmentResult``s, which pass at 80 and fail outright on
plagiarism. Milestone grading with its 70/60 thresholds lives in ``pipeline``.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError

from .errors import GradingProviderError
from .heuristics import PLAGIARISM_THRESHOLD, phrase_overlap_score
from .llm_client import LLMClient
from .models import (
    ASSESSMENT_PASSING_SCORE,
    AssessmentResult,
    CodeReviewAssessment,
    ConceptExplanationAssessment,
    ConceptExplanationReply,
    SkillAssessment,
    SkillAssessmentQuestion,
    round_half_up,
)
from .prompts import build_concept_explanation_prompt

logger = logging.getLogger(__name__)

TOPIC_MATCH_THRESHOLD = 30.0
TECHNICAL_TERMS = ("algorithm", "data structure", "complexity", "efficiency", "implementation")
FIX_WORDS = ("should", "fix", "instead", "replace", "refactor", "rename", "handle")
MULTIPLE_CHOICE_PARTIAL_CREDIT = 0.2


def _compose_feedback(opening: str, strengths: Sequence[str], weaknesses: Sequence[str], recommendations: Sequence[str]) -> str:
    feedback = opening
    if strengths:
        feedback += "Strengths: " + ", ".join(strengths) + ". "
    if weaknesses:
        feedback += "Areas to improve: " + ", ".join(weaknesses) + ". "
    if recommendations:
        feedback += "Recommendations: " + ", ".join(recommendations) + "."
    return feedback.strip()


def _opening(score: float, passed: bool) -> str:
    if passed:
        return "Excellent work! You demonstrated a strong understanding of the concepts. "
    if score >= 60:
        return "Good effort! You showed understanding of some concepts. "
    return "Your work needs improvement. "


def _significant_words(text: str) -> List[str]:
    return [word for word in re.findall(r"[a-z0-9_@#+.-]+", text.lower()) if len(word) > 3]


def _mentions(analysis: str, description: str) -> bool:
    """True when ``analysis`` contains ``description`` or at least half its significant words."""
    lowered = analysis.lower()
    if description.strip() and description.lower() in lowered:
        return True
    words = _significant_words(description)
    if not words:
        return False
    return sum(1 for word in words if word in lowered) * 2 >= len(words)


def topic_match_percentage(response: str, assignment_content: str) -> Optional[float]:
    """Share of the assignment's leading keywords that the response touches on."""
    keywords = [word for word in assignment_content.lower()[:200].split() if len(word) > 3][:10]
    if not keywords:
        return None
    response_words = [word for word in response.lower().split() if len(word) > 3]
    matching = [
        keyword
        for keyword in keywords
        if any(word in keyword or keyword in word for word in response_words)
    ]
    return len(matching) / len(keywords) * 100


class CompetencyAssessmentService:
    """Evaluates checkpoint assessments. Every ``evaluate_*`` call returns a result."""

    def __init__(self, use_rule_based_grading: bool = True, llm_client: Optional[LLMClient] = None):
        self.use_rule_based_grading = use_rule_based_grading
        self.llm_client = llm_client

    # ── Concept explanation ─────────────────────────────────────────────

    async def evaluate_concept_explanation(
        self,
        assessment: ConceptExplanationAssessment,
        assignment_content: Optional[str] = None,
    ) -> AssessmentResult:
        if self.use_rule_based_grading or self.llm_client is None:
            return self.evaluate_concept_explanation_rule_based(assessment, assignment_content)
        try:
            return await self._evaluate_concept_explanation_llm(self.llm_client, assessment, assignment_content)
        except (GradingProviderError, ValidationError) as exc:
            logger.warning("LLM concept evaluation failed, using rules: %s", exc)
            return self.evaluate_concept_explanation_rule_based(assessment, assignment_content)

    async def _evaluate_concept_explanation_llm(
        self,
        client: LLMClient,
        assessment: ConceptExplanationAssessment,
        assignment_content: Optional[str],
    ) -> AssessmentResult:
        data = await client.generate_json(build_concept_explanation_prompt(assessment, assignment_content))
        try:
            reply = ConceptExplanationReply.model_validate(data)
        except ValidationError as exc:
            problems = [
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
            ]
            raise GradingProviderError("fallback_llm", "Invalid assessment result structure", problems) from exc

        plagiarism_score = 0.0
        if assignment_content:
            plagiarism_score = phrase_overlap_score(assessment.student_response, assignment_content)
        plagiarism_detected = plagiarism_score > PLAGIARISM_THRESHOLD
        weaknesses = list(reply.weaknesses)
        if plagiarism_detected:
            weaknesses.append(f"High similarity to assignment content ({plagiarism_score:.1f}%)")

        originality = 100.0 if reply.originality_score is None else reply.originality_score
        if plagiarism_detected:
            originality = min(originality, max(0.0, 100 - plagiarism_score))

        return AssessmentResult.model_validate(
            {
                "score": reply.score,
                "topic_relevance_score": 100.0 if reply.topic_relevance_score is None else reply.topic_relevance_score,
                "comprehension_score": reply.score if reply.comprehension_score is None else reply.comprehension_score,
                "accuracy_score": reply.score if reply.accuracy_score is None else reply.accuracy_score,
                "originality_score": originality,
                "plagiarism_detected": plagiarism_detected,
                "plagiarism_score": plagiarism_score,
                "feedback": reply.feedback,
                "strengths": list(reply.strengths),
                "weaknesses": weaknesses,
                "recommendations": list(reply.recommendations),
                "detailed_analysis": {"source": "llm"},
                "graded_by": "fallback_llm",
            }
        )

    def evaluate_concept_explanation_rule_based(
        self,
        assessment: ConceptExplanationAssessment,
        assignment_content: Optional[str] = None,
    ) -> AssessmentResult:
        raw_response = assessment.student_response
        response = raw_response.lower()
        strengths: List[str] = []
        weaknesses: List[str] = []
        recommendations: List[str] = []
        originality_score = 100.0
        plagiarism_score = 0.0
        plagiarism_detected = False

        if assignment_content:
            match_percentage = topic_match_percentage(response, assignment_content)
            if match_percentage is not None and match_percentage < TOPIC_MATCH_THRESHOLD:
                return self._topic_mismatch_result()

            plagiarism_score = phrase_overlap_score(raw_response, assignment_content)
            plagiarism_detected = plagiarism_score > PLAGIARISM_THRESHOLD
            if plagiarism_detected:
                originality_score = max(0.0, 100 - plagiarism_score)
                weaknesses.append(f"High similarity to assignment content ({plagiarism_score:.1f}%)")
                recommendations.append("Rewrite in your own words - avoid copying from assignment")
            else:
                strengths.append("Original explanation in student's own words")

        score = 30
        strengths.append("Made an attempt to explain the concept")
        if len(raw_response) < 10:
            weaknesses.append("Response very brief")
            recommendations.append("Provide a bit more detail to demonstrate understanding")

        concepts_found = 0
        for concept in assessment.expected_concepts:
            if concept.strip() and concept.lower() in response:
                concepts_found += 1
                score += 15
                strengths.append(f"Mentioned {concept}")

        missing = [concept for concept in assessment.expected_concepts if concept.lower() not in response]
        if assessment.expected_concepts:
            coverage = concepts_found / len(assessment.expected_concepts) * 100
            if coverage >= 80:
                score += 20
                strengths.append("Good concept coverage")
            elif coverage >= 50:
                score += 10
                weaknesses.append("Missing some key concepts")
                recommendations.append("Review and include more key concepts")
            else:
                weaknesses.append("Limited concept coverage")
                recommendations.append("Focus on understanding and explaining key concepts")

        if len(raw_response) > 50:
            score += 10
            strengths.append("Clear explanation")
        if len(raw_response) > 100:
            score += 5
            strengths.append("Detailed explanation")

        sentences = [part for part in re.split(r"[.!?]+", raw_response) if len(part.strip()) > 10]
        if len(sentences) >= 3:
            score += 10
            strengths.append("Well-structured explanation")
        else:
            weaknesses.append("Could improve structure")
            recommendations.append("Break down explanation into clear sentences")

        technical_terms = sum(1 for term in TECHNICAL_TERMS if term in response)
        if technical_terms:
            score += min(15, technical_terms * 5)
            strengths.append("Used appropriate technical terms")

        score = min(100, score)
        if score < ASSESSMENT_PASSING_SCORE:
            recommendations.append("Review the assignment requirements and key concepts")
            recommendations.append("Provide specific examples to illustrate your understanding")

        passed = score >= ASSESSMENT_PASSING_SCORE and not plagiarism_detected
        return AssessmentResult.model_validate(
            {
                "score": score,
                "topic_relevance_score": 100.0,
                "comprehension_score": score,
                "accuracy_score": score,
                "originality_score": originality_score,
                "plagiarism_detected": plagiarism_detected,
                "plagiarism_score": plagiarism_score,
                "feedback": _compose_feedback(_opening(score, passed), strengths, weaknesses, recommendations),
                "strengths": strengths,
                "weaknesses": weaknesses,
                "recommendations": recommendations,
                "detailed_analysis": {
                    "topic_match": True,
                    "concept_coverage": score,
                    "concepts_found": concepts_found,
                    "missing_concepts": missing,
                    "technical_terms": technical_terms,
                    "sentence_count": len(sentences),
                },
            }
        )

    @staticmethod
    def _topic_mismatch_result() -> AssessmentResult:
        return AssessmentResult(
            score=0,
            topic_relevance_score=0,
            comprehension_score=0,
            accuracy_score=0,
            originality_score=0,
            feedback=(
                "Your response does not appear to address the correct assignment topic. Please ensure you "
                "understand what the assignment is asking about and respond accordingly."
            ),
            weaknesses=["Response addresses wrong topic"],
            recommendations=[
                "Review the assignment requirements and ensure you understand the correct subject matter"
            ],
            detailed_analysis={"topic_match": False, "concept_coverage": 0, "missing_concepts": []},
        )

    # ── Skill assessment ────────────────────────────────────────────────

    async def evaluate_skill_assessment(self, assessment: SkillAssessment) -> AssessmentResult:
        return self.evaluate_skill_assessment_rule_based(assessment)

    @staticmethod
    def _is_correct_choice(question: SkillAssessmentQuestion, answer: Any) -> bool:
        expected = question.correct_answer
        if isinstance(expected, list):
            if not isinstance(answer, (list, tuple, set)):
                return False
            return {str(item).strip().lower() for item in answer} == {item.strip().lower() for item in expected}
        return isinstance(answer, str) and answer.strip().lower() == expected.strip().lower()

    @staticmethod
    def _code_score(code: str, weights: Dict[str, int], base: int, length_bonus_after: int) -> int:
        """Rule score out of 100 for a code answer."""
        lowered = code.lower()
        score = base
        if "def " in lowered or "function" in lowered:
            score += weights["definition"]
        if "return" in lowered:
            score += weights["return"]
        if "if " in lowered or "else" in lowered:
            score += weights["branch"]
        if "for " in lowered or "while" in lowered:
            score += weights["loop"]
        if len(code) > length_bonus_after:
            score += 10
        return min(100, score)

    def _score_question(self, question: SkillAssessmentQuestion, answer: Any) -> Dict[str, Any]:
        answered = isinstance(answer, (str, list)) and len(answer) > 0
        if question.type == "multiple-choice":
            if self._is_correct_choice(question, answer):
                earned = question.points
            elif answered:
                earned = int(question.points * MULTIPLE_CHOICE_PARTIAL_CREDIT)
            else:
                earned = 0
            correct = earned == question.points and question.points > 0
        else:
            if not isinstance(answer, str) or not answer.strip():
                rule_score = 0
            elif question.type == "code-completion":
                rule_score = self._code_score(
                    answer, {"definition": 20, "return": 20, "branch": 15, "loop": 15}, base=20, length_bonus_after=50
                )
            else:
                rule_score = self._code_score(
                    answer, {"definition": 25, "return": 25, "branch": 10, "loop": 10}, base=30, length_bonus_after=100
                )
            earned = round_half_up(question.points * rule_score / 100)
            correct = rule_score > 70
        return {
            "question_id": question.id,
            "question": question.question,
            "student_answer": answer,
            "correct_answer": question.correct_answer,
            "is_correct": correct,
            "score": earned,
            "max_score": question.points,
        }

    def evaluate_skill_assessment_rule_based(self, assessment: SkillAssessment) -> AssessmentResult:
        question_results = [
            self._score_question(question, assessment.student_responses.get(question.id))
            for question in assessment.questions
        ]
        total = sum(item["score"] for item in question_results)
        maximum = sum(item["max_score"] for item in question_results)
        percentage = round_half_up(total / maximum * 100) if maximum > 0 else 0
        passed = percentage >= ASSESSMENT_PASSING_SCORE

        strengths: List[str] = []
        weaknesses: List[str] = []
        recommendations: List[str] = []
        if passed:
            strengths.append("Demonstrated good understanding of the concepts")
            strengths.append("Answered questions with appropriate detail")
        elif percentage >= 60:
            strengths.append("Showed understanding of some concepts")
            weaknesses.append("Some areas need improvement")
            recommendations.append("Review the concepts where you struggled")
        else:
            weaknesses.append("Limited understanding demonstrated")
            recommendations.append("Review the fundamental concepts")
            recommendations.append("Practice with similar problems")

        return AssessmentResult.model_validate(
            {
                "score": percentage,
                "comprehension_score": percentage,
                "accuracy_score": percentage,
                "feedback": _compose_feedback(_opening(percentage, passed), strengths, weaknesses, recommendations),
                "strengths": strengths,
                "weaknesses": weaknesses,
                "recommendations": recommendations,
                "detailed_analysis": {
                    "question_results": question_results,
                    "total_score": total,
                    "max_score": maximum,
                    "percentage_score": percentage,
                },
            }
        )

    # ── Code review ─────────────────────────────────────────────────────

    async def evaluate_code_review(self, assessment: CodeReviewAssessment) -> AssessmentResult:
        return self.evaluate_code_review_rule_based(assessment)

    def evaluate_code_review_rule_based(self, assessment: CodeReviewAssessment) -> AssessmentResult:
        analysis = assessment.student_analysis
        lowered = analysis.lower()
        strengths: List[str] = []
        weaknesses: List[str] = []
        recommendations: List[str] = []

        found_expected = [issue for issue in assessment.expected_issues if _mentions(analysis, issue)]
        missed_expected = [issue for issue in assessment.expected_issues if issue not in found_expected]
        found_issues = [
            issue
            for issue in assessment.issues
            if (issue.line and re.search(rf"\bline\s*{issue.line}\b", lowered)) or _mentions(analysis, issue.description)
        ]
        missed_high = [
            issue for issue in assessment.issues if issue not in found_issues and issue.severity == "high"
        ]

        if assessment.expected_issues or assessment.issues:
            expected_ratio = (
                len(found_expected) / len(assessment.expected_issues) if assessment.expected_issues else 1.0
            )
            issue_ratio = len(found_issues) / len(assessment.issues) if assessment.issues else expected_ratio
            score = 60 * expected_ratio + 25 * issue_ratio
        else:
            score = 45 if len(analysis) > 50 else 20

        if len(analysis) > 100:
            score += 10
            strengths.append("Detailed analysis")
        if any(word in lowered for word in FIX_WORDS):
            score += 5
            strengths.append("Suggested concrete fixes")
        else:
            recommendations.append("Suggest how each issue should be fixed")
        score = min(100, round_half_up(score))

        if found_expected:
            strengths.append(f"Identified {len(found_expected)} of {len(assessment.expected_issues)} expected issues")
        if missed_expected:
            weaknesses.append("Missed issues: " + "; ".join(missed_expected))
            recommendations.append("Review the code line by line for the issues you missed")
        if missed_high:
            weaknesses.append(f"Missed {len(missed_high)} high-severity issue(s)")
        if not analysis.strip():
            weaknesses.append("No analysis provided")

        passed = score >= ASSESSMENT_PASSING_SCORE
        return AssessmentResult.model_validate(
            {
                "score": score,
                "comprehension_score": score,
                "accuracy_score": score,
                "feedback": _compose_feedback(_opening(score, passed), strengths, weaknesses, recommendations),
                "strengths": strengths,
                "weaknesses": weaknesses,
                "recommendations": recommendations,
                "detailed_analysis": {
                    "identified_expected_issues": found_expected,
                    "missed_expected_issues": missed_expected,
                    "identified_issue_lines": [issue.line for issue in found_issues],
                    "missed_high_severity_lines": [issue.line for issue in missed_high],
                },
            }
        )

    # ── Follow-up ───────────────────────────────────────────────────────

    def generate_personalized_feedback(self, result: AssessmentResult, learning_goals: Sequence[str] = ()) -> str:
        if result.plagiarism_detected:
            opening = "This checkpoint was not passed because your answer closely matches the assignment text."
        elif result.is_passed:
            opening = f"You passed this checkpoint with a score of {result.score:g}."
        else:
            opening = f"You scored {result.score:g}; {ASSESSMENT_PASSING_SCORE} is needed to pass this checkpoint."
        parts = [opening]
        next_step = next((item.strip() for item in result.recommendations if item.strip()), None)
        if next_step:
            parts.append(f"Next step: {next_step.rstrip('.')}.")
        goals = [goal.strip() for goal in learning_goals if goal.strip()]
        if goals:
            parts.append("This keeps you on track for: " + ", ".join(goals) + ".")
        return " ".join(parts)
